"""
Configuration Module
====================
User settings and voice presets.
"""

from .voices import VOICES, DEFAULT_VOICE
from .settings import Settings, SettingsStore

__all__ = ["Settings", "SettingsStore", "VOICES", "DEFAULT_VOICE"]
