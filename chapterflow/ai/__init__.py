"""
AI Module
=========
Provider abstraction for chapter text processing.

Key Components:
    - AIProvider: Abstract provider interface
    - GeminiProvider / CopilotProvider: Concrete providers
    - AIProviderFactory: Per-call provider construction
    - AIAction: Typed processing actions
"""

from .actions import AIAction, Preprocess, ProviderType, parse_actions
from .base import AIProvider
from .copilot import CopilotProvider
from .gemini import GeminiProvider
from .factory import AIProviderFactory

__all__ = [
    "AIAction",
    "AIProvider",
    "AIProviderFactory",
    "CopilotProvider",
    "GeminiProvider",
    "Preprocess",
    "ProviderType",
    "parse_actions",
]
