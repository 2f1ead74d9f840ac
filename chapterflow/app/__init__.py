"""
Application Module
==================
Configuration and typed events shared by every service.

Key Components:
    - AppConfig: Directory layout and tuning knobs
    - EventChannel and typed events
    - ReaderController (chapterflow.app.controller): facade over all services
"""

from .config import AppConfig
from .events import (
    AppEvent,
    AudioFailedEvent,
    AudioReadyEvent,
    AutoGenerateEvent,
    AutoGenerateKind,
    ChapterState,
    ChapterStateEvent,
    EventChannel,
    EventType,
    JobState,
    PrefetchProgressEvent,
    StateEvent,
)

__all__ = [
    "AppConfig",
    "AppEvent",
    "AudioFailedEvent",
    "AudioReadyEvent",
    "AutoGenerateEvent",
    "AutoGenerateKind",
    "ChapterState",
    "ChapterStateEvent",
    "EventChannel",
    "EventType",
    "JobState",
    "PrefetchProgressEvent",
    "StateEvent",
]
