"""
Application Event Contracts
===========================
Typed events for chapter, audio, prefetch and auto-generate progress, and
the EventChannel that delivers them to subscribers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar, Union

from chapterflow.storage.models import PrefetchStatus


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """High-level event categories."""

    STATE = "state"
    CHAPTER = "chapter"
    AUDIO = "audio"
    PREFETCH = "prefetch"
    AUTOGEN = "autogen"


class JobState(str, Enum):
    """Job lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ChapterState(str, Enum):
    """Processing state of one (book, chapter, mode)."""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class AutoGenerateKind(str, Enum):
    STARTED = "started"
    CHAPTER_STARTED = "chapter_started"
    CHAPTER_COMPLETED = "chapter_completed"
    CHAPTER_SKIPPED = "chapter_skipped"
    ERROR = "error"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class StateEvent:
    """State transition event for a run (TTS conversion, prefetch pass)."""

    event_type: EventType
    timestamp: str
    state: JobState
    job_id: str
    message: str = ""


@dataclass(frozen=True)
class ChapterStateEvent:
    """A chapter started processing, became readable, or failed."""

    event_type: EventType
    timestamp: str
    book_id: str
    chapter_number: int
    mode: str
    state: ChapterState
    from_cache: bool = False
    message: str = ""


@dataclass(frozen=True)
class AudioReadyEvent:
    """One sentence of audio is on disk and playable."""

    event_type: EventType
    timestamp: str
    file_path: str
    task_id: str
    audio_task_id: str
    index: int
    from_cache: bool = False


@dataclass(frozen=True)
class AudioFailedEvent:
    """A sentence exhausted its retries; the run moved on."""

    event_type: EventType
    timestamp: str
    task_id: str
    index: int
    message: str


@dataclass(frozen=True)
class PrefetchProgressEvent:
    """A prefetch task changed status."""

    event_type: EventType
    timestamp: str
    book_id: str
    chapter_number: int
    mode: str
    status: PrefetchStatus
    done: int
    total: int
    message: str = ""


@dataclass(frozen=True)
class AutoGenerateEvent:
    """Progress of a whole-book summary + audio job."""

    event_type: EventType
    timestamp: str
    book_id: str
    kind: AutoGenerateKind
    chapter_number: Optional[int]
    completed: int
    total: int
    message: str = ""


AppEvent = Union[
    StateEvent,
    ChapterStateEvent,
    AudioReadyEvent,
    AudioFailedEvent,
    PrefetchProgressEvent,
    AutoGenerateEvent,
]


def make_state_event(state: JobState, job_id: str, message: str = "") -> StateEvent:
    """Create a normalized state event."""
    return StateEvent(
        event_type=EventType.STATE,
        timestamp=_now_iso(),
        state=state,
        job_id=job_id,
        message=message,
    )


def make_chapter_event(
    book_id: str,
    chapter_number: int,
    mode: str,
    state: ChapterState,
    from_cache: bool = False,
    message: str = "",
) -> ChapterStateEvent:
    return ChapterStateEvent(
        event_type=EventType.CHAPTER,
        timestamp=_now_iso(),
        book_id=book_id,
        chapter_number=chapter_number,
        mode=mode,
        state=state,
        from_cache=from_cache,
        message=message,
    )


def make_audio_ready_event(
    file_path: str,
    task_id: str,
    index: int,
    from_cache: bool = False,
) -> AudioReadyEvent:
    """Create an audio-ready event; audio_task_id is ``{task_id}_{index}``."""
    return AudioReadyEvent(
        event_type=EventType.AUDIO,
        timestamp=_now_iso(),
        file_path=file_path,
        task_id=task_id,
        audio_task_id=f"{task_id}_{index}",
        index=index,
        from_cache=from_cache,
    )


def make_audio_failed_event(task_id: str, index: int, message: str) -> AudioFailedEvent:
    return AudioFailedEvent(
        event_type=EventType.AUDIO,
        timestamp=_now_iso(),
        task_id=task_id,
        index=index,
        message=message,
    )


def make_prefetch_event(
    book_id: str,
    chapter_number: int,
    mode: str,
    status: PrefetchStatus,
    done: int,
    total: int,
    message: str = "",
) -> PrefetchProgressEvent:
    return PrefetchProgressEvent(
        event_type=EventType.PREFETCH,
        timestamp=_now_iso(),
        book_id=book_id,
        chapter_number=chapter_number,
        mode=mode,
        status=status,
        done=max(0, min(done, total)),
        total=total,
        message=message,
    )


def make_autogen_event(
    book_id: str,
    kind: AutoGenerateKind,
    completed: int,
    total: int,
    chapter_number: Optional[int] = None,
    message: str = "",
) -> AutoGenerateEvent:
    return AutoGenerateEvent(
        event_type=EventType.AUTOGEN,
        timestamp=_now_iso(),
        book_id=book_id,
        kind=kind,
        chapter_number=chapter_number,
        completed=completed,
        total=total,
        message=message,
    )


E = TypeVar("E")


class EventChannel(Generic[E]):
    """
    Typed publish/subscribe channel owned by one producer.

    A listener that raises is logged and skipped; the producer and the
    remaining listeners are unaffected.
    """

    def __init__(self, name: str = "events"):
        self.name = name
        self._listeners: list[Callable[[E], None]] = []

    def subscribe(self, listener: Callable[[E], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: E) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener on channel '{self.name}' failed")

    def __len__(self) -> int:
        return len(self._listeners)


def emit(listener: Optional[Callable[[E], None]], event: E) -> None:
    """Deliver ``event`` to an optional per-run callback with the same isolation."""
    if listener is None:
        return
    try:
        listener(event)
    except Exception:
        logger.exception("Event callback failed")
