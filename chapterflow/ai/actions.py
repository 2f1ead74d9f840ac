"""
AI Actions
==========
Typed processing actions. Built-in ``translate`` and ``summary`` actions are
derived from settings; custom actions come from the ``AI_PROCESS_ACTIONS``
JSON setting and are validated once when settings are loaded.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


logger = logging.getLogger(__name__)


class Preprocess(str, Enum):
    """How raw chapter text is prepared before it reaches a provider."""
    NONE = "none"
    TTS_NORMALIZE = "tts-normalize"


class ProviderType(str, Enum):
    GEMINI = "gemini"
    COPILOT = "copilot"


@dataclass(frozen=True)
class AIAction:
    """A named prompt + provider pairing selectable as a processing mode."""
    key: str
    name: str
    prompt: str
    preprocess: Preprocess = Preprocess.NONE
    provider: ProviderType = ProviderType.GEMINI
    builtin: bool = False


def _coerce_provider(value: Optional[str], default: ProviderType) -> ProviderType:
    if not value:
        return default
    try:
        return ProviderType(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown AI provider '{value}', using {default.value}")
        return default


def parse_actions(raw: Optional[str], default_provider: ProviderType = ProviderType.GEMINI) -> tuple[AIAction, ...]:
    """
    Parse the AI_PROCESS_ACTIONS setting.

    Args:
        raw: JSON array of {key, name, prompt, preprocess?, provider?}
        default_provider: Provider for entries that do not name one

    Returns:
        Valid actions in declaration order; invalid entries are skipped
    """
    if not raw or not raw.strip():
        return ()
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(f"AI_PROCESS_ACTIONS is not valid JSON: {exc}")
        return ()
    if not isinstance(entries, list):
        logger.warning("AI_PROCESS_ACTIONS must be a JSON array")
        return ()

    actions: list[AIAction] = []
    seen: set[str] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        key = str(entry.get("key") or "").strip()
        prompt = str(entry.get("prompt") or "").strip()
        if not key or not prompt:
            logger.warning(f"Skipping AI action without key or prompt: {entry!r}")
            continue
        if key in seen or key in BUILTIN_KEYS:
            logger.warning(f"Skipping duplicate or reserved AI action key '{key}'")
            continue
        try:
            preprocess = Preprocess(entry.get("preprocess") or Preprocess.NONE.value)
        except ValueError:
            logger.warning(f"Unknown preprocess mode for action '{key}', using none")
            preprocess = Preprocess.NONE
        actions.append(AIAction(
            key=key,
            name=str(entry.get("name") or key),
            prompt=prompt,
            preprocess=preprocess,
            provider=_coerce_provider(entry.get("provider"), default_provider),
        ))
        seen.add(key)
    return tuple(actions)


BUILTIN_KEYS = frozenset({"raw", "normal", "none", "translate", "summary"})


def find_action(actions: Iterable[AIAction], key: str) -> Optional[AIAction]:
    for action in actions:
        if action.key == key:
            return action
    return None
