"""
Application Settings
====================
User-editable settings (credentials, prompts, provider choices) persisted as
a flat JSON document of string keys.

Services never hold on to a Settings object between operations: they ask the
SettingsStore for a fresh snapshot at the start of every top-level call, so
edits take effect without a restart.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from chapterflow.ai.actions import (
    AIAction,
    Preprocess,
    ProviderType,
    find_action,
    parse_actions,
)
from config.voices import DEFAULT_VOICE


logger = logging.getLogger(__name__)

GEMINI_KEY_PLACEHOLDER = "YOUR_GEMINI_API_KEY"
MIN_GEMINI_KEY_LENGTH = 30

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash-exp"
DEFAULT_COPILOT_URL = "http://localhost:8317/v1/chat/completions"
DEFAULT_COPILOT_MODEL = "gpt-4.1"
DEFAULT_CAPCUT_WS_URL = (
    "wss://sami-normal-sg.capcutapi.com/internal/api/v1/ws"
    "?device_id=7419423542421194256&iid=7419424282606095122"
    "&app_id=348188&region=SG&update_version_code=5.2.0"
    "&version_code=5.2.0&app_version=5.2.0"
)
DEFAULT_PREFETCH_COUNT = 3

DEFAULT_TRANSLATE_PROMPT = (
    "Translate the chapter in file original_content.txt into fluent, natural "
    "Vietnamese prose. Keep names consistent and preserve paragraph breaks. "
    "Return only the translated chapter in the content field."
)
DEFAULT_SUMMARY_PROMPT = (
    "Summarize the chapter in file original_content.txt in Vietnamese as a "
    "short narrative suitable for listening. Return only the summary in the "
    "content field."
)


def parse_gemini_keys(raw: Optional[str]) -> tuple[str, ...]:
    """Split a newline-separated key list, dropping placeholders and fragments."""
    if not raw:
        return ()
    keys = []
    for line in raw.splitlines():
        key = line.strip()
        if len(key) > MIN_GEMINI_KEY_LENGTH and key != GEMINI_KEY_PLACEHOLDER:
            keys.append(key)
    return tuple(keys)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _provider(value: Any) -> ProviderType:
    try:
        return ProviderType(str(value or ProviderType.GEMINI.value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown provider '{value}', falling back to gemini")
        return ProviderType.GEMINI


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of user settings."""

    gemini_api_keys: tuple[str, ...] = ()
    gemini_key_index: int = 0
    gemini_model: str = DEFAULT_GEMINI_MODEL

    copilot_api_url: str = DEFAULT_COPILOT_URL
    copilot_model: str = DEFAULT_COPILOT_MODEL

    translate_prompt: str = DEFAULT_TRANSLATE_PROMPT
    summary_prompt: str = DEFAULT_SUMMARY_PROMPT
    translate_provider: ProviderType = ProviderType.GEMINI
    summary_provider: ProviderType = ProviderType.GEMINI

    capcut_token: str = ""
    capcut_ws_url: str = DEFAULT_CAPCUT_WS_URL
    tts_voice: str = DEFAULT_VOICE

    prefetch_count: int = DEFAULT_PREFETCH_COUNT
    language: str = "vi"
    ai_actions: tuple[AIAction, ...] = field(default_factory=tuple)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "Settings":
        """Build a snapshot from the persisted key/value document."""
        translate_provider = _provider(raw.get("TRANSLATE_PROVIDER"))
        return cls(
            gemini_api_keys=parse_gemini_keys(raw.get("GEMINI_API_KEY")),
            gemini_key_index=_as_int(raw.get("GEMINI_API_KEY_INDEX"), 0),
            gemini_model=(raw.get("GEMINI_MODEL") or "").strip() or DEFAULT_GEMINI_MODEL,
            copilot_api_url=(raw.get("COPILOT_API_URL") or "").strip() or DEFAULT_COPILOT_URL,
            copilot_model=(raw.get("COPILOT_MODEL") or "").strip() or DEFAULT_COPILOT_MODEL,
            translate_prompt=(raw.get("TRANSLATE_PROMPT") or "").strip() or DEFAULT_TRANSLATE_PROMPT,
            summary_prompt=(raw.get("SUMMARY_PROMPT") or "").strip() or DEFAULT_SUMMARY_PROMPT,
            translate_provider=translate_provider,
            summary_provider=(
                _provider(raw["SUMMARY_PROVIDER"]) if raw.get("SUMMARY_PROVIDER") else translate_provider
            ),
            capcut_token=(raw.get("CAPCUT_TOKEN") or "").strip(),
            capcut_ws_url=(raw.get("CAPCUT_WS_URL") or "").strip() or DEFAULT_CAPCUT_WS_URL,
            tts_voice=(raw.get("TTS_VOICE") or "").strip() or DEFAULT_VOICE,
            prefetch_count=max(0, _as_int(raw.get("PREFETCH_COUNT"), DEFAULT_PREFETCH_COUNT)),
            language=(raw.get("LANGUAGE") or "vi").strip() or "vi",
            ai_actions=parse_actions(raw.get("AI_PROCESS_ACTIONS"), translate_provider),
        )

    def action_for(self, mode: str) -> Optional[AIAction]:
        """Resolve a processing mode to its action, or None if unknown."""
        if mode == "translate":
            return AIAction(
                key="translate",
                name="Translate",
                prompt=self.translate_prompt,
                provider=self.translate_provider,
                builtin=True,
            )
        if mode == "summary":
            return AIAction(
                key="summary",
                name="Summary",
                prompt=self.summary_prompt,
                preprocess=Preprocess.TTS_NORMALIZE,
                provider=self.summary_provider,
                builtin=True,
            )
        return find_action(self.ai_actions, mode)


class SettingsStore:
    """
    JSON-file backed settings with change detection.

    snapshot() re-parses the file whenever its modification time or size
    changes; writes through set() invalidate the parsed copy immediately.
    """

    def __init__(self, path: Path | str = "data/settings.json", defaults: Optional[dict[str, Any]] = None):
        self.path = Path(path)
        self._defaults = dict(defaults or {})
        self._signature: Optional[tuple[int, int]] = None
        self._cached: Optional[Settings] = None

    def _file_signature(self) -> Optional[tuple[int, int]]:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def raw(self) -> dict[str, Any]:
        """Return the persisted key/value document merged over defaults."""
        data = dict(self._defaults)
        if not self.path.exists():
            return data
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            logger.warning(f"Settings file {self.path} is not valid JSON: {exc}")
            return data
        if isinstance(loaded, dict):
            data.update(loaded)
        return data

    def snapshot(self) -> Settings:
        """Current settings, re-read if the file changed since the last call."""
        signature = self._file_signature()
        if self._cached is None or signature != self._signature:
            self._cached = Settings.from_raw(self.raw())
            self._signature = signature
        return self._cached

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Persist one key."""
        self.update({key: value})

    def update(self, values: dict[str, Any]) -> None:
        data = self.raw()
        data.update({k: v if isinstance(v, str) else str(v) for k, v in values.items()})
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(temp_path, self.path)
        self._cached = None

    def set_gemini_key_index(self, index: int) -> None:
        self.set("GEMINI_API_KEY_INDEX", index)
