"""
Settings Tests
==============
Tests for settings snapshots, Gemini key parsing, AI actions and voices.
"""

import json

import pytest

from chapterflow.ai.actions import AIAction, Preprocess, ProviderType, find_action, parse_actions
from config.settings import (
    DEFAULT_PREFETCH_COUNT,
    DEFAULT_TRANSLATE_PROMPT,
    Settings,
    SettingsStore,
    parse_gemini_keys,
)
from config.voices import DEFAULT_VOICE, get_voice, list_voices


VALID_KEY_A = "AIza" + "a" * 35
VALID_KEY_B = "AIza" + "b" * 35


class TestGeminiKeys:
    """Newline-separated key pool."""

    def test_parses_valid_keys_in_order(self):
        raw = f"{VALID_KEY_A}\n\n  {VALID_KEY_B}  \n"
        assert parse_gemini_keys(raw) == (VALID_KEY_A, VALID_KEY_B)

    def test_drops_placeholder_and_short_fragments(self):
        raw = f"YOUR_GEMINI_API_KEY\nshort-key\n{VALID_KEY_A}"
        assert parse_gemini_keys(raw) == (VALID_KEY_A,)

    def test_empty(self):
        assert parse_gemini_keys(None) == ()
        assert parse_gemini_keys("") == ()


class TestSettingsSnapshot:
    """Immutable snapshot built from the raw document."""

    def test_defaults(self):
        settings = Settings.from_raw({})
        assert settings.gemini_api_keys == ()
        assert settings.prefetch_count == DEFAULT_PREFETCH_COUNT
        assert settings.translate_prompt == DEFAULT_TRANSLATE_PROMPT
        assert settings.tts_voice == DEFAULT_VOICE
        assert settings.language == "vi"

    def test_summary_provider_follows_translate_provider(self):
        settings = Settings.from_raw({"TRANSLATE_PROVIDER": "copilot"})
        assert settings.summary_provider == ProviderType.COPILOT

        settings = Settings.from_raw({"TRANSLATE_PROVIDER": "copilot", "SUMMARY_PROVIDER": "gemini"})
        assert settings.summary_provider == ProviderType.GEMINI

    def test_invalid_numbers_fall_back(self):
        settings = Settings.from_raw({"PREFETCH_COUNT": "lots", "GEMINI_API_KEY_INDEX": "x"})
        assert settings.prefetch_count == DEFAULT_PREFETCH_COUNT
        assert settings.gemini_key_index == 0

    def test_builtin_actions(self):
        settings = Settings.from_raw({"SUMMARY_PROMPT": "Tóm tắt file original_content.txt"})

        translate = settings.action_for("translate")
        summary = settings.action_for("summary")

        assert translate.preprocess == Preprocess.NONE
        assert translate.builtin
        assert summary.preprocess == Preprocess.TTS_NORMALIZE
        assert summary.prompt == "Tóm tắt file original_content.txt"

    def test_custom_action_lookup(self):
        actions = json.dumps([{"key": "poem", "name": "Thơ", "prompt": "Viết thành thơ", "provider": "copilot"}])
        settings = Settings.from_raw({"AI_PROCESS_ACTIONS": actions})

        action = settings.action_for("poem")
        assert action.provider == ProviderType.COPILOT
        assert settings.action_for("unknown") is None


class TestParseActions:
    """AI_PROCESS_ACTIONS parsing happens once, at load."""

    def test_skips_invalid_duplicate_and_reserved(self):
        raw = json.dumps([
            {"key": "poem", "prompt": "p1"},
            {"key": "poem", "prompt": "p2"},
            {"key": "summary", "prompt": "p3"},
            {"key": "", "prompt": "p4"},
            {"key": "nokey"},
            "not-an-object",
            {"key": "tts", "prompt": "p5", "preprocess": "tts-normalize"},
            {"key": "odd", "prompt": "p6", "preprocess": "bogus", "provider": "bogus"},
        ])

        actions = parse_actions(raw)

        assert [a.key for a in actions] == ["poem", "tts", "odd"]
        assert actions[0].prompt == "p1"
        assert actions[0].name == "poem"
        assert actions[1].preprocess == Preprocess.TTS_NORMALIZE
        assert actions[2].preprocess == Preprocess.NONE
        assert actions[2].provider == ProviderType.GEMINI

    @pytest.mark.parametrize("raw", [None, "", "{not json", '{"key": "x"}'])
    def test_malformed_documents(self, raw):
        assert parse_actions(raw) == ()

    def test_default_provider(self):
        actions = parse_actions(json.dumps([{"key": "a", "prompt": "p"}]), ProviderType.COPILOT)
        assert actions[0].provider == ProviderType.COPILOT

    def test_find_action(self):
        actions = (AIAction(key="a", name="A", prompt="p"),)
        assert find_action(actions, "a").name == "A"
        assert find_action(actions, "b") is None


class TestSettingsStore:
    """File-backed store with change detection."""

    def test_missing_file_uses_defaults(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json", defaults={"LANGUAGE": "en"})
        assert store.raw() == {"LANGUAGE": "en"}
        assert store.snapshot().language == "en"

    def test_set_persists_and_invalidates(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        assert store.snapshot().prefetch_count == DEFAULT_PREFETCH_COUNT

        store.set("PREFETCH_COUNT", 5)

        assert store.get("PREFETCH_COUNT") == "5"
        assert store.snapshot().prefetch_count == 5

    def test_external_edit_is_picked_up(self, tmp_path):
        path = tmp_path / "settings.json"
        store = SettingsStore(path)
        store.set("GEMINI_API_KEY", VALID_KEY_A)
        assert store.snapshot().gemini_api_keys == (VALID_KEY_A,)

        path.write_text(
            json.dumps({"GEMINI_API_KEY": f"{VALID_KEY_A}\n{VALID_KEY_B}"}), encoding="utf-8"
        )

        assert store.snapshot().gemini_api_keys == (VALID_KEY_A, VALID_KEY_B)

    def test_snapshot_reused_when_unchanged(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        store.set("LANGUAGE", "en")
        assert store.snapshot() is store.snapshot()

    def test_invalid_json_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{broken", encoding="utf-8")
        store = SettingsStore(path, defaults={"LANGUAGE": "en"})
        assert store.raw() == {"LANGUAGE": "en"}

    def test_key_index_persisted(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        store.set_gemini_key_index(2)
        assert store.snapshot().gemini_key_index == 2


class TestVoices:
    """Voice presets."""

    def test_default_voice_exists(self):
        assert get_voice(DEFAULT_VOICE).id == DEFAULT_VOICE

    def test_unknown_voice_falls_back_to_default(self):
        assert get_voice("missing").id == DEFAULT_VOICE

    def test_list_voices(self):
        assert DEFAULT_VOICE in list_voices()
