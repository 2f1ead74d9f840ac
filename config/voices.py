"""
Voice Configuration
===================
Speaker presets for the streaming synthesis service.
"""

from dataclasses import dataclass
from typing import Literal


@dataclass
class Voice:
    """Voice preset configuration."""
    id: str
    name: str
    gender: Literal["male", "female"]
    language: str
    style: str


VOICES = {
    "BV421_vivn_streaming": Voice(
        id="BV421_vivn_streaming",
        name="Vietnamese Female",
        gender="female",
        language="vi",
        style="clear, narrative"
    ),
    "BV074_streaming": Voice(
        id="BV074_streaming",
        name="Vietnamese Girl",
        gender="female",
        language="vi",
        style="bright, lively"
    ),
    "BV075_streaming": Voice(
        id="BV075_streaming",
        name="Vietnamese Male",
        gender="male",
        language="vi",
        style="calm, confident"
    ),
}

# Default voice
DEFAULT_VOICE = "BV421_vivn_streaming"


def get_voice(voice_id: str) -> Voice:
    """Get a voice by ID."""
    return VOICES.get(voice_id, VOICES[DEFAULT_VOICE])


def list_voices() -> list[str]:
    """List all available voice IDs."""
    return list(VOICES.keys())
