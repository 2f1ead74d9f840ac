"""
Capcut Synthesizer
==================
Streaming text-to-speech over the Capcut websocket API.

Protocol per utterance:
    1. open the websocket
    2. send one JSON ``StartTask`` message
    3. collect binary audio frames
    4. finish on a ``TaskEnd``/``TaskFinished`` event, fail on ``TaskFailed``
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from chapterflow.content.markup import sanitize_sentence
from chapterflow.errors import (
    SynthesisError,
    TTSConnectionError,
    TTSStreamClosedError,
    TTSTimeoutError,
    TTSTokenNotConfiguredError,
)


logger = logging.getLogger(__name__)

APP_KEY = "ddjeqjLGMn"
SDK_VERSION = "sdk_v1"
AUDIO_CONFIG = {"bit_rate": 128000, "format": "mp3", "sample_rate": 24000}
FINISH_EVENTS = ("TaskEnd", "TaskFinished")

Connector = Callable[..., Awaitable[Any]]


def build_start_task(text: str, voice: str, token: str) -> dict:
    """Build the StartTask message for one utterance."""
    payload = {
        "audio_config": AUDIO_CONFIG,
        "speaker": voice,
        "text": sanitize_sentence(text),
    }
    return {
        "appkey": APP_KEY,
        "event": "StartTask",
        "namespace": "TTS",
        "payload": json.dumps(payload, ensure_ascii=False),
        "token": token,
        "version": SDK_VERSION,
    }


class CapcutSynthesizer:
    """One websocket session per utterance, bounded by a watchdog timeout."""

    def __init__(self, timeout: float = 20.0, connect: Connector = websockets.connect):
        """
        Args:
            timeout: Seconds allowed for connect + synthesis of one utterance
            connect: Websocket connector (injected in tests)
        """
        self.timeout = timeout
        self._connect = connect

    async def synthesize(self, text: str, voice: str, token: str, ws_url: str) -> bytes:
        """
        Synthesize one utterance.

        Returns:
            MP3 bytes (possibly empty if the service sent no frames)

        Raises:
            TTSTokenNotConfiguredError: No token configured
            TTSConnectionError: Handshake or connection failure
            TTSStreamClosedError: Stream closed before the finish event
            TTSTimeoutError: Watchdog expired
            SynthesisError: Service reported TaskFailed
        """
        if not token:
            raise TTSTokenNotConfiguredError()

        message = build_start_task(text, voice, token)
        try:
            return await asyncio.wait_for(self._run(ws_url, message), self.timeout)
        except asyncio.TimeoutError as exc:
            raise TTSTimeoutError(self.timeout) from exc

    async def _run(self, ws_url: str, message: dict) -> bytes:
        try:
            connection = await self._connect(ws_url, max_size=None)
        except (OSError, InvalidHandshake, InvalidURI) as exc:
            logger.error(f"Synthesis websocket connection failed: {exc}")
            raise TTSConnectionError(str(exc)) from exc

        try:
            await connection.send(json.dumps(message, ensure_ascii=False))
            frames: list[bytes] = []
            async for incoming in connection:
                if isinstance(incoming, (bytes, bytearray)):
                    frames.append(bytes(incoming))
                    continue

                event = self._parse_event(incoming)
                name = event.get("event")
                if name == "TaskFailed":
                    raise SynthesisError(
                        event.get("message") or event.get("status_text") or "Synthesis task failed"
                    )
                if name in FINISH_EVENTS:
                    return b"".join(frames)

            raise TTSStreamClosedError("server closed the stream")
        except ConnectionClosed as exc:
            raise TTSStreamClosedError(str(exc)) from exc
        finally:
            await connection.close()

    @staticmethod
    def _parse_event(raw: str) -> dict:
        try:
            event = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON control frame: {raw[:80]!r}")
            return {}
        return event if isinstance(event, dict) else {}
