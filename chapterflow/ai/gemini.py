"""
Gemini Provider
===============
Google Gemini REST client. Chapter text is uploaded as a temporary file,
referenced from a generateContent call constrained to a JSON schema, and the
``content`` field of the reply is returned.

Supports a pool of API keys: quota and rate-limit failures rotate to the
next key and the new index is reported through ``on_key_rotated`` so it can
be persisted.
"""

import asyncio
import json
import logging
from typing import Callable, Optional, Sequence

import requests

from chapterflow.ai.base import AIProvider
from chapterflow.errors import (
    CredentialsNotConfiguredError,
    EmptyResponseError,
    FileProcessingError,
    InvalidCredentialsError,
    MalformedResponseError,
    ProviderHTTPError,
)


logger = logging.getLogger(__name__)

BASE_URL = "https://generativelanguage.googleapis.com"
DISPLAY_NAME = "original_content.txt"

CONTENT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "content": {"type": "STRING"},
    },
    "required": ["content"],
}


class GeminiProvider(AIProvider):
    """Gemini provider with key rotation."""

    def __init__(
        self,
        api_keys: Sequence[str],
        key_index: int = 0,
        model: str = "gemini-2.0-flash-exp",
        on_key_rotated: Optional[Callable[[int], None]] = None,
        max_retries: int = 3,
        poll_interval: float = 0.1,
        max_poll_seconds: float = 60.0,
        session: Optional[requests.Session] = None,
        timeout: float = 120.0,
    ):
        super().__init__(session=session, timeout=timeout)
        self.api_keys = list(api_keys)
        self.key_index = key_index if 0 <= key_index < len(self.api_keys) else 0
        self.model = model
        self.on_key_rotated = on_key_rotated
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self.max_poll_seconds = max_poll_seconds

    @property
    def name(self) -> str:
        return "gemini"

    async def process_content(self, prompt: str, content: str) -> str:
        if not self.api_keys:
            raise CredentialsNotConfiguredError("Gemini", "GEMINI_API_KEY")

        attempts = min(self.max_retries, len(self.api_keys)) or 1
        last_error: Optional[ProviderHTTPError] = None

        for attempt in range(attempts):
            key = self.api_keys[self.key_index]
            try:
                return await self._process_with_key(key, prompt, content)
            except ProviderHTTPError as exc:
                last_error = exc
                if not exc.rate_limited or attempt == attempts - 1:
                    break
                self._rotate_key()

        raise self._final_error(last_error)

    def _rotate_key(self) -> None:
        previous = self.key_index
        self.key_index = (self.key_index + 1) % len(self.api_keys)
        logger.warning(
            f"Gemini key #{previous + 1} hit a quota limit, rotating to key "
            f"#{self.key_index + 1}/{len(self.api_keys)}"
        )
        if self.on_key_rotated is not None:
            self.on_key_rotated(self.key_index)

    def _final_error(self, exc: ProviderHTTPError) -> Exception:
        body = (exc.details or "").lower()
        if exc.status in (401, 403) or (exc.status == 400 and "api key not valid" in body):
            return InvalidCredentialsError("Gemini", exc.details)
        return exc

    # ==================== REST calls ====================

    async def _process_with_key(self, key: str, prompt: str, content: str) -> str:
        uploaded = await self._upload(key, content)
        uploaded = await self._wait_until_active(key, uploaded)
        text = await self._generate(key, prompt, uploaded)
        return self._parse_content(text)

    def _check(self, response: requests.Response) -> None:
        if response.status_code < 400:
            return
        message = response.text
        try:
            message = response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            pass
        raise ProviderHTTPError("gemini", response.status_code, message)

    async def _upload(self, key: str, content: str) -> dict:
        metadata = json.dumps({"file": {"display_name": DISPLAY_NAME}})
        response = await self._request(
            "POST",
            f"{BASE_URL}/upload/v1beta/files",
            params={"key": key},
            headers={"X-Goog-Upload-Protocol": "multipart"},
            files={
                "metadata": (None, metadata, "application/json"),
                "file": (DISPLAY_NAME, content.encode("utf-8"), "text/plain"),
            },
        )
        self._check(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError("gemini", "upload reply is not JSON") from exc
        if not isinstance(data, dict):
            raise MalformedResponseError("gemini", "upload reply has no file")
        return self._file_info(data.get("file"))

    @staticmethod
    def _file_info(data) -> dict:
        """Validate file metadata; ``name`` and ``uri`` are needed downstream."""
        if not isinstance(data, dict) or not data.get("name") or not data.get("uri"):
            raise MalformedResponseError("gemini", "file metadata is missing 'name' or 'uri'")
        return data

    async def _wait_until_active(self, key: str, uploaded: dict) -> dict:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_poll_seconds
        while uploaded.get("state") == "PROCESSING":
            if loop.time() >= deadline:
                raise FileProcessingError(uploaded["name"], "PROCESSING")
            await asyncio.sleep(self.poll_interval)
            response = await self._request(
                "GET",
                f"{BASE_URL}/v1beta/{uploaded['name']}",
                params={"key": key},
            )
            self._check(response)
            try:
                uploaded = self._file_info(response.json())
            except ValueError as exc:
                raise MalformedResponseError("gemini", "file status reply is not JSON") from exc

        if uploaded.get("state") == "FAILED":
            raise FileProcessingError(uploaded["name"], "FAILED")
        return uploaded

    async def _generate(self, key: str, prompt: str, uploaded: dict) -> str:
        body = {
            "contents": [{
                "role": "user",
                "parts": [
                    {"text": prompt},
                    {"file_data": {
                        "mime_type": uploaded.get("mimeType", "text/plain"),
                        "file_uri": uploaded["uri"],
                    }},
                ],
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": CONTENT_SCHEMA,
            },
        }
        response = await self._request(
            "POST",
            f"{BASE_URL}/v1beta/models/{self.model}:generateContent",
            params={"key": key},
            json=body,
        )
        self._check(response)

        try:
            parts = response.json()["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise EmptyResponseError("gemini")
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise EmptyResponseError("gemini")
        return text

    @staticmethod
    def _parse_content(text: str) -> str:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError("gemini", f"reply is not JSON: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("content"), str):
            raise MalformedResponseError("gemini", "reply has no string 'content' field")
        if not data["content"].strip():
            raise EmptyResponseError("gemini")
        return data["content"]
