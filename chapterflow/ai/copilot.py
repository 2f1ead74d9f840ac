"""
Copilot Provider
================
Client for a local OpenAI-compatible chat-completions server.
Long chapters are split at paragraph breaks and processed in parallel.
"""

import asyncio
import logging
import re
from typing import Optional

import requests

from chapterflow.ai.base import AIProvider
from chapterflow.errors import (
    ChapterFlowError,
    EmptyResponseError,
    InvalidCredentialsError,
    ProviderHTTPError,
)


logger = logging.getLogger(__name__)

SPLIT_KEY = "<br><br>"
MIN_CHUNK_SIZE = 1300
CHUNK_TARGETS = (8, 5, 3, 2)

_FENCE_OPEN = re.compile(r"^```(?:html|xml|text|markdown)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$", re.IGNORECASE)
_BREAK_RUN = re.compile(r"(?:<br>){3,}", re.IGNORECASE)


def clean_response(text: str) -> str:
    """Strip markdown code fences and collapse runs of line breaks."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    cleaned = _BREAK_RUN.sub(SPLIT_KEY, cleaned)
    return cleaned.strip()


def split_into_chunks(content: str, min_chunk_size: int = MIN_CHUNK_SIZE) -> list[str]:
    """
    Group paragraphs into a few similarly sized chunks.

    Tries 8, then 5, 3 and 2 groups, stopping at the first grouping whose
    average chunk length reaches ``min_chunk_size``. Content too small for
    any grouping is returned as a single chunk.
    """
    parts = content.split(SPLIT_KEY)
    if len(parts) <= 1:
        return [content]

    def group(num_chunks: int) -> list[str]:
        per_chunk = -(-len(parts) // num_chunks)
        return [
            SPLIT_KEY.join(parts[i:i + per_chunk])
            for i in range(0, len(parts), per_chunk)
        ]

    def average(chunks: list[str]) -> float:
        return sum(len(c) for c in chunks) / len(chunks)

    chunks = group(CHUNK_TARGETS[0])
    for target in CHUNK_TARGETS[1:]:
        if average(chunks) >= min_chunk_size:
            break
        if len(chunks) > target:
            chunks = group(target)

    if average(chunks) < min_chunk_size:
        return [content]
    return chunks


class CopilotProvider(AIProvider):
    """Local chat-completions provider with retry and chunking."""

    def __init__(
        self,
        api_url: str = "http://localhost:8317/v1/chat/completions",
        model: str = "gpt-4.1",
        max_retries: int = 3,
        retry_delay: float = 1.0,
        chunking: bool = True,
        session: Optional[requests.Session] = None,
        timeout: float = 300.0,
    ):
        super().__init__(session=session, timeout=timeout)
        self.api_url = api_url
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.chunking = chunking

    @property
    def name(self) -> str:
        return "copilot"

    async def process_content(self, prompt: str, content: str) -> str:
        system_prompt = prompt.replace("file original_content.txt", "the content below")
        chunks = split_into_chunks(content) if self.chunking else [content]

        if len(chunks) == 1:
            reply = await self._call(system_prompt, f"Here is the content to process:\n\n{content}")
            return clean_response(reply)

        logger.info(f"Copilot: processing {len(chunks)} chunks in parallel")
        replies = await asyncio.gather(*(
            self._call(
                system_prompt,
                f"Here is the content to process (part {i + 1}/{len(chunks)}):\n\n{chunk}",
            )
            for i, chunk in enumerate(chunks)
        ))
        return clean_response(SPLIT_KEY.join(clean_response(r) for r in replies))

    async def _call(self, system_prompt: str, user_message: str) -> str:
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        }

        last_error: Optional[ChapterFlowError] = None
        for attempt in range(self.max_retries):
            try:
                return await self._post(body)
            except ChapterFlowError as exc:
                if exc.critical:
                    raise
                last_error = exc
                logger.warning(f"Copilot attempt {attempt + 1}/{self.max_retries} failed: {exc}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
        raise last_error

    async def _post(self, body: dict) -> str:
        response = await self._request("POST", self.api_url, json=body)
        if response.status_code in (401, 403):
            raise InvalidCredentialsError("Copilot", response.text)
        if response.status_code >= 400:
            raise ProviderHTTPError("copilot", response.status_code, response.text)
        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise EmptyResponseError("copilot")
        if not text or not text.strip():
            raise EmptyResponseError("copilot")
        return text
