"""
AI Provider Base Interface
==========================
Abstract base class for text-processing providers.
Enables pluggable backends (cloud Gemini, local Copilot, future).
"""

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import requests

from chapterflow.errors import ProviderConnectionError


logger = logging.getLogger(__name__)


class AIProvider(ABC):
    """
    Abstract base class for AI providers.

    Implementations:
        - GeminiProvider: Google Gemini REST API with file upload
        - CopilotProvider: OpenAI-compatible local chat endpoint
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 120.0):
        """
        Args:
            session: HTTP session (injected in tests)
            timeout: Per-request timeout in seconds
        """
        self.session = session or requests.Session()
        self.timeout = timeout

    # ==================== Properties ====================

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Provider identifier.

        Returns:
            Short name like 'gemini', 'copilot'
        """
        pass

    # ==================== Processing ====================

    @abstractmethod
    async def process_content(self, prompt: str, content: str) -> str:
        """
        Run ``prompt`` against ``content``.

        Args:
            prompt: Instruction text
            content: Chapter text to transform

        Returns:
            Transformed text

        Raises:
            ChapterFlowError: Typed failure (credentials, HTTP, empty/malformed reply)
        """
        pass

    # ==================== HTTP Helpers ====================

    async def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Run a blocking requests call in the default executor."""
        kwargs.setdefault("timeout", self.timeout)
        call: Callable[[], requests.Response] = functools.partial(
            self.session.request, method, url, **kwargs
        )
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, call)
        except requests.RequestException as exc:
            logger.warning(f"{self.name} request to {url.split('?')[0]} failed: {exc}")
            raise ProviderConnectionError(self.name, str(exc)) from exc
