"""
AI Provider Factory
===================
Factory pattern for creating AI provider instances.
Providers are built per call from the current settings snapshot and are
never cached, so credential and endpoint edits apply on the next request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional, Type

from chapterflow.ai.actions import ProviderType
from chapterflow.ai.base import AIProvider
from chapterflow.ai.copilot import CopilotProvider
from chapterflow.ai.gemini import GeminiProvider

if TYPE_CHECKING:
    from config.settings import Settings


def _gemini_kwargs(settings: "Settings") -> dict[str, Any]:
    return {
        "api_keys": settings.gemini_api_keys,
        "key_index": settings.gemini_key_index,
        "model": settings.gemini_model,
    }


def _copilot_kwargs(settings: "Settings") -> dict[str, Any]:
    return {
        "api_url": settings.copilot_api_url,
        "model": settings.copilot_model,
    }


class AIProviderFactory:
    """
    Factory for creating AI provider instances.

    Usage:
        provider = AIProviderFactory.create("gemini", store.snapshot(),
                                            on_key_rotated=store.set_gemini_key_index)
        text = await provider.process_content(prompt, content)
    """

    # Registry of available providers
    _providers: dict[str, Type[AIProvider]] = {
        ProviderType.GEMINI.value: GeminiProvider,
        ProviderType.COPILOT.value: CopilotProvider,
    }

    _settings_readers: dict[str, Callable[["Settings"], dict[str, Any]]] = {
        ProviderType.GEMINI.value: _gemini_kwargs,
        ProviderType.COPILOT.value: _copilot_kwargs,
    }

    @classmethod
    def create(
        cls,
        provider_type: str | ProviderType,
        settings: "Settings",
        on_key_rotated: Optional[Callable[[int], None]] = None,
        **overrides: Any,
    ) -> AIProvider:
        """
        Create a provider instance.

        Args:
            provider_type: Provider identifier ('gemini', 'copilot')
            settings: Current settings snapshot
            on_key_rotated: Receives the new key index after a rotation (gemini)
            **overrides: Constructor arguments taking precedence over settings

        Returns:
            AIProvider instance

        Raises:
            ValueError: If provider_type is not registered
        """
        name = provider_type.value if isinstance(provider_type, ProviderType) else str(provider_type).lower()

        if name not in cls._providers:
            available = ", ".join(cls.available_providers())
            raise ValueError(
                f"Unknown AI provider: '{name}'. "
                f"Available providers: {available}"
            )

        reader = cls._settings_readers.get(name)
        kwargs = reader(settings) if reader else {}
        if name == ProviderType.GEMINI.value and on_key_rotated is not None:
            kwargs["on_key_rotated"] = on_key_rotated
        kwargs.update(overrides)
        return cls._providers[name](**kwargs)

    @classmethod
    def register(
        cls,
        name: str,
        provider_class: Type[AIProvider],
        settings_reader: Optional[Callable[["Settings"], dict[str, Any]]] = None,
    ) -> None:
        """
        Register a new provider.

        Args:
            name: Provider identifier
            provider_class: Class implementing AIProvider
            settings_reader: Maps a settings snapshot to constructor kwargs
        """
        cls._providers[name.lower()] = provider_class
        if settings_reader is not None:
            cls._settings_readers[name.lower()] = settings_reader

    @classmethod
    def unregister(cls, name: str) -> None:
        """
        Unregister a provider.

        Raises:
            KeyError: If provider not registered
        """
        name = name.lower()
        if name not in cls._providers:
            raise KeyError(f"Provider '{name}' not registered")
        del cls._providers[name]
        cls._settings_readers.pop(name, None)

    @classmethod
    def available_providers(cls) -> list[str]:
        return list(cls._providers.keys())

    @classmethod
    def is_available(cls, name: str) -> bool:
        return name.lower() in cls._providers
