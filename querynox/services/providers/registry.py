"""Provider registry: one builder per backend, constructed once per process."""

import logging
from typing import Callable

from querynox.config import Settings
from querynox.errors import UpstreamError
from querynox.services.providers.base import BaseLLMProvider
from querynox.services.providers.openai_provider import (
    GROQ_BASE_URL,
    OPENROUTER_BASE_URL,
    OpenAIProvider,
)
from querynox.services.providers.anthropic_provider import AnthropicProvider
from querynox.services.providers.gemini_provider import GeminiProvider

logger = logging.getLogger(__name__)


def _build_openai(settings: Settings) -> BaseLLMProvider | None:
    key = settings.openai_api_key.get_secret_value()
    return OpenAIProvider(key) if key else None


def _build_anthropic(settings: Settings) -> BaseLLMProvider | None:
    key = settings.anthropic_api_key.get_secret_value()
    return AnthropicProvider(key) if key else None


def _build_groq(settings: Settings) -> BaseLLMProvider | None:
    key = settings.groq_api_key.get_secret_value()
    return OpenAIProvider(key, name="groq", base_url=GROQ_BASE_URL) if key else None


def _build_gemini(settings: Settings) -> BaseLLMProvider | None:
    key = settings.google_api_key.get_secret_value()
    return GeminiProvider(key) if key else None


def _build_openrouter(settings: Settings) -> BaseLLMProvider | None:
    key = settings.openrouter_api_key.get_secret_value()
    if not key:
        return None
    return OpenAIProvider(
        key,
        name="openrouter",
        base_url=OPENROUTER_BASE_URL,
        default_headers={
            "HTTP-Referer": settings.public_base_url,
            "X-Title": "QueryNox",
        },
    )


PROVIDER_BUILDERS: dict[str, Callable[[Settings], BaseLLMProvider | None]] = {
    "openai": _build_openai,
    "anthropic": _build_anthropic,
    "groq": _build_groq,
    "google": _build_gemini,
    "openrouter": _build_openrouter,
}


class ProviderRegistry:
    """Holds the provider clients for the lifetime of the process."""

    def __init__(self, settings: Settings, providers: dict[str, BaseLLMProvider] | None = None):
        self._providers: dict[str, BaseLLMProvider] = {}
        if providers is not None:
            self._providers.update(providers)
            return
        for name, build in PROVIDER_BUILDERS.items():
            provider = build(settings)
            if provider is not None:
                self._providers[name] = provider
        logger.info("Provider registry initialized: %s", sorted(self._providers))

    def get(self, name: str) -> BaseLLMProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise UpstreamError(
                f"Provider '{name}' not configured. "
                f"Set the API key in .env for this provider."
            )
        return provider

    def has(self, name: str) -> bool:
        return name in self._providers

    @property
    def names(self) -> list[str]:
        return sorted(self._providers)

    async def aclose(self):
        for name, provider in self._providers.items():
            try:
                await provider.aclose()
            except Exception:
                logger.warning("Failed to close provider %s", name, exc_info=True)
        self._providers.clear()
