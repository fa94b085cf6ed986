"""One-shot calls to the lightweight auxiliary model.

Every task here fails open: an error, a timeout or an empty answer returns
a fixed fallback value and is only logged.
"""

import asyncio
import logging

from querynox.config import Settings
from querynox.errors import UpstreamError
from querynox.services.model_catalog import ModelCatalog
from querynox.services.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

DEFAULT_CHAT_NAME = "New Chat"
SUMMARY_FALLBACK = "Previous context preserved."
RESOLVER_HISTORY = 10

_CHAT_NAME_PROMPT = (
    "Generate a concise, descriptive chat name (3-5 words max). "
    "Return only the chat name."
)

_SEARCH_QUERY_PROMPT = """You are a web search query resolver.
Your job is to take the user's latest query and return ONLY a single, complete search query.
Rules:
- If the query uses pronouns (it, they, he, she, this, that, etc.) or lacks context, replace them with the correct entity from chat history.
- If the query requires certain context from previous chats, ADD that context from chat history.
- If the query is already complete, return it as is.
- Do NOT add explanations, notes, or sentences. Return ONLY the raw search query string."""

_IMAGE_PROMPT = """You are an image prompt generator.
Your job is to take the user's latest request and return ONLY a single, complete prompt suitable for image generation.
Rules:
- If the request uses pronouns (it, they, he, she, this, that, etc.) or lacks context, replace them with the correct entity from chat history.
- If important context from previous messages is required, ADD that context.
- Focus on making the prompt visually descriptive (objects, people, setting, style, colors).
- Do NOT add explanations, notes, or sentences. Return ONLY the raw image prompt string."""


def _strip_quotes(text: str) -> str:
    return text.strip().replace('"', "").replace("'", "")


def _last_content(messages: list[dict]) -> str:
    return messages[-1]["content"] if messages else ""


class AuxiliaryModel:
    def __init__(self, settings: Settings, registry: ProviderRegistry, catalog: ModelCatalog):
        self._registry = registry
        self._catalog = catalog
        self._model_id = settings.auxiliary_config.get("model", "gpt-oss-120b")
        self._timeout = float(settings.auxiliary_config.get("timeout_seconds", 15))

    async def complete(self, messages: list[dict], max_tokens: int, temperature: float) -> str:
        """Run the auxiliary model to completion and return its text."""
        spec = self._catalog.get(self._model_id)
        if spec is None:
            raise UpstreamError(f"Auxiliary model '{self._model_id}' is not in the catalog")
        provider = self._registry.get(spec.provider)

        async def _drain() -> str:
            parts: list[str] = []
            async for chunk in provider.stream_chat(
                messages=messages,
                model=spec.provider_model,
                temperature=temperature,
                max_tokens=max_tokens,
            ):
                if chunk.text:
                    parts.append(chunk.text)
            return "".join(parts).strip()

        return await asyncio.wait_for(_drain(), timeout=self._timeout)

    async def generate_chat_name(self, first_query: str) -> str:
        if not first_query or not first_query.strip():
            return DEFAULT_CHAT_NAME
        try:
            name = await self.complete(
                [
                    {"role": "system", "content": _CHAT_NAME_PROMPT},
                    {"role": "user", "content": first_query[:2000]},
                ],
                max_tokens=20,
                temperature=0.7,
            )
        except Exception as e:
            logger.error("Chat name generation failed: %s", e)
            return DEFAULT_CHAT_NAME
        name = _strip_quotes(name)[:50]
        return name or DEFAULT_CHAT_NAME

    async def resolve_search_query(self, messages: list[dict]) -> str:
        """Turn the latest message into one self-contained search query."""
        try:
            query = await self.complete(
                [{"role": "system", "content": _SEARCH_QUERY_PROMPT}, *messages[-RESOLVER_HISTORY:]],
                max_tokens=60,
                temperature=0.2,
            )
        except Exception as e:
            logger.error("Web search query resolution failed: %s", e)
            return _last_content(messages)
        return _strip_quotes(query) or _last_content(messages)

    async def resolve_image_prompt(self, messages: list[dict]) -> str:
        """Turn the latest request into one self-contained image prompt."""
        try:
            prompt = await self.complete(
                [{"role": "system", "content": _IMAGE_PROMPT}, *messages[-RESOLVER_HISTORY:]],
                max_tokens=120,
                temperature=0.1,
            )
        except Exception as e:
            logger.error("Image prompt resolution failed: %s", e)
            return _last_content(messages)
        return _strip_quotes(prompt) or _last_content(messages)

    async def summarize_conversation(self, messages: list[dict]) -> str:
        if not messages:
            return ""
        transcript = "\n\n".join(f"{m['role']}:{m['content']}" for m in messages)
        try:
            summary = await self.complete(
                [
                    {
                        "role": "user",
                        "content": (
                            "Concisely summarize the key points of this conversation:\n\n"
                            + transcript
                        ),
                    }
                ],
                max_tokens=500,
                temperature=0.3,
            )
        except Exception as e:
            logger.error("Summary generation failed: %s", e)
            return SUMMARY_FALLBACK
        return summary or SUMMARY_FALLBACK
