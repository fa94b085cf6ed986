import logging
import uuid
from typing import AsyncGenerator

from querynox.config import Settings
from querynox.errors import AuthorizationError, QueryNoxError, UpstreamError, ValidationError
from querynox.models.database_models import User
from querynox.services.auxiliary import AuxiliaryModel
from querynox.services.cost_tracker import CostTracker
from querynox.services.model_catalog import ModelCatalog, ModelSpec
from querynox.services.providers.base import (
    BaseLLMProvider,
    GenerationResult,
    ResponseAccumulator,
    StreamChunk,
)
from querynox.services.providers.registry import ProviderRegistry
from querynox.services.storage import ObjectStorage

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_MAX_TOKENS = 4096


class LLMRouter:
    """Routes generation requests to the backend that serves the catalog entry."""

    def __init__(
        self,
        settings: Settings,
        registry: ProviderRegistry,
        catalog: ModelCatalog,
        auxiliary: AuxiliaryModel,
        storage: ObjectStorage,
        cost_tracker: CostTracker | None = None,
    ):
        self._settings = settings
        self._registry = registry
        self._catalog = catalog
        self._auxiliary = auxiliary
        self._storage = storage
        self._cost_tracker = cost_tracker or CostTracker(settings)

    def resolve_model(self, model_id: str) -> ModelSpec:
        spec = self._catalog.get(model_id)
        if spec is None:
            raise ValidationError(f"Unknown model: {model_id}")
        return spec

    def _get_provider(self, spec: ModelSpec) -> BaseLLMProvider:
        return self._registry.get(spec.provider)

    def get_provider_name(self, model_id: str) -> str:
        spec = self._catalog.get(model_id)
        return spec.provider if spec else "unknown"

    def get_available_models(self) -> list[ModelSpec]:
        """Return models whose providers have API keys configured."""
        return [m for m in self._catalog.list() if self._registry.has(m.provider)]

    def authorize(self, spec: ModelSpec, user: User):
        """Reject pro-only models for users without an active subscription."""
        if spec.pro and not user.has_subscription:
            raise AuthorizationError(
                f"The model '{spec.id}' requires an active subscription."
            )

    async def generate_streaming_response(
        self,
        model_id: str,
        messages: list[dict],
        system_prompt: str | None,
        user: User,
    ) -> AsyncGenerator[StreamChunk, None]:
        spec = self.resolve_model(model_id)
        self.authorize(spec, user)
        provider = self._get_provider(spec)

        if spec.is_image:
            yield await self._generate_image(spec, provider, messages)
            return

        final_messages = [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            *messages,
        ]
        logger.info("Routing to %s for model %s", provider.get_provider_name(), spec.id)

        input_tokens = 0
        output_tokens = 0
        try:
            async for chunk in provider.stream_chat(
                messages=final_messages,
                model=spec.provider_model,
                max_tokens=DEFAULT_MAX_TOKENS,
            ):
                if chunk.is_final:
                    input_tokens = chunk.input_tokens
                    output_tokens = chunk.output_tokens
                if chunk.text or chunk.is_final or chunk.citations or chunk.finish_reason:
                    yield chunk
        except QueryNoxError:
            raise
        except Exception as e:
            logger.error("AI service error for model %s: %s", spec.id, e, exc_info=True)
            raise UpstreamError(str(e)) from e

        yield StreamChunk(
            metadata={
                "provider": spec.provider,
                "cost_usd": self._cost_tracker.calculate_chat_cost(
                    spec.provider_model, input_tokens, output_tokens
                ),
            }
        )

    async def _generate_image(
        self, spec: ModelSpec, provider: BaseLLMProvider, messages: list[dict],
    ) -> StreamChunk:
        generate_image = getattr(provider, "generate_image", None)
        if generate_image is None:
            raise UpstreamError(
                f"Provider '{spec.provider}' does not support image generation"
            )

        prompt = await self._auxiliary.resolve_image_prompt(messages)
        prompt = prompt[:spec.limit]
        image_cfg = self._settings.image_config
        try:
            image_bytes = await generate_image(
                prompt,
                model=spec.provider_model,
                size=image_cfg.get("size", "1024x1024"),
                quality=image_cfg.get("quality", "standard"),
            )
        except Exception as e:
            logger.error("Image generation failed for model %s: %s", spec.id, e, exc_info=True)
            raise UpstreamError(f"Image generation failed: {e}") from e

        key = f"generated/{uuid.uuid4()}.png"
        url = await self._storage.put(key, image_bytes, "image/png")
        return StreamChunk(
            text=url,
            is_final=True,
            metadata={
                "provider": spec.provider,
                "image_key": key,
                "image_url": url,
                "image_prompt": prompt,
                "cost_usd": self._cost_tracker.calculate_image_cost(spec.provider_model),
            },
        )

    async def generate_response(
        self,
        model_id: str,
        messages: list[dict],
        system_prompt: str | None,
        user: User,
    ) -> GenerationResult:
        """Drain the streaming path and return the accumulated result."""
        accumulator = ResponseAccumulator()
        async for chunk in self.generate_streaming_response(
            model_id, messages, system_prompt, user
        ):
            accumulator.add(chunk)
        return accumulator.result()
