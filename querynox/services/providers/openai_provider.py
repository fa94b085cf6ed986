import base64
from typing import AsyncGenerator

from openai import AsyncOpenAI

from querynox.services.providers.base import BaseLLMProvider, StreamChunk

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIProvider(BaseLLMProvider):
    """Chat Completions streaming for OpenAI and OpenAI-compatible endpoints.

    Groq and OpenRouter speak the same protocol, so they are built from this
    class with their own ``base_url``; only the OpenAI endpoint is used for
    images, embeddings and OCR.
    """

    def __init__(
        self,
        api_key: str,
        name: str = "openai",
        base_url: str | None = None,
        default_headers: dict | None = None,
        timeout: float | None = None,
    ):
        kwargs = {"api_key": api_key}
        if base_url:
            kwargs["base_url"] = base_url
        if default_headers:
            kwargs["default_headers"] = default_headers
        if timeout:
            kwargs["timeout"] = timeout
        self._client = AsyncOpenAI(**kwargs)
        self._name = name

    def get_provider_name(self) -> str:
        return self._name

    async def stream_chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> AsyncGenerator[StreamChunk, None]:
        stream = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            stream=True,
            stream_options={"include_usage": True},
        )
        async for chunk in stream:
            if chunk.choices:
                choice = chunk.choices[0]
                if choice.delta and choice.delta.content:
                    yield StreamChunk(text=choice.delta.content)
                if choice.finish_reason:
                    yield StreamChunk(finish_reason=choice.finish_reason)
            if chunk.usage:
                yield StreamChunk(
                    is_final=True,
                    input_tokens=chunk.usage.prompt_tokens or 0,
                    output_tokens=chunk.usage.completion_tokens or 0,
                )

    # --- Images ---
    async def generate_image(
        self, prompt: str, model: str, size: str = "1024x1024", quality: str = "standard",
    ) -> bytes:
        """Generate one PNG and return its raw bytes."""
        response = await self._client.images.generate(
            model=model,
            prompt=prompt,
            n=1,
            size=size,
            quality=quality,
            response_format="b64_json",
        )
        return base64.b64decode(response.data[0].b64_json)

    # --- Embeddings ---
    async def embed(self, texts: list[str], model: str, batch_size: int = 100) -> list[list[float]]:
        """Embed texts in batches, preserving input order."""
        all_embeddings: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = texts[i:i + batch_size]
            response = await self._client.embeddings.create(model=model, input=batch)
            all_embeddings.extend(item.embedding for item in response.data)
        return all_embeddings

    # --- OCR ---
    async def extract_image_text(self, image_bytes: bytes, mimetype: str, model: str) -> str:
        """Transcribe the text visible in an image with a vision model."""
        data_url = f"data:{mimetype};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        response = await self._client.chat.completions.create(
            model=model,
            temperature=0,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "text",
                            "text": (
                                "Transcribe all text visible in this image exactly. "
                                "Return only the text. If there is none, return nothing."
                            ),
                        },
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                }
            ],
        )
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()
