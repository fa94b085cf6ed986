import logging
from typing import AsyncGenerator
from google import genai
from google.genai import types

from querynox.services.providers.base import BaseLLMProvider, StreamChunk, split_system_messages

logger = logging.getLogger(__name__)


class GeminiProvider(BaseLLMProvider):
    def __init__(self, api_key: str):
        self._client = genai.Client(api_key=api_key)

    def get_provider_name(self) -> str:
        return "google"

    async def stream_chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> AsyncGenerator[StreamChunk, None]:
        system_instruction, chat_messages = split_system_messages(messages)

        # Gemini calls the assistant role "model"
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in chat_messages
        ]

        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
        )
        if system_instruction:
            config.system_instruction = system_instruction

        stream = await self._client.aio.models.generate_content_stream(
            model=model,
            contents=contents,
            config=config,
        )

        total_input = 0
        total_output = 0
        async for chunk in stream:
            if chunk.text:
                yield StreamChunk(text=chunk.text)
            usage = getattr(chunk, "usage_metadata", None)
            if usage:
                total_input = getattr(usage, "prompt_token_count", 0) or 0
                total_output = getattr(usage, "candidates_token_count", 0) or 0

        yield StreamChunk(
            is_final=True,
            input_tokens=total_input,
            output_tokens=total_output,
        )

    async def aclose(self):
        aio = getattr(self._client, "aio", None)
        close = getattr(aio, "aclose", None)
        if close is not None:
            await close()
