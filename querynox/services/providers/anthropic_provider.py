from typing import AsyncGenerator
from anthropic import AsyncAnthropic

from querynox.services.providers.base import BaseLLMProvider, StreamChunk, split_system_messages


class AnthropicProvider(BaseLLMProvider):
    def __init__(self, api_key: str):
        self._client = AsyncAnthropic(api_key=api_key)

    def get_provider_name(self) -> str:
        return "anthropic"

    async def stream_chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> AsyncGenerator[StreamChunk, None]:
        system_msg, chat_messages = split_system_messages(messages)

        # Anthropic requires the conversation to open with a user turn
        if chat_messages and chat_messages[0]["role"] != "user":
            chat_messages.insert(0, {"role": "user", "content": "(conversation continues)"})

        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": chat_messages,
        }
        if system_msg:
            kwargs["system"] = system_msg

        async with self._client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                if text:
                    yield StreamChunk(text=text)

            final = await stream.get_final_message()
            yield StreamChunk(
                is_final=True,
                input_tokens=final.usage.input_tokens,
                output_tokens=final.usage.output_tokens,
                finish_reason=final.stop_reason,
            )
