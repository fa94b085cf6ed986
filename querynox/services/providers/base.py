from abc import ABC, abstractmethod
from typing import AsyncGenerator
from dataclasses import dataclass, field


@dataclass
class StreamChunk:
    """Normalized token chunk from any LLM provider."""
    text: str = ""
    is_final: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: str | None = None
    citations: list[dict] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)  # e.g. stored image key/url


@dataclass
class GenerationResult:
    content: str = ""
    metadata: dict = field(default_factory=dict)


class ResponseAccumulator:
    """Concatenates chunk text and folds provider metadata into a side dict.

    Shared by the streaming and non-streaming paths so both produce the
    same final content for the same chunk sequence.
    """

    def __init__(self):
        self._parts: list[str] = []
        self.metadata: dict = {}

    def add(self, chunk: StreamChunk):
        if chunk.text:
            self._parts.append(chunk.text)
        if chunk.input_tokens or chunk.output_tokens:
            self.metadata["input_tokens"] = chunk.input_tokens
            self.metadata["output_tokens"] = chunk.output_tokens
        if chunk.finish_reason:
            self.metadata["finish_reason"] = chunk.finish_reason
        if chunk.citations:
            seen = {c.get("url") for c in self.metadata.get("citations", [])}
            for citation in chunk.citations:
                if citation.get("url") and citation["url"] not in seen:
                    seen.add(citation["url"])
                    self.metadata.setdefault("citations", []).append(citation)
        if chunk.metadata:
            self.metadata.update(chunk.metadata)

    @property
    def content(self) -> str:
        return "".join(self._parts)

    def result(self) -> GenerationResult:
        return GenerationResult(content=self.content, metadata=dict(self.metadata))


def split_system_messages(messages: list[dict]) -> tuple[str, list[dict]]:
    """Pull system messages out of the list and merge same-role neighbours.

    Anthropic and Gemini reject consecutive messages with the same role,
    which a trimmed context window can produce (summary ack followed by an
    assistant message).
    """
    system_msg = ""
    chat_messages: list[dict] = []
    for m in messages:
        if m["role"] == "system":
            system_msg = (system_msg + "\n" + m["content"]).strip()
        elif chat_messages and chat_messages[-1]["role"] == m["role"]:
            chat_messages[-1] = {
                "role": m["role"],
                "content": chat_messages[-1]["content"] + "\n\n" + m["content"],
            }
        else:
            chat_messages.append({"role": m["role"], "content": m["content"]})
    return system_msg, chat_messages


class BaseLLMProvider(ABC):
    @abstractmethod
    async def stream_chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> AsyncGenerator[StreamChunk, None]:
        """Yield StreamChunk objects as tokens arrive."""
        ...

    @abstractmethod
    def get_provider_name(self) -> str:
        ...

    async def aclose(self):
        """Release the underlying HTTP client."""
        client = getattr(self, "_client", None)
        close = getattr(client, "close", None)
        if close is not None:
            await close()
