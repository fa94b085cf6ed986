import json
from dataclasses import dataclass, field


@dataclass
class StreamEvent:
    """One event of a streamed turn: status, metadata, content, complete or error."""

    type: str
    fields: dict = field(default_factory=dict)

    @classmethod
    def status(cls, message: str) -> "StreamEvent":
        return cls("status", {"message": message})

    @classmethod
    def metadata(cls, conversation_id: str, chat_name: str) -> "StreamEvent":
        return cls("metadata", {"chatId": conversation_id, "chatName": chat_name})

    @classmethod
    def content(cls, text: str) -> "StreamEvent":
        return cls("content", {"content": text})

    @classmethod
    def complete(cls, turn: dict, conversation: dict) -> "StreamEvent":
        return cls("complete", {"turn": turn, "conversation": conversation})

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls("error", {"error": message})

    def to_dict(self) -> dict:
        return {"type": self.type, **self.fields}

    def to_sse(self) -> dict:
        return {"event": self.type, "data": json.dumps(self.to_dict())}
