import json
from dataclasses import dataclass, field, asdict
from typing import Optional


@dataclass
class User:
    id: str
    product_id: Optional[str] = None
    used_chat_generation: int = 0
    used_image_generation: int = 0
    used_web_search: int = 0
    used_file_rag: int = 0
    limits_updated_at: str = ""
    created_at: str = ""

    @property
    def has_subscription(self) -> bool:
        return bool(self.product_id)

    @classmethod
    def from_row(cls, row) -> "User":
        return cls(**dict(row))


@dataclass
class Product:
    id: str
    name: str
    description: str = ""
    chat_generation_limit: int = 10
    image_generation_limit: int = 5
    web_search_limit: int = 5
    file_rag_limit: int = 5
    file_count_limit: int = 5

    @classmethod
    def from_row(cls, row) -> "Product":
        return cls(**dict(row))


@dataclass
class Conversation:
    id: str
    user_id: str
    title: str
    chat_name: str
    model_id: str
    system_prompt: str = ""
    web_search: bool = False
    is_shared: bool = False
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row) -> "Conversation":
        data = dict(row)
        data["web_search"] = bool(data["web_search"])
        data["is_shared"] = bool(data["is_shared"])
        return cls(**data)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Turn:
    id: str
    conversation_id: str
    prompt: str
    model_id: str
    response: str
    system_prompt: str = ""
    web_search: bool = False
    metadata: dict = field(default_factory=dict)
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> "Turn":
        data = dict(row)
        data["web_search"] = bool(data["web_search"])
        data["metadata"] = json.loads(data.get("metadata") or "{}")
        return cls(**data)

    def to_dict(self) -> dict:
        return asdict(self)
