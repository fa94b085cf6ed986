from pydantic import BaseModel
from typing import Optional


# --- Conversations ---
class ConversationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    chat_name: str
    model_id: str
    system_prompt: str = ""
    web_search: bool = False
    is_shared: bool = False
    created_at: str
    updated_at: str


class TurnResponse(BaseModel):
    id: str
    conversation_id: str
    prompt: str
    model_id: str
    system_prompt: str = ""
    web_search: bool = False
    response: str
    metadata: dict = {}
    created_at: str


class TurnResultResponse(BaseModel):
    turn: TurnResponse
    conversation: ConversationResponse


class ConversationListResponse(BaseModel):
    conversations: list[ConversationResponse]


class ConversationHistoryResponse(ConversationResponse):
    turns: list[TurnResponse] = []


class ShareRequest(BaseModel):
    is_shared: bool


# --- Models ---
class ModelInfo(BaseModel):
    id: str
    provider: str
    category: str
    description: str = ""
    limit: int
    pro: bool = False


class ModelListResponse(BaseModel):
    models: list[ModelInfo]


# --- Users ---
class ProductResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    chat_generation_limit: int
    image_generation_limit: int
    web_search_limit: int
    file_rag_limit: int
    file_count_limit: int


class UserInfo(BaseModel):
    id: str
    is_pro: bool = False
    used_chat_generation: int = 0
    used_image_generation: int = 0
    used_web_search: int = 0
    used_file_rag: int = 0
    limits_updated_at: str = ""
    created_at: str = ""
    product: Optional[ProductResponse] = None


class UserInfoResponse(BaseModel):
    user: UserInfo


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    conversation_count: int = 0
    providers: list[str] = []
    error: Optional[str] = None


# --- Public sharing ---
class PublicTurnResponse(BaseModel):
    prompt: str
    model_id: str
    response: str
    created_at: str


class PublicConversationResponse(BaseModel):
    id: str
    title: str
    chat_name: str
    created_at: str
    updated_at: str
    turns: list[PublicTurnResponse] = []
