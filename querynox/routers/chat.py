import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sse_starlette.sse import EventSourceResponse

from querynox.dependencies import (
    get_conversation_service,
    get_current_user,
    get_llm_router,
    get_turn_orchestrator,
)
from querynox.models.database_models import User
from querynox.models.schemas import (
    ConversationHistoryResponse,
    ConversationListResponse,
    ConversationResponse,
    ModelInfo,
    ModelListResponse,
    ShareRequest,
    TurnResultResponse,
)
from querynox.services.conversation_service import ConversationService
from querynox.services.llm_router import LLMRouter
from querynox.services.rag_engine import UploadedFile
from querynox.services.turn_orchestrator import TurnOrchestrator, TurnRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])


async def _build_turn_request(
    conversation_id: Optional[str],
    prompt: Optional[str],
    model: Optional[str],
    system_prompt: str,
    web_search: bool,
    files: list[UploadFile],
) -> TurnRequest:
    uploaded = []
    for f in files or []:
        uploaded.append(
            UploadedFile(
                filename=f.filename or "upload",
                content_type=f.content_type or "",
                data=await f.read(),
            )
        )
    return TurnRequest(
        prompt=prompt or "",
        model=model or "",
        system_prompt=system_prompt or "",
        web_search=web_search,
        files=uploaded,
        conversation_id=conversation_id,
    )


async def _stream(
    orchestrator: TurnOrchestrator, turn_request: TurnRequest, user: User,
) -> EventSourceResponse:
    # Malformed requests get a plain 400 instead of an event stream.
    orchestrator.validate(turn_request)

    async def event_generator():
        async for event in orchestrator.stream_turn(turn_request, user):
            yield event.to_sse()

    return EventSourceResponse(event_generator())


# --- Listing ---
@router.get("/models", response_model=ModelListResponse)
async def list_models(llm_router: LLMRouter = Depends(get_llm_router)):
    """Models whose providers are configured."""
    models = [
        ModelInfo(
            id=m.id,
            provider=m.provider,
            category=m.category,
            description=m.description,
            limit=m.limit,
            pro=m.pro,
        )
        for m in llm_router.get_available_models()
    ]
    return ModelListResponse(models=models)


@router.get("/user", response_model=ConversationListResponse)
async def list_user_conversations(
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    convos = await service.list_user_conversations(user.id)
    return ConversationListResponse(conversations=[c.to_dict() for c in convos])


# --- Turns ---
@router.post("/stream")
async def stream_new_chat(
    prompt: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    systemPrompt: str = Form(""),
    webSearch: bool = Form(False),
    files: list[UploadFile] = File(default=[]),
    user: User = Depends(get_current_user),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
):
    turn_request = await _build_turn_request(None, prompt, model, systemPrompt, webSearch, files)
    return await _stream(orchestrator, turn_request, user)


@router.post("/{conversation_id}/stream")
async def stream_existing_chat(
    conversation_id: str,
    prompt: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    systemPrompt: str = Form(""),
    webSearch: bool = Form(False),
    files: list[UploadFile] = File(default=[]),
    user: User = Depends(get_current_user),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
):
    turn_request = await _build_turn_request(
        conversation_id, prompt, model, systemPrompt, webSearch, files
    )
    return await _stream(orchestrator, turn_request, user)


@router.post("", response_model=TurnResultResponse)
async def create_chat(
    prompt: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    systemPrompt: str = Form(""),
    webSearch: bool = Form(False),
    files: list[UploadFile] = File(default=[]),
    user: User = Depends(get_current_user),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
):
    turn_request = await _build_turn_request(None, prompt, model, systemPrompt, webSearch, files)
    return await orchestrator.complete_turn(turn_request, user)


@router.post("/{conversation_id}", response_model=TurnResultResponse)
async def continue_chat(
    conversation_id: str,
    prompt: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    systemPrompt: str = Form(""),
    webSearch: bool = Form(False),
    files: list[UploadFile] = File(default=[]),
    user: User = Depends(get_current_user),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
):
    turn_request = await _build_turn_request(
        conversation_id, prompt, model, systemPrompt, webSearch, files
    )
    return await orchestrator.complete_turn(turn_request, user)


# --- Conversation management ---
@router.get("/{conversation_id}", response_model=ConversationHistoryResponse)
async def get_chat_history(
    conversation_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    conv = await service.get_conversation(conversation_id, user.id)
    turns = await service.get_turns(conv.id, limit=limit, offset=offset)
    return ConversationHistoryResponse(**conv.to_dict(), turns=[t.to_dict() for t in turns])


@router.put("/{conversation_id}/share", response_model=ConversationResponse)
async def share_chat(
    conversation_id: str,
    body: ShareRequest,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    conv = await service.set_share(conversation_id, user.id, body.is_shared)
    return conv.to_dict()


@router.delete("/{conversation_id}")
async def delete_chat(
    conversation_id: str,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    conv = await service.delete_conversation(conversation_id, user.id)
    return {"status": "deleted", "id": conv.id}
