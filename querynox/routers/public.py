from fastapi import APIRouter, Depends

from querynox.dependencies import get_conversation_service
from querynox.models.schemas import PublicConversationResponse, PublicTurnResponse
from querynox.services.conversation_service import ConversationService

router = APIRouter(prefix="/public", tags=["public"])


@router.get("/chat/{conversation_id}", response_model=PublicConversationResponse)
async def get_shared_chat(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
):
    """Read-only view of a conversation its owner has shared."""
    conv = await service.get_shared_conversation(conversation_id)
    turns = await service.get_turns(conv.id)
    return PublicConversationResponse(
        id=conv.id,
        title=conv.title,
        chat_name=conv.chat_name,
        created_at=conv.created_at,
        updated_at=conv.updated_at,
        turns=[
            PublicTurnResponse(
                prompt=t.prompt,
                model_id=t.model_id,
                response=t.response,
                created_at=t.created_at,
            )
            for t in turns
        ],
    )
