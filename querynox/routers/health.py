import logging

from fastapi import APIRouter, Depends

from querynox.dependencies import get_conversation_service, get_registry
from querynox.models.schemas import HealthResponse
from querynox.services.conversation_service import ConversationService
from querynox.services.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    registry: ProviderRegistry = Depends(get_registry),
    service: ConversationService = Depends(get_conversation_service),
):
    """Return service health.  If the DB isn't ready yet, return a 200 with
    status="starting" so container healthchecks don't fail."""
    try:
        conv_count = await service.count()
    except Exception as exc:
        logger.warning("Health check: DB not ready yet (%s)", exc)
        return HealthResponse(status="starting", providers=registry.names, error=str(exc))
    return HealthResponse(
        status="healthy",
        conversation_count=conv_count,
        providers=registry.names,
    )
