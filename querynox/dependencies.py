from fastapi import Depends, Header, Request

from querynox.config import Settings
from querynox.models.database_models import User
from querynox.services.auxiliary import AuxiliaryModel
from querynox.services.context_window import ContextWindowManager
from querynox.services.conversation_service import ConversationService
from querynox.services.llm_router import LLMRouter
from querynox.services.model_catalog import ModelCatalog
from querynox.services.providers.registry import ProviderRegistry
from querynox.services.rag_engine import RAGEngine
from querynox.services.storage import ObjectStorage
from querynox.services.turn_orchestrator import TurnOrchestrator
from querynox.services.usage_service import UsageService
from querynox.services.user_service import UserService
from querynox.services.web_search import WebSearchService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_catalog(request: Request) -> ModelCatalog:
    return request.app.state.catalog


def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage


def get_auxiliary(
    settings: Settings = Depends(get_app_settings),
    registry: ProviderRegistry = Depends(get_registry),
    catalog: ModelCatalog = Depends(get_catalog),
) -> AuxiliaryModel:
    return AuxiliaryModel(settings, registry, catalog)


def get_llm_router(
    settings: Settings = Depends(get_app_settings),
    registry: ProviderRegistry = Depends(get_registry),
    catalog: ModelCatalog = Depends(get_catalog),
    auxiliary: AuxiliaryModel = Depends(get_auxiliary),
    storage: ObjectStorage = Depends(get_storage),
) -> LLMRouter:
    return LLMRouter(settings, registry, catalog, auxiliary, storage)


def get_conversation_service(
    storage: ObjectStorage = Depends(get_storage),
) -> ConversationService:
    return ConversationService(storage)


def get_user_service() -> UserService:
    return UserService()


def get_usage_service(settings: Settings = Depends(get_app_settings)) -> UsageService:
    return UsageService(settings)


async def get_current_user(
    x_user_id: str = Header(...),
    users: UserService = Depends(get_user_service),
) -> User:
    return await users.get_or_create(x_user_id)


def get_turn_orchestrator(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    registry: ProviderRegistry = Depends(get_registry),
    catalog: ModelCatalog = Depends(get_catalog),
    auxiliary: AuxiliaryModel = Depends(get_auxiliary),
    llm_router: LLMRouter = Depends(get_llm_router),
    usage: UsageService = Depends(get_usage_service),
    conversations: ConversationService = Depends(get_conversation_service),
) -> TurnOrchestrator:
    http_client = getattr(request.app.state, "http_client", None)
    return TurnOrchestrator(
        settings,
        router=llm_router,
        auxiliary=auxiliary,
        usage=usage,
        conversations=conversations,
        context_window=ContextWindowManager(settings, catalog, auxiliary),
        rag_engine=RAGEngine(settings, registry),
        web_search=WebSearchService(settings, auxiliary, client=http_client),
    )
