import hashlib
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from querynox.database import set_db_path, init_db
from querynox.services.auxiliary import AuxiliaryModel
from querynox.services.context_window import ContextWindowManager
from querynox.services.conversation_service import ConversationService
from querynox.services.llm_router import LLMRouter
from querynox.services.model_catalog import ModelCatalog
from querynox.services.providers.base import BaseLLMProvider, StreamChunk
from querynox.services.providers.registry import ProviderRegistry
from querynox.services.rag_engine import RAGEngine
from querynox.services.storage import LocalObjectStorage
from querynox.services.turn_orchestrator import TurnOrchestrator
from querynox.services.usage_service import UsageService
from querynox.services.user_service import UserService
from querynox.services.web_search import WebSearchService


class FakeProvider(BaseLLMProvider):
    """In-memory provider that records every call."""

    def __init__(self, name: str = "openai", reply: str = "Hello there!", error: Exception | None = None):
        self.name = name
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []
        self.image_prompts: list[str] = []
        self.embed_calls: list[list[str]] = []
        self.embed_error: Exception | None = None

    def get_provider_name(self) -> str:
        return self.name

    async def stream_chat(self, messages, model, temperature=0.7, max_tokens=4096):
        self.calls.append({"messages": messages, "model": model})
        if self.error:
            raise self.error
        words = self.reply.split(" ")
        for i, word in enumerate(words):
            yield StreamChunk(text=word if i == 0 else " " + word)
        yield StreamChunk(is_final=True, input_tokens=10, output_tokens=5, finish_reason="stop")

    async def generate_image(self, prompt, model, size="1024x1024", quality="standard"):
        self.image_prompts.append(prompt)
        return b"\x89PNG fake image"

    async def embed(self, texts, model, batch_size=100):
        self.embed_calls.append(list(texts))
        if self.embed_error:
            raise self.embed_error
        return [fake_embedding(t) for t in texts]

    async def extract_image_text(self, image_bytes, mimetype, model):
        return "text from image"

    async def aclose(self):
        pass


def fake_embedding(text: str) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 for b in digest[:8]]


@pytest.fixture
def temp_db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    Path(path).unlink(missing_ok=True)


@pytest.fixture
def test_settings(temp_db_path, tmp_path):
    from querynox.config import Settings
    return Settings(
        openai_api_key="sk-test-fake",
        anthropic_api_key="sk-ant-test-fake",
        google_api_key="fake-google-key",
        openrouter_api_key="sk-or-test-fake",
        database_url=temp_db_path,
        storage_dir=str(tmp_path / "media"),
        public_base_url="http://testserver",
    )


@pytest_asyncio.fixture
async def initialized_db(temp_db_path):
    set_db_path(temp_db_path)
    await init_db()
    yield temp_db_path


@pytest.fixture
def main_provider():
    return FakeProvider("openai", reply="Hello there!")


@pytest.fixture
def aux_provider():
    return FakeProvider("openrouter", reply="Friendly Greeting")


@pytest.fixture
def registry(test_settings, main_provider, aux_provider):
    return ProviderRegistry(
        test_settings, providers={"openai": main_provider, "openrouter": aux_provider}
    )


@pytest.fixture
def catalog(test_settings):
    return ModelCatalog(test_settings)


@pytest.fixture
def storage(test_settings):
    return LocalObjectStorage(test_settings.storage_dir, test_settings.public_base_url)


@pytest.fixture
def auxiliary(test_settings, registry, catalog):
    return AuxiliaryModel(test_settings, registry, catalog)


@pytest.fixture
def llm_router(test_settings, registry, catalog, auxiliary, storage):
    return LLMRouter(test_settings, registry, catalog, auxiliary, storage)


@pytest.fixture
def orchestrator(test_settings, registry, catalog, auxiliary, llm_router, storage):
    return TurnOrchestrator(
        test_settings,
        router=llm_router,
        auxiliary=auxiliary,
        usage=UsageService(test_settings),
        conversations=ConversationService(storage),
        context_window=ContextWindowManager(test_settings, catalog, auxiliary),
        rag_engine=RAGEngine(test_settings, registry),
        web_search=WebSearchService(test_settings, auxiliary),
    )


@pytest_asyncio.fixture
async def user(initialized_db):
    return await UserService().get_or_create("user-1")
