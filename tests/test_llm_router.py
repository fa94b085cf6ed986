import pytest

from querynox.config import Settings
from querynox.errors import AuthorizationError, UpstreamError, ValidationError
from querynox.models.database_models import User
from querynox.services.auxiliary import AuxiliaryModel
from querynox.services.llm_router import DEFAULT_SYSTEM_PROMPT, LLMRouter
from querynox.services.model_catalog import ModelCatalog
from querynox.services.providers.registry import ProviderRegistry

FREE_USER = User(id="free-user")
PRO_USER = User(id="pro-user", product_id="pro")


class TestLLMRouter:
    def test_get_provider_name(self, llm_router):
        assert llm_router.get_provider_name("gpt-3.5-turbo") == "openai"
        assert llm_router.get_provider_name("Claude 3.5 Sonnet") == "anthropic"
        assert llm_router.get_provider_name("llama-3.3-70b-versatile") == "groq"
        assert llm_router.get_provider_name("gemini-1.5-flash") == "google"
        assert llm_router.get_provider_name("gpt-oss-120b") == "openrouter"
        assert llm_router.get_provider_name("nonexistent-model") == "unknown"

    def test_unknown_model_raises(self, llm_router):
        with pytest.raises(ValidationError, match="Unknown model"):
            llm_router.resolve_model("nonexistent-model")

    def test_get_available_models(self, llm_router):
        # Only openai and openrouter are registered in the test registry
        model_ids = [m.id for m in llm_router.get_available_models()]
        assert "gpt-3.5-turbo" in model_ids
        assert "dall-e-3" in model_ids
        assert "gpt-oss-120b" in model_ids
        assert "Claude 3.5 Sonnet" not in model_ids

    def test_authorize_pro_model(self, llm_router):
        spec = llm_router.resolve_model("grok-3-mini")
        with pytest.raises(AuthorizationError):
            llm_router.authorize(spec, FREE_USER)
        llm_router.authorize(spec, PRO_USER)


@pytest.mark.asyncio
class TestGeneration:
    async def test_streaming_prepends_system_prompt(self, llm_router, main_provider):
        chunks = [
            c async for c in llm_router.generate_streaming_response(
                "gpt-3.5-turbo", [{"role": "user", "content": "Hi"}], "", FREE_USER
            )
        ]
        assert "".join(c.text for c in chunks) == "Hello there!"
        sent = main_provider.calls[0]["messages"]
        assert sent[0] == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}
        assert main_provider.calls[0]["model"] == "gpt-3.5-turbo"
        # Trailing metadata chunk carries cost, never text
        assert chunks[-1].text == ""
        assert chunks[-1].metadata["provider"] == "openai"
        assert chunks[-1].metadata["cost_usd"] > 0

    async def test_generate_response_matches_stream(self, llm_router):
        messages = [{"role": "user", "content": "Hi"}]
        streamed = "".join([
            c.text async for c in llm_router.generate_streaming_response(
                "gpt-3.5-turbo", messages, "Be brief.", FREE_USER
            )
        ])
        result = await llm_router.generate_response("gpt-3.5-turbo", messages, "Be brief.", FREE_USER)
        assert result.content == streamed
        assert result.metadata["input_tokens"] == 10
        assert result.metadata["output_tokens"] == 5

    async def test_missing_provider_raises_before_network(self, llm_router):
        with pytest.raises(UpstreamError, match="not configured"):
            async for _ in llm_router.generate_streaming_response(
                "gemini-1.5-flash", [{"role": "user", "content": "Hi"}], "", FREE_USER
            ):
                pass

    async def test_provider_exception_wrapped(self, llm_router, main_provider):
        main_provider.error = RuntimeError("rate limited")
        with pytest.raises(UpstreamError, match="rate limited"):
            async for _ in llm_router.generate_streaming_response(
                "gpt-3.5-turbo", [{"role": "user", "content": "Hi"}], "", FREE_USER
            ):
                pass

    async def test_image_generation_single_chunk(self, llm_router, main_provider, test_settings):
        chunks = [
            c async for c in llm_router.generate_streaming_response(
                "dall-e-3", [{"role": "user", "content": "a red fox"}], "", FREE_USER
            )
        ]
        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.text == chunk.metadata["image_url"]
        assert chunk.text.startswith("http://testserver/media/generated/")
        assert chunk.metadata["image_key"].endswith(".png")
        assert main_provider.image_prompts == ["Friendly Greeting"]


@pytest.mark.asyncio
async def test_pro_image_model_rejected_without_storage_write(test_settings, main_provider, aux_provider, tmp_path):
    yaml_config = dict(test_settings.yaml_config)
    yaml_config["models"] = {
        "available": [
            *test_settings.models_config,
            {
                "id": "dall-e-3-hd",
                "provider": "openai",
                "provider_model": "dall-e-3",
                "category": "Image Generation",
                "limit": 4000,
                "pro": True,
            },
        ]
    }
    settings = Settings(
        openai_api_key="sk-test-fake",
        database_url=test_settings.database_url,
        storage_dir=str(tmp_path / "pro-media"),
        yaml_config=yaml_config,
    )

    class RecordingStorage:
        def __init__(self):
            self.keys = []

        async def put(self, key, data, content_type):
            self.keys.append(key)
            return f"http://testserver/media/{key}"

        async def delete(self, key):
            pass

    storage = RecordingStorage()
    registry = ProviderRegistry(settings, providers={"openai": main_provider, "openrouter": aux_provider})
    catalog = ModelCatalog(settings)
    router = LLMRouter(settings, registry, catalog, AuxiliaryModel(settings, registry, catalog), storage)

    with pytest.raises(AuthorizationError):
        async for _ in router.generate_streaming_response(
            "dall-e-3-hd", [{"role": "user", "content": "a castle"}], "", FREE_USER
        ):
            pass
    assert storage.keys == []
    assert main_provider.image_prompts == []
    assert aux_provider.calls == []
