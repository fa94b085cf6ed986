from querynox.services.model_catalog import IMAGE_GENERATION, ModelCatalog


class TestModelCatalog:
    def test_lookup_by_id_and_provider_model(self, catalog):
        assert catalog.get("Claude 3.5 Sonnet").provider == "anthropic"
        assert catalog.get("claude-3-5-sonnet-20240620").id == "Claude 3.5 Sonnet"
        assert catalog.get("missing") is None
        assert catalog.get(None) is None

    def test_image_models(self, catalog):
        assert catalog.is_image_model("dall-e-3")
        assert not catalog.is_image_model("gpt-3.5-turbo")
        assert catalog.get("dall-e-3").category == IMAGE_GENERATION

    def test_pro_flags(self, catalog):
        pro = {m.id for m in catalog.list() if m.pro}
        assert pro == {"Claude 3.5 Sonnet", "grok-3-mini"}

    def test_defaults_for_sparse_entries(self, test_settings):
        test_settings.yaml_config = {"models": {"available": [{"id": "m1", "provider": "openai"}]}}
        spec = ModelCatalog(test_settings).get("m1")
        assert spec.provider_model == "m1"
        assert spec.pro is False
        assert spec.is_image is False
