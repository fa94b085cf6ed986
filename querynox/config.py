from pathlib import Path
from functools import lru_cache

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from pydantic import Field, SecretStr


DEFAULT_FREE_TIER_LIMITS = {
    "chat_generation_limit": 200,
    "image_generation_limit": 8,
    "web_search_limit": 10,
    "file_rag_limit": 10,
    "file_count_limit": 1,
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API Keys
    openai_api_key: SecretStr = SecretStr("")
    anthropic_api_key: SecretStr = SecretStr("")
    groq_api_key: SecretStr = SecretStr("")
    google_api_key: SecretStr = SecretStr("")
    openrouter_api_key: SecretStr = SecretStr("")

    # Web search (Google Programmable Search)
    google_search_api_key: SecretStr = SecretStr("")
    google_search_engine_id: str = ""

    # Database
    database_url: str = "./data/querynox.db"

    # Object storage for generated media
    storage_dir: str = "./data/media"
    public_base_url: str = "http://localhost:8000"

    # Server
    backend_port: int = 8000
    log_level: str = "INFO"
    allowed_origins: str = ""

    # Context window
    max_message_size: int = Field(20, ge=1)

    # Loaded from YAML
    yaml_config: dict = {}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        yaml_path = Path(__file__).parent.parent / "config" / "settings.yaml"
        if yaml_path.exists() and not self.yaml_config:
            with open(yaml_path, "r", encoding="utf-8") as f:
                self.yaml_config = yaml.safe_load(f) or {}

    @property
    def models_config(self) -> list[dict]:
        return self.yaml_config.get("models", {}).get("available", [])

    @property
    def rag_config(self) -> dict:
        return self.yaml_config.get("rag", {})

    @property
    def embedding_config(self) -> dict:
        return self.yaml_config.get("embedding", {})

    @property
    def image_config(self) -> dict:
        return self.yaml_config.get("image", {})

    @property
    def web_search_config(self) -> dict:
        return self.yaml_config.get("web_search", {})

    @property
    def auxiliary_config(self) -> dict:
        return self.yaml_config.get("auxiliary", {})

    @property
    def usage_config(self) -> dict:
        return self.yaml_config.get("usage", {})

    @property
    def free_tier_limits(self) -> dict:
        limits = dict(DEFAULT_FREE_TIER_LIMITS)
        limits.update(self.usage_config.get("free_tier", {}))
        return limits

    @property
    def count_fallback_usage(self) -> bool:
        return bool(self.usage_config.get("count_fallback_usage", True))

    @property
    def pricing_config(self) -> dict:
        return self.yaml_config.get("pricing", {})


@lru_cache
def get_settings() -> Settings:
    return Settings()
