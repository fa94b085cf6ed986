from dataclasses import dataclass

from querynox.config import Settings

TEXT_GENERATION = "Text Generation"
IMAGE_GENERATION = "Image Generation"


@dataclass(frozen=True)
class ModelSpec:
    """Static catalog entry for one selectable model."""
    id: str
    provider: str
    provider_model: str
    category: str = TEXT_GENERATION
    limit: int = 8000
    pro: bool = False
    description: str = ""

    @property
    def is_image(self) -> bool:
        return self.category == IMAGE_GENERATION


class ModelCatalog:
    """Read-only lookup table over the models configured in settings.yaml."""

    def __init__(self, settings: Settings):
        self._models: list[ModelSpec] = []
        for cfg in settings.models_config:
            self._models.append(
                ModelSpec(
                    id=cfg["id"],
                    provider=cfg["provider"],
                    provider_model=cfg.get("provider_model", cfg["id"]),
                    category=cfg.get("category", TEXT_GENERATION),
                    limit=int(cfg.get("limit", 8000)),
                    pro=bool(cfg.get("pro", False)),
                    description=cfg.get("description", ""),
                )
            )

    def get(self, model_id: str | None) -> ModelSpec | None:
        """Resolve by catalog id first, then by the backend's own model name."""
        if not model_id:
            return None
        for spec in self._models:
            if spec.id == model_id:
                return spec
        for spec in self._models:
            if spec.provider_model == model_id:
                return spec
        return None

    def is_image_model(self, model_id: str | None) -> bool:
        spec = self.get(model_id)
        return bool(spec and spec.is_image)

    def list(self) -> list[ModelSpec]:
        return list(self._models)
