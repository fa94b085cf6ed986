import logging
from querynox.config import Settings

logger = logging.getLogger(__name__)


class CostTracker:
    """Prices a generation from the YAML pricing table; the figure lands in turn metadata."""

    def __init__(self, settings: Settings):
        self._pricing = settings.pricing_config

    def _get_model_pricing(self, model_id: str) -> dict:
        """Look up pricing for a model across all providers."""
        for provider, models in self._pricing.items():
            if models and model_id in models:
                return models[model_id]
        return {}

    def calculate_chat_cost(
        self, model_id: str, input_tokens: int, output_tokens: int
    ) -> float:
        """Calculate cost in USD for a chat completion (per 1M tokens)."""
        pricing = self._get_model_pricing(model_id)
        if not pricing:
            return 0.0
        input_cost_per_m = pricing.get("input", 0.0)
        output_cost_per_m = pricing.get("output", 0.0)
        cost = (
            (input_tokens / 1_000_000) * input_cost_per_m
            + (output_tokens / 1_000_000) * output_cost_per_m
        )
        return round(cost, 8)

    def calculate_image_cost(self, model_id: str, images: int = 1) -> float:
        pricing = self._get_model_pricing(model_id)
        return round(images * pricing.get("per_image", 0.0), 8)
