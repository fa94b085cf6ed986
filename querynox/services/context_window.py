import logging

from querynox.config import Settings
from querynox.models.database_models import Turn
from querynox.services.auxiliary import AuxiliaryModel, SUMMARY_FALLBACK
from querynox.services.model_catalog import ModelCatalog

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "The Image was Generated"
SUMMARY_ACK = "summary noted."


def trim_to_limit(text: str, limit: int) -> str:
    """Clip text to the model's character limit, keeping the head."""
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit]


class ContextWindowManager:
    """Builds the bounded message sequence sent to a provider."""

    def __init__(self, settings: Settings, catalog: ModelCatalog, auxiliary: AuxiliaryModel):
        self._max_messages = settings.max_message_size
        self._catalog = catalog
        self._auxiliary = auxiliary

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def history_to_messages(self, turns: list[Turn]) -> list[dict]:
        """Map prior turns to chronological (user, assistant) pairs.

        Image turns get a placeholder reply so URLs never go back to a
        text model as conversation.
        """
        messages: list[dict] = []
        for turn in turns:
            messages.append({"role": "user", "content": turn.prompt})
            if self._catalog.is_image_model(turn.model_id):
                messages.append({"role": "assistant", "content": IMAGE_PLACEHOLDER})
            else:
                messages.append({"role": "assistant", "content": turn.response})
        return messages

    async def build(self, history: list[dict], user_message: str) -> list[dict]:
        messages = [*history, {"role": "user", "content": user_message}]
        if len(messages) <= self._max_messages:
            return messages

        old_messages = messages[:len(messages) - self._max_messages]
        recent_messages = messages[-self._max_messages:]

        try:
            summary = await self._auxiliary.summarize_conversation(old_messages)
        except Exception:
            logger.exception("Summarization raised; using placeholder")
            summary = SUMMARY_FALLBACK
        logger.info(
            "Context window trimmed: %d old messages summarized, %d kept",
            len(old_messages), len(recent_messages),
        )
        return [
            {"role": "user", "content": summary or SUMMARY_FALLBACK},
            {"role": "assistant", "content": SUMMARY_ACK},
            *recent_messages,
        ]
