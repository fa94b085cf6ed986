import asyncio
import json
import logging
import uuid

from querynox.database import get_db
from querynox.errors import NotFoundError, PersistenceError, ValidationError
from querynox.models.database_models import Conversation, Turn
from querynox.services.storage import ObjectStorage
from querynox.services.usage_service import UsageService

logger = logging.getLogger(__name__)


def validate_conversation_id(conversation_id: str) -> str:
    try:
        return str(uuid.UUID(conversation_id))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError("Invalid Chat Id") from None


class ConversationService:

    def __init__(self, storage: ObjectStorage | None = None):
        self._storage = storage

    async def get_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        """Load a conversation owned by user_id."""
        conversation_id = validate_conversation_id(conversation_id)
        async with get_db() as db:
            cursor = await db.execute(
                "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
                (conversation_id, user_id),
            )
            row = await cursor.fetchone()
        if not row:
            raise NotFoundError("Chat not found")
        return Conversation.from_row(row)

    async def get_shared_conversation(self, conversation_id: str) -> Conversation:
        conversation_id = validate_conversation_id(conversation_id)
        async with get_db() as db:
            cursor = await db.execute(
                "SELECT * FROM conversations WHERE id = ? AND is_shared = 1",
                (conversation_id,),
            )
            row = await cursor.fetchone()
        if not row:
            raise NotFoundError("Chat not found")
        return Conversation.from_row(row)

    async def list_user_conversations(self, user_id: str) -> list[Conversation]:
        async with get_db() as db:
            cursor = await db.execute(
                """SELECT * FROM conversations WHERE user_id = ?
                   ORDER BY updated_at DESC, rowid DESC""",
                (user_id,),
            )
            rows = await cursor.fetchall()
            return [Conversation.from_row(row) for row in rows]

    async def get_turns(
        self, conversation_id: str, limit: int | None = None, offset: int = 0,
    ) -> list[Turn]:
        """Turns in creation order; ties keep insertion order."""
        query = "SELECT * FROM turns WHERE conversation_id = ? ORDER BY created_at ASC, rowid ASC"
        params: tuple = (conversation_id,)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params += (limit, offset)
        elif offset:
            query += " LIMIT -1 OFFSET ?"
            params += (offset,)
        async with get_db() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [Turn.from_row(row) for row in rows]

    async def save_conversation(self, conversation: Conversation, *, is_new: bool = True) -> Conversation:
        """Insert a new conversation or update an existing one's mutable fields.

        chat_name never changes. Updating a conversation that no longer exists
        raises NotFoundError rather than recreating it.
        """
        try:
            async with get_db() as db:
                if is_new:
                    cursor = await db.execute(
                        """INSERT INTO conversations
                           (id, user_id, title, chat_name, model_id, system_prompt,
                            web_search, is_shared, created_at, updated_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        (conversation.id, conversation.user_id, conversation.title,
                         conversation.chat_name, conversation.model_id, conversation.system_prompt,
                         int(conversation.web_search), int(conversation.is_shared),
                         conversation.created_at, conversation.updated_at),
                    )
                else:
                    cursor = await db.execute(
                        """UPDATE conversations
                           SET model_id = ?, system_prompt = ?, web_search = ?, updated_at = ?
                           WHERE id = ? AND user_id = ?""",
                        (conversation.model_id, conversation.system_prompt,
                         int(conversation.web_search), conversation.updated_at,
                         conversation.id, conversation.user_id),
                    )
                updated = cursor.rowcount
                await db.commit()
        except Exception as e:
            logger.error("Failed to save conversation %s: %s", conversation.id, e)
            raise PersistenceError("Failed to save conversation") from e
        if not updated:
            raise NotFoundError("Chat not found")
        return conversation

    async def commit_turn(
        self,
        turn: Turn,
        user_id: str,
        *,
        is_image: bool,
        web_search_used: bool = False,
        file_rag_used: bool = False,
    ) -> Turn:
        """Insert the turn and increment usage counters in one transaction."""
        try:
            async with get_db() as db:
                try:
                    await db.execute(
                        """INSERT INTO turns
                           (id, conversation_id, prompt, model_id, system_prompt,
                            web_search, response, metadata, created_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        (turn.id, turn.conversation_id, turn.prompt, turn.model_id,
                         turn.system_prompt, int(turn.web_search), turn.response,
                         json.dumps(turn.metadata), turn.created_at),
                    )
                    await UsageService.record_usage(
                        db, user_id,
                        is_image=is_image,
                        web_search=web_search_used,
                        file_rag=file_rag_used,
                    )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
        except Exception as e:
            logger.error("Failed to save turn for conversation %s: %s", turn.conversation_id, e)
            raise PersistenceError("Failed to save chat") from e
        return turn

    async def set_share(self, conversation_id: str, user_id: str, is_shared: bool) -> Conversation:
        conversation = await self.get_conversation(conversation_id, user_id)
        async with get_db() as db:
            await db.execute(
                "UPDATE conversations SET is_shared = ? WHERE id = ?",
                (int(is_shared), conversation.id),
            )
            await db.commit()
        conversation.is_shared = is_shared
        return conversation

    async def delete_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        """Delete the conversation with its turns, then any stored artifacts."""
        conversation = await self.get_conversation(conversation_id, user_id)
        turns = await self.get_turns(conversation.id)
        keys = [t.metadata["image_key"] for t in turns if t.metadata.get("image_key")]

        async with get_db() as db:
            try:
                await db.execute("DELETE FROM turns WHERE conversation_id = ?", (conversation.id,))
                await db.execute("DELETE FROM conversations WHERE id = ?", (conversation.id,))
                await db.commit()
            except Exception as e:
                await db.rollback()
                raise PersistenceError("Failed to delete chat") from e

        if keys and self._storage is not None:
            results = await asyncio.gather(
                *(self._storage.delete(key) for key in keys), return_exceptions=True
            )
            for key, result in zip(keys, results):
                if isinstance(result, Exception):
                    logger.error("Failed to delete stored artifact %s: %s", key, result)
        logger.info("Deleted conversation %s (%d turns)", conversation.id, len(turns))
        return conversation

    async def count(self) -> int:
        async with get_db() as db:
            cursor = await db.execute("SELECT COUNT(*) FROM conversations")
            row = await cursor.fetchone()
            return row[0] if row else 0
