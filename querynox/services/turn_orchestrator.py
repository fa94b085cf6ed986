"""Runs one conversational turn end to end.

A turn moves through resolve conversation, quota check, context building,
generation, persistence and completion. The streaming and non-streaming
entry points consume the same event sequence, so both paths persist and
count usage identically.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import AsyncGenerator

from querynox.config import Settings
from querynox.database import utcnow
from querynox.errors import QueryNoxError, UpstreamError, ValidationError
from querynox.models.database_models import Conversation, Turn, User
from querynox.models.events import StreamEvent
from querynox.services.auxiliary import AuxiliaryModel
from querynox.services.context_window import ContextWindowManager, trim_to_limit
from querynox.services.conversation_service import ConversationService, validate_conversation_id
from querynox.services.llm_router import LLMRouter
from querynox.services.model_catalog import ModelSpec
from querynox.services.providers.base import ResponseAccumulator
from querynox.services.rag_engine import RAGEngine, UploadedFile
from querynox.services.usage_service import UsageService
from querynox.services.web_search import WebSearchService

logger = logging.getLogger(__name__)

GENERATION_ERROR_PREFIX = "I apologize, an error occurred with the AI service: "
INTERNAL_ERROR_MESSAGE = "An internal error occurred while processing the chat."


@dataclass
class TurnRequest:
    prompt: str
    model: str
    system_prompt: str = ""
    web_search: bool = False
    files: list[UploadedFile] = field(default_factory=list)
    conversation_id: str | None = None


@dataclass
class _Retrieval:
    context: str = ""
    web_search_used: bool = False
    file_rag_used: bool = False


class TurnOrchestrator:
    def __init__(
        self,
        settings: Settings,
        router: LLMRouter,
        auxiliary: AuxiliaryModel,
        usage: UsageService,
        conversations: ConversationService,
        context_window: ContextWindowManager,
        rag_engine: RAGEngine,
        web_search: WebSearchService,
    ):
        self._count_fallback_usage = settings.count_fallback_usage
        self._router = router
        self._auxiliary = auxiliary
        self._usage = usage
        self._conversations = conversations
        self._context_window = context_window
        self._rag = rag_engine
        self._web_search = web_search

    def validate(self, request: TurnRequest) -> ModelSpec:
        """Reject malformed requests before any event is emitted."""
        if not request.prompt or not request.prompt.strip() or not request.model:
            raise ValidationError("Missing required fields")
        if request.conversation_id is not None:
            validate_conversation_id(request.conversation_id)
        return self._router.resolve_model(request.model)

    async def _retrieve(
        self,
        request: TurnRequest,
        history: list[dict],
    ) -> AsyncGenerator[StreamEvent | _Retrieval, None]:
        retrieval = _Retrieval()
        web_context = ""
        file_context = ""

        if request.web_search:
            yield StreamEvent.status("Searching the web...")
            web_context, degraded = await self._web_search.search(
                [*history, {"role": "user", "content": request.prompt}]
            )
            retrieval.web_search_used = self._count_fallback_usage or not degraded
            yield StreamEvent.status("Web search completed.")

        if request.files:
            yield StreamEvent.status(f"Processing {len(request.files)} file(s)...")
            file_context, degraded = await self._rag.get_context_from_files(
                request.prompt, request.files
            )
            retrieval.file_rag_used = self._count_fallback_usage or not degraded
            yield StreamEvent.status("File processing completed.")

        retrieval.context = web_context + file_context
        yield retrieval

    async def _persist(
        self,
        conversation: Conversation,
        turn: Turn,
        user: User,
        spec: ModelSpec,
        retrieval: _Retrieval,
        is_new: bool,
    ) -> tuple[Conversation, Turn]:
        await self._conversations.save_conversation(conversation, is_new=is_new)
        await self._conversations.commit_turn(
            turn,
            user.id,
            is_image=spec.is_image,
            web_search_used=retrieval.web_search_used,
            file_rag_used=retrieval.file_rag_used,
        )
        return conversation, turn

    async def _run_turn(
        self, request: TurnRequest, user: User,
    ) -> AsyncGenerator[StreamEvent, None]:
        spec = self.validate(request)

        yield StreamEvent.status("Loading chat...")
        conversation = None
        prior_turns = []
        if request.conversation_id:
            conversation = await self._conversations.get_conversation(
                request.conversation_id, user.id
            )
            prior_turns = await self._conversations.get_turns(conversation.id)

        user = await self._usage.refresh_period(user)
        self._router.authorize(spec, user)
        await self._usage.check(
            user,
            is_image=spec.is_image,
            file_count=len(request.files),
            web_search=request.web_search,
        )

        is_new = conversation is None
        if is_new:
            now = utcnow()
            conversation = Conversation(
                id=str(uuid.uuid4()),
                user_id=user.id,
                title=request.prompt[:50],
                chat_name=await self._auxiliary.generate_chat_name(request.prompt),
                model_id=spec.id,
                system_prompt=request.system_prompt,
                web_search=request.web_search,
                created_at=now,
                updated_at=now,
            )
            logger.info("New conversation %s for user %s", conversation.id, user.id)
        yield StreamEvent.metadata(conversation.id, conversation.chat_name)

        yield StreamEvent.status("Loading conversation history...")
        history = self._context_window.history_to_messages(prior_turns)

        retrieval = _Retrieval()
        async for item in self._retrieve(request, history):
            if isinstance(item, _Retrieval):
                retrieval = item
            else:
                yield item

        augmented_prompt = trim_to_limit(request.prompt + retrieval.context, spec.limit)
        messages = await self._context_window.build(history, augmented_prompt)

        yield StreamEvent.status("Generating AI response...")
        accumulator = ResponseAccumulator()
        try:
            async for chunk in self._router.generate_streaming_response(
                spec.id, messages, request.system_prompt, user
            ):
                accumulator.add(chunk)
                if chunk.text:
                    yield StreamEvent.content(chunk.text)
        except UpstreamError as e:
            raise UpstreamError(GENERATION_ERROR_PREFIX + e.message) from e

        result = accumulator.result()
        conversation.model_id = spec.id
        conversation.system_prompt = request.system_prompt
        conversation.web_search = request.web_search
        conversation.updated_at = utcnow()
        metadata = dict(result.metadata)
        if request.files:
            metadata["files"] = [f.filename for f in request.files]
        turn = Turn(
            id=str(uuid.uuid4()),
            conversation_id=conversation.id,
            prompt=request.prompt,
            model_id=spec.id,
            system_prompt=request.system_prompt,
            web_search=request.web_search,
            response=result.content,
            metadata=metadata,
            created_at=utcnow(),
        )

        # Once started, the write completes even if the client goes away.
        conversation, turn = await asyncio.shield(
            self._persist(conversation, turn, user, spec, retrieval, is_new)
        )
        yield StreamEvent.complete(turn.to_dict(), conversation.to_dict())

    async def stream_turn(
        self, request: TurnRequest, user: User,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Yield turn events; every failure ends the stream with one error event."""
        try:
            async for event in self._run_turn(request, user):
                yield event
        except QueryNoxError as e:
            logger.warning("Turn failed for user %s: %s", user.id, e.message)
            yield StreamEvent.error(e.message)
        except Exception:
            logger.exception("Unexpected failure while streaming a turn")
            yield StreamEvent.error(INTERNAL_ERROR_MESSAGE)

    async def complete_turn(self, request: TurnRequest, user: User) -> dict:
        """Run the turn to completion and return ``{turn, conversation}``."""
        try:
            async for event in self._run_turn(request, user):
                if event.type == "complete":
                    return event.fields
        except QueryNoxError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure while completing a turn")
            raise QueryNoxError(INTERNAL_ERROR_MESSAGE) from e
        raise QueryNoxError(INTERNAL_ERROR_MESSAGE)
