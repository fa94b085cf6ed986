import logging
from datetime import datetime, timezone

import aiosqlite

from querynox.config import Settings
from querynox.database import get_db
from querynox.errors import NotFoundError, QuotaExceededError
from querynox.models.database_models import User
from querynox.services.user_service import ProductService

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UsageService:
    """Monthly usage counters: lazy period reset, pre-checks and post-success increments.

    Check-then-increment is not atomic across concurrent requests from the
    same user; a request may slip one unit past a limit.
    """

    def __init__(self, settings: Settings, products: ProductService | None = None):
        self._free_tier = settings.free_tier_limits
        self._products = products or ProductService()

    async def refresh_period(self, user: User, now: datetime | None = None) -> User:
        """Reset all counters once when the calendar month has changed."""
        now = now or datetime.now(timezone.utc)
        last = _parse_timestamp(user.limits_updated_at)
        if last is not None and (last.year, last.month) == (now.year, now.month):
            return user

        stamp = now.isoformat()
        async with get_db() as db:
            await db.execute(
                """UPDATE users SET
                   used_chat_generation = 0,
                   used_image_generation = 0,
                   used_web_search = 0,
                   used_file_rag = 0,
                   limits_updated_at = ?
                   WHERE id = ?""",
                (stamp, user.id),
            )
            await db.commit()
        logger.info("Usage counters reset for user %s", user.id)

        user.used_chat_generation = 0
        user.used_image_generation = 0
        user.used_web_search = 0
        user.used_file_rag = 0
        user.limits_updated_at = stamp
        return user

    async def get_limits(self, user: User) -> tuple[dict, bool]:
        """Return (limits, is_free_tier) for the user."""
        if not user.product_id:
            return self._free_tier, True
        product = await self._products.get_product(user.product_id)
        if product is None:
            raise NotFoundError("Subscribed product not found")
        return {
            "chat_generation_limit": product.chat_generation_limit,
            "image_generation_limit": product.image_generation_limit,
            "web_search_limit": product.web_search_limit,
            "file_rag_limit": product.file_rag_limit,
            "file_count_limit": product.file_count_limit,
        }, False

    async def check(
        self,
        user: User,
        *,
        is_image: bool = False,
        file_count: int = 0,
        web_search: bool = False,
    ):
        """Raise QuotaExceededError listing every limit this request would break."""
        limits, free_tier = await self.get_limits(user)
        suffix = " (free tier)" if free_tier else ""
        errors = []

        if user.used_chat_generation >= limits["chat_generation_limit"]:
            errors.append(
                f"Chat generation limit exceeded. Allowed usage is "
                f"{limits['chat_generation_limit']} queries{suffix}."
            )
        if file_count > 0 and user.used_file_rag >= limits["file_rag_limit"]:
            errors.append(
                f"File RAG limit exceeded. Allowed usage is "
                f"{limits['file_rag_limit']} queries{suffix}."
            )
        if is_image and user.used_image_generation >= limits["image_generation_limit"]:
            errors.append(
                f"Image generation limit exceeded. Allowed usage is "
                f"{limits['image_generation_limit']} images{suffix}."
            )
        if web_search and user.used_web_search >= limits["web_search_limit"]:
            errors.append(
                f"Web search limit exceeded. Allowed usage is "
                f"{limits['web_search_limit']} searches{suffix}."
            )
        if file_count > limits["file_count_limit"]:
            errors.append(
                f"File upload count exceeded. Allowed usage is "
                f"{limits['file_count_limit']} files{suffix}."
            )

        if errors:
            raise QuotaExceededError("\n".join(errors))

    @staticmethod
    async def record_usage(
        db: aiosqlite.Connection,
        user_id: str,
        *,
        is_image: bool,
        web_search: bool = False,
        file_rag: bool = False,
    ):
        """Increment counters inside the caller's transaction."""
        columns = ["used_image_generation" if is_image else "used_chat_generation"]
        if web_search:
            columns.append("used_web_search")
        if file_rag:
            columns.append("used_file_rag")
        assignments = ", ".join(f"{c} = {c} + 1" for c in columns)
        await db.execute(f"UPDATE users SET {assignments} WHERE id = ?", (user_id,))
