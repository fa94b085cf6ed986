import logging

import httpx

from querynox.config import Settings
from querynox.services.auxiliary import AuxiliaryModel

logger = logging.getLogger(__name__)

SEARCH_HEADER = "\n\n--- Relevant information from web search ---\n"
SEARCH_FOOTER = "\n\n--- End of web search results ---"
DEFAULT_ENDPOINT = "https://www.googleapis.com/customsearch/v1"


class WebSearchService:
    """Google Programmable Search lookup that never fails the turn."""

    def __init__(
        self,
        settings: Settings,
        auxiliary: AuxiliaryModel,
        client: httpx.AsyncClient | None = None,
    ):
        cfg = settings.web_search_config
        self._api_key = settings.google_search_api_key.get_secret_value()
        self._engine_id = settings.google_search_engine_id
        self._endpoint = cfg.get("endpoint", DEFAULT_ENDPOINT)
        self._num_results = int(cfg.get("num_results", 3))
        self._timeout = float(cfg.get("timeout_seconds", 10))
        self._auxiliary = auxiliary
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._api_key and self._engine_id)

    async def _fetch(self, query: str) -> dict:
        params = {
            "key": self._api_key,
            "cx": self._engine_id,
            "q": query,
            "num": self._num_results,
        }
        if self._client is not None:
            response = await self._client.get(self._endpoint, params=params, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._endpoint, params=params)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def format_results(items: list[dict]) -> str:
        context = "\n\n".join(
            f"Title: {item.get('title', '')}\n"
            f"Snippet: {item.get('snippet', '')}\n"
            f"Link: {item.get('link', '')}"
            for item in items
        )
        return f"{SEARCH_HEADER}{context}{SEARCH_FOOTER}"

    async def search(self, messages: list[dict]) -> tuple[str, bool]:
        """Return (context, degraded) for the latest message in the conversation."""
        if not self.enabled:
            logger.warning("Web search requested but no search credentials are configured")
            return "", True

        query = await self._auxiliary.resolve_search_query(messages)
        if not query:
            return "", True
        try:
            data = await self._fetch(query)
            items = (data.get("items") or [])[:self._num_results]
            context = self.format_results(items) if items else ""
        except Exception as e:
            logger.warning("Web search failed for %r: %s", query, e)
            return "", True

        if not items:
            return "", False
        logger.info("Web search returned %d results for %r", len(items), query)
        return context, False
