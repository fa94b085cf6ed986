import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

MEDIA_ROUTE = "/media"


class ObjectStorage(ABC):
    """Key/bytes store for generated artifacts; callers only see keys and URLs."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key and return a publicly reachable URL."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage served by the app under ``/media``."""

    def __init__(self, root_dir: str, public_base_url: str):
        self._root = Path(root_dir)
        self._base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self._base_url}{MEDIA_ROUTE}/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path_for(key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("Stored %s (%s, %d bytes)", key, content_type, len(data))
        return self.url_for(key)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, True)
