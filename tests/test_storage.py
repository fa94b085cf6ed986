import pytest

from querynox.services.storage import LocalObjectStorage


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "media"), "http://testserver/")


@pytest.mark.asyncio
class TestLocalObjectStorage:
    async def test_put_returns_public_url(self, storage, tmp_path):
        url = await storage.put("generated/a.png", b"png", "image/png")
        assert url == "http://testserver/media/generated/a.png"
        assert (tmp_path / "media" / "generated" / "a.png").read_bytes() == b"png"

    async def test_delete_is_idempotent(self, storage, tmp_path):
        await storage.put("generated/a.png", b"png", "image/png")
        await storage.delete("generated/a.png")
        await storage.delete("generated/a.png")
        assert not (tmp_path / "media" / "generated" / "a.png").exists()

    async def test_rejects_keys_outside_root(self, storage):
        with pytest.raises(ValueError, match="Invalid storage key"):
            await storage.put("../escape.png", b"png", "image/png")
