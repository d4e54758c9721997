import json
import pytest

from livepatch.preview.file_watcher import FileWatcher
from livepatch.preview.update_channel import UpdateChannel
from tests.conftest import FakeTransport, open_observer


@pytest.fixture
def channel(served_root, registry):
    return UpdateChannel(served_root, registry)


@pytest.fixture
def watcher(channel):
    return FileWatcher(channel)


class TestFileWatcher:
    @pytest.mark.asyncio
    async def test_external_edit_is_broadcast(self, watcher, registry, served_root):
        transport = FakeTransport()
        open_observer(registry, transport)
        path = served_root / "pages" / "About.jsx"
        path.parent.mkdir()
        path.write_text("<p>About</p>")

        assert await watcher.handle_file_change(path) is True

        message = json.loads(transport.sent[0])
        assert message["data"] == {"filePath": "pages/About.jsx", "content": "<p>About</p>"}

    @pytest.mark.asyncio
    async def test_own_writes_are_not_rebroadcast(self, watcher, channel, registry, served_root):
        transport = FakeTransport()
        open_observer(registry, transport)

        await channel.apply_file_update("App.tsx", "<main/>")

        assert await watcher.handle_file_change(served_root / "App.tsx") is False
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_own_crlf_writes_are_not_rebroadcast(self, watcher, channel, registry, served_root):
        transport = FakeTransport()
        open_observer(registry, transport)

        await channel.apply_file_update("Hero.tsx", "function Hero() {\r\n  return <h1>Hi</h1>;\r\n}\r\n")

        assert (served_root / "Hero.tsx").read_bytes().count(b"\r\n") == 3
        assert await watcher.handle_file_change(served_root / "Hero.tsx") is False
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_ignored_files(self, watcher, served_root):
        (served_root / ".App.tsx.lp-tmp").write_text("x")
        (served_root / "notes.md").write_text("x")

        assert await watcher.handle_file_change(served_root / ".App.tsx.lp-tmp") is False
        assert await watcher.handle_file_change(served_root / "notes.md") is False
        assert await watcher.handle_file_change(served_root / "Gone.tsx") is False
