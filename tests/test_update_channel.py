import asyncio
import json
import pytest

from livepatch.core.errors import MalformedRequest
from livepatch.preview.update_channel import (
    CodeUpdateRequest,
    FileUpdateRequest,
    UpdateChannel,
    content_hash,
    parse_update_request,
)
from tests.conftest import FakeTransport, open_observer


@pytest.fixture
def channel(served_root, registry):
    return UpdateChannel(served_root, registry)


def received(transport: FakeTransport):
    return [json.loads(message) for message in transport.sent]


class TestParseUpdateRequest:
    def test_file_update(self):
        request = parse_update_request({"filePath": "App.tsx", "content": ""})
        assert request == FileUpdateRequest(file_path="App.tsx", content="")

    def test_code_update(self):
        request = parse_update_request({"code": "<h1/>", "language": "jsx"})
        assert request == CodeUpdateRequest(code="<h1/>", language="jsx")

    def test_incomplete_file_pair_falls_through_to_code_update(self):
        request = parse_update_request({"filePath": "App.tsx", "code": "<h1/>", "language": "jsx"})
        assert request == CodeUpdateRequest(code="<h1/>", language="jsx")

    @pytest.mark.parametrize("body", [
        {},
        {"filePath": "App.tsx"},
        {"content": "x"},
        {"filePath": "", "content": "x"},
        {"filePath": 3, "content": "x"},
        {"code": "", "language": "jsx"},
        ["filePath", "content"],
        None,
    ])
    def test_malformed(self, body):
        with pytest.raises(MalformedRequest):
            parse_update_request(body)


class TestUpdateChannel:
    @pytest.mark.asyncio
    async def test_persists_then_broadcasts(self, channel, registry, served_root):
        transport = FakeTransport()
        open_observer(registry, transport)

        delivered = await channel.apply_file_update("components/Hero.tsx", "export const Hero = () => <h1>New</h1>;")

        assert delivered == 1
        assert (served_root / "components" / "Hero.tsx").read_text() == "export const Hero = () => <h1>New</h1>;"
        [message] = received(transport)
        assert message["type"] == "file-update"
        assert message["data"] == {
            "filePath": "components/Hero.tsx",
            "content": "export const Hero = () => <h1>New</h1>;",
        }
        assert message["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_observers_see_updates_in_arrival_order(self, channel, registry, served_root):
        transports = [FakeTransport(delay=0.01), FakeTransport()]
        for transport in transports:
            open_observer(registry, transport)

        await asyncio.gather(*(channel.apply_file_update("App.tsx", f"v{i}") for i in range(5)))

        for transport in transports:
            assert [m["data"]["content"] for m in received(transport)] == [f"v{i}" for i in range(5)]
        assert (served_root / "App.tsx").read_text() == "v4"

    @pytest.mark.asyncio
    async def test_persist_failure_skips_broadcast(self, channel, registry, served_root):
        transport = FakeTransport()
        open_observer(registry, transport)
        (served_root / "blocked").write_text("a file, not a directory")

        with pytest.raises(OSError):
            await channel.apply_file_update("blocked/App.tsx", "x")
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_path_outside_served_root(self, channel, registry):
        transport = FakeTransport()
        open_observer(registry, transport)

        with pytest.raises(MalformedRequest):
            await channel.apply_file_update("../escape.tsx", "x")
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_code_update_does_not_touch_disk(self, channel, registry, served_root):
        transport = FakeTransport()
        open_observer(registry, transport)

        message = await channel.handle({"code": "<p>Hi</p>", "language": "html"})

        assert message == "Code updated successfully"
        assert received(transport)[0]["data"] == {"code": "<p>Hi</p>", "language": "html"}
        assert list(served_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_handle_file_update(self, channel, served_root):
        message = await channel.handle({"filePath": "App.tsx", "content": "x"})
        assert message == "File App.tsx updated successfully"
        assert channel.is_known_content(served_root / "App.tsx", content_hash("x"))
