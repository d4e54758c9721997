import asyncio
import socket
import pytest
from aiohttp import test_utils, web

from livepatch.core.errors import PreviewRejected, PreviewUnreachable
from livepatch.interface.preview_client import PreviewClient
from livepatch.preview.live_server import PreviewRunner


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def start_server(app: web.Application) -> test_utils.TestServer:
    server = test_utils.TestServer(app, host="127.0.0.1")
    await server.start_server()
    return server


@pytest.fixture
async def runner_server(config):
    runner = PreviewRunner(config)
    server = await start_server(runner.app)
    yield runner, f"http://127.0.0.1:{server.port}"
    await server.close()


class TestPreviewClient:
    @pytest.mark.asyncio
    async def test_push_file(self, runner_server, served_root):
        _, url = runner_server
        client = PreviewClient(url, timeout=2.0)

        data = await client.push_file("App.tsx", "<main/>")

        assert data["success"] is True
        assert (served_root / "App.tsx").read_text() == "<main/>"

    @pytest.mark.asyncio
    async def test_push_code(self, runner_server):
        _, url = runner_server
        data = await PreviewClient(url).push_code("<h1/>", "html")
        assert data["message"] == "Code updated successfully"

    @pytest.mark.asyncio
    async def test_health(self, runner_server):
        _, url = runner_server
        client = PreviewClient(url + "/")

        assert (await client.health())["ok"] is True
        assert await client.is_reachable() is True

    @pytest.mark.asyncio
    async def test_rejected_update(self, runner_server):
        _, url = runner_server
        with pytest.raises(PreviewRejected) as exc_info:
            await PreviewClient(url).push_file("../outside.tsx", "x")
        assert exc_info.value.status == 400
        assert exc_info.value.stage == "deliver"

    @pytest.mark.asyncio
    async def test_unreachable(self):
        client = PreviewClient(f"http://127.0.0.1:{unused_port()}", timeout=1.0)

        with pytest.raises(PreviewUnreachable):
            await client.push_file("App.tsx", "x")
        assert await client.is_reachable() is False

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(request):
            await asyncio.sleep(1.0)
            return web.json_response({"success": True})

        app = web.Application()
        app.router.add_post("/api/update", slow)
        server = await start_server(app)
        try:
            with pytest.raises(PreviewUnreachable):
                await PreviewClient(f"http://127.0.0.1:{server.port}", timeout=0.1).push_file("App.tsx", "x")
        finally:
            await server.close()
