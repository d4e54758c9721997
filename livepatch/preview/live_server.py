import asyncio
import logging
from typing import Optional

from aiohttp import web

from ..core.config_manager import ConfigManager, LivePatchConfig, configure_logging
from ..core.errors import MalformedRequest
from ..core.models import utc_timestamp
from ..monitoring.metrics import MetricsTracker
from .file_watcher import FileWatcher
from .observer_registry import ObserverRegistry
from .update_channel import UpdateChannel
from .websocket_server import PreviewWebSocketServer

logger = logging.getLogger(__name__)


class PreviewRunner:
    """The preview process: owns the served files and the observer registry"""

    def __init__(self, config: Optional[LivePatchConfig] = None):
        self.config = config or LivePatchConfig()
        self.metrics = MetricsTracker()
        self.registry = ObserverRegistry(send_timeout=self.config.send_timeout)
        self.channel = UpdateChannel(self.config.served_root, self.registry, self.metrics)
        self.ws_server = PreviewWebSocketServer(
            self.registry,
            host=self.config.preview_host,
            port=self.config.preview_ws_port,
        )
        self.watcher = FileWatcher(self.channel) if self.config.watch_external_changes else None
        self._runner: Optional[web.AppRunner] = None
        self._watch_task: Optional[asyncio.Task] = None
        self.app = web.Application()
        self.setup_routes()

    def setup_routes(self):
        self.app.router.add_get("/health", self.health_check)
        self.app.router.add_post("/api/update", self.update)

    async def health_check(self, request: web.Request) -> web.Response:
        """Reachability check used by the editing surface"""
        return web.json_response({
            "ok": True,
            "timestamp": utc_timestamp(),
            "observers": len(self.registry.open_observers()),
        })

    async def update(self, request: web.Request) -> web.Response:
        """Apply `{filePath, content}` or legacy `{code, language}`"""
        try:
            body = await request.json()
        except ValueError:
            return web.json_response({"success": False, "message": "Request body must be JSON"}, status=400)

        try:
            message = await self.channel.handle(body)
        except MalformedRequest as e:
            logger.warning(f"Rejected update: {e.message}")
            return web.json_response({"success": False, "message": e.message}, status=400)
        except OSError as e:
            logger.error(f"Error updating file: {e}")
            return web.json_response(
                {"success": False, "message": "Failed to update file", "error": str(e)},
                status=500,
            )

        return web.json_response({"success": True, "message": message})

    async def start(self):
        """Start the HTTP endpoints, the push channel and, if enabled, the watcher"""
        self.config.served_root.mkdir(parents=True, exist_ok=True)
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.preview_host, self.config.preview_http_port)
        await site.start()
        await self.ws_server.start()
        if self.watcher is not None:
            self._watch_task = asyncio.create_task(self.watcher.start())
        logger.info(f"Preview runner started on http://{self.config.preview_host}:{self.config.preview_http_port}")
        logger.info(f"Health check available at http://{self.config.preview_host}:{self.config.preview_http_port}/health")

    async def stop(self):
        if self.watcher is not None:
            self.watcher.stop()
        if self._watch_task is not None:
            await self._watch_task
            self._watch_task = None
        await self.ws_server.stop()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Preview runner stopped")

    async def run_forever(self):
        await self.start()
        try:
            await asyncio.Future()
        finally:
            await self.stop()


def main(config_path: str = "livepatch.json"):
    config = ConfigManager(config_path).config
    configure_logging(config.log_level)
    try:
        asyncio.run(PreviewRunner(config).run_forever())
    except KeyboardInterrupt:
        logger.info("Shutting down preview runner")


if __name__ == "__main__":
    main()
