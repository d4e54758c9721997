import json
import logging
from typing import Any, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ..core.models import MessageKind, utc_timestamp
from .observer_registry import Observer, ObserverRegistry

logger = logging.getLogger(__name__)

WELCOME_TEXT = "Connected to LivePatch preview"


class PreviewWebSocketServer:
    """Observer push channel: welcome on open, echo for diagnostics, updates via the registry"""

    def __init__(self, registry: ObserverRegistry, host: str = "localhost", port: int = 5174):
        self.host = host
        self.port = port
        self.registry = registry
        self._server = None

    @property
    def bound_port(self) -> Optional[int]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self):
        """Bind the WebSocket server and return once it is listening"""
        self._server = await websockets.serve(self._handle_client, self.host, self.port)
        logger.info(f"Preview WebSocket server running on ws://{self.host}:{self.bound_port}")

    async def stop(self):
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle_client(self, websocket):
        """Handle one observer from attach to teardown"""
        observer = self.registry.add(Observer(websocket))
        try:
            await websocket.send(json.dumps(self._welcome_message()))
            observer.mark_open()
            logger.info(f"Observer {observer.id} connected ({len(self.registry)} attached)")
            async for message in websocket:
                await self._process_message(observer, message)
        except ConnectionClosed:
            logger.debug(f"Observer {observer.id} transport closed")
        finally:
            self.registry.remove(observer)
            logger.info(f"Observer {observer.id} disconnected")

    @staticmethod
    def _welcome_message() -> Dict[str, Any]:
        return {
            "type": MessageKind.CONNECTION.value,
            "message": WELCOME_TEXT,
            "timestamp": utc_timestamp(),
        }

    async def _process_message(self, observer: Observer, message: str):
        """Echo client messages back; they carry no commands"""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from observer {observer.id}: {message!r}")
            return

        logger.debug(f"Received message from observer {observer.id}: {data}")
        await observer.send(json.dumps({
            "type": MessageKind.ECHO.value,
            "data": data,
            "timestamp": utc_timestamp(),
        }))
