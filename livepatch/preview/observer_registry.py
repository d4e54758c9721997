import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, message: str) -> None: ...


class ObserverState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Observer:
    """A connected preview view. Closed is terminal; there is no resume."""

    def __init__(self, transport: Transport, observer_id: Optional[str] = None):
        self.id = observer_id or uuid4().hex[:12]
        self.transport = transport
        self.state = ObserverState.CONNECTING

    @property
    def is_open(self) -> bool:
        return self.state is ObserverState.OPEN

    def mark_open(self):
        if self.state is ObserverState.CONNECTING:
            self.state = ObserverState.OPEN

    def mark_closed(self):
        self.state = ObserverState.CLOSED

    async def send(self, payload: str) -> bool:
        """Send a serialized message; a no-op returning False unless open"""
        if not self.is_open:
            return False
        try:
            await self.transport.send(payload)
            return True
        except ConnectionClosed:
            logger.debug(f"Observer {self.id} closed during send")
            self.mark_closed()
            return False


class ObserverRegistry:
    """Live set of observers owned by the update channel"""

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._observers: Dict[str, Observer] = {}

    def add(self, observer: Observer) -> Observer:
        self._observers[observer.id] = observer
        return observer

    def remove(self, observer: Observer):
        observer.mark_closed()
        self._observers.pop(observer.id, None)

    def snapshot(self) -> List[Observer]:
        return list(self._observers.values())

    def open_observers(self) -> List[Observer]:
        return [observer for observer in self.snapshot() if observer.is_open]

    def __len__(self) -> int:
        return len(self._observers)

    async def _deliver(self, observer: Observer, payload: str) -> bool:
        try:
            return await asyncio.wait_for(observer.send(payload), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Send to observer {observer.id} timed out after {self.send_timeout}s")
            return False
        except Exception as e:
            logger.warning(f"Send to observer {observer.id} failed: {e}")
            observer.mark_closed()
            return False

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send to every observer open at this instant; returns the delivered count"""
        targets = self.open_observers()
        if not targets:
            return 0
        payload = json.dumps(message)
        results = await asyncio.gather(*(self._deliver(observer, payload) for observer in targets))
        return sum(1 for delivered in results if delivered)
