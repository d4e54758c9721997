import pytest
import asyncio
from pathlib import Path
from typing import List

from livepatch.core.config_manager import LivePatchConfig
from livepatch.core.errors import PreviewUnreachable
from livepatch.preview.observer_registry import Observer, ObserverRegistry


class FakeTransport:
    """Records what an observer was sent"""

    def __init__(self, delay: float = 0.0, error: Exception = None):
        self.sent: List[str] = []
        self.delay = delay
        self.error = error

    async def send(self, message: str):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append(message)


class FakePreviewClient:
    """Stands in for the preview runner's HTTP endpoints"""

    def __init__(self, error: Exception = None, healthy: bool = True):
        self.files: List[tuple] = []
        self.code: List[tuple] = []
        self.error = error
        self.healthy = healthy

    async def health(self):
        if self.error is not None:
            raise self.error
        return {"ok": self.healthy, "observers": 0}

    async def is_reachable(self):
        return self.healthy and not isinstance(self.error, PreviewUnreachable)

    async def push_file(self, file_path: str, content: str):
        if self.error is not None:
            raise self.error
        self.files.append((file_path, content))
        return {"success": True, "message": f"File {file_path} updated successfully"}

    async def push_code(self, code: str, language: str):
        if self.error is not None:
            raise self.error
        self.code.append((code, language))
        return {"success": True, "message": "Code updated successfully"}


def open_observer(registry: ObserverRegistry, transport: FakeTransport = None) -> Observer:
    observer = registry.add(Observer(transport or FakeTransport()))
    observer.mark_open()
    return observer


async def wait_until(predicate, timeout: float = 2.0):
    """Poll `predicate` until it holds or the timeout expires"""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_poll(), timeout)


# Temporary project layout: <tmp>/src is the served root
@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    return tmp_path


@pytest.fixture
def served_root(project_root: Path) -> Path:
    return project_root / "src"


@pytest.fixture
def config(project_root: Path) -> LivePatchConfig:
    return LivePatchConfig(
        project_root=str(project_root),
        preview_host="127.0.0.1",
        preview_http_port=0,
        preview_ws_port=0,
        request_timeout=2.0,
        send_timeout=0.5,
    )


@pytest.fixture
def registry() -> ObserverRegistry:
    return ObserverRegistry(send_timeout=0.5)
