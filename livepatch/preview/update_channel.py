import asyncio
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.errors import MalformedRequest
from ..core.models import MessageKind, PreviewUpdateMessage
from ..core.paths import resolve_within
from ..monitoring.metrics import MetricsTracker
from .observer_registry import ObserverRegistry

logger = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class FileUpdateRequest:
    file_path: str
    content: str


@dataclass
class CodeUpdateRequest:
    code: str
    language: str


def parse_update_request(body: Any) -> Union[FileUpdateRequest, CodeUpdateRequest]:
    """Validate an update body: `{filePath, content}` or legacy `{code, language}`"""
    if not isinstance(body, dict):
        raise MalformedRequest("Update body must be a JSON object")

    file_path, content = body.get("filePath"), body.get("content")
    if file_path is not None and content is not None:
        if not isinstance(file_path, str) or not file_path or not isinstance(content, str):
            raise MalformedRequest("filePath and content must both be strings")
        return FileUpdateRequest(file_path=file_path, content=content)

    code, language = body.get("code"), body.get("language")
    if isinstance(code, str) and code and isinstance(language, str) and language:
        return CodeUpdateRequest(code=code, language=language)

    raise MalformedRequest("Missing required parameters: either (filePath, content) or (code, language)")


class UpdateChannel:
    """Persist-then-broadcast pipeline of the preview process.

    Updates are serialized by one FIFO lock, so persistence and broadcast
    happen in arrival order and a later write always wins on disk.
    """

    def __init__(self, served_root: Union[str, Path], registry: ObserverRegistry,
                 metrics: Optional[MetricsTracker] = None):
        self.served_root = Path(served_root)
        self.registry = registry
        self.metrics = metrics or MetricsTracker()
        self._lock = asyncio.Lock()
        self._known_hashes: Dict[Path, str] = {}

    def is_known_content(self, path: Union[str, Path], digest: str) -> bool:
        """True when `digest` matches what was last persisted or seen at `path`"""
        return self._known_hashes.get(Path(path).resolve()) == digest

    def remember_content(self, path: Union[str, Path], digest: str):
        self._known_hashes[Path(path).resolve()] = digest

    @staticmethod
    def _write_file(path: Path, content: str):
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.lp-tmp")
        with open(tmp_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.replace(tmp_path, path)

    async def apply_file_update(self, file_path: str, content: str) -> int:
        """Persist `content` under the served root, then broadcast a file update"""
        path = resolve_within(self.served_root, file_path)

        async with self._lock:
            start_time = self.metrics.time()
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._write_file, path, content)
            self.remember_content(path, content_hash(content))
            self.metrics.record("persist_time", self.metrics.time() - start_time)
            logger.info(f"File updated: {file_path}")

            message = PreviewUpdateMessage(kind=MessageKind.FILE_UPDATE, content=content, file_path=file_path)
            delivered = await self.registry.broadcast(message.to_wire())

        self.metrics.record("fanout_size", delivered)
        logger.info(f"Broadcast file-update for {file_path} to {delivered} observer(s)")
        return delivered

    async def apply_code_update(self, code: str, language: str) -> int:
        """Broadcast a whole-document replacement without touching disk"""
        async with self._lock:
            message = PreviewUpdateMessage(kind=MessageKind.CODE_UPDATE, content=code, language=language)
            delivered = await self.registry.broadcast(message.to_wire())
        logger.info(f"Broadcast code-update ({language}) to {delivered} observer(s)")
        return delivered

    async def broadcast_external_change(self, file_path: str, content: str) -> int:
        """Announce an on-disk change made outside the update endpoint"""
        async with self._lock:
            message = PreviewUpdateMessage(kind=MessageKind.FILE_UPDATE, content=content, file_path=file_path)
            return await self.registry.broadcast(message.to_wire())

    async def handle(self, body: Any) -> str:
        """Validate and apply an update body; returns the success message"""
        request = parse_update_request(body)
        if isinstance(request, FileUpdateRequest):
            await self.apply_file_update(request.file_path, request.content)
            return f"File {request.file_path} updated successfully"
        await self.apply_code_update(request.code, request.language)
        return "Code updated successfully"
