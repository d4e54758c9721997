import asyncio
import logging
from pathlib import Path
from typing import Iterable, Union

from watchfiles import awatch, Change

from .update_channel import UpdateChannel, content_hash

logger = logging.getLogger(__name__)

WATCHED_EXTENSIONS = frozenset([".tsx", ".ts", ".jsx", ".js", ".css", ".html"])


class FileWatcher:
    """Broadcasts edits made to the served root by other tools (editors, git)"""

    def __init__(self, channel: UpdateChannel, extensions: Iterable[str] = WATCHED_EXTENSIONS):
        self.channel = channel
        self.root = channel.served_root
        self.extensions = frozenset(extensions)
        self._stop_event = asyncio.Event()

    async def start(self):
        """Watch until stop() is called"""
        logger.info(f"Watching {self.root} for external changes")
        async for changes in awatch(self.root, stop_event=self._stop_event):
            for change_type, file_path in changes:
                if change_type in {Change.added, Change.modified}:
                    await self.handle_file_change(file_path)

    def stop(self):
        """Stop watching for changes"""
        self._stop_event.set()

    async def handle_file_change(self, file_path: Union[str, Path]) -> bool:
        """Broadcast the file unless its content is already known; returns True when broadcast"""
        path = Path(file_path)
        if path.name.startswith('.') or path.suffix not in self.extensions or not path.is_file():
            return False

        try:
            content = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read changed file {path}: {e}")
            return False

        digest = content_hash(content)
        if self.channel.is_known_content(path, digest):
            return False
        self.channel.remember_content(path, digest)

        relative = path.resolve().relative_to(self.root.resolve()).as_posix()
        delivered = await self.channel.broadcast_external_change(relative, content)
        logger.info(f"External change to {relative} broadcast to {delivered} observer(s)")
        return True
