import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..core.errors import PreviewRejected, PreviewUnreachable

logger = logging.getLogger(__name__)


class PreviewClient:
    """HTTP client from the editing surface to the preview process.

    Every call is bounded by `timeout`; a runner that cannot be reached in
    time surfaces as PreviewUnreachable, a runner that answers with an error
    as PreviewRejected.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.request(method, url, json=payload) as response:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = {"message": await response.text()}
                    if not isinstance(data, dict):
                        data = {"message": str(data)}
                    if response.status >= 400:
                        raise PreviewRejected(
                            f"Preview runner rejected {method} {path}: {data.get('message', response.reason)}",
                            status=response.status,
                            details=data,
                        )
                    return data
        except asyncio.TimeoutError as e:
            raise PreviewUnreachable(f"Preview runner at {self.base_url} did not answer within {self.timeout}s") from e
        except aiohttp.ClientConnectionError as e:
            raise PreviewUnreachable(f"Preview runner at {self.base_url} is unreachable: {e}") from e

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/health")

    async def is_reachable(self) -> bool:
        try:
            data = await self.health()
        except (PreviewUnreachable, PreviewRejected) as e:
            logger.debug(f"Preview health check failed: {e}")
            return False
        return bool(data.get("ok"))

    async def _update(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", "/api/update", payload)
        if not data.get("success"):
            raise PreviewRejected(f"Preview runner refused update: {data.get('message')}", details=data)
        logger.info(f"Preview runner updated: {data.get('message')}")
        return data

    async def push_file(self, file_path: str, content: str) -> Dict[str, Any]:
        """Primary protocol: persist and broadcast a file"""
        return await self._update({"filePath": file_path, "content": content})

    async def push_code(self, code: str, language: str) -> Dict[str, Any]:
        """Legacy protocol: broadcast a whole document without persisting"""
        return await self._update({"code": code, "language": language})
