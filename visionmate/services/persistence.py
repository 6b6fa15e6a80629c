"""Chat history and alert persistence over the VisionMate REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import httpx

from visionmate.config import Config

logger = logging.getLogger(__name__)


class BackgroundWrites:
    """Fire-and-forget scheduler for persistence coroutines.

    Failures are logged and dropped; they never reach the caller.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, coro: Awaitable[Any], *, label: str = "write") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, label))
        return task

    def _finished(self, task: asyncio.Task, label: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background %s failed: %s", label, exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def flush(self) -> None:
        """Wait for every outstanding write to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class PersistenceClient:
    """Append-only writes of chat turns and alerts."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = (base_url or Config.API_URL).rstrip("/")
        self._token_provider = token_provider
        self._transport = transport
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _post(self, path: str, body: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            r = await client.post(f"{self.base_url}{path}", json=body, headers=self._headers())
            r.raise_for_status()

    async def save_chat_message(self, user_id: str, role: str, message: str) -> None:
        await self._post("/chats", {"userId": user_id, "role": role, "message": message})

    async def save_alert(self, message: str, user_id: str) -> None:
        await self._post("/alerts", {"message": message, "userId": user_id})
