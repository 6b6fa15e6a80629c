"""Client for the VisionMate auth and profile API.

The signed-in user and token are kept in a small JSON file so the session
survives restarts.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from visionmate.config import Config
from visionmate.errors import AuthError, NetworkFailure
from visionmate.models import User

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        session_file: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = (base_url or Config.API_URL).rstrip("/")
        self._session_path = Path(session_file or Config.SESSION_FILE)
        self._transport = transport
        self._timeout = timeout

        self.user: Optional[User] = None
        self.token: Optional[str] = None
        self._restore()

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    async def register(self, name: str, email: str, password: str) -> User:
        data = await self._request(
            "POST", "/auth/register", {"name": name, "email": email, "password": password},
            fallback="Registration failed",
        )
        return self._store(data["user"], data["token"])

    async def login(self, email: str, password: str) -> User:
        data = await self._request(
            "POST", "/auth/login", {"email": email, "password": password},
            fallback="Login failed",
        )
        return self._store(data["user"], data["token"])

    async def update_profile(self, name: str, email: str) -> User:
        if not self.token:
            raise AuthError("Not authenticated")
        data = await self._request(
            "PUT", "/profile/update", {"name": name, "email": email},
            fallback="Profile update failed", token=self.token,
        )
        return self._store(data["user"], self.token)

    def logout(self) -> None:
        self.user = None
        self.token = None
        try:
            self._session_path.unlink()
        except FileNotFoundError:
            pass
        logger.info("Signed out")

    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        body: Dict[str, Any],
        *,
        fallback: str,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.request(method, f"{self.base_url}{path}", json=body, headers=headers)
        except httpx.TransportError as e:
            logger.error("Auth request %s %s failed: %s", method, path, e)
            raise NetworkFailure() from e

        try:
            data = r.json()
        except ValueError:
            data = {}
        if not r.is_success:
            message = data.get("error") if isinstance(data, dict) else None
            raise AuthError(message or fallback)
        if not isinstance(data, dict) or "user" not in data:
            raise AuthError(fallback)
        return data

    def _store(self, user_data: Dict[str, Any], token: str) -> User:
        self.user = User.from_dict(user_data)
        self.token = token
        self._session_path.parent.mkdir(parents=True, exist_ok=True)
        self._session_path.write_text(
            json.dumps({"user": self.user.to_dict(), "token": token}),
            encoding="utf-8",
        )
        logger.info("Signed in as %s", self.user.email)
        return self.user

    def _restore(self) -> None:
        if not self._session_path.exists():
            return
        try:
            data = json.loads(self._session_path.read_text(encoding="utf-8"))
            user = User.from_dict(data["user"])
            token = data["token"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self._session_path, e)
            return
        self.user = user
        self.token = token
