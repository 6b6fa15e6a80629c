import asyncio
import json

import httpx
import pytest

from visionmate.errors import AuthError, NetworkFailure
from visionmate.services.auth import AuthService
from visionmate.services.persistence import BackgroundWrites, PersistenceClient

API_URL = "http://api.test/api/v1"
USER = {"_id": "u1", "name": "Asha", "email": "asha@example.com", "role": "User"}


def make_auth(tmp_path, handler):
    return AuthService(
        base_url=API_URL,
        session_file=str(tmp_path / "session.json"),
        transport=httpx.MockTransport(handler),
    )


def test_login_stores_and_restores_the_session(tmp_path):
    def handler(request):
        assert request.url.path == "/api/v1/auth/login"
        assert json.loads(request.content) == {"email": "asha@example.com", "password": "secret"}
        return httpx.Response(200, json={"user": USER, "token": "tok-1"})

    auth = make_auth(tmp_path, handler)
    assert not auth.is_authenticated

    user = asyncio.run(auth.login("asha@example.com", "secret"))

    assert user.id == "u1"
    assert auth.token == "tok-1"
    restored = make_auth(tmp_path, handler)
    assert restored.user_id == "u1"
    assert restored.token == "tok-1"

    restored.logout()
    assert not (tmp_path / "session.json").exists()
    assert not make_auth(tmp_path, handler).is_authenticated


def test_server_error_message_is_shown_verbatim(tmp_path):
    auth = make_auth(tmp_path, lambda request: httpx.Response(400, json={"error": "Email already registered"}))

    with pytest.raises(AuthError) as exc_info:
        asyncio.run(auth.register("Asha", "asha@example.com", "secret"))

    assert exc_info.value.user_message == "Email already registered"
    assert not auth.is_authenticated


def test_fallback_message_without_server_error(tmp_path):
    auth = make_auth(tmp_path, lambda request: httpx.Response(500, text="oops"))

    with pytest.raises(AuthError) as exc_info:
        asyncio.run(auth.login("asha@example.com", "secret"))

    assert exc_info.value.user_message == "Login failed"


def test_profile_update_needs_a_token_and_sends_it(tmp_path):
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.path.endswith("/auth/login"):
            return httpx.Response(200, json={"user": USER, "token": "tok-1"})
        return httpx.Response(200, json={"user": dict(USER, name="Asha K")})

    auth = make_auth(tmp_path, handler)
    with pytest.raises(AuthError):
        asyncio.run(auth.update_profile("Asha K", "asha@example.com"))

    async def scenario():
        await auth.login("asha@example.com", "secret")
        return await auth.update_profile("Asha K", "asha@example.com")

    user = asyncio.run(scenario())
    assert user.name == "Asha K"
    assert seen[-1].method == "PUT"
    assert seen[-1].url.path == "/api/v1/profile/update"
    assert seen[-1].headers["Authorization"] == "Bearer tok-1"


def test_unreachable_api_is_a_network_failure(tmp_path):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    auth = make_auth(tmp_path, handler)
    with pytest.raises(NetworkFailure):
        asyncio.run(auth.login("asha@example.com", "secret"))


def test_persistence_client_posts_chats_and_alerts():
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content), request.headers.get("Authorization")))
        return httpx.Response(201, json={})

    client = PersistenceClient(base_url=API_URL, token_provider=lambda: "tok-1", transport=httpx.MockTransport(handler))

    async def scenario():
        await client.save_chat_message("u1", "user", "hello")
        await client.save_alert("ALERT: stairs", "u1")

    asyncio.run(scenario())
    assert seen == [
        ("/api/v1/chats", {"userId": "u1", "role": "user", "message": "hello"}, "Bearer tok-1"),
        ("/api/v1/alerts", {"message": "ALERT: stairs", "userId": "u1"}, "Bearer tok-1"),
    ]


def test_background_writes_swallow_failures():
    async def fail():
        raise httpx.ConnectError("down")

    async def succeed(results):
        await asyncio.sleep(0)
        results.append("ok")

    async def scenario():
        writes = BackgroundWrites()
        results = []
        writes.submit(fail(), label="chat save")
        writes.submit(succeed(results))
        assert writes.pending == 2
        await writes.flush()
        assert writes.pending == 0
        return results

    assert asyncio.run(scenario()) == ["ok"]
