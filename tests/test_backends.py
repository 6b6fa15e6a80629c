import asyncio
import json

import httpx
import pytest

from visionmate.backends import create_backend
from visionmate.backends.base import classify_error
from visionmate.backends.ollama import OllamaBackend
from visionmate.errors import BackendFailure, NetworkFailure
from visionmate.models import ImagePayload

OLLAMA_URL = "http://ollama.test"


def ndjson(*objects):
    return "\n".join(json.dumps(o) for o in objects).encode()


def make_backend(handler):
    return OllamaBackend(ollama_url=OLLAMA_URL, model="llava", transport=httpx.MockTransport(handler))


async def collect(chat, text, image=None):
    return [fragment async for fragment in chat.send_message_stream(text, image)]


def test_ollama_chat_streams_fragments_and_keeps_history():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return httpx.Response(200, content=ndjson(
            {"message": {"role": "assistant", "content": "A red "}, "done": False},
            {"message": {"role": "assistant", "content": "mug."}, "done": False},
            {"message": {"role": "assistant", "content": ""}, "done": True},
        ))

    backend = make_backend(handler)
    chat = backend.start_chat("be brief")
    image = ImagePayload(data="aGVsbG8=")

    fragments = asyncio.run(collect(chat, "what is this?", image))

    assert fragments == ["A red ", "mug."]
    body = requests[0]
    assert body["model"] == "llava"
    assert body["stream"] is True
    assert body["messages"][0] == {"role": "system", "content": "be brief"}
    assert body["messages"][1] == {"role": "user", "content": "what is this?", "images": ["aGVsbG8="]}
    assert chat.messages[-1] == {"role": "assistant", "content": "A red mug."}

    asyncio.run(collect(chat, "and now?"))
    assert len(requests[1]["messages"]) == 4


def test_ollama_missing_model_is_a_backend_failure():
    backend = make_backend(lambda request: httpx.Response(404, json={"error": "model not found"}))

    with pytest.raises(BackendFailure) as exc_info:
        asyncio.run(collect(backend.start_chat(), "hi"))

    assert "ollama pull llava" in exc_info.value.user_message


def test_ollama_error_line_is_a_backend_failure():
    backend = make_backend(lambda request: httpx.Response(200, content=ndjson({"error": "out of memory"})))

    with pytest.raises(BackendFailure) as exc_info:
        asyncio.run(collect(backend.start_chat(), "hi"))

    assert exc_info.value.user_message == "Ollama error: out of memory"


def test_ollama_unreachable_is_a_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = make_backend(handler)

    with pytest.raises(NetworkFailure) as exc_info:
        asyncio.run(backend.generate("hi"))

    assert OLLAMA_URL in exc_info.value.user_message


def test_ollama_generate_returns_full_response():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"response": "EXIT", "done": True})

    backend = make_backend(handler)
    text = asyncio.run(backend.generate("read this", ImagePayload(data="aGVsbG8=")))

    assert text == "EXIT"
    assert requests[0] == {"model": "llava", "prompt": "read this", "stream": False, "images": ["aGVsbG8="]}


def test_classify_error():
    assert isinstance(classify_error(Exception("Connection reset by peer")), NetworkFailure)
    assert "API key" in classify_error(Exception("API key not valid")).user_message
    assert "Rate limit" in classify_error(Exception("429 quota exceeded")).user_message
    assert "gemini-x" in classify_error(Exception("model not found"), "gemini-x").user_message
    original = BackendFailure("already classified")
    assert classify_error(original) is original


def test_create_backend_rejects_unknown_type():
    with pytest.raises(ValueError):
        create_backend("openai")
    assert isinstance(create_backend("OLLAMA"), OllamaBackend)
