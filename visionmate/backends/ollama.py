"""Ollama backend (local vision model) over the REST API."""

import json
import logging
from typing import AsyncIterator, Dict, List, Optional

import httpx

from visionmate.backends.base import ChatHandle, GenerativeBackend
from visionmate.config import Config
from visionmate.errors import BackendFailure, NetworkFailure
from visionmate.models import ImagePayload

logger = logging.getLogger(__name__)


def _message(role: str, text: str, image: Optional[ImagePayload] = None) -> Dict:
    message = {"role": role, "content": text}
    if image is not None:
        message["images"] = [image.data]
    return message


class OllamaChat(ChatHandle):
    """Ollama keeps no server-side chat state, so the handle carries the history."""

    def __init__(self, backend: "OllamaBackend", system_instruction: Optional[str] = None):
        self._backend = backend
        self.messages: List[Dict] = []
        if system_instruction:
            self.messages.append({"role": "system", "content": system_instruction})

    async def send_message_stream(self, text: str, image: Optional[ImagePayload] = None) -> AsyncIterator[str]:
        backend = self._backend
        messages = self.messages + [_message("user", text, image)]
        reply = ""

        try:
            async with backend.client() as client:
                async with client.stream(
                    "POST",
                    f"{backend.ollama_url}/api/chat",
                    json={"model": backend.model, "messages": messages, "stream": True},
                ) as r:
                    r.raise_for_status()
                    async for line in r.aiter_lines():
                        if not line.strip():
                            continue
                        data = backend.parse_line(line)
                        fragment = (data.get("message") or {}).get("content", "")
                        if fragment:
                            reply += fragment
                            yield fragment
                        if data.get("done"):
                            break
        except httpx.HTTPStatusError as e:
            raise backend.status_error(e) from e
        except httpx.TransportError as e:
            logger.error("Ollama connection error: %s", e)
            raise NetworkFailure(f"Cannot connect to Ollama at {backend.ollama_url}. Please ensure Ollama is running.") from e

        # Only completed exchanges enter the history
        self.messages = messages + [_message("assistant", reply)]


class OllamaBackend(GenerativeBackend):
    """Ollama-based backend."""

    name = "ollama"

    def __init__(
        self,
        ollama_url: str = None,
        model: str = None,
        timeout: float = 90.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama backend.

        Args:
            ollama_url: URL of Ollama server (defaults to Config.OLLAMA_URL)
            model: Model name to use (defaults to Config.OLLAMA_MODEL)
        """
        self.ollama_url = (ollama_url or Config.OLLAMA_URL).rstrip("/")
        self.model = model or Config.OLLAMA_MODEL
        self._timeout = timeout
        self._transport = transport

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def start_chat(self, system_instruction: Optional[str] = None) -> ChatHandle:
        return OllamaChat(self, system_instruction)

    async def generate(self, prompt: str, image: Optional[ImagePayload] = None) -> str:
        body = {"model": self.model, "prompt": prompt, "stream": False}
        if image is not None:
            body["images"] = [image.data]
        try:
            async with self.client() as client:
                r = await client.post(f"{self.ollama_url}/api/generate", json=body)
                r.raise_for_status()
                data = self.parse_line(r.text)
        except httpx.HTTPStatusError as e:
            raise self.status_error(e) from e
        except httpx.TransportError as e:
            logger.error("Ollama connection error: %s", e)
            raise NetworkFailure(f"Cannot connect to Ollama at {self.ollama_url}. Please ensure Ollama is running.") from e
        return data.get("response", "")

    @staticmethod
    def parse_line(line: str) -> Dict:
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise BackendFailure("Received a malformed response from Ollama.") from e
        if not isinstance(data, dict):
            raise BackendFailure("Received a malformed response from Ollama.")
        if data.get("error"):
            raise BackendFailure(f"Ollama error: {data['error']}")
        return data

    def status_error(self, e: httpx.HTTPStatusError) -> BackendFailure:
        logger.error("Ollama API error: %s", e)
        if e.response.status_code == 404:
            return BackendFailure(
                f"Model '{self.model}' not found. Install it with: ollama pull {self.model}"
            )
        return BackendFailure(f"HTTP Error {e.response.status_code} from Ollama.")
