"""Gemini backend built on the google-generativeai SDK."""

import base64
import logging
from typing import AsyncIterator, List, Optional

import google.generativeai as genai

from visionmate.backends.base import ChatHandle, GenerativeBackend, classify_error
from visionmate.config import Config
from visionmate.models import ImagePayload

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.7,
    "top_p": 0.95,
    "top_k": 40,
    "max_output_tokens": 2048,
}


def build_parts(text: str, image: Optional[ImagePayload] = None) -> List:
    """Image part first, then the text part."""
    parts: List = []
    if image is not None:
        parts.append({"mime_type": image.mime_type, "data": base64.b64decode(image.data)})
    if text:
        parts.append(text)
    return parts


def _chunk_text(chunk) -> str:
    # Chunks stopped by safety filters have no text and raise on access.
    try:
        return chunk.text or ""
    except ValueError:
        return ""


class GeminiChat(ChatHandle):
    def __init__(self, chat, model_name: str):
        self._chat = chat
        self.model_name = model_name

    async def send_message_stream(self, text: str, image: Optional[ImagePayload] = None) -> AsyncIterator[str]:
        try:
            response = await self._chat.send_message_async(
                build_parts(text, image),
                stream=True,
                generation_config=GENERATION_CONFIG,
            )
            async for chunk in response:
                fragment = _chunk_text(chunk)
                if fragment:
                    yield fragment
        except Exception as e:
            logger.error("Gemini API error: %s", e)
            raise classify_error(e, self.model_name) from e


class GeminiBackend(GenerativeBackend):
    """Google Gemini backend."""

    name = "gemini"

    def __init__(self, api_key: str = None, model: str = None):
        """Initialize Gemini backend.

        Args:
            api_key: Gemini API key (defaults to Config.GEMINI_API_KEY)
            model: Model name to use (defaults to Config.GEMINI_MODEL)
        """
        self.api_key = api_key or Config.GEMINI_API_KEY
        self.model_name = model or Config.GEMINI_MODEL

        if not self.api_key:
            raise ValueError(
                "GEMINI_API_KEY is required. Please set it in your .env file or environment variables. "
                "Get your API key from: https://makersuite.google.com/app/apikey"
            )

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(self.model_name)

    def start_chat(self, system_instruction: Optional[str] = None) -> ChatHandle:
        model = self.model
        if system_instruction:
            model = genai.GenerativeModel(self.model_name, system_instruction=system_instruction)
        return GeminiChat(model.start_chat(history=[]), self.model_name)

    async def generate(self, prompt: str, image: Optional[ImagePayload] = None) -> str:
        try:
            response = await self.model.generate_content_async(
                build_parts(prompt, image),
                generation_config=GENERATION_CONFIG,
            )
            return _chunk_text(response)
        except Exception as e:
            logger.error("Gemini API error: %s", e)
            raise classify_error(e, self.model_name) from e
