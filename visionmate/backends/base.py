"""Abstract base classes for generative AI backends."""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from visionmate.errors import BackendFailure, NetworkFailure, VisionMateError
from visionmate.models import ImagePayload


class ChatHandle(ABC):
    """One ongoing multimodal conversation with a backend."""

    @abstractmethod
    def send_message_stream(self, text: str, image: Optional[ImagePayload] = None) -> AsyncIterator[str]:
        """Send a turn and stream back the reply.

        Args:
            text: Prompt text
            image: Optional inline image, sent before the text

        Returns:
            Async iterator of text fragments in emission order
        """
        pass


class GenerativeBackend(ABC):
    """Abstract base class for all generative backends."""

    name = "base"

    @abstractmethod
    def start_chat(self, system_instruction: Optional[str] = None) -> ChatHandle:
        """Open a new conversation."""
        pass

    @abstractmethod
    async def generate(self, prompt: str, image: Optional[ImagePayload] = None) -> str:
        """One-shot request outside any conversation.

        Returns:
            The complete reply text (may be empty)
        """
        pass


def classify_error(e: Exception, model_name: str = "") -> VisionMateError:
    """Turn a provider exception into a NetworkFailure or BackendFailure."""
    if isinstance(e, VisionMateError):
        return e
    error_msg = str(e).lower()

    if "api key" in error_msg or "unauthorized" in error_msg or "403" in error_msg:
        return BackendFailure("Invalid or missing API key. Please check your backend settings.")
    if "quota" in error_msg or "rate limit" in error_msg or "429" in error_msg:
        return BackendFailure("Rate limit exceeded. Please wait a moment and try again.")
    if "model" in error_msg and "not found" in error_msg:
        return BackendFailure(f"Model '{model_name}' not found. Please check your model setting.")
    if "network" in error_msg or "connection" in error_msg or "timed out" in error_msg:
        return NetworkFailure()
    return BackendFailure(str(e) or type(e).__name__)
