"""Backend factory for creating generative AI backends."""

from visionmate.backends.base import ChatHandle, GenerativeBackend


def create_backend(backend_type: str = "gemini") -> GenerativeBackend:
    """Factory function to create a backend instance based on type.

    Args:
        backend_type: Type of backend to create ("gemini" or "ollama")

    Returns:
        GenerativeBackend instance

    Raises:
        ValueError: If backend_type is not supported
    """
    backend_type = backend_type.lower()

    if backend_type == "ollama":
        from visionmate.backends.ollama import OllamaBackend
        return OllamaBackend()
    elif backend_type == "gemini":
        from visionmate.backends.gemini import GeminiBackend
        return GeminiBackend()
    else:
        raise ValueError(
            f"Unsupported backend type: '{backend_type}'. "
            f"Supported types are: 'gemini', 'ollama'"
        )


__all__ = ["create_backend", "ChatHandle", "GenerativeBackend"]
