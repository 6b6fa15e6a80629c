"""Configuration management for API keys, devices and timings."""

import os
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv

# config.py is in visionmate/, .env is in project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path, override=True)


class Config:
    """Application configuration from environment variables."""

    # REST API for auth, chat history and alerts
    API_URL: str = os.getenv("VISIONMATE_API_URL", "http://localhost:5001/api/v1")

    # Generative backend
    BACKEND_TYPE: str = os.getenv("BACKEND_TYPE", "gemini")  # "gemini" or "ollama"

    # Gemini settings
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

    # Ollama settings (no API key needed, it's local). Needs a vision model.
    OLLAMA_URL: str = os.getenv("OLLAMA_URL", "http://localhost:11434")
    OLLAMA_MODEL: str = os.getenv("OLLAMA_MODEL", "llava")

    # Speech recognition timings
    SPEECH_LANG: str = os.getenv("SPEECH_LANG", "en-US")
    SPEECH_START_DELAY_SECONDS: float = float(os.getenv("SPEECH_START_DELAY_SECONDS", "0.5"))
    SPEECH_ABORT_RETRY_DELAY_SECONDS: float = float(os.getenv("SPEECH_ABORT_RETRY_DELAY_SECONDS", "2.0"))
    SPEECH_MAX_ABORT_RETRIES: int = int(os.getenv("SPEECH_MAX_ABORT_RETRIES", "3"))

    # Navigation
    NAV_ANNOUNCE_DELAY_SECONDS: float = float(os.getenv("NAV_ANNOUNCE_DELAY_SECONDS", "1.5"))
    NAV_LISTEN_TIMEOUT_SECONDS: float = float(os.getenv("NAV_LISTEN_TIMEOUT_SECONDS", "5.0"))  # 0 disables

    # Alerts
    ALERT_CAPACITY: int = int(os.getenv("ALERT_CAPACITY", "5"))

    # Devices
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    TTS_RATE: int = int(os.getenv("TTS_RATE", "175"))

    # Stored user + token (the client-side session)
    SESSION_FILE: str = os.getenv("SESSION_FILE", str(Path.home() / ".visionmate" / "session.json"))

    # Control surface
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8010"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration and return list of missing required settings."""
        missing = []

        # Check backend-specific requirements
        if cls.BACKEND_TYPE == "gemini" and not cls.GEMINI_API_KEY:
            missing.append("GEMINI_API_KEY (required when BACKEND_TYPE=gemini)")

        if cls.SPEECH_MAX_ABORT_RETRIES < 0:
            missing.append("SPEECH_MAX_ABORT_RETRIES (must be >= 0)")

        return missing
