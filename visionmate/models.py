"""Data models for VisionMate."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class MicState(str, Enum):
    """State of a speech capture controller."""
    IDLE = "idle"
    LISTENING = "listening"
    ERROR = "error"


class NavState(str, Enum):
    """Mic button state of the voice navigation flow."""
    IDLE = "idle"
    ANNOUNCING = "announcing"
    LISTENING = "listening"
    RESOLVING = "resolving"
    ERROR = "error"


@dataclass
class TranscriptEvent:
    """A finalized speech-to-text result. Interim results are never emitted."""
    text: str
    is_final: bool = True
    ts: float = field(default_factory=time.time)

    def to_dict(self):
        return {
            "text": self.text,
            "is_final": self.is_final,
            "ts": self.ts
        }


@dataclass
class ConversationTurn:
    """One message of a conversation.

    The newest "model" turn is the only one whose text changes, and only while
    its response stream is still arriving.
    """
    role: Literal["user", "model"]
    text: str
    ts: float = field(default_factory=time.time)

    def to_dict(self):
        return {
            "role": self.role,
            "text": self.text,
            "ts": self.ts
        }


@dataclass
class AlertRecord:
    message: str
    timestamp: str  # "HH:MM"

    def to_dict(self):
        return {"message": self.message, "timestamp": self.timestamp}


@dataclass
class ImagePayload:
    """An encoded still frame ready to be sent inline to a generative backend."""
    data: str  # base64
    mime_type: str = "image/jpeg"
    width: int = 0
    height: int = 0

    def to_dict(self):
        return {
            "mime_type": self.mime_type,
            "width": self.width,
            "height": self.height
        }


@dataclass
class Location:
    lat: float
    lon: float

    def to_dict(self):
        return {"lat": self.lat, "lon": self.lon}


@dataclass
class User:
    id: str
    name: str
    email: str
    role: Literal["User", "Admin"] = "User"

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=data.get("name", ""),
            email=data.get("email", ""),
            role=data.get("role", "User"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role
        }
