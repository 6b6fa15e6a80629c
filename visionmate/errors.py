"""Error taxonomy shared by devices, sessions and services.

Every error carries a ``user_message`` that is safe to both display and speak.
"""

from typing import Optional


class VisionMateError(Exception):
    """Base class for all VisionMate errors."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class PermissionDenied(VisionMateError):
    default_message = "Permission denied."


class DeviceUnavailable(VisionMateError):
    default_message = "This device is not available."


class TransientDeviceError(VisionMateError):
    default_message = "The device was interrupted."


class NetworkFailure(VisionMateError):
    default_message = "Network connection failed. Please check your internet connection and try again."


class BackendFailure(VisionMateError):
    default_message = "The assistant could not produce a response."


class UserInputEmpty(VisionMateError):
    default_message = "I didn't catch that. Could you please try again?"


class CameraUnavailable(DeviceUnavailable):
    default_message = "Could not access the camera."

    def __init__(self, reason: Optional[str] = None):
        super().__init__(reason)
        self.reason = str(self)


class AuthError(VisionMateError):
    default_message = "Authentication failed."


class LocationUnavailable(VisionMateError):
    default_message = "Could not determine current location."


# --------- Speech recognition ---------

class SpeechError(VisionMateError):
    """Recognition failure reported by the speech device."""

    code = "unknown"


class NoSpeechDetected(SpeechError, UserInputEmpty):
    code = "no-speech"
    default_message = "No speech detected. Please try again."


class EmptyTranscript(SpeechError, UserInputEmpty):
    code = "empty-transcript"
    default_message = "I didn't catch that clearly. Please try again."


class MicPermissionDenied(SpeechError, PermissionDenied):
    code = "not-allowed"
    default_message = "Microphone permission denied. Please enable it in your settings."


class SpeechNetworkError(SpeechError, NetworkFailure):
    code = "network"
    default_message = "Network error. Please check your connection."


class Aborted(SpeechError, TransientDeviceError):
    code = "aborted"
    default_message = "Speech recognition keeps stopping. Please try again."


class UnknownSpeechError(SpeechError):
    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or f"Speech error: {code}")
        self.code = code


_SPEECH_ERRORS = {
    "no-speech": NoSpeechDetected,
    "not-allowed": MicPermissionDenied,
    "service-not-allowed": MicPermissionDenied,
    "network": SpeechNetworkError,
    "aborted": Aborted,
}


def speech_error_from_code(code: str) -> SpeechError:
    """Map a recognizer error code to the matching SpeechError."""
    cls = _SPEECH_ERRORS.get(code)
    if cls is None:
        return UnknownSpeechError(code)
    return cls()
