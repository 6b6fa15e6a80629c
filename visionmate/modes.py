"""The interactive views of VisionMate.

A mode is created when the user enters a view and closed when they leave it.
Closing releases the camera, stops the recognizer and cancels speech.
"""

import asyncio
import logging
from abc import ABC
from typing import Callable, Optional

from visionmate.alerts import AlertCenter
from visionmate.backends.base import GenerativeBackend
from visionmate.camera import FrameCaptureService
from visionmate.conversation import ConversationSession
from visionmate.errors import CameraUnavailable, VisionMateError
from visionmate.models import ConversationTurn, TranscriptEvent
from visionmate.navigation import VoiceNavigationOrchestrator
from visionmate.prompts import READING_PROMPT, VISION_TASKS
from visionmate.speech.capture import RecognizerFactory, SpeechCaptureController
from visionmate.speech.output import SpeechOutputController

logger = logging.getLogger(__name__)


class Mode(ABC):
    """Base class for all views."""

    name = "base"

    def __init__(self, speech: SpeechOutputController):
        self.speech = speech
        self.error = ""
        self.is_closed = False

    async def enter(self):
        """Acquire devices for the view."""
        pass

    def close(self):
        self.is_closed = True
        self.speech.stop()

    def status(self) -> dict:
        return {"mode": self.name, "error": self.error}

    def report_error(self, message: str):
        """Show and speak an error; the audience may not be able to read the screen."""
        logger.warning("[%s] %s", self.name, message)
        self.error = message
        self.speech.speak(message)


class LiveVisionMode(Mode):
    """Camera plus conversation: ask about what the camera sees, by button or by voice."""

    name = "live_vision"

    def __init__(
        self,
        camera: FrameCaptureService,
        session: ConversationSession,
        speech: SpeechOutputController,
        recognizer_factory: Optional[RecognizerFactory],
    ):
        super().__init__(speech)
        self.camera = camera
        self.session = session
        self.capture = SpeechCaptureController(
            recognizer_factory,
            self._handle_transcript,
            on_error=lambda e: self.report_error(e.user_message),
        )
        self._tasks = set()

    async def enter(self):
        try:
            await self.camera.start_camera()
        except CameraUnavailable as e:
            self.report_error(e.reason)

    async def run_task(self, task: str) -> Optional[ConversationTurn]:
        """Run one of the canned vision tasks: describe, identify or read."""
        prompt, display_text = VISION_TASKS[task]
        return await self.ask(prompt, display_text)

    async def ask(self, prompt: str, display_text: Optional[str] = None) -> Optional[ConversationTurn]:
        """Send ``prompt`` together with the current camera frame and speak the reply."""
        if self.is_closed or self.session.is_loading:
            return None
        self.speech.stop()

        image = self.camera.capture_frame()
        if image is None:
            self.report_error("Camera not ready yet. Please wait a second and try again.")
            return None

        self.error = ""
        turn = await self.session.send_turn(prompt, image, display_text=display_text or prompt)
        if turn is None or self.is_closed:
            return turn
        if self.session.error:
            self.error = self.session.error
        self.speech.speak(turn.text)
        return turn

    def toggle_listening(self) -> bool:
        if self.is_closed or not self.capture.is_supported or self.session.is_loading:
            return False
        if self.capture.is_listening:
            self.capture.stop()
        else:
            self.error = ""
            self.capture.start()
        return True

    def close(self):
        self.camera.stop_camera()
        self.capture.close()
        self.session.close()
        super().close()

    def status(self) -> dict:
        status = super().status()
        status.update({
            "camera_on": self.camera.is_on,
            "camera_ready": self.camera.is_ready,
            "listening": self.capture.is_listening,
            "loading": self.session.is_loading,
        })
        return status

    def _handle_transcript(self, event: TranscriptEvent):
        task = asyncio.ensure_future(self.ask(event.text, event.text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class AssistantMode(Mode):
    """Text chat with the assistant."""

    name = "assistant"

    def __init__(self, session: ConversationSession, speech: SpeechOutputController):
        super().__init__(speech)
        self.session = session

    async def send(self, message: str) -> Optional[ConversationTurn]:
        if self.is_closed or not (message or "").strip():
            return None
        self.error = ""
        turn = await self.session.send_turn(message)
        if self.session.error:
            self.report_error(self.session.error)
        return turn

    def close(self):
        self.session.close()
        super().close()

    def status(self) -> dict:
        status = super().status()
        status["loading"] = self.session.is_loading
        return status


class ReadingMode(Mode):
    """Scan printed text with the camera and read it aloud."""

    name = "reading"

    def __init__(self, camera: FrameCaptureService, backend: GenerativeBackend, speech: SpeechOutputController):
        super().__init__(speech)
        self.camera = camera
        self._backend = backend
        self.extracted_text = ""
        self.is_loading = False

    async def enter(self):
        try:
            await self.camera.start_camera()
        except CameraUnavailable as e:
            self.report_error(e.reason)

    async def scan_and_read(self) -> str:
        if self.is_closed or self.is_loading:
            return ""
        self.speech.stop()
        self.extracted_text = ""

        image = self.camera.capture_frame()
        if image is None:
            self.report_error("Could not capture frame from camera.")
            return ""

        self.is_loading = True
        self.error = ""
        try:
            text = await self._backend.generate(READING_PROMPT, image)
        except VisionMateError as e:
            self.report_error(e.user_message)
            return ""
        finally:
            self.is_loading = False

        if self.is_closed:
            return ""
        if text and text.strip():
            self.extracted_text = text
            self.speech.speak(text)
        else:
            self.extracted_text = "No text found in the image."
            self.speech.speak("No text found.")
        return self.extracted_text

    def close(self):
        self.camera.stop_camera()
        super().close()

    def status(self) -> dict:
        status = super().status()
        status.update({
            "camera_on": self.camera.is_on,
            "camera_ready": self.camera.is_ready,
            "loading": self.is_loading,
            "extracted_text": self.extracted_text,
            "speaking": self.speech.is_speaking,
            "paused": self.speech.is_paused,
        })
        return status


class NavigationMode(Mode):
    """Voice navigation view around the VoiceNavigationOrchestrator."""

    name = "navigation"

    def __init__(
        self,
        orchestrator: VoiceNavigationOrchestrator,
        speech: SpeechOutputController,
        location_source: Callable,
    ):
        super().__init__(speech)
        self.orchestrator = orchestrator
        self._location_source = location_source

    async def enter(self):
        if self._location_source() is None:
            logger.info("No location yet, waiting for the client to report one")
        if not self.orchestrator.capture.is_supported:
            self.report_error("Voice input not supported on this device.")

    def toggle_listening(self) -> bool:
        return self.orchestrator.toggle_listening()

    def close(self):
        self.orchestrator.close()
        super().close()

    def status(self) -> dict:
        o = self.orchestrator
        location = self._location_source()
        return {
            "mode": self.name,
            "state": o.state.value,
            "label": o.mic_button_label,
            "destination": o.destination,
            "directions": o.directions,
            "error": o.error or self.error,
            "location": location.to_dict() if location else None,
        }
