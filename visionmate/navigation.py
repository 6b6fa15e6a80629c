"""Voice navigation: speak a destination, hear the directions."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from visionmate.alerts import AlertCenter, alert_lines
from visionmate.backends.base import GenerativeBackend
from visionmate.config import Config
from visionmate.errors import LocationUnavailable, VisionMateError
from visionmate.models import Location, NavState, TranscriptEvent
from visionmate.prompts import NAVIGATION_ANNOUNCEMENT, build_directions_prompt
from visionmate.speech.capture import RecognizerFactory, SpeechCaptureController
from visionmate.speech.output import SpeechOutputController

logger = logging.getLogger(__name__)

DirectionsFn = Callable[[str], Awaitable[str]]


class LocationTracker:
    """Latest position reported by the client."""

    def __init__(self):
        self.location: Optional[Location] = None

    def update(self, lat: float, lon: float) -> Location:
        self.location = Location(lat=lat, lon=lon)
        return self.location

    def current(self) -> Optional[Location]:
        return self.location


class DirectionsResolver:
    """Resolves a spoken destination into walking directions."""

    def __init__(self, backend: GenerativeBackend, location_source: Callable[[], Optional[Location]]):
        self._backend = backend
        self._location_source = location_source

    async def __call__(self, destination: str) -> str:
        location = self._location_source()
        if location is None:
            raise LocationUnavailable()
        return await self._backend.generate(build_directions_prompt(location, destination))


class VoiceNavigationOrchestrator:
    """Drives the single mic button of the navigation view.

    IDLE -> ANNOUNCING -> LISTENING -> RESOLVING -> IDLE, with ERROR reachable
    from every busy state. Stopping the announcement goes back to IDLE.
    ERROR is a resting state like IDLE.
    """

    def __init__(
        self,
        recognizer_factory: Optional[RecognizerFactory],
        speech: SpeechOutputController,
        resolve_directions: DirectionsFn,
        *,
        alerts: Optional[AlertCenter] = None,
        announce_delay: Optional[float] = None,
        listen_timeout: Optional[float] = None,
        start_delay: Optional[float] = None,
        retry_delay: Optional[float] = None,
    ):
        self.speech = speech
        self._resolve_directions = resolve_directions
        self.alerts = alerts
        self.announce_delay = Config.NAV_ANNOUNCE_DELAY_SECONDS if announce_delay is None else announce_delay

        self.state = NavState.IDLE
        self.destination = ""
        self.directions = ""
        self.error = ""
        self.is_loading = False
        self.is_closed = False
        self.resolve_calls = 0

        self._pending: Optional[asyncio.TimerHandle] = None
        self._resolve_task: Optional[asyncio.Task] = None

        self.capture = SpeechCaptureController(
            recognizer_factory,
            self._handle_transcript,
            on_error=self._handle_capture_error,
            listen_timeout=Config.NAV_LISTEN_TIMEOUT_SECONDS if listen_timeout is None else listen_timeout,
            start_delay=start_delay,
            retry_delay=retry_delay,
        )

    @property
    def is_listening(self) -> bool:
        return self.state is NavState.LISTENING

    @property
    def mic_button_label(self) -> str:
        if self.is_loading:
            return "Getting Directions..."
        if self.state in (NavState.ANNOUNCING, NavState.LISTENING):
            return "Listening..."
        return "Tap to Speak Destination"

    def toggle_listening(self) -> bool:
        """Start a new attempt. Returns False when the tap was ignored."""
        if self.is_closed or self.is_loading:
            return False
        if self.state not in (NavState.IDLE, NavState.ERROR):
            return False
        if not self.capture.is_supported:
            self._report_error("Voice input is not supported on this device.")
            return False

        self.destination = ""
        self.directions = ""
        self.error = ""
        self.speech.stop()

        self.state = NavState.ANNOUNCING
        # The recognizer must not hear the announcement, so listening starts after it ends
        utterance = self.speech.speak(
            NAVIGATION_ANNOUNCEMENT,
            on_end=self._announcement_finished,
            on_cancel=self._announcement_cancelled,
            on_error=self._announcement_failed,
        )
        if utterance is None:
            self._announcement_finished()
        return True

    def close(self):
        """Tear down the view. A resolution already in flight is left to finish and ignored."""
        self.is_closed = True
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self.capture.close()
        self.speech.stop()
        self.state = NavState.IDLE

    # ------------------------------------------------------------------

    def _announcement_finished(self):
        if self.is_closed or self.state is not NavState.ANNOUNCING:
            return
        logger.debug("Announcement ended, waiting %.1fs before listening", self.announce_delay)
        self._pending = asyncio.get_running_loop().call_later(self.announce_delay, self._begin_listening)

    def _announcement_cancelled(self):
        if self.is_closed or self.state is not NavState.ANNOUNCING:
            return
        logger.info("Announcement stopped, not listening")
        self.state = NavState.IDLE

    def _announcement_failed(self, code: str):
        if self.is_closed or self.state is not NavState.ANNOUNCING:
            return
        self._report_error("Could not play the announcement. Please try again.")

    def _begin_listening(self):
        self._pending = None
        if self.is_closed or self.state is not NavState.ANNOUNCING:
            return
        self.state = NavState.LISTENING
        self.capture.start()

    def _handle_transcript(self, event: TranscriptEvent):
        if self.is_closed or self.state is not NavState.LISTENING:
            return
        self.destination = event.text
        self.state = NavState.RESOLVING
        self.is_loading = True
        self.resolve_calls += 1
        self._resolve_task = asyncio.ensure_future(self._resolve(event.text))

    def _handle_capture_error(self, error: VisionMateError):
        if self.is_closed or self.state not in (NavState.ANNOUNCING, NavState.LISTENING):
            return
        self._report_error(error.user_message)

    async def _resolve(self, destination: str):
        self.speech.stop()
        try:
            result = await self._resolve_directions(destination)
        except VisionMateError as e:
            message = e.user_message
        except Exception as e:
            logger.exception("Directions lookup failed: %s", e)
            message = "Failed to get directions. Please try again."
        else:
            if result and result.strip():
                message = None
            else:
                message = f'Sorry, I could not find directions to "{destination}". Please try being more specific.'
        finally:
            self.is_loading = False

        if self.is_closed:
            return
        if message is not None:
            self._report_error(message)
            return

        self.directions = result
        self.state = NavState.IDLE
        self.speech.speak(result)
        if self.alerts is not None:
            self.alerts.report(f"Directions to {destination} loaded.")
            for line in alert_lines(result):
                self.alerts.report(line)

    def _report_error(self, message: str):
        self.error = message
        self.state = NavState.ERROR
        self.speech.speak(message)
