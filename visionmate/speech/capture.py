"""Speech capture: turns microphone audio into finalized transcripts."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from visionmate.config import Config
from visionmate.errors import (
    Aborted,
    DeviceUnavailable,
    EmptyTranscript,
    UnknownSpeechError,
    VisionMateError,
    speech_error_from_code,
)
from visionmate.models import MicState, TranscriptEvent

logger = logging.getLogger(__name__)


class SpeechRecognizer(ABC):
    """Abstract speech-to-text device.

    One ``start()`` runs one recognition cycle. The device reports the cycle
    through the handler attributes, always on the event loop thread:
    ``on_start()``, then any of ``on_result(text, is_final)`` and
    ``on_error(code)``, then ``on_end()``.
    """

    def __init__(self):
        self.lang = "en-US"
        self.continuous = False
        self.interim_results = False
        self.on_start: Optional[Callable[[], None]] = None
        self.on_end: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self.on_result: Optional[Callable[[str, bool], None]] = None

    @abstractmethod
    def start(self):
        """Begin a recognition cycle."""
        pass

    @abstractmethod
    def stop(self):
        """End the current cycle. Must be safe when not started."""
        pass

    def release(self):
        """Free the underlying device."""
        pass


RecognizerFactory = Callable[[], SpeechRecognizer]


class SpeechCaptureController:
    """Owns exactly one recognizer and drives its start/stop lifecycle.

    ``on_result`` is called with a TranscriptEvent at most once per listening
    cycle. ``on_error`` receives every error that leaves the controller in
    ``MicState.ERROR``; aborted cycles are retried silently up to
    ``max_retries`` times before they surface.
    """

    def __init__(
        self,
        recognizer_factory: Optional[RecognizerFactory],
        on_result: Callable[[TranscriptEvent], None],
        *,
        on_error: Optional[Callable[[VisionMateError], None]] = None,
        lang: Optional[str] = None,
        start_delay: Optional[float] = None,
        retry_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        listen_timeout: Optional[float] = None,
    ):
        self._factory = recognizer_factory
        self._on_result = on_result
        self._on_error = on_error
        self.lang = lang or Config.SPEECH_LANG
        self.start_delay = Config.SPEECH_START_DELAY_SECONDS if start_delay is None else start_delay
        self.retry_delay = Config.SPEECH_ABORT_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.max_retries = Config.SPEECH_MAX_ABORT_RETRIES if max_retries is None else max_retries
        self.listen_timeout = listen_timeout or None

        self.state = MicState.IDLE
        self.error: Optional[VisionMateError] = None
        self.last_transcript: Optional[TranscriptEvent] = None

        self._starting = False
        self._stop_requested = False
        self._result_delivered = False
        self._abort_retries = 0
        self._pending: Optional[asyncio.TimerHandle] = None
        self._timeout: Optional[asyncio.TimerHandle] = None

        self._recognizer: Optional[SpeechRecognizer] = None
        self._recognizer = self._create_recognizer()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_listening(self) -> bool:
        return self.state is MicState.LISTENING

    @property
    def is_supported(self) -> bool:
        return self._recognizer is not None

    @property
    def abort_retries(self) -> int:
        return self._abort_retries

    def start(self):
        """Request a listening cycle after the start debounce.

        No-op while listening or unsupported.
        """
        if self._recognizer is None:
            return
        if self.is_listening or self._starting:
            return
        self.error = None
        if self.state is MicState.ERROR:
            self.state = MicState.IDLE
        self._abort_retries = 0
        self._cancel_pending()
        self._schedule(self.start_delay, self._start_device)

    def stop(self):
        """Stop listening. Idempotent."""
        self._cancel_pending()
        if self._recognizer is None:
            return
        if self.is_listening or self._starting:
            self._stop_requested = True
            self._recognizer.stop()

    def close(self):
        """Stop and release the recognizer."""
        self.stop()
        self._cancel_timeout()
        recognizer, self._recognizer = self._recognizer, None
        if recognizer is not None:
            recognizer.release()
        self._starting = False
        if self.state is MicState.LISTENING:
            self.state = MicState.IDLE

    def reset(self):
        """Replace the recognizer with a fresh instance."""
        self.close()
        self.state = MicState.IDLE
        self.error = None
        self._recognizer = self._create_recognizer()

    # ------------------------------------------------------------------
    # Recognizer wiring
    # ------------------------------------------------------------------

    def _create_recognizer(self) -> Optional[SpeechRecognizer]:
        # Owners may still be constructing, so on_error is not called from here.
        if self._factory is None:
            self.state = MicState.ERROR
            self.error = DeviceUnavailable("Speech recognition is not supported on this device.")
            return None
        try:
            recognizer = self._factory()
        except DeviceUnavailable as e:
            logger.warning("Speech recognizer unavailable: %s", e)
            self.state = MicState.ERROR
            self.error = e
            return None

        recognizer.lang = self.lang
        recognizer.continuous = False
        recognizer.interim_results = False
        recognizer.on_start = lambda: self._handle_start(recognizer)
        recognizer.on_end = lambda: self._handle_end(recognizer)
        recognizer.on_error = lambda code: self._handle_error(recognizer, code)
        recognizer.on_result = lambda text, is_final=True: self._handle_result(recognizer, text, is_final)
        return recognizer

    def _start_device(self):
        self._pending = None
        recognizer = self._recognizer
        if recognizer is None or self.is_listening or self._starting:
            return
        self._starting = True
        self._stop_requested = False
        self._result_delivered = False
        try:
            recognizer.start()
        except Exception as e:
            logger.error("Failed to start speech recognition: %s", e)
            self._starting = False
            self._fail(UnknownSpeechError("start-failed", "Failed to start speech recognition."))

    def _retry_start(self):
        self._pending = None
        if self.is_listening:
            return
        self._start_device()

    # ------------------------------------------------------------------
    # Device events
    # ------------------------------------------------------------------

    def _handle_start(self, recognizer: SpeechRecognizer):
        if recognizer is not self._recognizer:
            return
        self._starting = False
        self.state = MicState.LISTENING
        self.error = None
        logger.info("Mic is live, start speaking")
        if self.listen_timeout:
            self._cancel_timeout()
            self._timeout = asyncio.get_running_loop().call_later(self.listen_timeout, self._handle_timeout)

    def _handle_end(self, recognizer: SpeechRecognizer):
        if recognizer is not self._recognizer:
            return
        self._starting = False
        self._cancel_timeout()
        if self.state is not MicState.LISTENING:
            return
        logger.debug("Recognition ended")
        self.state = MicState.IDLE
        if not self._result_delivered and not self._stop_requested:
            self._fail(EmptyTranscript())

    def _handle_error(self, recognizer: SpeechRecognizer, code: str):
        if recognizer is not self._recognizer:
            return
        self._starting = False
        self._cancel_timeout()
        logger.warning("Speech recognition error: %s", code)
        if self._stop_requested:
            if self.state is MicState.LISTENING:
                self.state = MicState.IDLE
            return

        error = speech_error_from_code(code)
        if isinstance(error, Aborted):
            if self._abort_retries < self.max_retries:
                self._abort_retries += 1
                self.state = MicState.IDLE
                logger.info(
                    "Recognition aborted, restarting in %.1fs (attempt %d/%d)",
                    self.retry_delay, self._abort_retries, self.max_retries,
                )
                self._cancel_pending()
                self._schedule(self.retry_delay, self._retry_start)
                return
            logger.warning("Recognition aborted %d times, giving up", self._abort_retries)

        self._fail(error)

    def _handle_result(self, recognizer: SpeechRecognizer, text: str, is_final: bool = True):
        if recognizer is not self._recognizer or not is_final:
            return
        if self._result_delivered:
            return
        transcript = (text or "").strip()
        if not transcript:
            logger.warning("Empty transcript received")
            return
        logger.info("Recognized speech: %s", transcript[:80])
        self._result_delivered = True
        self._abort_retries = 0
        event = TranscriptEvent(text=transcript)
        self.last_transcript = event
        recognizer.stop()
        self._on_result(event)

    def _handle_timeout(self):
        self._timeout = None
        if self._recognizer is not None and self.is_listening:
            logger.info("Listening timed out after %.1fs", self.listen_timeout)
            self._recognizer.stop()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, error: VisionMateError):
        self.state = MicState.ERROR
        self.error = error
        if self._on_error is not None:
            self._on_error(error)

    def _schedule(self, delay: float, callback: Callable[[], None]):
        self._pending = asyncio.get_running_loop().call_later(delay, callback)

    def _cancel_pending(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _cancel_timeout(self):
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None
