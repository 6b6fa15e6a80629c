"""Speech recognizer backed by the SpeechRecognition package."""

import asyncio
import logging
import threading
from typing import Optional

import speech_recognition as sr

from visionmate.errors import DeviceUnavailable
from visionmate.speech.capture import SpeechRecognizer

logger = logging.getLogger(__name__)


class SRRecognizer(SpeechRecognizer):
    """One listen-and-transcribe cycle per ``start()``, run on a worker thread.

    ``stop()`` cannot interrupt a blocking ``listen``; it marks the cycle so
    any late result is dropped, and ``on_end`` fires when the thread is done.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        phrase_time_limit: float = 8.0,
        wait_timeout: float = 6.0,
    ):
        super().__init__()
        self._loop = loop
        self.phrase_time_limit = phrase_time_limit
        self.wait_timeout = wait_timeout
        self._recognizer = sr.Recognizer()
        try:
            self._microphone = sr.Microphone()
        except (AttributeError, OSError) as e:
            # AttributeError: PyAudio is missing
            raise DeviceUnavailable(f"No microphone available: {e}") from e
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()
        self._calibrated = False

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("recognition already started")
        self._stopped.clear()
        self._thread = threading.Thread(target=self._listen_once, daemon=True)
        self._thread.start()

    def stop(self):
        self._stopped.set()

    def release(self):
        self._stopped.set()
        self._thread = None

    # ------------------------------------------------------------------

    def _listen_once(self):
        try:
            with self._microphone as source:
                if not self._calibrated:
                    self._recognizer.adjust_for_ambient_noise(source)
                    self._calibrated = True
                self._emit(self.on_start)
                audio = self._recognizer.listen(
                    source, timeout=self.wait_timeout, phrase_time_limit=self.phrase_time_limit
                )
            if self._stopped.is_set():
                return
            text = self._recognizer.recognize_google(audio, language=self.lang)
            if not self._stopped.is_set():
                self._emit(self.on_result, text, True)
        except sr.WaitTimeoutError:
            self._emit(self.on_error, "no-speech")
        except sr.UnknownValueError:
            logger.warning("Speech recognition could not understand audio")
            self._emit(self.on_error, "no-speech")
        except sr.RequestError as e:
            logger.error("Could not request results from speech recognition service: %s", e)
            self._emit(self.on_error, "network")
        except OSError as e:
            logger.error("Microphone error: %s", e)
            self._emit(self.on_error, "audio-capture")
        finally:
            self._emit(self.on_end)

    def _emit(self, handler, *args):
        if handler is not None:
            self._loop.call_soon_threadsafe(handler, *args)


def recognizer_factory(loop: asyncio.AbstractEventLoop):
    """Factory handed to speech capture controllers."""
    return lambda: SRRecognizer(loop)
