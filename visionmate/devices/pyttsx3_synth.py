"""pyttsx3 text-to-speech device."""

import asyncio
import logging
import queue
import threading
from typing import Optional, Tuple

import pyttsx3

from visionmate.config import Config
from visionmate.errors import DeviceUnavailable
from visionmate.speech.output import SpeechSynthesizer, Utterance

logger = logging.getLogger(__name__)


class Pyttsx3Synthesizer(SpeechSynthesizer):
    """Speaks on a dedicated thread, since ``runAndWait`` blocks.

    pyttsx3 cannot pause mid-sentence: pause stops playback and resume speaks
    the utterance again from the start.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, rate: Optional[int] = None):
        self._loop = loop
        try:
            self.engine = pyttsx3.init()
        except Exception as e:
            raise DeviceUnavailable(f"Speech output is not available: {e}") from e

        # Slower than the default for a more natural voice
        self.engine.setProperty("rate", rate or Config.TTS_RATE)
        self.engine.setProperty("volume", 1.0)
        for voice in self.engine.getProperty("voices"):
            if "en-us" in voice.id.lower() or "english" in (voice.name or "").lower():
                self.engine.setProperty("voice", voice.id)
                logger.info("pyttsx3 initialized with voice: %s", voice.name)
                break

        self._queue: "queue.Queue[Optional[Tuple[int, Utterance]]]" = queue.Queue()
        self._current: Optional[Utterance] = None
        self._paused: Optional[Utterance] = None
        # Bumped by cancel(); queued utterances from an older generation are dropped
        self._generation = 0
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._speech_processor, daemon=True)
        self._thread.start()

    def speak(self, utterance: Utterance):
        with self._lock:
            self._queue.put((self._generation, utterance))

    def cancel(self):
        with self._lock:
            self._generation += 1
            current, self._current = self._current, None
            self._paused = None
            self._drain()
            if current is not None:
                self.engine.stop()
        if current is not None:
            self._emit(current.on_end)

    def pause(self):
        with self._lock:
            current, self._current = self._current, None
            self._paused = current
            if current is not None:
                self.engine.stop()
        if current is not None:
            self._emit(current.on_pause)

    def resume(self):
        with self._lock:
            paused, self._paused = self._paused, None
            if paused is not None:
                self._queue.put((self._generation, paused))
        if paused is not None:
            self._emit(paused.on_resume)

    def shutdown(self):
        self.cancel()
        self._queue.put(None)
        self._thread.join(timeout=2)

    # ------------------------------------------------------------------

    def _speech_processor(self):
        while True:
            item = self._queue.get()
            if item is None:
                break
            generation, utterance = item
            try:
                # say() only queues inside the engine, and engine.stop() clears that queue
                with self._lock:
                    if generation != self._generation:
                        continue
                    self._current = utterance
                    self.engine.say(utterance.text)
                self._emit(utterance.on_start)
                self.engine.runAndWait()
            except RuntimeError as e:
                logger.error("Error in pyttsx3 runAndWait thread: %s", e)
                with self._lock:
                    if self._current is utterance:
                        self._current = None
                self._emit(utterance.on_error, str(e))
                continue
            with self._lock:
                finished = self._current is utterance
                if finished:
                    self._current = None
            if finished:
                self._emit(utterance.on_end)

    def _drain(self):
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def _emit(self, handler, *args):
        if handler is not None:
            self._loop.call_soon_threadsafe(handler, *args)
