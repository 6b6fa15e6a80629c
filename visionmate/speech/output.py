"""Speech output: one utterance at a time through a text-to-speech device."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class Utterance:
    """A piece of text queued on a synthesizer.

    The synthesizer calls the ``on_*`` handlers on the event loop thread as
    playback progresses. ``on_end`` is called once, when playback finishes or
    is cancelled.
    """
    text: str
    rate: float = 1.0
    on_start: Optional[Callable[[], None]] = field(default=None, repr=False)
    on_end: Optional[Callable[[], None]] = field(default=None, repr=False)
    on_pause: Optional[Callable[[], None]] = field(default=None, repr=False)
    on_resume: Optional[Callable[[], None]] = field(default=None, repr=False)
    on_error: Optional[Callable[[str], None]] = field(default=None, repr=False)


class SpeechSynthesizer(ABC):
    """Abstract text-to-speech device."""

    @abstractmethod
    def speak(self, utterance: Utterance):
        pass

    @abstractmethod
    def cancel(self):
        """Drop the current utterance. Safe when idle."""
        pass

    @abstractmethod
    def pause(self):
        pass

    @abstractmethod
    def resume(self):
        pass


class SpeechOutputController:
    """Serializes spoken output and tracks playback state from device events."""

    def __init__(self, synthesizer: Optional[SpeechSynthesizer]):
        self._synth = synthesizer
        self._current: Optional[Utterance] = None
        self._on_end = None
        self._on_cancel = None
        self._on_error = None
        self._speaking = False
        self._paused = False
        self.last_spoken = ""

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_supported(self) -> bool:
        return self._synth is not None

    def speak(
        self,
        text: str,
        on_end: Optional[Callable[[], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> Optional[Utterance]:
        """Speak ``text``, cancelling anything already playing.

        Exactly one of the callbacks runs for an accepted utterance:
        ``on_end`` if it finishes on its own, ``on_cancel`` if ``stop()`` or a
        newer ``speak()`` cuts it off, ``on_error`` if the device fails.
        """
        if self._synth is None:
            logger.warning("Speech output not available, dropping: %s", (text or "")[:50])
            return None
        if not text or not text.strip():
            logger.warning("Attempted to speak empty text")
            return None

        self.stop()

        utterance = Utterance(text=text)
        utterance.on_start = lambda: self._handle_start(utterance)
        utterance.on_end = lambda: self._handle_end(utterance)
        utterance.on_pause = lambda: self._handle_pause(utterance)
        utterance.on_resume = lambda: self._handle_resume(utterance)
        utterance.on_error = lambda code: self._handle_error(utterance, code)
        self._current = utterance
        self._on_end = on_end
        self._on_cancel = on_cancel
        self._on_error = on_error
        self.last_spoken = text

        logger.info("Speaking: %s", text[:50])
        self._synth.speak(utterance)
        return utterance

    def pause(self):
        if not self._speaking or self._paused:
            return
        self._synth.pause()

    def resume(self):
        if not self._speaking or not self._paused:
            return
        self._synth.resume()

    def stop(self):
        """Cancel playback immediately. Safe at any time."""
        on_cancel = self._on_cancel if self._current is not None else None
        self._clear()
        if self._synth is not None:
            self._synth.cancel()
        if on_cancel is not None:
            on_cancel()

    def repeat_last(self) -> Optional[Utterance]:
        if not self.last_spoken:
            return None
        return self.speak(self.last_spoken)

    # ------------------------------------------------------------------
    # Device events; events of cancelled utterances are ignored
    # ------------------------------------------------------------------

    def _handle_start(self, utterance: Utterance):
        if utterance is not self._current:
            return
        self._speaking = True
        self._paused = False

    def _handle_end(self, utterance: Utterance):
        if utterance is not self._current:
            return
        callback = self._on_end
        self._clear()
        if callback is not None:
            callback()

    def _handle_pause(self, utterance: Utterance):
        if utterance is self._current:
            self._paused = True

    def _handle_resume(self, utterance: Utterance):
        if utterance is self._current:
            self._paused = False

    def _handle_error(self, utterance: Utterance, code: str):
        if utterance is not self._current:
            return
        logger.warning("Speech synthesis error: %s", code)
        callback = self._on_error
        self._clear()
        if callback is not None:
            callback(code)

    def _clear(self):
        self._current = None
        self._on_end = None
        self._on_cancel = None
        self._on_error = None
        self._speaking = False
        self._paused = False
