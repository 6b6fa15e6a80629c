"""Speech input and output controllers."""

from visionmate.speech.capture import RecognizerFactory, SpeechCaptureController, SpeechRecognizer
from visionmate.speech.output import SpeechOutputController, SpeechSynthesizer, Utterance


__all__ = [
    "RecognizerFactory",
    "SpeechCaptureController",
    "SpeechRecognizer",
    "SpeechOutputController",
    "SpeechSynthesizer",
    "Utterance",
]
