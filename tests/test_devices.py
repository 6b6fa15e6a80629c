import asyncio
import queue

from visionmate.devices import pyttsx3_synth
from visionmate.speech.output import Utterance


class FakeEngine:
    def __init__(self):
        self.pending = []
        self.spoken = []

    def setProperty(self, name, value):
        pass

    def getProperty(self, name):
        return []

    def say(self, text):
        self.pending.append(text)

    def runAndWait(self):
        self.spoken.extend(self.pending)
        self.pending.clear()

    def stop(self):
        self.pending.clear()


class HandoffQueue(queue.Queue):
    """Runs ``after_get`` once, on the consumer thread, right after an item is taken."""

    after_get = None

    def get(self, *args, **kwargs):
        item = super().get(*args, **kwargs)
        hook, HandoffQueue.after_get = HandoffQueue.after_get, None
        if hook is not None:
            hook()
        return item


def test_cancel_drops_an_utterance_already_taken_by_the_worker(monkeypatch):
    engine = FakeEngine()
    monkeypatch.setattr(pyttsx3_synth.pyttsx3, "init", lambda: engine)
    monkeypatch.setattr(pyttsx3_synth.queue, "Queue", HandoffQueue)

    async def scenario():
        synth = pyttsx3_synth.Pyttsx3Synthesizer(asyncio.get_running_loop())

        def interrupt():
            synth.cancel()
            synth.speak(Utterance(text="fresh"))

        HandoffQueue.after_get = interrupt
        synth.speak(Utterance(text="stale"))

        for _ in range(100):
            if engine.spoken:
                break
            await asyncio.sleep(0.01)
        synth.shutdown()

    asyncio.run(scenario())
    assert engine.spoken == ["fresh"]
