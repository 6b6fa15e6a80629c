import asyncio

from visionmate.alerts import AlertCenter, AlertLog
from visionmate.camera import FrameCaptureService
from visionmate.conversation import ConversationSession
from visionmate.errors import BackendFailure, PermissionDenied
from visionmate.modes import AssistantMode, LiveVisionMode, ReadingMode
from visionmate.prompts import DESCRIBE_SCENE_PROMPT, READING_PROMPT
from visionmate.speech.output import SpeechOutputController

from fakes import FakeBackend, FakeCameraDevice, FakeSynthesizer, RecognizerPool, settle


def make_live_vision(backend, device=None, alerts=None):
    synth = FakeSynthesizer()
    pool = RecognizerPool()
    session = ConversationSession(backend, on_alert=alerts.report if alerts else None)
    mode = LiveVisionMode(FrameCaptureService(device or FakeCameraDevice()), session, SpeechOutputController(synth), pool)
    mode.capture.start_delay = 0
    return mode, synth, pool


def test_live_vision_task_sends_frame_and_speaks_reply():
    async def scenario():
        alerts = AlertCenter(AlertLog(capacity=5))
        backend = FakeBackend(replies=[["ALERT: ", "step down ahead."]])
        mode, synth, pool = make_live_vision(backend, alerts=alerts)
        await mode.enter()
        await settle()

        turn = await mode.run_task("describe")

        prompt, image = backend.sent[0]
        assert prompt == DESCRIBE_SCENE_PROMPT
        assert image is not None
        assert mode.session.turns[0].text == "[Describe Scene]"
        assert turn.text == "ALERT: step down ahead."
        assert synth.spoken == ["ALERT: step down ahead."]
        assert [a.message for a in alerts.alerts] == ["ALERT: step down ahead."]
        assert mode.status()["camera_ready"]

    asyncio.run(scenario())


def test_live_vision_refuses_before_camera_is_ready():
    async def scenario():
        backend = FakeBackend(replies=[["never"]])
        mode, synth, pool = make_live_vision(backend, device=FakeCameraDevice(auto_play=False))
        await mode.enter()

        assert await mode.ask("what is this?") is None
        assert mode.error == "Camera not ready yet. Please wait a second and try again."
        assert synth.spoken == [mode.error]
        assert backend.sent == []

    asyncio.run(scenario())


def test_live_vision_reports_camera_failure():
    async def scenario():
        mode, synth, pool = make_live_vision(FakeBackend(), device=FakeCameraDevice(error=PermissionDenied()))
        await mode.enter()
        return mode, synth

    mode, synth = asyncio.run(scenario())
    assert mode.error == "Could not access the camera. Please allow permission."
    assert synth.spoken == [mode.error]
    assert not mode.camera.is_on


def test_live_vision_voice_question_becomes_a_turn():
    async def scenario():
        backend = FakeBackend(replies=[["It is a red mug."]])
        mode, synth, pool = make_live_vision(backend)
        await mode.enter()
        await settle()

        assert mode.toggle_listening()
        await settle()
        assert mode.capture.is_listening
        pool.last.say("what color is the mug")
        await settle()

        assert backend.sent[0][0] == "what color is the mug"
        assert [t.text for t in mode.session.turns] == ["what color is the mug", "It is a red mug."]
        assert synth.spoken[-1] == "It is a red mug."

    asyncio.run(scenario())


def test_live_vision_close_releases_everything():
    async def scenario():
        device = FakeCameraDevice()
        mode, synth, pool = make_live_vision(FakeBackend(), device=device)
        await mode.enter()
        await settle()
        mode.toggle_listening()
        await settle()

        mode.close()
        await settle()

        assert device.streams[0].stopped
        assert pool.last.released
        assert mode.session.is_closed
        assert not mode.toggle_listening()
        assert await mode.run_task("describe") is None

    asyncio.run(scenario())


def test_assistant_speaks_errors():
    async def scenario():
        synth = FakeSynthesizer()
        session = ConversationSession(FakeBackend(replies=[[BackendFailure("Model offline.")]]))
        mode = AssistantMode(session, SpeechOutputController(synth))

        assert await mode.send("  ") is None
        turn = await mode.send("hello")

        assert "Model offline." in turn.text
        assert mode.error == "Model offline."
        assert synth.spoken == ["Model offline."]

    asyncio.run(scenario())


def test_reading_speaks_extracted_text():
    async def scenario():
        synth = FakeSynthesizer()
        backend = FakeBackend(generated=["EXIT\nPlatform 3", "", BackendFailure("Quota exceeded.")])
        mode = ReadingMode(FrameCaptureService(FakeCameraDevice()), backend, SpeechOutputController(synth))
        await mode.enter()
        await settle()

        assert await mode.scan_and_read() == "EXIT\nPlatform 3"
        assert backend.prompts[0][0] == READING_PROMPT
        assert synth.spoken[-1] == "EXIT\nPlatform 3"

        assert await mode.scan_and_read() == "No text found in the image."
        assert synth.spoken[-1] == "No text found."

        assert await mode.scan_and_read() == ""
        assert mode.error == "Quota exceeded."
        assert synth.spoken[-1] == "Quota exceeded."
        assert not mode.is_loading

    asyncio.run(scenario())


def test_reading_without_frame():
    async def scenario():
        synth = FakeSynthesizer()
        backend = FakeBackend(generated=["text"])
        mode = ReadingMode(FrameCaptureService(FakeCameraDevice(auto_play=False)), backend, SpeechOutputController(synth))
        await mode.enter()

        assert await mode.scan_and_read() == ""
        assert mode.error == "Could not capture frame from camera."
        assert backend.prompts == []

    asyncio.run(scenario())
