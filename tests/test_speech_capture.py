import asyncio

from visionmate.errors import (
    Aborted,
    DeviceUnavailable,
    EmptyTranscript,
    MicPermissionDenied,
    NoSpeechDetected,
    UnknownSpeechError,
)
from visionmate.models import MicState
from visionmate.speech.capture import SpeechCaptureController

from fakes import RecognizerPool, settle


def make_controller(pool=None, **kwargs):
    pool = pool if pool is not None else RecognizerPool()
    results, errors = [], []
    options = {"start_delay": 0, "retry_delay": 0, "max_retries": 3}
    options.update(kwargs)
    controller = SpeechCaptureController(
        pool, results.append, on_error=errors.append, **options
    )
    return controller, pool, results, errors


def test_final_result_delivered_once_and_device_stopped():
    async def scenario():
        controller, pool, results, errors = make_controller()
        controller.start()
        await settle()
        assert controller.state is MicState.LISTENING

        recognizer = pool.last
        recognizer.say("  what is in front of me  ")
        recognizer.say("a second final result")
        await settle()

        assert [r.text for r in results] == ["what is in front of me"]
        assert recognizer.stop_calls == 1
        assert controller.state is MicState.IDLE
        assert controller.last_transcript.text == "what is in front of me"
        assert errors == []

    asyncio.run(scenario())


def test_interim_and_blank_results_are_ignored():
    async def scenario():
        controller, pool, results, errors = make_controller()
        controller.start()
        await settle()

        pool.last.on_result("partial", False)
        pool.last.say("   ")
        assert results == []
        assert controller.is_listening

    asyncio.run(scenario())


def test_start_is_debounced_and_never_runs_two_recognizers():
    async def scenario():
        controller, pool, results, errors = make_controller(start_delay=0.01)
        for _ in range(5):
            controller.start()
        await settle(0.05)
        controller.start()
        controller.stop()
        controller.start()
        await settle(0.05)

        assert len(pool.created) == 1
        assert pool.max_active <= 1

    asyncio.run(scenario())


def test_aborted_cycles_retry_until_the_cap():
    async def scenario():
        controller, pool, results, errors = make_controller(max_retries=2)
        controller.start()
        await settle()

        recognizer = pool.last
        recognizer.fail("aborted")
        await settle()
        assert controller.abort_retries == 1
        assert controller.state is MicState.LISTENING
        assert errors == []

        recognizer.fail("aborted")
        await settle()
        assert controller.abort_retries == 2

        recognizer.fail("aborted")
        await settle()
        assert controller.state is MicState.ERROR
        assert len(errors) == 1
        assert isinstance(errors[0], Aborted)
        assert recognizer.start_calls == 3

    asyncio.run(scenario())


def test_successful_result_resets_abort_counter():
    async def scenario():
        controller, pool, results, errors = make_controller()
        controller.start()
        await settle()
        pool.last.fail("aborted")
        await settle()
        assert controller.abort_retries == 1

        pool.last.say("hello")
        await settle()
        assert controller.abort_retries == 0

    asyncio.run(scenario())


def test_device_errors_are_mapped_and_surfaced():
    cases = [
        ("no-speech", NoSpeechDetected, "No speech detected. Please try again."),
        ("not-allowed", MicPermissionDenied, None),
        ("audio-capture", UnknownSpeechError, "Speech error: audio-capture"),
    ]

    async def scenario(code):
        controller, pool, results, errors = make_controller()
        controller.start()
        await settle()
        pool.last.fail(code)
        await settle()
        return controller, errors

    for code, error_type, message in cases:
        controller, errors = asyncio.run(scenario(code))
        assert controller.state is MicState.ERROR
        assert len(errors) == 1
        assert isinstance(errors[0], error_type)
        if message:
            assert errors[0].user_message == message


def test_cycle_without_result_reports_empty_transcript():
    async def scenario():
        controller, pool, results, errors = make_controller()
        controller.start()
        await settle()
        pool.last.end()
        await settle()

        assert controller.state is MicState.ERROR
        assert isinstance(controller.error, EmptyTranscript)
        assert controller.error.user_message == "I didn't catch that clearly. Please try again."
        assert results == []

    asyncio.run(scenario())


def test_manual_stop_is_idempotent_and_silent():
    async def scenario():
        controller, pool, results, errors = make_controller()
        controller.stop()
        controller.start()
        await settle()

        controller.stop()
        controller.stop()
        await settle()

        assert controller.state is MicState.IDLE
        assert errors == []

    asyncio.run(scenario())


def test_listen_timeout_stops_the_device():
    async def scenario():
        controller, pool, results, errors = make_controller(listen_timeout=0.01)
        controller.start()
        await settle(0.05)

        assert pool.last.stop_calls == 1
        assert controller.state is MicState.ERROR
        assert isinstance(errors[0], EmptyTranscript)

    asyncio.run(scenario())


def test_can_start_again_after_error():
    async def scenario():
        controller, pool, results, errors = make_controller()
        controller.start()
        await settle()
        pool.last.fail("no-speech")
        await settle()
        assert controller.state is MicState.ERROR

        controller.start()
        await settle()
        assert controller.state is MicState.LISTENING
        assert controller.error is None

    asyncio.run(scenario())


def test_unsupported_device_is_reported_without_starting():
    def broken_factory():
        raise DeviceUnavailable("No microphone found.")

    async def scenario(factory):
        controller = SpeechCaptureController(factory, lambda event: None, start_delay=0)
        controller.start()
        await settle()
        return controller

    controller = asyncio.run(scenario(None))
    assert not controller.is_supported
    assert controller.state is MicState.ERROR
    assert controller.error.user_message == "Speech recognition is not supported on this device."

    controller = asyncio.run(scenario(broken_factory))
    assert not controller.is_supported
    assert controller.error.user_message == "No microphone found."


def test_reset_ignores_events_from_the_old_recognizer():
    async def scenario():
        controller, pool, results, errors = make_controller()
        controller.start()
        await settle()
        old = pool.last

        controller.reset()
        assert old.released
        old.say("late result")
        old.fail("network")
        await settle()

        assert results == []
        assert errors == []
        assert controller.state is MicState.IDLE
        assert len(pool.created) == 2

    asyncio.run(scenario())
