"""FastAPI control surface for the VisionMate agent.

A thin UI or a hardware button bridge calls these endpoints; all device and
conversation work happens in the Runtime on the server's event loop.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional, Set, Type, TypeVar

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from visionmate.alerts import AlertCenter
from visionmate.backends import create_backend
from visionmate.backends.base import GenerativeBackend
from visionmate.camera import CameraDevice, FrameCaptureService
from visionmate.config import Config
from visionmate.conversation import ConversationSession
from visionmate.errors import AuthError, DeviceUnavailable, VisionMateError
from visionmate.models import ConversationTurn
from visionmate.modes import AssistantMode, LiveVisionMode, Mode, NavigationMode, ReadingMode
from visionmate.navigation import DirectionsResolver, LocationTracker, VoiceNavigationOrchestrator
from visionmate.prompts import (
    ASSISTANT_GREETING,
    ASSISTANT_SYSTEM_INSTRUCTION,
    LIVE_VISION_GREETING,
    VISION_SYSTEM_INSTRUCTION,
    VISION_TASKS,
)
from visionmate.services.auth import AuthService
from visionmate.services.persistence import BackgroundWrites, PersistenceClient
from visionmate.speech.capture import RecognizerFactory
from visionmate.speech.output import SpeechOutputController

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Mode)


class Runtime:
    """Shared collaborators plus the one active mode."""

    MODES = ("live_vision", "assistant", "reading", "navigation")

    def __init__(
        self,
        *,
        backend: GenerativeBackend,
        speech: SpeechOutputController,
        camera_device: Optional[CameraDevice],
        recognizer_factory: Optional[RecognizerFactory],
        auth: AuthService,
        persistence: Optional[PersistenceClient] = None,
        alerts: Optional[AlertCenter] = None,
        location: Optional[LocationTracker] = None,
    ):
        self.backend = backend
        self.speech = speech
        self.camera_device = camera_device
        self.recognizer_factory = recognizer_factory
        self.auth = auth
        self.persistence = persistence
        self.writes = BackgroundWrites()
        self.alerts = alerts or AlertCenter(store=persistence, user_id=lambda: auth.user_id, writes=self.writes)
        self.location = location or LocationTracker()
        self.mode: Optional[Mode] = None
        self._subscribers: Set[asyncio.Queue] = set()

    async def enter(self, name: str) -> Mode:
        self.exit()
        mode = self._create_mode(name)
        self.mode = mode
        await mode.enter()
        logger.info("Entered %s mode", name)
        return mode

    def exit(self):
        mode, self.mode = self.mode, None
        if mode is not None:
            mode.close()
            logger.info("Left %s mode", mode.name)

    def active(self, mode_type: Type[M]) -> M:
        if not isinstance(self.mode, mode_type):
            raise HTTPException(status_code=409, detail=f"{mode_type.name} mode is not active")
        return self.mode

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue):
        self._subscribers.discard(q)

    async def shutdown(self):
        self.exit()
        await self.writes.flush()

    # ------------------------------------------------------------------

    def _create_mode(self, name: str) -> Mode:
        if name == "live_vision":
            session = self._session(VISION_SYSTEM_INSTRUCTION, LIVE_VISION_GREETING, on_alert=self.alerts.report)
            return LiveVisionMode(FrameCaptureService(self.camera_device), session, self.speech, self.recognizer_factory)
        if name == "assistant":
            session = self._session(ASSISTANT_SYSTEM_INSTRUCTION, ASSISTANT_GREETING)
            return AssistantMode(session, self.speech)
        if name == "reading":
            return ReadingMode(FrameCaptureService(self.camera_device), self.backend, self.speech)
        if name == "navigation":
            orchestrator = VoiceNavigationOrchestrator(
                self.recognizer_factory,
                self.speech,
                DirectionsResolver(self.backend, self.location.current),
                alerts=self.alerts,
            )
            return NavigationMode(orchestrator, self.speech, self.location.current)
        raise HTTPException(status_code=404, detail=f"Unknown mode '{name}'. Valid: {', '.join(self.MODES)}")

    def _session(self, system_instruction: str, greeting: str, on_alert=None) -> ConversationSession:
        return ConversationSession(
            self.backend,
            system_instruction=system_instruction,
            greeting=greeting,
            chat_store=self.persistence,
            user_id=lambda: self.auth.user_id,
            on_alert=on_alert,
            on_update=self._publish,
            writes=self.writes,
        )

    def _publish(self, turn: ConversationTurn):
        for q in list(self._subscribers):
            q.put_nowait(turn.to_dict())


def build_runtime(loop: asyncio.AbstractEventLoop) -> Runtime:
    """Wire the real devices, backend and services from Config."""
    from visionmate.devices.opencv_camera import OpenCVCamera
    from visionmate.devices.pyttsx3_synth import Pyttsx3Synthesizer
    from visionmate.devices.sr_recognizer import recognizer_factory

    missing = Config.validate()
    if missing:
        logger.warning("Missing configuration: %s", ", ".join(missing))

    try:
        synthesizer = Pyttsx3Synthesizer(loop)
    except DeviceUnavailable as e:
        logger.error("Speech output disabled: %s", e)
        synthesizer = None

    auth = AuthService()
    return Runtime(
        backend=create_backend(Config.BACKEND_TYPE),
        speech=SpeechOutputController(synthesizer),
        camera_device=OpenCVCamera(),
        recognizer_factory=recognizer_factory(loop),
        auth=auth,
        persistence=PersistenceClient(token_provider=lambda: auth.token),
    )


# Request models
class ChatRequest(BaseModel):
    message: str


class LocationRequest(BaseModel):
    lat: float
    lon: float


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileRequest(BaseModel):
    name: str
    email: str


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "runtime", None) is None:
            app.state.runtime = build_runtime(asyncio.get_running_loop())
        yield
        await app.state.runtime.shutdown()

    app = FastAPI(title="VisionMate", lifespan=lifespan)
    app.state.runtime = runtime

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def rt() -> Runtime:
        return app.state.runtime

    @app.exception_handler(VisionMateError)
    async def visionmate_error(request: Request, exc: VisionMateError):
        status = 401 if isinstance(exc, AuthError) else 400
        return JSONResponse(status_code=status, content={"error": exc.user_message})

    @app.get("/status")
    async def status():
        r = rt()
        return {
            "mode": r.mode.status() if r.mode else None,
            "user": r.auth.user.to_dict() if r.auth.user else None,
            "speaking": r.speech.is_speaking,
            "paused": r.speech.is_paused,
        }

    # --------- Modes ---------

    @app.post("/modes/{name}/enter")
    async def enter_mode(name: str):
        mode = await rt().enter(name)
        return mode.status()

    @app.post("/modes/exit")
    async def exit_mode():
        rt().exit()
        return {"mode": None}

    # --------- Live vision ---------

    @app.post("/vision/mic")
    async def vision_mic():
        mode = rt().active(LiveVisionMode)
        mode.toggle_listening()
        return mode.status()

    @app.post("/vision/{task}")
    async def vision_task(task: str):
        mode = rt().active(LiveVisionMode)
        if task not in VISION_TASKS:
            raise HTTPException(status_code=404, detail=f"Unknown task '{task}'")
        turn = await mode.run_task(task)
        return {"turn": turn.to_dict() if turn else None, "error": mode.error}

    # --------- Assistant ---------

    @app.post("/assistant/chat")
    async def assistant_chat(request: ChatRequest):
        mode = rt().active(AssistantMode)
        turn = await mode.send(request.message)
        return {
            "response": turn.text if turn else None,
            "history": mode.session.get_history(),
        }

    # --------- Conversation ---------

    def _session_of(mode: Optional[Mode]) -> ConversationSession:
        session = getattr(mode, "session", None)
        if session is None:
            raise HTTPException(status_code=409, detail="No conversation is active")
        return session

    @app.get("/conversation")
    async def conversation():
        session = _session_of(rt().mode)
        return {"history": session.get_history(), "loading": session.is_loading, "error": session.error}

    @app.get("/conversation/stream")
    async def conversation_stream():
        """Stream turn updates via Server-Sent Events."""
        runtime = rt()
        q = runtime.subscribe()

        async def event_generator():
            try:
                while True:
                    try:
                        update = await asyncio.wait_for(q.get(), timeout=15.0)
                        yield f"data: {json.dumps(update)}\n\n"
                    except asyncio.TimeoutError:
                        # Send heartbeat to keep connection alive
                        yield ": heartbeat\n\n"
            finally:
                runtime.unsubscribe(q)

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable buffering for nginx
            }
        )

    # --------- Reading ---------

    @app.post("/reading/scan")
    async def reading_scan():
        mode = rt().active(ReadingMode)
        await mode.scan_and_read()
        return mode.status()

    # --------- Speech output ---------

    @app.post("/speech/{action}")
    async def speech_action(action: str):
        speech = rt().speech
        actions = {
            "pause": speech.pause,
            "resume": speech.resume,
            "stop": speech.stop,
            "repeat": speech.repeat_last,
        }
        if action not in actions:
            raise HTTPException(status_code=404, detail=f"Unknown speech action '{action}'")
        actions[action]()
        return {"speaking": speech.is_speaking, "paused": speech.is_paused}

    # --------- Navigation ---------

    @app.post("/navigation/mic")
    async def navigation_mic():
        mode = rt().active(NavigationMode)
        accepted = mode.toggle_listening()
        return {"accepted": accepted, **mode.status()}

    @app.post("/navigation/location")
    async def navigation_location(request: LocationRequest):
        location = rt().location.update(request.lat, request.lon)
        return location.to_dict()

    @app.get("/navigation")
    async def navigation_status():
        return rt().active(NavigationMode).status()

    # --------- Alerts ---------

    @app.get("/alerts")
    async def alerts():
        return {"alerts": [a.to_dict() for a in rt().alerts.alerts]}

    # --------- Auth ---------

    @app.post("/auth/register")
    async def register(request: RegisterRequest):
        user = await rt().auth.register(request.name, request.email, request.password)
        return {"user": user.to_dict()}

    @app.post("/auth/login")
    async def login(request: LoginRequest):
        user = await rt().auth.login(request.email, request.password)
        return {"user": user.to_dict()}

    @app.post("/auth/logout")
    async def logout():
        rt().auth.logout()
        return {"user": None}

    @app.put("/profile")
    async def update_profile(request: ProfileRequest):
        user = await rt().auth.update_profile(request.name, request.email)
        return {"user": user.to_dict()}

    return app
