import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Set, Tuple

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from . import context
from .errors import InitializationFailure, PermissionDenied, SessionStateError
from .models import SessionState, emotion_state_to_dict
from .session_manager import SessionCoordinator, SessionStatus

logger = logging.getLogger(__name__)

CoordinatorFactory = Callable[..., SessionCoordinator]
SourcesFactory = Callable[[], Tuple[Any, Any]]


class MessageRequest(BaseModel):
    text: str


class ProviderRequest(BaseModel):
    provider: str


class LanguageRequest(BaseModel):
    language: str


class EventBroadcaster:
    """Fans session events out to every connected websocket."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self.subscribers: Set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self.max_queue_size)
        self.subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        self.subscribers.discard(queue)

    def publish(self, event: Dict[str, Any]):
        for queue in list(self.subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping event for slow websocket subscriber")


def state_payload(coordinator: SessionCoordinator) -> Dict[str, Any]:
    data = coordinator.state.to_dict()
    data["status"] = coordinator.status.value
    return data


def create_app(coordinator_factory: Optional[CoordinatorFactory] = None,
               sources_factory: Optional[SourcesFactory] = None) -> FastAPI:
    """
    Build the HTTP and websocket surface around one session coordinator.

    Args:
        coordinator_factory: Builds a coordinator from the two callbacks;
            defaults to the devices and clients configured from the environment
        sources_factory: Returns the (video, audio) sources to initialize with
    """
    use_defaults = coordinator_factory is None
    coordinator_factory = coordinator_factory or context.create_coordinator
    sources_factory = sources_factory or context.get_capture_sources

    app = FastAPI(
        title="Empathic Conversation Agent",
        description="Facial and vocal emotion tracking feeding an emotion-aware chat",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    broadcaster = EventBroadcaster()
    app.state.broadcaster = broadcaster
    app.state.coordinator = None

    def on_emotion_change(state: SessionState):
        broadcaster.publish({
            "type": "emotion_update",
            "data": emotion_state_to_dict(state.facial, state.vocal, state.fused),
        })

    def on_transcription(text: str, is_final: bool):
        broadcaster.publish({
            "type": "transcription",
            "data": {"text": text, "is_final": is_final},
        })

    def get_coordinator() -> SessionCoordinator:
        coordinator = app.state.coordinator
        if coordinator is None or coordinator.status is SessionStatus.DISPOSED:
            coordinator = coordinator_factory(
                on_emotion_change=on_emotion_change,
                on_transcription=on_transcription,
            )
            app.state.coordinator = coordinator
        return coordinator

    @app.on_event("startup")
    async def startup_event():
        if use_defaults and context.get_settings() is None:
            context.init_all_services()
        get_coordinator()
        logger.info("Session coordinator ready")

    @app.on_event("shutdown")
    async def shutdown_event():
        coordinator = app.state.coordinator
        if coordinator is not None:
            coordinator.dispose()

    @app.get("/health")
    async def health_check():
        coordinator = app.state.coordinator
        return {
            "status": "healthy",
            "session": coordinator.status.value if coordinator else None,
        }

    @app.get("/session/state")
    async def get_state():
        return state_payload(get_coordinator())

    @app.post("/session/initialize")
    async def initialize_session():
        coordinator = get_coordinator()
        video_source, audio_source = sources_factory()
        try:
            await coordinator.initialize(video_source, audio_source)
        except SessionStateError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except PermissionDenied as e:
            raise HTTPException(status_code=403, detail=str(e))
        except InitializationFailure as e:
            raise HTTPException(status_code=500, detail=str(e))
        return state_payload(coordinator)

    @app.post("/session/face-detection/start")
    async def start_face_detection():
        coordinator = get_coordinator()
        coordinator.start_face_detection()
        return state_payload(coordinator)

    @app.post("/session/face-detection/stop")
    async def stop_face_detection():
        coordinator = get_coordinator()
        coordinator.stop_face_detection()
        return state_payload(coordinator)

    @app.post("/session/listening/start")
    async def start_listening():
        coordinator = get_coordinator()
        coordinator.start_listening()
        return state_payload(coordinator)

    @app.post("/session/listening/stop")
    async def stop_listening():
        coordinator = get_coordinator()
        coordinator.stop_listening()
        return state_payload(coordinator)

    @app.post("/session/messages")
    async def send_message(req: MessageRequest):
        if not req.text.strip():
            raise HTTPException(status_code=400, detail="Message text is required.")
        coordinator = get_coordinator()
        await coordinator.send_message(req.text)
        return state_payload(coordinator)

    @app.delete("/session/messages")
    async def clear_messages():
        coordinator = get_coordinator()
        coordinator.clear_messages()
        return state_payload(coordinator)

    @app.put("/session/provider")
    async def set_provider(req: ProviderRequest):
        coordinator = get_coordinator()
        try:
            coordinator.set_provider(req.provider)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return state_payload(coordinator)

    @app.put("/session/language")
    async def set_language(req: LanguageRequest):
        coordinator = get_coordinator()
        coordinator.set_language(req.language)
        return {"language": coordinator.language}

    @app.post("/session/dispose")
    async def dispose_session(request: Request):
        coordinator = request.app.state.coordinator
        if coordinator is not None:
            coordinator.dispose()
            return state_payload(coordinator)
        return {"status": SessionStatus.DISPOSED.value}

    @app.websocket("/ws")
    async def websocket_events(websocket: WebSocket):
        await websocket.accept()
        queue = broadcaster.subscribe()
        logger.info("Websocket subscriber connected")

        async def forward_events():
            while True:
                event = await queue.get()
                await websocket.send_json(event)

        await queue.put({"type": "session_state", "data": state_payload(get_coordinator())})
        sender = asyncio.create_task(forward_events())
        try:
            while True:
                message = await websocket.receive_text()
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    await queue.put({"type": "error", "message": "Invalid JSON"})
                    continue

                message_type = data.get("type") if isinstance(data, dict) else None
                if message_type == "get_state":
                    await queue.put({"type": "session_state", "data": state_payload(get_coordinator())})
                else:
                    await queue.put({"type": "error", "message": f"Unknown message type: {message_type}"})
        except WebSocketDisconnect:
            logger.info("Websocket subscriber disconnected")
        finally:
            sender.cancel()
            broadcaster.unsubscribe(queue)

    return app
