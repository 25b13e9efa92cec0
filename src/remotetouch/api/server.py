"""REST API that exposes remote touch sessions over HTTP.

Each endpoint is a thin wrapper over SessionManager; remote failures and
local session failures are turned into HTTP errors.

    GET    /health                      -> {"status": "ok", ...}
    POST   /sessions                    <- {"host": "pi.local", "use_sudo": true}
    GET    /sessions                    -> [SessionInfo, ...]
    GET    /sessions/{id}               -> SessionInfo
    DELETE /sessions/{id}
    POST   /sessions/{id}/tap           <- {"x": 100, "y": 200}
    POST   /sessions/{id}/swipe         <- {"x1": 0, "y1": 0, "x2": 100, "y2": 0}
    POST   /sessions/{id}/long-press    <- {"x": 100, "y": 200, "duration_ms": 1200}
    POST   /sessions/{id}/double-tap    <- {"x": 100, "y": 200}
    POST   /sessions/{id}/key-press     <- {"key": "c", "modifiers": ["ctrl"]}
    POST   /sessions/{id}/key-type      <- {"text": "hello"}
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from remotetouch import __version__
from remotetouch.config.settings import Settings
from remotetouch.domain.models import (
    Command,
    DeviceMode,
    DoubleTapCommand,
    KeyPressCommand,
    KeyTypeCommand,
    LongPressCommand,
    RemoteCommandError,
    SessionInfo,
    SwipeCommand,
    TapCommand,
)
from remotetouch.session.base import (
    CommandTimeoutError,
    SessionConnectError,
    SessionInactiveError,
    SessionNotFoundError,
    TransportClosedError,
)
from remotetouch.session.manager import SessionManager, create_manager

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class ConnectRequest(BaseModel):
    """Connection parameters; anything omitted comes from the settings."""

    host: str | None = Field(default=None, description="SSH host")
    user: str | None = Field(default=None, description="SSH user")
    port: int | None = Field(default=None, ge=1, le=65535)
    ssh_key: str | None = Field(default=None, description="Path to a private key")
    screen_width: int | None = Field(default=None, gt=1)
    screen_height: int | None = Field(default=None, gt=1)
    use_sudo: bool | None = Field(default=None)
    device_mode: DeviceMode | None = Field(default=None)


class PointRequest(BaseModel):
    x: int = Field(ge=0, description="X in logical screen pixels")
    y: int = Field(ge=0, description="Y in logical screen pixels")


class PressRequest(PointRequest):
    duration_ms: int | None = Field(default=None, ge=0)


class SwipeRequest(BaseModel):
    x1: int = Field(ge=0)
    y1: int = Field(ge=0)
    x2: int = Field(ge=0)
    y2: int = Field(ge=0)
    duration_ms: int | None = Field(default=None, ge=0)
    steps: int | None = Field(default=None, gt=0)


class KeyPressRequest(BaseModel):
    key: str = Field(min_length=1, description="Key name (e.g., 'enter', 'a')")
    modifiers: list[str] = Field(default_factory=list, description="e.g. ['ctrl']")


class KeyTypeRequest(BaseModel):
    text: str = Field(description="Text to type")


class CommandResult(BaseModel):
    session_id: str
    status: str
    message: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = __version__
    sessions: int = 0
    active_sessions: int = 0


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    manager: SessionManager | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create the remotetouch REST API application.

    Args:
        manager: Optional pre-configured SessionManager (for testing).
        settings: Defaults for connection parameters and timeouts.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("remotetouch API started")
        yield
        await app.state.manager.disconnect_all()
        logger.info("remotetouch API stopped")

    app = FastAPI(
        title="remotetouch",
        description="Remote touchscreen and keyboard control over SSH",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = manager if manager is not None else create_manager(settings)
    app.state.settings = settings

    async def _dispatch(session_id: str, command: Command) -> CommandResult:
        m: SessionManager = app.state.manager
        try:
            response = await m.send_command(session_id, command)
            response.raise_for_status()
        except SessionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except SessionInactiveError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except CommandTimeoutError as e:
            raise HTTPException(status_code=504, detail=str(e)) from e
        except TransportClosedError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        except RemoteCommandError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return CommandResult(
            session_id=session_id, status=response.status.value, message=response.message
        )

    @app.get("/health")
    async def health_check() -> HealthResponse:
        sessions = app.state.manager.list_sessions()
        return HealthResponse(
            sessions=len(sessions),
            active_sessions=sum(1 for s in sessions if s.active),
        )

    # -------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------

    @app.post("/sessions", status_code=201)
    async def connect(request: ConnectRequest) -> SessionInfo:
        try:
            config = app.state.settings.session_config(**request.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        m: SessionManager = app.state.manager
        try:
            session_id = await m.connect(config)
        except SessionConnectError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return m.get_session(session_id)

    @app.get("/sessions")
    async def list_sessions() -> list[SessionInfo]:
        return app.state.manager.list_sessions()

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str) -> SessionInfo:
        info = app.state.manager.get_session(session_id)
        if info is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return info

    @app.delete("/sessions/{session_id}")
    async def disconnect(session_id: str) -> dict[str, str]:
        if not await app.state.manager.disconnect(session_id):
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return {"status": "ok", "session_id": session_id}

    # -------------------------------------------------------------------
    # Gestures and keys
    # -------------------------------------------------------------------

    @app.post("/sessions/{session_id}/tap")
    async def tap(session_id: str, request: PressRequest) -> CommandResult:
        command = TapCommand(x=request.x, y=request.y, duration_ms=request.duration_ms)
        return await _dispatch(session_id, command)

    @app.post("/sessions/{session_id}/swipe")
    async def swipe(session_id: str, request: SwipeRequest) -> CommandResult:
        command = SwipeCommand(
            x=request.x1, y=request.y1, x2=request.x2, y2=request.y2,
            duration_ms=request.duration_ms, steps=request.steps,
        )
        return await _dispatch(session_id, command)

    @app.post("/sessions/{session_id}/long-press")
    async def long_press(session_id: str, request: PressRequest) -> CommandResult:
        command = LongPressCommand(x=request.x, y=request.y, duration_ms=request.duration_ms)
        return await _dispatch(session_id, command)

    @app.post("/sessions/{session_id}/double-tap")
    async def double_tap(session_id: str, request: PointRequest) -> CommandResult:
        return await _dispatch(session_id, DoubleTapCommand(x=request.x, y=request.y))

    @app.post("/sessions/{session_id}/key-press")
    async def key_press(session_id: str, request: KeyPressRequest) -> CommandResult:
        command = KeyPressCommand(key=request.key, modifiers=request.modifiers)
        return await _dispatch(session_id, command)

    @app.post("/sessions/{session_id}/key-type")
    async def key_type(session_id: str, request: KeyTypeRequest) -> CommandResult:
        return await _dispatch(session_id, KeyTypeCommand(text=request.text))

    return app


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def serve(settings: Settings, host: str | None = None, port: int | None = None) -> None:
    """Run the API server until interrupted."""
    app = create_app(settings=settings)
    uvicorn.run(app, host=host or settings.host, port=port or settings.port)
