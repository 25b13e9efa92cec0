"""Core domain models for remotetouch.

These models describe what flows between the session manager and the
remote engine: the connection parameters for a device, the commands sent
down the ssh pipe, and the responses that come back.
"""

from __future__ import annotations

import enum
import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ResponseStatus(str, enum.Enum):
    """Status field of an engine response."""

    READY = "ready"  # init succeeded
    OK = "ok"  # action succeeded
    ERROR = "error"


class DeviceMode(str, enum.Enum):
    """How the engine obtains its touch device."""

    AUTO = "auto"  # use a physical touchscreen if one exists, else create one
    DISCOVER = "discover"
    UINPUT = "uinput"


# ---------------------------------------------------------------------------
# Session configuration
# ---------------------------------------------------------------------------


class SessionConfig(BaseModel):
    """Immutable parameters for one remote endpoint."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1, description="SSH host name or address")
    user: str = Field(default="pi", min_length=1, description="SSH login user")
    port: int = Field(default=22, ge=1, le=65535)
    ssh_key: str | None = Field(default=None, description="Path to an SSH private key")
    screen_width: int | None = Field(
        default=None, gt=1, description="Logical screen width; auto-detected when unset"
    )
    screen_height: int | None = Field(
        default=None, gt=1, description="Logical screen height; auto-detected when unset"
    )
    use_sudo: bool = Field(default=False, description="Run the engine under sudo")
    device_mode: DeviceMode = Field(default=DeviceMode.AUTO)

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


# ---------------------------------------------------------------------------
# Commands (discriminated union on "type")
# ---------------------------------------------------------------------------


class _CommandBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default="", description="Correlation token echoed by the engine")

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id"):
            kind = cls.model_fields["type"].default
            data = {**data, "id": f"{kind}-{uuid.uuid4().hex[:12]}"}
        return data


class InitCommand(_CommandBase):
    """Handshake: set up devices and resolve the screen size."""

    type: Literal["init"] = "init"
    screen_width: int | None = Field(default=None, gt=1)
    screen_height: int | None = Field(default=None, gt=1)
    device: DeviceMode | None = None


class TapCommand(_CommandBase):
    type: Literal["tap"] = "tap"
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    duration_ms: int | None = Field(default=None, ge=0, description="Hold time, default 50")


class LongPressCommand(_CommandBase):
    type: Literal["long_press"] = "long_press"
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    duration_ms: int | None = Field(default=None, ge=0, description="Hold time, default 800")


class DoubleTapCommand(_CommandBase):
    type: Literal["double_tap"] = "double_tap"
    x: int = Field(ge=0)
    y: int = Field(ge=0)


class SwipeCommand(_CommandBase):
    """Swipe from (x, y) to (x2, y2)."""

    type: Literal["swipe"] = "swipe"
    x: int = Field(ge=0)
    y: int = Field(ge=0)
    x2: int = Field(ge=0)
    y2: int = Field(ge=0)
    duration_ms: int | None = Field(default=None, ge=0, description="Total time, default 300")
    steps: int | None = Field(default=None, gt=0, description="Interpolated moves")


class KeyPressCommand(_CommandBase):
    type: Literal["key_press"] = "key_press"
    key: str = Field(min_length=1, description="Key name, e.g. 'enter', 'a', 'f5'")
    modifiers: list[str] = Field(
        default_factory=list, description="Held while the key is pressed, e.g. ['ctrl']"
    )


class KeyTypeCommand(_CommandBase):
    type: Literal["key_type"] = "key_type"
    text: str = Field(description="Text typed character by character")


class ShutdownCommand(_CommandBase):
    type: Literal["shutdown"] = "shutdown"


Command = Annotated[
    Union[
        InitCommand,
        TapCommand,
        SwipeCommand,
        LongPressCommand,
        DoubleTapCommand,
        KeyPressCommand,
        KeyTypeCommand,
        ShutdownCommand,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class RemoteCommandError(Exception):
    """The engine answered a command with ``status: error``."""

    def __init__(self, message: str, response: Response) -> None:
        super().__init__(message)
        self.response = response


class Response(BaseModel):
    """A single engine reply."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    status: ResponseStatus
    message: str | None = None
    screen_width: int | None = None
    screen_height: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is not ResponseStatus.ERROR

    def raise_for_status(self) -> Response:
        """Raise RemoteCommandError for an error response, else return self."""
        if self.status is ResponseStatus.ERROR:
            raise RemoteCommandError(self.message or "remote command failed", self)
        return self


# ---------------------------------------------------------------------------
# Session snapshots
# ---------------------------------------------------------------------------


class SessionInfo(BaseModel):
    """Read-only view of a session for listings."""

    model_config = ConfigDict(frozen=True)

    id: str
    target: str
    active: bool
    screen_width: int | None = None
    screen_height: int | None = None
    message: str | None = Field(default=None, description="Status reported by init")
    exit_code: int | None = Field(default=None, description="Transport exit code once it ended")
