"""Domain models for remotetouch.

This package contains the session configuration, the command and
response models of the wire protocol, and their line encoding. All
models use Pydantic v2 for validation and serialization.
"""

from remotetouch.domain.models import (
    Command,
    DeviceMode,
    DoubleTapCommand,
    InitCommand,
    KeyPressCommand,
    KeyTypeCommand,
    LongPressCommand,
    RemoteCommandError,
    Response,
    ResponseStatus,
    SessionConfig,
    SessionInfo,
    ShutdownCommand,
    SwipeCommand,
    TapCommand,
)

__all__ = [
    "Command",
    "DeviceMode",
    "DoubleTapCommand",
    "InitCommand",
    "KeyPressCommand",
    "KeyTypeCommand",
    "LongPressCommand",
    "RemoteCommandError",
    "Response",
    "ResponseStatus",
    "SessionConfig",
    "SessionInfo",
    "ShutdownCommand",
    "SwipeCommand",
    "TapCommand",
]
