"""Session layer: transports to remote engines and the session manager."""

from remotetouch.session.base import (
    CommandTimeoutError,
    SessionConnectError,
    SessionError,
    SessionInactiveError,
    SessionNotFoundError,
    Transport,
    TransportClosedError,
)
from remotetouch.session.manager import SessionManager, create_manager
from remotetouch.session.ssh_transport import SshTransport

__all__ = [
    "CommandTimeoutError",
    "SessionConnectError",
    "SessionError",
    "SessionInactiveError",
    "SessionManager",
    "SessionNotFoundError",
    "SshTransport",
    "Transport",
    "TransportClosedError",
    "create_manager",
]
