"""Transport interface and session errors.

A transport is the duplex byte pipe between the session manager and a
remote engine: commands go in on its input stream, response lines come
out of its output stream, and diagnostics out of its error stream. The
session manager treats it as an opaque endpoint, which lets tests swap
the ssh process for an in-memory fake.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)

LineCallback = Callable[[bytes], None]
ExitCallback = Callable[[int | None, str], None]


class Transport(ABC):
    """Abstract duplex line pipe to a remote engine.

    Example usage::

        transport = SshTransport(config)
        await transport.start(on_line=handle_line, on_exit=handle_exit)
        await transport.write_line(b'{"id": "1", "type": "init"}\\n')
        ...
        await transport.close()
    """

    @abstractmethod
    async def start(self, on_line: LineCallback, on_exit: ExitCallback) -> None:
        """Launch the transport and begin delivering output.

        Args:
            on_line: Called with each complete line read from the output
                     stream, without its trailing newline.
            on_exit: Called once when the transport ends, with the exit
                     code (None if unknown) and captured diagnostics.

        Raises:
            TransportClosedError: If the transport cannot be started.
        """
        ...

    @abstractmethod
    async def write_line(self, data: bytes) -> None:
        """Write one newline-terminated message to the input stream.

        Raises:
            TransportClosedError: If the input stream is closed.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """End the input stream and terminate the transport.

        Safe to call more than once.
        """
        ...

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        """True while the transport can carry messages."""
        ...


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SessionError(Exception):
    """Base class for local session failures."""

    def __init__(self, message: str, session_id: str = "") -> None:
        super().__init__(message)
        self.session_id = session_id


class SessionConnectError(SessionError):
    """The transport could not be spawned or the handshake failed."""


class SessionNotFoundError(SessionError):
    """No session with the given id exists."""


class SessionInactiveError(SessionError):
    """The session exists but its transport is gone or was never ready."""


class CommandTimeoutError(SessionError):
    """No response arrived within the command timeout.

    The remote engine is not interrupted and may still be executing.
    """


class TransportClosedError(SessionError):
    """The transport exited or failed while a command was outstanding."""

    def __init__(
        self,
        message: str,
        session_id: str = "",
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, session_id)
        self.exit_code = exit_code
        self.stderr = stderr
