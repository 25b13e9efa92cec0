"""Session manager: connects to remote engines and dispatches commands.

Each session owns one transport and has at most one command outstanding
on it. Concurrent callers on the same session are queued behind a lock;
different sessions run independently.

Example usage::

    manager = SessionManager()
    session_id = await manager.connect(SessionConfig(host="raspberrypi.local"))
    response = await manager.send_command(session_id, TapCommand(x=100, y=200))
    await manager.disconnect(session_id)
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable

from remotetouch.config.settings import Settings
from remotetouch.domain.models import (
    Command,
    InitCommand,
    Response,
    ResponseStatus,
    SessionConfig,
    SessionInfo,
    ShutdownCommand,
)
from remotetouch.domain.protocol import decode_response, encode_command
from remotetouch.session.base import (
    CommandTimeoutError,
    SessionConnectError,
    SessionError,
    SessionInactiveError,
    SessionNotFoundError,
    Transport,
    TransportClosedError,
)
from remotetouch.session.ssh_transport import SshTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[SessionConfig], Transport]

HANDSHAKE_TIMEOUT = 15.0
COMMAND_TIMEOUT = 30.0
SHUTDOWN_TIMEOUT = 5.0


class Session:
    """Mutable runtime record for one connection."""

    def __init__(self, session_id: str, config: SessionConfig, transport: Transport) -> None:
        self.id = session_id
        self.config = config
        self.transport: Transport | None = transport
        self.active = False
        self.pending: asyncio.Future[Response] | None = None
        self.pending_id: str | None = None
        self.lock = asyncio.Lock()
        self.screen_width: int | None = None
        self.screen_height: int | None = None
        self.message: str | None = None
        self.exit_code: int | None = None

    @property
    def usable(self) -> bool:
        return self.active and self.transport is not None and self.transport.is_alive

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            target=self.config.target,
            active=self.active,
            screen_width=self.screen_width,
            screen_height=self.screen_height,
            message=self.message,
            exit_code=self.exit_code,
        )


class SessionManager:
    """Owns the set of sessions and the single in-flight slot of each.

    Args:
        transport_factory: Builds the transport for a config. Defaults to
                           SshTransport.
        handshake_timeout: Seconds to wait for the ``init`` reply.
        command_timeout: Seconds to wait for any other reply.
        shutdown_timeout: Seconds to wait for the ``shutdown`` reply on
                          disconnect.
        match_ids: Only accept a reply whose id equals the pending
                   command's id. When False, the next reply line resolves
                   the pending command regardless of its id.
    """

    def __init__(
        self,
        transport_factory: TransportFactory | None = None,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        command_timeout: float = COMMAND_TIMEOUT,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
        match_ids: bool = True,
    ) -> None:
        self._transport_factory = transport_factory or SshTransport
        self._handshake_timeout = handshake_timeout
        self._command_timeout = command_timeout
        self._shutdown_timeout = shutdown_timeout
        self._match_ids = match_ids
        self._sessions: dict[str, Session] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, config: SessionConfig) -> str:
        """Start the engine on ``config``'s host and perform the handshake.

        Returns:
            The new session id.

        Raises:
            SessionConnectError: If the transport cannot start, the engine
                                 reports an init error, or the handshake
                                 times out. No session is left registered.
        """
        session_id = uuid.uuid4().hex
        session = Session(session_id, config, self._transport_factory(config))
        self._sessions[session_id] = session
        logger.info("Connecting session %s to %s", session_id, config.target)

        try:
            response = await self._handshake(session)
        except SessionError as e:
            await self._discard(session)
            raise SessionConnectError(
                f"Failed to connect to {config.host}: {e}", session_id
            ) from e
        except asyncio.CancelledError:
            await self._discard(session)
            raise

        session.active = True
        session.screen_width = response.screen_width
        session.screen_height = response.screen_height
        session.message = response.message
        logger.info(
            "Session %s ready on %s (%sx%s): %s",
            session_id, config.target,
            response.screen_width, response.screen_height, response.message,
        )
        return session_id

    async def _handshake(self, session: Session) -> Response:
        config = session.config
        await session.transport.start(
            on_line=lambda line: self._on_line(session, line),
            on_exit=lambda code, stderr: self._on_exit(session, code, stderr),
        )
        init = InitCommand(
            id=f"init-{session.id}",
            screen_width=config.screen_width,
            screen_height=config.screen_height,
            device=config.device_mode,
        )
        response = await self._send(session, init, self._handshake_timeout)
        if response.status is ResponseStatus.ERROR:
            raise SessionError(f"engine init failed: {response.message}", session.id)
        return response

    async def disconnect(self, session_id: str) -> bool:
        """Shut down the engine and terminate the transport.

        A ``shutdown`` command is attempted first when the session is
        active; any failure there is logged and ignored. The transport is
        terminated in every case.

        Returns:
            False if no such session exists, else True.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False

        if session.usable:
            # inactive from here on so queued callers fail fast
            session.active = False
            await self._request_shutdown(session)

        await self._discard(session)
        logger.info("Disconnected session %s (%s)", session_id, session.config.target)
        return True

    async def _request_shutdown(self, session: Session) -> None:
        try:
            await asyncio.wait_for(session.lock.acquire(), self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Session %s still busy, skipping shutdown command", session.id)
            return
        try:
            command = ShutdownCommand(id=f"shutdown-{session.id}")
            await self._send(session, command, self._shutdown_timeout)
        except SessionError as e:
            logger.warning("Shutdown of session %s failed: %s", session.id, e)
        finally:
            session.lock.release()

    async def disconnect_all(self) -> None:
        """Disconnect every session in turn; one failure does not stop the rest."""
        for session_id in list(self._sessions):
            try:
                await self.disconnect(session_id)
            except Exception:
                logger.exception("Failed to disconnect session %s", session_id)

    async def _discard(self, session: Session) -> None:
        self._sessions.pop(session.id, None)
        session.active = False
        transport, session.transport = session.transport, None
        if transport is None:
            return
        try:
            await transport.close()
        except OSError as e:
            logger.warning("Error closing transport of session %s: %s", session.id, e)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_command(self, session_id: str, command: Command) -> Response:
        """Send one command and wait for its reply.

        Remote failures come back as a Response with status ``error``;
        only local failures raise.

        Raises:
            SessionNotFoundError: Unknown session id.
            SessionInactiveError: The session's transport is gone.
            CommandTimeoutError: No reply within the command timeout.
            TransportClosedError: The transport ended while waiting.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}", session_id)
        if not session.usable:
            raise SessionInactiveError(f"Session is not active: {session_id}", session_id)

        async with session.lock:
            # the transport may have died while this call was queued
            if not session.usable:
                raise SessionInactiveError(f"Session is not active: {session_id}", session_id)
            logger.debug("Session %s -> %s %s", session_id, command.type, command.id)
            response = await self._send(session, command, self._command_timeout)
            logger.debug(
                "Session %s <- %s %s %s",
                session_id, response.id, response.status.value, response.message or "",
            )
            return response

    async def _send(self, session: Session, command: Command, timeout: float) -> Response:
        if session.transport is None:
            raise SessionInactiveError(f"Session is not active: {session.id}", session.id)
        future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()
        session.pending = future
        session.pending_id = command.id
        try:
            await session.transport.write_line(encode_command(command))
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as e:
            raise CommandTimeoutError(
                f"Command {command.type} timed out after {timeout:g}s", session.id
            ) from e
        finally:
            if session.pending is future:
                session.pending = None
                session.pending_id = None

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _on_line(self, session: Session, line: bytes) -> None:
        response = decode_response(line)
        if response is None:
            return
        future = session.pending
        if future is None or future.done():
            logger.warning(
                "Session %s: discarding response %s with no command pending",
                session.id, response.id,
            )
            return
        if self._match_ids and response.id != session.pending_id:
            logger.warning(
                "Session %s: discarding response %s, expected %s",
                session.id, response.id, session.pending_id,
            )
            return
        future.set_result(response)

    def _on_exit(self, session: Session, exit_code: int | None, stderr: str) -> None:
        was_active = session.active
        session.active = False
        session.exit_code = exit_code
        future = session.pending
        if future is not None and not future.done():
            message = f"Transport exited with code {exit_code}"
            if stderr:
                message += f". stderr: {stderr}"
            future.set_exception(
                TransportClosedError(message, session.id, exit_code=exit_code, stderr=stderr)
            )
        if was_active:
            logger.warning(
                "Session %s to %s lost its transport (exit code %s)",
                session.id, session.config.target, exit_code,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[SessionInfo]:
        return [session.info() for session in self._sessions.values()]

    def get_session(self, session_id: str) -> SessionInfo | None:
        session = self._sessions.get(session_id)
        return session.info() if session is not None else None

    def __len__(self) -> int:
        return len(self._sessions)


def create_manager(settings: Settings) -> SessionManager:
    """Build a SessionManager whose ssh transports follow ``settings``."""
    ssh = settings.ssh

    def transport_factory(config: SessionConfig) -> Transport:
        return SshTransport(
            config,
            executable=ssh.executable,
            keepalive_interval=ssh.keepalive_interval,
            keepalive_count_max=ssh.keepalive_count_max,
            python=ssh.python,
            verbose=ssh.engine_debug,
        )

    return SessionManager(
        transport_factory,
        handshake_timeout=settings.timeouts.handshake,
        command_timeout=settings.timeouts.command,
        shutdown_timeout=settings.timeouts.shutdown,
    )
