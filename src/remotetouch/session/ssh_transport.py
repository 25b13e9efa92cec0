"""SSH transport: runs the engine on the remote host through ``ssh``.

The engine's source text travels base64-encoded inside the remote command
line, so nothing has to be installed on the target beyond ``python3``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import shlex
from collections import deque

from remotetouch.domain.models import SessionConfig
from remotetouch.engine import engine_source
from remotetouch.session.base import ExitCallback, LineCallback, Transport, TransportClosedError

logger = logging.getLogger(__name__)

BOOTSTRAP = "import base64,sys;exec(base64.b64decode(sys.argv[1]))"


def build_remote_command(
    source: str,
    use_sudo: bool = False,
    python: str = "python3",
    verbose: bool = False,
) -> str:
    """Build the shell command that runs ``source`` on the remote host.

    Args:
        source: Program text to execute.
        use_sudo: Prefix the command with ``sudo``.
        python: Remote interpreter.
        verbose: Ask the engine for DEBUG diagnostics on stderr.
    """
    encoded = base64.b64encode(source.encode("utf-8")).decode("ascii")
    parts = [python, "-u", "-c", shlex.quote(BOOTSTRAP), encoded]
    if verbose:
        parts.append("--verbose")
    command = " ".join(parts)
    return "sudo " + command if use_sudo else command


def build_ssh_args(
    config: SessionConfig,
    remote_command: str,
    executable: str = "ssh",
    keepalive_interval: int = 15,
    keepalive_count_max: int = 3,
) -> list[str]:
    """Build the argv for the ssh client.

    Host keys are accepted on first use, authentication never prompts,
    and keepalive probes detect a dead link.
    """
    args = [
        executable,
        "-T",
        "-o", "StrictHostKeyChecking=accept-new",
        "-o", "BatchMode=yes",
        "-o", f"ServerAliveInterval={keepalive_interval}",
        "-o", f"ServerAliveCountMax={keepalive_count_max}",
        "-p", str(config.port),
    ]
    if config.ssh_key:
        args += ["-i", config.ssh_key]
    args += [f"{config.user}@{config.host}", remote_command]
    return args


class SshTransport(Transport):
    """Runs the engine under a local ``ssh`` child process.

    Stdout lines are delivered to ``on_line``; stderr is logged at DEBUG
    and the most recent part kept for error messages.
    """

    def __init__(
        self,
        config: SessionConfig,
        executable: str = "ssh",
        keepalive_interval: int = 15,
        keepalive_count_max: int = 3,
        python: str = "python3",
        verbose: bool = False,
        terminate_timeout: float = 3.0,
        stderr_limit: int = 4096,
    ) -> None:
        self._config = config
        self._executable = executable
        self._keepalive_interval = keepalive_interval
        self._keepalive_count_max = keepalive_count_max
        self._python = python
        self._verbose = verbose
        self._terminate_timeout = terminate_timeout
        self._stderr_limit = stderr_limit
        self._stderr: deque[str] = deque()
        self._stderr_size = 0
        self._process: asyncio.subprocess.Process | None = None
        self._readers: list[asyncio.Task[None]] = []
        self._wait_task: asyncio.Task[None] | None = None
        self._on_line: LineCallback | None = None
        self._on_exit: ExitCallback | None = None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def stderr_text(self) -> str:
        return "".join(self._stderr).strip()

    def command(self) -> list[str]:
        """Return the full argv used to start the transport."""
        remote = build_remote_command(
            engine_source(),
            use_sudo=self._config.use_sudo,
            python=self._python,
            verbose=self._verbose,
        )
        return build_ssh_args(
            self._config,
            remote,
            executable=self._executable,
            keepalive_interval=self._keepalive_interval,
            keepalive_count_max=self._keepalive_count_max,
        )

    async def start(self, on_line: LineCallback, on_exit: ExitCallback) -> None:
        if self._process is not None:
            raise TransportClosedError("transport already started")
        self._on_line = on_line
        self._on_exit = on_exit
        args = self.command()
        try:
            self._process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportClosedError(f"failed to start {args[0]}: {e}") from e

        logger.info("Started ssh to %s (pid=%d)", self._config.target, self._process.pid)
        self._readers = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
        ]
        self._wait_task = asyncio.create_task(self._wait())

    async def write_line(self, data: bytes) -> None:
        process = self._process
        if process is None or process.stdin is None or not self.is_alive:
            raise TransportClosedError("transport is not running")
        if process.stdin.is_closing():
            raise TransportClosedError("transport input is closed")
        try:
            process.stdin.write(data)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportClosedError(f"failed to write to transport: {e}") from e

    async def close(self) -> None:
        process = self._process
        if process is None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), self._terminate_timeout)
            except asyncio.TimeoutError:
                logger.warning("ssh to %s ignored SIGTERM, killing", self._config.target)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
        if self._wait_task is not None:
            await self._wait_task

    # -- readers ------------------------------------------------------------

    async def _read_stdout(self) -> None:
        stream = self._process.stdout
        while True:
            try:
                line = await stream.readline()
            except ValueError as e:
                # line longer than the stream limit; the rest is dropped
                logger.warning("Oversized line from %s: %s", self._config.target, e)
                continue
            if not line:
                break
            self._on_line(line.rstrip(b"\r\n"))

    async def _read_stderr(self) -> None:
        stream = self._process.stderr
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace")
            logger.debug("[%s] %s", self._config.target, text.rstrip())
            self._stderr.append(text)
            self._stderr_size += len(text)
            while self._stderr_size > self._stderr_limit and len(self._stderr) > 1:
                self._stderr_size -= len(self._stderr.popleft())

    async def _wait(self) -> None:
        returncode = await self._process.wait()
        for result in await asyncio.gather(*self._readers, return_exceptions=True):
            if isinstance(result, Exception):
                logger.error("Output reader for %s failed: %s", self._config.target, result)
        logger.info("ssh to %s exited with code %s", self._config.target, returncode)
        self._on_exit(returncode, self.stderr_text)
