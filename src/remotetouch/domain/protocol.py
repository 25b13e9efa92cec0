"""Line-delimited JSON framing for the manager side of the wire.

Every message is one JSON object on one line, terminated by ``\\n``. The
engine implements the same framing with the standard library.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from remotetouch.domain.models import Command, Response

logger = logging.getLogger(__name__)


def encode_command(command: Command) -> bytes:
    """Serialize a command as a single newline-terminated line."""
    return command.model_dump_json(exclude_none=True).encode("utf-8") + b"\n"


def decode_response(line: str | bytes) -> Response | None:
    """Parse one response line; malformed lines are logged and dropped."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        return Response.model_validate_json(line)
    except ValidationError as e:
        logger.warning("Discarding malformed response line %r: %s", line[:200], e)
        return None
