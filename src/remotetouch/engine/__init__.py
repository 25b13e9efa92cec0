"""Remote event synthesis engine.

``daemon`` is a standalone program: its source text is sent to the target
device and run there, so it only depends on the standard library.
"""

from __future__ import annotations

from importlib import resources


def engine_source() -> str:
    """Return the source text of the engine program."""
    return resources.files(__name__).joinpath("daemon.py").read_text(encoding="utf-8")


__all__ = ["engine_source"]
