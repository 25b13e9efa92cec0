"""HTTP front end for remotetouch sessions."""

from remotetouch.api.server import create_app

__all__ = ["create_app"]
