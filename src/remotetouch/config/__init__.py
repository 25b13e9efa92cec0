"""Configuration management for remotetouch.

Loads and validates YAML-based configuration with Pydantic models.
Environment variables prefixed with ``REMOTETOUCH_`` override file values.
"""

from remotetouch.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
