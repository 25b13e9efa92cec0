"""Tests for the domain models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from remotetouch.domain.models import (
    DeviceMode,
    InitCommand,
    KeyPressCommand,
    RemoteCommandError,
    Response,
    ResponseStatus,
    SessionConfig,
    ShutdownCommand,
    SwipeCommand,
    TapCommand,
)


class TestSessionConfig:
    def test_defaults(self) -> None:
        config = SessionConfig(host="raspberrypi.local")
        assert config.user == "pi"
        assert config.port == 22
        assert config.ssh_key is None
        assert config.screen_width is None
        assert config.use_sudo is False
        assert config.device_mode is DeviceMode.AUTO
        assert config.target == "pi@raspberrypi.local:22"

    def test_is_immutable(self) -> None:
        config = SessionConfig(host="a")
        with pytest.raises(ValidationError):
            config.host = "b"  # type: ignore[misc]

    @pytest.mark.parametrize(
        "overrides",
        [{"host": ""}, {"port": 0}, {"port": 70000}, {"screen_width": 1}, {"device_mode": "usb"}],
    )
    def test_rejects_invalid_values(self, overrides: dict) -> None:
        values = {"host": "pi.local", **overrides}
        with pytest.raises(ValidationError):
            SessionConfig(**values)


class TestCommands:
    def test_default_id_carries_type(self) -> None:
        first = TapCommand(x=1, y=2)
        second = TapCommand(x=1, y=2)
        assert first.id.startswith("tap-")
        assert first.id != second.id

    def test_explicit_id_is_kept(self) -> None:
        assert ShutdownCommand(id="shutdown-abc").id == "shutdown-abc"

    def test_type_is_fixed(self) -> None:
        assert KeyPressCommand(key="enter").type == "key_press"
        assert KeyPressCommand(key="enter").modifiers == []

    def test_negative_coordinates_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TapCommand(x=-1, y=0)

    def test_swipe_steps_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            SwipeCommand(x=0, y=0, x2=10, y2=10, steps=0)

    def test_init_device_mode(self) -> None:
        init = InitCommand(screen_width=800, screen_height=480, device="discover")
        assert init.device is DeviceMode.DISCOVER

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            KeyPressCommand(key="")


class TestResponse:
    def test_ok_statuses(self) -> None:
        assert Response(id="a", status="ready").ok
        assert Response(id="a", status="ok").ok
        assert not Response(id="a", status="error").ok

    def test_raise_for_status(self) -> None:
        response = Response(id="k", status=ResponseStatus.ERROR, message="unknown key: 'x'")
        with pytest.raises(RemoteCommandError, match="unknown key") as exc_info:
            response.raise_for_status()
        assert exc_info.value.response is response

    def test_raise_for_status_without_message(self) -> None:
        with pytest.raises(RemoteCommandError, match="remote command failed"):
            Response(id="k", status="error").raise_for_status()

    def test_raise_for_status_passes_success_through(self) -> None:
        response = Response(id="t", status="ok")
        assert response.raise_for_status() is response

    def test_unknown_fields_ignored(self) -> None:
        response = Response(id="i", status="ready", screen_width=800, extra="x")
        assert response.screen_width == 800
        assert not hasattr(response, "extra")
