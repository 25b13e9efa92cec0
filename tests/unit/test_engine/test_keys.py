"""Tests for the key tables and keyboard commands."""

from __future__ import annotations

import pytest

from remotetouch.engine.daemon import (
    CHAR_KEYS,
    EV_KEY,
    KEY_ALIASES,
    KEY_CODES,
    TouchEngine,
    UnknownKeyError,
    resolve_key,
)

SHIFT = KEY_CODES["shift"]
CTRL = KEY_CODES["ctrl"]


def keyboard_device(backend):  # type: ignore[no-untyped-def]
    return next(d for d in backend.devices if d.name == "remotetouch-keyboard")


def key_events(device) -> list[tuple[int, int]]:  # type: ignore[no-untyped-def]
    return [(code, value) for ev_type, code, value in device.events if ev_type == EV_KEY]


class TestKeyTables:
    def test_well_known_codes(self) -> None:
        assert KEY_CODES["esc"] == 1
        assert KEY_CODES["enter"] == 28
        assert KEY_CODES["a"] == 30
        assert KEY_CODES["space"] == 57
        assert KEY_CODES["f1"] == 59
        assert KEY_CODES["up"] == 103
        assert KEY_CODES["meta"] == 125

    def test_every_char_maps_to_a_known_key(self) -> None:
        for char, (name, _) in CHAR_KEYS.items():
            assert name in KEY_CODES, char

    def test_every_alias_targets_a_known_key(self) -> None:
        for alias, name in KEY_ALIASES.items():
            assert name in KEY_CODES, alias

    @pytest.mark.parametrize(
        "char,expected",
        [
            ("a", ("a", False)),
            ("A", ("a", True)),
            ("7", ("7", False)),
            ("&", ("7", True)),
            (" ", ("space", False)),
            ("\n", ("enter", False)),
            ("?", ("slash", True)),
            ('"', ("apostrophe", True)),
        ],
    )
    def test_char_keys(self, char: str, expected: tuple[str, bool]) -> None:
        assert CHAR_KEYS[char] == expected


class TestResolveKey:
    @pytest.mark.parametrize(
        "name,code",
        [("enter", 28), ("Return", 28), ("ESC", 1), ("F5", 63), ("super", 125), (";", 39)],
    )
    def test_resolves(self, name: str, code: int) -> None:
        assert resolve_key(name) == code

    def test_unknown(self) -> None:
        with pytest.raises(UnknownKeyError, match="hyper"):
            resolve_key("hyper")


class TestKeyPress:
    def test_modifiers_wrap_the_key(self, ready_engine: TouchEngine, backend) -> None:
        resp = ready_engine.handle(
            {"id": "k1", "type": "key_press", "key": "t", "modifiers": ["ctrl", "shift"]}
        )
        assert resp == {"id": "k1", "status": "ok"}
        t = KEY_CODES["t"]
        assert key_events(keyboard_device(backend)) == [
            (CTRL, 1), (SHIFT, 1), (t, 1), (t, 0), (SHIFT, 0), (CTRL, 0),
        ]

    def test_press_without_modifiers(self, ready_engine: TouchEngine, backend, sleeps) -> None:
        ready_engine.handle({"id": "k1", "type": "key_press", "key": "Enter"})
        assert key_events(keyboard_device(backend)) == [(28, 1), (28, 0)]
        assert sleeps.calls == [0.02]

    def test_unknown_key_emits_nothing(self, ready_engine: TouchEngine, backend) -> None:
        resp = ready_engine.handle({"id": "k1", "type": "key_press", "key": "hyper"})
        assert resp["status"] == "error"
        assert "unknown key" in resp["message"]
        assert keyboard_device(backend).events == []

    def test_unknown_modifier_emits_nothing(self, ready_engine: TouchEngine, backend) -> None:
        resp = ready_engine.handle(
            {"id": "k1", "type": "key_press", "key": "a", "modifiers": ["ctrl", "hyper"]}
        )
        assert resp["status"] == "error"
        assert "hyper" in resp["message"]
        assert keyboard_device(backend).events == []


class TestKeyType:
    def test_types_with_shift_where_needed(self, ready_engine: TouchEngine, backend) -> None:
        resp = ready_engine.handle({"id": "k1", "type": "key_type", "text": "Hi!"})
        assert resp == {"id": "k1", "status": "ok", "message": "typed 3 characters"}
        h, i, one = KEY_CODES["h"], KEY_CODES["i"], KEY_CODES["1"]
        assert key_events(keyboard_device(backend)) == [
            (SHIFT, 1), (h, 1), (h, 0), (SHIFT, 0),
            (i, 1), (i, 0),
            (SHIFT, 1), (one, 1), (one, 0), (SHIFT, 0),
        ]

    def test_unmapped_characters_are_skipped(self, ready_engine: TouchEngine, backend) -> None:
        resp = ready_engine.handle({"id": "k1", "type": "key_type", "text": "aéb"})
        assert resp["message"] == "typed 2 characters"
        a, b = KEY_CODES["a"], KEY_CODES["b"]
        assert key_events(keyboard_device(backend)) == [(a, 1), (a, 0), (b, 1), (b, 0)]

    def test_pacing_between_key_events(self, ready_engine: TouchEngine, sleeps) -> None:
        ready_engine.handle({"id": "k1", "type": "key_type", "text": "aB"})
        assert sleeps.calls == [
            0.02, 0.01,  # a: hold, gap
            0.01, 0.02, 0.01, 0.01,  # B: after shift, hold, before shift up, gap
        ]

    def test_empty_text(self, ready_engine: TouchEngine) -> None:
        resp = ready_engine.handle({"id": "k1", "type": "key_type", "text": ""})
        assert resp["message"] == "typed 0 characters"


class TestKeyboardUnavailable:
    @pytest.fixture
    def engine_without_keyboard(self, engine: TouchEngine, backend) -> TouchEngine:
        backend.keyboard_error = PermissionError(13, "Permission denied", "/dev/uinput")
        backend.create_error = None
        resp = engine.handle({"id": "i", "type": "init"})
        assert resp["status"] == "ready"
        assert resp["message"].endswith("keyboard unavailable")
        return engine

    def test_key_commands_report_unavailable(self, engine_without_keyboard: TouchEngine) -> None:
        for command in (
            {"id": "k1", "type": "key_press", "key": "a"},
            {"id": "k2", "type": "key_type", "text": "a"},
        ):
            resp = engine_without_keyboard.handle(command)
            assert resp["status"] == "error"
            assert resp["message"].startswith("keyboard unavailable")
            assert "input group" in resp["message"]

    def test_touch_still_works(self, engine_without_keyboard: TouchEngine) -> None:
        resp = engine_without_keyboard.handle({"id": "t", "type": "tap", "x": 1, "y": 1})
        assert resp["status"] == "ok"
