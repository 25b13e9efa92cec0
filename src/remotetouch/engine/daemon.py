"""Touch and keyboard event synthesis engine for the remote device.

This module is shipped as source text to the target machine and executed
with ``python3 -c``, so it must only import the standard library. It reads
one JSON command per line on stdin, drives a Linux input device, and writes
one JSON response per line on stdout. Diagnostics go to stderr.

Touch input follows the multi-touch type B protocol on a single slot:

    down:  ABS_MT_SLOT 0, ABS_MT_TRACKING_ID n, ABS_MT_POSITION_X x,
           ABS_MT_POSITION_Y y, SYN_REPORT
    move:  ABS_MT_SLOT 0, ABS_MT_POSITION_X x, ABS_MT_POSITION_Y y, SYN_REPORT
    up:    ABS_MT_SLOT 0, ABS_MT_TRACKING_ID -1, SYN_REPORT

The touch device is either an existing touchscreen found through
/proc/bus/input/devices (coordinates are scaled to its axis range) or a
uinput device created with an axis range equal to the screen size.
"""

from __future__ import annotations

import fcntl
import glob
import json
import logging
import os
import re
import struct
import sys
import time

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Linux input constants (linux/input-event-codes.h, linux/uinput.h)
# ---------------------------------------------------------------------------

EV_SYN = 0x00
EV_KEY = 0x01
EV_ABS = 0x03

SYN_REPORT = 0x00

ABS_MT_SLOT = 0x2F
ABS_MT_POSITION_X = 0x35
ABS_MT_POSITION_Y = 0x36
ABS_MT_TRACKING_ID = 0x39

INPUT_PROP_DIRECT = 0x01

BUS_VIRTUAL = 0x06

UI_SET_EVBIT = 0x40045564
UI_SET_KEYBIT = 0x40045565
UI_SET_ABSBIT = 0x40045567
UI_SET_PROPBIT = 0x4004556E
UI_DEV_SETUP = 0x405C5503
UI_ABS_SETUP = 0x401C5504
UI_DEV_CREATE = 0x5501
UI_DEV_DESTROY = 0x5502

# _IOR('E', 0x40 + abs, struct input_absinfo)
EVIOCGABS_BASE = 0x80184540

# struct input_event: struct timeval, __u16 type, __u16 code, __s32 value
EVENT_FORMAT = "llHHi"
# struct input_absinfo: value, minimum, maximum, fuzz, flat, resolution
ABSINFO_FORMAT = "6i"
# struct uinput_abs_setup: __u16 code, padding, struct input_absinfo
ABS_SETUP_FORMAT = "HH6i"
# struct uinput_setup: struct input_id, char name[80], __u32 ff_effects_max
DEV_SETUP_FORMAT = "HHHH80sI"
UINPUT_MAX_NAME_SIZE = 80

PROC_INPUT_DEVICES = "/proc/bus/input/devices"
UINPUT_PATH = "/dev/uinput"

# Devices created by this engine carry this marker so discovery never
# picks them up again after a restart.
DEVICE_NAME_MARKER = "remotetouch"
TOUCHSCREEN_NAME = "remotetouch-touchscreen"
KEYBOARD_NAME = "remotetouch-keyboard"

TRACKING_ID_MODULUS = 65536
MAX_SLOT = 9
UDEV_SETTLE_DELAY = 0.2

DEFAULT_SCREEN_WIDTH = 800
DEFAULT_SCREEN_HEIGHT = 480

DEFAULT_TAP_MS = 50
DEFAULT_LONG_PRESS_MS = 800
DEFAULT_SWIPE_MS = 300
SWIPE_STEP_MS = 15
DOUBLE_TAP_PRESS_MS = 50
DOUBLE_TAP_GAP_MS = 100

DEFAULT_KEYPRESS_DELAY = 0.02
DEFAULT_INTER_CHAR_DELAY = 0.01

COMMAND_TYPES = (
    "init",
    "tap",
    "swipe",
    "long_press",
    "double_tap",
    "key_press",
    "key_type",
    "shutdown",
)
DEVICE_MODES = ("auto", "discover", "uinput")

STATUS_READY = "ready"
STATUS_OK = "ok"
STATUS_ERROR = "error"

# ---------------------------------------------------------------------------
# Key tables
# ---------------------------------------------------------------------------

KEY_CODES: dict[str, int] = {
    "esc": 1,
    "1": 2, "2": 3, "3": 4, "4": 5, "5": 6,
    "6": 7, "7": 8, "8": 9, "9": 10, "0": 11,
    "minus": 12, "equal": 13, "backspace": 14, "tab": 15,
    "q": 16, "w": 17, "e": 18, "r": 19, "t": 20,
    "y": 21, "u": 22, "i": 23, "o": 24, "p": 25,
    "leftbrace": 26, "rightbrace": 27, "enter": 28, "ctrl": 29,
    "a": 30, "s": 31, "d": 32, "f": 33, "g": 34,
    "h": 35, "j": 36, "k": 37, "l": 38,
    "semicolon": 39, "apostrophe": 40, "grave": 41, "shift": 42,
    "backslash": 43,
    "z": 44, "x": 45, "c": 46, "v": 47, "b": 48, "n": 49, "m": 50,
    "comma": 51, "dot": 52, "slash": 53, "rightshift": 54,
    "alt": 56, "space": 57, "capslock": 58,
    "f1": 59, "f2": 60, "f3": 61, "f4": 62, "f5": 63,
    "f6": 64, "f7": 65, "f8": 66, "f9": 67, "f10": 68,
    "numlock": 69, "scrolllock": 70, "f11": 87, "f12": 88,
    "rightctrl": 97, "sysrq": 99, "rightalt": 100,
    "home": 102, "up": 103, "pageup": 104, "left": 105, "right": 106,
    "end": 107, "down": 108, "pagedown": 109, "insert": 110, "delete": 111,
    "mute": 113, "volumedown": 114, "volumeup": 115, "power": 116,
    "pause": 119, "meta": 125, "rightmeta": 126, "menu": 127,
    "back": 158, "homepage": 172,
}

KEY_ALIASES: dict[str, str] = {
    "escape": "esc",
    "return": "enter",
    "del": "delete",
    "ins": "insert",
    "pgup": "pageup",
    "pgdn": "pagedown",
    "control": "ctrl",
    "leftctrl": "ctrl",
    "leftshift": "shift",
    "leftalt": "alt",
    "option": "alt",
    "leftmeta": "meta",
    "super": "meta",
    "win": "meta",
    "cmd": "meta",
    "period": "dot",
    "printscreen": "sysrq",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
}

_UNSHIFTED_SYMBOLS = {
    " ": "space", "\n": "enter", "\t": "tab",
    "-": "minus", "=": "equal", "[": "leftbrace", "]": "rightbrace",
    "\\": "backslash", ";": "semicolon", "'": "apostrophe", "`": "grave",
    ",": "comma", ".": "dot", "/": "slash",
}

_SHIFTED_SYMBOLS = {
    "!": "1", "@": "2", "#": "3", "$": "4", "%": "5",
    "^": "6", "&": "7", "*": "8", "(": "9", ")": "0",
    "_": "minus", "+": "equal", "{": "leftbrace", "}": "rightbrace",
    "|": "backslash", ":": "semicolon", '"': "apostrophe", "~": "grave",
    "<": "comma", ">": "dot", "?": "slash",
}


def _build_char_keys() -> dict[str, tuple[str, bool]]:
    table: dict[str, tuple[str, bool]] = {}
    for char in "abcdefghijklmnopqrstuvwxyz":
        table[char] = (char, False)
        table[char.upper()] = (char, True)
    for char in "0123456789":
        table[char] = (char, False)
    for char, name in _UNSHIFTED_SYMBOLS.items():
        table[char] = (name, False)
    for char, name in _SHIFTED_SYMBOLS.items():
        table[char] = (name, True)
    return table


# Printable character -> (key name, needs shift), US layout.
CHAR_KEYS: dict[str, tuple[str, bool]] = _build_char_keys()


class UnknownKeyError(ValueError):
    """Raised when a key or modifier name is not in the key table."""


class KeyboardUnavailableError(RuntimeError):
    """Raised for key commands when the virtual keyboard could not be created."""


def resolve_key(name: str) -> int:
    """Return the Linux key code for a key name.

    Names are case-insensitive and may be aliases (``return``, ``esc``) or a
    single unshifted character (``;``, ``/``).

    Raises:
        UnknownKeyError: If the name has no key code.
    """
    if len(name) == 1 and name in _UNSHIFTED_SYMBOLS:
        return KEY_CODES[_UNSHIFTED_SYMBOLS[name]]
    lowered = name.strip().lower()
    lowered = KEY_ALIASES.get(lowered, lowered)
    if lowered in KEY_CODES:
        return KEY_CODES[lowered]
    raise UnknownKeyError(f"unknown key: {name!r}")


# ---------------------------------------------------------------------------
# Coordinate mapping
# ---------------------------------------------------------------------------


class AxisRange:
    """Native range a device reports for one absolute axis."""

    __slots__ = ("minimum", "maximum")

    def __init__(self, minimum: int, maximum: int) -> None:
        self.minimum = minimum
        self.maximum = maximum

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AxisRange):
            return NotImplemented
        return (self.minimum, self.maximum) == (other.minimum, other.maximum)

    def __repr__(self) -> str:
        return f"AxisRange({self.minimum}, {self.maximum})"


def map_axis(value: int, screen_size: int, axis: AxisRange) -> int:
    """Scale a logical screen coordinate onto a device axis range."""
    span = axis.maximum - axis.minimum
    return axis.minimum + round(value * span / (screen_size - 1))


class CoordinateMapper:
    """Maps logical screen coordinates to device coordinates.

    With no axis ranges the mapping is the identity, which is the case for
    devices this engine creates itself.
    """

    def __init__(
        self,
        screen_width: int,
        screen_height: int,
        x_range: AxisRange | None = None,
        y_range: AxisRange | None = None,
    ) -> None:
        self.screen_width = screen_width
        self.screen_height = screen_height
        self.x_range = x_range
        self.y_range = y_range

    def map(self, x: int, y: int) -> tuple[int, int]:
        if self.x_range is not None:
            x = map_axis(x, self.screen_width, self.x_range)
        if self.y_range is not None:
            y = map_axis(y, self.screen_height, self.y_range)
        return x, y


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


class InputDevice:
    """A writable evdev node; each ``emit`` writes one struct input_event."""

    def __init__(self, fd: int, name: str, path: str) -> None:
        self.fd = fd
        self.name = name
        self.path = path
        self.x_range: AxisRange | None = None
        self.y_range: AxisRange | None = None

    def emit(self, ev_type: int, code: int, value: int) -> None:
        now = time.time()
        sec = int(now)
        usec = int((now - sec) * 1_000_000)
        os.write(self.fd, struct.pack(EVENT_FORMAT, sec, usec, ev_type, code, value))

    def syn(self) -> None:
        self.emit(EV_SYN, SYN_REPORT, 0)

    def close(self) -> None:
        os.close(self.fd)


class UinputDevice(InputDevice):
    """A device created through /dev/uinput; destroyed on close."""

    def close(self) -> None:
        try:
            fcntl.ioctl(self.fd, UI_DEV_DESTROY)
        finally:
            os.close(self.fd)


class TouchscreenInfo:
    """A touchscreen entry found in the kernel's input device listing."""

    def __init__(self, name: str, path: str) -> None:
        self.name = name
        self.path = path

    def __repr__(self) -> str:
        return f"TouchscreenInfo({self.name!r}, {self.path!r})"


def _bitmap_has(words: list[str], bit: int, long_bits: int) -> bool:
    value = 0
    for word in words:
        value = (value << long_bits) | int(word, 16)
    return bool(value >> bit & 1)


def parse_input_devices(text: str, long_bits: int | None = None) -> list[TouchscreenInfo]:
    """Return direct-touch multi-touch devices from /proc/bus/input/devices.

    Devices whose name carries ``DEVICE_NAME_MARKER`` are skipped.
    """
    found: list[TouchscreenInfo] = []
    for block in re.split(r"\n\s*\n", text):
        name = ""
        handler = None
        bitmaps: dict[str, list[str]] = {}
        for line in block.splitlines():
            if line.startswith("N: Name="):
                name = line[len("N: Name="):].strip().strip('"')
            elif line.startswith("H: Handlers="):
                for token in line[len("H: Handlers="):].split():
                    if token.startswith("event"):
                        handler = token
            elif line.startswith("B: "):
                key, _, value = line[3:].partition("=")
                bitmaps[key.strip()] = value.split()
        if handler is None or DEVICE_NAME_MARKER in name.lower():
            continue
        prop = bitmaps.get("PROP", [])
        abs_bits = bitmaps.get("ABS", [])
        if not prop or not abs_bits:
            continue
        bits = long_bits or _kernel_long_bits(prop + abs_bits)
        if _bitmap_has(prop, INPUT_PROP_DIRECT, bits) and _bitmap_has(
            abs_bits, ABS_MT_POSITION_X, bits
        ):
            found.append(TouchscreenInfo(name, "/dev/input/" + handler))
    return found


def _kernel_long_bits(words: list[str]) -> int:
    if any(len(word) > 8 for word in words):
        return 64
    return 64 if os.uname().machine.endswith("64") else 32


class LinuxInputBackend:
    """Finds, opens, and creates input devices on the local machine."""

    def __init__(
        self,
        devices_listing: str = PROC_INPUT_DEVICES,
        uinput_path: str = UINPUT_PATH,
        sysfs_root: str = "/sys/class",
        long_bits: int | None = None,
    ) -> None:
        self._devices_listing = devices_listing
        self._uinput_path = uinput_path
        self._sysfs_root = sysfs_root
        self._long_bits = long_bits

    def probe_screen_size(self) -> tuple[int | None, int | None]:
        framebuffers = os.path.join(self._sysfs_root, "graphics", "fb*", "virtual_size")
        for path in sorted(glob.glob(framebuffers)):
            size = _read_size(path, ",")
            if size:
                return size
        for status_path in sorted(glob.glob(os.path.join(self._sysfs_root, "drm", "*", "status"))):
            if _read_text(status_path) != "connected":
                continue
            modes = os.path.join(os.path.dirname(status_path), "modes")
            size = _read_size(modes, "x")
            if size:
                return size
        return None, None

    def discover_touchscreen(self) -> TouchscreenInfo | None:
        try:
            with open(self._devices_listing) as f:
                text = f.read()
        except OSError as e:
            logger.warning("Cannot read %s: %s", self._devices_listing, e)
            return None
        candidates = parse_input_devices(text, self._long_bits)
        logger.debug("Touchscreen candidates: %s", candidates)
        return candidates[0] if candidates else None

    def open_touchscreen(self, info: TouchscreenInfo) -> InputDevice:
        fd = os.open(info.path, os.O_WRONLY)
        device = InputDevice(fd, info.name, info.path)
        device.x_range = _query_abs_range(fd, ABS_MT_POSITION_X)
        device.y_range = _query_abs_range(fd, ABS_MT_POSITION_Y)
        return device

    def create_touchscreen(self, width: int, height: int) -> UinputDevice:
        axes = (
            (ABS_MT_SLOT, 0, MAX_SLOT),
            (ABS_MT_TRACKING_ID, 0, TRACKING_ID_MODULUS - 1),
            (ABS_MT_POSITION_X, 0, width - 1),
            (ABS_MT_POSITION_Y, 0, height - 1),
        )

        def configure(fd: int) -> None:
            fcntl.ioctl(fd, UI_SET_EVBIT, EV_ABS)
            for code, _, _ in axes:
                fcntl.ioctl(fd, UI_SET_ABSBIT, code)
            fcntl.ioctl(fd, UI_SET_PROPBIT, INPUT_PROP_DIRECT)
            for code, minimum, maximum in axes:
                setup = struct.pack(ABS_SETUP_FORMAT, code, 0, 0, minimum, maximum, 0, 0, 0)
                fcntl.ioctl(fd, UI_ABS_SETUP, setup)

        return self._create(TOUCHSCREEN_NAME, 0x0001, configure)

    def create_keyboard(self) -> UinputDevice:
        def configure(fd: int) -> None:
            fcntl.ioctl(fd, UI_SET_EVBIT, EV_KEY)
            for code in sorted(set(KEY_CODES.values())):
                fcntl.ioctl(fd, UI_SET_KEYBIT, code)

        return self._create(KEYBOARD_NAME, 0x0002, configure)

    def _create(self, name: str, product: int, configure) -> UinputDevice:
        fd = os.open(self._uinput_path, os.O_WRONLY | os.O_NONBLOCK)
        try:
            configure(fd)
            setup = struct.pack(
                DEV_SETUP_FORMAT,
                BUS_VIRTUAL, 0x1209, product, 1,
                name.encode().ljust(UINPUT_MAX_NAME_SIZE, b"\x00"),
                0,
            )
            fcntl.ioctl(fd, UI_DEV_SETUP, setup)
            fcntl.ioctl(fd, UI_DEV_CREATE)
        except BaseException:
            os.close(fd)
            raise
        # udev needs a moment to create the device node
        time.sleep(UDEV_SETTLE_DELAY)
        logger.info("Created uinput device %s", name)
        return UinputDevice(fd, name, self._uinput_path)


def _query_abs_range(fd: int, code: int) -> AxisRange | None:
    try:
        buf = fcntl.ioctl(fd, EVIOCGABS_BASE + code, bytes(struct.calcsize(ABSINFO_FORMAT)))
    except OSError as e:
        logger.warning("EVIOCGABS failed for axis 0x%02x: %s", code, e)
        return None
    _, minimum, maximum, _, _, _ = struct.unpack(ABSINFO_FORMAT, buf)
    if maximum <= minimum:
        return None
    return AxisRange(minimum, maximum)


def _read_text(path: str) -> str:
    try:
        with open(path) as f:
            return f.read().strip()
    except OSError:
        return ""


def _read_size(path: str, separator: str) -> tuple[int, int] | None:
    first = _read_text(path).splitlines()
    if not first:
        return None
    match = re.match(r"\s*(\d+)\s*%s\s*(\d+)" % re.escape(separator), first[0])
    if match is None:
        return None
    width, height = int(match.group(1)), int(match.group(2))
    if width > 1 and height > 1:
        return width, height
    return None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def make_response(cmd_id: str, status: str, message: str | None = None, **extra: object) -> dict:
    response: dict = {"id": cmd_id, "status": status}
    if message is not None:
        response["message"] = message
    response.update({k: v for k, v in extra.items() if v is not None})
    return response


def permission_message(error: PermissionError) -> str:
    path = error.filename or "the input device"
    return (
        f"Permission denied accessing {path}. Add the user to the input group "
        "(sudo usermod -aG input $USER) or connect with sudo enabled."
    )


class TouchEngine:
    """Executes protocol commands against touch and keyboard devices.

    All state (devices, coordinate mapping, tracking-id counter) lives on the
    instance. The engine is synchronous: a gesture blocks until its last
    event is written, and ``busy`` is true for the duration.
    """

    def __init__(
        self,
        backend: LinuxInputBackend | None = None,
        sleep=time.sleep,
        keypress_delay: float = DEFAULT_KEYPRESS_DELAY,
        inter_char_delay: float = DEFAULT_INTER_CHAR_DELAY,
    ) -> None:
        self._backend = backend or LinuxInputBackend()
        self._sleep = sleep
        self._keypress_delay = keypress_delay
        self._inter_char_delay = inter_char_delay
        self.touch: InputDevice | None = None
        self.keyboard: InputDevice | None = None
        self.keyboard_error: str | None = None
        self.mapper: CoordinateMapper | None = None
        self.busy = False
        self.running = False
        self._tracking_id = 0
        self._handlers = {name: getattr(self, "_handle_" + name) for name in COMMAND_TYPES}

    # -- dispatch -----------------------------------------------------------

    def handle(self, command: dict) -> dict:
        """Execute one decoded command and return its response."""
        cmd_id = str(command.get("id", "?"))
        cmd_type = command.get("type", "")
        handler = self._handlers.get(cmd_type) if isinstance(cmd_type, str) else None
        if handler is None:
            return make_response(cmd_id, STATUS_ERROR, f"unknown command: {cmd_type}")
        if cmd_type not in ("init", "shutdown") and self.touch is None:
            return make_response(cmd_id, STATUS_ERROR, "device not initialized, send init first")

        self.busy = True
        try:
            return handler(cmd_id, command)
        except PermissionError as e:
            return make_response(cmd_id, STATUS_ERROR, permission_message(e))
        except (UnknownKeyError, KeyboardUnavailableError) as e:
            return make_response(cmd_id, STATUS_ERROR, str(e))
        except Exception as e:
            logger.exception("%s command failed", cmd_type)
            return make_response(cmd_id, STATUS_ERROR, str(e) or type(e).__name__)
        finally:
            self.busy = False

    def serve(self, stdin=None, stdout=None) -> None:
        """Read commands until EOF or ``shutdown``; always release devices."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        self.running = True
        try:
            for line in iter(stdin.readline, ""):
                line = line.strip()
                if not line:
                    continue
                try:
                    command = json.loads(line)
                except ValueError as e:
                    logger.warning("Invalid JSON: %s", e)
                    continue
                if isinstance(command, dict):
                    response = self.handle(command)
                else:
                    response = make_response("?", STATUS_ERROR, "command must be a JSON object")
                stdout.write(json.dumps(response) + "\n")
                stdout.flush()
                if not self.running:
                    break
        finally:
            self.running = False
            self.close()

    def close(self) -> None:
        for device in (self.touch, self.keyboard):
            if device is None:
                continue
            try:
                device.close()
            except OSError as e:
                logger.warning("Failed to release %s: %s", device.name, e)
        self.touch = None
        self.keyboard = None
        self.mapper = None

    # -- init / shutdown ----------------------------------------------------

    def _handle_init(self, cmd_id: str, command: dict) -> dict:
        self.close()
        width, height = self._resolve_screen_size(command)
        mode = command.get("device") or "auto"
        if mode not in DEVICE_MODES:
            raise ValueError(f"unknown device mode: {mode}")

        touch = None
        if mode in ("auto", "discover"):
            info = self._backend.discover_touchscreen()
            if info is not None:
                touch = self._backend.open_touchscreen(info)
                x_range = touch.x_range or AxisRange(0, width - 1)
                y_range = touch.y_range or AxisRange(0, height - 1)
                self.mapper = CoordinateMapper(width, height, x_range, y_range)
                status = (
                    f"using touchscreen {info.name!r} ({info.path}), "
                    f"x {x_range.minimum}..{x_range.maximum}, "
                    f"y {y_range.minimum}..{y_range.maximum}"
                )
            elif mode == "discover":
                raise LookupError("no touchscreen found in " + PROC_INPUT_DEVICES)
        if touch is None:
            touch = self._backend.create_touchscreen(width, height)
            self.mapper = CoordinateMapper(width, height)
            status = f"created uinput touchscreen {width}x{height}"
        self.touch = touch

        try:
            self.keyboard = self._backend.create_keyboard()
            self.keyboard_error = None
            status += "; keyboard ready"
        except PermissionError as e:
            self.keyboard_error = permission_message(e)
            status += "; keyboard unavailable"
        except OSError as e:
            self.keyboard_error = str(e)
            status += "; keyboard unavailable"
        if self.keyboard_error:
            logger.warning("Keyboard unavailable: %s", self.keyboard_error)

        logger.info("Initialized: %s", status)
        return make_response(
            cmd_id, STATUS_READY, status, screen_width=width, screen_height=height
        )

    def _resolve_screen_size(self, command: dict) -> tuple[int, int]:
        width = _positive(command.get("screen_width"))
        height = _positive(command.get("screen_height"))
        if width is None or height is None:
            probed_width, probed_height = self._backend.probe_screen_size()
            width = width or probed_width or DEFAULT_SCREEN_WIDTH
            height = height or probed_height or DEFAULT_SCREEN_HEIGHT
        if width < 2 or height < 2:
            raise ValueError("screen dimensions must be greater than 1")
        return width, height

    def _handle_shutdown(self, cmd_id: str, command: dict) -> dict:
        self.running = False
        return make_response(cmd_id, STATUS_OK, "shutting down")

    # -- touch --------------------------------------------------------------

    def next_tracking_id(self) -> int:
        self._tracking_id = (self._tracking_id + 1) % TRACKING_ID_MODULUS
        return self._tracking_id

    def touch_down(self, x: int, y: int) -> None:
        dx, dy = self.mapper.map(x, y)
        device = self.touch
        device.emit(EV_ABS, ABS_MT_SLOT, 0)
        device.emit(EV_ABS, ABS_MT_TRACKING_ID, self.next_tracking_id())
        device.emit(EV_ABS, ABS_MT_POSITION_X, dx)
        device.emit(EV_ABS, ABS_MT_POSITION_Y, dy)
        device.syn()

    def touch_move(self, x: int, y: int) -> None:
        dx, dy = self.mapper.map(x, y)
        device = self.touch
        device.emit(EV_ABS, ABS_MT_SLOT, 0)
        device.emit(EV_ABS, ABS_MT_POSITION_X, dx)
        device.emit(EV_ABS, ABS_MT_POSITION_Y, dy)
        device.syn()

    def touch_up(self) -> None:
        device = self.touch
        device.emit(EV_ABS, ABS_MT_SLOT, 0)
        device.emit(EV_ABS, ABS_MT_TRACKING_ID, -1)
        device.syn()

    def _press(self, x: int, y: int, duration_ms: int) -> None:
        self.touch_down(x, y)
        self._sleep(duration_ms / 1000.0)
        self.touch_up()

    def _handle_tap(self, cmd_id: str, command: dict) -> dict:
        x, y = _point(command, "x", "y")
        self._press(x, y, _duration(command, DEFAULT_TAP_MS))
        return make_response(cmd_id, STATUS_OK)

    def _handle_long_press(self, cmd_id: str, command: dict) -> dict:
        x, y = _point(command, "x", "y")
        self._press(x, y, _duration(command, DEFAULT_LONG_PRESS_MS))
        return make_response(cmd_id, STATUS_OK)

    def _handle_double_tap(self, cmd_id: str, command: dict) -> dict:
        x, y = _point(command, "x", "y")
        self._press(x, y, DOUBLE_TAP_PRESS_MS)
        self._sleep(DOUBLE_TAP_GAP_MS / 1000.0)
        self._press(x, y, DOUBLE_TAP_PRESS_MS)
        return make_response(cmd_id, STATUS_OK)

    def _handle_swipe(self, cmd_id: str, command: dict) -> dict:
        x1, y1 = _point(command, "x", "y")
        x2, y2 = _point(command, "x2", "y2")
        duration_ms = _duration(command, DEFAULT_SWIPE_MS)
        steps = command.get("steps")
        if steps is None:
            steps = max(duration_ms // SWIPE_STEP_MS, 2)
        steps = int(steps)
        if steps < 1:
            raise ValueError("steps must be at least 1")

        delay = duration_ms / 1000.0 / steps
        self.touch_down(x1, y1)
        for i in range(1, steps + 1):
            t = i / steps
            self._sleep(delay)
            self.touch_move(round(x1 + (x2 - x1) * t), round(y1 + (y2 - y1) * t))
        self.touch_up()
        return make_response(cmd_id, STATUS_OK)

    # -- keyboard -----------------------------------------------------------

    def _require_keyboard(self) -> InputDevice:
        if self.keyboard is None:
            reason = self.keyboard_error or "not created"
            raise KeyboardUnavailableError(f"keyboard unavailable: {reason}")
        return self.keyboard

    def _key(self, code: int, value: int) -> None:
        self.keyboard.emit(EV_KEY, code, value)
        self.keyboard.syn()

    def _handle_key_press(self, cmd_id: str, command: dict) -> dict:
        self._require_keyboard()
        key = resolve_key(str(command.get("key", "")))
        modifiers = [resolve_key(str(m)) for m in command.get("modifiers") or []]

        for code in modifiers:
            self._key(code, 1)
        self._key(key, 1)
        self._sleep(self._keypress_delay)
        self._key(key, 0)
        for code in reversed(modifiers):
            self._key(code, 0)
        return make_response(cmd_id, STATUS_OK)

    def _handle_key_type(self, cmd_id: str, command: dict) -> dict:
        self._require_keyboard()
        shift = KEY_CODES["shift"]
        typed = 0
        for char in str(command.get("text", "")):
            entry = CHAR_KEYS.get(char)
            if entry is None:
                logger.debug("Skipping unmapped character %r", char)
                continue
            name, needs_shift = entry
            code = KEY_CODES[name]
            if needs_shift:
                self._key(shift, 1)
                self._sleep(self._inter_char_delay)
            self._key(code, 1)
            self._sleep(self._keypress_delay)
            self._key(code, 0)
            if needs_shift:
                self._sleep(self._inter_char_delay)
                self._key(shift, 0)
            self._sleep(self._inter_char_delay)
            typed += 1
        return make_response(cmd_id, STATUS_OK, f"typed {typed} characters")


def _positive(value: object) -> int | None:
    if value is None:
        return None
    number = int(value)
    return number if number > 0 else None


def _point(command: dict, x_field: str, y_field: str) -> tuple[int, int]:
    missing = [f for f in (x_field, y_field) if command.get(f) is None]
    if missing:
        raise ValueError("missing field: " + ", ".join(missing))
    return int(command[x_field]), int(command[y_field])


def _duration(command: dict, default_ms: int) -> int:
    value = command.get("duration_ms")
    if value is None:
        return default_ms
    duration = int(value)
    if duration < 0:
        raise ValueError("duration_ms must not be negative")
    return duration


def main(argv: list[str] | None = None) -> None:
    argv = sys.argv[1:] if argv is None else argv
    debug = "--verbose" in argv or os.environ.get("REMOTETOUCH_ENGINE_DEBUG", "") not in ("", "0")
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    TouchEngine().serve()


if __name__ == "__main__":
    main()
