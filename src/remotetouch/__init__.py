"""remotetouch -- drive a remote Linux touchscreen and keyboard over SSH.

A session manager starts a small event-synthesis engine on the target
device through ``ssh`` and exchanges line-delimited JSON commands with it.
The engine turns taps, swipes, and key presses into Linux input events on
a discovered touchscreen or on uinput devices it creates.
"""

__version__ = "0.1.0"
