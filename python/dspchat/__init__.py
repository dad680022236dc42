"""Terminal chat client and relay server for the NUL-framed DSP text protocol."""

__version__ = "0.1.0"
