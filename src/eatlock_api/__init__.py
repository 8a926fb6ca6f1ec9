"""EatLock meal verification API and device-side session core."""

__version__ = "1.0.0"
