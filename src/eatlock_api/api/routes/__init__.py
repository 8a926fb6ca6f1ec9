"""API routes."""

from . import nutrition, storage, usage, vision

__all__ = ["nutrition", "storage", "usage", "vision"]
