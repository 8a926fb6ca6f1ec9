"""Database layer."""

from .mongo import MongoDB

__all__ = ["MongoDB"]
