"""Utility modules for Ephemera."""

from ephemera.utils.time import Clock, utcnow

__all__ = [
    "Clock",
    "utcnow",
]
