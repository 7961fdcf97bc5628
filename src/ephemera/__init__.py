"""Ephemera: expiring, password-gated, limited-download file links."""

__version__ = "0.1.0"
