"""Shared exceptions for :mod:`sidelink`.

Only misuse of the public API and invalid configuration raise. Lost, late or
duplicate protocol messages are expected on the sidelink and are reported
through the event sink instead.
"""

from __future__ import annotations


class SidelinkError(Exception):
    """Base error for sidelink operations."""


class ConfigError(SidelinkError, ValueError):
    """Raised when a configuration value is missing or out of range."""


class MessageDecodeError(SidelinkError, ValueError):
    """Raised when inbound bytes cannot be decoded into a known message."""


class LinkError(SidelinkError):
    """Raised for invalid direct link requests made by the local application."""
