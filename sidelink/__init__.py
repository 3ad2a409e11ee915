"""Sidelink: relay discovery, relay selection and direct link lifecycle."""

__version__ = "0.1.0"

from .config import (
    DirectLinkConfig,
    DiscoveryConfig,
    DiscoveryModel,
    DiscoveryRole,
    EligibilityConfig,
    RelayServiceConfig,
    SelectionConfig,
    SelectionPolicy,
    SidelinkConfig,
)
from .device import SidelinkDevice
from .errors import ConfigError, LinkError, MessageDecodeError, SidelinkError
from .interfaces import LinkId
from .link import DirectLink, LinkRole, LinkState

__all__ = [
    "ConfigError",
    "DirectLink",
    "DirectLinkConfig",
    "DiscoveryConfig",
    "DiscoveryModel",
    "DiscoveryRole",
    "EligibilityConfig",
    "LinkError",
    "LinkId",
    "LinkRole",
    "LinkState",
    "MessageDecodeError",
    "RelayServiceConfig",
    "SelectionConfig",
    "SelectionPolicy",
    "SidelinkConfig",
    "SidelinkDevice",
    "SidelinkError",
]
