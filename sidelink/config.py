"""Configuration management for the sidelink relay subsystem."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from enum import Enum
import os

from .errors import ConfigError


class DiscoveryModel(Enum):
    """Relay discovery interaction models."""
    ANNOUNCE = "announce"
    REQUEST_RESPONSE = "request-response"


class DiscoveryRole(Enum):
    """Role a device plays in one discovery session."""
    REMOTE = "remote"
    RELAY = "relay"
    ANNOUNCING = "announcing"
    MONITORING = "monitoring"


class SelectionPolicy(Enum):
    """Relay (re)selection algorithms."""
    FIRST_ELIGIBLE = "first-eligible"
    RANDOM = "random"
    STRONGEST_SIGNAL = "strongest-signal"


def _coerce_enum(enum_cls: type, value: Any, name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"{name} must be one of: {allowed} (got {value!r})") from None


def _raise_if_invalid(errors: List[str]) -> None:
    if errors:
        raise ConfigError("; ".join(errors))


def validate_service_code(service_code: int) -> int:
    """Reject unset or non-positive relay service codes."""
    if service_code is None or int(service_code) <= 0:
        raise ConfigError(f"relay service code must be greater than zero (got {service_code!r})")
    return int(service_code)


@dataclass
class EligibilityConfig:
    """Signal filtering and relay eligibility criteria."""

    threshold: float = -110.0
    hysteresis: float = 10.0
    filter_coefficient: float = 0.5

    def __post_init__(self) -> None:
        _raise_if_invalid(self.validate())

    def validate(self) -> List[str]:
        errors = []
        if self.hysteresis < 0:
            errors.append("hysteresis must be non-negative")
        if not 0.0 <= self.filter_coefficient <= 1.0:
            errors.append("filter_coefficient must be within [0, 1]")
        return errors


@dataclass
class DiscoveryConfig:
    """Periodic discovery messaging settings."""

    interval: float = 2.0
    model: DiscoveryModel = DiscoveryModel.REQUEST_RESPONSE
    start_window: float = 2.0

    def __post_init__(self) -> None:
        self.model = _coerce_enum(DiscoveryModel, self.model, "discovery model")
        _raise_if_invalid(self.validate())

    def validate(self) -> List[str]:
        errors = []
        if self.interval <= 0:
            errors.append("discovery interval must be positive")
        if self.start_window < 0:
            errors.append("discovery start_window must be non-negative")
        return errors


@dataclass
class SelectionConfig:
    """Relay selection settings.

    ``reselection_interval`` enables a periodic reselection tick and
    ``candidate_max_age`` enables aging of discovered relays. Both features are
    disabled when left as ``None``.
    """

    policy: SelectionPolicy = SelectionPolicy.STRONGEST_SIGNAL
    seed: int = 1
    reselection_interval: Optional[float] = None
    candidate_max_age: Optional[float] = None

    def __post_init__(self) -> None:
        self.policy = _coerce_enum(SelectionPolicy, self.policy, "selection policy")
        _raise_if_invalid(self.validate())

    def validate(self) -> List[str]:
        errors = []
        if self.seed < 0:
            errors.append("selection seed must be non-negative")
        if self.reselection_interval is not None and self.reselection_interval <= 0:
            errors.append("reselection_interval must be positive when set")
        if self.candidate_max_age is not None and self.candidate_max_age <= 0:
            errors.append("candidate_max_age must be positive when set")
        return errors


@dataclass
class DirectLinkConfig:
    """Handshake timers for direct link establishment and release.

    ``establish_retries`` is the number of retransmissions of the
    establishment request after the first transmission. ``release_retries`` is
    the number of ``t_release`` periods waited, each started by one
    transmission of the release request, before local cleanup is forced.
    """

    t_establish: float = 2.0
    establish_retries: int = 3
    t_release: float = 5.0
    release_retries: int = 3

    def __post_init__(self) -> None:
        _raise_if_invalid(self.validate())

    def validate(self) -> List[str]:
        errors = []
        if self.t_establish <= 0:
            errors.append("t_establish must be positive")
        if self.t_release <= 0:
            errors.append("t_release must be positive")
        if self.establish_retries < 0:
            errors.append("establish_retries must be non-negative")
        if self.release_retries < 1:
            errors.append("release_retries must be at least 1")
        return errors


@dataclass
class RelayServiceConfig:
    """A relay service offered by a relay device."""

    service_code: int
    relay_bearer_id: int = 0

    def __post_init__(self) -> None:
        self.service_code = validate_service_code(self.service_code)
        if self.relay_bearer_id < 0:
            raise ConfigError("relay_bearer_id must be non-negative")


def _optional_float(raw: str) -> Optional[float]:
    if raw.strip().lower() in ("", "none", "off"):
        return None
    return float(raw)


_ENV_FIELDS: Dict[Tuple[str, str], Callable[[str], Any]] = {
    ("eligibility", "threshold"): float,
    ("eligibility", "hysteresis"): float,
    ("eligibility", "filter_coefficient"): float,
    ("discovery", "interval"): float,
    ("discovery", "model"): str,
    ("discovery", "start_window"): float,
    ("selection", "policy"): str,
    ("selection", "seed"): int,
    ("selection", "reselection_interval"): _optional_float,
    ("selection", "candidate_max_age"): _optional_float,
    ("direct_link", "t_establish"): float,
    ("direct_link", "establish_retries"): int,
    ("direct_link", "t_release"): float,
    ("direct_link", "release_retries"): int,
}


@dataclass
class SidelinkConfig:
    """Complete configuration of one sidelink device."""

    eligibility: EligibilityConfig = field(default_factory=EligibilityConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    direct_link: DirectLinkConfig = field(default_factory=DirectLinkConfig)

    _SECTIONS = {
        "eligibility": EligibilityConfig,
        "discovery": DiscoveryConfig,
        "selection": SelectionConfig,
        "direct_link": DirectLinkConfig,
    }

    def validate(self) -> List[str]:
        """
        Validate the whole configuration.

        Returns:
            List of validation errors. Empty if valid.
        """
        errors: List[str] = []
        for name in self._SECTIONS:
            errors.extend(getattr(self, name).validate())
        return errors

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Export configuration as plain values (enums as their strings)."""
        result: Dict[str, Dict[str, Any]] = {}
        for name in self._SECTIONS:
            section = asdict(getattr(self, name))
            result[name] = {
                key: value.value if isinstance(value, Enum) else value
                for key, value in section.items()
            }
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> SidelinkConfig:
        """
        Build a configuration from nested plain mappings.

        Args:
            data: Mapping of section name to field values. Missing sections
                  and fields keep their defaults.

        Raises:
            ConfigError: On unknown sections or fields, or invalid values.
        """
        unknown = set(data) - set(cls._SECTIONS)
        if unknown:
            raise ConfigError(f"unknown configuration sections: {sorted(unknown)}")

        sections = {}
        for name, section_cls in cls._SECTIONS.items():
            try:
                sections[name] = section_cls(**dict(data.get(name, {})))
            except TypeError as e:
                raise ConfigError(f"invalid {name} configuration: {e}") from e
        return cls(**sections)

    @classmethod
    def from_environment(
        cls,
        prefix: str = "SIDELINK_",
        environ: Optional[Mapping[str, str]] = None,
    ) -> SidelinkConfig:
        """
        Build a configuration from environment variables.

        Variables are named ``<prefix><SECTION>_<FIELD>``, for example
        ``SIDELINK_SELECTION_POLICY=random`` or
        ``SIDELINK_DIRECT_LINK_T_RELEASE=2.5``.

        Args:
            prefix: Environment variable prefix.
            environ: Mapping to read instead of ``os.environ``.
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Dict[str, Any]] = {}
        for (section, name), convert in _ENV_FIELDS.items():
            env_var = f"{prefix}{section}_{name}".upper()
            raw = environ.get(env_var)
            if raw is None:
                continue
            try:
                data.setdefault(section, {})[name] = convert(raw)
            except ValueError as e:
                raise ConfigError(f"{env_var}: {e}") from e
        return cls.from_dict(data)
