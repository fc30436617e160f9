"""
Configuration

Connection, slot and timing settings pushed into the transport and
controller. Settings are owned by the host application; this module only
validates them and reads them from an optional YAML file. It never writes.

Example file:

    osc:
      host: 192.168.1.20
      port: 2269
      layer: 3
      start_slot: 1
      clip_count: 3
      text_delay: 0.2
      auto_clear_after: 180
    retry:
      retry_delay: 5.0
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .errors import ConfigurationError
from .model import SlotRange

logger = logging.getLogger(__name__)

DEFAULT_PORT = 2269


# =============================================================================
# OSC CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class OscConfig:
    """
    Display engine endpoint and slot layout.

    Attributes:
        host: Display engine host; empty means "not configured yet"
        port: Display engine OSC port
        layer: Layer holding the text clips (>= 1)
        start_slot: First content clip
        clip_count: Number of content clips to rotate through
        clear_slot: Blank clip; defaults to start_slot + clip_count
        text_delay: Seconds between setting the text and activating the clip
        auto_clear_after: Seconds a message stays on the wall, <= 0 disables
    """
    host: str = ""
    port: int = DEFAULT_PORT
    layer: int = 3
    start_slot: int = 1
    clip_count: int = 3
    clear_slot: Optional[int] = None
    text_delay: float = 0.2
    auto_clear_after: float = 180.0

    @property
    def slot_range(self) -> SlotRange:
        return SlotRange(
            layer=self.layer,
            start_slot=self.start_slot,
            clip_count=self.clip_count,
            clear_slot=self.clear_slot,
        )

    @property
    def endpoint(self) -> Tuple[str, int]:
        return (self.host, self.port)

    @property
    def has_valid_endpoint(self) -> bool:
        return bool(self.host.strip()) and 0 < self.port <= 65535

    @property
    def auto_clear_enabled(self) -> bool:
        return self.auto_clear_after > 0

    def same_endpoint(self, other: "OscConfig") -> bool:
        """True when only layer/slot/timing fields differ."""
        return self.endpoint == other.endpoint

    def validate(self) -> "OscConfig":
        """
        Check all fields.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: describing the first invalid field
        """
        self.validate_endpoint()
        self.validate_slots()
        if self.text_delay < 0:
            raise ConfigurationError(f"text_delay must be >= 0, got {self.text_delay}")
        return self

    def validate_endpoint(self) -> None:
        if not self.host.strip():
            raise ConfigurationError("OSC host is empty")
        if not 0 < self.port <= 65535:
            raise ConfigurationError(f"Invalid OSC port: {self.port}")

    def validate_slots(self) -> None:
        """Check the layer/slot fields only (host may still be unset)."""
        if self.layer < 1:
            raise ConfigurationError(f"Layer must be >= 1, got {self.layer}")
        if self.start_slot < 1:
            raise ConfigurationError(f"start_slot must be >= 1, got {self.start_slot}")
        if self.clip_count < 1:
            raise ConfigurationError(f"clip_count must be >= 1, got {self.clip_count}")
        slots = self.slot_range
        if slots.contains(slots.clear_slot):
            raise ConfigurationError(
                f"Clear slot {slots.clear_slot} overlaps content slots "
                f"{slots.start_slot}-{slots.end_slot}"
            )


# =============================================================================
# RETRY POLICY
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Transport timing constants.

    Attributes:
        quick_start_delay: Reconnect delay until the first successful connection
        retry_delay: Reconnect delay after that
        min_attempt_interval: Connection-storm guard between attempts
        startup_wait: Max wait for `connected` inside send() before first connection
        steady_wait: Max wait for `connected` inside send() afterwards
        poll_interval: Poll step for the waits above
        connect_timeout: Max time for a single socket open
    """
    quick_start_delay: float = 0.5
    retry_delay: float = 3.0
    min_attempt_interval: float = 1.0
    startup_wait: float = 3.0
    steady_wait: float = 1.0
    poll_interval: float = 0.1
    connect_timeout: float = 5.0


# =============================================================================
# LOADING
# =============================================================================

def _coerce(cls, data: Dict[str, Any], section: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"'{section}' section must be a mapping")

    known = {f.name: f for f in fields(cls)}
    unknown = set(data) - set(known)
    if unknown:
        logger.warning(f"Ignoring unknown {section} settings: {sorted(unknown)}")

    values: Dict[str, Any] = {}
    for name, value in data.items():
        if name not in known or value is None:
            continue
        default = known[name].default
        try:
            if isinstance(default, str):
                values[name] = str(value)
            elif isinstance(default, float):
                values[name] = float(value)
            else:
                values[name] = int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for {section}.{name}: {value!r}") from e
    return cls(**values)


def config_from_dict(data: Optional[Dict[str, Any]]) -> Tuple[OscConfig, RetryPolicy]:
    """
    Build configuration from a mapping with optional `osc` and `retry` sections.

    Raises:
        ConfigurationError: malformed sections or values
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping")
    config = _coerce(OscConfig, data.get("osc"), "osc")
    config.validate_slots()
    return config, _coerce(RetryPolicy, data.get("retry"), "retry")


def load_config(path: Union[str, Path]) -> Tuple[OscConfig, RetryPolicy]:
    """
    Load configuration from a YAML file.

    A missing file yields defaults.

    Raises:
        ConfigurationError: unreadable YAML or invalid values
    """
    path = Path(path)
    if not path.exists():
        logger.info(f"No config file at {path}, using defaults")
        return OscConfig(), RetryPolicy()

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    config, retry = config_from_dict(data)
    logger.info(f"Loaded config from {path}: {config.host or '<no host>'}:{config.port}")
    return config, retry


def apply_overrides(config: OscConfig, **overrides: Any) -> OscConfig:
    """Return config with every non-None override applied."""
    values = {k: v for k, v in overrides.items() if v is not None}
    return replace(config, **values) if values else config
