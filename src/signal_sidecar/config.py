"""Sidecar configuration.

Configuration is resolved in three layers, later layers winning:

1. built-in defaults,
2. an optional YAML file (snake_case keys matching ``SidecarConfig`` fields),
3. environment variables (``HTTP_PORT``, ``POLLING_INTERVAL``, ...).
"""

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from signal_sidecar.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warn", "warning", "error")


@dataclass(frozen=True)
class SidecarConfig:
    """Configuration for the signal sidecar."""
    http_port: int = 6000  # HTTP status API port
    tcp_port: int = 6060  # haproxy agent-check port
    jicofo_origin: str = "http://localhost:8888"
    prosody_origin: str = "http://localhost:5280"
    status_path: str = "/etc/jitsi/shard-status"

    # Polling and hysteresis, all in seconds
    polling_interval: float = 5.0
    health_dampening_interval: float = 30.0
    drain_grace_interval: float = 120.0

    # Probe behaviour
    request_timeout: float = 3.0
    request_retry_count: int = 2

    # Weighting
    participant_max: int = 5000
    weight_participants: bool = False
    min_weight: int = 5  # percent, floor for a healthy node
    over_capacity_drain: bool = False  # report drain above participant_max

    # Census
    census_poll: bool = False
    census_host: str = "host.example.com"
    census_reports: bool = False

    # Observability
    metrics: bool = True
    log_level: str = "info"

    # Consul
    consul_host: str = "localhost"
    consul_port: int = 8500
    consul_secure: bool = False
    consul_status: bool = False
    consul_reports: bool = False
    consul_status_key: str = "shard-state"
    consul_report_key: str = "shard-report"
    consul_reports_interval: float = 60.0

    @property
    def jicofo_health_url(self) -> str:
        return self.jicofo_origin.rstrip("/") + "/about/health"

    @property
    def jicofo_stats_url(self) -> str:
        return self.jicofo_origin.rstrip("/") + "/stats"

    @property
    def prosody_health_url(self) -> str:
        return self.prosody_origin.rstrip("/") + "/http-bind"

    @property
    def prosody_census_url(self) -> str:
        return self.prosody_origin.rstrip("/") + "/room-census"

    @property
    def consul_base_url(self) -> str:
        scheme = "https" if self.consul_secure else "http"
        return f"{scheme}://{self.consul_host}:{self.consul_port}"

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


# Environment variable name for each field
ENV_VARS: Dict[str, str] = {
    field.name: field.name.upper() for field in dataclasses.fields(SidecarConfig)
}
ENV_VARS.update({
    "jicofo_origin": "JICOFO_ORIG",
    "prosody_origin": "PROSODY_ORIG",
    "status_path": "STATUS_PATH",
})

_TRUE = {"1", "true", "yes", "on", "t", "y"}
_FALSE = {"0", "false", "no", "off", "f", "n", ""}


def _coerce(name: str, value: Any, target: type) -> Any:
    """Coerce a raw config value into the field's declared type."""
    if target is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"Invalid boolean for '{name}': {value!r}")

    if target in (int, float):
        if isinstance(value, bool):
            raise ConfigError(f"Invalid number for '{name}': {value!r}")
        if target is int and isinstance(value, float) and not value.is_integer():
            raise ConfigError(f"Invalid integer for '{name}': {value!r}")
        try:
            return target(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid number for '{name}': {value!r}") from exc

    if value is None:
        raise ConfigError(f"'{name}' must not be empty")
    return str(value)


def _field_types() -> Dict[str, type]:
    # Field annotations are real types here; no postponed evaluation in this module
    return {field.name: field.type for field in dataclasses.fields(SidecarConfig)}


def read_yaml(path: str) -> Dict[str, Any]:
    """Read a YAML config file into a mapping.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed mapping (empty for an empty file)

    Raises:
        ConfigError: If the file is missing, unparsable or not a mapping
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("Config file must contain a mapping at the top level")
    return raw


def validate(config: SidecarConfig) -> SidecarConfig:
    """Validate a config, correcting the drain grace interval if needed.

    Args:
        config: Config to check

    Returns:
        The config, possibly with ``drain_grace_interval`` adjusted

    Raises:
        ConfigError: If a value is out of range
    """
    if config.polling_interval <= 0:
        raise ConfigError("polling_interval must be positive")
    if config.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")
    if config.request_retry_count < 0:
        raise ConfigError("request_retry_count must not be negative")
    if config.health_dampening_interval < 0:
        raise ConfigError("health_dampening_interval must not be negative")
    if config.participant_max <= 0:
        raise ConfigError("participant_max must be positive")
    if not 1 <= config.min_weight <= 100:
        raise ConfigError("min_weight must be between 1 and 100")
    if config.consul_reports_interval <= 0:
        raise ConfigError("consul_reports_interval must be positive")
    if config.log_level.lower() not in LOG_LEVELS:
        raise ConfigError(
            f"log_level must be one of {', '.join(LOG_LEVELS)}, got {config.log_level!r}"
        )
    for port_name in ("http_port", "tcp_port", "consul_port"):
        port = getattr(config, port_name)
        if not 0 <= port <= 65535:
            raise ConfigError(f"{port_name} out of range: {port}")

    if config.drain_grace_interval <= config.health_dampening_interval:
        corrected = config.health_dampening_interval + 1
        logger.warning(
            f"drain_grace_interval ({config.drain_grace_interval}) should be greater than "
            f"health_dampening_interval ({config.health_dampening_interval}); "
            f"setting it to {corrected}"
        )
        config = dataclasses.replace(config, drain_grace_interval=corrected)

    return config


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SidecarConfig:
    """Load, merge and validate the sidecar configuration.

    Args:
        path: Optional YAML config file
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated configuration
    """
    environ = os.environ if environ is None else environ
    types = _field_types()
    values: Dict[str, Any] = {}

    if path:
        for key, value in read_yaml(path).items():
            if key not in types:
                raise ConfigError(f"Unknown config key: {key}")
            values[key] = _coerce(key, value, types[key])

    for name, env_name in ENV_VARS.items():
        if env_name in environ:
            values[name] = _coerce(name, environ[env_name], types[name])

    return validate(SidecarConfig(**values))
