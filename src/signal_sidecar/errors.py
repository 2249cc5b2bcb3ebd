"""Custom exceptions for signal-sidecar."""


class SidecarError(Exception):
    """Base class for all sidecar errors."""


class ConfigError(SidecarError):
    """Raised when configuration is invalid or missing."""


class StatsPayloadError(SidecarError):
    """Raised when the jicofo stats payload cannot be parsed."""


class CensusPayloadError(SidecarError):
    """Raised when the room census payload is malformed."""


class ConsulError(SidecarError):
    """Raised when a Consul KV operation fails."""
