"""Signal sidecar: health and load-balancer signaling for signal nodes."""

__version__ = "1.0.0"
