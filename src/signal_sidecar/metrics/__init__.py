"""Prometheus metrics for the sidecar."""
