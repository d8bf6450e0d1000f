"""Kubernetes diagnostics, security, anomaly and cost analysis."""

__version__ = "0.1.0"