"""Prometheus metrics and metric-enhanced analysis."""