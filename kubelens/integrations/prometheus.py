"""A small client for the Prometheus HTTP query API."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests

log = logging.getLogger(__name__)

_QUERY_PATH = "/api/v1/query"

_CPU_CAPACITY_QUERIES = (
    "sum(kube_node_status_capacity_cpu_cores)",
    "sum(machine_cpu_cores)",
    "sum(kube_node_status_allocatable_cpu_cores)",
)
_MEMORY_CAPACITY_QUERIES = (
    "sum(kube_node_status_capacity_memory_bytes) / (1024 * 1024 * 1024)",
    "sum(machine_memory_bytes) / (1024 * 1024 * 1024)",
    "sum(kube_node_status_allocatable_memory_bytes) / (1024 * 1024 * 1024)",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_int(value: float) -> int:
    return int(value) if math.isfinite(value) else 0


def _join_error(current: str, addition: str) -> str:
    return f"{current}; {addition}" if current else addition


class PrometheusError(Exception):
    """A failed Prometheus request; ``metrics`` holds whatever was gathered."""

    def __init__(self, message: str, metrics: Any = None) -> None:
        super().__init__(message)
        self.metrics = metrics


@dataclass
class PodMetrics:
    pod_name: str
    namespace: str
    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    network_rx: float = 0.0
    network_tx: float = 0.0
    timestamp: datetime = field(default_factory=_now)
    error: str = ""


@dataclass
class NodeMetrics:
    node_name: str
    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    disk_usage: float = 0.0
    pod_count: int = 0
    timestamp: datetime = field(default_factory=_now)
    error: str = ""


@dataclass
class ClusterMetrics:
    total_nodes: int = 0
    total_pods: int = 0
    cpu_capacity: float = 0.0
    cpu_usage: float = 0.0
    memory_capacity: float = 0.0
    memory_usage: float = 0.0
    timestamp: datetime = field(default_factory=_now)
    error: str = ""


def _sample_values(result: Any) -> list[float]:
    values: list[float] = []
    for sample in result:
        value = sample.get("value") or []
        if len(value) >= 2 and isinstance(value[1], str):
            try:
                values.append(float(value[1]))
            except ValueError:
                continue
    return values


class PrometheusClient:
    """Runs instant queries against a Prometheus server."""

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._session = requests.Session()

    def _get(self, query: str) -> requests.Response:
        return self._session.get(
            self.base_url + _QUERY_PATH, params={"query": query}, timeout=self.timeout
        )

    def test_connection(self) -> None:
        """Raise PrometheusError unless the server answers a trivial query."""
        try:
            response = self._get("up")
        except requests.RequestException as err:
            raise PrometheusError(f"cannot connect to Prometheus at {self.base_url}: {err}") from err
        if response.status_code != 200:
            raise PrometheusError(f"Prometheus returned status {response.status_code}")

    def query(self, query: str) -> list[float]:
        """Run an instant query and return the numeric sample values."""
        try:
            response = self._get(query)
        except requests.RequestException as err:
            raise PrometheusError(f"connection failed: {err}") from err
        if response.status_code != 200:
            raise PrometheusError(f"Prometheus returned status {response.status_code}")

        body = response.text
        try:
            payload = response.json()
            status = payload.get("status", "")
            result = (payload.get("data") or {}).get("result") or []
            values = _sample_values(result)
        except (ValueError, AttributeError, TypeError) as err:
            raise PrometheusError(f"failed to parse response: {err}") from err

        if status != "success":
            raise PrometheusError(f"Prometheus query failed: {body}")
        return values

    def _connect(self, metrics: Any) -> None:
        try:
            self.test_connection()
        except PrometheusError as err:
            metrics.error = f"Prometheus connection failed: {err}"
            raise PrometheusError(f"Prometheus connection failed: {err}", metrics=metrics) from err

    def get_pod_metrics(self, pod_name: str, namespace: str) -> PodMetrics:
        """Fetch CPU, memory and network figures for one pod."""
        log.info("Fetching metrics for pod %s in namespace %s", pod_name, namespace)
        metrics = PodMetrics(pod_name=pod_name, namespace=namespace)
        self._connect(metrics)
        labels = f'pod="{pod_name}", namespace="{namespace}"'

        try:
            values = self.query(f"rate(container_cpu_usage_seconds_total{{{labels}}}[5m])")
        except PrometheusError as err:
            log.warning("Failed to query CPU metrics: %s", err)
            metrics.error = f"CPU metrics unavailable: {err}"
        else:
            if values:
                metrics.cpu_usage = values[0]

        try:
            values = self.query(f"container_memory_usage_bytes{{{labels}}}")
        except PrometheusError as err:
            log.warning("Failed to query memory metrics: %s", err)
            metrics.error = _join_error(metrics.error, f"Memory metrics unavailable: {err}")
        else:
            if values:
                metrics.memory_usage = values[0]

        if not metrics.error:
            try:
                values = self.query(
                    f"rate(container_network_receive_bytes_total{{{labels}}}[5m])"
                )
            except PrometheusError as err:
                log.warning("Failed to query network RX metrics: %s", err)
            else:
                if values:
                    metrics.network_rx = values[0]

            try:
                values = self.query(
                    f"rate(container_network_transmit_bytes_total{{{labels}}}[5m])"
                )
            except PrometheusError as err:
                log.warning("Failed to query network TX metrics: %s", err)
            else:
                if values:
                    metrics.network_tx = values[0]

        return metrics

    def get_node_metrics(self, node_name: str) -> NodeMetrics:
        """Fetch CPU, memory, disk and pod-count figures for a node."""
        log.info("Fetching metrics for node %s", node_name)
        metrics = NodeMetrics(node_name=node_name)
        self._connect(metrics)

        try:
            values = self.query(
                '100 - (avg by (instance) (rate(node_cpu_seconds_total{mode="idle"}[5m])) * 100)'
            )
        except PrometheusError as err:
            log.warning("Failed to query node CPU metrics: %s", err)
            metrics.error = f"CPU metrics unavailable: {err}"
        else:
            if values:
                metrics.cpu_usage = values[0]

        try:
            values = self.query(
                "(1 - (node_memory_MemAvailable_bytes / node_memory_MemTotal_bytes)) * 100"
            )
        except PrometheusError as err:
            log.warning("Failed to query node memory metrics: %s", err)
            metrics.error = _join_error(metrics.error, f"Memory metrics unavailable: {err}")
        else:
            if values:
                metrics.memory_usage = values[0]

        try:
            values = self.query(
                '(1 - (node_filesystem_avail_bytes{mountpoint="/"} '
                '/ node_filesystem_size_bytes{mountpoint="/"})) * 100'
            )
        except PrometheusError as err:
            log.warning("Failed to query node disk metrics: %s", err)
        else:
            if values:
                metrics.disk_usage = values[0]

        try:
            values = self.query("count(kube_pod_info) by (node)")
        except PrometheusError as err:
            log.warning("Failed to query pod count metrics: %s", err)
        else:
            if values:
                try:
                    node_values = self.query(f'count(kube_pod_info{{node="{node_name}"}})')
                except PrometheusError:
                    node_values = []
                if node_values:
                    metrics.pod_count = _to_int(node_values[0])

        return metrics

    def _first_positive(self, queries: tuple[str, ...]) -> float:
        for query in queries:
            try:
                values = self.query(query)
            except PrometheusError:
                continue
            if values and values[0] > 0:
                return values[0]
        return 0.0

    def get_cluster_metrics(self) -> ClusterMetrics:
        """Fetch node and pod counts and CPU and memory capacity and usage."""
        log.info("Fetching cluster-level metrics")
        metrics = ClusterMetrics()
        self._connect(metrics)

        try:
            values = self.query("count(kube_node_info)")
        except PrometheusError as err:
            log.warning("Failed to query node count: %s", err)
            metrics.error = f"Node count unavailable: {err}"
        else:
            if values:
                metrics.total_nodes = _to_int(values[0])

        try:
            values = self.query("count(kube_pod_info)")
        except PrometheusError as err:
            log.warning("Failed to query pod count: %s", err)
            metrics.error = _join_error(metrics.error, f"Pod count unavailable: {err}")
        else:
            if values:
                metrics.total_pods = _to_int(values[0])

        metrics.cpu_capacity = self._first_positive(_CPU_CAPACITY_QUERIES)

        try:
            values = self.query("sum(rate(container_cpu_usage_seconds_total[5m]))")
        except PrometheusError as err:
            log.warning("Failed to query CPU usage: %s", err)
        else:
            if values:
                metrics.cpu_usage = values[0]

        metrics.memory_capacity = self._first_positive(_MEMORY_CAPACITY_QUERIES)

        try:
            values = self.query("sum(container_memory_working_set_bytes) / (1024 * 1024 * 1024)")
        except PrometheusError as err:
            log.warning("Failed to query memory usage: %s", err)
        else:
            if values:
                metrics.memory_usage = values[0]

        return metrics