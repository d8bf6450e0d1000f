"""Pod, node and cluster analysis enriched with Prometheus metrics."""

from __future__ import annotations

from dataclasses import dataclass, field

from kubelens.diagnostics.pod import PodAnalyzer, PodReport
from kubelens.integrations.prometheus import (
    ClusterMetrics,
    NodeMetrics,
    PodMetrics,
    PrometheusClient,
    PrometheusError,
)
from kubelens.kube import KubeError

_GIB = 1024 * 1024 * 1024


@dataclass
class EnhancedPodReport:
    pod_report: PodReport
    pod_metrics: PodMetrics
    recommendations: list[str] = field(default_factory=list)
    health_score: int = 0


def _recommendations(report: EnhancedPodReport) -> list[str]:
    metrics = report.pod_metrics
    recommendations: list[str] = []
    if not metrics.error:
        if metrics.cpu_usage > 0.8:
            recommendations.append(
                "High CPU usage detected - consider increasing CPU limits or optimizing application"
            )
        elif metrics.cpu_usage < 0.1:
            recommendations.append(
                "Low CPU usage - consider reducing CPU requests to improve node utilization"
            )
        if metrics.memory_usage > _GIB:
            recommendations.append(
                "High memory usage detected - monitor for memory leaks "
                "and consider increasing memory limits"
            )
        if metrics.network_rx > 1_000_000:
            recommendations.append(
                "High network receive traffic - ensure network policies and limits are appropriate"
            )
        if metrics.network_tx > 1_000_000:
            recommendations.append(
                "High network transmit traffic - ensure network policies and limits are appropriate"
            )
    else:
        recommendations.append(
            "Prometheus metrics unavailable - set up Prometheus for enhanced monitoring"
        )
    recommendations.extend(report.pod_report.recommendations or [])
    return recommendations


def _health_score(report: EnhancedPodReport) -> int:
    score = 100 - len(report.pod_report.issues or []) * 10
    metrics = report.pod_metrics
    if not metrics.error:
        if metrics.cpu_usage > 0.9:
            score -= 20
        elif metrics.cpu_usage > 0.8:
            score -= 10
        if metrics.memory_usage > 2 * _GIB:
            score -= 15
    else:
        score -= 10
    return max(score, 0)


class MetricsAnalyzer:
    """Combines Kubernetes diagnostics with Prometheus measurements."""

    def __init__(self, k8s_client, prometheus_url: str) -> None:
        self._client = k8s_client
        self._prometheus = PrometheusClient(prometheus_url)

    def analyze_pod_with_metrics(self, pod_name: str, namespace: str) -> EnhancedPodReport:
        try:
            pod_report = PodAnalyzer(self._client, namespace).analyze(pod_name)
        except KubeError as err:
            raise KubeError(f"failed to analyze pod: {err}", err.status_code) from err
        try:
            metrics = self._prometheus.get_pod_metrics(pod_name, namespace)
        except PrometheusError as err:
            raise PrometheusError(f"failed to get pod metrics: {err}", metrics=err.metrics) from err

        report = EnhancedPodReport(pod_report=pod_report, pod_metrics=metrics)
        report.recommendations = _recommendations(report)
        report.health_score = _health_score(report)
        return report

    def analyze_node_with_metrics(self, node_name: str) -> NodeMetrics:
        try:
            return self._prometheus.get_node_metrics(node_name)
        except PrometheusError as err:
            metrics = NodeMetrics(node_name=node_name, error=f"Failed to get node metrics: {err}")
            raise PrometheusError(f"failed to get node metrics: {err}", metrics=metrics) from err

    def analyze_cluster_with_metrics(self) -> ClusterMetrics:
        try:
            return self._prometheus.get_cluster_metrics()
        except PrometheusError as err:
            metrics = ClusterMetrics(error=f"Failed to get cluster metrics: {err}")
            raise PrometheusError(f"failed to get cluster metrics: {err}", metrics=metrics) from err