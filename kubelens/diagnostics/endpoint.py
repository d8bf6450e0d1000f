"""Validation of a Service's endpoints against its pods."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from kubelens.kube import KubeError, format_label_selector


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


@dataclass
class EndpointAnalysis:
    status: str = ""
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    ready_pods: int = 0
    total_pods: int = 0


@dataclass
class EndpointReport:
    service_name: str
    namespace: str
    endpoints: dict[str, Any] | None
    pods: list[dict[str, Any]] = field(default_factory=list)
    analysis: EndpointAnalysis = field(default_factory=EndpointAnalysis)


def is_pod_ready(pod: Mapping[str, Any]) -> bool:
    """True when the pod's Ready condition is True."""
    for condition in (pod.get("status") or {}).get("conditions") or []:
        if condition.get("type") == "Ready":
            return condition.get("status") == "True"
    return False


class EndpointAnalyzer:
    """Checks that a Service has endpoints and ready pods behind it."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def validate_endpoints(self, service_name: str) -> EndpointReport:
        with _failure(f"failed to get endpoints for service {service_name}"):
            endpoints = self._client.get("endpoints", service_name, self._namespace)
        with _failure(f"failed to get service {service_name}"):
            service = self._client.get("services", service_name, self._namespace)

        pods: list[dict[str, Any]] = []
        selector = (service.get("spec") or {}).get("selector") or {}
        if selector:
            with _failure(f"failed to get pods for service {service_name}"):
                pods = list(
                    self._client.list(
                        "pods",
                        self._namespace,
                        label_selector=format_label_selector({"matchLabels": selector}),
                    )
                )

        report = EndpointReport(
            service_name=service_name,
            namespace=self._namespace,
            endpoints=endpoints,
            pods=pods,
        )
        self._analyze_endpoints(report)
        self._analyze_pod_readiness(report)
        return report

    @staticmethod
    def _analyze_endpoints(report: EndpointReport) -> None:
        if report.endpoints is None:
            report.analysis.issues.append("No endpoints object found for service")
            return
        total = sum(len(subset.get("addresses") or []) for subset in report.endpoints.get("subsets") or [])
        if total == 0:
            report.analysis.issues.append("Service has no active endpoints")
        else:
            report.analysis.recommendations.append(f"Service has {total} active endpoint(s)")

    @staticmethod
    def _analyze_pod_readiness(report: EndpointReport) -> None:
        analysis = report.analysis
        total = len(report.pods)
        ready = sum(1 for pod in report.pods if is_pod_ready(pod))
        analysis.ready_pods = ready
        analysis.total_pods = total

        if total == 0:
            analysis.issues.append("No pods found matching service selector")
        elif ready == 0:
            analysis.issues.append("No pods are ready to serve traffic")
        elif ready < total:
            analysis.issues.append(f"Only {ready} of {total} pods are ready")

        analysis.status = "Unhealthy" if analysis.issues else "Healthy"