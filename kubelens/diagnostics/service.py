"""Diagnosis of Service resources."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from kubelens.kube import KubeError


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


@dataclass
class ServiceAnalysis:
    status: str = ""
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class ServiceReport:
    name: str
    namespace: str
    type: str = ""
    cluster_ip: str = ""
    external_ip: str = ""
    ports: list[dict[str, Any]] = field(default_factory=list)
    selector: dict[str, str] = field(default_factory=dict)
    endpoints: dict[str, Any] | None = None
    events: list[dict[str, Any]] = field(default_factory=list)
    analysis: ServiceAnalysis = field(default_factory=ServiceAnalysis)


def _external_ip(service: Mapping[str, Any]) -> str:
    load_balancer = (service.get("status") or {}).get("loadBalancer") or {}
    ingress = load_balancer.get("ingress") or []
    if not ingress:
        return ""
    first = ingress[0]
    return first.get("ip") or first.get("hostname", "")


class ServiceAnalyzer:
    """Checks a Service's type, selector, ports and endpoints."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def analyze(self, service_name: str) -> ServiceReport:
        with _failure(f"failed to get service {service_name}"):
            service = self._client.get("services", service_name, self._namespace)
        with _failure(f"failed to get endpoints for service {service_name}"):
            endpoints = self._client.get("endpoints", service_name, self._namespace)
        with _failure(f"failed to get events for service {service_name}"):
            events = self._client.list(
                "events", self._namespace, field_selector="involvedObject.name=" + service_name
            )

        metadata = service.get("metadata") or {}
        spec = service.get("spec") or {}
        report = ServiceReport(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            type=spec.get("type", ""),
            cluster_ip=spec.get("clusterIP", ""),
            external_ip=_external_ip(service),
            ports=list(spec.get("ports") or []),
            selector=dict(spec.get("selector") or {}),
            endpoints=endpoints,
            events=list(events),
        )
        self._analyze_service(report)
        self._analyze_endpoints(report)
        return report

    @staticmethod
    def _analyze_service(report: ServiceReport) -> None:
        issues = report.analysis.issues
        if report.type == "LoadBalancer":
            if not report.external_ip:
                issues.append("LoadBalancer service has no external IP assigned")
        elif report.type == "ClusterIP":
            if not report.cluster_ip:
                issues.append("ClusterIP service has no cluster IP assigned")
        elif report.type == "NodePort":
            if not report.ports:
                issues.append("NodePort service has no ports configured")

        if not report.selector:
            issues.append("Service has no selector configured")
        if not report.ports:
            issues.append("Service has no ports configured")

        report.analysis.status = "Unhealthy" if issues else "Healthy"

    @staticmethod
    def _analyze_endpoints(report: ServiceReport) -> None:
        analysis = report.analysis
        if report.endpoints is None:
            analysis.issues.append("No endpoints found for service")
            return
        total = sum(
            len(subset.get("addresses") or []) for subset in report.endpoints.get("subsets") or []
        )
        if total == 0:
            analysis.issues.append("Service has no active endpoints")
            analysis.recommendations.append(
                "Check if pods matching the selector are running and ready"
            )
        else:
            analysis.recommendations.append(f"Service has {total} active endpoint(s)")