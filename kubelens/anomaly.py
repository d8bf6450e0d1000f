"""Detection of unusual pod restart, resource and status patterns."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Iterator, Mapping

from kubelens.kube import KubeError
from kubelens.quantity import parse_quantity

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)
_MIB = 1024 * 1024
_SEVERITY_WEIGHT = {"Critical": 10, "High": 7, "Medium": 4, "Low": 1}
_RESOURCE_TYPES = {"MissingResourceRequests", "UnbalancedResources"}
_PENDING_LIMIT = timedelta(minutes=10)


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


def _parse_time(value: str | None) -> datetime:
    if not value:
        return _ZERO_TIME
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _trunc_div(value: int, divisor: int) -> int:
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


def _with_fraction(value: int, unit: int) -> str:
    whole, fraction = divmod(value, unit)
    if not fraction:
        return str(whole)
    digits = str(fraction).rjust(len(str(unit)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"


def _format_duration(delta: timedelta) -> str:
    """Render a duration as e.g. "1h2m3.5s"."""
    nanos = ((delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds) * 1000
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)
    if nanos == 0:
        return "0s"
    if nanos < 1_000_000_000:
        for unit, size in (("ms", 1_000_000), ("µs", 1_000), ("ns", 1)):
            if nanos >= size:
                return f"{sign}{_with_fraction(nanos, size)}{unit}"
    hours, rest = divmod(nanos, 3600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    seconds = f"{_with_fraction(rest, 1_000_000_000)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


@dataclass
class Anomaly:
    type: str
    severity: str
    resource: str
    message: str
    confidence: float
    timestamp: datetime = field(default_factory=_now)


@dataclass
class AnomalyReport:
    namespace: str
    total_pods: int = 0
    anomalies: list[Anomaly] = field(default_factory=list)
    score: int = 0
    recommendations: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_now)


def calculate_anomaly_score(anomalies: Iterable[Anomaly]) -> int:
    """Weighted sum of anomaly severities, capped at 100."""
    return min(100, sum(_SEVERITY_WEIGHT.get(anomaly.severity, 0) for anomaly in anomalies))


def _recommendations(anomalies: Iterable[Anomaly]) -> list[str]:
    kinds = {anomaly.type for anomaly in anomalies}
    recommendations = []
    if "RestartPattern" in kinds:
        recommendations.append(
            "Investigate pod restart patterns - check application logs and resource limits"
        )
    if kinds & _RESOURCE_TYPES:
        recommendations.append(
            "Review and optimize resource requests and limits for better scheduling"
        )
    if not recommendations:
        recommendations.append("No critical issues detected - maintain current monitoring")
    return recommendations


def _requests(container: Mapping[str, Any]) -> Mapping[str, Any] | None:
    return (container.get("resources") or {}).get("requests")


def _restart_anomalies(pod: Mapping[str, Any], name: str) -> Iterator[Anomaly]:
    statuses = (pod.get("status") or {}).get("containerStatuses") or []
    restarts = sum(int(status.get("restartCount", 0)) for status in statuses)
    if restarts > 10:
        yield Anomaly(
            type="RestartPattern",
            severity="High",
            resource=name,
            message="Unusual pod restart pattern detected",
            confidence=0.85,
        )


def _resource_anomalies(pod: Mapping[str, Any], name: str) -> Iterator[Anomaly]:
    for container in (pod.get("spec") or {}).get("containers") or []:
        resource = f"{name}/{container.get('name', '')}"
        requests = _requests(container)
        if requests is None:
            yield Anomaly(
                type="MissingResourceRequests",
                severity="Medium",
                resource=resource,
                message="Container missing resource requests",
                confidence=1.0,
            )
            continue
        cpu = parse_quantity(requests.get("cpu", "0"))
        memory = parse_quantity(requests.get("memory", "0"))
        if cpu.is_zero() or memory.is_zero():
            continue
        cpu_milli = cpu.milli_value()
        memory_mb = _trunc_div(memory.value(), _MIB)
        if cpu_milli > 0 and memory_mb > 0:
            ratio = memory_mb / cpu_milli
            if ratio < 500 or ratio > 8000:
                yield Anomaly(
                    type="UnbalancedResources",
                    severity="Low",
                    resource=resource,
                    message=f"Unusual CPU/Memory ratio: {ratio:.2f} MB per CPU core",
                    confidence=0.75,
                )


def _status_anomalies(pod: Mapping[str, Any], name: str) -> Iterator[Anomaly]:
    if (pod.get("status") or {}).get("phase") != "Pending":
        return
    created = _parse_time((pod.get("metadata") or {}).get("creationTimestamp"))
    duration = _now() - created
    if duration > _PENDING_LIMIT:
        yield Anomaly(
            type="LongPending",
            severity="High",
            resource=name,
            message=f"Pod has been pending for {_format_duration(duration)}",
            confidence=0.9,
        )


def _namespace_anomalies(pods: list[Mapping[str, Any]]) -> Iterator[Anomaly]:
    total_cpu = 0
    for pod in pods:
        for container in (pod.get("spec") or {}).get("containers") or []:
            requests = _requests(container)
            if requests is not None:
                total_cpu += parse_quantity(requests.get("cpu", "0")).milli_value()
    if pods:
        average = total_cpu / len(pods)
        if average > 4000:
            yield Anomaly(
                type="HighResourceConcentration",
                severity="Medium",
                resource="Namespace",
                message=f"High CPU concentration: {average:.2f} millicores per pod average",
                confidence=0.8,
            )


class AnomalyDetector:
    """Finds pods and namespaces whose behaviour looks unusual."""

    def __init__(self, client) -> None:
        self._client = client

    def detect_namespace_anomalies(self, namespace: str) -> AnomalyReport:
        report = AnomalyReport(namespace=namespace)
        with _failure("failed to list pods"):
            pods = list(self._client.list("pods", namespace))
        report.total_pods = len(pods)

        for pod in pods:
            name = (pod.get("metadata") or {}).get("name", "")
            report.anomalies.extend(_restart_anomalies(pod, name))
            report.anomalies.extend(_resource_anomalies(pod, name))
            report.anomalies.extend(_status_anomalies(pod, name))
        report.anomalies.extend(_namespace_anomalies(pods))

        report.score = calculate_anomaly_score(report.anomalies)
        report.recommendations = _recommendations(report.anomalies)
        return report