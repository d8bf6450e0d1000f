"""Diagnosis of a single Pod."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping

from kubelens.kube import KubeError

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

_IMAGE_PULL_REASONS = {"ImagePullBackOff", "ErrImagePull"}
_EVENT_ADVICE = {
    "FailedScheduling": "Check node resources and affinity rules",
    "FailedMount": "Verify volume configurations and storage class availability",
}


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


@dataclass
class ContainerStatus:
    name: str
    image: str
    status: str = ""
    ready: bool = False
    reason: str = ""
    message: str = ""


@dataclass
class PodReport:
    name: str
    namespace: str
    uid: str = ""
    phase: str = ""
    node: str = ""
    pod_ip: str = ""
    service_account: str = ""
    created: datetime = _ZERO_TIME
    status: str = ""
    containers: list[ContainerStatus] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    resource_limits_set: bool = False
    resource_requests_set: bool = False
    restart_count: int = 0


class PodAnalyzer:
    """Checks a Pod's containers, resources and events."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def analyze(self, pod_name: str) -> PodReport:
        with _failure(f"failed to get pod {pod_name}"):
            pod = self._client.get("pods", pod_name, self._namespace)
        with _failure(f"failed to get events for pod {pod_name}"):
            events = self._client.list(
                "events", self._namespace, field_selector="involvedObject.name=" + pod_name
            )

        metadata = pod.get("metadata") or {}
        spec = pod.get("spec") or {}
        status = pod.get("status") or {}
        report = PodReport(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            uid=metadata.get("uid", ""),
            phase=status.get("phase", ""),
            node=spec.get("nodeName", ""),
            pod_ip=status.get("podIP", ""),
            service_account=spec.get("serviceAccountName", ""),
            created=_parse_time(metadata.get("creationTimestamp")),
            events=list(events),
        )
        self._analyze_containers(report, pod)
        self._analyze_resources(report, pod)
        self._generate_recommendations(report)
        return report

    @staticmethod
    def _analyze_containers(report: PodReport, pod: Mapping[str, Any]) -> None:
        status = pod.get("status") or {}
        for container_status in status.get("containerStatuses") or []:
            name = container_status.get("name", "")
            state = container_status.get("state") or {}
            container = ContainerStatus(
                name=name,
                image=container_status.get("image", ""),
                ready=bool(container_status.get("ready", False)),
            )
            waiting = state.get("waiting")
            terminated = state.get("terminated")
            if state.get("running") is not None:
                container.status = "Running"
            elif waiting is not None:
                container.reason = waiting.get("reason", "")
                container.message = waiting.get("message", "")
                container.status = f"Waiting - {container.reason}: {container.message}"
            elif terminated is not None:
                container.reason = terminated.get("reason", "")
                container.message = terminated.get("message", "")
                container.status = f"Terminated - {container.reason}: {container.message}"

            report.containers.append(container)
            report.restart_count += int(container_status.get("restartCount", 0))

            if waiting is not None:
                reason = waiting.get("reason", "")
                message = waiting.get("message", "")
                if reason in _IMAGE_PULL_REASONS:
                    report.issues.append(f"Container {name} cannot pull image: {message}")
                elif reason == "CrashLoopBackOff":
                    report.issues.append(f"Container {name} is crashing: {message}")

        phase = status.get("phase", "")
        if phase == "Running":
            if all(container.ready for container in report.containers):
                report.status = "Running"
            else:
                report.status = "Running but not all containers ready"
        else:
            report.status = phase

    @staticmethod
    def _analyze_resources(report: PodReport, pod: Mapping[str, Any]) -> None:
        containers = (pod.get("spec") or {}).get("containers") or []
        resources = [container.get("resources") or {} for container in containers]
        report.resource_limits_set = all(r.get("limits") for r in resources)
        report.resource_requests_set = all(r.get("requests") for r in resources)

    @staticmethod
    def _generate_recommendations(report: PodReport) -> None:
        recommendations = report.recommendations
        if not report.resource_limits_set:
            recommendations.append(
                "Add resource limits to prevent OOM kills and ensure quality of service"
            )
        if not report.resource_requests_set:
            recommendations.append(
                "Add resource requests to help the scheduler make better placement decisions"
            )
        if report.restart_count > 5:
            recommendations.append(
                f"Investigate why container has restarted {report.restart_count} times"
            )
        for event in report.events:
            if event.get("type") == "Warning":
                advice = _EVENT_ADVICE.get(event.get("reason", ""))
                if advice:
                    recommendations.append(advice)