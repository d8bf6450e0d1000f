"""Diagnosis of StatefulSet resources."""

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
class StatefulSetAnalysis:
    status: str = ""
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    update_strategy: str = ""


@dataclass
class StatefulSetReport:
    name: str
    namespace: str
    desired_replicas: int
    current_replicas: int
    ready_replicas: int
    updated_replicas: int
    conditions: list[dict[str, Any]] = field(default_factory=list)
    pod_template: dict[str, Any] = field(default_factory=dict)
    volume_claim_templates: list[dict[str, Any]] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    analysis: StatefulSetAnalysis = field(default_factory=StatefulSetAnalysis)


class StatefulSetAnalyzer:
    """Checks a StatefulSet's conditions, replicas and update strategy."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def analyze(self, statefulset_name: str) -> StatefulSetReport:
        with _failure(f"failed to get statefulset {statefulset_name}"):
            statefulset = self._client.get("statefulsets", statefulset_name, self._namespace)
        with _failure(f"failed to get events for statefulset {statefulset_name}"):
            events = self._client.list(
                "events", self._namespace, field_selector="involvedObject.name=" + statefulset_name
            )

        metadata = statefulset.get("metadata") or {}
        spec = statefulset.get("spec") or {}
        status = statefulset.get("status") or {}
        report = StatefulSetReport(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            desired_replicas=spec.get("replicas", 1),
            current_replicas=status.get("replicas", 0),
            ready_replicas=status.get("readyReplicas", 0),
            updated_replicas=status.get("updatedReplicas", 0),
            conditions=list(status.get("conditions") or []),
            pod_template=spec.get("template") or {},
            volume_claim_templates=list(spec.get("volumeClaimTemplates") or []),
            events=list(events),
        )
        self._analyze_conditions(report)
        self._analyze_update_strategy(report, statefulset)
        self._analyze_replica_status(report)
        return report

    @staticmethod
    def _analyze_conditions(report: StatefulSetReport) -> None:
        report.analysis.issues.extend(
            f"Condition {condition.get('type', '')} is False: {condition.get('message', '')}"
            for condition in report.conditions
            if condition.get("status") == "False"
        )

    @staticmethod
    def _analyze_replica_status(report: StatefulSetReport) -> None:
        analysis = report.analysis
        if report.ready_replicas != report.desired_replicas:
            analysis.issues.append(
                f"Ready replicas ({report.ready_replicas}) does not match "
                f"desired replicas ({report.desired_replicas})"
            )
        if report.current_replicas != report.desired_replicas:
            analysis.issues.append(
                f"Current replicas ({report.current_replicas}) does not match "
                f"desired replicas ({report.desired_replicas})"
            )
        analysis.status = "Unhealthy" if analysis.issues else "Healthy"

    @staticmethod
    def _analyze_update_strategy(report: StatefulSetReport, statefulset: Mapping[str, Any]) -> None:
        strategy = (statefulset.get("spec") or {}).get("updateStrategy") or {}
        analysis = report.analysis
        if strategy.get("type") == "RollingUpdate":
            analysis.update_strategy = "RollingUpdate"
            partition = (strategy.get("rollingUpdate") or {}).get("partition")
            if partition is not None:
                analysis.recommendations.append(
                    f"Partitioned update configured at partition {partition}"
                )
        else:
            analysis.update_strategy = "OnDelete"
            analysis.recommendations.append(
                "Consider using RollingUpdate strategy for automated pod updates"
            )