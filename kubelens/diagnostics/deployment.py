"""Diagnosis of Deployment resources."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

from kubelens.kube import KubeError, format_label_selector

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


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
class DeploymentAnalysis:
    status: str = ""
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    rollout_status: str = ""


@dataclass
class DeploymentReport:
    name: str
    namespace: str
    desired_replicas: int
    current_replicas: int
    ready_replicas: int
    available_replicas: int
    updated_replicas: int
    conditions: list[dict[str, Any]] = field(default_factory=list)
    pod_template: dict[str, Any] = field(default_factory=dict)
    replica_sets: list[dict[str, Any]] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)
    analysis: DeploymentAnalysis = field(default_factory=DeploymentAnalysis)


class DeploymentAnalyzer:
    """Checks a Deployment's conditions, replica sets and rollout."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def analyze(self, deployment_name: str) -> DeploymentReport:
        with _failure(f"failed to get deployment {deployment_name}"):
            deployment = self._client.get("deployments", deployment_name, self._namespace)
        spec = deployment.get("spec") or {}
        with _failure(f"failed to list replicasets for deployment {deployment_name}"):
            replica_sets = self._client.list(
                "replicasets",
                self._namespace,
                label_selector=format_label_selector(spec.get("selector")),
            )
        with _failure(f"failed to get events for deployment {deployment_name}"):
            events = self._client.list(
                "events", self._namespace, field_selector="involvedObject.name=" + deployment_name
            )

        metadata = deployment.get("metadata") or {}
        status = deployment.get("status") or {}
        report = DeploymentReport(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            desired_replicas=spec.get("replicas", 1),
            current_replicas=status.get("replicas", 0),
            ready_replicas=status.get("readyReplicas", 0),
            available_replicas=status.get("availableReplicas", 0),
            updated_replicas=status.get("updatedReplicas", 0),
            conditions=list(status.get("conditions") or []),
            pod_template=spec.get("template") or {},
            replica_sets=list(replica_sets),
            events=list(events),
        )
        self._analyze_conditions(report)
        self._analyze_replica_sets(report)
        self._analyze_rollout_status(report)
        return report

    @staticmethod
    def _analyze_conditions(report: DeploymentReport) -> None:
        analysis = report.analysis
        for condition in report.conditions:
            if condition.get("status") != "False":
                continue
            kind = condition.get("type")
            if kind == "Available":
                analysis.issues.append(f"Deployment not available: {condition.get('message', '')}")
            elif kind == "Progressing":
                analysis.issues.append(f"Deployment not progressing: {condition.get('message', '')}")

        if report.ready_replicas != report.desired_replicas:
            analysis.issues.append(
                f"Ready replicas ({report.ready_replicas}) does not match "
                f"desired replicas ({report.desired_replicas})"
            )
        analysis.status = "Unhealthy" if analysis.issues else "Healthy"

    @staticmethod
    def _analyze_replica_sets(report: DeploymentReport) -> None:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
        for replica_set in report.replica_sets:
            spec_replicas = (replica_set.get("spec") or {}).get("replicas", 1)
            status_replicas = (replica_set.get("status") or {}).get("replicas", 0)
            metadata = replica_set.get("metadata") or {}
            if spec_replicas > 0 and status_replicas > 0:
                if _parse_time(metadata.get("creationTimestamp")) < cutoff:
                    report.analysis.issues.append(
                        f"Old ReplicaSet {metadata.get('name', '')} still has {status_replicas} replicas"
                    )

    @staticmethod
    def _analyze_rollout_status(report: DeploymentReport) -> None:
        desired = report.desired_replicas
        if report.updated_replicas == desired and report.ready_replicas == desired:
            report.analysis.rollout_status = "Complete"
        elif report.updated_replicas < desired:
            report.analysis.rollout_status = "Progressing"
        else:
            report.analysis.rollout_status = "Degraded"