"""Review of NetworkPolicy resources."""

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
class NetworkPolicyAnalysis:
    status: str = ""
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    coverage: str = ""


@dataclass
class NetworkPolicyReport:
    name: str
    namespace: str
    policy_type: str = ""
    pod_selector: dict[str, str] = field(default_factory=dict)
    ingress: list[dict[str, Any]] = field(default_factory=list)
    egress: list[dict[str, Any]] = field(default_factory=list)
    analysis: NetworkPolicyAnalysis = field(default_factory=NetworkPolicyAnalysis)


@dataclass
class NamespaceNetworkReport:
    namespace: str
    total_policies: int = 0
    policy_reports: list[NetworkPolicyReport] = field(default_factory=list)
    coverage_status: str = ""
    recommendations: list[str] = field(default_factory=list)


def _policy_type(ingress: list, egress: list) -> str:
    if ingress and egress:
        return "Ingress and Egress"
    if ingress:
        return "Ingress only"
    if egress:
        return "Egress only"
    return "No rules (default deny)"


def _report_for(policy: Mapping[str, Any]) -> NetworkPolicyReport:
    metadata = policy.get("metadata") or {}
    spec = policy.get("spec") or {}
    ingress = list(spec.get("ingress") or [])
    egress = list(spec.get("egress") or [])
    match_labels = dict((spec.get("podSelector") or {}).get("matchLabels") or {})

    report = NetworkPolicyReport(
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", ""),
        policy_type=_policy_type(ingress, egress),
        pod_selector=match_labels,
        ingress=ingress,
        egress=egress,
    )
    issues = report.analysis.issues
    issues.extend(
        "Ingress rule allows traffic from all sources" for rule in ingress if not rule.get("from")
    )
    issues.extend(
        "Egress rule allows traffic to all destinations" for rule in egress if not rule.get("to")
    )
    if not match_labels:
        issues.append("Policy applies to all pods in namespace (no pod selector)")
    report.analysis.status = "Needs Review" if issues else "Secure"
    return report


class NetworkAnalyzer:
    """Flags permissive or overly broad network policies."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def analyze_network_policy(self, policy_name: str) -> NetworkPolicyReport:
        """Analyze one policy by name."""
        with _failure(f"failed to get network policy {policy_name}"):
            policy = self._client.get("networkpolicies", policy_name, self._namespace)
        return _report_for(policy)

    def analyze_namespace_network_policies(self) -> NamespaceNetworkReport:
        """Analyze every policy in the namespace and summarise coverage."""
        with _failure("failed to list network policies"):
            policies = list(self._client.list("networkpolicies", self._namespace))

        report = NamespaceNetworkReport(
            namespace=self._namespace,
            total_policies=len(policies),
            policy_reports=[_report_for(policy) for policy in policies],
        )

        if report.total_policies == 0:
            report.coverage_status = "No network policies"
            report.recommendations.append(
                "Consider implementing network policies for namespace isolation"
            )
        else:
            report.coverage_status = f"{report.total_policies} policies active"

        with_issues = sum(1 for policy in report.policy_reports if policy.analysis.issues)
        if with_issues:
            report.recommendations.append(
                f"{with_issues} policies have configuration issues that need review"
            )
        return report