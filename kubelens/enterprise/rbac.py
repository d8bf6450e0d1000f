"""Review of RBAC roles, bindings and service accounts."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from kubelens.kube import KubeError

_WILDCARD_TYPES = {"WildcardVerb", "WildcardResource", "WildcardVerbInRole"}
_DANGEROUS_TYPES = {"DangerousSecretPermission", "PodExecPermission"}
_SECRET_WRITE_VERBS = {"create", "update", "patch", "delete"}


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


@dataclass
class SecurityIssue:
    type: str
    severity: str
    resource: str
    description: str
    recommendation: str


@dataclass
class RBACReport:
    namespace: str
    cluster_roles: int = 0
    roles: int = 0
    cluster_role_bindings: int = 0
    role_bindings: int = 0
    service_accounts: int = 0
    security_issues: list[SecurityIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    risk_level: str = ""


def calculate_risk_level(issues: Iterable[SecurityIssue]) -> str:
    """The highest severity present among the issues, or "Low"."""
    severities = {issue.severity for issue in issues}
    for level in ("Critical", "High", "Medium"):
        if level in severities:
            return level
    return "Low"


def generate_recommendations(issues: Iterable[SecurityIssue]) -> list[str]:
    """Summary advice for the kinds of issue found."""
    kinds = {issue.type for issue in issues}
    recommendations = []
    if kinds & _WILDCARD_TYPES:
        recommendations.append(
            "Replace all wildcard permissions with specific verbs and resources"
        )
    if "ClusterAdminBinding" in kinds:
        recommendations.append(
            "Review and minimize cluster-admin bindings - use least privilege principles"
        )
    if kinds & _DANGEROUS_TYPES:
        recommendations.append(
            "Restrict dangerous permissions (secrets, pod exec) to trusted principals only"
        )
    if not recommendations:
        recommendations.append(
            "RBAC configuration appears secure - maintain current security practices"
        )
    return recommendations


def _name(obj: Mapping[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("name", "")


class RBACAnalyzer:
    """Finds risky permissions in a namespace and across the cluster."""

    def __init__(self, client) -> None:
        self._client = client

    def analyze_namespace_rbac(self, namespace: str) -> RBACReport:
        with _failure("failed to list cluster roles"):
            cluster_roles = list(self._client.list("clusterroles"))
        with _failure("failed to list roles"):
            roles = list(self._client.list("roles", namespace))
        with _failure("failed to list cluster role bindings"):
            cluster_role_bindings = list(self._client.list("clusterrolebindings"))
        with _failure("failed to list role bindings"):
            role_bindings = list(self._client.list("rolebindings", namespace))
        with _failure("failed to list service accounts"):
            service_accounts = list(self._client.list("serviceaccounts", namespace))

        report = RBACReport(
            namespace=namespace,
            cluster_roles=len(cluster_roles),
            roles=len(roles),
            cluster_role_bindings=len(cluster_role_bindings),
            role_bindings=len(role_bindings),
            service_accounts=len(service_accounts),
        )
        issues = report.security_issues
        issues.extend(self._cluster_role_issues(cluster_roles))
        issues.extend(self._role_issues(namespace, roles))
        issues.extend(self._cluster_role_binding_issues(cluster_role_bindings))
        issues.extend(self._role_binding_issues(namespace, role_bindings))
        issues.extend(self._service_account_issues(service_accounts))

        report.risk_level = calculate_risk_level(issues)
        report.recommendations = generate_recommendations(issues)
        return report

    @staticmethod
    def _cluster_role_issues(cluster_roles: Iterable[Mapping[str, Any]]) -> Iterator[SecurityIssue]:
        for cluster_role in cluster_roles:
            name = _name(cluster_role)
            for rule in cluster_role.get("rules") or []:
                verbs = list(rule.get("verbs") or [])
                resources = list(rule.get("resources") or [])
                for verb in verbs:
                    if verb == "*":
                        yield SecurityIssue(
                            type="WildcardVerb",
                            severity="High",
                            resource=name,
                            description=f"ClusterRole '{name}' uses wildcard verb '*'",
                            recommendation="Replace wildcard verbs with specific actions",
                        )
                for resource in resources:
                    if resource == "*":
                        yield SecurityIssue(
                            type="WildcardResource",
                            severity="High",
                            resource=name,
                            description=f"ClusterRole '{name}' uses wildcard resource '*'",
                            recommendation="Replace wildcard resources with specific resource types",
                        )
                for resource in resources:
                    if resource == "secrets" and _SECRET_WRITE_VERBS.intersection(verbs):
                        yield SecurityIssue(
                            type="DangerousSecretPermission",
                            severity="High",
                            resource=name,
                            description=f"ClusterRole '{name}' has dangerous permissions on secrets",
                            recommendation="Review and restrict secret permissions",
                        )
                    if resource == "pods/exec" and "create" in verbs:
                        yield SecurityIssue(
                            type="PodExecPermission",
                            severity="Medium",
                            resource=name,
                            description=f"ClusterRole '{name}' can execute commands in pods",
                            recommendation="Restrict pod exec permissions to trusted users",
                        )

    @staticmethod
    def _role_issues(namespace: str, roles: Iterable[Mapping[str, Any]]) -> Iterator[SecurityIssue]:
        for role in roles:
            name = _name(role)
            for rule in role.get("rules") or []:
                for verb in rule.get("verbs") or []:
                    if verb == "*":
                        yield SecurityIssue(
                            type="WildcardVerbInRole",
                            severity="Medium",
                            resource=f"{namespace}/{name}",
                            description=(
                                f"Role '{name}' in namespace '{namespace}' uses wildcard verb '*'"
                            ),
                            recommendation="Replace wildcard verbs with specific actions",
                        )

    @staticmethod
    def _cluster_role_binding_issues(
        bindings: Iterable[Mapping[str, Any]],
    ) -> Iterator[SecurityIssue]:
        for binding in bindings:
            name = _name(binding)
            if (binding.get("roleRef") or {}).get("name") == "cluster-admin":
                yield SecurityIssue(
                    type="ClusterAdminBinding",
                    severity="Critical",
                    resource=name,
                    description=f"ClusterRoleBinding '{name}' grants cluster-admin privileges",
                    recommendation="Review cluster-admin bindings and use least privilege",
                )
            for subject in binding.get("subjects") or []:
                if subject.get("kind") == "ServiceAccount" and "default" in subject.get("name", ""):
                    yield SecurityIssue(
                        type="DefaultServiceAccountBinding",
                        severity="High",
                        resource=name,
                        description=f"ClusterRoleBinding '{name}' binds to default service account",
                        recommendation="Avoid binding cluster roles to default service accounts",
                    )

    @staticmethod
    def _role_binding_issues(
        namespace: str, bindings: Iterable[Mapping[str, Any]]
    ) -> Iterator[SecurityIssue]:
        for binding in bindings:
            name = _name(binding)
            if "admin" in (binding.get("roleRef") or {}).get("name", ""):
                yield SecurityIssue(
                    type="AdminRoleBinding",
                    severity="Medium",
                    resource=f"{namespace}/{name}",
                    description=(
                        f"RoleBinding '{name}' in namespace '{namespace}' uses admin role"
                    ),
                    recommendation="Review admin role usage and apply least privilege",
                )

    @staticmethod
    def _service_account_issues(
        service_accounts: Iterable[Mapping[str, Any]],
    ) -> Iterator[SecurityIssue]:
        for account in service_accounts:
            if not account.get("secrets"):
                name = _name(account)
                yield SecurityIssue(
                    type="ServiceAccountWithoutSecrets",
                    severity="Low",
                    resource=name,
                    description=f"ServiceAccount '{name}' has no explicitly defined secrets",
                    recommendation="Consider defining explicit secrets for service accounts",
                )