"""Namespace-wide security scan of pods, services and network policies."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from kubelens.enterprise.rbac import SecurityIssue
from kubelens.kube import KubeError

DANGEROUS_CAPABILITIES = frozenset(
    {
        "SYS_ADMIN",
        "SYS_PTRACE",
        "SYS_MODULE",
        "SYS_RAWIO",
        "NET_ADMIN",
        "NET_RAW",
        "IPC_LOCK",
        "DAC_READ_SEARCH",
    }
)
_SEVERITY_PENALTY = {"Critical": 10, "High": 7, "Medium": 4, "Low": 1}
_ROOT_TYPES = {"RunAsRoot", "RunAsRootAllowed"}
_MISSING_CONTEXT_TYPES = {"MissingPodSecurityContext", "MissingContainerSecurityContext"}


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


@dataclass
class SecurityScanReport:
    namespace: str
    total_pods: int = 0
    total_services: int = 0
    security_issues: list[SecurityIssue] = field(default_factory=list)
    compliance_score: int = 0
    risk_level: str = ""
    recommendations: list[str] = field(default_factory=list)


def is_dangerous_capability(cap: str) -> bool:
    """True for Linux capabilities that should not be added to containers."""
    return cap in DANGEROUS_CAPABILITIES


def calculate_compliance_score(issues: Iterable[SecurityIssue]) -> int:
    """100 less a penalty per issue by severity, never below zero."""
    score = 100 - sum(_SEVERITY_PENALTY.get(issue.severity, 0) for issue in issues)
    return max(score, 0)


def risk_level_from_score(score: int) -> str:
    """Map a compliance score to a risk level."""
    if score >= 90:
        return "Low"
    if score >= 70:
        return "Medium"
    if score >= 50:
        return "High"
    return "Critical"


def _recommendations(issues: Iterable[SecurityIssue]) -> list[str]:
    kinds = {issue.type for issue in issues}
    recommendations = []
    if "PrivilegedContainer" in kinds:
        recommendations.append(
            "Eliminate all privileged containers - they pose significant security risks"
        )
    if kinds & _ROOT_TYPES:
        recommendations.append("Run containers as non-root users to minimize attack surface")
    if kinds & _MISSING_CONTEXT_TYPES:
        recommendations.append("Define security contexts for all pods and containers")
    if not recommendations:
        recommendations.append("Security posture is good - maintain current security practices")
    return recommendations


def _pod_issues(pod: Mapping[str, Any]) -> Iterator[SecurityIssue]:
    pod_name = (pod.get("metadata") or {}).get("name", "")
    spec = pod.get("spec") or {}
    context = spec.get("securityContext")
    if context is None:
        yield SecurityIssue(
            type="MissingPodSecurityContext",
            severity="Medium",
            resource=pod_name,
            description="Pod does not have a security context defined",
            recommendation="Define pod-level security context with reasonable defaults",
        )
    else:
        if not context.get("runAsNonRoot"):
            yield SecurityIssue(
                type="RunAsRootAllowed",
                severity="Medium",
                resource=pod_name,
                description="Pod can run as root user",
                recommendation="Set runAsNonRoot to true in security context",
            )
        if context.get("seccompProfile") is None:
            yield SecurityIssue(
                type="MissingSeccompProfile",
                severity="Low",
                resource=pod_name,
                description="Pod does not have seccomp profile defined",
                recommendation="Define seccomp profile for enhanced security",
            )

    for container in spec.get("containers") or []:
        resource = f"{pod_name}/{container.get('name', '')}"
        sc = container.get("securityContext")
        if sc is None:
            yield SecurityIssue(
                type="MissingContainerSecurityContext",
                severity="Medium",
                resource=resource,
                description="Container does not have security context defined",
                recommendation="Define container security context with least privilege",
            )
            continue
        if sc.get("privileged"):
            yield SecurityIssue(
                type="PrivilegedContainer",
                severity="High",
                resource=resource,
                description="Container is running in privileged mode",
                recommendation="Avoid running containers in privileged mode",
            )
        run_as_user = sc.get("runAsUser")
        if run_as_user is not None and run_as_user == 0:
            yield SecurityIssue(
                type="RunAsRoot",
                severity="Medium",
                resource=resource,
                description="Container is running as root user",
                recommendation="Run containers as non-root user",
            )
        if not sc.get("readOnlyRootFilesystem"):
            yield SecurityIssue(
                type="WritableRootFilesystem",
                severity="Low",
                resource=resource,
                description="Container has writable root filesystem",
                recommendation="Set readOnlyRootFilesystem to true",
            )
        capabilities = sc.get("capabilities")
        if capabilities is not None:
            for cap in capabilities.get("add") or []:
                if is_dangerous_capability(str(cap)):
                    yield SecurityIssue(
                        type="DangerousCapability",
                        severity="High",
                        resource=resource,
                        description=f"Container has dangerous capability: {cap}",
                        recommendation="Remove dangerous capabilities",
                    )


def _service_issues(service: Mapping[str, Any]) -> Iterator[SecurityIssue]:
    name = (service.get("metadata") or {}).get("name", "")
    spec = service.get("spec") or {}
    if spec.get("externalIPs"):
        yield SecurityIssue(
            type="ServiceWithExternalIP",
            severity="Medium",
            resource=name,
            description="Service has external IPs configured",
            recommendation="Review external IP usage for security implications",
        )
    if spec.get("type") == "LoadBalancer":
        yield SecurityIssue(
            type="LoadBalancerService",
            severity="Low",
            resource=name,
            description="Service uses LoadBalancer type",
            recommendation="Consider using Ingress instead of LoadBalancer for external access",
        )


class SecurityScanner:
    """Scans a namespace for insecure workload and network settings."""

    def __init__(self, client) -> None:
        self._client = client

    def scan_namespace(self, namespace: str) -> SecurityScanReport:
        with _failure("failed to list pods"):
            pods = list(self._client.list("pods", namespace))
        with _failure("failed to list services"):
            services = list(self._client.list("services", namespace))

        report = SecurityScanReport(
            namespace=namespace, total_pods=len(pods), total_services=len(services)
        )
        issues = report.security_issues
        for pod in pods:
            issues.extend(_pod_issues(pod))
        for service in services:
            issues.extend(_service_issues(service))
        issues.extend(self._network_policy_issues(namespace))

        report.compliance_score = calculate_compliance_score(issues)
        report.risk_level = risk_level_from_score(report.compliance_score)
        report.recommendations = _recommendations(issues)
        return report

    def _network_policy_issues(self, namespace: str) -> list[SecurityIssue]:
        try:
            policies = list(self._client.list("networkpolicies", namespace))
        except KubeError:
            # Network policies are not served by every cluster.
            return []
        if policies:
            return []
        return [
            SecurityIssue(
                type="NoNetworkPolicies",
                severity="Medium",
                resource=namespace,
                description="Namespace has no network policies defined",
                recommendation="Implement network policies for network segmentation",
            )
        ]