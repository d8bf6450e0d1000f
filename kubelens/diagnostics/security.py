"""Security review of a single Pod."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from kubelens.kube import KubeError

DANGEROUS_CAPABILITIES = frozenset(
    {"CAP_SYS_ADMIN", "CAP_NET_RAW", "CAP_SYS_MODULE", "CAP_SYS_PTRACE"}
)
_ISSUE_PENALTY = {"Critical": 30, "High": 20, "Medium": 10, "Low": 5}
_WARNING_PENALTY = {"High": 10, "Medium": 5, "Low": 2}


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


@dataclass
class SecurityAnalysis:
    status: str = ""
    risk_level: str = ""
    score: int = 0


@dataclass
class SecurityIssue:
    level: str
    title: str
    description: str
    remediation: str


@dataclass
class SecurityWarning:
    level: str
    title: str
    description: str


@dataclass
class SecurityReport:
    pod_name: str
    namespace: str
    analysis: SecurityAnalysis = field(default_factory=SecurityAnalysis)
    issues: list[SecurityIssue] = field(default_factory=list)
    warnings: list[SecurityWarning] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def is_dangerous_capability(cap: str) -> bool:
    """True for capabilities that grant broad control over the host."""
    return cap in DANGEROUS_CAPABILITIES


class SecurityAnalyzer:
    """Scores a Pod's security settings."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def analyze_pod_security(self, pod_name: str) -> SecurityReport:
        with _failure(f"failed to get pod {pod_name}"):
            pod = self._client.get("pods", pod_name, self._namespace)
        metadata = pod.get("metadata") or {}
        report = SecurityReport(
            pod_name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
        )
        self._analyze_security_context(report, pod)
        self._analyze_container_security(report, pod)
        self._calculate_risk_score(report)
        return report

    @staticmethod
    def _analyze_security_context(report: SecurityReport, pod: Mapping[str, Any]) -> None:
        context = (pod.get("spec") or {}).get("securityContext")
        if context is None:
            report.issues.append(
                SecurityIssue(
                    level="High",
                    title="No Pod Security Context",
                    description="Pod is running without any security context",
                    remediation="Add securityContext with runAsNonRoot and seccompProfile",
                )
            )
            return

        if not context.get("runAsNonRoot"):
            report.issues.append(
                SecurityIssue(
                    level="High",
                    title="Running as Root",
                    description="Pod may be running as root user",
                    remediation="Set runAsNonRoot: true in securityContext",
                )
            )
        seccomp = context.get("seccompProfile")
        if seccomp is None or seccomp.get("type") != "RuntimeDefault":
            report.warnings.append(
                SecurityWarning(
                    level="Medium",
                    title="No Seccomp Profile",
                    description="Pod is not using runtime default seccomp profile",
                )
            )

    @staticmethod
    def _analyze_container_security(report: SecurityReport, pod: Mapping[str, Any]) -> None:
        containers = (pod.get("spec") or {}).get("containers") or []
        for index, container in enumerate(containers):
            context = container.get("securityContext")
            if context is None:
                report.issues.append(
                    SecurityIssue(
                        level="High",
                        title=f"Container {index}: No Security Context",
                        description="Container is running without security context",
                        remediation=(
                            "Add securityContext with readOnlyRootFilesystem "
                            "and allowPrivilegeEscalation: false"
                        ),
                    )
                )
                continue

            escalation = context.get("allowPrivilegeEscalation")
            if escalation is None or escalation:
                report.issues.append(
                    SecurityIssue(
                        level="High",
                        title=f"Container {index}: Privilege Escalation Allowed",
                        description="Container can escalate privileges",
                        remediation="Set allowPrivilegeEscalation: false",
                    )
                )
            if not context.get("readOnlyRootFilesystem"):
                report.warnings.append(
                    SecurityWarning(
                        level="Medium",
                        title=f"Container {index}: Writable Root Filesystem",
                        description="Container has writable root filesystem",
                    )
                )
            if context.get("privileged"):
                report.issues.append(
                    SecurityIssue(
                        level="Critical",
                        title=f"Container {index}: Privileged Mode",
                        description="Container is running in privileged mode",
                        remediation="Avoid running containers in privileged mode",
                    )
                )
            capabilities = context.get("capabilities")
            if capabilities is not None:
                report.issues.extend(
                    SecurityIssue(
                        level="High",
                        title=f"Container {index}: Dangerous Capability {cap}",
                        description="Container has dangerous capability added",
                        remediation="Remove unnecessary capabilities",
                    )
                    for cap in capabilities.get("add") or []
                    if is_dangerous_capability(str(cap))
                )

    @staticmethod
    def _calculate_risk_score(report: SecurityReport) -> None:
        score = 100
        score -= sum(_ISSUE_PENALTY.get(issue.level, 0) for issue in report.issues)
        score -= sum(_WARNING_PENALTY.get(warning.level, 0) for warning in report.warnings)
        score = max(score, 0)

        analysis = report.analysis
        analysis.score = score
        if score >= 80:
            analysis.risk_level, analysis.status = "Low", "Secure"
        elif score >= 60:
            analysis.risk_level, analysis.status = "Medium", "Needs Improvement"
        elif score >= 40:
            analysis.risk_level, analysis.status = "High", "Vulnerable"
        else:
            analysis.risk_level, analysis.status = "Critical", "Highly Vulnerable"

        if score < 80:
            report.recommendations.extend(
                [
                    "Implement security context with runAsNonRoot and readOnlyRootFilesystem",
                    "Use seccomp profiles and disable privilege escalation",
                ]
            )