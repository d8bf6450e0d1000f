import pytest

from kubelens.diagnostics.security import SecurityAnalyzer, is_dangerous_capability
from kubelens.kube import KubeError


class FakeClient:
    def __init__(self, objects=None):
        self.objects = objects or {}

    def get(self, resource, name, namespace=None):
        try:
            return self.objects[(resource, name)]
        except KeyError:
            raise KubeError("not found", 404) from None

    def list(self, resource, namespace=None, label_selector=None, field_selector=None):
        return []


def make_pod(spec):
    return {"metadata": {"name": "app", "namespace": "prod"}, "spec": spec}


def analyze(spec):
    client = FakeClient({("pods", "app"): make_pod(spec)})
    return SecurityAnalyzer(client, "prod").analyze_pod_security("app")


SECURE_SPEC = {
    "securityContext": {"runAsNonRoot": True, "seccompProfile": {"type": "RuntimeDefault"}},
    "containers": [
        {
            "name": "main",
            "securityContext": {"allowPrivilegeEscalation": False, "readOnlyRootFilesystem": True},
        }
    ],
}


def test_secure_pod():
    report = analyze(SECURE_SPEC)
    assert report.pod_name == "app"
    assert report.namespace == "prod"
    assert report.issues == []
    assert report.warnings == []
    assert report.analysis.score == 100
    assert report.analysis.risk_level == "Low"
    assert report.analysis.status == "Secure"
    assert report.recommendations == []


def test_missing_security_contexts():
    report = analyze({"containers": [{"name": "main"}]})
    assert [issue.title for issue in report.issues] == [
        "No Pod Security Context",
        "Container 0: No Security Context",
    ]
    assert all(issue.level == "High" for issue in report.issues)
    assert report.analysis.score == 60
    assert report.analysis.risk_level == "Medium"
    assert report.analysis.status == "Needs Improvement"
    assert report.recommendations == [
        "Implement security context with runAsNonRoot and readOnlyRootFilesystem",
        "Use seccomp profiles and disable privilege escalation",
    ]


def test_privileged_container_clamps_score_at_zero():
    spec = {
        "containers": [
            {
                "name": "main",
                "securityContext": {
                    "privileged": True,
                    "capabilities": {"add": ["CAP_SYS_ADMIN", "CAP_NET_RAW", "CHOWN"]},
                },
            }
        ]
    }
    report = analyze(spec)
    titles = [issue.title for issue in report.issues]
    assert "Container 0: Privileged Mode" in titles
    assert "Container 0: Privilege Escalation Allowed" in titles
    assert "Container 0: Dangerous Capability CAP_SYS_ADMIN" in titles
    assert "Container 0: Dangerous Capability CAP_NET_RAW" in titles
    assert not any("CHOWN" in title for title in titles)
    assert [warning.title for warning in report.warnings] == [
        "Container 0: Writable Root Filesystem"
    ]
    assert report.analysis.score == 0
    assert report.analysis.risk_level == "Critical"
    assert report.analysis.status == "Highly Vulnerable"


def test_non_default_seccomp_and_root():
    spec = {
        "securityContext": {"seccompProfile": {"type": "Localhost"}},
        "containers": [SECURE_SPEC["containers"][0]],
    }
    report = analyze(spec)
    assert [issue.title for issue in report.issues] == ["Running as Root"]
    assert [warning.title for warning in report.warnings] == ["No Seccomp Profile"]
    assert report.analysis.score < 100
    assert report.analysis.risk_level == "Low"


def test_container_indexes_in_titles():
    spec = dict(SECURE_SPEC, containers=[SECURE_SPEC["containers"][0], {"name": "sidecar"}])
    report = analyze(spec)
    assert [issue.title for issue in report.issues] == ["Container 1: No Security Context"]


@pytest.mark.parametrize(
    "cap, expected",
    [
        ("CAP_SYS_ADMIN", True),
        ("CAP_NET_RAW", True),
        ("CAP_SYS_MODULE", True),
        ("CAP_SYS_PTRACE", True),
        ("SYS_ADMIN", False),
        ("CAP_CHOWN", False),
    ],
)
def test_is_dangerous_capability(cap, expected):
    assert is_dangerous_capability(cap) is expected


def test_missing_pod_raises():
    with pytest.raises(KubeError, match="^failed to get pod app: not found"):
        SecurityAnalyzer(FakeClient(), "prod").analyze_pod_security("app")