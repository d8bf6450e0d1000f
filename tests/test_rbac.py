import pytest

from kubelens.enterprise.rbac import (
    RBACAnalyzer,
    SecurityIssue,
    calculate_risk_level,
    generate_recommendations,
)
from kubelens.kube import KubeError

SECURE = "RBAC configuration appears secure - maintain current security practices"


class FakeClient:
    def __init__(self, items=None, failing=()):
        self.items = items or {}
        self.failing = set(failing)
        self.calls = []

    def list(self, resource, namespace=None, label_selector=None, field_selector=None):
        self.calls.append((resource, namespace))
        if resource in self.failing:
            raise KubeError("forbidden", 403)
        return list(self.items.get(resource, []))


def meta(name):
    return {"metadata": {"name": name}}


def analyze(items, namespace="team"):
    return RBACAnalyzer(FakeClient(items)).analyze_namespace_rbac(namespace)


def issue_types(report):
    return [issue.type for issue in report.security_issues]


def test_empty_cluster_is_secure():
    report = analyze({})
    assert report.security_issues == []
    assert report.risk_level == "Low"
    assert report.recommendations == [SECURE]
    assert report.namespace == "team"


def test_counts_objects():
    items = {
        "clusterroles": [meta("a"), meta("b")],
        "roles": [meta("r")],
        "clusterrolebindings": [],
        "rolebindings": [meta("x"), meta("y"), meta("z")],
        "serviceaccounts": [dict(meta("sa"), secrets=[{"name": "s"}])],
    }
    report = analyze(items)
    assert report.cluster_roles == len(items["clusterroles"])
    assert report.roles == len(items["roles"])
    assert report.cluster_role_bindings == 0
    assert report.role_bindings == len(items["rolebindings"])
    assert report.service_accounts == len(items["serviceaccounts"])


def test_namespace_passed_only_to_namespaced_lists():
    client = FakeClient()
    RBACAnalyzer(client).analyze_namespace_rbac("team")
    calls = dict(client.calls)
    assert calls["clusterroles"] is None
    assert calls["clusterrolebindings"] is None
    assert calls["roles"] == "team"
    assert calls["rolebindings"] == "team"
    assert calls["serviceaccounts"] == "team"


def test_cluster_role_wildcards():
    role = dict(meta("everything"), rules=[{"verbs": ["*"], "resources": ["*"]}])
    report = analyze({"clusterroles": [role]})
    assert issue_types(report) == ["WildcardVerb", "WildcardResource"]
    assert report.security_issues[0].description == "ClusterRole 'everything' uses wildcard verb '*'"
    assert report.risk_level == "High"
    assert report.recommendations == [
        "Replace all wildcard permissions with specific verbs and resources"
    ]


def test_secret_write_permission_flagged():
    role = dict(meta("writer"), rules=[{"verbs": ["get", "delete"], "resources": ["secrets"]}])
    report = analyze({"clusterroles": [role]})
    assert issue_types(report) == ["DangerousSecretPermission"]
    assert report.security_issues[0].severity == "High"


def test_secret_read_permission_not_flagged():
    role = dict(meta("reader"), rules=[{"verbs": ["get", "list"], "resources": ["secrets"]}])
    assert issue_types(analyze({"clusterroles": [role]})) == []


def test_pod_exec_permission():
    role = dict(meta("exec"), rules=[{"verbs": ["create"], "resources": ["pods/exec"]}])
    report = analyze({"clusterroles": [role]})
    assert issue_types(report) == ["PodExecPermission"]
    assert report.risk_level == "Medium"
    assert report.recommendations == [
        "Restrict dangerous permissions (secrets, pod exec) to trusted principals only"
    ]


def test_role_wildcard_verb_in_namespace():
    role = dict(meta("dev"), rules=[{"verbs": ["*"], "resources": ["pods"]}])
    report = analyze({"roles": [role]}, namespace="apps")
    issue = report.security_issues[0]
    assert issue.type == "WildcardVerbInRole"
    assert issue.resource == "apps/dev"
    assert issue.description == "Role 'dev' in namespace 'apps' uses wildcard verb '*'"


def test_cluster_admin_binding_is_critical():
    binding = dict(meta("root"), roleRef={"name": "cluster-admin"})
    report = analyze({"clusterrolebindings": [binding]})
    assert issue_types(report) == ["ClusterAdminBinding"]
    assert report.risk_level == "Critical"


def test_binding_to_default_service_account():
    binding = dict(
        meta("bind"),
        roleRef={"name": "view"},
        subjects=[
            {"kind": "ServiceAccount", "name": "default"},
            {"kind": "User", "name": "default-user"},
        ],
    )
    report = analyze({"clusterrolebindings": [binding]})
    assert issue_types(report) == ["DefaultServiceAccountBinding"]


def test_admin_role_binding():
    binding = dict(meta("ops"), roleRef={"name": "namespace-admin"})
    report = analyze({"rolebindings": [binding]}, namespace="prod")
    assert issue_types(report) == ["AdminRoleBinding"]
    assert report.security_issues[0].resource == "prod/ops"


def test_service_account_without_secrets():
    items = {"serviceaccounts": [meta("bare"), dict(meta("full"), secrets=[{"name": "s"}])]}
    report = analyze(items)
    assert [issue.resource for issue in report.security_issues] == ["bare"]
    assert report.risk_level == "Low"
    assert report.recommendations == [SECURE]


def test_list_failure_raises_with_context():
    client = FakeClient(failing={"roles"})
    with pytest.raises(KubeError, match="^failed to list roles: forbidden$") as info:
        RBACAnalyzer(client).analyze_namespace_rbac("team")
    assert info.value.status_code == 403


def make_issue(kind, severity):
    return SecurityIssue(kind, severity, "r", "d", "x")


@pytest.mark.parametrize(
    "severities, expected",
    [
        ([], "Low"),
        (["Low"], "Low"),
        (["Low", "Medium"], "Medium"),
        (["Medium", "High"], "High"),
        (["High", "Critical", "Low"], "Critical"),
    ],
)
def test_calculate_risk_level(severities, expected):
    assert calculate_risk_level([make_issue("T", s) for s in severities]) == expected


def test_generate_recommendations_order():
    issues = [
        make_issue("PodExecPermission", "Medium"),
        make_issue("ClusterAdminBinding", "Critical"),
        make_issue("WildcardResource", "High"),
    ]
    assert generate_recommendations(issues) == [
        "Replace all wildcard permissions with specific verbs and resources",
        "Review and minimize cluster-admin bindings - use least privilege principles",
        "Restrict dangerous permissions (secrets, pod exec) to trusted principals only",
    ]


def test_generate_recommendations_ignores_other_types():
    issues = [make_issue("ServiceAccountWithoutSecrets", "Low")]
    assert generate_recommendations(issues) == [SECURE]