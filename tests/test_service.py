import pytest

from kubelens.diagnostics.service import ServiceAnalyzer
from kubelens.kube import KubeError


class FakeClient:
    def __init__(self, objects=None, lists=None):
        self.objects = objects or {}
        self.lists = lists or {}
        self.calls = []

    def get(self, resource, name, namespace=None):
        self.calls.append(("get", resource, name, namespace))
        try:
            return self.objects[(resource, name)]
        except KeyError:
            raise KubeError("not found", 404) from None

    def list(self, resource, namespace=None, label_selector=None, field_selector=None):
        self.calls.append(("list", resource, namespace, label_selector, field_selector))
        return self.lists.get(resource, [])


def make_service(spec, status=None):
    return {
        "metadata": {"name": "web", "namespace": "prod"},
        "spec": spec,
        "status": status or {},
    }


def endpoints(*addresses):
    return {"subsets": [{"addresses": [{"ip": ip} for ip in addresses]}]}


def test_healthy_cluster_ip_service():
    service = make_service(
        {"type": "ClusterIP", "clusterIP": "10.0.0.1", "ports": [{"port": 80}], "selector": {"app": "web"}}
    )
    client = FakeClient({("services", "web"): service, ("endpoints", "web"): endpoints("1.1.1.1", "1.1.1.2")})
    report = ServiceAnalyzer(client, "prod").analyze("web")
    assert report.analysis.status == "Healthy"
    assert report.analysis.issues == []
    assert report.analysis.recommendations == ["Service has 2 active endpoint(s)"]
    assert report.cluster_ip == "10.0.0.1"
    assert report.selector == {"app": "web"}


def test_events_are_selected_by_name():
    service = make_service({"type": "ClusterIP", "clusterIP": "10.0.0.1", "ports": [{"port": 80}], "selector": {"a": "b"}})
    events = [{"reason": "Created"}]
    client = FakeClient(
        {("services", "web"): service, ("endpoints", "web"): endpoints("1.1.1.1")},
        {"events": events},
    )
    report = ServiceAnalyzer(client, "prod").analyze("web")
    assert report.events == events
    assert ("list", "events", "prod", None, "involvedObject.name=web") in client.calls


def test_load_balancer_without_external_ip():
    service = make_service({"type": "LoadBalancer", "ports": [{"port": 80}], "selector": {"app": "web"}})
    client = FakeClient({("services", "web"): service, ("endpoints", "web"): endpoints("1.1.1.1")})
    report = ServiceAnalyzer(client, "prod").analyze("web")
    assert report.external_ip == ""
    assert report.analysis.issues == ["LoadBalancer service has no external IP assigned"]
    assert report.analysis.status == "Unhealthy"


@pytest.mark.parametrize(
    "ingress, expected",
    [
        ({"ip": "203.0.113.5", "hostname": "lb.example.com"}, "203.0.113.5"),
        ({"hostname": "lb.example.com"}, "lb.example.com"),
    ],
)
def test_external_ip_prefers_ip_then_hostname(ingress, expected):
    service = make_service(
        {"type": "LoadBalancer", "ports": [{"port": 80}], "selector": {"app": "web"}},
        {"loadBalancer": {"ingress": [ingress]}},
    )
    client = FakeClient({("services", "web"): service, ("endpoints", "web"): endpoints("1.1.1.1")})
    report = ServiceAnalyzer(client, "prod").analyze("web")
    assert report.external_ip == expected
    assert report.analysis.status == "Healthy"


def test_node_port_without_ports_or_selector():
    service = make_service({"type": "NodePort"})
    client = FakeClient({("services", "web"): service, ("endpoints", "web"): endpoints("1.1.1.1")})
    report = ServiceAnalyzer(client, "prod").analyze("web")
    assert report.analysis.issues == [
        "NodePort service has no ports configured",
        "Service has no selector configured",
        "Service has no ports configured",
    ]


def test_missing_endpoints_do_not_change_status():
    service = make_service({"type": "ClusterIP", "clusterIP": "10.0.0.1", "ports": [{"port": 80}], "selector": {"a": "b"}})
    client = FakeClient({("services", "web"): service, ("endpoints", "web"): {"subsets": []}})
    report = ServiceAnalyzer(client, "prod").analyze("web")
    assert report.analysis.issues == ["Service has no active endpoints"]
    assert report.analysis.recommendations == [
        "Check if pods matching the selector are running and ready"
    ]
    assert report.analysis.status == "Healthy"


def test_missing_service_raises():
    client = FakeClient()
    with pytest.raises(KubeError, match="^failed to get service web: not found") as info:
        ServiceAnalyzer(client, "prod").analyze("web")
    assert info.value.status_code == 404


def test_missing_endpoints_object_raises():
    service = make_service({"type": "ClusterIP"})
    client = FakeClient({("services", "web"): service})
    with pytest.raises(KubeError, match="^failed to get endpoints for service web"):
        ServiceAnalyzer(client, "prod").analyze("web")