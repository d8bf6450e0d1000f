from datetime import datetime, timezone

import pytest

from kubelens.diagnostics.pod import PodAnalyzer
from kubelens.kube import KubeError

LIMITS_ADVICE = "Add resource limits to prevent OOM kills and ensure quality of service"
REQUESTS_ADVICE = "Add resource requests to help the scheduler make better placement decisions"
RESOURCES = {"limits": {"cpu": "500m"}, "requests": {"cpu": "250m"}}


class FakeClient:
    def __init__(self, pods=(), events=None, fail_events=False):
        self.pods = {p["metadata"]["name"]: p for p in pods}
        self.events = events or []
        self.fail_events = fail_events
        self.selectors = []

    def get(self, resource, name, namespace=None):
        try:
            return self.pods[name]
        except KeyError:
            raise KubeError(f'pods "{name}" not found', 404) from None

    def list(self, resource, namespace=None, label_selector=None, field_selector=None):
        self.selectors.append(field_selector)
        if self.fail_events:
            raise KubeError("forbidden", 403)
        return list(self.events)


def make_pod(statuses, phase="Running", resources=RESOURCES):
    return {
        "metadata": {
            "name": "web",
            "namespace": "default",
            "uid": "uid-1",
            "creationTimestamp": "2024-01-02T03:04:05Z",
        },
        "spec": {
            "nodeName": "node-a",
            "serviceAccountName": "builder",
            "containers": [{"name": s["name"], "resources": resources} for s in statuses] or [
                {"name": "app", "resources": resources}
            ],
        },
        "status": {"phase": phase, "podIP": "10.1.2.3", "containerStatuses": statuses},
    }


def running(name="app", ready=True, restarts=0):
    return {
        "name": name,
        "image": "nginx:1.25",
        "ready": ready,
        "restartCount": restarts,
        "state": {"running": {"startedAt": "2024-01-02T03:05:00Z"}},
    }


def waiting(reason, message, name="app", restarts=0):
    return {
        "name": name,
        "image": "nginx:1.25",
        "ready": False,
        "restartCount": restarts,
        "state": {"waiting": {"reason": reason, "message": message}},
    }


def analyze(pod, **kwargs):
    return PodAnalyzer(FakeClient([pod], **kwargs), "default").analyze("web")


def test_healthy_pod():
    report = analyze(make_pod([running()]))
    assert report.status == "Running"
    assert report.issues == []
    assert report.recommendations == []
    assert report.node == "node-a"
    assert report.service_account == "builder"
    assert report.pod_ip == "10.1.2.3"
    assert report.created == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert report.containers[0].status == "Running"


def test_events_selected_by_pod_name():
    client = FakeClient([make_pod([running()])])
    PodAnalyzer(client, "default").analyze("web")
    assert client.selectors == ["involvedObject.name=web"]


def test_image_pull_failure_is_an_issue():
    report = analyze(make_pod([waiting("ImagePullBackOff", "not found")]))
    assert len(report.issues) == 1
    assert report.issues[0].startswith("Container app cannot pull image")
    container = report.containers[0]
    assert container.reason == "ImagePullBackOff"
    assert container.message == "not found"
    assert container.status.startswith("Waiting - ImagePullBackOff")
    assert report.status == "Running but not all containers ready"


def test_crash_loop_and_restart_recommendation():
    report = analyze(make_pod([waiting("CrashLoopBackOff", "exit 1", restarts=7)]))
    assert report.restart_count == 7
    assert "is crashing" in report.issues[0]
    assert any("restarted 7 times" in r for r in report.recommendations)


def test_restart_counts_are_summed_and_threshold_is_strict():
    report = analyze(make_pod([running("a", restarts=2), running("b", restarts=3)]))
    assert report.restart_count == 5
    assert report.recommendations == []


def test_terminated_container_status():
    status = {
        "name": "job",
        "image": "busybox",
        "ready": False,
        "state": {"terminated": {"reason": "Completed", "message": "done"}},
    }
    report = analyze(make_pod([status], phase="Succeeded"))
    assert report.status == "Succeeded"
    assert report.containers[0].status.startswith("Terminated - Completed")
    assert report.issues == []


def test_pending_phase_is_reported_as_status():
    report = analyze(make_pod([], phase="Pending"))
    assert report.status == "Pending"
    assert report.containers == []


def test_missing_resources_recommendations_in_order():
    report = analyze(make_pod([running()], resources={}))
    assert report.resource_limits_set is False
    assert report.resource_requests_set is False
    assert report.recommendations == [LIMITS_ADVICE, REQUESTS_ADVICE]


def test_warning_events_add_advice():
    events = [
        {"type": "Warning", "reason": "FailedScheduling"},
        {"type": "Normal", "reason": "FailedMount"},
        {"type": "Warning", "reason": "FailedMount"},
    ]
    report = analyze(make_pod([running()]), events=events)
    assert report.recommendations == [
        "Check node resources and affinity rules",
        "Verify volume configurations and storage class availability",
    ]


def test_missing_pod_raises():
    with pytest.raises(KubeError) as info:
        PodAnalyzer(FakeClient(), "default").analyze("ghost")
    assert str(info.value).startswith("failed to get pod ghost")
    assert info.value.status_code == 404


def test_event_error_is_wrapped():
    client = FakeClient([make_pod([running()])], fail_events=True)
    with pytest.raises(KubeError, match="failed to get events for pod web"):
        PodAnalyzer(client, "default").analyze("web")