# kubelens

kubelens is a library that inspects a Kubernetes cluster. It reports what looks wrong and suggests what to do about it.

It reads from the Kubernetes REST API over HTTP and never writes to it. It finds the cluster through the kubeconfig named by `KUBECONFIG`, or through `~/.kube/config`. When neither can be loaded, it uses the in-cluster service account.

## Modules

### `kubelens.kube`

This module handles the connection to the cluster.

- `KubeClient` is a small read-only REST client. It has four methods:
  - `get(resource, name, namespace)`
  - `list(resource, namespace, label_selector, field_selector)`
  - `test_connection()`
  - `server_version()`
- `new_client()` builds a `KubeClient` from the kubeconfig, or from the in-cluster settings when there is no kubeconfig.
- `load_kubeconfig(path, context)` returns a `ClusterConfig`. So does `in_cluster_config()`.
- `format_label_selector(selector)` renders a LabelSelector as a query string.
- `analyze_resource(...)` returns a generic `AnalysisResult`.

### `kubelens.quantity`

- `parse_quantity(text)` parses resource quantities such as `"250m"` or `"256Mi"`.
- The result is a `Quantity` with three methods: `milli_value()`, `value()` and `is_zero()`.

### `kubelens.diagnostics`

Each module holds an analyzer that returns a report. The report has a status, a list of issues and a list of recommendations.

| Module | Analyzer and call | What it covers |
|---|---|---|
| `pod` | `PodAnalyzer.analyze` | container states, restarts, resource limits and requests, warning events |
| `deployment` | `DeploymentAnalyzer.analyze` | conditions, replica counts, old replica sets, rollout status |
| `statefulset` | `StatefulSetAnalyzer.analyze` | conditions, replica counts, update strategy |
| `service` | `ServiceAnalyzer.analyze` | type-specific checks, selector, ports, endpoints |
| `endpoint` | `EndpointAnalyzer.validate_endpoints` | endpoint addresses and the readiness of the selected pods |
| `events` | `EventsAnalyzer.analyze_events`, `analyze_namespace_events` | splits events into warning and normal, and marks the recent ones |
| `network` | `NetworkAnalyzer.analyze_network_policy`, `analyze_namespace_network_policies` | permissive NetworkPolicy rules |
| `security` | `SecurityAnalyzer.analyze_pod_security` | scores the pod and its containers from their security contexts |

### `kubelens.enterprise`

- `rbac.RBACAnalyzer.analyze_namespace_rbac(namespace)` looks for four kinds of risk:
  - wildcard verbs and resources
  - write access to secrets, and pod exec
  - cluster-admin bindings and default service account bindings
  - admin role bindings

  It also counts roles, bindings and service accounts, and gives an overall risk level.
- `scanner.SecurityScanner.scan_namespace(namespace)` checks the pods, the services and the presence of network policies in a namespace. It returns a compliance score and a risk level. If the cluster cannot list network policies, that check is skipped.

### `kubelens.anomaly`

`AnomalyDetector.detect_namespace_anomalies(namespace)` flags five patterns:

- pods with more than 10 restarts
- containers without resource requests
- unusual memory-to-CPU request ratios
- pods that have been Pending for more than 10 minutes
- a high average CPU request per pod

It returns a score that is capped at 100.

### `kubelens.optimization`

- `resources.ResourceOptimizer.analyze_namespace(namespace)` suggests fixed right-sized requests, `250m` CPU and `256Mi` memory, and points out containers that have no limits.
- `cost.CostCalculator` gives a rough monthly estimate over 730 hours. It counts any non-empty CPU request as one core and any non-empty memory request as one GB.

### `kubelens.integrations`

- `prometheus.PrometheusClient` runs instant queries through `query(...)`. It also fetches `PodMetrics`, `NodeMetrics` and `ClusterMetrics`. Progress and query failures are logged through the standard `logging` module.
- `metrics.MetricsAnalyzer` has three methods:
  - `analyze_pod_with_metrics` combines a pod diagnosis with Prometheus metrics into an `EnhancedPodReport`, which carries recommendations and a health score.
  - `analyze_node_with_metrics` returns the metrics for one node.
  - `analyze_cluster_with_metrics` returns the metrics for the whole cluster.

## Installation

```
pip install kubelens
```

## Usage

```python
from kubelens.kube import new_client
from kubelens.diagnostics.pod import PodAnalyzer
from kubelens.enterprise.rbac import RBACAnalyzer

client = new_client()
client.test_connection()
print(client.server_version())

report = PodAnalyzer(client, "default").analyze("my-pod")
print(report.status)
for issue in report.issues:
    print("issue:", issue)
for rec in report.recommendations:
    print("recommendation:", rec)

rbac = RBACAnalyzer(client).analyze_namespace_rbac("default")
print(rbac.risk_level, rbac.recommendations)
```

### Combining diagnostics with Prometheus metrics

```python
from kubelens.kube import new_client
from kubelens.integrations.metrics import MetricsAnalyzer

analyzer = MetricsAnalyzer(new_client(), "http://localhost:9090")
enhanced = analyzer.analyze_pod_with_metrics("my-pod", "default")
print(enhanced.health_score, enhanced.recommendations)
```

### Estimating cost

```python
from kubelens.optimization.cost import CostCalculator, PodResources

calc = CostCalculator(cpu_cost=0.04, memory_cost=0.005)
print(calc.calculate_namespace_cost([PodResources("web", "500m", "512Mi")]))
```

## Errors

- Failures talking to the Kubernetes API raise `kubelens.kube.KubeError`. When the server answered, the error carries its `status_code`.
- Failures talking to Prometheus raise `kubelens.integrations.prometheus.PrometheusError`. Its `metrics` attribute holds whatever was gathered before the failure.

## What it does not do

- It has no command-line tool and no server. It is used as a library from Python.
- It only reads from the cluster. It changes nothing and performs no automated remediation.
- It works with one cluster at a time. It does not compare several kubeconfig contexts or analyze them together.
- Right-sizing suggestions and cost figures are fixed heuristics. They are not derived from measured usage or from cloud pricing.

## Running the tests

```
pip install -e ".[test]"
pytest
```