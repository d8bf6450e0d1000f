"""Access to the Kubernetes API server and kubeconfig handling."""

from __future__ import annotations

import base64
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import quote

import requests
import yaml

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
REQUEST_TIMEOUT = 30.0

# resource -> (API group, version, namespaced)
_RESOURCES: dict[str, tuple[str, str, bool]] = {
    "namespaces": ("", "v1", False),
    "nodes": ("", "v1", False),
    "pods": ("", "v1", True),
    "services": ("", "v1", True),
    "endpoints": ("", "v1", True),
    "events": ("", "v1", True),
    "serviceaccounts": ("", "v1", True),
    "deployments": ("apps", "v1", True),
    "replicasets": ("apps", "v1", True),
    "statefulsets": ("apps", "v1", True),
    "networkpolicies": ("networking.k8s.io", "v1", True),
    "roles": ("rbac.authorization.k8s.io", "v1", True),
    "rolebindings": ("rbac.authorization.k8s.io", "v1", True),
    "clusterroles": ("rbac.authorization.k8s.io", "v1", False),
    "clusterrolebindings": ("rbac.authorization.k8s.io", "v1", False),
}


class KubeError(Exception):
    """Raised when the cluster cannot be configured or a request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ClusterConfig:
    """Connection settings for one cluster."""

    server: str
    token: str | None = None
    certificate_authority: str | None = None
    client_certificate: str | None = None
    client_key: str | None = None
    insecure_skip_tls_verify: bool = False
    namespace: str = "default"


@dataclass
class AnalysisResult:
    """Outcome of a generic resource analysis."""

    report: str
    recommendations: list[str] = field(default_factory=list)


def default_kubeconfig_path() -> Path:
    """Return the kubeconfig path from KUBECONFIG or the home directory."""
    for entry in os.environ.get("KUBECONFIG", "").split(os.pathsep):
        if entry:
            return Path(entry)
    try:
        home = Path.home()
    except RuntimeError as err:
        raise KubeError("Unable To Find Home Directory For Kubeconfig") from err
    return home / ".kube" / "config"


def _named_entry(doc: Mapping[str, Any], section: str, name: str | None, key: str) -> dict:
    for entry in doc.get(section) or []:
        if entry.get("name") == name:
            return entry.get(key) or {}
    raise KubeError(f'{key} "{name}" does not exist')


def _materialize(data: str, suffix: str) -> str:
    content = base64.b64decode(data)
    with tempfile.NamedTemporaryFile("wb", suffix=suffix, delete=False) as handle:
        handle.write(content)
    return handle.name


def _file_setting(section: Mapping[str, Any], name: str, base_dir: Path, suffix: str) -> str | None:
    data = section.get(f"{name}-data")
    if data:
        return _materialize(data, suffix)
    path = section.get(name)
    if not path:
        return None
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = base_dir / resolved
    return str(resolved)


def load_kubeconfig(path: str | os.PathLike | None = None, context: str | None = None) -> ClusterConfig:
    """Read a kubeconfig file and build the settings of one of its contexts."""
    config_path = Path(path) if path else default_kubeconfig_path()
    try:
        text = config_path.read_text()
    except OSError as err:
        raise KubeError(f"failed to read kubeconfig {config_path}: {err}") from err
    try:
        doc = yaml.safe_load(text) or {}
    except yaml.YAMLError as err:
        raise KubeError(f"failed to parse kubeconfig {config_path}: {err}") from err
    if not isinstance(doc, dict):
        raise KubeError(f"kubeconfig {config_path} is not a mapping")

    context_name = context or doc.get("current-context")
    if not context_name:
        raise KubeError("no context selected in kubeconfig")
    ctx = _named_entry(doc, "contexts", context_name, "context")
    cluster = _named_entry(doc, "clusters", ctx.get("cluster"), "cluster")
    user = _named_entry(doc, "users", ctx.get("user"), "user") if ctx.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise KubeError(f'no server found for cluster "{ctx.get("cluster")}"')

    base_dir = config_path.parent
    token = user.get("token")
    token_file = user.get("tokenFile")
    if not token and token_file:
        token_path = Path(token_file)
        if not token_path.is_absolute():
            token_path = base_dir / token_path
        try:
            token = token_path.read_text().strip()
        except OSError as err:
            raise KubeError(f"failed to read token file {token_path}: {err}") from err

    return ClusterConfig(
        server=server,
        token=token,
        certificate_authority=_file_setting(cluster, "certificate-authority", base_dir, ".crt"),
        client_certificate=_file_setting(user, "client-certificate", base_dir, ".crt"),
        client_key=_file_setting(user, "client-key", base_dir, ".key"),
        insecure_skip_tls_verify=bool(cluster.get("insecure-skip-tls-verify", False)),
        namespace=ctx.get("namespace") or "default",
    )


def in_cluster_config() -> ClusterConfig:
    """Build settings from the service account mounted into a pod."""
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT")
    if not host or not port:
        raise KubeError(
            "unable to load in-cluster configuration, KUBERNETES_SERVICE_HOST "
            "and KUBERNETES_SERVICE_PORT must be defined"
        )
    try:
        token = (SERVICE_ACCOUNT_DIR / "token").read_text().strip()
    except OSError as err:
        raise KubeError(f"failed to read service account token: {err}") from err
    if ":" in host:
        host = f"[{host}]"
    ca_path = SERVICE_ACCOUNT_DIR / "ca.crt"
    namespace_path = SERVICE_ACCOUNT_DIR / "namespace"
    namespace = namespace_path.read_text().strip() if namespace_path.exists() else "default"
    return ClusterConfig(
        server=f"https://{host}:{port}",
        token=token,
        certificate_authority=str(ca_path) if ca_path.exists() else None,
        namespace=namespace or "default",
    )


def new_client() -> "KubeClient":
    """Create a client from the kubeconfig, falling back to in-cluster settings."""
    try:
        config = load_kubeconfig(default_kubeconfig_path())
    except KubeError:
        try:
            config = in_cluster_config()
        except KubeError as err:
            raise KubeError(f"Failed To Get Kubernetes Config: {err}") from err
    return KubeClient(config)


def format_label_selector(selector: Mapping[str, Any] | None) -> str:
    """Render a LabelSelector object in the API's query syntax."""
    if selector is None:
        return "<none>"
    requirements: list[tuple[str, str]] = []
    for key, value in (selector.get("matchLabels") or {}).items():
        requirements.append((key, f"{key}={value}"))
    for expression in selector.get("matchExpressions") or []:
        key = expression.get("key", "")
        operator = expression.get("operator")
        values = sorted(expression.get("values") or [])
        if operator in ("In", "NotIn"):
            if not values:
                return "<error>"
            word = "in" if operator == "In" else "notin"
            requirements.append((key, f"{key} {word} ({','.join(values)})"))
        elif operator in ("Exists", "DoesNotExist"):
            if values:
                return "<error>"
            requirements.append((key, key if operator == "Exists" else f"!{key}"))
        else:
            return "<error>"
    requirements.sort(key=lambda requirement: requirement[0])
    text = ",".join(rendered for _, rendered in requirements)
    return text or "<none>"


def analyze_resource(resource_type: str, resource_name: str, namespace: str) -> AnalysisResult:
    """Produce the generic report for any resource."""
    return AnalysisResult(
        report=f"Analysis for {resource_type}/{resource_name} in namespace {namespace}",
        recommendations=[],
    )


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text.strip() or f"the server returned status {response.status_code}"


class KubeClient:
    """A small read-only client for the Kubernetes REST API."""

    def __init__(self, config: ClusterConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._base = config.server.rstrip("/")
        if config.token:
            self._session.headers["Authorization"] = f"Bearer {config.token}"
        if config.insecure_skip_tls_verify:
            self._session.verify = False
        elif config.certificate_authority:
            self._session.verify = config.certificate_authority
        if config.client_certificate and config.client_key:
            self._session.cert = (config.client_certificate, config.client_key)

    @staticmethod
    def _path(resource: str, namespace: str | None, name: str | None = None) -> str:
        try:
            group, version, namespaced = _RESOURCES[resource]
        except KeyError:
            raise KubeError(f"unsupported resource type: {resource}") from None
        parts = [f"/api/{version}" if not group else f"/apis/{group}/{version}"]
        if namespaced and namespace:
            parts.append(f"namespaces/{quote(namespace, safe='')}")
        parts.append(resource)
        if name:
            parts.append(quote(name, safe=""))
        return "/".join(parts)

    def _request(self, path: str, params: Mapping[str, str] | None = None) -> Any:
        try:
            response = self._session.get(self._base + path, params=params, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as err:
            raise KubeError(f"request to {path} failed: {err}") from err
        if response.status_code != 200:
            raise KubeError(_error_message(response), status_code=response.status_code)
        try:
            return response.json()
        except ValueError as err:
            raise KubeError(f"invalid JSON from {path}: {err}") from err

    def get(self, resource: str, name: str, namespace: str | None = None) -> dict:
        """Fetch one object."""
        return self._request(self._path(resource, namespace, name))

    def list(
        self,
        resource: str,
        namespace: str | None = None,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[dict]:
        """List objects; a namespaced resource without a namespace lists all namespaces."""
        params = {}
        if label_selector:
            params["labelSelector"] = label_selector
        if field_selector:
            params["fieldSelector"] = field_selector
        body = self._request(self._path(resource, namespace), params or None)
        return list(body.get("items") or [])

    def test_connection(self) -> None:
        """Raise KubeError unless the API server answers."""
        try:
            self.list("namespaces")
        except KubeError as err:
            raise KubeError(f"Failed To Connect To Kubernetes API: {err}", err.status_code) from err

    def server_version(self) -> str:
        """Return the server's git version string."""
        try:
            info = self._request("/version")
        except KubeError as err:
            raise KubeError(f"Failed To Get Server Version: {err}", err.status_code) from err
        return str(info.get("gitVersion", ""))