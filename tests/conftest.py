"""Pytest configuration and fixtures for Berth K8s driver tests."""

import copy
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import DynamicApiError, NotFoundError, ResourceNotFoundError

from berth_k8s import Settings

CLUSTER_SCOPED_KINDS = {"Namespace", "ClusterRole", "ClusterRoleBinding", "PersistentVolume"}
KNOWN_KINDS = {
    "Pod",
    "Service",
    "ReplicationController",
    "ConfigMap",
    "Secret",
    "PersistentVolumeClaim",
    "Deployment",
    "DaemonSet",
    "StatefulSet",
    "ReplicaSet",
    "Job",
    "Widget",  # stands in for a custom resource
} | CLUSTER_SCOPED_KINDS


def api_error(status: int, reason: str = "Error") -> ApiException:
    return ApiException(status=status, reason=reason)


class FakeResource:
    """In-memory stand-in for a dynamic client Resource of one kind."""

    def __init__(self, kind: str, api_version: str):
        self.kind = kind
        self.api_version = api_version
        self.namespaced = kind not in CLUSTER_SCOPED_KINDS
        self.objects: dict[tuple, dict] = {}
        self.calls: list[tuple] = []
        self.patch_error = None
        self.delete_error = None
        self.get_error = None

    def add(self, obj: dict) -> dict:
        """Seed server-side state."""
        obj = copy.deepcopy(obj)
        metadata = obj.setdefault("metadata", {})
        if self.namespaced:
            metadata.setdefault("namespace", "default")
        metadata.setdefault("resourceVersion", "1")
        self.objects[(metadata.get("namespace"), metadata["name"])] = obj
        return obj

    def _not_found(self, name):
        return NotFoundError(api_error(404, f"{self.kind.lower()}s {name!r} not found"))

    def get(self, name=None, namespace=None, **kwargs):
        self.calls.append(("get", name))
        if self.get_error is not None:
            raise self.get_error
        if (namespace, name) not in self.objects:
            raise self._not_found(name)
        return copy.deepcopy(self.objects[(namespace, name)])

    def create(self, body=None, namespace=None, **kwargs):
        self.calls.append(("create", body["metadata"]["name"]))
        return copy.deepcopy(self.add(body))

    def patch(self, body=None, name=None, namespace=None, content_type=None, **kwargs):
        self.calls.append(("patch", name, body, content_type))
        if self.patch_error is not None:
            raise self.patch_error
        obj = self.objects[(namespace, name)]
        obj["metadata"]["resourceVersion"] = str(int(obj["metadata"]["resourceVersion"]) + 1)
        return copy.deepcopy(obj)

    def delete(self, name=None, namespace=None, body=None, **kwargs):
        self.calls.append(("delete", name, body))
        if self.delete_error is not None:
            raise self.delete_error
        if (namespace, name) not in self.objects:
            raise self._not_found(name)
        return self.objects.pop((namespace, name))

    def verbs(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeResources:
    """Discovery stand-in handing out one FakeResource per kind."""

    def __init__(self):
        self.by_kind: dict[str, FakeResource] = {}

    def get(self, api_version=None, kind=None):
        if kind not in KNOWN_KINDS:
            raise ResourceNotFoundError(f"No matches found for {{'api_version': {api_version!r}, 'kind': {kind!r}}}")
        if kind not in self.by_kind:
            self.by_kind[kind] = FakeResource(kind, api_version)
        return self.by_kind[kind]

    def __getitem__(self, kind: str) -> FakeResource:
        return self.get(kind=kind)


@pytest.fixture
def api_client():
    """Real ApiClient, used only for serializing typed models."""
    return client.ApiClient()


@pytest.fixture
def mock_cluster_connection(api_client):
    """Mock cluster connection for testing."""
    mock_conn = MagicMock()
    mock_conn.namespace = "default"
    mock_conn.core_v1 = MagicMock(spec=client.CoreV1Api)
    mock_conn.apps_v1 = MagicMock(spec=client.AppsV1Api)
    mock_conn.dynamic.resources = FakeResources()
    mock_conn.to_dict.side_effect = api_client.sanitize_for_serialization
    return mock_conn


@pytest.fixture
def fake_resources(mock_cluster_connection) -> FakeResources:
    """Server-side state behind the mock connection's dynamic client."""
    return mock_cluster_connection.dynamic.resources


@pytest.fixture
def test_settings():
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        poll_interval_seconds=0.01,
        default_timeout_seconds=5,
    )


@pytest.fixture
def invalid_error():
    """A patch rejection from the API server."""
    return DynamicApiError(api_error(422, "Unprocessable Entity"))


@pytest.fixture
def deployment_manifest():
    """Deployment manifest used across reconciliation tests."""
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "web", "labels": {"app": "web"}},
        "spec": {
            "replicas": 2,
            "selector": {"matchLabels": {"app": "web"}},
            "template": {
                "metadata": {"labels": {"app": "web"}},
                "spec": {
                    "containers": [
                        {
                            "name": "web",
                            "image": "nginx:1.25",
                            "ports": [{"name": "http", "containerPort": 80}],
                        }
                    ]
                },
            },
        },
    }
