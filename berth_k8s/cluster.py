"""Kubernetes client connection management."""

import base64
import tempfile
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

import yaml
from kubernetes import config
from kubernetes.client import ApiClient, AppsV1Api, Configuration, CoreV1Api
from kubernetes.dynamic import DynamicClient

from .config import Settings, get_settings
from .models import ClusterConfig


def _write_kubeconfig(data: str) -> Path:
    """Decode a base64 kubeconfig into a private temporary file."""
    content = base64.b64decode(data, validate=True)
    with tempfile.NamedTemporaryFile(mode="wb", suffix=".kubeconfig", delete=False) as f:
        f.write(content)
    return Path(f.name)


class ClusterConnection:
    """Represents a connection to a single Kubernetes cluster."""

    def __init__(self, cluster_config: ClusterConfig):
        """
        Initialize cluster connection.

        Args:
            cluster_config: Cluster configuration

        Raises:
            ValueError: If kubeconfig is invalid
        """
        self.config = cluster_config
        self._api_client: Optional[ApiClient] = None
        self._core_v1: Optional[CoreV1Api] = None
        self._apps_v1: Optional[AppsV1Api] = None
        self._dynamic: Optional[DynamicClient] = None
        self._temp_kubeconfig: Optional[Path] = None

        self._initialize_client()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ClusterConnection":
        """Connect using the kubeconfig and context from driver settings."""
        settings = settings or get_settings()
        return cls(
            ClusterConfig(
                id=uuid4(),
                name=settings.kube_context or "default",
                kubeconfig_path=settings.kubeconfig_path,
                context=settings.kube_context,
                namespace=settings.default_namespace,
            )
        )

    def _initialize_client(self):
        """Load credentials into a client configuration owned by this connection."""
        client_config = Configuration()
        try:
            if self.config.kubeconfig_data:
                self._temp_kubeconfig = _write_kubeconfig(self.config.kubeconfig_data)
                config.load_kube_config(
                    config_file=str(self._temp_kubeconfig),
                    context=self.config.context,
                    client_configuration=client_config,
                )
            elif self.config.kubeconfig_path:
                config.load_kube_config(
                    config_file=self.config.kubeconfig_path,
                    context=self.config.context,
                    client_configuration=client_config,
                )
            else:
                config.load_incluster_config(client_configuration=client_config)
        except (config.ConfigException, yaml.YAMLError, OSError, ValueError) as e:
            raise ValueError(f"Failed to load credentials for cluster {self.config.name!r}: {e}") from e

        self._api_client = ApiClient(configuration=client_config)
        self._core_v1 = CoreV1Api(self._api_client)
        self._apps_v1 = AppsV1Api(self._api_client)

    @property
    def namespace(self) -> str:
        """Default namespace for objects that do not declare one."""
        return self.config.namespace

    def _require(self, api: Optional[Any]) -> Any:
        if api is None:
            raise RuntimeError(f"Connection to cluster {self.config.name!r} is closed")
        return api

    @property
    def core_v1(self) -> CoreV1Api:
        """Typed client for the core group (pods, services, claims)."""
        return self._require(self._core_v1)

    @property
    def apps_v1(self) -> AppsV1Api:
        """Typed client for the apps group (deployments, replica sets)."""
        return self._require(self._apps_v1)

    @property
    def api_client(self) -> ApiClient:
        return self._require(self._api_client)

    @property
    def dynamic(self) -> DynamicClient:
        """Get the discovery-backed dynamic client, created on first use."""
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    def to_dict(self, obj: Any) -> dict:
        """Serialize a typed API object into its JSON (camelCase) form."""
        return self.api_client.sanitize_for_serialization(obj)

    def close(self):
        """Release the HTTP pool and remove any inline kubeconfig written to disk."""
        api_client = self._api_client
        self._api_client = self._core_v1 = self._apps_v1 = self._dynamic = None
        if api_client is not None:
            api_client.close()

        if self._temp_kubeconfig is not None:
            self._temp_kubeconfig.unlink(missing_ok=True)
            self._temp_kubeconfig = None

    def __enter__(self) -> "ClusterConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
