"""Readiness evaluation for applied resources."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import DynamicApiError
from kubernetes.dynamic.exceptions import NotFoundError as DynamicNotFoundError
from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_fixed

from .cluster import ClusterConnection
from .config import get_settings
from .deployments import get_new_replica_set, ready_threshold
from .errors import ClusterApiError, ReadinessTimeoutError
from .result import ResourceRef, ResourceSet
from .schema import ReadinessFamily, selector_string

logger = logging.getLogger(__name__)


def _describe(obj: dict[str, Any]) -> str:
    metadata = obj.get("metadata") or {}
    return f"{metadata.get('namespace')}/{metadata.get('name')}"


def is_pod_ready(pod: dict[str, Any]) -> bool:
    """A pod is ready when its Ready condition is True."""
    for condition in (pod.get("status") or {}).get("conditions") or []:
        if condition.get("type") == "Ready" and condition.get("status") == "True":
            return True
    return False


def is_service_ready(service: dict[str, Any]) -> bool:
    """
    A service is ready once it has a cluster IP and, for load balancers, an ingress.

    ExternalName services live outside the cluster and are always ready.
    """
    spec = service.get("spec") or {}
    if spec.get("type") == "ExternalName":
        return True

    cluster_ip = spec.get("clusterIP")
    if cluster_ip != "None" and not cluster_ip:
        return False

    if spec.get("type") == "LoadBalancer":
        load_balancer = (service.get("status") or {}).get("loadBalancer") or {}
        if not load_balancer.get("ingress"):
            return False
    return True


def is_pvc_ready(claim: dict[str, Any]) -> bool:
    """A claim is ready once it is Bound."""
    return (claim.get("status") or {}).get("phase") == "Bound"


def is_deployment_ready(deployment: dict[str, Any], replica_set: Optional[dict[str, Any]]) -> bool:
    """A deployment is ready once its new ReplicaSet has enough ready replicas."""
    if replica_set is None:
        return False
    ready_replicas = (replica_set.get("status") or {}).get("readyReplicas") or 0
    return ready_replicas >= ready_threshold(deployment)


@dataclass
class DeploymentPair:
    """A deployment and the new ReplicaSet it currently owns."""

    deployment: dict[str, Any]
    replica_set: Optional[dict[str, Any]]


@dataclass
class ReadinessRecord:
    """Classification of every live object for a single poll tick."""

    pods: list[dict[str, Any]] = field(default_factory=list)
    services: list[dict[str, Any]] = field(default_factory=list)
    volumes: list[dict[str, Any]] = field(default_factory=list)
    deployments: list[DeploymentPair] = field(default_factory=list)
    missing: list[ResourceRef] = field(default_factory=list)
    ignored: list[ResourceRef] = field(default_factory=list)

    def not_ready(self) -> list[str]:
        """Describe every object that is not ready yet."""
        pending = [f"{ref.kind} {ref.namespace}/{ref.name} (not found)" for ref in self.missing]
        pending += [f"Pod {_describe(p)}" for p in self.pods if not is_pod_ready(p)]
        pending += [f"Service {_describe(s)}" for s in self.services if not is_service_ready(s)]
        pending += [
            f"PersistentVolumeClaim {_describe(v)}" for v in self.volumes if not is_pvc_ready(v)
        ]
        pending += [
            f"Deployment {_describe(pair.deployment)}"
            for pair in self.deployments
            if not is_deployment_ready(pair.deployment, pair.replica_set)
        ]
        return pending


class ReadinessChecker:
    """
    Decides whether applied resources are ready, once or by polling.

    Every tick re-fetches all objects and rebuilds the classification from
    scratch, because object state changes on the server between ticks.
    """

    def __init__(
        self,
        cluster: ClusterConnection,
        interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize readiness checker.

        Args:
            cluster: Cluster connection
            interval: Seconds between polls (defaults to settings)
            sleep: Sleep function used between polls
        """
        self.cluster = cluster
        self.core_v1 = cluster.core_v1
        self.apps_v1 = cluster.apps_v1
        self.interval = interval if interval is not None else get_settings().poll_interval_seconds
        self._sleep = sleep

    def collect(self, resources: ResourceSet) -> ReadinessRecord:
        """
        Fetch every object and classify it by readiness family.

        Raises:
            ClusterApiError: On any API error other than not found
        """
        record = ReadinessRecord()
        for ref in resources:
            try:
                ref.get()
            except DynamicNotFoundError:
                logger.debug(f"{ref.kind} {ref.name!r} not found yet")
                record.missing.append(ref)
                continue
            except DynamicApiError as e:
                raise ClusterApiError.for_ref(
                    ref, f"failed to get {ref.kind} {ref.name!r}: {e}"
                ) from e

            try:
                self._classify(ref, record)
            except ApiException as e:
                if e.status == 404:
                    record.missing.append(ref)
                    continue
                raise ClusterApiError.for_ref(
                    ref, f"failed to check readiness of {ref.kind} {ref.name!r}: {e.reason}"
                ) from e
        return record

    def _classify(self, ref: ResourceRef, record: ReadinessRecord) -> None:
        info = ref.kind_info
        obj = ref.object

        if info.readiness is ReadinessFamily.POD:
            record.pods.append(obj)
        elif info.readiness is ReadinessFamily.POD_SELECTOR:
            record.pods.extend(self._list_pods(ref.namespace, info.pod_selector(obj)))
        elif info.readiness is ReadinessFamily.SERVICE:
            record.services.append(obj)
        elif info.readiness is ReadinessFamily.PVC:
            record.volumes.append(obj)
        elif info.readiness is ReadinessFamily.DEPLOYMENT:
            # Read through apps/v1 so every API generation looks the same.
            deployment = self.cluster.to_dict(
                self.apps_v1.read_namespaced_deployment(ref.name, ref.namespace)
            )
            replica_set = get_new_replica_set(deployment, self.apps_v1, self.cluster.to_dict)
            record.deployments.append(DeploymentPair(deployment, replica_set))
        else:
            logger.debug(f"wait: ignoring {ref.api_version} {ref.kind} {ref.name!r}")
            record.ignored.append(ref)

    def _list_pods(self, namespace: Optional[str], selector: dict[str, str]) -> list[dict]:
        result = self.core_v1.list_namespaced_pod(
            namespace=namespace,
            label_selector=selector_string(selector),
        )
        return [self.cluster.to_dict(pod) for pod in result.items]

    def is_ready(self, resources: ResourceSet) -> bool:
        """
        Check once whether every resource is ready.

        Args:
            resources: Resources to check

        Returns:
            True if all resources are ready
        """
        return not self._pending(resources)

    def _pending(self, resources: ResourceSet) -> list[str]:
        pending = self.collect(resources).not_ready()
        for description in pending:
            logger.info(f"{description} is not ready")
        return pending

    def wait_for_resources(self, resources: ResourceSet, timeout: float) -> None:
        """
        Poll until every resource is ready.

        Args:
            resources: Resources to wait for
            timeout: Maximum time to wait in seconds

        Raises:
            ReadinessTimeoutError: If resources are not ready before the timeout
            ClusterApiError: On any API error other than not found (no retry)
        """
        logger.info(f"Beginning wait for {len(resources)} resources with timeout of {timeout}s")

        pending: list[str] = []

        def tick() -> bool:
            pending[:] = self._pending(resources)
            return not pending

        retryer = Retrying(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(self.interval),
            retry=retry_if_result(lambda ready: ready is False),
            sleep=self._sleep,
        )
        try:
            retryer(tick)
        except RetryError as e:
            raise ReadinessTimeoutError(
                f"timed out waiting for the condition after {timeout}s: "
                + ", ".join(pending),
                pending=pending,
            ) from e

