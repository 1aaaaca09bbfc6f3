"""Reconciliation of manifest streams against live cluster state."""

import logging
from typing import Optional

from kubernetes.client import V1DeleteOptions, V1Preconditions
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import DynamicApiError
from kubernetes.dynamic.exceptions import NotFoundError as DynamicNotFoundError

from .builder import ManifestBuilder, ManifestStream
from .cluster import ClusterConnection
from .config import Settings, get_settings
from .errors import (
    ClusterApiError,
    EncodingError,
    KubeError,
    NoObjectsError,
    OrphanObjectError,
    PatchError,
    UnsupportedKindError,
    UpdateError,
)
from .health import ReadinessChecker
from .models import PodPhase
from .patch import compute_patch
from .result import ResourceRef, ResourceSet
from .schema import selector_string
from .watch import ResourceWatcher

logger = logging.getLogger(__name__)


class KubeClient:
    """
    Applies manifest streams to a cluster and waits for the result.

    Every call builds its resource sets fresh from the given manifests and
    issues its API calls sequentially; nothing is shared between calls.
    """

    def __init__(
        self,
        cluster: ClusterConnection,
        settings: Optional[Settings] = None,
        checker: Optional[ReadinessChecker] = None,
        watcher: Optional[ResourceWatcher] = None,
    ):
        """
        Initialize the client.

        Args:
            cluster: Cluster connection
            settings: Driver settings (defaults to the cached settings)
            checker: Readiness checker used for waits
            watcher: Resource watcher used for hook-style waits
        """
        self.cluster = cluster
        self.core_v1 = cluster.core_v1
        self.settings = settings or get_settings()
        self.builder = ManifestBuilder(cluster)
        self.checker = checker or ReadinessChecker(
            cluster, interval=self.settings.poll_interval_seconds
        )
        self.watcher = watcher or ResourceWatcher(cluster)

    def build(self, namespace: Optional[str], manifests: ManifestStream) -> ResourceSet:
        """Decode manifests with strict schema validation."""
        return self.builder.build(namespace, manifests)

    def build_unstructured(
        self, namespace: Optional[str], manifests: ManifestStream
    ) -> ResourceSet:
        """Decode manifests without schema validation."""
        return self.builder.build_unstructured(namespace, manifests)

    def create(
        self,
        namespace: Optional[str],
        manifests: ManifestStream,
        timeout: Optional[float] = None,
        wait: bool = False,
    ) -> ResourceSet:
        """
        Create every object in the manifests, stopping at the first failure.

        Args:
            namespace: Target namespace
            manifests: Manifest document stream
            timeout: Readiness timeout in seconds when waiting
            wait: Wait for the created objects to become ready

        Returns:
            The created resources

        Raises:
            NoObjectsError: If the manifests contain no objects
            ClusterApiError: If a create call fails
        """
        logger.info("Building resources from manifest")
        resources = self.build_unstructured(namespace, manifests)
        if not resources:
            raise NoObjectsError("no objects visited")

        logger.info(f"Creating {len(resources)} resource(s)")
        resources.visit(self._create_resource)

        if wait:
            self.checker.wait_for_resources(resources, self._timeout(timeout))
        return resources

    def update(
        self,
        namespace: Optional[str],
        original_manifests: ManifestStream,
        target_manifests: ManifestStream,
        force: bool = False,
        recreate: bool = False,
        timeout: Optional[float] = None,
        wait: bool = False,
    ) -> ResourceSet:
        """
        Reconcile the cluster from the original manifests to the target manifests.

        Objects missing from the cluster are created, changed objects are
        patched and objects dropped from the target are deleted.

        Args:
            namespace: Target namespace
            original_manifests: Previously applied manifests
            target_manifests: Desired manifests
            force: Delete and recreate objects whose patch is rejected
            recreate: Delete the pods of patched workloads so they restart
            timeout: Readiness timeout in seconds when waiting
            wait: Wait for the target objects to become ready

        Returns:
            The target resources

        Raises:
            EncodingError: If either manifest stream cannot be decoded
            OrphanObjectError: If a target object exists but was not in the original set
            UpdateError: If one or more objects failed to update
        """
        try:
            original = self.build_unstructured(namespace, original_manifests)
        except EncodingError as e:
            raise EncodingError(f"failed decoding reader into objects: {e}") from e

        logger.info("Building resources from updated manifest")
        try:
            target = self.build_unstructured(namespace, target_manifests)
        except EncodingError as e:
            raise EncodingError(f"failed decoding reader into objects: {e}") from e

        update_errors: list[KubeError] = []

        def reconcile(ref: ResourceRef) -> None:
            try:
                ref.resource.get(name=ref.name, namespace=ref.namespace)
            except DynamicNotFoundError:
                self._create_resource(ref)
                logger.info(f"Created a new {ref.kind} called {ref.name!r}")
                return
            except DynamicApiError as e:
                raise ClusterApiError.for_ref(
                    ref, f"could not get information about the resource {ref.kind} {ref.name!r}: {e}"
                ) from e

            original_ref = original.get(ref)
            if original_ref is None:
                raise OrphanObjectError.for_ref(ref, f"no {ref.kind} with the name {ref.name!r} found")

            try:
                self._update_resource(ref, original_ref.object, force, recreate)
            except KubeError as e:
                logger.error(f"error updating the resource {ref.name!r}: {e}")
                update_errors.append(e)

        logger.info(f"Checking {len(target)} resources for changes")
        target.visit(reconcile)

        if update_errors and not self.settings.delete_on_update_error:
            raise UpdateError(update_errors)

        for ref in original.difference(target):
            logger.info(f"Deleting {ref.name!r} in {ref.namespace}...")
            try:
                self._delete_resource(ref)
            except DynamicNotFoundError:
                logger.info(f"{ref.kind} {ref.name!r} already deleted")
            except DynamicApiError as e:
                logger.error(f"Failed to delete {ref.name!r}, err: {e}")

        if update_errors:
            raise UpdateError(update_errors)

        if wait:
            self.checker.wait_for_resources(target, self._timeout(timeout))
        return target

    def delete(self, namespace: Optional[str], manifests: ManifestStream) -> ResourceSet:
        """
        Delete every object in the manifests; objects already gone are skipped.

        Raises:
            NoObjectsError: If the manifests contain no objects
            ClusterApiError: If a delete call fails for a reason other than not found
        """
        resources = self.build_unstructured(namespace, manifests)
        if not resources:
            raise NoObjectsError("no objects visited")

        def delete(ref: ResourceRef) -> None:
            logger.info(f"Starting delete for {ref.name!r} {ref.kind}")
            try:
                self._delete_resource(ref)
            except DynamicNotFoundError:
                logger.info(f"{ref.kind} {ref.name!r} not found, skipping")
            except DynamicApiError as e:
                raise ClusterApiError.for_ref(
                    ref, f"failed to delete {ref.kind} {ref.name!r}: {e}"
                ) from e

        resources.visit(delete)
        return resources

    def watch_until_ready(
        self,
        namespace: Optional[str],
        manifests: ManifestStream,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Watch each object in the manifests until it reaches its milestone.

        Intended for hook-style resources: Jobs must complete, other kinds
        only need to be Added or Modified.

        Raises:
            NoObjectsError: If the manifests contain no objects
            WatchError: If a watch reports an error or a Job fails
            ReadinessTimeoutError: If a watch times out
        """
        resources = self.build(namespace, manifests)
        if not resources:
            raise NoObjectsError("no objects visited")

        resources.visit(lambda ref: self.watcher.watch_until_ready(ref, self._timeout(timeout)))

    def wait_and_get_completed_pod_phase(
        self,
        namespace: Optional[str],
        manifest: ManifestStream,
        timeout: Optional[float] = None,
    ) -> PodPhase:
        """
        Wait until the pod in the manifest completes and return its phase.

        Returns:
            PodPhase.SUCCEEDED or PodPhase.FAILED

        Raises:
            NoObjectsError: If the manifest contains no objects
            EncodingError: If the manifest contains more than one object
            UnsupportedKindError: If the object is not a Pod
        """
        resources = self.build(namespace, manifest)
        if not resources:
            raise NoObjectsError("no objects visited")
        if len(resources) != 1:
            raise EncodingError(f"expected exactly one Pod manifest, got {len(resources)} objects")

        ref = resources[0]
        if ref.kind != "Pod":
            raise UnsupportedKindError.for_ref(ref, f"{ref.name} is not a Pod")

        self.watcher.watch_pod_until_complete(ref, self._timeout(timeout))

        try:
            ref.get()
        except DynamicApiError as e:
            raise ClusterApiError.for_ref(ref, f"failed to get Pod {ref.name!r}: {e}") from e
        return PodPhase.parse((ref.object.get("status") or {}).get("phase"))

    def _timeout(self, timeout: Optional[float]) -> float:
        return self.settings.default_timeout_seconds if timeout is None else timeout

    def _create_resource(self, ref: ResourceRef) -> None:
        try:
            obj = ref.resource.create(body=ref.object, namespace=ref.namespace)
        except DynamicApiError as e:
            raise ClusterApiError.for_ref(
                ref, f"failed to create {ref.kind} {ref.name!r}: {e}"
            ) from e
        ref.refresh(obj)

    def _delete_resource(self, ref: ResourceRef) -> None:
        ref.resource.delete(
            name=ref.name,
            namespace=ref.namespace,
            body={"propagationPolicy": self.settings.delete_propagation_policy},
        )

    def _update_resource(
        self, target: ResourceRef, current: dict, force: bool, recreate: bool
    ) -> None:
        try:
            decision = compute_patch(current, target.object)
        except EncodingError as e:
            raise PatchError.for_ref(target, f"failed to create patch: {e}") from e

        if decision.is_empty:
            logger.info(f"Looks like there are no changes for {target.kind} {target.name!r}")
            # Later readiness checks need the live resourceVersion and status.
            try:
                target.get()
            except DynamicApiError as e:
                raise ClusterApiError.for_ref(
                    target, f"error trying to refresh resource information: {e}"
                ) from e
        else:
            try:
                obj = target.resource.patch(
                    body=decision.patch,
                    name=target.name,
                    namespace=target.namespace,
                    content_type=decision.patch_type.content_type,
                )
            except DynamicApiError as e:
                logger.warning(f"Cannot patch {target.kind}: {target.name!r} ({e})")
                if not force:
                    logger.info("Use force to force recreation of the resource")
                    raise PatchError.for_ref(
                        target, f"cannot patch {target.kind} {target.name!r}: {e}"
                    ) from e
                self._recreate_resource(target)
            else:
                target.refresh(obj)

        if recreate:
            self._restart_pods(target)

    def _recreate_resource(self, target: ResourceRef) -> None:
        try:
            self._delete_resource(target)
        except DynamicApiError as e:
            raise ClusterApiError.for_ref(
                target, f"failed to delete {target.kind} {target.name!r}: {e}"
            ) from e
        logger.info(f"Deleted {target.kind}: {target.name!r}")

        try:
            self._create_resource(target)
        except ClusterApiError as e:
            raise ClusterApiError.for_ref(target, f"failed to recreate resource: {e}") from e
        logger.info(f"Created a new {target.kind} called {target.name!r}")

    def _restart_pods(self, target: ResourceRef) -> None:
        """Delete the pods selected by a workload so they are recreated."""
        selector = target.kind_info.pod_selector(target.object)
        if not selector:
            # An empty selector would match every pod in the namespace.
            raise UnsupportedKindError.for_ref(
                target, f"{target.kind} {target.name!r} has no matchLabels to select its pods by"
            )

        try:
            pods = self.core_v1.list_namespaced_pod(
                namespace=target.namespace,
                label_selector=selector_string(selector),
            )
            for pod in pods.items:
                logger.info(f"Restarting pod: {pod.metadata.namespace}/{pod.metadata.name}")
                self.core_v1.delete_namespaced_pod(
                    pod.metadata.name,
                    pod.metadata.namespace,
                    body=V1DeleteOptions(preconditions=V1Preconditions(uid=pod.metadata.uid)),
                )
        except ApiException as e:
            raise ClusterApiError.for_ref(
                target, f"failed to restart pods of {target.kind} {target.name!r}: {e.reason}"
            ) from e
