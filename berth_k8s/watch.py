"""Single-object watches that block until a kind-specific milestone."""

import logging
import math
from typing import Any, Callable, Optional

from kubernetes import watch as k8s_watch
from kubernetes.client.exceptions import ApiException

from .cluster import ClusterConnection
from .errors import NotFoundError, ReadinessTimeoutError, WatchError
from .models import PodPhase, WatchEvent, WatchEventType
from .result import ResourceRef

logger = logging.getLogger(__name__)

# Returns True once the milestone is reached; raises to fail the wait.
Milestone = Callable[[WatchEvent], bool]


class ResourceWatcher:
    """Watches individual Kubernetes resources until they reach a milestone."""

    def __init__(self, cluster: ClusterConnection):
        """
        Initialize resource watcher.

        Args:
            cluster: Cluster connection
        """
        self.cluster = cluster

    def watch_until_ready(self, ref: ResourceRef, timeout: Optional[float]) -> WatchEvent:
        """
        Watch a resource until it is ready.

        Most kinds are ready as soon as they are Added or Modified. Jobs are
        ready once they complete and fail the wait when they fail.

        Args:
            ref: Resource to watch
            timeout: Watch timeout in seconds (None or 0 for no timeout)

        Returns:
            The event that reached the milestone

        Raises:
            WatchError: If the watch stream fails or a Job fails
            ReadinessTimeoutError: If the watch ends before the milestone
        """
        logger.info(f"Watching for changes to {ref.kind} {ref.name} with timeout of {timeout}s")

        def milestone(event: WatchEvent) -> bool:
            if event.event_type in (WatchEventType.ADDED, WatchEventType.MODIFIED):
                logger.info(f"Add/Modify event for {ref.name}: {event.event_type.value}")
                if ref.kind == "Job":
                    return self._job_complete(event)
                return True
            if event.event_type is WatchEventType.DELETED:
                logger.info(f"Deleted event for {ref.name}")
                return True
            return False

        return self._watch_until(ref, timeout, milestone, f"failed to deploy {ref.name}")

    def watch_pod_until_complete(self, ref: ResourceRef, timeout: Optional[float]) -> WatchEvent:
        """
        Watch a pod until it enters the Succeeded or Failed phase.

        Raises:
            NotFoundError: If the pod is deleted while waiting
            WatchError: If the watch stream fails
            ReadinessTimeoutError: If the watch ends before completion
        """
        logger.info(f"Watching pod {ref.name} for completion with timeout of {timeout}s")

        def milestone(event: WatchEvent) -> bool:
            if event.event_type is WatchEventType.DELETED:
                raise NotFoundError.for_ref(ref, f"pods {ref.name!r} not found")
            phase = PodPhase.parse((event.object.get("status") or {}).get("phase"))
            return phase in (PodPhase.SUCCEEDED, PodPhase.FAILED)

        return self._watch_until(ref, timeout, milestone, f"failed to watch pod {ref.name}")

    def _job_complete(self, event: WatchEvent) -> bool:
        """Evaluate a Job watch event; raises if the job failed."""
        status = event.object.get("status") or {}
        for condition in status.get("conditions") or []:
            if condition.get("status") != "True":
                continue
            if condition.get("type") == "Complete":
                return True
            if condition.get("type") == "Failed":
                raise WatchError(
                    f"job failed: {condition.get('reason')}",
                    kind="Job",
                    name=event.name,
                    namespace=event.namespace,
                )

        logger.info(
            f"{event.name}: Jobs active: {status.get('active', 0)}, "
            f"jobs failed: {status.get('failed', 0)}, "
            f"jobs succeeded: {status.get('succeeded', 0)}"
        )
        return False

    def _watch_until(
        self, ref: ResourceRef, timeout: Optional[float], milestone: Milestone, failure: str
    ) -> WatchEvent:
        """Stream events for one object; ERROR events surface from the stream as ApiException."""
        watcher = k8s_watch.Watch()
        try:
            for raw_event in self.cluster.dynamic.watch(
                ref.resource,
                namespace=ref.namespace,
                name=ref.name,
                resource_version=ref.resource_version,
                timeout=max(1, math.ceil(timeout)) if timeout else None,
                watcher=watcher,
            ):
                event = self._to_event(ref, raw_event)
                if milestone(event):
                    return event
        except ApiException as e:
            logger.error(f"Error watching {ref.kind} {ref.name!r}: {e.status} {e.reason}")
            raise WatchError.for_ref(ref, f"{failure}: {e.reason}") from e
        finally:
            watcher.stop()

        raise ReadinessTimeoutError.for_ref(
            ref, f"timed out waiting for {ref.kind} {ref.name!r} after {timeout}s"
        )

    @staticmethod
    def _to_event(ref: ResourceRef, raw_event: dict[str, Any]) -> WatchEvent:
        obj = raw_event.get("raw_object")
        if obj is None:
            obj = raw_event["object"]
            if hasattr(obj, "to_dict"):
                obj = obj.to_dict()
        metadata = obj.get("metadata") or {}
        return WatchEvent(
            event_type=raw_event["type"],
            resource_type=ref.kind,
            name=metadata.get("name") or ref.name,
            namespace=metadata.get("namespace") or ref.namespace,
            object=obj,
        )
