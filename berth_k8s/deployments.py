"""Deployment rollout helpers: new ReplicaSet lookup and rollout budget."""

import copy
import math
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from kubernetes.client import AppsV1Api

from .schema import match_labels, selector_string

DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY = "pod-template-hash"

IntOrPercent = Union[int, str, None]


def _value_from_int_or_percent(value: IntOrPercent, total: int, round_up: bool) -> int:
    """
    Resolve an int-or-percent rollout parameter against ``total``.

    Raises:
        ValueError: If ``value`` is neither an int nor a percentage string
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"invalid value for IntOrString: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.endswith("%"):
        percent = int(value[:-1])
        scaled = percent * total / 100
        return math.ceil(scaled) if round_up else math.floor(scaled)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise ValueError(f"invalid value for IntOrString: {value!r}")


def resolve_fenceposts(max_surge: IntOrPercent, max_unavailable: IntOrPercent, desired: int) -> int:
    """
    Resolve maxSurge and maxUnavailable together and return max unavailable.

    Both parameters round up against the desired replica count. If both
    resolve to zero, max unavailable is forced to 1 so the rollout can still
    make progress when surge is blocked (e.g. by quota).
    """
    try:
        surge = _value_from_int_or_percent(max_surge, desired, True)
        unavailable = _value_from_int_or_percent(max_unavailable, desired, True)
    except ValueError:
        return 0

    if surge + unavailable == 0:
        unavailable = 1

    return unavailable


def _replicas(deployment: dict[str, Any]) -> int:
    replicas = (deployment.get("spec") or {}).get("replicas")
    return 1 if replicas is None else int(replicas)


def max_unavailable(deployment: dict[str, Any]) -> int:
    """Maximum unavailable pods a rolling deployment can take."""
    strategy = (deployment.get("spec") or {}).get("strategy") or {}
    if strategy.get("type", "RollingUpdate") != "RollingUpdate":
        return 0

    replicas = _replicas(deployment)
    if replicas <= 0:
        return 0

    rolling_update = strategy.get("rollingUpdate")
    if rolling_update is None:
        rolling_update = {"maxSurge": "25%", "maxUnavailable": "25%"}

    resolved = resolve_fenceposts(
        rolling_update.get("maxSurge"), rolling_update.get("maxUnavailable"), replicas
    )
    return min(resolved, replicas)


def ready_threshold(deployment: dict[str, Any]) -> int:
    """Ready replicas the new ReplicaSet needs for the deployment to count as ready."""
    return _replicas(deployment) - max_unavailable(deployment)


def equal_ignore_hash(template1: Optional[dict], template2: Optional[dict]) -> bool:
    """Compare two pod templates, ignoring the pod-template-hash label."""
    t1, t2 = copy.deepcopy(template1 or {}), copy.deepcopy(template2 or {})
    for template in (t1, t2):
        labels = (template.get("metadata") or {}).get("labels")
        if labels:
            labels.pop(DEFAULT_DEPLOYMENT_UNIQUE_LABEL_KEY, None)
            if not labels:
                del template["metadata"]["labels"]
        if template.get("metadata") == {}:
            del template["metadata"]
    return t1 == t2


def is_controlled_by(obj: dict[str, Any], owner: dict[str, Any]) -> bool:
    """True if ``obj`` has a controller owner reference pointing at ``owner``."""
    owner_uid = (owner.get("metadata") or {}).get("uid")
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller") and ref.get("uid") == owner_uid:
            return True
    return False


def _creation_key(replica_set: dict[str, Any]) -> tuple[datetime, str]:
    metadata = replica_set.get("metadata") or {}
    timestamp = metadata.get("creationTimestamp")
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if timestamp is None:
        timestamp = datetime.min
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    else:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp, metadata.get("name") or ""


def list_replica_sets(
    deployment: dict[str, Any],
    apps_v1: AppsV1Api,
    to_dict: Callable[[Any], dict],
) -> list[dict[str, Any]]:
    """
    List the ReplicaSets a deployment controls.

    ReplicaSets are listed by the deployment's selector and then filtered
    by controller reference; adoption and orphaning are left to the
    controller.
    """
    metadata = deployment.get("metadata") or {}
    result = apps_v1.list_namespaced_replica_set(
        namespace=metadata.get("namespace"),
        label_selector=selector_string(match_labels(deployment)),
    )
    replica_sets = [to_dict(item) for item in result.items]
    return [rs for rs in replica_sets if is_controlled_by(rs, deployment)]


def find_new_replica_set(
    deployment: dict[str, Any], replica_sets: list[dict[str, Any]]
) -> Optional[dict[str, Any]]:
    """
    Pick the ReplicaSet whose pod template matches the deployment's.

    Several ReplicaSets can share the deployment's template after cluster
    upgrades; the oldest one (then by name) wins.
    """
    template = (deployment.get("spec") or {}).get("template")
    for replica_set in sorted(replica_sets, key=_creation_key):
        if equal_ignore_hash((replica_set.get("spec") or {}).get("template"), template):
            return replica_set
    return None


def get_new_replica_set(
    deployment: dict[str, Any],
    apps_v1: AppsV1Api,
    to_dict: Callable[[Any], dict],
) -> Optional[dict[str, Any]]:
    """
    Get the ReplicaSet matching the deployment's current intent.

    Returns:
        The new ReplicaSet, or None if it does not exist yet
    """
    return find_new_replica_set(deployment, list_replica_sets(deployment, apps_v1, to_dict))
