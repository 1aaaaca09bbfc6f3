"""Kind registry and typed-model metadata for built-in Kubernetes kinds.

Kind-specific behaviour (readiness, pod selectors, strategic merge and strict
validation) is looked up here by a normalized ``(group, kind)`` tag. Kinds
that are not in the table resolve to ``UNSUPPORTED``.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from kubernetes import client as k8s_models

from .errors import UnsupportedKindError


class ReadinessFamily(str, Enum):
    """How the readiness evaluator treats a kind."""

    POD = "pod"
    SERVICE = "service"
    PVC = "pvc"
    DEPLOYMENT = "deployment"
    POD_SELECTOR = "pod_selector"
    JOB = "job"
    UNRECOGNIZED = "unrecognized"


def match_labels(obj: dict) -> dict[str, str]:
    """Selector of workloads using a metav1.LabelSelector."""
    selector = (obj.get("spec") or {}).get("selector") or {}
    return dict(selector.get("matchLabels") or {})


def replication_controller_selector(obj: dict) -> dict[str, str]:
    """ReplicationControllers carry a plain label map as selector."""
    return dict((obj.get("spec") or {}).get("selector") or {})


@dataclass(frozen=True)
class KindInfo:
    """Capabilities of one logical kind."""

    group: str
    kind: str
    model: Optional[str] = None
    readiness: ReadinessFamily = ReadinessFamily.UNRECOGNIZED
    selector: Optional[Callable[[dict], dict[str, str]]] = None

    @property
    def supported(self) -> bool:
        return self.model is not None

    def pod_selector(self, obj: dict) -> dict[str, str]:
        """
        Extract the label selector of the pods this object manages.

        Raises:
            UnsupportedKindError: If the kind has no selector rule
        """
        metadata = obj.get("metadata") or {}
        if self.selector is None:
            raise UnsupportedKindError(
                f"unsupported kind when getting selector: {obj.get('kind')} "
                f"{metadata.get('name')!r}",
                kind=obj.get("kind"),
                name=metadata.get("name"),
                namespace=metadata.get("namespace"),
            )
        return self.selector(obj)


UNSUPPORTED = KindInfo(group="", kind="")

_APPS_KINDS = {"Deployment", "DaemonSet", "ReplicaSet", "StatefulSet"}

_REGISTRY: dict[tuple[str, str], KindInfo] = {
    (info.group, info.kind): info
    for info in (
        KindInfo("", "Pod", "V1Pod", ReadinessFamily.POD),
        KindInfo("", "Service", "V1Service", ReadinessFamily.SERVICE),
        KindInfo("", "PersistentVolumeClaim", "V1PersistentVolumeClaim", ReadinessFamily.PVC),
        KindInfo(
            "",
            "ReplicationController",
            "V1ReplicationController",
            ReadinessFamily.POD_SELECTOR,
            replication_controller_selector,
        ),
        KindInfo("apps", "Deployment", "V1Deployment", ReadinessFamily.DEPLOYMENT, match_labels),
        KindInfo("apps", "DaemonSet", "V1DaemonSet", ReadinessFamily.POD_SELECTOR, match_labels),
        KindInfo("apps", "StatefulSet", "V1StatefulSet", ReadinessFamily.POD_SELECTOR, match_labels),
        KindInfo("apps", "ReplicaSet", "V1ReplicaSet", ReadinessFamily.POD_SELECTOR, match_labels),
        KindInfo("batch", "Job", "V1Job", ReadinessFamily.JOB, match_labels),
        KindInfo("batch", "CronJob", "V1CronJob"),
        KindInfo("", "ConfigMap", "V1ConfigMap"),
        KindInfo("", "Secret", "V1Secret"),
        KindInfo("", "ServiceAccount", "V1ServiceAccount"),
        KindInfo("", "Namespace", "V1Namespace"),
        KindInfo("", "Endpoints", "V1Endpoints"),
        KindInfo("", "PersistentVolume", "V1PersistentVolume"),
        KindInfo("", "LimitRange", "V1LimitRange"),
        KindInfo("", "ResourceQuota", "V1ResourceQuota"),
        KindInfo("networking.k8s.io", "Ingress", "V1Ingress"),
        KindInfo("networking.k8s.io", "NetworkPolicy", "V1NetworkPolicy"),
        KindInfo("policy", "PodDisruptionBudget", "V1PodDisruptionBudget"),
        KindInfo("autoscaling", "HorizontalPodAutoscaler", "V2HorizontalPodAutoscaler"),
        KindInfo("rbac.authorization.k8s.io", "Role", "V1Role"),
        KindInfo("rbac.authorization.k8s.io", "RoleBinding", "V1RoleBinding"),
        KindInfo("rbac.authorization.k8s.io", "ClusterRole", "V1ClusterRole"),
        KindInfo("rbac.authorization.k8s.io", "ClusterRoleBinding", "V1ClusterRoleBinding"),
    )
}


def split_api_version(api_version: Optional[str]) -> tuple[str, str]:
    """Split ``group/version`` into its parts; the core group is ``""``."""
    group, _, version = (api_version or "").rpartition("/")
    return group, version


def normalize_group(api_version: Optional[str], kind: str) -> str:
    """Collapse legacy API groups onto the group that serves the kind today."""
    group, _ = split_api_version(api_version)
    if group == "extensions":
        if kind in _APPS_KINDS:
            return "apps"
        if kind in ("Ingress", "NetworkPolicy"):
            return "networking.k8s.io"
    return group


def lookup(api_version: Optional[str], kind: Optional[str]) -> KindInfo:
    """Capabilities for an ``apiVersion``/``kind`` pair."""
    if not kind:
        return UNSUPPORTED
    return _REGISTRY.get((normalize_group(api_version, kind), kind), UNSUPPORTED)


def lookup_object(obj: dict) -> KindInfo:
    return lookup(obj.get("apiVersion"), obj.get("kind"))


def selector_string(selector: dict[str, str]) -> str:
    """Render an equality-based label selector."""
    return ",".join(f"{k}={v}" for k, v in sorted(selector.items()))


# Patch merge keys of the built-in types, keyed by (model, JSON field).
PATCH_MERGE_KEYS: dict[tuple[str, str], str] = {
    ("V1ObjectMeta", "ownerReferences"): "uid",
    ("V1PodSpec", "containers"): "name",
    ("V1PodSpec", "initContainers"): "name",
    ("V1PodSpec", "ephemeralContainers"): "name",
    ("V1PodSpec", "volumes"): "name",
    ("V1PodSpec", "imagePullSecrets"): "name",
    ("V1PodSpec", "hostAliases"): "ip",
    ("V1PodSpec", "topologySpreadConstraints"): "topologyKey",
    ("V1PodSpec", "resourceClaims"): "name",
    ("V1PodSpec", "schedulingGates"): "name",
    ("V1Container", "ports"): "containerPort",
    ("V1Container", "env"): "name",
    ("V1Container", "volumeMounts"): "mountPath",
    ("V1Container", "volumeDevices"): "devicePath",
    ("V1EphemeralContainer", "ports"): "containerPort",
    ("V1EphemeralContainer", "env"): "name",
    ("V1EphemeralContainer", "volumeMounts"): "mountPath",
    ("V1EphemeralContainer", "volumeDevices"): "devicePath",
    ("V1ServiceSpec", "ports"): "port",
    ("V1ServiceAccount", "secrets"): "name",
    ("V1PodStatus", "conditions"): "type",
    ("V1DeploymentStatus", "conditions"): "type",
    ("V1StatefulSetStatus", "conditions"): "type",
    ("V1DaemonSetStatus", "conditions"): "type",
    ("V1ReplicaSetStatus", "conditions"): "type",
    ("V1JobStatus", "conditions"): "type",
    ("V1PersistentVolumeClaimStatus", "conditions"): "type",
}

_LIST_TYPE = re.compile(r"^list\[(.+)\]$")
_DICT_TYPE = re.compile(r"^dict\(([^,]+), (.+)\)$")


def _model_class(model: Optional[str]) -> Any:
    if not model:
        return None
    cls = getattr(k8s_models, model, None)
    if cls is None or not hasattr(cls, "openapi_types"):
        return None
    return cls


def is_model(model: Optional[str]) -> bool:
    """True if ``model`` names a typed ``kubernetes.client`` model."""
    return _model_class(model) is not None


def _json_fields(model: str) -> dict[str, str]:
    cls = _model_class(model)
    if cls is None:
        return {}
    return {json_key: cls.openapi_types[attr] for attr, json_key in cls.attribute_map.items()}


def field_type(model: Optional[str], field: str) -> Optional[str]:
    """OpenAPI type string of a JSON field on a typed model."""
    if not model:
        return None
    return _json_fields(model).get(field)


def element_type(type_name: Optional[str]) -> Optional[str]:
    """Element type of a ``list[...]`` or value type of a ``dict(...)``."""
    if not type_name:
        return None
    match = _LIST_TYPE.match(type_name)
    if match:
        return match.group(1)
    match = _DICT_TYPE.match(type_name)
    if match:
        return match.group(2)
    return None


def model_of(type_name: Optional[str]) -> Optional[str]:
    """The model name if ``type_name`` is a typed model, else ``None``."""
    return type_name if is_model(type_name) else None


def patch_merge_key(model: Optional[str], field: str) -> Optional[str]:
    if not model:
        return None
    return PATCH_MERGE_KEYS.get((model, field))


def unknown_fields(obj: Any, model: Optional[str], path: str = "") -> list[str]:
    """
    Collect field paths in ``obj`` that the typed model does not declare.

    Fields typed as free-form ``object`` are not descended into.
    """
    if not is_model(model) or not isinstance(obj, dict):
        return []

    fields = _json_fields(model)
    unknown: list[str] = []
    for key, value in obj.items():
        field_path = f"{path}.{key}" if path else key
        if key not in fields:
            unknown.append(field_path)
            continue
        type_name = fields[key]
        if isinstance(value, dict):
            if is_model(type_name):
                unknown.extend(unknown_fields(value, type_name, field_path))
            elif is_model(element_type(type_name)):
                for item_key, item in value.items():
                    unknown.extend(
                        unknown_fields(item, element_type(type_name), f"{field_path}.{item_key}")
                    )
        elif isinstance(value, list) and is_model(element_type(type_name)):
            for index, item in enumerate(value):
                unknown.extend(
                    unknown_fields(item, element_type(type_name), f"{field_path}[{index}]")
                )
    return unknown
