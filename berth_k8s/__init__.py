"""Berth Kubernetes Driver - manifest reconciliation and readiness waits."""

from .builder import ManifestBuilder, load_documents
from .client import KubeClient
from .cluster import ClusterConnection
from .config import Settings, configure_logging, get_settings
from .deployments import get_new_replica_set, max_unavailable, resolve_fenceposts
from .errors import (
    ClusterApiError,
    EncodingError,
    KubeError,
    NoObjectsError,
    NotFoundError,
    OrphanObjectError,
    PatchError,
    ReadinessTimeoutError,
    UnsupportedKindError,
    UpdateError,
    WatchError,
)
from .health import ReadinessChecker, ReadinessRecord
from .models import ClusterConfig, PatchDecision, PatchType, PodPhase, WatchEvent, WatchEventType
from .patch import compute_patch
from .result import ResourceRef, ResourceSet
from .schema import KindInfo, ReadinessFamily
from .watch import ResourceWatcher

__version__ = "0.1.0"

__all__ = [
    # Reconciliation
    "KubeClient",
    "ClusterConnection",
    "ManifestBuilder",
    "load_documents",
    # Resource sets
    "ResourceRef",
    "ResourceSet",
    # Patching
    "compute_patch",
    "PatchDecision",
    "PatchType",
    # Readiness
    "ReadinessChecker",
    "ReadinessRecord",
    "ResourceWatcher",
    "get_new_replica_set",
    "max_unavailable",
    "resolve_fenceposts",
    # Kind registry
    "KindInfo",
    "ReadinessFamily",
    # Configuration
    "Settings",
    "configure_logging",
    "get_settings",
    # Models
    "ClusterConfig",
    "PodPhase",
    "WatchEvent",
    "WatchEventType",
    # Errors
    "KubeError",
    "ClusterApiError",
    "EncodingError",
    "NoObjectsError",
    "NotFoundError",
    "OrphanObjectError",
    "PatchError",
    "ReadinessTimeoutError",
    "UnsupportedKindError",
    "UpdateError",
    "WatchError",
]
