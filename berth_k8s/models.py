"""Kubernetes driver models for Berth."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ClusterConfig(BaseModel):
    """Cluster configuration."""

    id: UUID
    name: str
    kubeconfig_path: Optional[str] = None
    kubeconfig_data: Optional[str] = None  # Base64 encoded kubeconfig
    context: Optional[str] = None  # Specific context to use
    namespace: str = "default"


class PatchType(str, Enum):
    """Patch strategy sent to the API server."""

    STRATEGIC = "strategic"
    MERGE = "merge"

    @property
    def content_type(self) -> str:
        """HTTP content type for this patch strategy."""
        if self is PatchType.STRATEGIC:
            return "application/strategic-merge-patch+json"
        return "application/merge-patch+json"


class PatchDecision(BaseModel):
    """Outcome of comparing a current and a desired object."""

    patch: Optional[dict[str, Any]] = None
    patch_type: PatchType = PatchType.STRATEGIC

    @property
    def is_empty(self) -> bool:
        """True when there is no observable difference."""
        return self.patch is None

    @property
    def body(self) -> Optional[bytes]:
        """Patch body in wire form."""
        if self.patch is None:
            return None
        return json.dumps(self.patch, sort_keys=True, separators=(",", ":")).encode("utf-8")


class PodPhase(str, Enum):
    """Pod lifecycle phase."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PodPhase":
        """Map a raw phase string, defaulting to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class WatchEventType(str, Enum):
    """Kubernetes watch event type."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"
    BOOKMARK = "BOOKMARK"


class WatchEvent(BaseModel):
    """Kubernetes watch event."""

    event_type: WatchEventType
    resource_type: str
    name: str
    namespace: Optional[str] = None
    object: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
