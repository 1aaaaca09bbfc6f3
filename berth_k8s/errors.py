"""Error types raised by the Berth Kubernetes driver."""

from typing import Optional, Sequence


class KubeError(Exception):
    """Base error, optionally attributed to a single object."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.name = name
        self.namespace = namespace

    @classmethod
    def for_ref(cls, ref, message: str) -> "KubeError":
        """Build an error attributed to a resource reference."""
        return cls(message, kind=ref.kind, name=ref.name, namespace=ref.namespace)


class EncodingError(KubeError):
    """A manifest or object could not be parsed or serialized."""


class NoObjectsError(KubeError):
    """No objects were found where at least one was required."""


class OrphanObjectError(KubeError):
    """A target object exists on the cluster but was not part of the original set."""


class PatchError(KubeError):
    """The API server rejected a patch, or a patch could not be computed."""


class NotFoundError(KubeError):
    """The object does not exist on the cluster."""


class ReadinessTimeoutError(KubeError):
    """Resources did not become ready before the deadline."""

    def __init__(self, message: str, pending: Sequence[str] = (), **kwargs):
        super().__init__(message, **kwargs)
        self.pending = list(pending)


class WatchError(KubeError):
    """A watch reported a terminal error or failure condition."""


class UnsupportedKindError(KubeError):
    """No rule is defined for the object's kind where one is required."""


class ClusterApiError(KubeError):
    """A call to the Kubernetes API failed."""


class UpdateError(KubeError):
    """Aggregate of the per-object failures seen during one update pass."""

    def __init__(self, errors: Sequence[Exception]):
        super().__init__(" && ".join(str(e) for e in errors))
        self.errors = list(errors)
