"""Resource references and ordered resource sets."""

from typing import Any, Callable, Iterator, Optional

from .schema import KindInfo, lookup, split_api_version


class ResourceRef:
    """
    Identity of one object plus its last known body.

    A reference is bound to the dynamic client ``Resource`` that serves its
    kind, so it can be re-fetched and acted on individually. The body is
    refreshed in place after a create, patch or get.
    """

    def __init__(
        self,
        name: str,
        namespace: Optional[str],
        kind: str,
        api_version: str,
        obj: dict[str, Any],
        resource: Any = None,
    ):
        self.name = name
        self.namespace = namespace
        self.kind = kind
        self.api_version = api_version
        self.object = obj
        self.resource = resource

    @property
    def group(self) -> str:
        return split_api_version(self.api_version)[0]

    @property
    def identity(self) -> tuple[Optional[str], str, str]:
        return (self.namespace, self.name, self.kind)

    @property
    def kind_info(self) -> KindInfo:
        return lookup(self.api_version, self.kind)

    @property
    def resource_version(self) -> Optional[str]:
        return (self.object.get("metadata") or {}).get("resourceVersion")

    def refresh(self, obj: Any) -> None:
        """Replace the local body with an object returned by the server."""
        if hasattr(obj, "to_dict"):
            obj = obj.to_dict()
        self.object = obj

    def get(self) -> dict[str, Any]:
        """
        Re-fetch the object from the cluster and refresh the local body.

        Raises:
            kubernetes.dynamic.exceptions.DynamicApiError: If the GET fails
        """
        self.refresh(self.resource.get(name=self.name, namespace=self.namespace))
        return self.object

    def __repr__(self) -> str:
        if self.namespace:
            return f"<ResourceRef {self.kind} {self.namespace}/{self.name}>"
        return f"<ResourceRef {self.kind} {self.name}>"


class ResourceSet:
    """Ordered collection of resource references, in manifest order."""

    def __init__(self, refs: Optional[list[ResourceRef]] = None):
        self._refs: list[ResourceRef] = list(refs or [])

    def append(self, ref: ResourceRef) -> None:
        self._refs.append(ref)

    def __iter__(self) -> Iterator[ResourceRef]:
        return iter(self._refs)

    def __len__(self) -> int:
        return len(self._refs)

    def __getitem__(self, index: int) -> ResourceRef:
        return self._refs[index]

    def __bool__(self) -> bool:
        return bool(self._refs)

    def visit(self, fn: Callable[[ResourceRef], None]) -> None:
        """Call ``fn`` for every reference in order; the first error stops the visit."""
        for ref in self._refs:
            fn(ref)

    def get(self, ref: ResourceRef) -> Optional[ResourceRef]:
        """Find the reference in this set with the same identity as ``ref``."""
        for candidate in self._refs:
            if candidate.identity == ref.identity:
                return candidate
        return None

    def contains(self, ref: ResourceRef) -> bool:
        return self.get(ref) is not None

    def difference(self, other: "ResourceSet") -> "ResourceSet":
        """References in this set whose identity is absent from ``other``."""
        return self.filter(lambda ref: not other.contains(ref))

    def intersect(self, other: "ResourceSet") -> "ResourceSet":
        """References in this set whose identity is present in ``other``."""
        return self.filter(other.contains)

    def filter(self, predicate: Callable[[ResourceRef], bool]) -> "ResourceSet":
        return ResourceSet([ref for ref in self._refs if predicate(ref)])

    def __repr__(self) -> str:
        return f"ResourceSet({self._refs!r})"
