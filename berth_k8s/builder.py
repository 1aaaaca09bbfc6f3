"""Decoding manifest streams into resource sets."""

import logging
from typing import IO, Any, Optional, Union

import yaml
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from .cluster import ClusterConnection
from .errors import EncodingError
from .result import ResourceRef, ResourceSet
from .schema import lookup_object, unknown_fields

logger = logging.getLogger(__name__)

ManifestStream = Union[str, bytes, IO[str], IO[bytes]]


def load_documents(stream: ManifestStream) -> list[dict[str, Any]]:
    """
    Parse a ``---`` separated YAML or JSON document stream.

    Empty documents are skipped and ``*List`` documents are flattened into
    their items.

    Raises:
        EncodingError: If the stream is not valid UTF-8 or YAML or a document is not a mapping
    """
    if hasattr(stream, "read"):
        stream = stream.read()
    if isinstance(stream, bytes):
        try:
            stream = stream.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"manifests are not valid UTF-8: {e}") from e

    try:
        documents = [doc for doc in yaml.safe_load_all(stream) if doc is not None]
    except yaml.YAMLError as e:
        raise EncodingError(f"error parsing manifests: {e}") from e

    objects: list[dict[str, Any]] = []
    for document in documents:
        if not isinstance(document, dict):
            raise EncodingError(f"manifest document must be a mapping, got {type(document).__name__}")
        objects.extend(_flatten(document))
    return objects


def _flatten(document: dict[str, Any]) -> list[dict[str, Any]]:
    kind = document.get("kind") or ""
    if not (kind.endswith("List") and isinstance(document.get("items"), list)):
        return [document]

    items: list[dict[str, Any]] = []
    for item in document["items"]:
        if not isinstance(item, dict):
            raise EncodingError(f"{kind} item must be a mapping, got {type(item).__name__}")
        if kind != "List":
            item.setdefault("kind", kind[: -len("List")])
            item.setdefault("apiVersion", document.get("apiVersion"))
        items.extend(_flatten(item))
    return items


class ManifestBuilder:
    """Builds resource sets bound to the cluster's dynamic client."""

    def __init__(self, cluster: ClusterConnection):
        """
        Initialize manifest builder.

        Args:
            cluster: Cluster connection
        """
        self.cluster = cluster

    def build_unstructured(
        self, namespace: Optional[str], stream: ManifestStream
    ) -> ResourceSet:
        """
        Decode manifests without schema validation.

        Args:
            namespace: Namespace for namespaced objects that declare none
            stream: Manifest document stream

        Returns:
            ResourceSet in manifest order

        Raises:
            EncodingError: If a manifest cannot be decoded or bound
        """
        return self._build(namespace, stream, validate=False)

    def build(self, namespace: Optional[str], stream: ManifestStream) -> ResourceSet:
        """
        Decode manifests, rejecting fields unknown to built-in kinds.

        Raises:
            EncodingError: If a manifest cannot be decoded, bound or validated
        """
        return self._build(namespace, stream, validate=True)

    def _build(
        self, namespace: Optional[str], stream: ManifestStream, validate: bool
    ) -> ResourceSet:
        resources = ResourceSet()
        errors: list[str] = []

        for obj in load_documents(stream):
            ref = self._to_ref(namespace, obj)
            if validate:
                unknown = unknown_fields(obj, lookup_object(obj).model)
                if unknown:
                    errors.append(
                        f"error validating {ref.kind} {ref.name!r}: unknown field(s) "
                        + ", ".join(unknown)
                    )
                    continue
            if resources.contains(ref):
                raise EncodingError.for_ref(
                    ref, f"duplicate {ref.kind} {ref.name!r} in namespace {ref.namespace!r}"
                )
            resources.append(ref)

        if errors:
            raise EncodingError("; ".join(errors))

        logger.debug(f"Built {len(resources)} resource(s) from manifest")
        return resources

    def _to_ref(self, namespace: Optional[str], obj: dict[str, Any]) -> ResourceRef:
        api_version = obj.get("apiVersion")
        kind = obj.get("kind")
        metadata = obj.get("metadata")
        if not api_version or not kind:
            raise EncodingError(f"object is missing apiVersion or kind: {obj!r}")
        if not isinstance(metadata, dict) or not metadata.get("name"):
            raise EncodingError(f"{kind} is missing metadata.name", kind=kind)

        name = metadata["name"]
        try:
            resource = self.cluster.dynamic.resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError as e:
            raise EncodingError(
                f"unable to recognize {kind} {name!r}: no matches for kind {kind!r} "
                f"in version {api_version!r}",
                kind=kind,
                name=name,
            ) from e

        ref_namespace = None
        if resource.namespaced:
            ref_namespace = metadata.get("namespace") or namespace or self.cluster.namespace
            metadata["namespace"] = ref_namespace

        return ResourceRef(
            name=name,
            namespace=ref_namespace,
            kind=kind,
            api_version=api_version,
            obj=obj,
            resource=resource,
        )
