"""Patch calculation between a previously applied and a desired object."""

import json
from datetime import date, datetime
from typing import Any, Optional

from .errors import EncodingError
from .models import PatchDecision, PatchType
from .schema import element_type, field_type, lookup_object, model_of, patch_merge_key

DELETE_DIRECTIVE = "$patch"


def _encode_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(obj: Any) -> bytes:
    """
    Serialize an object to its canonical wire form.

    Raises:
        EncodingError: If the object cannot be serialized
    """
    try:
        return json.dumps(
            obj, sort_keys=True, separators=(",", ":"), default=_encode_default
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodingError(f"serializing object: {e}") from e


def compute_patch(current: dict[str, Any], desired: dict[str, Any]) -> PatchDecision:
    """
    Decide whether ``desired`` differs from ``current`` and build the patch.

    Built-in kinds get a strategic merge patch driven by the typed model's
    merge keys. Anything else (custom resources, unknown kinds) gets a JSON
    merge patch.

    Args:
        current: Last applied object body
        desired: Target object body

    Returns:
        PatchDecision; ``patch`` is None when there is no difference

    Raises:
        EncodingError: If either object cannot be serialized
    """
    current_bytes = canonical_json(current)
    desired_bytes = canonical_json(desired)

    model = lookup_object(desired).model
    patch_type = PatchType.STRATEGIC if model_of(model) else PatchType.MERGE

    if current_bytes == desired_bytes:
        return PatchDecision(patch=None, patch_type=patch_type)

    old = json.loads(current_bytes)
    new = json.loads(desired_bytes)

    if patch_type is PatchType.MERGE:
        patch = create_merge_patch(old, new)
    else:
        patch = create_strategic_merge_patch(old, new, model)

    return PatchDecision(patch=patch or None, patch_type=patch_type)


def create_merge_patch(original: dict[str, Any], modified: dict[str, Any]) -> dict[str, Any]:
    """
    JSON merge patch (RFC 7386) turning ``original`` into ``modified``.

    The API server accepts RFC 7386 merge patches for custom resources; RFC 6902
    operation lists (as built by ``jsonpatch``) would need a different content type.
    """
    patch: dict[str, Any] = {}
    for key, new in modified.items():
        if key not in original:
            patch[key] = new
            continue
        old = original[key]
        if isinstance(old, dict) and isinstance(new, dict):
            nested = create_merge_patch(old, new)
            if nested:
                patch[key] = nested
        elif old != new:
            patch[key] = new
    for key in original:
        if key not in modified:
            patch[key] = None
    return patch


def create_strategic_merge_patch(
    original: dict[str, Any], modified: dict[str, Any], model: Optional[str]
) -> dict[str, Any]:
    """
    Two-way strategic merge patch turning ``original`` into ``modified``.

    Lists that declare a patch merge key on ``model`` are merged element by
    element: added or changed elements are sent with their key, removed ones
    as ``{"$patch": "delete", <key>: <value>}``. Other lists are replaced.
    """
    return _diff_maps(original, modified, model)


def _diff_maps(
    original: dict[str, Any], modified: dict[str, Any], model: Optional[str]
) -> dict[str, Any]:
    patch: dict[str, Any] = {}
    for key, new in modified.items():
        if key not in original:
            patch[key] = new
            continue
        old = original[key]
        if old == new:
            continue

        type_name = field_type(model, key)
        if isinstance(old, dict) and isinstance(new, dict):
            nested = _diff_maps(old, new, model_of(type_name))
            if nested:
                patch[key] = nested
        elif isinstance(old, list) and isinstance(new, list):
            merge_key = patch_merge_key(model, key)
            if merge_key is None:
                patch[key] = new
                continue
            nested_list = _diff_merging_list(
                old, new, merge_key, model_of(element_type(type_name)), key
            )
            if nested_list:
                patch[key] = nested_list
        else:
            patch[key] = new

    for key in original:
        if key not in modified:
            patch[key] = None
    return patch


def _keyed(items: list[Any], merge_key: str, field: str) -> dict[Any, dict[str, Any]]:
    keyed: dict[Any, dict[str, Any]] = {}
    for item in items:
        if not isinstance(item, dict) or merge_key not in item:
            raise EncodingError(f"{field}: element {item!r} does not contain merge key {merge_key!r}")
        keyed[item[merge_key]] = item
    return keyed


def _diff_merging_list(
    original: list[Any],
    modified: list[Any],
    merge_key: str,
    model: Optional[str],
    field: str,
) -> list[dict[str, Any]]:
    old_items = _keyed(original, merge_key, field)
    new_items = _keyed(modified, merge_key, field)

    patch: list[dict[str, Any]] = []
    for value, item in new_items.items():
        old = old_items.get(value)
        if old is None:
            patch.append(item)
        elif old != item:
            nested = _diff_maps(old, item, model)
            if nested:
                nested[merge_key] = value
                patch.append(nested)

    for value in old_items:
        if value not in new_items:
            patch.append({DELETE_DIRECTIVE: "delete", merge_key: value})
    return patch
