"""Tests for the patch calculator."""

import copy
import json
from datetime import datetime

import pytest

from berth_k8s import EncodingError, PatchType, compute_patch
from berth_k8s.patch import create_merge_patch


def fake_deployment(api_version="extensions/v1beta1"):
    return {
        "apiVersion": api_version,
        "kind": "Deployment",
        "metadata": {"name": "foo", "labels": {"app": "foo"}},
        "spec": {
            "selector": {"matchLabels": {"app": "foo"}},
            "template": {
                "metadata": {"labels": {"app": "foo"}},
                "spec": {
                    "containers": [
                        {
                            "name": "app:v4",
                            "image": "abc/app:v4",
                            "env": [{"name": "FOO", "value": "bar"}],
                        }
                    ]
                },
            },
        },
    }


def fake_pod():
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": "web", "namespace": "default"},
        "spec": {
            "containers": [
                {
                    "name": "web",
                    "image": "nginx",
                    "ports": [{"name": "http", "containerPort": 80}],
                },
                {"name": "sidecar", "image": "busybox"},
            ]
        },
    }


def containers(patch):
    return patch["spec"]["template"]["spec"]["containers"]


class TestComputePatch:
    """Test cases for compute_patch."""

    def test_identical_objects(self):
        """Identical objects produce no patch."""
        decision = compute_patch(fake_deployment(), fake_deployment())
        assert decision.is_empty
        assert decision.body is None

    def test_identical_custom_resource(self):
        """Identical custom resources produce no patch either."""
        widget = {"apiVersion": "example.com/v1", "kind": "Widget", "metadata": {"name": "w"}}
        assert compute_patch(widget, copy.deepcopy(widget)).is_empty

    def test_key_order_does_not_matter(self):
        """Objects are compared in canonical form."""
        a = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "c"}, "data": {"x": "1", "y": "2"}}
        b = {"data": {"y": "2", "x": "1"}, "metadata": {"name": "c"}, "kind": "ConfigMap", "apiVersion": "v1"}
        assert compute_patch(a, b).is_empty

    def test_env_replacement(self):
        """Replacing an env var adds the new one and marks the old one deleted."""
        a = fake_deployment()
        b = fake_deployment()
        containers(b)[0]["env"] = [{"name": "BLACK", "value": "magic"}]

        decision = compute_patch(a, b)

        assert decision.patch_type is PatchType.STRATEGIC
        assert decision.body == (
            b'{"spec":{"template":{"spec":{"containers":[{"env":[{"name":"BLACK","value":"magic"},'
            b'{"$patch":"delete","name":"FOO"}],"name":"app:v4"}]}}}}'
        )

    def test_added_list_element_is_an_addition(self):
        """Adding an element sends only that element, keyed by its merge key."""
        a = fake_deployment("apps/v1")
        b = fake_deployment("apps/v1")
        containers(b).append({"name": "sidecar", "image": "busybox"})

        patch = compute_patch(a, b).patch

        assert containers(patch) == [{"name": "sidecar", "image": "busybox"}]

    def test_removed_list_element_has_delete_marker(self):
        """Removing an element is explicit, not a truncated list."""
        a = fake_pod()
        b = fake_pod()
        b["spec"]["containers"].pop()

        patch = compute_patch(a, b).patch

        assert patch == {"spec": {"containers": [{"$patch": "delete", "name": "sidecar"}]}}

    def test_port_change_is_limited_to_ports(self):
        """Changing a container port only touches that container's ports."""
        a = fake_pod()
        b = fake_pod()
        b["spec"]["containers"][0]["ports"] = [{"name": "web", "containerPort": 8080}]

        patch = compute_patch(a, b).patch

        assert patch == {
            "spec": {
                "containers": [
                    {
                        "name": "web",
                        "ports": [
                            {"name": "web", "containerPort": 8080},
                            {"$patch": "delete", "containerPort": 80},
                        ],
                    }
                ]
            }
        }

    def test_port_rename(self):
        """Renaming a port keeps the element keyed by containerPort."""
        a = fake_pod()
        b = fake_pod()
        b["spec"]["containers"][0]["ports"][0]["name"] = "web"

        patch = compute_patch(a, b).patch

        assert patch == {
            "spec": {"containers": [{"name": "web", "ports": [{"name": "web", "containerPort": 80}]}]}
        }

    def test_service_ports_merge_on_port(self):
        """Service ports are keyed by port, not containerPort."""
        a = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": "svc"},
            "spec": {"ports": [{"port": 80, "targetPort": 8080}, {"port": 443}]},
        }
        b = copy.deepcopy(a)
        b["spec"]["ports"][0]["targetPort"] = 9090

        patch = compute_patch(a, b).patch

        assert patch == {"spec": {"ports": [{"port": 80, "targetPort": 9090}]}}

    def test_list_without_merge_key_is_replaced(self):
        """Lists without a merge key are replaced whole."""
        a = fake_pod()
        a["spec"]["containers"][0]["args"] = ["--a", "--b"]
        b = copy.deepcopy(a)
        b["spec"]["containers"][0]["args"] = ["--a"]

        patch = compute_patch(a, b).patch

        assert patch == {"spec": {"containers": [{"name": "web", "args": ["--a"]}]}}

    def test_removed_field_is_null(self):
        """Fields dropped from the desired object are set to null."""
        a = fake_deployment("apps/v1")
        b = fake_deployment("apps/v1")
        del b["metadata"]["labels"]

        assert compute_patch(a, b).patch == {"metadata": {"labels": None}}

    def test_reorder_only_is_no_change(self):
        """Reordering a merge-keyed list does not produce a patch."""
        a = fake_pod()
        b = fake_pod()
        b["spec"]["containers"].reverse()

        assert compute_patch(a, b).is_empty

    def test_missing_merge_key(self):
        """Elements without their merge key cannot be merged."""
        a = fake_pod()
        b = fake_pod()
        b["spec"]["containers"].append({"image": "nameless"})

        with pytest.raises(EncodingError):
            compute_patch(a, b)

    def test_custom_resource_uses_merge_patch(self):
        """Kinds without a typed model fall back to JSON merge patch."""
        a = {
            "apiVersion": "example.com/v1",
            "kind": "Widget",
            "metadata": {"name": "w"},
            "spec": {"sizes": [1, 2], "color": "red", "legacy": True},
        }
        b = copy.deepcopy(a)
        b["spec"]["sizes"] = [1, 2, 3]
        del b["spec"]["legacy"]

        decision = compute_patch(a, b)

        assert decision.patch_type is PatchType.MERGE
        assert decision.patch_type.content_type == "application/merge-patch+json"
        assert decision.patch == {"spec": {"sizes": [1, 2, 3], "legacy": None}}

    def test_strategic_content_type(self):
        """Strategic merge patches use their own content type."""
        assert PatchType.STRATEGIC.content_type == "application/strategic-merge-patch+json"

    def test_unserializable_object(self):
        """Objects that cannot be encoded raise EncodingError."""
        a = fake_pod()
        b = fake_pod()
        b["metadata"]["annotations"] = {"bad": object()}

        with pytest.raises(EncodingError):
            compute_patch(a, b)

    def test_dates_are_encoded(self):
        """YAML timestamps are serialized instead of rejected."""
        a = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "c"}, "data": {"d": "x"}}
        b = copy.deepcopy(a)
        b["metadata"]["annotations"] = {"built": datetime(2024, 1, 1)}

        patch = compute_patch(a, b).patch

        assert patch == {"metadata": {"annotations": {"built": "2024-01-01T00:00:00"}}}

    def test_body_is_json(self):
        """The wire body decodes back to the patch."""
        a = fake_pod()
        b = fake_pod()
        b["spec"]["containers"][0]["image"] = "nginx:2"

        decision = compute_patch(a, b)

        assert json.loads(decision.body) == decision.patch


class TestCreateMergePatch:
    """Test cases for the JSON merge patch."""

    def test_nested_changes(self):
        """Nested maps are diffed key by key."""
        patch = create_merge_patch(
            {"a": {"b": 1, "c": 2}, "d": 1},
            {"a": {"b": 1, "c": 3}, "e": 2},
        )
        assert patch == {"a": {"c": 3}, "d": None, "e": 2}

    def test_no_changes(self):
        """Equal documents produce an empty patch."""
        assert create_merge_patch({"a": [1]}, {"a": [1]}) == {}
