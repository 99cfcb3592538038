"""Tags that mark network interfaces created by this agent, and helpers for them."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

VKE_TAG_PREFIX = "volc:vke:"
VKE_PLATFORM_TAG_KEY = VKE_TAG_PREFIX + "createdby-vke-flag"
VKE_PLATFORM_TAG_VALUE = "true"
VKE_COMPONENT_TAG_KEY = VKE_TAG_PREFIX + "created-by"
VKE_INSTANCE_ID_TAG_KEY = VKE_TAG_PREFIX + "ecs-id"

K8S_TAG_PREFIX = "k8s:cello:"
K8S_COMPONENT_TAG_KEY = K8S_TAG_PREFIX + "created-by"
K8S_INSTANCE_ID_TAG_KEY = K8S_TAG_PREFIX + "ecs-id"

COMPONENT = "cello"
ENI_DESCRIPTION = "interface create by cello"


def build_tags_for_create(tags: Mapping[str, str]) -> list[dict]:
    """Tags in the form a create-interface request takes."""
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def build_tag_filters(tags: Mapping[str, str]) -> list[dict]:
    """Tag filters in the form a describe-interfaces request takes."""
    return [{"Key": key, "Values": [value]} for key, value in tags.items()]


def convert_tags(output: Iterable[Optional[Mapping[str, str]]]) -> dict[str, str]:
    """Turn a list of Key/Value objects from a response into a mapping."""
    return {
        str(item.get("Key") or ""): str(item.get("Value") or "")
        for item in output
        if item is not None
    }


def assert_tag(expected: Mapping[str, str], actual: Mapping[str, str]) -> bool:
    """Whether every expected tag is present in actual with the same value."""
    return all(key in actual and actual[key] == value for key, value in expected.items())