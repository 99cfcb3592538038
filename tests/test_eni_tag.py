import pytest

from cello import eni_tag


def test_build_tags_for_create_shape():
    assert eni_tag.build_tags_for_create({"owner": "cello"}) == [
        {"Key": "owner", "Value": "cello"}
    ]


def test_build_tags_for_create_empty():
    assert eni_tag.build_tags_for_create({}) == []


def test_build_tag_filters_shape():
    filters = eni_tag.build_tag_filters({"a": "1", "b": "2"})
    assert sorted(filters, key=lambda f: f["Key"]) == [
        {"Key": "a", "Values": ["1"]},
        {"Key": "b", "Values": ["2"]},
    ]


def test_convert_round_trip():
    tags = {eni_tag.VKE_COMPONENT_TAG_KEY: eni_tag.COMPONENT, "x": "y"}
    assert eni_tag.convert_tags(eni_tag.build_tags_for_create(tags)) == tags


def test_convert_skips_none():
    output = [None, {"Key": "k", "Value": "v"}, None]
    assert eni_tag.convert_tags(output) == {"k": "v"}


def test_tag_keys_in_built_requests():
    filters = eni_tag.build_tag_filters({eni_tag.VKE_PLATFORM_TAG_KEY: "true"})
    assert filters == [{"Key": "volc:vke:createdby-vke-flag", "Values": ["true"]}]
    created = eni_tag.build_tags_for_create({eni_tag.K8S_INSTANCE_ID_TAG_KEY: "i-1"})
    assert created == [{"Key": "k8s:cello:ecs-id", "Value": "i-1"}]


@pytest.mark.parametrize(
    "expected, actual, result",
    [
        ({}, {"a": "b"}, True),
        ({"a": "b"}, {"a": "b", "c": "d"}, True),
        ({"a": "b"}, {"a": "c"}, False),
        ({"a": "b"}, {}, False),
    ],
)
def test_assert_tag(expected, actual, result):
    assert eni_tag.assert_tag(expected, actual) is result