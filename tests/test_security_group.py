import pytest

from cello.security_group import SecurityGroupManager


def test_starts_empty():
    assert SecurityGroupManager().security_groups == []


def test_update_replaces_groups():
    manager = SecurityGroupManager()
    manager.update(["sg-a", "sg-b"])
    assert manager.security_groups == ["sg-a", "sg-b"]
    manager.update(["sg-c"])
    assert manager.security_groups == ["sg-c"]


def test_update_empty_rejected_and_keeps_old():
    manager = SecurityGroupManager()
    manager.update(["sg-a"])
    with pytest.raises(ValueError, match="security groups is empty"):
        manager.update([])
    assert manager.security_groups == ["sg-a"]


def test_returned_list_is_a_copy():
    manager = SecurityGroupManager()
    manager.update(["sg-a"])
    groups = manager.security_groups
    groups.append("sg-x")
    assert manager.security_groups == ["sg-a"]