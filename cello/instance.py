"""Interface quotas of the instance and its basic metadata."""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from cello import tracing
from cello.apierrors import EVENT_TYPE_WARNING
from cello.metadata import MetadataError, MetadataWrapper
from cello.tracing import Event, TracingError

log = logging.getLogger(__name__)

UPDATE_INTERVAL = 60.0


def _go_bool(value: bool) -> str:
    return "true" if value else "false"


@dataclass(frozen=True)
class InstanceLimitsAttr:
    """Quota and limit figures of an instance type."""

    eni_total: int = 0
    eni_quota: int = 0
    ipv4_max_per_eni: int = 0
    ipv6_max_per_eni: int = 0
    trunk_supported: bool = False


@dataclass
class InstanceLimits:
    """Quotas of the instance together with what is currently in use."""

    attr: InstanceLimitsAttr = field(default_factory=InstanceLimitsAttr)
    eni_customer: int = 0
    trunk_eni: Any = None
    created: int = 0
    cordon: bool = False

    @property
    def eni_total(self) -> int:
        return self.attr.eni_total

    @property
    def eni_quota(self) -> int:
        return self.attr.eni_quota

    @property
    def ipv4_max_per_eni(self) -> int:
        return self.attr.ipv4_max_per_eni

    @property
    def ipv6_max_per_eni(self) -> int:
        return self.attr.ipv6_max_per_eni

    def __str__(self) -> str:
        a = self.attr
        return (
            f"{{ENITotal: {a.eni_total}, ENIQuota: {a.eni_quota}, "
            f"IPv4MaxPerENI: {a.ipv4_max_per_eni}, IPv6MaxPerENI: {a.ipv6_max_per_eni}, "
            f"TrunkSupported: {_go_bool(a.trunk_supported)}, ENICustomer: {self.eni_customer}, "
            f"Created: {self.created}, Cordon: {_go_bool(self.cordon)}}}"
        )

    def supports_trunk(self) -> bool:
        return self.attr.trunk_supported

    def non_primary_eni(self) -> int:
        """Number of interfaces other than the primary one."""
        return self.attr.eni_quota - 1

    def eni_available(self) -> int:
        """Interfaces this agent may use: quota less primary, customer and trunk ones."""
        count = self.created if self.cordon else self.attr.eni_quota - 1 - self.eni_customer
        if self.trunk_eni is not None:
            count -= 1
        return count

    def branch_eni(self) -> int:
        return self.attr.eni_total - self.attr.eni_quota


class InstanceLimitSource(Protocol):
    def get_instance_limit(self) -> InstanceLimits: ...

    def get_attached_enis(self, with_trunk: bool) -> list: ...

    def get_total_attached_eni_cnt(self) -> int: ...


class InstanceLimitManager:
    """Keeps the instance limits current and tells watchers when they change."""

    def __init__(
        self, api: InstanceLimitSource, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._lock = threading.RLock()
        self._api = api
        self._clock = clock
        self._limit = InstanceLimits()
        self._last_update: Optional[float] = None
        self._watchers: list[queue.Queue] = []

    @property
    def limit(self) -> InstanceLimits:
        """A copy of the current limits."""
        with self._lock:
            return dataclasses.replace(self._limit)

    def update(self) -> None:
        """Refresh the limits unless they were refreshed within the last minute."""
        try:
            self._update()
        except Exception as exc:
            log.error("Update InstanceLimit failed, %s", exc)

    def _update(self) -> None:
        with self._lock:
            if (
                self._last_update is not None
                and self._clock() - self._last_update < UPDATE_INTERVAL
            ):
                return
            self._update_locked()

    def _update_locked(self) -> None:
        log.info("InstanceLimit Updating")
        new_limit = self._api.get_instance_limit()

        old_attr = self._limit.attr
        if old_attr != InstanceLimitsAttr() and old_attr != new_limit.attr:
            with contextlib.suppress(TracingError):
                tracing.record_node_event(
                    EVENT_TYPE_WARNING,
                    Event.INSTANCE_QUOTA_UPDATED,
                    f"ECS instance quota updated from {old_attr} to {new_limit}",
                )

        created = self._api.get_attached_enis(True)
        self._limit.created = len(created)

        total = self._api.get_total_attached_eni_cnt()
        self._limit.eni_customer = total - len(created) - 1
        trunk = next((eni for eni in created if getattr(eni, "trunk", False)), None)
        if trunk is not None:
            self._limit.trunk_eni = trunk

        self._limit.attr = new_limit.attr
        log.info("InstanceLimit Updated %s", self._limit)
        self._last_update = self._clock()
        self._notify_watcher_locked()

    def update_trunk(self, trunk: Any) -> None:
        """Set or clear the trunk interface."""
        with self._lock:
            if trunk is not None:
                log.info("Update trunk to %s", getattr(trunk, "id", trunk))
            else:
                log.info("Update trunk to nil")
            self._limit.trunk_eni = trunk

    def watch_update(self, name: str, watcher: queue.Queue) -> None:
        """Register a queue that receives a token whenever the limits change."""
        with self._lock:
            log.info("Component %s watch update", name)
            self._watchers.append(watcher)

    def notify_watcher(self) -> None:
        """Send a token to every watcher without blocking."""
        with self._lock:
            self._notify_watcher_locked()

    def _notify_watcher_locked(self) -> None:
        log.info("Notify watcher due to limit update")
        for watcher in self._watchers:
            with contextlib.suppress(queue.Full):
                watcher.put_nowait(None)

    def cordon_create(self, name: str) -> None:
        """Refresh the limits and stop counting quota beyond what is already created."""
        with self._lock:
            if self._limit.cordon:
                return
            log.info("Cordon eni create by %s", name)
            try:
                self._update_locked()
            except Exception as exc:
                log.error("Update InstanceLimit failed, %s", exc)
                return
            self._limit.cordon = True

    def uncordon_create(self, name: str) -> None:
        """Allow creating interfaces again and notify watchers."""
        with self._lock:
            if not self._limit.cordon:
                return
            log.info("UnCordon eni create by %s", name)
            self._limit.cordon = False
            self._notify_watcher_locked()


_manager_lock = threading.Lock()
_instance_limit_manager: Optional[InstanceLimitManager] = None


def new_instance_limit_manager(api: InstanceLimitSource) -> InstanceLimitManager:
    """Return the process-wide manager, creating and filling it on first use."""
    global _instance_limit_manager
    with _manager_lock:
        if _instance_limit_manager is not None:
            return _instance_limit_manager
        manager = InstanceLimitManager(api)
        manager._update()
        _instance_limit_manager = manager
        return manager


@dataclass(frozen=True)
class InstanceMetadata:
    """Basic facts about the instance."""

    vpc_id: str
    instance_id: str
    instance_type: str
    primary_eni_id: str
    primary_eni_mac: str
    availability_zone: str
    region: str


_metadata_lock = threading.Lock()
_instance_metadata: Optional[InstanceMetadata] = None


def _fetch(what: str, getter: Callable[..., str], *args: str) -> str:
    try:
        return getter(*args)
    except Exception as exc:
        raise MetadataError(f"get {what} for instance failed, {exc}") from exc


def get_instance_metadata(wrapper: Optional[MetadataWrapper] = None) -> InstanceMetadata:
    """Read the instance metadata once and return the cached result afterwards."""
    global _instance_metadata
    with _metadata_lock:
        if _instance_metadata is not None:
            return _instance_metadata
        meta = wrapper if wrapper is not None else MetadataWrapper()
        vpc_id = _fetch("vpcId", meta.get_vpc_id)
        instance_id = _fetch("instanceId", meta.get_instance_id)
        instance_type = _fetch("instanceType", meta.get_instance_type)
        primary_mac = _fetch("primaryENIMac", meta.get_primary_eni_mac)
        primary_id = _fetch("primaryENIId", meta.get_eni_id, primary_mac)
        az = _fetch("az", meta.get_availability_zone)
        region = _fetch("region", meta.get_region_id)
        _instance_metadata = InstanceMetadata(
            vpc_id=vpc_id,
            instance_id=instance_id,
            instance_type=instance_type,
            primary_eni_id=primary_id,
            primary_eni_mac=primary_mac,
            availability_zone=az,
            region=region,
        )
        return _instance_metadata