"""Pod subnets: their state and the manager that picks one for new interfaces."""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Protocol, TypeVar

from cello.apierrors import (
    EVENT_TYPE_WARNING,
    INVALID_SUBNET_NOT_FOUND,
    Backoff,
    RateLimiter,
    WaitTimeoutError,
    backoff_err_wrapper,
    err_equal,
    exponential_backoff,
)
from cello.ec2 import (
    DescribeSubnetAttributesInput,
    DescribeSubnetAttributesOutput,
    DescribeSubnetsInput,
    DescribeSubnetsOutput,
)
from cello.tracing import Event, Tracer, TracingError

log = logging.getLogger(__name__)

DEFAULT_SUBNET_INSUFFICIENT_THRESHOLD = 0.2
PERCENTAGE = 100
MAX_PAGE_SIZE = 100
UNLIMITED_AGING = 24 * 3600.0
DEFAULT_FAST_RETRY = Backoff(duration=0.5, factor=1.5, jitter=0.1, steps=5)

T = TypeVar("T")


class IPFamily(Enum):
    """Address families a subnet or a request can cover."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"
    DUAL = "dual"

    def support(self, other: "IPFamily") -> bool:
        """Whether this family can serve requests of the other family."""
        return self is IPFamily.DUAL or self is other

    def enable_ipv4(self) -> bool:
        return self in (IPFamily.IPV4, IPFamily.DUAL)

    def enable_ipv6(self) -> bool:
        return self in (IPFamily.IPV6, IPFamily.DUAL)


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


@dataclass
class PodSubnet:
    """A subnet that pod addresses are allocated from, with its current state."""

    zone_id: str = ""
    vpc_id: str = ""
    subnet_id: str = ""
    ipv4_cidr: str = ""
    ipv6_cidr: str = ""
    total_ipv4_count: int = 0
    disable: bool = False
    available_ip_address_count: int = 0
    last_update: float = 0.0
    _lock: threading.RLock = field(
        default_factory=threading.RLock, repr=False, compare=False
    )

    @property
    def enabled(self) -> bool:
        with self._lock:
            return not self.disable

    def ip_family(self) -> IPFamily:
        """The address families the subnet has ranges for."""
        with self._lock:
            if self.ipv4_cidr and self.ipv6_cidr:
                return IPFamily.DUAL
            if self.ipv6_cidr:
                return IPFamily.IPV6
            return IPFamily.IPV4

    def disable_subnet(self) -> None:
        with self._lock:
            self.disable = True

    def enable_subnet(self) -> None:
        with self._lock:
            self.disable = False

    def update_available_ip_address_count(self, count: int) -> None:
        with self._lock:
            self.available_ip_address_count = count

    def available(self, ip_family: IPFamily) -> bool:
        """Whether the subnet is enabled, covers the family and has IPv4 room if needed."""
        with self._lock:
            if self.disable or not self.ip_family().support(ip_family):
                return False
            if ip_family.enable_ipv4():
                return self.available_ip_address_count > 0
            return True

    def to_dict(self) -> dict[str, Any]:
        """The subnet as a JSON-ready mapping."""
        with self._lock:
            data: dict[str, Any] = {
                "zoneId": self.zone_id,
                "vpcId": self.vpc_id,
                "subnetId": self.subnet_id,
            }
            if self.ipv4_cidr:
                data["ipv4Cidr"] = self.ipv4_cidr
            if self.ipv6_cidr:
                data["ipv6Cidr"] = self.ipv6_cidr
            data["totalIpv4Count"] = self.total_ipv4_count
            if self.disable:
                data["disable"] = True
            data["availableIpAddressCount"] = self.available_ip_address_count
            data["lastUpdate"] = _timestamp(self.last_update)
            return data


@dataclass
class PodSubnetManagerConfig:
    """Settings of a subnet manager."""

    event_record: Optional[Tracer] = None
    event_limiter: Optional[RateLimiter] = None
    subnet_insufficient_threshold: float = DEFAULT_SUBNET_INSUFFICIENT_THRESHOLD
    backoff: Backoff = DEFAULT_FAST_RETRY


@dataclass
class SubnetStatus:
    """Snapshot of the subnets a manager knows about."""

    zone_id: str
    vpc_id: str
    pod_subnets: dict[str, PodSubnet] = field(default_factory=dict)
    legacy_pod_subnets: dict[str, PodSubnet] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"zone_id": self.zone_id, "vpc_id": self.vpc_id}
        if self.pod_subnets:
            data["pod_subnets"] = {k: v.to_dict() for k, v in self.pod_subnets.items()}
        if self.legacy_pod_subnets:
            data["legacy_pod_subnets"] = {
                k: v.to_dict() for k, v in self.legacy_pod_subnets.items()
            }
        return data


class SubnetClient(Protocol):
    def describe_subnets(self, request: DescribeSubnetsInput) -> DescribeSubnetsOutput: ...

    def describe_subnet_attributes(
        self, request: DescribeSubnetAttributesInput
    ) -> DescribeSubnetAttributesOutput: ...


def _ratio(available: int, total: int) -> Optional[float]:
    if total == 0:
        return None
    return available / total


class SubnetManager:
    """Tracks the configured pod subnets of one zone and picks the best one."""

    def __init__(
        self,
        zone_id: str,
        vpc_id: str,
        client: Optional[SubnetClient],
        config: Optional[PodSubnetManagerConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not zone_id:
            raise ValueError(f"invaild zoneId {zone_id}")
        if not vpc_id:
            raise ValueError(f"invaild vpcId {vpc_id}")
        if client is None:
            raise ValueError("client of subnet open api is nil")
        self.zone_id = zone_id
        self.vpc_id = vpc_id
        self._client = client
        self.config = config if config is not None else PodSubnetManagerConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._pod_subnets: dict[str, PodSubnet] = {}
        self._legacy_pod_subnets: dict[str, PodSubnet] = {}

    def status(self) -> SubnetStatus:
        """A snapshot of the configured and legacy subnets."""
        with self._lock:
            return SubnetStatus(
                zone_id=self.zone_id,
                vpc_id=self.vpc_id,
                pod_subnets={s.subnet_id: s for s in self._pod_subnets.values()},
                legacy_pod_subnets={s.subnet_id: s for s in self._legacy_pod_subnets.values()},
            )

    def record_subnet_event(self, event_type: str, reason: str, message: str) -> None:
        """Record a node event, subject to the event limiter."""
        tracer = self.config.event_record
        if tracer is None:
            return
        limiter = self.config.event_limiter
        if limiter is None or limiter.allow():
            with contextlib.suppress(TracingError):
                tracer.record_node_event(event_type, reason, message)

    def _check_threshold(self, subnet_id: str, available: int, total: int) -> None:
        ratio = _ratio(available, total)
        threshold = self.config.subnet_insufficient_threshold
        if ratio is not None and ratio < threshold:
            self.record_subnet_event(
                EVENT_TYPE_WARNING,
                Event.SUBNET_AVAILABLE_IP_BELOW_THRESHOLD,
                f"Current remainin of available ip in subnet {subnet_id} is "
                f"{ratio * PERCENTAGE:.2f}%, less than {threshold * PERCENTAGE:.2f}%",
            )

    def _retry(
        self,
        call: Callable[[], T],
        stop_on: Optional[Callable[[Exception], bool]] = None,
    ) -> T:
        last_err: Optional[Exception] = None
        result: Any = None

        def condition() -> bool:
            nonlocal last_err, result
            try:
                result = call()
            except Exception as exc:
                last_err = exc
                if stop_on is not None and stop_on(exc):
                    raise
                return False
            last_err = None
            return True

        try:
            exponential_backoff(self.config.backoff, condition)
        except WaitTimeoutError as werr:
            wrapped = backoff_err_wrapper(werr, last_err)
            if wrapped is not None:
                raise wrapped
        return result

    def _describe(self, subnet_ids: list[str]) -> DescribeSubnetsOutput:
        request = DescribeSubnetsInput(
            page_number=1,
            page_size=MAX_PAGE_SIZE,
            subnet_ids=list(subnet_ids),
            vpc_id=self.vpc_id,
        )
        try:
            return self._retry(lambda: self._client.describe_subnets(request))
        except Exception as exc:
            log.error("DescribeSubnets %s failed: %s", subnet_ids, exc)
            raise

    def _update_subnets(self, legacy: bool, flush: bool, subnet_ids: list[str]) -> None:
        pending = self._legacy_pod_subnets if legacy else self._pod_subnets
        wanted = set(subnet_ids)
        to_add = [sid for sid in subnet_ids if sid not in pending]

        if flush:
            for sid in [sid for sid in pending if sid not in wanted]:
                del pending[sid]

        if not to_add:
            return

        resp = self._describe(to_add)
        if not resp.subnets:
            log.error(
                "Get no result while describe subnets %s in vpc %s, check if they are matched",
                to_add,
                self.vpc_id,
            )

        for subnet in resp.subnets:
            if subnet.vpc_id != self.vpc_id or subnet.zone_id != self.zone_id:
                continue
            total = subnet.total_ipv4_count
            available = subnet.available_ip_address_count
            self._check_threshold(subnet.subnet_id, available, total)
            pending[subnet.subnet_id] = PodSubnet(
                zone_id=subnet.zone_id,
                vpc_id=subnet.vpc_id,
                subnet_id=subnet.subnet_id,
                ipv4_cidr=subnet.cidr_block,
                ipv6_cidr=subnet.ipv6_cidr_block,
                total_ipv4_count=total,
                available_ip_address_count=available,
                last_update=self._clock(),
            )

    def delete_pod_subnet(self, subnet_id: str) -> None:
        with self._lock:
            self._pod_subnets.pop(subnet_id, None)

    def flush_subnets(self, *args: str) -> None:
        """Make the configured subnets exactly the given ones."""
        subnet_ids = list(dict.fromkeys(args))
        with self._lock:
            self._update_subnets(False, True, subnet_ids)
        log.info("Flush subnets list: %s", subnet_ids)

    def update_subnets(self, *args: str) -> None:
        """Add the given subnets to the configured ones."""
        subnet_ids = list(dict.fromkeys(args))
        with self._lock:
            self._update_subnets(False, False, subnet_ids)

    def update_subnets_status(self, aging: float = 0.0) -> None:
        """Refresh free-address counts of subnets not refreshed within aging seconds."""
        with self._lock:
            now = self._clock()
            subnet_ids = [
                s.subnet_id
                for s in self._pod_subnets.values()
                if aging <= 0 or now - s.last_update > aging
            ]
            if not subnet_ids:
                return

            resp = self._describe(subnet_ids)

            effective: set[str] = set()
            for subnet in resp.subnets:
                sid = subnet.subnet_id
                available = subnet.available_ip_address_count
                self._check_threshold(sid, available, subnet.total_ipv4_count)
                effective.add(sid)
                for known in (self._pod_subnets.get(sid), self._legacy_pod_subnets.get(sid)):
                    if known is not None:
                        known.update_available_ip_address_count(available)
                        known.last_update = self._clock()

            if len(subnet_ids) == len(effective):
                return
            for sid in subnet_ids:
                if sid not in effective:
                    self._pod_subnets.pop(sid, None)
                    self._legacy_pod_subnets.pop(sid, None)

    def get_updated_pod_subnet(self, subnet_id: str) -> PodSubnet:
        """Refresh one subnet from the API; unknown subnets are kept as legacy."""
        request = DescribeSubnetAttributesInput(subnet_id=subnet_id)
        try:
            resp = self._retry(
                lambda: self._client.describe_subnet_attributes(request),
                stop_on=lambda exc: err_equal(INVALID_SUBNET_NOT_FOUND, exc),
            )
        except Exception as exc:
            log.error("DescribeSubnetAttributes %s failed: %s", subnet_id, exc)
            raise

        total = resp.total_ipv4_count
        available = resp.available_ip_address_count
        self._check_threshold(subnet_id, available, total)

        with self._lock:
            for known in (
                self._pod_subnets.get(subnet_id),
                self._legacy_pod_subnets.get(subnet_id),
            ):
                if known is not None:
                    known.update_available_ip_address_count(available)
                    return known

            subnet = PodSubnet(
                zone_id=resp.zone_id,
                vpc_id=resp.vpc_id,
                subnet_id=subnet_id,
                ipv4_cidr=resp.cidr_block,
                ipv6_cidr=resp.ipv6_cidr_block,
                total_ipv4_count=total,
                available_ip_address_count=available,
                last_update=self._clock(),
            )
            self._legacy_pod_subnets[subnet_id] = subnet
            return subnet

    def get_pod_subnet(self, subnet_id: str) -> Optional[PodSubnet]:
        """Return a known subnet, asking the API for unknown ones; None if that fails."""
        with self._lock:
            subnet = self._pod_subnets.get(subnet_id) or self._legacy_pod_subnets.get(subnet_id)
        if subnet is not None:
            return subnet
        try:
            return self.get_updated_pod_subnet(subnet_id)
        except Exception:
            return None

    def select_subnet(self, ip_family: IPFamily, aging: float = 0.0) -> Optional[PodSubnet]:
        """Refresh the subnets and return the available one with most free addresses."""
        try:
            self.update_subnets_status(aging)
        except Exception as exc:
            log.error("UpdateSubnetsStatus failed, %s", exc)
            return None

        with self._lock:
            candidates = [s for s in self._pod_subnets.values() if s.available(ip_family)]
            if not candidates:
                self.record_subnet_event(
                    EVENT_TYPE_WARNING,
                    Event.NO_AVAILABLE_SUBNET,
                    f"No available subnet in {self.zone_id}",
                )
                return None
            return max(candidates, key=lambda s: s.available_ip_address_count)

    def disable_subnet(self, subnet_id: str) -> None:
        with self._lock:
            subnet = self._pod_subnets.get(subnet_id)
        if subnet is not None:
            subnet.disable_subnet()

    def enable_subnet(self, subnet_id: str) -> None:
        with self._lock:
            subnet = self._pod_subnets.get(subnet_id)
        if subnet is not None:
            subnet.enable_subnet()