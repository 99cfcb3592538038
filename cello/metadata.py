"""Access to the instance metadata service."""

from __future__ import annotations

import contextlib
import ipaddress
import logging
import time
import urllib.error
import urllib.request
from typing import Callable, Optional, Protocol

from cello import tracing
from cello.apierrors import EVENT_TYPE_WARNING
from cello.tracing import Event, TracingError

log = logging.getLogger(__name__)

METADATA_URL = "http://100.96.0.96/volcstack/latest"
METADATA_TIMEOUT = 5.0

AZ_PATH = "availability_zone"
VPC_ID_PATH = "vpc_id"
VPC_CIDR_PATH = "vpc_cidr_block"
ENIS_MACS_PATH = "network/interfaces/macs"
ENI_ID_PATH = "network/interfaces/macs/{}/network_interface_id"
ENI_ADDR_PATH = "network/interfaces/macs/{}/primary_ip_address"
ENI_GATEWAY_PATH = "network/interfaces/macs/{}/gateway"
ENI_V6_GATEWAY_PATH = "network/interfaces/macs/{}/ipv6-gateway"
ENI_PRIVATE_IPS = "network/interfaces/macs/{}/private_ipv4s"
ENI_PRIVATE_IPV6S = "network/interfaces/macs/{}/private_ipv6s"
ENI_SUBNET_ID_PATH = "network/interfaces/macs/{}/subnet_id"
ENI_SUBNET_CIDR_PATH = "network/interfaces/macs/{}/subnet_cidr_block"

IPAddress = "ipaddress.IPv4Address | ipaddress.IPv6Address"
Fetch = Callable[[str, float], "tuple[int, bytes]"]


class MetadataError(RuntimeError):
    """Raised when the metadata service cannot answer a query."""


class MetadataSource(Protocol):
    def get_metadata(self, path: str) -> str: ...


def _http_fetch(url: str, timeout: float) -> "tuple[int, bytes]":
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            return resp.status, resp.read()
    except urllib.error.HTTPError as exc:
        return exc.code, b""


class MetadataClient:
    """Reads values from the metadata service over HTTP."""

    def __init__(
        self,
        base_url: str = METADATA_URL,
        timeout: float = METADATA_TIMEOUT,
        fetch: Optional[Fetch] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._fetch = fetch or _http_fetch

    def get_metadata(self, path: str) -> str:
        """Return the text stored at path."""
        url = f"{self.base_url}/{path}"
        try:
            try:
                status, body = self._fetch(url, self.timeout)
            except OSError as exc:
                raise MetadataError(str(exc)) from exc
            if status != 200:
                raise MetadataError(f"HttpRequestStatus: {status}")
            return body.decode()
        except (MetadataError, UnicodeDecodeError) as exc:
            message = f"Call metadata failed, path: {url}, err: {exc}"
            with contextlib.suppress(TracingError):
                tracing.record_node_event(
                    EVENT_TYPE_WARNING, Event.METADATA_SERVICE_ABNORMAL, message
                )
            log.error(message)
            if isinstance(exc, MetadataError):
                raise
            raise MetadataError(str(exc)) from exc


class FakeMetadata(dict):
    """In-memory metadata: values are strings to return or exceptions to raise."""

    def get_metadata(self, path: str) -> str:
        try:
            result = self[path]
        except KeyError:
            raise MetadataError("404 page not found") from None
        if isinstance(result, str):
            return result
        if isinstance(result, BaseException):
            raise result
        raise TypeError(f"unknown test metadata value type {type(result).__name__} for {path}")


def _parse_ip(text: str) -> "ipaddress.IPv4Address | ipaddress.IPv6Address":
    try:
        return ipaddress.ip_address(text)
    except ValueError as exc:
        raise MetadataError(f"invalid ip address {text!r}") from exc


def _parse_ips(text: str) -> "list[ipaddress.IPv4Address | ipaddress.IPv6Address]":
    if not text:
        return []
    return [_parse_ip(item) for item in text.split("\n")]


class MetadataWrapper:
    """Typed queries on top of any metadata source, with timing logged."""

    def __init__(self, source: Optional[MetadataSource] = None) -> None:
        self.source: MetadataSource = source if source is not None else MetadataClient()

    def _query(self, name: str, path: str) -> str:
        start = time.monotonic()
        failed = False
        try:
            return self.source.get_metadata(path)
        except Exception:
            failed = True
            raise
        finally:
            elapsed_ms = (time.monotonic() - start) * 1000
            log.debug("metadata %s took %.2fms, failed=%s", name, elapsed_ms, failed)

    def get_primary_eni_mac(self) -> str:
        """MAC of the primary interface."""
        return self._query("GetPrimaryENIMac", "mac")

    def get_availability_zone(self) -> str:
        """Availability zone of the instance."""
        return self._query("GetAvailabilityZone", AZ_PATH)

    def get_enis_macs(self) -> list[str]:
        """MACs of every interface attached to the instance, of any kind."""
        try:
            data = self._query("GetENIsMacs", ENIS_MACS_PATH)
        except Exception as exc:
            raise MetadataError(f"get ENIs failed : {exc}") from exc
        return data.split("\n")

    def get_instance_id(self) -> str:
        return self._query("GetInstanceID", "instance_id")

    def get_instance_type(self) -> str:
        return self._query("GetInstanceType", "instance_type")

    def get_region_id(self) -> str:
        return self._query("GetRegionID", "region_id")

    def get_vpc_id(self) -> str:
        return self._query("GetVpcId", VPC_ID_PATH)

    def get_vpc_cidr(self) -> str:
        return self._query("GetVpcCidr", VPC_CIDR_PATH)

    def get_eni_primary_ip(self, mac: str) -> "ipaddress.IPv4Address | ipaddress.IPv6Address":
        return _parse_ip(self._query("GetENIPrimaryIP", ENI_ADDR_PATH.format(mac)))

    def get_eni_subnet_id(self, mac: str) -> str:
        return self._query("GetENISubnetID", ENI_SUBNET_ID_PATH.format(mac))

    def get_eni_id(self, mac: str) -> str:
        return self._query("GetENIID", ENI_ID_PATH.format(mac))

    def get_eni_ipv4_gateway(self, mac: str) -> "ipaddress.IPv4Address | ipaddress.IPv6Address":
        return _parse_ip(self._query("GetENIGateway", ENI_GATEWAY_PATH.format(mac)))

    def get_eni_ipv6_gateway(self, mac: str) -> "ipaddress.IPv4Address | ipaddress.IPv6Address":
        return _parse_ip(self._query("GetENIGateway", ENI_V6_GATEWAY_PATH.format(mac)))

    def get_eni_subnet_cidr(self, mac: str) -> "ipaddress.IPv4Network | ipaddress.IPv6Network":
        cidr = self._query("GetENISubnetCIDR", ENI_SUBNET_CIDR_PATH.format(mac))
        try:
            return ipaddress.ip_network(cidr, strict=False)
        except ValueError as exc:
            raise MetadataError(f"invalid CIDR address: {cidr}") from exc

    def get_eni_private_ipv4s(
        self, mac: str
    ) -> "list[ipaddress.IPv4Address | ipaddress.IPv6Address]":
        return _parse_ips(self._query("GetENIPrivateIPv4s", ENI_PRIVATE_IPS.format(mac)))

    def get_eni_private_ipv6s(
        self, mac: str
    ) -> "list[ipaddress.IPv4Address | ipaddress.IPv6Address]":
        return _parse_ips(self._query("GetENIPrivateIPv6s", ENI_PRIVATE_IPV6S.format(mac)))