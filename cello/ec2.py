"""Request and response shapes of the cloud VPC and ECS open API."""

from __future__ import annotations

import json
from dataclasses import MISSING, dataclass, field, fields
from typing import Any, Mapping, Optional

from cello.apierrors import ResponseError, ResponseMetadata, new_api_request_error

JSONData = "Mapping[str, Any] | str | bytes"


def _pascal(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.split("_"))


def _lookup(data: Mapping[str, Any], key: "str | tuple[str, ...]") -> Any:
    if isinstance(key, str):
        return data.get(key)
    value: Any = data
    for part in key:
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _coerce(f: Any, value: Any) -> Any:
    if f.default_factory is not MISSING:
        if not isinstance(value, list):
            raise ValueError(f"field {f.name} expects a list, got {type(value).__name__}")
        return list(value)
    default = f.default
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"field {f.name} expects a boolean, got {value!r}")
        return value
    if isinstance(default, int):
        if isinstance(value, bool):
            raise ValueError(f"field {f.name} expects an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"field {f.name} expects an integer, got {value!r}") from exc
    if isinstance(value, (Mapping, list)):
        raise ValueError(f"field {f.name} expects a string, got {type(value).__name__}")
    return str(value)


def _scalars(cls: type, data: Mapping[str, Any], skip: "tuple[str, ...]" = ()) -> dict:
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name == "metadata" or f.name in skip:
            continue
        key = f.metadata.get("key") or _pascal(f.name)
        value = _lookup(data, key)
        if value is None:
            continue
        kwargs[f.name] = _coerce(f, value)
    return kwargs


def _parse_metadata(data: Mapping[str, Any]) -> ResponseMetadata:
    error = data.get("Error")
    response_error = None
    if isinstance(error, Mapping):
        response_error = ResponseError(
            code_n=int(error.get("CodeN") or 0),
            code=str(error.get("Code") or ""),
            message=str(error.get("Message") or ""),
        )
    return ResponseMetadata(
        request_id=str(data.get("RequestId") or ""),
        action=str(data.get("Action") or ""),
        version=str(data.get("Version") or ""),
        service=str(data.get("Service") or ""),
        region=str(data.get("Region") or ""),
        error=response_error,
    )


def _load(data: Any) -> "tuple[Optional[ResponseMetadata], Mapping[str, Any]]":
    """Split a response into its metadata and result; raise on an error response."""
    if isinstance(data, (str, bytes, bytearray)):
        try:
            data = json.loads(data)
        except ValueError as exc:
            raise ValueError(f"decode response failed, {exc}") from exc
    if not isinstance(data, Mapping):
        raise ValueError("response is not an object")
    if "ResponseMetadata" not in data:
        return None, data
    raw_meta = data["ResponseMetadata"]
    metadata = _parse_metadata(raw_meta) if isinstance(raw_meta, Mapping) else None
    if metadata is not None and metadata.error is not None:
        raise new_api_request_error(metadata, None)
    result = data.get("Result") or {}
    if not isinstance(result, Mapping):
        raise ValueError("response result is not an object")
    return metadata, result


def _objects(data: Mapping[str, Any], key: str) -> "list[Mapping[str, Any]]":
    items = data.get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValueError(f"{key} is not a list")
    result = []
    for item in items:
        if item is None:
            continue
        if not isinstance(item, Mapping):
            raise ValueError(f"item of {key} is not an object")
        result.append(item)
    return result


def _check_length(name: str, value: Optional[str], low: int, high: int) -> None:
    if value is not None and not low <= len(value) <= high:
        raise ValueError(f"{name} length must be between {low} and {high}, got {len(value)}")


@dataclass
class DescribeSubnetsInput:
    """Query for subnets of a VPC."""

    page_number: int = 1
    page_size: int = 100
    subnet_ids: list[str] = field(default_factory=list)
    vpc_id: str = ""


@dataclass
class DescribeSubnetAttributesInput:
    """Query for the attributes of one subnet."""

    subnet_id: str


@dataclass
class SubnetInfo:
    """One subnet as described by the API."""

    account_id: str = ""
    available_ip_address_count: int = 0
    cidr_block: str = ""
    creation_time: str = ""
    description: str = ""
    ipv6_cidr_block: str = ""
    network_acl_id: str = ""
    project_name: str = ""
    status: str = ""
    subnet_id: str = ""
    subnet_name: str = ""
    total_ipv4_count: int = 0
    update_time: str = ""
    vpc_id: str = ""
    zone_id: str = ""


@dataclass
class DescribeSubnetsOutput:
    """A page of subnets."""

    metadata: Optional[ResponseMetadata] = None
    page_number: int = 0
    page_size: int = 0
    request_id: str = ""
    subnets: list[SubnetInfo] = field(default_factory=list)
    total_count: int = 0


@dataclass
class DescribeSubnetAttributesOutput(SubnetInfo):
    """Attributes of one subnet."""

    metadata: Optional[ResponseMetadata] = None
    request_id: str = ""


@dataclass
class NetworkInterfaceSet:
    """One network interface as described by the API; tags are Key/Value objects."""

    account_id: str = ""
    created_at: str = ""
    description: str = ""
    device_id: str = ""
    ipv6_sets: list[str] = field(default_factory=list, metadata={"key": "IPv6Sets"})
    mac_address: str = ""
    network_interface_id: str = ""
    network_interface_name: str = ""
    port_security_enabled: bool = False
    primary_ip_address: str = ""
    private_ip_addresses: list[str] = field(default_factory=list)
    project_name: str = ""
    security_group_ids: list[str] = field(default_factory=list)
    service_managed: bool = False
    status: str = ""
    subnet_id: str = ""
    tags: list[dict] = field(default_factory=list)
    type: str = ""
    updated_at: str = ""
    vpc_id: str = ""
    vpc_name: str = ""
    zone_id: str = ""


@dataclass
class DescribeNetworkInterfacesOutput:
    """A page of network interfaces."""

    metadata: Optional[ResponseMetadata] = None
    network_interface_sets: list[NetworkInterfaceSet] = field(default_factory=list)
    page_number: int = 0
    page_size: int = 0
    request_id: str = ""
    total_count: int = 0


@dataclass
class DescribeNetworkInterfaceAttributesOutput(NetworkInterfaceSet):
    """Attributes of one network interface."""

    metadata: Optional[ResponseMetadata] = None
    request_id: str = ""


@dataclass
class InstanceTypeInfo:
    """One instance type with its network quotas."""

    architecture: str = ""
    baseline_credit: int = 0
    compute_factor: int = 0
    cpu: int = 0
    id: str = ""
    initial_credit: int = 0
    instance_type_family: str = ""
    instance_type_id: str = ""
    is_support_ri_create: bool = False
    is_support_ri_modify: bool = False
    is_support_spot: bool = False
    mem: int = 0
    net_kpps_quota: int = 0
    net_mbps_quota: int = 0
    net_session_quota: int = 0
    network_interface_num_quota: int = 0
    network_interface_total_num_quota: int = 0
    private_ip_quota: int = 0
    trunk_network_interface_supported: bool = False
    type: str = ""
    volume_types: list[str] = field(default_factory=list)
    maximum_network_interfaces: int = field(
        default=0, metadata={"key": ("Network", "MaximumNetworkInterfaces")}
    )
    maximum_private_ipv4_addresses_per_network_interface: int = field(
        default=0,
        metadata={"key": ("Network", "MaximumPrivateIpv4AddressesPerNetworkInterface")},
    )


@dataclass
class DescribeInstanceTypesOutput:
    """A page of instance types."""

    metadata: Optional[ResponseMetadata] = None
    instance_types: list[InstanceTypeInfo] = field(default_factory=list)
    next_token: str = ""
    page_number: int = 0
    page_size: int = 0
    total_count: int = 0


@dataclass
class CreateNetworkInterfaceInput:
    """Request to create a network interface."""

    subnet_id: str
    security_group_ids: list[str]
    client_token: Optional[str] = None
    description: Optional[str] = None
    network_interface_name: Optional[str] = None
    port_security_enabled: Optional[bool] = None
    primary_ip_address: Optional[str] = None
    private_ip_address: list[str] = field(default_factory=list)
    project_name: Optional[str] = None
    secondary_private_ip_address_count: Optional[int] = None
    tags: list[dict] = field(default_factory=list)
    type: Optional[str] = None

    def __post_init__(self) -> None:
        _check_length("description", self.description, 1, 255)
        _check_length("network_interface_name", self.network_interface_name, 1, 128)


@dataclass
class AssignIpv6AddressesInput:
    """Request to assign IPv6 addresses to a network interface."""

    network_interface_id: str
    ipv6_address: list[str] = field(default_factory=list)
    ipv6_address_count: Optional[int] = None


@dataclass
class AssignIpv6AddressesOutput:
    """Addresses assigned to a network interface."""

    metadata: Optional[ResponseMetadata] = None
    ipv6_set: list[str] = field(default_factory=list)
    network_interface_id: str = ""
    request_id: str = ""


@dataclass
class UnassignIpv6AddressesInput:
    """Request to release IPv6 addresses from a network interface."""

    ipv6_address: list[str]
    network_interface_id: str


@dataclass
class UnassignIpv6AddressesOutput:
    """Result of releasing IPv6 addresses."""

    metadata: Optional[ResponseMetadata] = None
    request_id: str = ""


def parse_describe_subnets(data: Any) -> DescribeSubnetsOutput:
    """Decode a DescribeSubnets response; raise APIRequestError on an error response."""
    metadata, result = _load(data)
    return DescribeSubnetsOutput(
        metadata=metadata,
        subnets=[SubnetInfo(**_scalars(SubnetInfo, item)) for item in _objects(result, "Subnets")],
        **_scalars(DescribeSubnetsOutput, result, skip=("subnets",)),
    )


def parse_subnet_attributes(data: Any) -> DescribeSubnetAttributesOutput:
    """Decode a DescribeSubnetAttributes response."""
    metadata, result = _load(data)
    return DescribeSubnetAttributesOutput(
        metadata=metadata, **_scalars(DescribeSubnetAttributesOutput, result)
    )


def parse_describe_network_interfaces(data: Any) -> DescribeNetworkInterfacesOutput:
    """Decode a DescribeNetworkInterfaces response."""
    metadata, result = _load(data)
    sets = [
        NetworkInterfaceSet(**_scalars(NetworkInterfaceSet, item))
        for item in _objects(result, "NetworkInterfaceSets")
    ]
    return DescribeNetworkInterfacesOutput(
        metadata=metadata,
        network_interface_sets=sets,
        **_scalars(DescribeNetworkInterfacesOutput, result, skip=("network_interface_sets",)),
    )


def parse_network_interface_attributes(data: Any) -> DescribeNetworkInterfaceAttributesOutput:
    """Decode a DescribeNetworkInterfaceAttributes response."""
    metadata, result = _load(data)
    return DescribeNetworkInterfaceAttributesOutput(
        metadata=metadata, **_scalars(DescribeNetworkInterfaceAttributesOutput, result)
    )


def parse_instance_types(data: Any) -> DescribeInstanceTypesOutput:
    """Decode a DescribeInstanceTypes response."""
    metadata, result = _load(data)
    types = [
        InstanceTypeInfo(**_scalars(InstanceTypeInfo, item))
        for item in _objects(result, "InstanceTypes")
    ]
    return DescribeInstanceTypesOutput(
        metadata=metadata,
        instance_types=types,
        **_scalars(DescribeInstanceTypesOutput, result, skip=("instance_types",)),
    )