import ipaddress

import pytest

from cello import tracing
from cello.metadata import (
    AZ_PATH,
    ENI_ID_PATH,
    FakeMetadata,
    MetadataClient,
    MetadataError,
    MetadataWrapper,
)

AZ = "cn-beijing-a"
ENI_MAC = "02:00:00:00:00:01"
ENI_ID = "eni-test123"


def test_get_availability_zone():
    wrapper = MetadataWrapper(FakeMetadata({AZ_PATH: AZ}))
    assert wrapper.get_availability_zone() == AZ


def test_get_eni_id():
    wrapper = MetadataWrapper(FakeMetadata({ENI_ID_PATH.format(ENI_MAC): ENI_ID}))
    assert wrapper.get_eni_id(ENI_MAC) == ENI_ID


def test_eni_id_path_uses_mac():
    source = FakeMetadata(
        {f"network/interfaces/macs/{ENI_MAC}/network_interface_id": ENI_ID}
    )
    assert MetadataWrapper(source).get_eni_id(ENI_MAC) == ENI_ID


def test_simple_queries():
    source = FakeMetadata(
        {
            "mac": ENI_MAC,
            "instance_id": "i-test",
            "instance_type": "ecs.g1.large",
            "region_id": "cn-beijing",
            "vpc_id": "vpc-test123",
            "vpc_cidr_block": "192.168.0.0/16",
            f"network/interfaces/macs/{ENI_MAC}/subnet_id": "subnet-1",
        }
    )
    wrapper = MetadataWrapper(source)
    assert wrapper.get_primary_eni_mac() == ENI_MAC
    assert wrapper.get_instance_id() == "i-test"
    assert wrapper.get_instance_type() == "ecs.g1.large"
    assert wrapper.get_region_id() == "cn-beijing"
    assert wrapper.get_vpc_id() == "vpc-test123"
    assert wrapper.get_vpc_cidr() == "192.168.0.0/16"
    assert wrapper.get_eni_subnet_id(ENI_MAC) == "subnet-1"


def test_primary_ip_and_gateways():
    base = f"network/interfaces/macs/{ENI_MAC}"
    source = FakeMetadata(
        {
            f"{base}/primary_ip_address": "192.168.1.10",
            f"{base}/gateway": "192.168.1.1",
            f"{base}/ipv6-gateway": "fe80::1",
        }
    )
    wrapper = MetadataWrapper(source)
    assert wrapper.get_eni_primary_ip(ENI_MAC) == ipaddress.ip_address("192.168.1.10")
    assert wrapper.get_eni_ipv4_gateway(ENI_MAC) == ipaddress.ip_address("192.168.1.1")
    assert wrapper.get_eni_ipv6_gateway(ENI_MAC) == ipaddress.ip_address("fe80::1")


def test_invalid_ip_raises():
    source = FakeMetadata({f"network/interfaces/macs/{ENI_MAC}/primary_ip_address": "bogus"})
    with pytest.raises(MetadataError):
        MetadataWrapper(source).get_eni_primary_ip(ENI_MAC)


def test_subnet_cidr():
    source = FakeMetadata(
        {f"network/interfaces/macs/{ENI_MAC}/subnet_cidr_block": "192.168.1.5/24"}
    )
    assert MetadataWrapper(source).get_eni_subnet_cidr(ENI_MAC) == ipaddress.ip_network(
        "192.168.1.0/24"
    )


def test_subnet_cidr_invalid():
    source = FakeMetadata({f"network/interfaces/macs/{ENI_MAC}/subnet_cidr_block": "nope"})
    with pytest.raises(MetadataError):
        MetadataWrapper(source).get_eni_subnet_cidr(ENI_MAC)


def test_private_ipv4s():
    source = FakeMetadata(
        {f"network/interfaces/macs/{ENI_MAC}/private_ipv4s": "192.168.1.2\n192.168.1.3"}
    )
    assert MetadataWrapper(source).get_eni_private_ipv4s(ENI_MAC) == [
        ipaddress.ip_address("192.168.1.2"),
        ipaddress.ip_address("192.168.1.3"),
    ]


def test_private_ips_empty():
    base = f"network/interfaces/macs/{ENI_MAC}"
    source = FakeMetadata({f"{base}/private_ipv4s": "", f"{base}/private_ipv6s": ""})
    wrapper = MetadataWrapper(source)
    assert wrapper.get_eni_private_ipv4s(ENI_MAC) == []
    assert wrapper.get_eni_private_ipv6s(ENI_MAC) == []


def test_private_ipv6s():
    source = FakeMetadata({f"network/interfaces/macs/{ENI_MAC}/private_ipv6s": "fd00::2"})
    assert MetadataWrapper(source).get_eni_private_ipv6s(ENI_MAC) == [
        ipaddress.ip_address("fd00::2")
    ]


def test_enis_macs_split():
    source = FakeMetadata({"network/interfaces/macs": "02:00:00:00:00:01\n02:00:00:00:00:02"})
    assert MetadataWrapper(source).get_enis_macs() == [
        "02:00:00:00:00:01",
        "02:00:00:00:00:02",
    ]


def test_enis_macs_error_wrapped():
    with pytest.raises(MetadataError, match="get ENIs failed : 404 page not found"):
        MetadataWrapper(FakeMetadata()).get_enis_macs()


def test_fake_missing_path():
    with pytest.raises(MetadataError, match="404 page not found"):
        FakeMetadata().get_metadata("vpc_id")


def test_fake_error_value_raised():
    source = FakeMetadata({"vpc_id": ValueError("boom")})
    with pytest.raises(ValueError, match="boom"):
        MetadataWrapper(source).get_vpc_id()


def test_fake_unknown_type():
    with pytest.raises(TypeError):
        FakeMetadata({"vpc_id": 42}).get_metadata("vpc_id")


def test_client_success_builds_url():
    seen = []

    def fetch(url, timeout):
        seen.append((url, timeout))
        return 200, b"vpc-abc"

    client = MetadataClient(base_url="http://localhost/latest", timeout=3.0, fetch=fetch)
    assert client.get_metadata("vpc_id") == "vpc-abc"
    assert seen == [("http://localhost/latest/vpc_id", 3.0)]


def test_client_bad_status_records_event():
    events = []
    tracing.register_event_recorder(lambda *a: events.append(a), None)
    try:
        client = MetadataClient(base_url="http://localhost/latest", fetch=lambda u, t: (500, b""))
        with pytest.raises(MetadataError, match="HttpRequestStatus: 500"):
            client.get_metadata("vpc_id")
    finally:
        tracing.register_event_recorder(None, None)
    assert len(events) == 1
    assert events[0][0] == "Warning"
    assert events[0][1] == "MetadataServiceAbnormal"
    assert "http://localhost/latest/vpc_id" in events[0][2]


def test_client_network_error():
    def fetch(url, timeout):
        raise OSError("connection refused")

    client = MetadataClient(fetch=fetch)
    with pytest.raises(MetadataError, match="connection refused"):
        client.get_metadata("vpc_id")