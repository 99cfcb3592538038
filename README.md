# cello

Pieces of a container network agent that hands cloud elastic network
interfaces (ENIs) and their addresses to pods. The package has no
dependencies outside the standard library.

## Modules

- `cello.tracing`: `Tracer` forwards pod and node events to recorders
  registered with `register_event_recorder(node, pod)`; recording with no
  recorder raises `TracingError`. Module-level `register_event_recorder`,
  `record_pod_event` and `record_node_event` work on the tracer returned by
  `default_global_tracer()`. Event reasons are members of the `Event` enum.
- `cello.signals`: `SignalRegistry` maps signal names to `queue.Queue`
  objects. `notify_signal` never blocks and returns whether the data was
  queued; muted signals are dropped. Registering a name twice raises
  `SignalExistsError`. Module-level functions use a process-wide registry.
- `cello.store`: `DiskStorage(name, path, serializer, deserializer)`, a
  key-value store kept in an SQLite file with an in-memory cache. Values are
  reloaded on open; `get` raises `NotFoundError` for missing keys. It is a
  context manager.
- `cello.apierrors`: `APIRequestError` and `new_api_request_error`,
  `err_equal` and `ErrCodeChain` for matching error codes, `Backoff`,
  `exponential_backoff` (raises `WaitTimeoutError` when the steps run out)
  and `backoff_err_wrapper`, a token-bucket `RateLimiter`, and
  `record_openapi_err_event`, which records rate-limited node events for
  quota, address-shortage and flow-limit errors.
- `cello.credential`: `Credential` (with `Credential.from_json`),
  `StaticProvider`, `fetch_sts` and `STSProvider`, which fetches a
  temporary credential for a role and renews it in a background thread at
  half its lifetime (`start` / `stop`). The HTTP fetch can be replaced.
- `cello.metadata`: `MetadataClient` reads the instance metadata service
  over HTTP, `FakeMetadata` is an in-memory stand-in, and `MetadataWrapper`
  offers typed queries (instance id and type, zone, region, VPC, and per-MAC
  interface id, subnet, gateways, CIDR and private addresses). Failures
  raise `MetadataError`.
- `cello.ec2`: dataclasses for the requests and responses of the VPC and
  ECS APIs, and `parse_describe_subnets`, `parse_subnet_attributes`,
  `parse_describe_network_interfaces`, `parse_network_interface_attributes`
  and `parse_instance_types`, which decode a response given as a mapping,
  `str` or `bytes`, and raise `APIRequestError` for an error response.
- `cello.eni_tag`: the tag keys marking interfaces this agent created and
  helpers to build tags, tag filters, convert response tags and compare them.
- `cello.security_group`: `SecurityGroupManager`; `update` rejects an
  empty list.
- `cello.instance`: `InstanceLimits` and `InstanceLimitManager`, which keep
  the instance's interface quota current (at most once a minute), track the
  trunk interface, cordon and uncordon creation and notify watcher queues;
  `get_instance_metadata` reads `InstanceMetadata` once and caches it.
- `cello.subnet`: `IPFamily`, `PodSubnet` and `SubnetManager`, which
  tracks the configured pod subnets of one zone, refreshes their free
  address counts, keeps unknown subnets as legacy ones, and `select_subnet`
  returns the available subnet with the most free addresses.

## Install

```
pip install .
```

## Examples

```python
import json
from cello.store import DiskStorage, NotFoundError

with DiskStorage("pods", "pods.db", lambda v: json.dumps(v).encode(), json.loads) as store:
    store.put("pod-a", {"ip": "192.168.1.10"})
    print(store.get("pod-a"))
    store.delete("pod-a")
    try:
        store.get("pod-a")
    except NotFoundError:
        print("gone")
```

```python
from cello.tracing import Tracer, Event

tracer = Tracer()
tracer.register_event_recorder(
    lambda event_type, reason, message: print(event_type, reason, message),
    lambda name, ns, event_type, reason, message: print(name, ns, reason),
)
tracer.record_node_event("Warning", Event.NO_AVAILABLE_SUBNET, "no subnet left")
```

```python
from cello.ec2 import DescribeSubnetsOutput, SubnetInfo
from cello.subnet import IPFamily, SubnetManager

class Client:
    def describe_subnets(self, request):
        return DescribeSubnetsOutput(subnets=[
            SubnetInfo(subnet_id=sid, vpc_id="vpc-1", zone_id="zone-a",
                       cidr_block="192.168.1.0/24", total_ipv4_count=255,
                       available_ip_address_count=100)
            for sid in request.subnet_ids
        ])

    def describe_subnet_attributes(self, request):
        raise NotImplementedError

manager = SubnetManager("zone-a", "vpc-1", Client())
manager.flush_subnets("subnet-1")
print(manager.select_subnet(IPFamily.IPV4).subnet_id)
```

## What the package does not do

There is no command-line program and no running agent. The package carries
no client that calls the VPC or ECS APIs: `SubnetManager` needs an object
with `describe_subnets` and `describe_subnet_attributes`, and
`InstanceLimitManager` one with `get_instance_limit`, `get_attached_enis`
and `get_total_attached_eni_cnt`, both supplied by the caller. Creating,
attaching and releasing interfaces and addresses is not part of it.

## Tests

```
pip install ".[test]"
pytest
```