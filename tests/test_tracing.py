import pytest

from cello import tracing
from cello.tracing import (
    Event,
    Tracer,
    TracingError,
    default_global_tracer,
    record_node_event,
    record_pod_event,
    register_event_recorder,
)


@pytest.fixture
def reset_global():
    yield
    register_event_recorder(None, None)


def test_event_reasons_reach_recorder_as_source_strings():
    tracer = Tracer()
    seen = []
    tracer.register_event_recorder(lambda t, r, m: seen.append(r), None)
    tracer.record_node_event("Warning", Event.INSTANCE_QUOTA_UPDATED, "m")
    tracer.record_node_event("Warning", Event.NO_AVAILABLE_SUBNET, "m")
    tracer.record_node_event("Warning", Event.SUBNET_AVAILABLE_IP_BELOW_THRESHOLD, "m")
    assert seen == [
        "InstanceQuotaUpdated",
        "NoAvailableSubnet",
        "SubnetAvailableIPBelowThreshold",
    ]


def test_pod_event_without_recorder_raises():
    tracer = Tracer()
    with pytest.raises(TracingError, match="no pod event recorder"):
        tracer.record_pod_event("p", "ns", "Warning", "r", "m")


def test_node_event_without_recorder_raises():
    tracer = Tracer()
    with pytest.raises(TracingError, match="no node event recorder"):
        tracer.record_node_event("Warning", "r", "m")


def test_recorders_receive_arguments():
    tracer = Tracer()
    node_calls, pod_calls = [], []
    tracer.register_event_recorder(
        lambda *a: node_calls.append(a), lambda *a: pod_calls.append(a)
    )
    tracer.record_node_event("Warning", Event.OPEN_API_FLOW_LIMIT, "msg")
    tracer.record_pod_event("pod", "ns", "Normal", "reason", "text")
    assert node_calls == [("Warning", "OpenApiFlowLimit", "msg")]
    assert pod_calls == [("pod", "ns", "Normal", "reason", "text")]


def test_pod_recorder_error_propagates():
    tracer = Tracer()

    def failing(*_):
        raise ValueError("boom")

    tracer.register_event_recorder(None, failing)
    with pytest.raises(ValueError, match="boom"):
        tracer.record_pod_event("p", "ns", "t", "r", "m")
    with pytest.raises(TracingError):
        tracer.record_node_event("t", "r", "m")


def test_global_functions_use_default_tracer(reset_global):
    seen = []
    register_event_recorder(lambda *a: seen.append(a), None)
    record_node_event("Warning", "reason", "message")
    assert seen == [("Warning", "reason", "message")]
    assert default_global_tracer() is default_global_tracer()
    with pytest.raises(TracingError):
        record_pod_event("p", "ns", "t", "r", "m")


def test_default_tracer_shared_with_module_functions(reset_global):
    seen = []
    default_global_tracer().register_event_recorder(None, lambda *a: seen.append(a))
    tracing.record_pod_event("a", "b", "c", "d", "e")
    assert seen == [("a", "b", "c", "d", "e")]