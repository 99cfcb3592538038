"""Node and pod event recording through pluggable recorders."""

from __future__ import annotations

import threading
from enum import StrEnum
from typing import Callable, Optional

PodEventRecorder = Callable[[str, str, str, str, str], None]
NodeEventRecorder = Callable[[str, str, str], None]


class Event(StrEnum):
    """Reasons attached to recorded events."""

    CONFIG_MAP_UPDATE_FAILED = "ConfigMapUpdateFailed"
    UPDATE_SUBNET_FAILED = "UpdateSubnetFailed"
    UPDATE_SECURITY_GROUP_FAILED = "UpdateSecurityGroupFailed"

    NO_AVAILABLE_SUBNET = "NoAvailableSubnet"
    SUBNET_AVAILABLE_IP_BELOW_THRESHOLD = "SubnetAvailableIPBelowThreshold"

    VPC_RESOURCE_QUOTA_EXCEEDED = "VpcResourceQuotaExceeded"
    OPEN_API_FLOW_LIMIT = "OpenApiFlowLimit"
    INSUFFICIENT_IP_IN_SUBNET = "InsufficientIpInSubnet"
    GET_INSTANCE_QUOTA_FAILED = "GetInstanceQuotaFailed"
    INSTANCE_QUOTA_UPDATED = "InstanceQuotaUpdated"

    METADATA_SERVICE_ABNORMAL = "MetadataServiceAbnormal"
    CREDENTIAL_SERVICE_ABNORMAL = "CredentialServiceAbnormal"

    ALLOCATE_RESOURCE_FAILED = "AllocateResourceFailed"
    RELEASE_RESOURCE_FAILED = "ReleaseResourceFailed"


class TracingError(RuntimeError):
    """Raised when an event cannot be recorded."""


class Tracer:
    """Holds the recorders that events on pods and on the node go to."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pod_event: Optional[PodEventRecorder] = None
        self._node_event: Optional[NodeEventRecorder] = None

    def register_event_recorder(
        self, node: Optional[NodeEventRecorder], pod: Optional[PodEventRecorder]
    ) -> None:
        """Install the node and pod recorders, replacing any earlier ones."""
        with self._lock:
            self._node_event = node
            self._pod_event = pod

    def record_pod_event(
        self, pod_name: str, pod_namespace: str, event_type: str, reason: str, message: str
    ) -> None:
        """Record an event on a pod; errors from the recorder propagate."""
        with self._lock:
            recorder = self._pod_event
        if recorder is None:
            raise TracingError("no pod event recorder registered")
        recorder(pod_name, pod_namespace, event_type, reason, message)

    def record_node_event(self, event_type: str, reason: str, message: str) -> None:
        """Record an event on the node."""
        with self._lock:
            recorder = self._node_event
        if recorder is None:
            raise TracingError("no node event recorder registered")
        recorder(event_type, reason, message)


_default_tracer = Tracer()


def default_global_tracer() -> Tracer:
    """Return the process-wide tracer."""
    return _default_tracer


def register_event_recorder(
    node: Optional[NodeEventRecorder], pod: Optional[PodEventRecorder]
) -> None:
    """Install recorders on the process-wide tracer."""
    _default_tracer.register_event_recorder(node, pod)


def record_pod_event(
    pod_name: str, pod_namespace: str, event_type: str, reason: str, message: str
) -> None:
    """Record a pod event on the process-wide tracer."""
    _default_tracer.record_pod_event(pod_name, pod_namespace, event_type, reason, message)


def record_node_event(event_type: str, reason: str, message: str) -> None:
    """Record a node event on the process-wide tracer."""
    _default_tracer.record_node_event(event_type, reason, message)