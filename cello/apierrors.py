"""Errors returned by the cloud open API and helpers for retrying and classifying them."""

from __future__ import annotations

import contextlib
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from cello import tracing
from cello.tracing import Event, TracingError

log = logging.getLogger(__name__)

EVENT_TYPE_WARNING = "Warning"

INVALID_PARAMETER = "InvalidParameter"
MISSING_PARAMETER = "MissingParameter"
INTERNAL_ERROR = "InternalError"

INVALID_VPC_INVALID_STATUS = "InvalidVpc.InvalidStatus"
INVALID_ENI_INVALID_STATUS = "InvalidEni.InvalidStatus"
INVALID_ENI_ID_NOT_FOUND = "InvalidEniId.NotFound"
INVALID_SUBNET_NOT_FOUND = "InvalidSubnet.NotFound"
INVALID_ENI_INSTANCE_MISMATCH = "InvalidEni.InstanceMismatch"
INVALID_SUBNET_DISABLE_IPV6 = "InvalidSubnet.DisableIpv6"
LIMIT_EXCEEDED_PRIVATE_IPS_PER_ENI = "LimitExceeded.PrivateIpsPerEni"
LIMIT_EXCEEDED_IPV6_ADDRESSES_PER_ENI = "LimitExceeded.Ipv6AddressesPerEni"
LIMIT_EXCEEDED_ENIS_PER_INSTANCE = "LimitExceeded.EnisPerInstance"
QUOTA_EXCEEDED_SECURITY_GROUP_IP = "QuotaExceeded.SecurityGroupIp"
QUOTA_EXCEEDED_ENI_SECURITY_GROUP = "QuotaExceeded.EniSecurityGroup"
QUOTA_EXCEEDED_ENI = "QuotaExceeded.Eni"
INVALID_PRIVATE_IP_MALFORMED = "InvalidPrivateIp.Malformed"
INVALID_IPV6_MALFORMED = "InvalidIpv6.Malformed"
INSUFFICIENT_IP_IN_SUBNET = "InsufficientIpInSubnet"
ACCOUNT_FLOW_LIMIT_EXCEEDED = "AccountFlowLimitExceeded"
FLOW_LIMIT_EXCEEDED = "FlowLimitExceeded"

WAIT_TIMEOUT_MESSAGE = "timed out waiting for the condition"


@dataclass
class ResponseError:
    """Error part of an API response."""

    code_n: int = 0
    code: str = ""
    message: str = ""


@dataclass
class ResponseMetadata:
    """Metadata returned with every API response."""

    request_id: str = ""
    action: str = ""
    version: str = ""
    service: str = ""
    region: str = ""
    http_code: int = 0
    error: Optional[ResponseError] = None


class APIRequestError(Exception):
    """An API call failed, either in the SDK or with an error response."""

    def __init__(
        self,
        sdk_error: Optional[BaseException] = None,
        request_id: str = "",
        code_n: int = 0,
        code: str = "",
        message: str = "",
    ) -> None:
        super().__init__()
        self.sdk_error = sdk_error
        self.request_id = request_id
        self.code_n = code_n
        self.code = code
        self.message = message

    def __str__(self) -> str:
        if self.message:
            return (
                f"apiErr: {self.message}({self.code} [{self.code_n}]) "
                f"RequestId {self.request_id}"
            )
        if self.sdk_error is not None:
            return f"sdkErr: {self.sdk_error}"
        return ""


class WaitTimeoutError(TimeoutError):
    """A retried condition never succeeded."""

    def __init__(self, message: str = WAIT_TIMEOUT_MESSAGE) -> None:
        super().__init__(message)


class HalfwayFailedError(RuntimeError):
    """Only part of a multi-step operation succeeded."""

    def __init__(self, message: str = "process halfway failed") -> None:
        super().__init__(message)


class InvalidDeletionPrimaryIPError(ValueError):
    """The primary address of an interface cannot be released."""

    def __init__(self, message: str = "ip is primary, deletion invalid") -> None:
        super().__init__(message)


def new_api_request_error(
    metadata: Optional[ResponseMetadata], sdk_error: Optional[BaseException]
) -> APIRequestError:
    """Combine an SDK error and the response metadata into one error."""
    err = APIRequestError(sdk_error=sdk_error)
    if metadata is not None and metadata.error is not None:
        err.request_id = metadata.request_id
        err.code_n = metadata.error.code_n
        err.code = metadata.error.code
        err.message = metadata.error.message
    return err


def err_equal(err_code: str, err: Optional[BaseException]) -> bool:
    """Whether err is an API error carrying the given code."""
    return isinstance(err, APIRequestError) and err.code == err_code


@dataclass(frozen=True)
class Backoff:
    """Parameters of an exponential retry schedule; durations in seconds."""

    duration: float = 0.0
    factor: float = 1.0
    jitter: float = 0.0
    steps: int = 1
    cap: float = 0.0


def _jittered(duration: float, jitter: float) -> float:
    if jitter <= 0:
        return duration
    return duration + random.random() * jitter * duration


def exponential_backoff(backoff: Backoff, condition: Callable[[], bool]) -> None:
    """Call condition until it returns True, sleeping between attempts.

    An exception raised by the condition stops the retries and propagates.
    WaitTimeoutError is raised once the steps are used up.
    """
    duration = backoff.duration
    steps = backoff.steps
    while steps > 0:
        if condition():
            return
        if steps == 1:
            break
        steps -= 1
        delay = duration
        if backoff.factor != 0:
            duration *= backoff.factor
            if backoff.cap > 0 and duration > backoff.cap:
                duration = backoff.cap
                steps = 0
        time.sleep(_jittered(delay, backoff.jitter))
    raise WaitTimeoutError()


def backoff_err_wrapper(
    back_err: Optional[BaseException], real_err: Optional[BaseException]
) -> Optional[BaseException]:
    """Merge the outcome of a retry loop with the last error seen inside it."""
    if back_err is None:
        return None
    if not isinstance(back_err, WaitTimeoutError):
        return back_err
    message = str(back_err)
    if real_err is not None:
        if not message:
            return real_err
        message = f"{message} due to {real_err}"
    if not message:
        return None
    wrapped = WaitTimeoutError(message)
    wrapped.__cause__ = real_err
    return wrapped


class ErrCodeChain:
    """A set of error codes that an error is matched against."""

    def __init__(self) -> None:
        self.codes: list[str] = []

    def with_public_err_codes(self) -> "ErrCodeChain":
        self.codes.extend((INVALID_PARAMETER, MISSING_PARAMETER, INTERNAL_ERROR))
        return self

    def with_flow_limit_exceeded(self) -> "ErrCodeChain":
        self.codes.extend((FLOW_LIMIT_EXCEEDED, ACCOUNT_FLOW_LIMIT_EXCEEDED))
        return self

    def with_err_codes(self, *args: str) -> "ErrCodeChain":
        self.codes.extend(args)
        return self

    def err_chain_equal(self, err: Optional[BaseException]) -> bool:
        """Whether err carries any code in the chain."""
        return any(err_equal(code, err) for code in self.codes)


@dataclass
class EventInfoField:
    """A key and value added to the text of an event."""

    key: str
    value: Any

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


class RateLimiter:
    """Token bucket: refills at rate tokens per second up to burst."""

    def __init__(
        self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def allow(self) -> bool:
        """Take one token if one is available."""
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last)
            self._last = now
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False


_cant_retry_err_event_limiter: Optional[RateLimiter] = RateLimiter(5, 5)
_flow_limit_event_limiter: Optional[RateLimiter] = RateLimiter(2, 2)


def allow_record_err_event() -> bool:
    """Whether an event for a non-retryable error may be recorded now."""
    limiter = _cant_retry_err_event_limiter
    return limiter is None or limiter.allow()


def allow_record_flow_limit_event() -> bool:
    """Whether an event for API flow limiting may be recorded now."""
    limiter = _flow_limit_event_limiter
    return limiter is None or limiter.allow()


def _record(reason: Event, message: str) -> None:
    with contextlib.suppress(TracingError):
        tracing.record_node_event(EVENT_TYPE_WARNING, reason, message)


def record_openapi_err_event(err: Optional[BaseException], *args: EventInfoField) -> None:
    """Record a node event for quota, address or flow-limit API errors."""
    if not isinstance(err, APIRequestError):
        return
    code = err.code
    fields_info = "".join(f"{field} " for field in args)
    info = f"{code}, {fields_info}"
    if err.request_id:
        info = f"{info} RequestId: {err.request_id}"

    if code.startswith("QuotaExceeded") or code.startswith("LimitExceeded"):
        if allow_record_err_event():
            _record(Event.VPC_RESOURCE_QUOTA_EXCEEDED, info)

    if code == INSUFFICIENT_IP_IN_SUBNET:
        if allow_record_err_event():
            _record(Event.INSUFFICIENT_IP_IN_SUBNET, info)
    elif code in (FLOW_LIMIT_EXCEEDED, ACCOUNT_FLOW_LIMIT_EXCEEDED):
        if allow_record_flow_limit_event():
            _record(Event.OPEN_API_FLOW_LIMIT, info)