"""Access credentials for the cloud API and providers of them."""

from __future__ import annotations

import contextlib
import json
import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from cello import tracing
from cello.apierrors import EVENT_TYPE_WARNING
from cello.tracing import Event, TracingError

log = logging.getLogger(__name__)

CREDENTIAL_SERVER_ADDRESS = "http://100.96.0.96/volcstack/latest/iam/security_credentials/"

Fetch = Callable[[str], "tuple[int, bytes]"]


class CredentialError(RuntimeError):
    """Raised when credentials cannot be obtained."""


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise CredentialError(f"invalid time value {value!r}")
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise CredentialError(f"invalid time value {value!r}") from exc


@dataclass
class Credential:
    """Credentials for accessing the cloud service."""

    expired_time: Optional[datetime] = None
    current_time: Optional[datetime] = None
    access_key_id: str = ""
    secret_access_key: str = ""
    session_token: str = ""

    @staticmethod
    def from_json(data: "bytes | str") -> "Credential":
        """Decode a credential document; keys match without regard to case."""
        try:
            doc = json.loads(data)
        except ValueError as exc:
            raise CredentialError(f"decode credential failed, {exc}") from exc
        if not isinstance(doc, dict):
            raise CredentialError("credential document is not an object")
        fields = {key.lower(): value for key, value in doc.items()}
        return Credential(
            expired_time=_parse_time(fields.get("expiredtime")),
            current_time=_parse_time(fields.get("currenttime")),
            access_key_id=str(fields.get("accesskeyid") or ""),
            secret_access_key=str(fields.get("secretaccesskey") or ""),
            session_token=str(fields.get("sessiontoken") or ""),
        )


class StaticProvider:
    """Always hands out the same credential."""

    def __init__(self, credential: Credential) -> None:
        self._credential = credential

    def get(self) -> Credential:
        return self._credential


def _http_fetch(url: str) -> "tuple[int, bytes]":
    try:
        with urllib.request.urlopen(url, timeout=10) as resp:
            return resp.status, resp.read()
    except urllib.error.HTTPError as exc:
        return exc.code, b""


def fetch_sts(role: str, fetch: Optional[Fetch] = None) -> Credential:
    """Fetch temporary credentials for a role from the credential service."""
    fetch = fetch or _http_fetch
    try:
        try:
            status, body = fetch(CREDENTIAL_SERVER_ADDRESS + role)
        except OSError as exc:
            raise CredentialError(f"get sts with role {role} failed, err: {exc}") from exc
        if status != 200:
            raise CredentialError(f"get sts with role {role} failed, status: {status}")
        return Credential.from_json(body)
    except CredentialError as exc:
        with contextlib.suppress(TracingError):
            tracing.record_node_event(
                EVENT_TYPE_WARNING, Event.CREDENTIAL_SERVICE_ABNORMAL, f"get sts failed, {exc}"
            )
        raise


class STSProvider:
    """Keeps a temporary credential for a role and renews it at half its lifetime."""

    def __init__(
        self, role: str, fetch: Optional[Fetch] = None, retry_interval: float = 10.0
    ) -> None:
        self.role = role
        self._fetch = fetch
        self._retry_interval = retry_interval
        self._current: Optional[Credential] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def get(self) -> Optional[Credential]:
        return self._current

    def refresh(self) -> Credential:
        """Fetch a new credential, retrying until it succeeds or the provider stops."""
        log.debug("start to refresh sts for role %s", self.role)
        while True:
            try:
                credential = fetch_sts(self.role, self._fetch)
            except CredentialError as exc:
                log.warning("failed to get new sts: %s", exc)
                if self._stop.wait(self._retry_interval):
                    raise CredentialError("provider stopped") from exc
                continue
            self._current = credential
            log.debug(
                "STS refreshed, current time %s, expired time %s",
                credential.current_time,
                credential.expired_time,
            )
            return credential

    def _next_delay(self) -> float:
        credential = self._current
        if credential is None or credential.expired_time is None or credential.current_time is None:
            return 0.0
        lifetime = (credential.expired_time - credential.current_time).total_seconds()
        return max(0.0, lifetime / 2)

    def _run(self) -> None:
        while True:
            delay = self._next_delay()
            log.debug("Next refresh task was scheduled after %ss", delay)
            if self._stop.wait(delay):
                return
            try:
                self.refresh()
            except CredentialError:
                return

    def start(self) -> None:
        """Fetch the first credential and start renewing it in the background."""
        log.info("Init STSProvider")
        self._stop.clear()
        self.refresh()
        self._thread = threading.Thread(target=self._run, name="sts-refresh", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop background renewal."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None