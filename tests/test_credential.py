import json
from datetime import datetime

import pytest

from cello import tracing
from cello.credential import (
    CREDENTIAL_SERVER_ADDRESS,
    Credential,
    CredentialError,
    STSProvider,
    StaticProvider,
    fetch_sts,
)

DOC = {
    "ExpiredTime": "2023-01-01T12:00:00+08:00",
    "CurrentTime": "2023-01-01T11:00:00+08:00",
    "AccessKeyId": "placeholder",
    "SecretAccessKey": "secret",
    "SessionToken": "token",
}


@pytest.fixture
def node_events():
    events = []
    tracing.register_event_recorder(lambda t, r, m: events.append((t, r, m)), None)
    yield events
    tracing.register_event_recorder(None, None)


def test_from_json_reads_all_fields():
    cred = Credential.from_json(json.dumps(DOC))
    assert cred.access_key_id == DOC["AccessKeyId"]
    assert cred.secret_access_key == DOC["SecretAccessKey"]
    assert cred.session_token == DOC["SessionToken"]
    assert cred.expired_time == datetime.fromisoformat(DOC["ExpiredTime"])
    assert cred.current_time == datetime.fromisoformat(DOC["CurrentTime"])


def test_from_json_keys_ignore_case():
    cred = Credential.from_json(json.dumps({"accesskeyid": "placeholder"}).encode())
    assert cred.access_key_id == "placeholder"
    assert cred.expired_time is None


def test_from_json_rejects_bad_documents():
    with pytest.raises(CredentialError):
        Credential.from_json("not json")
    with pytest.raises(CredentialError):
        Credential.from_json("[1, 2]")
    with pytest.raises(CredentialError):
        Credential.from_json(json.dumps({"ExpiredTime": "yesterday"}))


def test_static_provider_returns_same_credential():
    cred = Credential(access_key_id="placeholder")
    provider = StaticProvider(cred)
    assert provider.get() is cred
    assert provider.get() is provider.get()


def test_fetch_sts_requests_role_url():
    urls = []

    def fetch(url):
        urls.append(url)
        return 200, json.dumps(DOC).encode()

    cred = fetch_sts("node-role", fetch)
    assert urls == [CREDENTIAL_SERVER_ADDRESS + "node-role"]
    assert cred.session_token == DOC["SessionToken"]


def test_fetch_sts_bad_status_records_event(node_events):
    with pytest.raises(CredentialError):
        fetch_sts("node-role", lambda url: (500, b""))
    assert len(node_events) == 1
    assert node_events[0][1] == tracing.Event.CREDENTIAL_SERVICE_ABNORMAL


def test_fetch_sts_network_error_raises():
    def fetch(url):
        raise OSError("unreachable")

    with pytest.raises(CredentialError):
        fetch_sts("node-role", fetch)


def test_sts_provider_refresh_retries_until_success():
    responses = [(503, b""), (503, b""), (200, json.dumps(DOC).encode())]
    calls = []

    def fetch(url):
        calls.append(url)
        return responses[len(calls) - 1]

    provider = STSProvider("node-role", fetch=fetch, retry_interval=0)
    assert provider.get() is None
    cred = provider.refresh()
    assert len(calls) == 3
    assert provider.get() is cred


def test_sts_provider_start_and_stop():
    calls = []

    def fetch(url):
        calls.append(url)
        return 200, json.dumps(DOC).encode()

    provider = STSProvider("node-role", fetch=fetch, retry_interval=0)
    provider.start()
    try:
        assert provider.get().access_key_id == DOC["AccessKeyId"]
        assert len(calls) >= 1
    finally:
        provider.stop()
    count = len(calls)
    assert provider.get() is not None and len(calls) == count


def test_sts_provider_refresh_stops_when_stopped():
    provider = STSProvider("node-role", fetch=lambda url: (500, b""), retry_interval=0)
    provider.stop()
    with pytest.raises(CredentialError):
        provider.refresh()
    assert provider.get() is None