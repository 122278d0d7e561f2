from typing import Any

import pytest
import requests

from cfddns.cloudflare_client import CloudflareAPIError, CloudflareClient, ZoneRecordUpdater
from cfddns.errors import ProviderError
from cfddns.models import DnsRecord


class _Response:
    def __init__(self, payload: dict[str, Any], status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status={self.status_code}")

    def json(self) -> dict[str, Any]:
        return self._payload


class _Session:
    def __init__(self, existing: dict[str, Any]) -> None:
        self.existing = existing
        self.requests: list[tuple[str, str, dict[str, Any] | None, int]] = []

    def request(self, method: str, url: str, params, json, headers, timeout) -> _Response:
        self.requests.append((method, url, json, timeout))
        if method == "GET":
            return _Response({"success": True, "result": self.existing})
        return _Response({"success": True, "result": {**self.existing, **json}})


def _existing(content: str, record_type: str = "A") -> dict[str, Any]:
    return {
        "id": "rec1",
        "name": "home.example.com",
        "type": record_type,
        "content": content,
        "ttl": 120,
        "proxied": False,
    }


def _record(content: str) -> DnsRecord:
    return DnsRecord(id="rec1", name="home.example.com", type="A", content=content)


def test_update_record_skips_write_when_content_matches() -> None:
    session = _Session(_existing("203.0.113.5"))
    client = CloudflareClient(api_token="t", timeout_seconds=10, session=session)  # type: ignore[arg-type]

    outcome = ZoneRecordUpdater(client, "zone1").update_record(_record("203.0.113.5"))

    assert outcome.updated is False
    assert outcome.record.content == "203.0.113.5"
    assert [method for method, *_ in session.requests] == ["GET"]


def test_update_record_puts_new_content() -> None:
    session = _Session(_existing("198.51.100.1"))
    client = CloudflareClient(api_token="t", timeout_seconds=7, session=session)  # type: ignore[arg-type]

    outcome = client.update_record("zone1", _record("203.0.113.5"))

    assert outcome.updated is True
    assert outcome.record.content == "203.0.113.5"
    method, url, payload, timeout = session.requests[-1]
    assert method == "PUT"
    assert url.endswith("/zones/zone1/dns_records/rec1")
    assert payload == {"type": "A", "name": "home.example.com", "content": "203.0.113.5", "ttl": 120, "proxied": False}
    assert all(call[3] == 7 for call in session.requests)


def test_update_record_requires_record_id() -> None:
    client = CloudflareClient(api_token="t", timeout_seconds=10, session=_Session({}))  # type: ignore[arg-type]
    record = DnsRecord(id=None, name="home.example.com", type="A", content="203.0.113.5")

    with pytest.raises(CloudflareAPIError):
        client.update_record("zone1", record)


def test_client_error_is_not_retried(monkeypatch) -> None:
    calls = []

    class _Rejecting:
        def request(self, **kwargs) -> _Response:
            calls.append(kwargs["method"])
            return _Response({"success": False}, status_code=403)

    monkeypatch.setattr("cfddns.cloudflare_client.time.sleep", lambda seconds: None)
    client = CloudflareClient(api_token="t", timeout_seconds=10, session=_Rejecting())  # type: ignore[arg-type]

    with pytest.raises(ProviderError):
        client.get_record("zone1", "rec1")
    assert calls == ["GET"]


def test_server_errors_are_retried_then_raised(monkeypatch) -> None:
    calls = []

    class _Failing:
        def request(self, **kwargs) -> _Response:
            calls.append(kwargs["method"])
            return _Response({"success": False}, status_code=502)

    monkeypatch.setattr("cfddns.cloudflare_client.time.sleep", lambda seconds: None)
    client = CloudflareClient(api_token="t", timeout_seconds=10, session=_Failing(), retries=2)  # type: ignore[arg-type]

    with pytest.raises(CloudflareAPIError):
        client.get_record("zone1", "rec1")
    assert calls == ["GET", "GET"]
