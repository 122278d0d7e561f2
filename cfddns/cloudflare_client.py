from __future__ import annotations

import logging
import time
from typing import Any

import requests

from cfddns.errors import ProviderError
from cfddns.models import DnsRecord, UpdateOutcome


class CloudflareAPIError(ProviderError):
    pass


class CloudflareClient:
    def __init__(
        self,
        api_token: str,
        timeout_seconds: int,
        logger: logging.Logger | None = None,
        session: requests.Session | None = None,
        retries: int = 3,
    ) -> None:
        self._base_url = "https://api.cloudflare.com/client/v4"
        self._timeout_seconds = timeout_seconds
        self._retries = max(1, retries)
        self._logger = logger or logging.getLogger(__name__)
        self._session = session or requests.Session()
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        last_error: Exception | None = None
        for attempt in range(1, self._retries + 1):
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=payload,
                    headers=self._headers,
                    timeout=self._timeout_seconds,
                )
                if response.status_code == 429 or 500 <= response.status_code < 600:
                    raise CloudflareAPIError(f"Retryable Cloudflare status {response.status_code}: {response.text}")
                response.raise_for_status()
                data = response.json()
                if not data.get("success", False):
                    errors = data.get("errors", [])
                    raise CloudflareAPIError(f"Cloudflare API error for {method} {path}: {errors}")
                return data
            except requests.HTTPError as exc:
                # 4xx other than 429 will not get better on retry
                raise CloudflareAPIError(f"Cloudflare request rejected for {method} {path}: {exc}") from exc
            except (requests.RequestException, ValueError, CloudflareAPIError) as exc:
                last_error = exc
                if attempt >= self._retries:
                    break
                sleep_seconds = attempt
                self._logger.warning(
                    "Cloudflare request failed attempt %d/%d for %s %s: %s. Retrying in %ss.",
                    attempt,
                    self._retries,
                    method,
                    path,
                    exc,
                    sleep_seconds,
                )
                time.sleep(sleep_seconds)
        raise CloudflareAPIError(f"Cloudflare request failed for {method} {path}: {last_error}")

    def get_record(self, zone_id: str, record_id: str) -> DnsRecord:
        data = self._request("GET", f"/zones/{zone_id}/dns_records/{record_id}")
        return DnsRecord.from_api(data["result"])

    def update_record(self, zone_id: str, record: DnsRecord) -> UpdateOutcome:
        if not record.id:
            raise CloudflareAPIError(f"Cannot update {record.name} without a record id")

        current = self.get_record(zone_id, record.id)
        if current.content == record.content and current.type == record.type and current.name == record.name:
            self._logger.debug("Cloudflare record %s already points to %s", record.name, record.content)
            return UpdateOutcome(record=current, updated=False)

        self._logger.info("Update %s record %s: %s -> %s", record.type, record.name, current.content, record.content)
        data = self._request("PUT", f"/zones/{zone_id}/dns_records/{record.id}", payload=record.to_payload())
        return UpdateOutcome(record=DnsRecord.from_api(data["result"]), updated=True)


class ZoneRecordUpdater:
    """Binds a Cloudflare client to one zone so loops only pass the record."""

    def __init__(self, client: CloudflareClient, zone_id: str) -> None:
        self._client = client
        self._zone_id = zone_id

    def update_record(self, record: DnsRecord) -> UpdateOutcome:
        return self._client.update_record(self._zone_id, record)
