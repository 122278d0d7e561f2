from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cfddns.errors import ValidationError

DEFAULT_TTL = 120
DEFAULT_INTERVAL_SECONDS = 300


class IpFamily(str, Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @classmethod
    def parse(cls, value: str | IpFamily) -> IpFamily:
        if isinstance(value, IpFamily):
            return value
        normalized = str(value).strip().lower()
        if normalized in {"ipv4", "v4", "4", "a"}:
            return cls.IPV4
        if normalized in {"ipv6", "v6", "6", "aaaa"}:
            return cls.IPV6
        raise ValidationError(f"Invalid IP type: {value}")

    @property
    def record_type(self) -> str:
        return "A" if self is IpFamily.IPV4 else "AAAA"

    def __str__(self) -> str:
        return "IPv4" if self is IpFamily.IPV4 else "IPv6"


@dataclass(frozen=True)
class RecordIdentity:
    zone_id: str
    record_id: str

    def __post_init__(self) -> None:
        if not self.zone_id or not self.record_id:
            raise ValidationError(f"Record identity needs a zone id and a record id, got {self.zone_id!r}/{self.record_id!r}")

    def __str__(self) -> str:
        return f"{self.zone_id}-{self.record_id}"


@dataclass(frozen=True)
class DdnsConfig:
    api_token: str = field(repr=False)
    zone_id: str
    record_id: str
    record_name: str
    ip_family: IpFamily = IpFamily.IPV4
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if not self.api_token:
            raise ValidationError(f"Missing API token for record {self.record_name or self.record_id}")
        if not self.record_name:
            raise ValidationError(f"Missing record name for record {self.record_id}")
        if not isinstance(self.ip_family, IpFamily):
            raise ValidationError(f"Invalid IP type: {self.ip_family}")
        if self.interval_seconds <= 0:
            raise ValidationError(f"Update interval must be > 0, got {self.interval_seconds}")
        # raises on empty ids
        RecordIdentity(self.zone_id, self.record_id)

    @property
    def identity(self) -> RecordIdentity:
        return RecordIdentity(self.zone_id, self.record_id)


@dataclass(frozen=True)
class DnsRecord:
    id: str | None
    name: str
    type: str
    content: str
    ttl: int = DEFAULT_TTL
    proxied: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "content": self.content,
            "ttl": self.ttl,
            "proxied": self.proxied,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> DnsRecord:
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            name=str(data.get("name", "")),
            type=str(data.get("type", "")),
            content=str(data.get("content", "")),
            ttl=int(data.get("ttl", DEFAULT_TTL)),
            proxied=bool(data.get("proxied", False)),
        )


@dataclass(frozen=True)
class UpdateOutcome:
    record: DnsRecord
    updated: bool


@dataclass(frozen=True)
class RecordStatus:
    identity: str
    domain: str
    ip_family: str
    interval_seconds: int
    running: bool
    generation: int
    last_ip: str | None
    last_update_time: datetime | None
    last_check_time: datetime | None
    last_error: str | None
