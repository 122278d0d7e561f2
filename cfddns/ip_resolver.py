from __future__ import annotations

import ipaddress
import logging
from typing import Iterable

import requests

from cfddns.errors import ResolutionError
from cfddns.models import IpFamily

DEFAULT_IPV4_SOURCES = [
    "https://api.ipify.org",
    "https://ifconfig.me/ip",
    "https://checkip.amazonaws.com",
]

DEFAULT_IPV6_SOURCES = [
    "https://api6.ipify.org",
    "https://v6.ident.me",
]

_ADDRESS_TYPES = {
    IpFamily.IPV4: ipaddress.IPv4Address,
    IpFamily.IPV6: ipaddress.IPv6Address,
}


def resolve_public_ip(
    family: IpFamily,
    sources: Iterable[str],
    timeout_seconds: int,
    logger: logging.Logger | None = None,
    session: requests.Session | None = None,
) -> str:
    logger = logger or logging.getLogger(__name__)
    session = session or requests.Session()
    address_type = _ADDRESS_TYPES[family]
    errors: list[str] = []

    for source in sources:
        try:
            response = session.get(source, timeout=timeout_seconds)
            response.raise_for_status()
            value = response.text.strip()
            address_type(value)
            return value
        except (requests.RequestException, ValueError) as exc:
            errors.append(f"{source}: {exc}")
            logger.warning("Failed resolving %s from %s: %s", family, source, exc)
            continue

    if not errors:
        raise ResolutionError(f"No {family} discovery sources configured")
    raise ResolutionError(f"Unable to resolve public {family} from configured sources: {'; '.join(errors)}")


class IpResolver:
    def __init__(
        self,
        ipv4_sources: Iterable[str] | None = None,
        ipv6_sources: Iterable[str] | None = None,
        timeout_seconds: int = 10,
        logger: logging.Logger | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._sources = {
            IpFamily.IPV4: list(ipv4_sources) if ipv4_sources is not None else DEFAULT_IPV4_SOURCES.copy(),
            IpFamily.IPV6: list(ipv6_sources) if ipv6_sources is not None else DEFAULT_IPV6_SOURCES.copy(),
        }
        self._timeout_seconds = timeout_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._session = session or requests.Session()

    def resolve(self, family: IpFamily) -> str:
        if family not in self._sources:
            raise ResolutionError(f"Unsupported IP family: {family!r}")
        return resolve_public_ip(
            family=family,
            sources=self._sources[family],
            timeout_seconds=self._timeout_seconds,
            logger=self._logger,
            session=self._session,
        )
