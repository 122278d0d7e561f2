from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime


class StateStore(ABC):
    """Last written IP and last successful update time, keyed by record identity."""

    @abstractmethod
    def get_last_ip(self, identity: str) -> str | None: ...

    @abstractmethod
    def set_last_ip(self, identity: str, ip: str) -> None: ...

    @abstractmethod
    def get_last_update_time(self, identity: str) -> datetime | None: ...

    @abstractmethod
    def set_last_update_time(self, identity: str, timestamp: datetime) -> None: ...


class MemoryStateStore(StateStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_ip: dict[str, str] = {}
        self._last_update_time: dict[str, datetime] = {}

    def get_last_ip(self, identity: str) -> str | None:
        with self._lock:
            return self._last_ip.get(identity)

    def set_last_ip(self, identity: str, ip: str) -> None:
        with self._lock:
            self._last_ip[identity] = ip

    def get_last_update_time(self, identity: str) -> datetime | None:
        with self._lock:
            return self._last_update_time.get(identity)

    def set_last_update_time(self, identity: str, timestamp: datetime) -> None:
        with self._lock:
            self._last_update_time[identity] = timestamp

    def identities(self) -> list[str]:
        with self._lock:
            return sorted(set(self._last_ip) | set(self._last_update_time))
