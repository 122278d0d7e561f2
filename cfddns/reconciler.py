from __future__ import annotations

import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Protocol

from cfddns.errors import DdnsError
from cfddns.models import DdnsConfig, DnsRecord, IpFamily, RecordStatus, UpdateOutcome
from cfddns.state_store import StateStore

_generations = itertools.count(1)


class IpResolverProtocol(Protocol):
    def resolve(self, family: IpFamily) -> str: ...


class DnsUpdater(Protocol):
    def update_record(self, record: DnsRecord) -> UpdateOutcome: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationLoop:
    """Keeps one DNS record pointed at the host's current public IP.

    Each instance owns a single record identity. Passes are serialised by a
    pass lock, so a forced update and a scheduled tick never overlap. The
    registry hands every generation of one identity the same pass lock.
    The loop runs on its own daemon thread once started and exits when its
    stop event (the cancellation token) is set.
    """

    def __init__(
        self,
        config: DdnsConfig,
        ip_resolver: IpResolverProtocol,
        dns_updater: DnsUpdater,
        state_store: StateStore,
        logger: logging.Logger | None = None,
        stop_event: threading.Event | None = None,
        pass_lock: threading.Lock | None = None,
    ) -> None:
        self.config = config
        self.identity = config.identity
        self.generation = next(_generations)
        self._ip_resolver = ip_resolver
        self._dns_updater = dns_updater
        self._state_store = state_store
        self._logger = logger or logging.getLogger(__name__)
        self._stop_event = stop_event or threading.Event()
        self._wake_event = threading.Event()
        self._pass_lock = pass_lock or threading.Lock()
        self._thread: threading.Thread | None = None
        self._last_error: str | None = None
        self._last_check_time: datetime | None = None

    def __repr__(self) -> str:
        return f"ReconciliationLoop({self.identity}, {self.config.record_name}, {self.config.ip_family}, gen={self.generation})"

    @property
    def domain(self) -> str:
        return self.config.record_name

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def reconcile_once(self) -> UpdateOutcome:
        with self._pass_lock:
            return self._reconcile()

    def _reconcile(self) -> UpdateOutcome:
        family = self.config.ip_family
        key = str(self.identity)

        current_ip = self._ip_resolver.resolve(family)
        self._logger.debug("Current %s address for %s: %s", family, self.domain, current_ip)
        self._last_check_time = utc_now()

        record = DnsRecord(
            id=self.config.record_id,
            name=self.config.record_name,
            type=family.record_type,
            content=current_ip,
        )

        last_ip = self._state_store.get_last_ip(key)
        if last_ip is not None and last_ip == current_ip:
            self._logger.debug("IP unchanged for %s (%s), skipping DNS update", self.domain, current_ip)
            return UpdateOutcome(record=record, updated=False)

        self._logger.info("Updating %s DNS record %s to %s", family, self.domain, current_ip)
        outcome = self._dns_updater.update_record(record)

        if outcome.updated:
            self._state_store.set_last_ip(key, current_ip)
            self._state_store.set_last_update_time(key, utc_now())
        return outcome

    def force_update(self) -> tuple[str, str]:
        outcome = self.reconcile_once()
        return self.domain, outcome.record.content

    def last_or_current_ip(self) -> str:
        last_ip = self._state_store.get_last_ip(str(self.identity))
        if last_ip is not None:
            return last_ip
        return self._ip_resolver.resolve(self.config.ip_family)

    def share_pass_lock(self, lock: threading.Lock) -> None:
        if self._thread is not None:
            raise RuntimeError(f"{self!r} is already running, its pass lock cannot change")
        self._pass_lock = lock

    def trigger(self) -> None:
        """Wake the loop thread for an immediate pass outside its schedule."""
        self._wake_event.set()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        if self._stop_event.is_set():
            raise RuntimeError(f"{self!r} has been stopped and cannot be restarted")
        self._thread = threading.Thread(
            target=self.run_forever,
            name=f"ddns-{self.identity}-{self.config.ip_family.value}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        self._wake_event.set()
        thread = self._thread
        if timeout is not None and thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                self._logger.warning("%r did not stop within %ss", self, timeout)

    def run_forever(self) -> None:
        interval = self.config.interval_seconds
        self._logger.info(
            "Starting %s DDNS auto-update for %s, update interval: %d seconds",
            self.config.ip_family,
            self.domain,
            interval,
        )
        while not self._stop_event.is_set():
            self._wake_event.clear()
            self._tick()
            if self._stop_event.is_set():
                break
            self._logger.debug("Waiting %d seconds for next update of %s", interval, self.domain)
            self._wake_event.wait(timeout=interval)
        self._logger.info("Stopped %s DDNS auto-update for %s", self.config.ip_family, self.domain)

    def _tick(self) -> None:
        try:
            outcome = self.reconcile_once()
        except DdnsError as exc:
            self._last_error = str(exc)
            self._logger.error("Failed to update %s DNS record %s: %s", self.config.ip_family, self.domain, exc)
            return
        except Exception as exc:  # noqa: BLE001
            self._last_error = f"{type(exc).__name__}: {exc}"
            self._logger.exception("Unexpected error updating %s: %s", self.domain, exc)
            return

        self._last_error = None
        if outcome.updated:
            self._logger.info(
                "Successfully updated %s DNS record for %s to %s",
                self.config.ip_family,
                self.domain,
                outcome.record.content,
            )
        else:
            self._logger.debug("No update needed for %s DNS record %s", self.config.ip_family, self.domain)

    def status(self) -> RecordStatus:
        key = str(self.identity)
        return RecordStatus(
            identity=key,
            domain=self.domain,
            ip_family=str(self.config.ip_family),
            interval_seconds=self.config.interval_seconds,
            running=self.running,
            generation=self.generation,
            last_ip=self._state_store.get_last_ip(key),
            last_update_time=self._state_store.get_last_update_time(key),
            last_check_time=self._last_check_time,
            last_error=self._last_error,
        )
