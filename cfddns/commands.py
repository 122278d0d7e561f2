"""Command bus for force-update and restart requests.

Producers (a signal handler, a CLI, an HTTP layer) submit commands here and
never touch the registry directly. Each submission is either fire-and-forget,
which returns an acknowledgment straight away, or synchronous, which runs the
reconciliation passes in the caller's thread and reports their outcomes.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Sequence, Union

from cfddns.errors import DdnsError, NotFoundError
from cfddns.models import DdnsConfig
from cfddns.reconciler import ReconciliationLoop
from cfddns.registry import ServiceRegistry


class ConfigSource(Protocol):
    def list_configs(self) -> Sequence[DdnsConfig]: ...


class ScopeKind(str, Enum):
    ALL = "all"
    DOMAIN = "domain"
    RECORD_ID = "record_id"


class DeliveryMode(str, Enum):
    FIRE_AND_FORGET = "fire_and_forget"
    SYNCHRONOUS = "synchronous"


@dataclass(frozen=True)
class ForceUpdate:
    kind: ScopeKind = ScopeKind.ALL
    value: str | None = None

    @classmethod
    def all(cls) -> ForceUpdate:
        return cls(ScopeKind.ALL)

    @classmethod
    def by_domain(cls, name: str) -> ForceUpdate:
        return cls(ScopeKind.DOMAIN, name)

    @classmethod
    def by_record_id(cls, record_id: str) -> ForceUpdate:
        return cls(ScopeKind.RECORD_ID, record_id)

    def matches(self, config: DdnsConfig) -> bool:
        if self.kind is ScopeKind.ALL:
            return True
        if self.kind is ScopeKind.DOMAIN:
            return config.record_name == self.value
        return config.record_id == self.value

    def describe(self) -> str:
        if self.kind is ScopeKind.ALL:
            return "all DNS records"
        if self.kind is ScopeKind.DOMAIN:
            return f"domain {self.value}"
        return f"record id {self.value}"


@dataclass(frozen=True)
class RestartAll:
    pass


Command = Union[ForceUpdate, RestartAll]


@dataclass(frozen=True)
class RecordResult:
    identity: str
    domain: str
    ip_address: str | None
    updated: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class CommandResult:
    success: bool
    message: str
    accepted: bool = True
    not_found: bool = False
    results: list[RecordResult] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return self.success and any(result.updated for result in self.results)

    @classmethod
    def missing(cls, error: NotFoundError) -> CommandResult:
        return cls(success=False, message=str(error), accepted=False, not_found=True)


_SHUTDOWN = object()


class CommandBus:
    def __init__(
        self,
        registry: ServiceRegistry,
        config_source: ConfigSource,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._config_source = config_source
        self._logger = logger or logging.getLogger(__name__)
        self._queue: queue.Queue[object] = queue.Queue()
        self._worker: threading.Thread | None = None
        self._worker_lock = threading.Lock()

    def start(self) -> None:
        with self._worker_lock:
            if self._worker and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._drain, name="ddns-command-bus", daemon=True)
            self._worker.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._worker_lock:
            worker = self._worker
            self._worker = None
        if worker and worker.is_alive():
            self._queue.put(_SHUTDOWN)
            worker.join(timeout=timeout)

    def join(self) -> None:
        """Block until every queued command has been handled."""
        self._queue.join()

    def submit(self, command: Command, mode: DeliveryMode = DeliveryMode.FIRE_AND_FORGET) -> CommandResult:
        mode = DeliveryMode(mode)
        if isinstance(command, ForceUpdate):
            try:
                loops = self._resolve(command)
            except NotFoundError as exc:
                self._logger.warning("Force update skipped: %s", exc)
                return CommandResult.missing(exc)
            except DdnsError as exc:
                self._logger.error("Force update of %s failed: %s", command.describe(), exc)
                return CommandResult(success=False, message=str(exc), accepted=False)
            if mode is DeliveryMode.SYNCHRONOUS:
                return self._force_now(command, loops)
            return self._force_later(command, loops)

        if isinstance(command, RestartAll):
            if mode is DeliveryMode.SYNCHRONOUS:
                return self._restart_all()
            self.start()
            self._queue.put(command)
            self._logger.info("Restart of all DDNS loops queued")
            return CommandResult(success=True, message="Restart of all DDNS loops queued")

        raise TypeError(f"Unsupported command: {command!r}")

    def _resolve(self, command: ForceUpdate) -> list[ReconciliationLoop]:
        if command.kind is ScopeKind.ALL:
            return [loop for _identity, loop in self._registry.list()]

        loops: list[ReconciliationLoop] = []
        matched_config = False
        for config in self._config_source.list_configs():
            if not command.matches(config):
                continue
            matched_config = True
            loop = self._registry.find(config.identity)
            if loop is not None:
                loops.append(loop)
        if not matched_config:
            raise NotFoundError(f"No DNS record configured for {command.describe()}")
        if not loops:
            raise NotFoundError(f"No running DDNS loop for {command.describe()}")
        return loops

    def _force_now(self, command: ForceUpdate, loops: list[ReconciliationLoop]) -> CommandResult:
        self._logger.info("Forcing DNS update for %s", command.describe())
        results: list[RecordResult] = []
        for loop in loops:
            identity = str(loop.identity)
            try:
                outcome = loop.reconcile_once()
            except DdnsError as exc:
                self._logger.error("Updating %s failed: %s", loop.domain, exc)
                results.append(RecordResult(identity=identity, domain=loop.domain, ip_address=None, error=str(exc)))
                continue
            except Exception as exc:  # noqa: BLE001
                self._logger.exception("Unexpected error updating %s: %s", loop.domain, exc)
                error = f"{type(exc).__name__}: {exc}"
                results.append(RecordResult(identity=identity, domain=loop.domain, ip_address=None, error=error))
                continue
            results.append(
                RecordResult(
                    identity=identity,
                    domain=loop.domain,
                    ip_address=outcome.record.content,
                    updated=outcome.updated,
                )
            )

        if not results:
            return CommandResult(success=True, message="No DNS records to update")

        success = all(result.success for result in results)
        parts = []
        for result in results:
            if result.error:
                parts.append(f"{result.domain}: update failed - {result.error}")
            elif result.updated:
                parts.append(f"{result.domain}: updated ({result.ip_address})")
            else:
                parts.append(f"{result.domain}: unchanged ({result.ip_address})")
        return CommandResult(success=success, message="; ".join(parts), results=results)

    def _force_later(self, command: ForceUpdate, loops: list[ReconciliationLoop]) -> CommandResult:
        if not loops:
            return CommandResult(success=True, message="No DNS records to update")

        results: list[RecordResult] = []
        idle: list[str] = []
        for loop in loops:
            identity = str(loop.identity)
            if not loop.running:
                self._logger.warning("Skipping %s, its DDNS loop is not running", loop.domain)
                idle.append(loop.domain)
                results.append(
                    RecordResult(identity=identity, domain=loop.domain, ip_address=None, error="DDNS loop is not running")
                )
                continue
            loop.trigger()
            results.append(RecordResult(identity=identity, domain=loop.domain, ip_address=self._known_ip(loop)))

        if len(idle) == len(loops):
            return CommandResult.missing(NotFoundError(f"No running DDNS loop for {command.describe()}"))

        self._logger.info("DNS update requested for %s (%d loops)", command.describe(), len(loops) - len(idle))
        message = f"DNS update request sent for {command.describe()}"
        if idle:
            message += "; not running: " + ", ".join(idle)
        return CommandResult(success=not idle, message=message, results=results)

    def _known_ip(self, loop: ReconciliationLoop) -> str | None:
        try:
            return loop.last_or_current_ip()
        except DdnsError as exc:
            self._logger.warning("Could not determine the IP of %s: %s", loop.domain, exc)
            return None

    def _restart_all(self) -> CommandResult:
        try:
            configs = list(self._config_source.list_configs())
        except DdnsError as exc:
            self._logger.error("Restart aborted, configuration could not be loaded: %s", exc)
            return CommandResult(success=False, message=f"Restart aborted: {exc}", accepted=False)

        wanted: set[str] = set()
        for config in configs:
            self._registry.create_or_replace(config)
            wanted.add(str(config.identity))

        for identity, _loop in self._registry.list():
            if str(identity) not in wanted:
                self._registry.remove(identity)

        self._logger.info("Restarted %d DDNS loops", len(wanted))
        return CommandResult(success=True, message=f"Restarted {len(wanted)} DDNS loops")

    def _drain(self) -> None:
        while True:
            command = self._queue.get()
            try:
                if command is _SHUTDOWN:
                    return
                if isinstance(command, RestartAll):
                    self._restart_all()
            except Exception as exc:  # noqa: BLE001
                self._logger.exception("Command %r failed: %s", command, exc)
            finally:
                self._queue.task_done()
