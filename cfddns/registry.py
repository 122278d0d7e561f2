from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from cfddns.models import DdnsConfig, RecordIdentity
from cfddns.reconciler import ReconciliationLoop

LoopFactory = Callable[[DdnsConfig], ReconciliationLoop]


class ReadWriteLock:
    """Many concurrent readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ServiceRegistry:
    """Live reconciliation loops keyed by record identity.

    At most one loop per identity. Lookups and snapshots take the read lock;
    inserts and removals take the write lock. Network work always happens
    on handles after the lock has been released. Each identity keeps one
    pass lock for its whole lifetime, so a replacement loop waits for a pass
    still running on the loop it replaced.
    """

    def __init__(
        self,
        loop_factory: LoopFactory,
        logger: logging.Logger | None = None,
        stop_timeout_seconds: float = 5.0,
        autostart: bool = True,
    ) -> None:
        self._loop_factory = loop_factory
        self._logger = logger or logging.getLogger(__name__)
        self._stop_timeout_seconds = stop_timeout_seconds
        self._autostart = autostart
        self._lock = ReadWriteLock()
        self._loops: dict[str, ReconciliationLoop] = {}
        self._pass_locks: dict[str, threading.Lock] = {}

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._loops)

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, (str, RecordIdentity)):
            return False
        return self.find(identity) is not None

    def find(self, identity: RecordIdentity | str) -> ReconciliationLoop | None:
        with self._lock.read():
            return self._loops.get(str(identity))

    def list(self) -> list[tuple[RecordIdentity, ReconciliationLoop]]:
        with self._lock.read():
            return [(loop.identity, loop) for loop in self._loops.values()]

    def create_or_replace(self, config: DdnsConfig) -> ReconciliationLoop:
        key = str(config.identity)
        loop = self._loop_factory(config)
        with self._lock.write():
            loop.share_pass_lock(self._pass_locks.setdefault(key, threading.Lock()))
            previous = self._loops.get(key)
            if previous is not None:
                self._logger.info("Replacing DDNS loop for %s (%s)", key, config.record_name)
                previous.stop()
            self._loops[key] = loop
            if self._autostart:
                loop.start()
        if previous is not None:
            previous.stop(timeout=self._stop_timeout_seconds)
        return loop

    def remove(self, identity: RecordIdentity | str) -> ReconciliationLoop | None:
        with self._lock.write():
            loop = self._loops.pop(str(identity), None)
            if loop is not None:
                loop.stop()
        if loop is not None:
            self._logger.info("Retired DDNS loop for %s (%s)", identity, loop.domain)
            loop.stop(timeout=self._stop_timeout_seconds)
        return loop

    def stop_all(self) -> None:
        with self._lock.write():
            loops = list(self._loops.values())
            self._loops.clear()
            for loop in loops:
                loop.stop()
        for loop in loops:
            loop.stop(timeout=self._stop_timeout_seconds)
        self._logger.info("Stopped %d DDNS loops", len(loops))
