from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import Any, Callable

from cfddns.cloudflare_client import CloudflareClient, ZoneRecordUpdater
from cfddns.commands import CommandBus, DeliveryMode, ForceUpdate, RestartAll
from cfddns.config import AppConfig, RecordConfigSource, load_config
from cfddns.errors import DdnsError
from cfddns.ip_resolver import IpResolver
from cfddns.logging_setup import setup_logging
from cfddns.models import DdnsConfig
from cfddns.reconciler import ReconciliationLoop
from cfddns.registry import ServiceRegistry
from cfddns.state_store import MemoryStateStore, StateStore


def build_loop_factory(
    config: AppConfig,
    state_store: StateStore,
    logger: logging.Logger,
    ip_resolver: IpResolver | None = None,
    client_factory: Callable[[str], Any] | None = None,
) -> Callable[[DdnsConfig], ReconciliationLoop]:
    resolver = ip_resolver or IpResolver(
        ipv4_sources=config.ipv4_sources,
        ipv6_sources=config.ipv6_sources,
        timeout_seconds=config.request_timeout_seconds,
        logger=logger,
    )
    make_client = client_factory or (
        lambda token: CloudflareClient(
            api_token=token,
            timeout_seconds=config.request_timeout_seconds,
            logger=logger,
        )
    )
    clients: dict[str, Any] = {}
    clients_lock = threading.Lock()

    def factory(ddns_config: DdnsConfig) -> ReconciliationLoop:
        with clients_lock:
            client = clients.get(ddns_config.api_token)
            if client is None:
                client = clients[ddns_config.api_token] = make_client(ddns_config.api_token)
        return ReconciliationLoop(
            config=ddns_config,
            ip_resolver=resolver,
            dns_updater=ZoneRecordUpdater(client, ddns_config.zone_id),
            state_store=state_store,
            logger=logger,
        )

    return factory


def run_once(
    configs: list[DdnsConfig],
    loop_factory: Callable[[DdnsConfig], ReconciliationLoop],
    logger: logging.Logger,
) -> int:
    failures = 0
    updates = 0
    for ddns_config in configs:
        loop = loop_factory(ddns_config)
        try:
            outcome = loop.reconcile_once()
        except DdnsError as exc:
            failures += 1
            logger.error("Failed to update %s DNS record %s: %s", ddns_config.ip_family, ddns_config.record_name, exc)
            continue
        if outcome.updated:
            updates += 1
            logger.info("Updated %s -> %s", ddns_config.record_name, outcome.record.content)
        else:
            logger.info("No change for %s (%s)", ddns_config.record_name, outcome.record.content)

    logger.info(
        "Update cycle completed. records=%d updates=%d failures=%d",
        len(configs),
        updates,
        failures,
    )
    return 1 if failures else 0


class SignalRequests:
    """Flags raised by signal handlers and consumed by the main loop.

    Handlers run on the main thread between bytecodes, possibly while it
    holds the registry or bus locks, so they only set events here.
    """

    def __init__(self) -> None:
        self.shutdown = threading.Event()
        self.force = threading.Event()
        self.restart = threading.Event()


def install_signal_handlers(pending: SignalRequests) -> None:
    def stop_handler(signum: int, frame: Any) -> None:
        pending.shutdown.set()

    def restart_handler(signum: int, frame: Any) -> None:
        pending.restart.set()

    def force_handler(signum: int, frame: Any) -> None:
        pending.force.set()

    signal.signal(signal.SIGTERM, stop_handler)
    signal.signal(signal.SIGINT, stop_handler)
    signal.signal(signal.SIGHUP, restart_handler)
    signal.signal(signal.SIGUSR1, force_handler)


def dispatch_signal_requests(bus: CommandBus, pending: SignalRequests, logger: logging.Logger) -> None:
    if pending.restart.is_set():
        pending.restart.clear()
        logger.info("Received SIGHUP, restarting DDNS loops")
        bus.submit(RestartAll(), DeliveryMode.FIRE_AND_FORGET)
    if pending.force.is_set():
        pending.force.clear()
        logger.info("Received SIGUSR1, forcing DNS update of all records")
        bus.submit(ForceUpdate.all(), DeliveryMode.FIRE_AND_FORGET)


def main(argv: list[str] | None = None) -> int:
    try:
        config = load_config(argv=argv)
    except DdnsError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)
    logger = logging.getLogger("cfddns")

    source = RecordConfigSource(config.config_path, default_interval=config.default_interval_seconds, logger=logger)
    try:
        configs = source.list_configs()
    except DdnsError as exc:
        logger.error("Failed to load DNS record configuration: %s", exc)
        return 2
    if not configs:
        logger.error("No DDNS records configured in environment or %s", config.config_path)
        return 1

    logger.info("Loaded %d DDNS record configurations (once=%s)", len(configs), config.once)
    state_store = MemoryStateStore()
    loop_factory = build_loop_factory(config, state_store, logger)

    if config.once:
        return run_once(configs, loop_factory, logger)

    registry = ServiceRegistry(loop_factory, logger=logger)
    bus = CommandBus(registry, source, logger=logger)
    signal_requests = SignalRequests()
    install_signal_handlers(signal_requests)

    bus.start()
    for ddns_config in configs:
        registry.create_or_replace(ddns_config)

    try:
        while not signal_requests.shutdown.wait(timeout=1.0):
            dispatch_signal_requests(bus, signal_requests, logger)
        logger.info("Shutdown requested, stopping DDNS loops")
    finally:
        bus.stop()
        registry.stop_all()
    logger.info("DDNS service stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
