from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from cfddns.errors import ConfigError, ValidationError
from cfddns.ip_resolver import DEFAULT_IPV4_SOURCES, DEFAULT_IPV6_SOURCES
from cfddns.models import DEFAULT_INTERVAL_SECONDS, DdnsConfig, IpFamily


def _parse_positive_int(name: str, value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be > 0, got {parsed}")
    return parsed


def _parse_sources(raw: str | None, default: list[str]) -> list[str]:
    if raw and raw.strip():
        return [entry.strip() for entry in raw.split(",") if entry.strip()]
    return default.copy()


@dataclass(frozen=True)
class AppConfig:
    config_path: Path
    once: bool
    log_level: str
    request_timeout_seconds: int
    ipv4_sources: list[str]
    ipv6_sources: list[str]
    default_interval_seconds: int = DEFAULT_INTERVAL_SECONDS


def load_config(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(description="Keep Cloudflare DNS records pointed at this host's public IP.")
    parser.add_argument("--config", help="Path to the YAML record file (default from DDNS_CONFIG_PATH or ddns.yml).")
    parser.add_argument("--once", action="store_true", help="Run one reconciliation pass per record and exit.")
    parser.add_argument("--log-level", help="Logging level (default from LOG_LEVEL or INFO).")

    args = parser.parse_args(argv)

    config_path = Path(args.config or env.get("DDNS_CONFIG_PATH", "ddns.yml"))
    timeout = _parse_positive_int("REQUEST_TIMEOUT_SECONDS", env.get("REQUEST_TIMEOUT_SECONDS", "10"))
    interval = _parse_positive_int("DDNS_UPDATE_INTERVAL", env.get("DDNS_UPDATE_INTERVAL", str(DEFAULT_INTERVAL_SECONDS)))

    log_level = (args.log_level or env.get("LOG_LEVEL", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Unknown log level: {log_level}")

    return AppConfig(
        config_path=config_path,
        once=args.once,
        log_level=log_level,
        request_timeout_seconds=timeout,
        ipv4_sources=_parse_sources(env.get("IPV4_SOURCES"), DEFAULT_IPV4_SOURCES),
        ipv6_sources=_parse_sources(env.get("IPV6_SOURCES"), DEFAULT_IPV6_SOURCES),
        default_interval_seconds=interval,
    )


def load_env_configs(environ: Mapping[str, str], default_interval: int = DEFAULT_INTERVAL_SECONDS) -> list[DdnsConfig]:
    token = environ.get("CLOUDFLARE_API_TOKEN")
    zone_id = environ.get("CLOUDFLARE_ZONE_ID")
    if not token or not zone_id:
        return []

    interval = _parse_positive_int("DDNS_UPDATE_INTERVAL", environ.get("DDNS_UPDATE_INTERVAL", str(default_interval)))
    configs: list[DdnsConfig] = []
    for family, id_var, name_var in (
        (IpFamily.IPV4, "CLOUDFLARE_RECORD_ID", "CLOUDFLARE_RECORD_NAME"),
        (IpFamily.IPV6, "CLOUDFLARE_RECORD_ID_V6", "CLOUDFLARE_RECORD_NAME_V6"),
    ):
        record_id = environ.get(id_var)
        record_name = environ.get(name_var)
        if not record_id or not record_name:
            continue
        configs.append(
            DdnsConfig(
                api_token=token,
                zone_id=zone_id,
                record_id=record_id,
                record_name=record_name,
                ip_family=family,
                interval_seconds=interval,
            )
        )
    return configs


def _record_from_entry(
    entry: Any,
    context: str,
    environ: Mapping[str, str],
    default_interval: int,
) -> DdnsConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"{context}: expected a mapping, got {type(entry).__name__}")

    token = entry.get("api_token")
    token_env = entry.get("api_token_env")
    if not token and token_env:
        token = environ.get(str(token_env))
        if not token:
            raise ConfigError(f"{context}: environment variable {token_env} is not set")
    if not token:
        token = environ.get("CLOUDFLARE_API_TOKEN")

    try:
        return DdnsConfig(
            api_token=str(token or ""),
            zone_id=str(entry.get("zone_id", "")),
            record_id=str(entry.get("record_id", "")),
            record_name=str(entry.get("record_name", "")),
            ip_family=IpFamily.parse(entry.get("ip_type", "ipv4")),
            interval_seconds=_parse_positive_int(f"{context}.update_interval", entry.get("update_interval", default_interval)),
        )
    except ValidationError as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"{context}: {exc}") from exc


def load_file_configs(
    path: Path,
    environ: Mapping[str, str],
    default_interval: int = DEFAULT_INTERVAL_SECONDS,
) -> list[DdnsConfig]:
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as handle:
            doc = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed parsing YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed reading {path}: {exc}") from exc

    if doc is None:
        return []
    if not isinstance(doc, dict) or not isinstance(doc.get("records", []), list):
        raise ConfigError(f"{path}: expected a top-level 'records' list")

    return [
        _record_from_entry(entry, f"{path}:records[{index}]", environ, default_interval)
        for index, entry in enumerate(doc.get("records") or [])
    ]


class RecordConfigSource:
    """Environment records first, then the YAML file. Re-read on every call."""

    def __init__(
        self,
        path: Path,
        environ: Mapping[str, str] | None = None,
        default_interval: int = DEFAULT_INTERVAL_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._path = path
        self._environ = os.environ if environ is None else environ
        self._default_interval = default_interval
        self._logger = logger or logging.getLogger(__name__)

    def list_configs(self) -> list[DdnsConfig]:
        configs = load_env_configs(self._environ, self._default_interval)
        configs.extend(load_file_configs(self._path, self._environ, self._default_interval))

        unique: dict[str, DdnsConfig] = {}
        for config in configs:
            key = str(config.identity)
            if key in unique:
                self._logger.warning("Duplicate DNS record %s (%s) ignored", key, config.record_name)
                continue
            unique[key] = config
        return list(unique.values())


class StaticConfigSource:
    def __init__(self, configs: Sequence[DdnsConfig]) -> None:
        self.configs = list(configs)

    def list_configs(self) -> list[DdnsConfig]:
        return list(self.configs)
