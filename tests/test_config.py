from pathlib import Path

import pytest

from cfddns.config import RecordConfigSource, load_config, load_env_configs
from cfddns.errors import ConfigError, ValidationError
from cfddns.models import DdnsConfig, IpFamily, RecordIdentity

ENV = {
    "CLOUDFLARE_API_TOKEN": "env-token",
    "CLOUDFLARE_ZONE_ID": "zone1",
    "CLOUDFLARE_RECORD_ID": "rec4",
    "CLOUDFLARE_RECORD_NAME": "home.example.com",
    "CLOUDFLARE_RECORD_ID_V6": "rec6",
    "CLOUDFLARE_RECORD_NAME_V6": "home.example.com",
    "DDNS_UPDATE_INTERVAL": "120",
}


def test_env_configs_produce_one_identity_per_family() -> None:
    configs = load_env_configs(ENV)

    assert [c.ip_family for c in configs] == [IpFamily.IPV4, IpFamily.IPV6]
    assert [str(c.identity) for c in configs] == ["zone1-rec4", "zone1-rec6"]
    assert all(c.interval_seconds == 120 for c in configs)


def test_env_configs_empty_without_token() -> None:
    assert load_env_configs({"CLOUDFLARE_ZONE_ID": "zone1"}) == []


def test_file_and_env_records_are_merged(tmp_path: Path) -> None:
    path = tmp_path / "ddns.yml"
    path.write_text(
        """
records:
  - api_token_env: OTHER_TOKEN
    zone_id: zone2
    record_id: rec9
    record_name: vpn.example.org
    ip_type: IPv6
    update_interval: 60
  - zone_id: zone1
    record_id: rec4
    record_name: duplicate.example.com
""",
        encoding="utf-8",
    )
    source = RecordConfigSource(path, environ={**ENV, "OTHER_TOKEN": "other"})

    configs = source.list_configs()

    assert [str(c.identity) for c in configs] == ["zone1-rec4", "zone1-rec6", "zone2-rec9"]
    vpn = configs[-1]
    assert vpn.api_token == "other"
    assert vpn.ip_family is IpFamily.IPV6
    assert vpn.interval_seconds == 60
    assert configs[0].record_name == "home.example.com"


def test_file_is_reread_on_every_call(tmp_path: Path) -> None:
    path = tmp_path / "ddns.yml"
    source = RecordConfigSource(path, environ={})
    assert source.list_configs() == []

    path.write_text(
        "records:\n  - {api_token: t, zone_id: z, record_id: r, record_name: a.example.com}\n",
        encoding="utf-8",
    )
    assert [c.record_name for c in source.list_configs()] == ["a.example.com"]


def test_unknown_ip_type_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "ddns.yml"
    path.write_text(
        "records:\n  - {api_token: t, zone_id: z, record_id: r, record_name: a.example.com, ip_type: ipv5}\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigError, match="ipv5"):
        RecordConfigSource(path, environ={}).list_configs()


def test_malformed_yaml_raises_config_error(tmp_path: Path) -> None:
    path = tmp_path / "ddns.yml"
    path.write_text("records: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigError):
        RecordConfigSource(path, environ={}).list_configs()


def test_ddns_config_validation() -> None:
    with pytest.raises(ValidationError):
        DdnsConfig(api_token="t", zone_id="z", record_id="r", record_name="a.example.com", interval_seconds=0)
    with pytest.raises(ValidationError):
        DdnsConfig(api_token="t", zone_id="", record_id="r", record_name="a.example.com")
    with pytest.raises(ValidationError):
        IpFamily.parse("ipx")

    config = DdnsConfig(api_token="secret", zone_id="z", record_id="r", record_name="a.example.com")
    assert config.identity == RecordIdentity("z", "r")
    assert str(config.identity) == "z-r"
    assert "secret" not in repr(config)


def test_load_config_reads_flags_and_env() -> None:
    config = load_config(
        ["--config", "records.yml", "--once", "--log-level", "debug"],
        environ={"REQUEST_TIMEOUT_SECONDS": "5", "IPV4_SOURCES": "https://a, https://b"},
    )

    assert config.config_path == Path("records.yml")
    assert config.once is True
    assert config.log_level == "DEBUG"
    assert config.request_timeout_seconds == 5
    assert config.ipv4_sources == ["https://a", "https://b"]
    assert config.ipv6_sources


def test_load_config_rejects_bad_timeout() -> None:
    with pytest.raises(ConfigError):
        load_config([], environ={"REQUEST_TIMEOUT_SECONDS": "0"})
