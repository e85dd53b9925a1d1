"""Tests for scan settings loading and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from policyscan.config import ScanSettings
from policyscan.runtime.config_loader import load_scan_settings
from policyscan.runtime.errors import ConfigError


def test_defaults() -> None:
    settings = load_scan_settings(None)

    assert settings == ScanSettings()
    assert settings.throttle_limit == 32
    assert settings.timeout == 120
    assert settings.show_progress is False
    assert settings.max_outstanding is None
    assert settings.scope == "computer"


def test_toml_file_with_nested_table(tmp_path: Path) -> None:
    path = tmp_path / "scan.toml"
    path.write_text(
        '[policyscan]\nthrottle_limit = 8\ntimeout = 30\nmarkers = ["BitLocker", " "]\n',
        encoding="utf-8",
    )

    settings = load_scan_settings(path)

    assert settings.throttle_limit == 8
    assert settings.timeout == 30
    assert settings.markers == ["BitLocker"]


def test_json_file(tmp_path: Path) -> None:
    path = tmp_path / "scan.json"
    path.write_text(json.dumps({"scope": "User", "show_progress": True}), encoding="utf-8")

    settings = load_scan_settings(str(path))

    assert settings.scope == "user"
    assert settings.show_progress is True


def test_inline_strings() -> None:
    assert load_scan_settings('{"throttle_limit": 4}').throttle_limit == 4
    assert load_scan_settings("timeout = 5").timeout == 5


def test_overrides_take_precedence_and_skip_none() -> None:
    settings = load_scan_settings(
        {"throttle_limit": 4, "timeout": 60},
        overrides={"throttle_limit": 16, "timeout": None},
    )

    assert settings.throttle_limit == 16
    assert settings.timeout == 60


def test_pool_config_conversion() -> None:
    config = ScanSettings(throttle_limit=3, timeout=9, poll_interval=0.5).to_pool_config()

    assert config.concurrency_limit == 3
    assert config.per_job_timeout == 9.0
    assert config.poll_interval == 0.5
    assert config.max_outstanding is None


@pytest.mark.parametrize(
    "data",
    [
        {"throttle_limit": 0},
        {"throttle_limit": 65536},
        {"timeout": 0},
        {"timeout": 70000},
        {"scope": "machine"},
        {"unknown": 1},
    ],
)
def test_invalid_settings_raise_config_error(data) -> None:
    with pytest.raises(ConfigError):
        load_scan_settings(data)


def test_unparseable_source_raises_config_error() -> None:
    with pytest.raises(ConfigError, match="Could not parse"):
        load_scan_settings("{not json")


def test_non_mapping_json_raises_config_error() -> None:
    with pytest.raises(ConfigError, match="mapping"):
        load_scan_settings("[1, 2]")
