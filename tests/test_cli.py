"""Tests for policyscan CLI entrypoints."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

import policyscan.main as main
from policyscan.cli import scan as scan_module
from policyscan.runtime.errors import QueryFailure
from policyscan.runtime.job_types import PolicyRecord, PolicyReport


class FakeGpresultQuery:
    """GpresultQuery stand-in that never spawns a process."""

    instances: list = []

    def __init__(self, scope: str = "computer", executable: str = "gpresult") -> None:
        self.scope = scope
        self.executable = executable
        self.calls: list = []
        FakeGpresultQuery.instances.append(self)

    def __call__(self, target, context):
        self.calls.append((target, context.credential))
        if target.startswith("bad"):
            raise QueryFailure(target, "The RPC server is unavailable.", exit_code=1)
        return PolicyReport(
            target=target,
            domain="CORP",
            policies=(PolicyRecord("BitLocker Enforcement"), PolicyRecord("Default Domain Policy")),
        )


@pytest.fixture
def fake_query(monkeypatch: pytest.MonkeyPatch):
    FakeGpresultQuery.instances = []
    monkeypatch.setattr(scan_module, "GpresultQuery", FakeGpresultQuery)
    return FakeGpresultQuery


def parse(*argv: str):
    return main.build_parser().parse_args(["scan", "--poll-interval", "0.01", *argv])


def test_main_dispatches_scan_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Verify that `main` parses args and dispatches scan_command."""

    monkeypatch.setattr(main, "setup_logging", lambda *a, **k: None)

    captured: dict[str, object] = {}

    def fake_scan_command(args) -> int:
        captured["args"] = args
        return 0

    monkeypatch.setattr(main, "scan_command", fake_scan_command)

    argv = [
        "policyscan",
        "scan",
        "ws01",
        "ws02",
        "-t",
        "8",
        "--timeout",
        "30",
        "-m",
        "BitLocker",
        "-m",
        "Firewall",
        "-o",
        str(tmp_path / "report.json"),
    ]
    monkeypatch.setattr(sys, "argv", argv)

    exit_code = main.main()

    assert exit_code == 0
    parsed = captured["args"]
    assert parsed.targets == ["ws01", "ws02"]
    assert parsed.throttle_limit == 8
    assert parsed.timeout == 30
    assert parsed.marker == ["BitLocker", "Firewall"]
    assert parsed.output == str(tmp_path / "report.json")


def test_main_requires_command(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Ensure missing subcommands make the CLI print help and fail."""

    monkeypatch.setattr(main, "setup_logging", lambda *a, **k: None)
    monkeypatch.setattr(sys, "argv", ["policyscan"])

    exit_code = main.main()

    assert exit_code == 1
    assert "Policyscan" in capsys.readouterr().out


@pytest.mark.parametrize("value", ["0", "65536", "abc"])
def test_throttle_limit_range_is_enforced(value: str) -> None:
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(["scan", "ws01", "-t", value])


def test_scan_writes_report(fake_query, tmp_path: Path) -> None:
    """A successful batch exits 0 and writes one report entry per host."""

    output = tmp_path / "report.json"
    args = parse("localhost", "ws01", "WS01", "-m", "bitlocker", "-o", str(output))

    exit_code = scan_module.scan_command(args)

    assert exit_code == 0
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data["summary"]["total"] == 2
    assert [h["target"] for h in data["hosts"]] == ["localhost", "ws01"]
    assert all(h["markers"] == {"bitlocker": True} for h in data["hosts"])


def test_scan_reports_partial_failure(fake_query) -> None:
    """A batch with a failed host exits with the partial-failure code."""

    exit_code = scan_module.scan_command(parse("ws01", "bad01"))

    assert exit_code == scan_module.EXIT_PARTIAL_FAILURE


def test_scan_reads_targets_file(fake_query, tmp_path: Path) -> None:
    hosts = tmp_path / "hosts.txt"
    hosts.write_text("ws01\n# skip\nws02\n", encoding="utf-8")

    exit_code = scan_module.scan_command(parse("ws03", "-f", str(hosts)))

    assert exit_code == 0
    calls = sorted(target for target, _ in fake_query.instances[0].calls)
    assert calls == ["ws01", "ws02", "ws03"]


def test_scan_passes_scope_and_credential(
    fake_query, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Settings flow into the query and the credential skips local hosts."""

    monkeypatch.setenv("SCAN_PASSWORD", "s3cret")
    args = parse(
        "localhost",
        "ws01.invalid",
        "--scope",
        "user",
        "--gpresult",
        "C:\\Windows\\System32\\gpresult.exe",
        "-u",
        "CORP\\svc",
        "--password-env",
        "SCAN_PASSWORD",
    )

    assert scan_module.scan_command(args) == 0

    query = fake_query.instances[0]
    assert query.scope == "user"
    assert query.executable == "C:\\Windows\\System32\\gpresult.exe"
    credentials = dict(query.calls)
    assert credentials["localhost"] is None
    assert credentials["ws01.invalid"].username == "CORP\\svc"
    assert credentials["ws01.invalid"].password == "s3cret"


def test_scan_without_targets_fails(fake_query) -> None:
    assert scan_module.scan_command(parse()) == 1


def test_scan_with_missing_password_env_fails(
    fake_query, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("SCAN_PASSWORD", raising=False)
    args = parse("ws01", "-u", "CORP\\svc", "--password-env", "SCAN_PASSWORD")

    assert scan_module.scan_command(args) == 1
    assert fake_query.instances == []


def test_scan_with_invalid_config_fails(fake_query) -> None:
    args = parse("ws01", "-c", '{"scope": "machine"}')

    assert scan_module.scan_command(args) == 1
