"""Tests for target list helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from policyscan.utils.targets import normalize_targets, read_targets


def test_normalize_targets_drops_blanks_comments_and_duplicates() -> None:
    targets = ["ws01", "  ws02  ", "", "# comment", "WS01", "ws03 # trailing", "ws02"]

    assert normalize_targets(targets) == ["ws01", "ws02", "ws03"]


def test_normalize_targets_keeps_first_spelling() -> None:
    assert normalize_targets(["DC01.corp", "dc01.CORP"]) == ["DC01.corp"]


def test_read_targets_handles_bom_and_comments(tmp_path: Path) -> None:
    path = tmp_path / "hosts.txt"
    path.write_bytes("\ufeffws01\r\n# lab machines\r\nws02\r\n\r\nws01\r\n".encode("utf-8"))

    assert read_targets(path) == ["ws01", "ws02"]


def test_read_targets_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.txt"
    path.write_text("", encoding="utf-8")

    assert read_targets(str(path)) == []


def test_case_only_duplicates_are_reported(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="policyscan.utils.targets"):
        assert normalize_targets(["HOST01", "host01"]) == ["HOST01"]

    assert "host01" in caplog.text
