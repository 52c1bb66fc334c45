"""Tests for loopback_relay.core.message.emit."""

from __future__ import annotations

import re

import pytest

from loopback_relay.core.message import M, emit, set_enabled


@pytest.fixture(autouse=True)
def _enabled():
    set_enabled(True)
    yield
    set_enabled(True)


def test_emit_prints_code_and_timestamp(capsys: pytest.CaptureFixture[str]) -> None:
    emit(M.RSTR, "Relay listening on 127.0.0.1:3000")

    out = capsys.readouterr().out
    assert re.fullmatch(r"\{RSTR\}\d\d:\d\d:\d\d Relay listening on 127\.0\.0\.1:3000\n", out)


def test_errors_go_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    emit(M.SERR, "boom")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "{SERR}" in captured.err


def test_truncate(capsys: pytest.CaptureFixture[str]) -> None:
    emit(M.SINF, "x" * 20, truncate=5)

    assert "xxxxx... [15 chars]" in capsys.readouterr().out


def test_disabled_emits_nothing(capsys: pytest.CaptureFixture[str]) -> None:
    set_enabled(False)
    emit(M.LSUC, "hidden")

    assert capsys.readouterr().out == ""
