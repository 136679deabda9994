"""Tests for the PM2 provider."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import FakeRunner

from webhookctl.providers.pm2 import Pm2Error, Pm2Provider
from webhookctl.runner import MissingDependencyError

JLIST = json.dumps(
    [
        {
            "name": "telegram-webhook",
            "pm_id": 0,
            "pm2_env": {"status": "online", "restart_time": 2, "pm_cwd": "/var/www/webhook"},
        },
        {"name": "other", "pm_id": 1, "pm2_env": {"status": "stopped"}},
    ]
)


def test_ensure_installed_skips_when_pm2_answers() -> None:
    """PM2 is not reinstalled when ``pm2 -v`` works."""
    runner = FakeRunner(binaries=["pm2", "npm"])
    runner.respond("pm2", "-v", stdout="5.3.1\n")

    assert Pm2Provider(runner=runner).ensure_installed() is False
    assert not runner.ran("npm")


def test_ensure_installed_uses_npm() -> None:
    """A missing PM2 is installed globally through npm."""
    runner = FakeRunner(binaries=["npm"])

    assert Pm2Provider(runner=runner).ensure_installed() is True
    assert runner.ran("npm", "i", "-g", "pm2")


def test_ensure_installed_requires_npm() -> None:
    """Without npm the install cannot proceed."""
    runner = FakeRunner()

    with pytest.raises(MissingDependencyError):
        Pm2Provider(runner=runner).ensure_installed()


def test_processes_parse_jlist_with_banner() -> None:
    """Banner lines before the JSON payload are ignored."""
    runner = FakeRunner(binaries=["pm2"])
    runner.respond("pm2", "jlist", stdout=f">>>> In-memory PM2 is out-of-date\n{JLIST}")
    provider = Pm2Provider(runner=runner)

    process = provider.describe("telegram-webhook")

    assert process is not None
    assert process.online is True
    assert process.restarts == 2
    assert process.cwd == "/var/www/webhook"
    assert provider.describe("missing") is None


def test_start_or_restart(tmp_path: Path) -> None:
    """Known processes are restarted, unknown ones started."""
    runner = FakeRunner(binaries=["pm2"])
    runner.respond("pm2", "jlist", stdout=JLIST)
    provider = Pm2Provider(runner=runner)

    assert provider.start_or_restart("telegram-webhook", "index.js", tmp_path) == "restarted"
    assert provider.start_or_restart("new-bot", "index.js", tmp_path) == "started"
    assert runner.ran("pm2", "restart", "telegram-webhook")
    assert runner.ran("pm2", "start", "index.js", "--name", "new-bot")


def test_startup_targets_operator(tmp_path: Path) -> None:
    """Boot registration names the operator and home directory."""
    runner = FakeRunner(binaries=["pm2"])

    Pm2Provider(runner=runner).startup("deploy", tmp_path)

    assert runner.ran("pm2", "startup", "systemd", "-u", "deploy", "--hp", str(tmp_path))


def test_invalid_jlist_raises() -> None:
    """Garbage JSON surfaces as Pm2Error."""
    runner = FakeRunner(binaries=["pm2"])
    runner.respond("pm2", "jlist", stdout="[not json")

    with pytest.raises(Pm2Error):
        Pm2Provider(runner=runner).processes()


def test_logs_do_not_stream() -> None:
    """Log retrieval never follows the output."""
    runner = FakeRunner(binaries=["pm2"])

    Pm2Provider(runner=runner).logs("telegram-webhook", lines=30)

    assert runner.ran("pm2", "logs", "telegram-webhook", "--lines", "30", "--nostream")
