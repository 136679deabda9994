"""Tests for the systemd provider."""
from __future__ import annotations

import pytest
from conftest import FakeRunner

from webhookctl.providers.systemd import SystemdError, SystemdProvider


def test_is_active_reads_state() -> None:
    """Only an ``active`` answer counts as active."""
    runner = FakeRunner()
    runner.respond("systemctl", "is-active", "nginx", stdout="active\n")
    runner.respond("systemctl", "is-active", "ghost", returncode=3, stdout="inactive\n")
    systemd = SystemdProvider(runner=runner)

    assert systemd.is_active("nginx") is True
    assert systemd.is_active("ghost") is False


def test_is_registered_uses_unit_files() -> None:
    """Unit registration is read from ``list-unit-files``."""
    runner = FakeRunner()
    runner.respond(
        "systemctl",
        "list-unit-files",
        "nginx.service",
        stdout="nginx.service enabled enabled\n",
    )
    systemd = SystemdProvider(runner=runner)

    assert systemd.is_registered("nginx") is True
    assert systemd.is_registered("missing") is False


def test_enable_and_restart_raise_on_failure() -> None:
    """Mutating calls raise SystemdError when systemctl fails."""
    runner = FakeRunner()
    runner.respond("systemctl", "restart", returncode=1, stderr="Job failed")
    systemd = SystemdProvider(runner=runner)

    systemd.enable("nginx")
    with pytest.raises(SystemdError, match="Job failed"):
        systemd.restart("nginx")


def test_dry_run_skips_enable() -> None:
    """Dry-run records systemctl calls without running them."""
    runner = FakeRunner(dry_run=True)

    SystemdProvider(runner=runner).enable("nginx")

    assert runner.history == [("systemctl", "enable", "nginx")]
    assert runner.executed == []
