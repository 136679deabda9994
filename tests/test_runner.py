"""Tests for the command runner."""
from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from webhookctl.runner import (
    INSTALL_HINTS,
    CommandError,
    CommandRunner,
    MissingDependencyError,
    install_hint,
)

pytestmark = pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")


def test_run_captures_output() -> None:
    """Standard output and return code are captured."""
    runner = CommandRunner()

    result = runner.run(["sh", "-c", "echo hello"])

    assert result.returncode == 0
    assert result.stdout.strip() == "hello"
    assert runner.history == [("sh", "-c", "echo hello")]


def test_check_raises_command_error() -> None:
    """Non-zero exits raise when ``check`` is set, carrying the output."""
    runner = CommandRunner()

    with pytest.raises(CommandError) as excinfo:
        runner.run(["sh", "-c", "echo nope >&2; exit 3"], check=True)

    assert excinfo.value.returncode == 3
    assert excinfo.value.output == "nope"


def test_non_zero_without_check_returns_result() -> None:
    """Without ``check`` the caller inspects the return code."""
    result = CommandRunner().run(["sh", "-c", "exit 2"])

    assert result.returncode == 2


def test_dry_run_skips_mutating_commands(tmp_path: Path) -> None:
    """Dry-run records mutating commands without executing them."""
    marker = tmp_path / "marker"
    runner = CommandRunner(dry_run=True)

    result = runner.run(["sh", "-c", f"touch {marker}"])

    assert result.returncode == 0
    assert not marker.exists()
    assert runner.history == [("sh", "-c", f"touch {marker}")]


def test_dry_run_still_executes_read_only_commands() -> None:
    """Read-only queries run even in dry-run so checks stay accurate."""
    runner = CommandRunner(dry_run=True)

    result = runner.run(["sh", "-c", "echo probe"], read_only=True)

    assert result.stdout.strip() == "probe"


def test_missing_binary_raises_with_hint() -> None:
    """Unknown executables raise MissingDependencyError."""
    runner = CommandRunner()

    with pytest.raises(MissingDependencyError) as excinfo:
        runner.run(["webhookctl-definitely-missing-binary"])

    assert excinfo.value.binary == "webhookctl-definitely-missing-binary"


def test_require_reports_install_hint(monkeypatch: pytest.MonkeyPatch) -> None:
    """``require`` attaches the install hint for known tools."""
    monkeypatch.setattr(CommandRunner, "which", lambda self, binary: None)
    runner = CommandRunner()

    with pytest.raises(MissingDependencyError) as excinfo:
        runner.require("pm2")

    assert excinfo.value.hint == INSTALL_HINTS["pm2"]
    assert "npm i -g pm2" in str(excinfo.value)


@pytest.mark.mutation_timeout
def test_timeout_raises_command_error() -> None:
    """Commands that exceed the timeout never hang the run."""
    runner = CommandRunner()

    with pytest.raises(CommandError, match="timed out"):
        runner.run(["sh", "-c", "sleep 5"], timeout=0.2)


def test_install_hint_lookup() -> None:
    """Known binaries have hints, unknown ones do not."""
    assert install_hint("nginx") == "sudo apt-get install -y nginx"
    assert install_hint("unknown-tool") is None
