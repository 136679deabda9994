"""Systemd provider for host services such as nginx."""
from __future__ import annotations

import subprocess
from dataclasses import dataclass

from ..runner import CommandError, CommandRunner, describe_output


class SystemdError(RuntimeError):
    """Raised when systemd operations fail."""


@dataclass(slots=True)
class SystemdProvider:
    """Query and control systemd units through ``systemctl``."""

    runner: CommandRunner
    systemctl_bin: str = "systemctl"

    def is_active(self, unit: str) -> bool:
        """Return True when *unit* reports ``active``."""
        result = self._systemctl("is-active", unit, check=False, read_only=True)
        return result.returncode == 0 and result.stdout.strip() == "active"

    def is_registered(self, unit: str) -> bool:
        """Return True when systemd knows about *unit*."""
        result = self._systemctl(
            "list-unit-files",
            f"{unit}.service" if "." not in unit else unit,
            "--no-legend",
            check=False,
            read_only=True,
        )
        return result.returncode == 0 and bool(result.stdout.strip())

    def status(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Return ``systemctl status`` output for *unit*."""
        return self._systemctl("status", unit, "--no-pager", check=False, read_only=True)

    def enable(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Enable *unit* at boot."""
        return self._systemctl("enable", unit)

    def restart(self, unit: str) -> subprocess.CompletedProcess[str]:
        """Restart *unit*."""
        return self._systemctl("restart", unit)

    # ------------------------------------------------------------------
    def _systemctl(
        self,
        command: str,
        *args: str,
        check: bool = True,
        read_only: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        argv = [self.systemctl_bin, command, *args]
        try:
            result = self.runner.run(argv, read_only=read_only)
        except CommandError as exc:
            raise SystemdError(str(exc)) from exc
        if check and result.returncode != 0:
            message = describe_output(result)
            raise SystemdError(
                f"{self.systemctl_bin} {command} failed (exit {result.returncode}): {message}"
            )
        return result


__all__ = ["SystemdError", "SystemdProvider"]
