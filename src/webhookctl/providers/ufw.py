"""Firewall management through ``ufw``."""
from __future__ import annotations

import subprocess
from dataclasses import dataclass

from ..runner import CommandError, CommandRunner, describe_output


class FirewallError(RuntimeError):
    """Raised when a ufw command fails."""


@dataclass(slots=True)
class FirewallProvider:
    """Open the ports the webhook needs and enable ufw when inactive."""

    runner: CommandRunner
    ufw_bin: str = "ufw"

    def status(self) -> str:
        """Return ``ufw status`` output."""
        return self._run("status", read_only=True).stdout or ""

    def status_verbose(self) -> str:
        """Return ``ufw status verbose`` output."""
        return self._run("status", "verbose", read_only=True).stdout or ""

    def is_active(self) -> bool:
        """Return True when ufw reports ``Status: active``."""
        return any(
            line.strip().lower() == "status: active" for line in self.status().splitlines()
        )

    def allow(self, rule: str | int) -> subprocess.CompletedProcess[str]:
        """Add an allow rule (port number or application profile)."""
        return self._run("allow", str(rule))

    def enable_if_inactive(self) -> bool:
        """Enable ufw unless already active; return True when it was enabled."""
        if self.is_active():
            return False
        self._run("--force", "enable")
        return True

    # ------------------------------------------------------------------
    def _run(self, *args: str, read_only: bool = False) -> subprocess.CompletedProcess[str]:
        argv = [self.ufw_bin, *args]
        try:
            result = self.runner.run(argv, read_only=read_only)
        except CommandError as exc:
            raise FirewallError(str(exc)) from exc
        if result.returncode != 0:
            raise FirewallError(
                f"{' '.join(argv)} failed (exit {result.returncode}): {describe_output(result)}"
            )
        return result


__all__ = ["FirewallError", "FirewallProvider"]
