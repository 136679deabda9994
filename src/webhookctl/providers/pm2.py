"""PM2 process manager integration."""
from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from ..runner import CommandError, CommandRunner, describe_output

LOGGER = logging.getLogger(__name__)


class Pm2Error(RuntimeError):
    """Raised when a PM2 command fails."""


@dataclass(slots=True)
class Pm2Process:
    """Subset of ``pm2 jlist`` for a single process."""

    name: str
    pm_id: int | None
    status: str
    restarts: int = 0
    cwd: str | None = None
    raw: dict[str, object] = field(default_factory=dict)

    @property
    def online(self) -> bool:
        """Return True when PM2 reports the process as online."""
        return self.status == "online"


@dataclass(slots=True)
class Pm2Provider:
    """Install PM2 and manage the webhook process."""

    runner: CommandRunner
    pm2_bin: str = "pm2"
    npm_bin: str = "npm"

    def version(self) -> str | None:
        """Return ``pm2 -v`` output, or ``None`` when PM2 is unavailable."""
        if not self.runner.has(self.pm2_bin):
            return None
        try:
            result = self.runner.run([self.pm2_bin, "-v"], read_only=True)
        except CommandError:
            return None
        if result.returncode != 0:
            return None
        lines = [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]
        return lines[-1] if lines else None

    def ensure_installed(self) -> bool:
        """Install PM2 globally unless it already answers; return True if installed."""
        if self.version() is not None:
            return False
        if not self.runner.dry_run:
            self.runner.require(self.npm_bin)
        self._run([self.npm_bin, "i", "-g", "pm2"])
        return True

    def startup(self, user: str, home: Path) -> subprocess.CompletedProcess[str]:
        """Register PM2 with systemd for *user*."""
        return self._run(
            [self.pm2_bin, "startup", "systemd", "-u", user, "--hp", str(home)],
            env={"PATH": _augmented_path()},
        )

    def processes(self) -> list[Pm2Process]:
        """Return processes known to PM2 (``pm2 jlist``)."""
        result = self._run([self.pm2_bin, "jlist"], read_only=True)
        text = (result.stdout or "").strip()
        # pm2 may print banner lines before the JSON array.
        start = text.find("[")
        if start < 0:
            return []
        try:
            payload = json.loads(text[start:])
        except json.JSONDecodeError as exc:
            raise Pm2Error(f"pm2 jlist returned invalid JSON: {exc}") from exc
        processes: list[Pm2Process] = []
        for entry in payload if isinstance(payload, list) else []:
            if not isinstance(entry, dict):
                continue
            env = entry.get("pm2_env") if isinstance(entry.get("pm2_env"), dict) else {}
            pm_id = entry.get("pm_id")
            restarts = env.get("restart_time", 0)
            processes.append(
                Pm2Process(
                    name=str(entry.get("name", "")),
                    pm_id=pm_id if isinstance(pm_id, int) else None,
                    status=str(env.get("status", "unknown")),
                    restarts=restarts if isinstance(restarts, int) else 0,
                    cwd=str(env["pm_cwd"]) if env.get("pm_cwd") else None,
                    raw=entry,
                )
            )
        return processes

    def describe(self, name: str) -> Pm2Process | None:
        """Return the process called *name* or ``None``."""
        for process in self.processes():
            if process.name == name:
                return process
        return None

    def start_or_restart(self, name: str, entry: str, cwd: Path) -> str:
        """Restart *name* when PM2 knows it, otherwise start *entry*.

        Returns ``"restarted"`` or ``"started"``.
        """
        if self.describe(name) is not None:
            self._run([self.pm2_bin, "restart", name], cwd=cwd)
            return "restarted"
        self._run([self.pm2_bin, "start", entry, "--name", name], cwd=cwd)
        return "started"

    def save(self) -> subprocess.CompletedProcess[str]:
        """Persist the process list for resurrection at boot."""
        return self._run([self.pm2_bin, "save"])

    def list_table(self) -> str:
        """Return ``pm2 list`` output."""
        result = self._run([self.pm2_bin, "list"], read_only=True, check=False)
        return result.stdout or ""

    def logs(self, name: str, *, lines: int = 30) -> str:
        """Return the last *lines* of the process logs without streaming."""
        result = self._run(
            [self.pm2_bin, "logs", name, "--lines", str(lines), "--nostream"],
            read_only=True,
        )
        return result.stdout or ""

    # ------------------------------------------------------------------
    def _run(
        self,
        argv: list[str],
        *,
        read_only: bool = False,
        check: bool = True,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = self.runner.run(argv, read_only=read_only, cwd=cwd, env=env)
        except CommandError as exc:
            raise Pm2Error(str(exc)) from exc
        if check and result.returncode != 0:
            raise Pm2Error(
                f"{' '.join(argv)} failed (exit {result.returncode}): {describe_output(result)}"
            )
        return result


def _augmented_path() -> str:
    current = os.environ.get("PATH", "")
    return f"{current}:/usr/bin" if current else "/usr/bin"


__all__ = ["Pm2Error", "Pm2Process", "Pm2Provider"]
