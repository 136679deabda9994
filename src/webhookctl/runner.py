"""Process execution helpers shared by all providers."""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

LOGGER = logging.getLogger(__name__)

# Install hints surfaced when a required binary is missing.
INSTALL_HINTS: Mapping[str, str] = {
    "node": (
        "curl -fsSL https://deb.nodesource.com/setup_<major>.x | sudo -E bash - "
        "&& sudo apt-get install -y nodejs"
    ),
    "npm": "npm ships with Node.js; reinstall the nodejs package.",
    "pm2": "sudo npm i -g pm2",
    "nginx": "sudo apt-get install -y nginx",
    "certbot": "sudo apt-get install -y certbot python3-certbot-nginx",
    "jq": "sudo apt-get install -y jq (optional)",
    "curl": "sudo apt-get install -y curl",
    "ss": "sudo apt-get install -y iproute2",
    "netstat": "sudo apt-get install -y net-tools",
    "ufw": "sudo apt-get install -y ufw",
    "apt-get": "webhookctl supports Debian/Ubuntu hosts only.",
    "systemctl": "systemd is required to manage the nginx service.",
}


class CommandError(RuntimeError):
    """Raised when an external command fails or times out."""

    def __init__(
        self,
        message: str,
        *,
        args: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        """Capture the failing command alongside the message."""
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode
        self.output = output


class MissingDependencyError(RuntimeError):
    """Raised when a required executable is not available on PATH."""

    def __init__(self, binary: str, hint: str | None = None) -> None:
        """Record the missing *binary* and an optional install hint."""
        self.binary = binary
        self.hint = hint if hint is not None else INSTALL_HINTS.get(binary)
        message = f"Missing required command '{binary}'."
        if self.hint:
            message += f" Hint: {self.hint}"
        super().__init__(message)


def install_hint(binary: str) -> str | None:
    """Return the install hint for *binary* when one is known."""
    return INSTALL_HINTS.get(binary)


def describe_output(result: subprocess.CompletedProcess[str]) -> str:
    """Return the most useful trimmed output of *result*."""
    stdout = (getattr(result, "stdout", "") or "").strip()
    stderr = (getattr(result, "stderr", "") or "").strip()
    return stderr or stdout or "no output"


@dataclass(slots=True)
class CommandRunner:
    """Execute external processes, optionally in dry-run mode.

    Read-only commands (status queries, version probes) always execute so
    that idempotency checks stay accurate. Mutating commands are recorded but
    skipped when ``dry_run`` is enabled.
    """

    dry_run: bool = False
    default_timeout: float | None = 900.0
    history: list[tuple[str, ...]] = field(default_factory=list)

    def which(self, binary: str) -> str | None:
        """Return the resolved path of *binary* or ``None``."""
        path = Path(binary)
        if path.is_absolute():
            return str(path) if path.exists() and os.access(path, os.X_OK) else None
        return shutil.which(binary)

    def has(self, binary: str) -> bool:
        """Return ``True`` when *binary* is executable."""
        return self.which(binary) is not None

    def require(self, binary: str) -> str:
        """Return the path of *binary* or raise :class:`MissingDependencyError`."""
        resolved = self.which(binary)
        if resolved is None:
            raise MissingDependencyError(binary)
        return resolved

    def run(
        self,
        args: Sequence[str],
        *,
        read_only: bool = False,
        check: bool = False,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        input: str | None = None,  # noqa: A002 - mirrors subprocess.run
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run *args* and return the completed process."""
        command = [str(item) for item in args]
        self.history.append(tuple(command))
        if self.dry_run and not read_only:
            LOGGER.debug("dry-run: %s", " ".join(command))
            return subprocess.CompletedProcess(command, returncode=0, stdout="", stderr="")

        merged_env: dict[str, str] | None = None
        if env is not None:
            merged_env = dict(os.environ)
            merged_env.update(env)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        LOGGER.debug("exec: %s", " ".join(command))
        try:
            result = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                check=False,
                cwd=str(cwd) if cwd is not None else None,
                env=merged_env,
                input=input,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise MissingDependencyError(command[0]) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(
                f"{' '.join(command)} timed out after {effective_timeout}s",
                args=command,
            ) from exc

        if check and result.returncode != 0:
            message = describe_output(result)
            raise CommandError(
                f"{' '.join(command)} failed (exit {result.returncode}): {message}",
                args=command,
                returncode=result.returncode,
                output=message,
            )
        return result


__all__ = [
    "CommandError",
    "CommandRunner",
    "INSTALL_HINTS",
    "MissingDependencyError",
    "describe_output",
    "install_hint",
]
