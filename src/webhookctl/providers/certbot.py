"""Let's Encrypt certificates through ``certbot``."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from ..runner import CommandError, CommandRunner, describe_output

LOGGER = logging.getLogger(__name__)


class CertbotError(RuntimeError):
    """Raised when certbot fails."""


@dataclass(slots=True)
class CertbotProvider:
    """Request and renew certificates with the nginx authenticator.

    Certificates are obtained with ``certonly`` so that certbot never edits
    the managed vhost; the TLS server block is rendered by webhookctl.
    """

    runner: CommandRunner
    certbot_bin: str = "certbot"
    renew_attempts: int = 2

    def available(self) -> bool:
        """Return True when certbot is installed."""
        return self.runner.has(self.certbot_bin)

    def request(self, domain: str, email: str) -> subprocess.CompletedProcess[str]:
        """Obtain (or keep) a certificate for *domain*."""
        self.runner.require(self.certbot_bin)
        return self._run(
            [
                "certonly",
                "--nginx",
                "-d",
                domain,
                "-m",
                email,
                "--agree-tos",
                "--non-interactive",
                "--keep-until-expiring",
            ]
        )

    def renew_dry_run(self) -> subprocess.CompletedProcess[str]:
        """Exercise renewal without changing certificates, retrying once."""
        self.runner.require(self.certbot_bin)
        for attempt in range(1, self.renew_attempts):
            try:
                return self._run(["renew", "--dry-run"])
            except CertbotError as exc:
                LOGGER.info("certbot renew --dry-run attempt %s failed: %s", attempt, exc)
        return self._run(["renew", "--dry-run"])

    def certificates(self, domain: str) -> str:
        """Return the ``certbot certificates`` block that mentions *domain*."""
        result = self._run(["certificates"], read_only=True)
        return _filter_block(result.stdout or "", domain)

    # ------------------------------------------------------------------
    def _run(self, args: list[str], *, read_only: bool = False) -> subprocess.CompletedProcess[str]:
        argv = [self.certbot_bin, *args]
        try:
            result = self.runner.run(argv, read_only=read_only)
        except CommandError as exc:
            raise CertbotError(str(exc)) from exc
        if result.returncode != 0:
            raise CertbotError(
                f"certbot {' '.join(args)} failed (exit {result.returncode}): "
                f"{describe_output(result)}"
            )
        return result


def _filter_block(text: str, domain: str) -> str:
    """Return lines from the first mention of *domain* up to the next separator."""
    collected: list[str] = []
    capturing = False
    for line in text.splitlines():
        if not capturing and domain in line:
            capturing = True
        if capturing:
            collected.append(line)
            if line.strip().startswith("----") and len(collected) > 1:
                break
    return "\n".join(collected)


__all__ = ["CertbotError", "CertbotProvider"]
