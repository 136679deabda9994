"""APT package management for Debian/Ubuntu hosts."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass

from ..runner import CommandError, CommandRunner

LOGGER = logging.getLogger(__name__)

BASELINE_PACKAGES: tuple[str, ...] = (
    "ca-certificates",
    "gnupg",
    "apt-transport-https",
    "curl",
    "wget",
    "git",
    "unzip",
    "zip",
    "tar",
    "xz-utils",
    "nano",
    "vim",
    "tmux",
    "jq",
    "htop",
    "iotop",
    "iftop",
    "nload",
    "lsof",
    "strace",
    "net-tools",
    "iproute2",
    "dnsutils",
    "rsync",
    "ufw",
    "nginx",
)
EXTRA_NET_PACKAGES: tuple[str, ...] = ("tcpdump", "nmap", "traceroute", "mtr-tiny", "socat")
DEVTOOLS_PACKAGES: tuple[str, ...] = (
    "build-essential",
    "python3",
    "python3-pip",
    "python3-venv",
    "pkg-config",
    "make",
    "gcc",
    "g++",
)
CERTBOT_PACKAGES: tuple[str, ...] = ("certbot", "python3-certbot-nginx")

NONINTERACTIVE_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
APT_OPTIONS: tuple[str, ...] = (
    "-y",
    "-o",
    "Dpkg::Options::=--force-confnew",
    "-o",
    "Dpkg::Options::=--force-confdef",
)


class AptError(RuntimeError):
    """Raised when an apt or dpkg operation fails."""


@dataclass(slots=True)
class AptProvider:
    """Install packages non-interactively, skipping those already present."""

    runner: CommandRunner
    apt_get_bin: str = "apt-get"
    dpkg_query_bin: str = "dpkg-query"

    def update(self) -> subprocess.CompletedProcess[str]:
        """Refresh the package index."""
        return self._apt_get("update")

    def upgrade(self) -> subprocess.CompletedProcess[str]:
        """Upgrade installed packages."""
        return self._apt_get("upgrade")

    def installed(self, package: str) -> bool:
        """Return True when dpkg reports *package* as installed."""
        try:
            result = self.runner.run(
                [self.dpkg_query_bin, "-W", "-f=${Status}", package],
                read_only=True,
            )
        except CommandError as exc:
            raise AptError(str(exc)) from exc
        return result.returncode == 0 and result.stdout.strip().endswith("install ok installed")

    def missing(self, packages: Iterable[str]) -> list[str]:
        """Return the subset of *packages* that is not installed yet."""
        return [package for package in packages if not self.installed(package)]

    def install(self, packages: Iterable[str]) -> list[str]:
        """Install the missing members of *packages*; return what was requested.

        An empty list means every package was already present and no install
        command was issued.
        """
        pending = self.missing(packages)
        if not pending:
            return []
        LOGGER.info("Installing packages: %s", " ".join(pending))
        self._apt_get("install", *pending)
        return pending

    def upgrade_packages(self, packages: Iterable[str]) -> list[str]:
        """Install *packages* unconditionally, upgrading existing versions."""
        requested = list(packages)
        if requested:
            self._apt_get("install", *requested)
        return requested

    # ------------------------------------------------------------------
    def _apt_get(self, command: str, *args: str) -> subprocess.CompletedProcess[str]:
        argv = [self.apt_get_bin, *APT_OPTIONS, command, *args]
        try:
            return self.runner.run(argv, check=True, env=NONINTERACTIVE_ENV)
        except CommandError as exc:
            raise AptError(str(exc)) from exc


__all__ = [
    "AptError",
    "AptProvider",
    "BASELINE_PACKAGES",
    "CERTBOT_PACKAGES",
    "DEVTOOLS_PACKAGES",
    "EXTRA_NET_PACKAGES",
]
