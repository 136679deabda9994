"""Helpers for installing the required Node.js major via NodeSource."""
from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from . import http
from .providers.apt import AptError, AptProvider
from .runner import CommandError, CommandRunner

LOGGER = logging.getLogger(__name__)

NODESOURCE_URL = "https://deb.nodesource.com/setup_{major}.x"


class NodeRuntimeError(RuntimeError):
    """Raised when Node runtime management fails."""


@dataclass(slots=True)
class NodeVersionInfo:
    """Parsed Node version details."""

    raw: str
    version: str
    major: int
    minor: int
    patch: int


@dataclass(slots=True)
class NodeEnsureResult:
    """Outcome of :meth:`NodeRuntimeManager.ensure_major`."""

    major: int
    before: NodeVersionInfo | None
    after: NodeVersionInfo | None
    installation_performed: bool
    dry_run: bool


@dataclass(slots=True)
class NodeRuntimeManager:
    """Detect Node and install a NodeSource major line when needed."""

    runner: CommandRunner
    apt: AptProvider
    node_bin: str = "node"
    npm_bin: str = "npm"
    download_timeout: float = 60.0

    def detect_version(self) -> NodeVersionInfo | None:
        """Return the currently available Node version."""
        if not self.runner.has(self.node_bin):
            return None
        try:
            result = self.runner.run([self.node_bin, "--version"], read_only=True)
        except CommandError:
            return None
        output = (result.stdout or result.stderr or "").strip()
        if result.returncode != 0 or not output:
            return None
        version = output.lstrip("v").strip()
        major, minor, patch = _parse_semver(version)
        return NodeVersionInfo(raw=output, version=version, major=major, minor=minor, patch=patch)

    def npm_version(self) -> str | None:
        """Return ``npm --version`` output when npm is available."""
        if not self.runner.has(self.npm_bin):
            return None
        try:
            result = self.runner.run([self.npm_bin, "--version"], read_only=True)
        except CommandError:
            return None
        output = (result.stdout or "").strip()
        return output or None

    def ensure_major(self, major: int) -> NodeEnsureResult:
        """Ensure Node *major* is installed, upgrading in place if needed."""
        if major <= 0:
            raise NodeRuntimeError(f"Node major must be positive, got {major}.")
        before = self.detect_version()
        if before is not None and before.major == major:
            LOGGER.debug("Node %s already satisfies major %s", before.version, major)
            return NodeEnsureResult(
                major=major,
                before=before,
                after=before,
                installation_performed=False,
                dry_run=self.runner.dry_run,
            )

        if self.runner.dry_run:
            self.runner.run(["bash", f"setup_{major}.x"])
            self.apt.upgrade_packages(["nodejs"])
            return NodeEnsureResult(
                major=major,
                before=before,
                after=before,
                installation_performed=True,
                dry_run=True,
            )

        self._run_setup_script(major)
        try:
            # An installed older major must be upgraded, not skipped.
            self.apt.upgrade_packages(["nodejs"])
        except AptError as exc:
            raise NodeRuntimeError(f"Installing nodejs {major}.x failed: {exc}") from exc

        after = self.detect_version()
        if after is None or after.major != major:
            found = after.version if after else "none"
            raise NodeRuntimeError(
                f"Expected Node {major}.x after installation but found {found}."
            )
        return NodeEnsureResult(
            major=major,
            before=before,
            after=after,
            installation_performed=True,
            dry_run=False,
        )

    # ------------------------------------------------------------------
    def _run_setup_script(self, major: int) -> None:
        url = NODESOURCE_URL.format(major=major)
        try:
            response = http.fetch(url, timeout=self.download_timeout)
        except http.HttpError as exc:
            raise NodeRuntimeError(f"Unable to download NodeSource setup script: {exc}") from exc
        if not response.ok or not response.body:
            raise NodeRuntimeError(
                f"Unable to download NodeSource setup script {url} (HTTP {response.status})."
            )
        with tempfile.TemporaryDirectory(prefix="webhookctl-node-") as tmp:
            script = Path(tmp) / f"setup_{major}.x"
            script.write_bytes(response.body)
            try:
                self.runner.run(
                    ["bash", str(script)],
                    check=True,
                    env={"DEBIAN_FRONTEND": "noninteractive"},
                )
            except CommandError as exc:
                raise NodeRuntimeError(f"NodeSource setup for {major}.x failed: {exc}") from exc


def _parse_semver(value: str) -> tuple[int, int, int]:
    parts = [segment for segment in value.split(".") if segment]
    numbers: list[int] = []
    for segment in parts[:3]:
        try:
            numbers.append(int(segment))
        except ValueError:
            numbers.append(0)
    while len(numbers) < 3:
        numbers.append(0)
    return numbers[0], numbers[1], numbers[2]


__all__ = [
    "NODESOURCE_URL",
    "NodeEnsureResult",
    "NodeRuntimeError",
    "NodeRuntimeManager",
    "NodeVersionInfo",
]
