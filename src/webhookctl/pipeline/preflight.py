"""Host checks performed before any provisioning step runs."""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path

from ..accounts import is_root

OS_RELEASE = Path("/etc/os-release")
SUPPORTED_OS_IDS = frozenset({"ubuntu", "debian"})


class PreflightError(RuntimeError):
    """Raised when the host cannot be provisioned at all."""


@dataclass(slots=True)
class PreflightReport:
    """Facts about the host gathered before provisioning."""

    os_id: str | None
    is_root: bool
    warnings: list[str] = field(default_factory=list)


def read_os_id(path: Path = OS_RELEASE) -> str | None:
    """Return the ``ID`` field of an os-release file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return None
    for line in text.splitlines():
        key, _, value = line.partition("=")
        if key.strip() == "ID":
            return value.strip().strip('"').strip("'").lower() or None
    return None


def run_preflight(
    *,
    platform: str | None = None,
    os_release: Path = OS_RELEASE,
    root: bool | None = None,
) -> PreflightReport:
    """Inspect the host; raise :class:`PreflightError` on non-Linux systems."""
    platform = platform or sys.platform
    if not platform.startswith("linux"):
        raise PreflightError(f"webhookctl provisions Linux hosts only (detected '{platform}').")

    os_id = read_os_id(os_release)
    report = PreflightReport(os_id=os_id, is_root=is_root() if root is None else root)
    if os_id not in SUPPORTED_OS_IDS:
        report.warnings.append(
            f"Detected OS '{os_id or 'unknown'}'. Proceeding as Debian-based, "
            "but apt may fail."
        )
    if not report.is_root:
        report.warnings.append(
            "Not running as root; package installation and service changes will likely fail."
        )
    return report


__all__ = ["PreflightError", "PreflightReport", "read_os_id", "run_preflight"]
