"""Data models and helpers for verification probes."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from ..config import AppConfig
    from ..node_runtime import NodeRuntimeManager
    from ..providers import (
        CertbotProvider,
        FirewallProvider,
        NginxProvider,
        Pm2Provider,
        SystemdProvider,
    )
    from ..runner import CommandRunner
    from ..telegram import TelegramClient
    from ..tls import CertificateInspector


class ProbeStatus(str, Enum):
    """High-level outcome for a probe."""

    OK = "ok"
    WARN = "warn"
    FAIL = "fail"

    @property
    def is_failure(self) -> bool:
        """Return ``True`` when the status represents a failure."""
        return self is ProbeStatus.FAIL

    @property
    def is_warning(self) -> bool:
        """Return ``True`` when the status represents a warning."""
        return self is ProbeStatus.WARN


class DoctorImpact(Enum):
    """Impact tier used to derive the verifier exit code."""

    OK = 0
    VALIDATION = 2
    ENVIRONMENT = 3
    PROVIDER = 4


ProbeCategory = Literal[
    "env",
    "systemd",
    "ports",
    "nginx",
    "app",
    "pm2",
    "logs",
    "tls",
    "http",
    "firewall",
]


@dataclass(slots=True, frozen=True)
class VerifyTarget:
    """What the verifier should look at."""

    site_name: str
    app_dir: Path
    app_port: int
    entry_file: str = "index.js"
    process_name: str | None = None
    domain: str | None = None
    webhook_url: str | None = None
    bot_token: str | None = None
    supabase_url: str | None = None

    @property
    def expect_tls(self) -> bool:
        """Return ``True`` when a domain was supplied for TLS checks."""
        return bool(self.domain)


@dataclass(slots=True, frozen=True)
class ProbeContext:
    """Execution context provided to probes."""

    config: AppConfig
    target: VerifyTarget
    runner: CommandRunner
    node: NodeRuntimeManager
    pm2: Pm2Provider
    nginx: NginxProvider
    systemd: SystemdProvider
    firewall: FirewallProvider
    certbot: CertbotProvider
    tls_inspector: CertificateInspector
    telegram_factory: Callable[[str], TelegramClient]
    is_root: bool = False

    @property
    def http_timeout(self) -> float:
        """Return the bounded timeout for HTTP probes."""
        return self.config.http_timeout


@dataclass(slots=True, frozen=True)
class ProbeResult:
    """Outcome of running a probe."""

    id: str
    category: ProbeCategory
    status: ProbeStatus
    impact: DoctorImpact
    message: str
    remediation: str | None = None
    duration_ms: int | None = None
    data: Mapping[str, Any] | None = None
    warnings: Sequence[str] = field(default_factory=tuple)
    details: Sequence[str] = field(default_factory=tuple)

    @property
    def is_failure(self) -> bool:
        """Return ``True`` when the probe result represents a failure."""
        return self.status.is_failure

    @property
    def is_warning(self) -> bool:
        """Return ``True`` when the probe result represents a warning."""
        return self.status.is_warning


@dataclass(slots=True, frozen=True)
class ProbeDefinition:
    """Metadata + callable for a probe."""

    id: str
    category: ProbeCategory
    run: Callable[[ProbeContext], ProbeResult]


@dataclass(slots=True, frozen=True)
class DoctorSummary:
    """Aggregated summary derived from probe results."""

    status: ProbeStatus
    impact: DoctorImpact
    exit_code: int
    totals: Mapping[ProbeStatus, int]


@dataclass(slots=True, frozen=True)
class DoctorReport:
    """Complete report for a verification run."""

    results: Sequence[ProbeResult]
    summary: DoctorSummary
    metadata: Mapping[str, Any] | None = None


STATUS_ORDER: Mapping[ProbeStatus, int] = {
    ProbeStatus.OK: 0,
    ProbeStatus.WARN: 1,
    ProbeStatus.FAIL: 2,
}


def aggregate_results(results: Iterable[ProbeResult]) -> DoctorSummary:
    """Compute overall status and exit code.

    Only failing probes contribute to the exit code, so any number of
    warnings still exits 0 while a single failure never does.
    """
    totals: dict[ProbeStatus, int] = {status: 0 for status in ProbeStatus}
    worst_impact = DoctorImpact.OK
    worst_status = ProbeStatus.OK
    for result in results:
        totals[result.status] += 1
        if STATUS_ORDER[result.status] > STATUS_ORDER[worst_status]:
            worst_status = result.status
        if not result.is_failure:
            continue
        impact = result.impact if result.impact is not DoctorImpact.OK else DoctorImpact.PROVIDER
        if impact.value > worst_impact.value:
            worst_impact = impact

    return DoctorSummary(
        status=worst_status,
        impact=worst_impact,
        exit_code=worst_impact.value,
        totals=totals,
    )


def build_report(
    results: Sequence[ProbeResult],
    metadata: Mapping[str, Any] | None = None,
) -> DoctorReport:
    """Create a full DoctorReport from probe results."""
    summary = aggregate_results(results)
    return DoctorReport(results=tuple(results), summary=summary, metadata=metadata)
