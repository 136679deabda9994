"""Data models for the provisioning pipeline."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..exit_codes import ExitCode

if TYPE_CHECKING:
    from rich.console import Console

    from ..accounts import OperatorAccount
    from ..config import AppConfig
    from ..node_runtime import NodeRuntimeManager
    from ..prompts import Prompter
    from ..providers import (
        AptProvider,
        CertbotProvider,
        FirewallProvider,
        NginxProvider,
        Pm2Provider,
        SystemdProvider,
    )
    from ..runner import CommandRunner
    from ..telegram import TelegramClient
    from ..tls import CertificateInspector


class StepSeverity(str, Enum):
    """How a step failure affects the rest of the run."""

    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


class StepStatus(str, Enum):
    """Outcome of a single step."""

    CHANGED = "changed"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    WARNED = "warned"
    FAILED = "failed"


class StepFailure(RuntimeError):
    """Raised by a step to report a classified failure."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        exit_code: ExitCode = ExitCode.PROVIDER,
        data: Mapping[str, Any] | None = None,
    ) -> None:
        """Capture the operator hint and exit code for the failure."""
        super().__init__(message)
        self.hint = hint
        self.exit_code = exit_code
        self.data = dict(data or {})


@dataclass(slots=True, frozen=True)
class StepResult:
    """Outcome of running a step."""

    id: str
    status: StepStatus
    message: str
    hint: str | None = None
    duration_ms: int | None = None
    data: Mapping[str, Any] = field(default_factory=dict)
    exit_code: ExitCode = ExitCode.OK

    @property
    def changed(self) -> bool:
        """Return ``True`` when the step modified the host."""
        return self.status is StepStatus.CHANGED


@dataclass(slots=True)
class PipelineContext:
    """Collaborators and settings shared by every step."""

    config: AppConfig
    runner: CommandRunner
    operator: OperatorAccount
    apt: AptProvider
    node: NodeRuntimeManager
    pm2: Pm2Provider
    firewall: FirewallProvider
    systemd: SystemdProvider
    nginx: NginxProvider
    certbot: CertbotProvider
    tls_inspector: CertificateInspector
    telegram_factory: Callable[[str], TelegramClient]
    prompter: Prompter | None = None
    console: Console | None = None
    overwrite_env: bool = False

    @property
    def dry_run(self) -> bool:
        """Return ``True`` when mutating commands and writes are suppressed."""
        return self.runner.dry_run

    @property
    def interactive(self) -> bool:
        """Return ``True`` when the operator can be asked questions."""
        return self.prompter is not None


@dataclass(slots=True, frozen=True)
class Step:
    """Metadata + callable for a pipeline step."""

    id: str
    title: str
    severity: StepSeverity
    run: Callable[[PipelineContext], StepResult]
    host: bool = False


@dataclass(slots=True, frozen=True)
class PipelineReport:
    """Ordered step results for one provisioning run."""

    results: Sequence[StepResult]
    aborted: bool
    exit_code: int
    metadata: Mapping[str, Any] | None = None

    @property
    def totals(self) -> dict[StepStatus, int]:
        """Return the number of results per status."""
        return count_statuses(self.results)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation of the report."""
        return {
            "aborted": self.aborted,
            "exit_code": self.exit_code,
            "totals": {status.value: count for status, count in self.totals.items()},
            "results": [
                {
                    "id": result.id,
                    "status": result.status.value,
                    "message": result.message,
                    "hint": result.hint,
                    "duration_ms": result.duration_ms,
                    "exit_code": int(result.exit_code),
                }
                for result in self.results
            ],
            "metadata": dict(self.metadata or {}),
        }


def count_statuses(results: Iterable[StepResult]) -> dict[StepStatus, int]:
    """Return per-status totals for *results*."""
    totals = {status: 0 for status in StepStatus}
    for result in results:
        totals[result.status] += 1
    return totals


__all__ = [
    "PipelineContext",
    "PipelineReport",
    "Step",
    "StepFailure",
    "StepResult",
    "StepSeverity",
    "StepStatus",
    "count_statuses",
]
