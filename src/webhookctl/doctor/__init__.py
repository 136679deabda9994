"""Read-only verification of a provisioned host."""

from __future__ import annotations

from .engine import DoctorEngine, run_probes
from .models import (
    DoctorImpact,
    DoctorReport,
    DoctorSummary,
    ProbeCategory,
    ProbeContext,
    ProbeDefinition,
    ProbeResult,
    ProbeStatus,
    VerifyTarget,
    aggregate_results,
    build_report,
)
from .probes import collect_probes
from .utils import serialize_report

__all__ = [
    "DoctorEngine",
    "DoctorImpact",
    "DoctorReport",
    "DoctorSummary",
    "ProbeCategory",
    "ProbeContext",
    "ProbeDefinition",
    "ProbeResult",
    "ProbeStatus",
    "VerifyTarget",
    "aggregate_results",
    "build_report",
    "collect_probes",
    "run_probes",
    "serialize_report",
]
