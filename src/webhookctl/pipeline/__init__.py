"""Provisioning pipeline infrastructure."""
from __future__ import annotations

from .engine import NOT_RUN, run_pipeline, run_step
from .models import (
    PipelineContext,
    PipelineReport,
    Step,
    StepFailure,
    StepResult,
    StepSeverity,
    StepStatus,
    count_statuses,
)
from .preflight import PreflightError, PreflightReport, run_preflight
from .steps import APP_STEPS, HOST_STEPS, build_steps, build_vhost_context

__all__ = [
    "APP_STEPS",
    "HOST_STEPS",
    "NOT_RUN",
    "PipelineContext",
    "PipelineReport",
    "PreflightError",
    "PreflightReport",
    "Step",
    "StepFailure",
    "StepResult",
    "StepSeverity",
    "StepStatus",
    "build_steps",
    "build_vhost_context",
    "count_statuses",
    "run_pipeline",
    "run_preflight",
    "run_step",
]
