"""Sequential execution harness for provisioning steps."""
from __future__ import annotations

import logging
import time
import traceback
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace

from ..config import ConfigError
from ..exit_codes import ExitCode
from ..prompts import ConfirmationDeclined
from ..runner import MissingDependencyError
from .models import (
    PipelineContext,
    PipelineReport,
    Step,
    StepFailure,
    StepResult,
    StepSeverity,
    StepStatus,
)

LOGGER = logging.getLogger(__name__)

NOT_RUN = "not run"


def _duration_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _coerce_result(step: Step, result: StepResult, duration_ms: int) -> StepResult:
    coerced = result
    if result.id != step.id:
        coerced = replace(coerced, id=step.id)
    if result.duration_ms is None:
        coerced = replace(coerced, duration_ms=duration_ms)
    if coerced.status is StepStatus.FAILED and coerced.exit_code is ExitCode.OK:
        coerced = replace(coerced, exit_code=ExitCode.PROVIDER)
    return coerced


def _failure(
    step: Step,
    message: str,
    *,
    exit_code: ExitCode,
    hint: str | None,
    duration_ms: int,
    data: Mapping[str, object] | None = None,
) -> StepResult:
    # Missing binaries always surface as failures; other best-effort
    # failures are downgraded to warnings.
    best_effort = step.severity is StepSeverity.BEST_EFFORT
    if best_effort and exit_code is not ExitCode.ENVIRONMENT:
        return StepResult(
            id=step.id,
            status=StepStatus.WARNED,
            message=message,
            hint=hint,
            duration_ms=duration_ms,
            data=dict(data or {}),
        )
    return StepResult(
        id=step.id,
        status=StepStatus.FAILED,
        message=message,
        hint=hint,
        duration_ms=duration_ms,
        data=dict(data or {}),
        exit_code=exit_code,
    )


def _unexpected_failure(step: Step, exc: Exception, duration_ms: int) -> StepResult:
    return _failure(
        step,
        f"Step '{step.id}' raised an unexpected error: {exc}",
        exit_code=ExitCode.PROVIDER,
        hint=None,
        duration_ms=duration_ms,
        data={"exception": repr(exc), "traceback": traceback.format_exc()},
    )


def run_step(step: Step, context: PipelineContext) -> StepResult:
    """Run *step* and translate raised errors into a :class:`StepResult`."""
    start = time.perf_counter()
    try:
        result = step.run(context)
    except StepFailure as exc:
        return _failure(
            step,
            str(exc),
            exit_code=exc.exit_code,
            hint=exc.hint,
            duration_ms=_duration_ms(start),
            data=exc.data,
        )
    except MissingDependencyError as exc:
        return _failure(
            step,
            str(exc),
            exit_code=ExitCode.ENVIRONMENT,
            hint=exc.hint,
            duration_ms=_duration_ms(start),
        )
    except ConfirmationDeclined as exc:
        return _failure(
            step,
            str(exc),
            exit_code=ExitCode.ABORTED,
            hint=None,
            duration_ms=_duration_ms(start),
        )
    except ConfigError as exc:
        return _failure(
            step,
            str(exc),
            exit_code=ExitCode.VALIDATION,
            hint=None,
            duration_ms=_duration_ms(start),
        )
    except RuntimeError as exc:
        return _failure(
            step,
            str(exc),
            exit_code=ExitCode.PROVIDER,
            hint=None,
            duration_ms=_duration_ms(start),
        )
    except Exception as exc:  # noqa: BLE001 - reported as a step failure
        return _unexpected_failure(step, exc, _duration_ms(start))
    result = _coerce_result(step, result, _duration_ms(start))
    if result.status is StepStatus.FAILED and step.severity is StepSeverity.BEST_EFFORT:
        if result.exit_code is not ExitCode.ENVIRONMENT:
            result = replace(result, status=StepStatus.WARNED, exit_code=ExitCode.OK)
    return result


def run_pipeline(
    steps: Sequence[Step],
    context: PipelineContext,
    *,
    on_result: Callable[[Step, StepResult], None] | None = None,
    metadata: Mapping[str, object] | None = None,
) -> PipelineReport:
    """Run *steps* strictly in order.

    A failed fatal step stops the run; the remaining steps are reported as
    skipped. Completed steps are never rolled back.
    """
    start = time.perf_counter()
    results: list[StepResult] = []
    aborted = False
    exit_code: int = ExitCode.OK
    for step in steps:
        if aborted:
            result = StepResult(id=step.id, status=StepStatus.SKIPPED, message=NOT_RUN)
        else:
            LOGGER.info("Running step %s", step.id)
            result = run_step(step, context)
            if result.status is StepStatus.FAILED:
                if exit_code == ExitCode.OK:
                    exit_code = int(result.exit_code)
                if step.severity is StepSeverity.FATAL:
                    aborted = True
        results.append(result)
        if on_result is not None:
            on_result(step, result)

    run_metadata: dict[str, object] = {
        "duration_ms": _duration_ms(start),
        "step_count": len(steps),
        "dry_run": context.dry_run,
    }
    if metadata:
        run_metadata.update(metadata)
    return PipelineReport(
        results=tuple(results),
        aborted=aborted,
        exit_code=exit_code,
        metadata=run_metadata,
    )


__all__ = ["NOT_RUN", "run_pipeline", "run_step"]
