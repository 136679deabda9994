"""Tests for the sequential provisioning harness."""
from __future__ import annotations

from collections.abc import Callable

import pytest

from webhookctl.config import ValidationError
from webhookctl.exit_codes import ExitCode
from webhookctl.pipeline import (
    NOT_RUN,
    PipelineContext,
    Step,
    StepFailure,
    StepResult,
    StepSeverity,
    StepStatus,
    run_pipeline,
    run_step,
)
from webhookctl.prompts import ConfirmationDeclined
from webhookctl.runner import MissingDependencyError


def _step(
    step_id: str,
    action: Callable[[PipelineContext], StepResult],
    severity: StepSeverity = StepSeverity.FATAL,
) -> Step:
    return Step(step_id, step_id.title(), severity, action)


def _ok(status: StepStatus = StepStatus.CHANGED) -> Callable[[PipelineContext], StepResult]:
    def action(ctx: PipelineContext) -> StepResult:
        return StepResult(id="ignored", status=status, message="done")

    return action


def _raise(exc: Exception) -> Callable[[PipelineContext], StepResult]:
    def action(ctx: PipelineContext) -> StepResult:
        raise exc

    return action


def test_steps_run_in_order(pipeline_context: PipelineContext) -> None:
    """Results follow step order and ids come from the step."""
    seen: list[str] = []
    steps = [_step("first", _ok()), _step("second", _ok(StepStatus.UNCHANGED))]

    report = run_pipeline(steps, pipeline_context, on_result=lambda step, _: seen.append(step.id))

    assert seen == ["first", "second"]
    assert [result.id for result in report.results] == ["first", "second"]
    assert report.exit_code == ExitCode.OK
    assert report.aborted is False
    assert report.totals[StepStatus.CHANGED] == 1
    assert all(result.duration_ms is not None for result in report.results)


def test_fatal_failure_skips_remaining_steps(pipeline_context: PipelineContext) -> None:
    """A failed fatal step aborts and later steps are reported as not run."""
    calls: list[str] = []

    def later(ctx: PipelineContext) -> StepResult:
        calls.append("later")
        return StepResult(id="later", status=StepStatus.CHANGED, message="ran")

    steps = [
        _step("ok", _ok()),
        _step("broken", _raise(StepFailure("apt exploded", hint="check apt"))),
        _step("later", later),
        _step("last", later),
    ]

    report = run_pipeline(steps, pipeline_context)

    assert calls == []
    assert report.aborted is True
    assert report.exit_code == ExitCode.PROVIDER
    statuses = [result.status for result in report.results]
    assert statuses == [
        StepStatus.CHANGED,
        StepStatus.FAILED,
        StepStatus.SKIPPED,
        StepStatus.SKIPPED,
    ]
    assert report.results[1].hint == "check apt"
    assert report.results[2].message == NOT_RUN


def test_best_effort_failure_becomes_warning(pipeline_context: PipelineContext) -> None:
    """Best-effort failures warn and the run continues successfully."""
    steps = [
        _step("firewall", _raise(StepFailure("ufw rejected rule")), StepSeverity.BEST_EFFORT),
        _step("next", _ok()),
    ]

    report = run_pipeline(steps, pipeline_context)

    assert report.results[0].status is StepStatus.WARNED
    assert report.results[1].status is StepStatus.CHANGED
    assert report.exit_code == ExitCode.OK


def test_best_effort_missing_dependency_still_fails(pipeline_context: PipelineContext) -> None:
    """Missing tools fail even best-effort steps without aborting."""
    steps = [
        _step("pm2-save", _raise(MissingDependencyError("pm2")), StepSeverity.BEST_EFFORT),
        _step("next", _ok()),
    ]

    report = run_pipeline(steps, pipeline_context)

    failed = report.results[0]
    assert failed.status is StepStatus.FAILED
    assert failed.exit_code is ExitCode.ENVIRONMENT
    assert failed.hint == "sudo npm i -g pm2"
    assert report.results[1].status is StepStatus.CHANGED
    assert report.aborted is False
    assert report.exit_code == ExitCode.ENVIRONMENT


def test_first_failure_decides_exit_code(pipeline_context: PipelineContext) -> None:
    """The earliest failure's exit code is reported."""
    steps = [
        _step("a", _raise(MissingDependencyError("certbot")), StepSeverity.BEST_EFFORT),
        _step("b", _raise(ValidationError("bad domain"))),
    ]

    report = run_pipeline(steps, pipeline_context)

    assert report.results[1].exit_code is ExitCode.VALIDATION
    assert report.exit_code == ExitCode.ENVIRONMENT


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfirmationDeclined("no"), ExitCode.ABORTED),
        (ValidationError("bad"), ExitCode.VALIDATION),
        (RuntimeError("provider"), ExitCode.PROVIDER),
        (KeyError("surprise"), ExitCode.PROVIDER),
    ],
)
def test_exceptions_map_to_exit_codes(
    pipeline_context: PipelineContext,
    exc: Exception,
    expected: ExitCode,
) -> None:
    """Raised errors are classified into exit codes."""
    result = run_step(_step("x", _raise(exc)), pipeline_context)

    assert result.status is StepStatus.FAILED
    assert result.exit_code is expected


def test_unexpected_exception_keeps_traceback(pipeline_context: PipelineContext) -> None:
    """Unexpected errors carry diagnostic data."""
    result = run_step(_step("x", _raise(KeyError("surprise"))), pipeline_context)

    assert "unexpected error" in result.message
    assert "traceback" in result.data


def test_returned_failure_without_exit_code_is_provider(pipeline_context: PipelineContext) -> None:
    """A FAILED result with no exit code is treated as a provider failure."""
    result = run_step(_step("x", _ok(StepStatus.FAILED)), pipeline_context)

    assert result.exit_code is ExitCode.PROVIDER


def test_report_serialises(pipeline_context: PipelineContext) -> None:
    """Reports convert to plain dictionaries."""
    report = run_pipeline([_step("a", _ok())], pipeline_context, metadata={"skip_host": True})

    payload = report.to_dict()

    assert payload["totals"] == {
        "changed": 1,
        "unchanged": 0,
        "skipped": 0,
        "warned": 0,
        "failed": 0,
    }
    metadata = payload["metadata"]
    assert isinstance(metadata, dict)
    assert metadata["skip_host"] is True
    assert metadata["dry_run"] is False
