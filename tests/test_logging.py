"""Tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from webhookctl.logging import REDACTED, StructuredLogger, sanitize


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    lines = logger.path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger.path

    original_open = Path.open

    def fail_open(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_open)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo-2") as op:
        op.success("done", changed=0)


def test_operation_record_contains_steps_and_result(tmp_path: Path) -> None:
    """Each operation is persisted as one JSON line."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("provision", args={"domain": "example.com"}, target={"kind": "host"}) as op:
        op.add_step("nginx-vhost", status="changed", detail="rendered")
        op.success("Provisioning complete.", changed=1)

    (record,) = _records(logger)
    assert record["op"] == "provision"
    assert record["args"] == {"domain": "example.com"}
    assert record["target"] == {"kind": "host"}
    assert record["steps"] == [{"name": "nginx-vhost", "status": "changed", "detail": "rendered"}]
    assert record["result"] == {
        "status": "success",
        "message": "Provisioning complete.",
        "changed": 1,
        "rc": 0,
    }


def test_secret_arguments_are_redacted(tmp_path: Path) -> None:
    """Token-like keys never reach the log file."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("webhook set", args={"token": "123456:SECRET", "url": "https://x"}) as op:
        op.success("ok", context={"env": {"SUPABASE_SERVICE_ROLE_KEY": "key-value"}})

    text = logger.path.read_text(encoding="utf-8")
    assert "123456:SECRET" not in text
    assert "key-value" not in text
    (record,) = _records(logger)
    assert record["args"] == {"token": REDACTED, "url": "https://x"}


def test_exception_inside_operation_records_error(tmp_path: Path) -> None:
    """An exception escaping the scope is logged as an interrupted operation."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError):
        with logger.operation("demo"):
            raise RuntimeError("boom")

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert result["rc"] == 1


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors default to the message and context is made JSON-safe."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("demo") as op:
        op.error("boom", errors=None, context={"value": {1, 2}, "path": Path("/srv")})

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["errors"] == ["boom"]
    assert result["context"] == {"value": "{1, 2}", "path": "/srv"}


def test_sanitize_keeps_empty_secrets_visible() -> None:
    """Empty secret values are left as-is so missing tokens stay diagnosable."""
    assert sanitize({"bot_token": "", "password": None, "name": "x"}) == {
        "bot_token": "",
        "password": None,
        "name": "x",
    }
