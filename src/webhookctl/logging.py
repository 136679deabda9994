"""Structured operation logging for webhookctl commands.

Each CLI invocation that touches the host is wrapped in an *operation*. The
operation collects the steps it performed and finishes with a single result
record that is appended, as one JSON object per line, to
``<logs_dir>/operations.jsonl``.

Logging is strictly best-effort: when the log directory cannot be created or
a write fails the logger disables itself and the command carries on.
Values stored under secret-looking keys (tokens, keys, passwords) are redacted
before anything is written.
"""
from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

REDACTED = "***redacted***"
SECRET_MARKERS = ("token", "secret", "password", "service_role", "supabase_key", "api_key")


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SECRET_MARKERS)


def sanitize(value: object) -> object:
    """Return a JSON-safe copy of *value* with secret fields redacted."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        cleaned: dict[str, object] = {}
        for key, item in value.items():
            text_key = str(key)
            if _is_secret_key(text_key) and item not in (None, ""):
                cleaned[text_key] = REDACTED
            else:
                cleaned[text_key] = sanitize(item)
        return cleaned
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Mutable record of a single operation in progress."""

    def __init__(
        self,
        logger: StructuredLogger,
        name: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Start tracking operation *name*."""
        self._logger = logger
        self.name = name
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None
        self._started = time.perf_counter()
        self._started_at = datetime.now(UTC).isoformat()

    def add_step(self, name: str, *, status: str, detail: str | None = None) -> None:
        """Record a step performed during the operation."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._finish("success", message, changed=changed, context=context, rc=0)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._finish(
            "warning",
            message,
            changed=changed,
            context=context,
            warnings=warnings,
            errors=errors,
            rc=0,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        warnings: Sequence[str] | None = None,
        rc: int = 2,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._finish(
            "error",
            message,
            changed=0,
            context=context,
            warnings=warnings,
            errors=list(errors) if errors else [message],
            rc=rc,
        )

    def _finish(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        context: Mapping[str, object] | None,
        rc: int,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "rc": rc,
        }
        if warnings:
            result["warnings"] = list(warnings)
        if errors:
            result["errors"] = list(errors)
        if context:
            result["context"] = sanitize(context)
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON record describing the operation."""
        duration_ms = int((time.perf_counter() - self._started) * 1000)
        return {
            "op": self.name,
            "started_at": self._started_at,
            "duration_ms": duration_ms,
            "user": os.environ.get("SUDO_USER") or os.environ.get("USER"),
            "args": sanitize(self.args),
            "target": sanitize(self.target),
            "steps": sanitize(self.steps),
            "result": self.result,
        }


class StructuredLogger:
    """Append operation records to a JSON lines file."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare *logs_dir*; disable logging when it is not writable."""
        self._logs_dir = Path(logs_dir)
        self._operations_log_path = self._logs_dir / "operations.jsonl"
        self._enabled = True
        try:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Operation logging disabled: %s", exc)
            self._enabled = False

    @property
    def path(self) -> Path:
        """Return the operations log path."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        name: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(self, name, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"Operation interrupted: {exc!r}", rc=1)
            raise
        finally:
            if scope.result is None:
                scope.success("Operation finished.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as exc:
            LOGGER.debug("Disabling operation logging after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "REDACTED", "StructuredLogger", "sanitize"]
