"""Helpers for the application's ``.env`` secrets file."""
from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

ENV_FILE_MODE = 0o600
REQUIRED_KEYS: tuple[str, ...] = (
    "TELEGRAM_TOKEN",
    "WEBHOOK_URL",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
)


class EnvFileError(RuntimeError):
    """Raised when the secrets file cannot be written or parsed."""


@dataclass(frozen=True)
class EnvEntry:
    """Single line of an env file; ``key`` is ``None`` for raw lines."""

    key: str | None
    value: str
    raw: str


@dataclass(frozen=True)
class EnvWriteResult:
    """Outcome of writing the secrets file."""

    path: Path
    changed: bool
    existed: bool
    skipped: bool = False


def mask_secret(value: str) -> str:
    """Return a partially obscured rendering of *value*.

    Values of six characters or fewer are fully hidden; longer values keep
    their first and last two characters.
    """
    if not value:
        return ""
    if len(value) <= 6:
        return "****"
    return f"{value[:2]}****{value[-2:]}"


def render_env(values: Mapping[str, object]) -> str:
    """Render ``KEY=value`` lines for *values* in insertion order."""
    lines = []
    for key, value in values.items():
        text = "" if value is None else str(value)
        if "\n" in text or "\r" in text:
            raise EnvFileError(f"Value for {key} must not contain newlines.")
        lines.append(f"{key}={text}")
    return "\n".join(lines) + "\n"


def parse_env(text: str) -> list[EnvEntry]:
    """Parse env file *text* preserving comments and blank lines."""
    entries: list[EnvEntry] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in line:
            entries.append(EnvEntry(key=None, value="", raw=line))
            continue
        key, _, value = line.partition("=")
        entries.append(EnvEntry(key=key.strip(), value=value, raw=line))
    return entries


def env_values(entries: Iterable[EnvEntry]) -> dict[str, str]:
    """Return a key to value mapping for parsed *entries*."""
    return {entry.key: entry.value for entry in entries if entry.key is not None}


def masked_lines(text: str, *, limit: int = 200) -> list[str]:
    """Return display lines for *text* with every value masked."""
    rendered: list[str] = []
    for entry in parse_env(text)[:limit]:
        if entry.key is None:
            rendered.append(entry.raw)
        else:
            rendered.append(f"{entry.key}={mask_secret(entry.value)}")
    return rendered


def write_env_file(
    path: Path,
    content: str,
    *,
    owner: tuple[int, int] | None = None,
    overwrite: bool = True,
) -> EnvWriteResult:
    """Atomically write *content* to *path* with owner-only permissions."""
    existed = path.exists()
    if existed:
        try:
            current = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise EnvFileError(f"Unable to read existing {path}: {exc}") from exc
        if current == content:
            _apply_permissions(path, owner)
            return EnvWriteResult(path=path, changed=False, existed=True)
        if not overwrite:
            return EnvWriteResult(path=path, changed=False, existed=True, skipped=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    temp_path = Path(temp_name)
    try:
        os.fchmod(fd, ENV_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        _apply_permissions(temp_path, owner)
        temp_path.replace(path)
    except OSError as exc:
        temp_path.unlink(missing_ok=True)
        raise EnvFileError(f"Unable to write {path}: {exc}") from exc
    return EnvWriteResult(path=path, changed=True, existed=existed)


def _apply_permissions(path: Path, owner: tuple[int, int] | None) -> None:
    path.chmod(ENV_FILE_MODE)
    if owner is not None and os.geteuid() == 0:
        os.chown(path, owner[0], owner[1])


__all__ = [
    "ENV_FILE_MODE",
    "EnvEntry",
    "EnvFileError",
    "EnvWriteResult",
    "REQUIRED_KEYS",
    "env_values",
    "mask_secret",
    "masked_lines",
    "parse_env",
    "render_env",
    "write_env_file",
]
