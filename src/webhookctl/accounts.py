"""Resolve the non-root operator account that owns the application."""
from __future__ import annotations

import os
import pwd
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class OperatorAccount:
    """Login account that invoked webhookctl (usually through sudo)."""

    name: str
    uid: int | None
    gid: int | None
    home: Path

    @property
    def owner(self) -> tuple[int, int] | None:
        """Return ``(uid, gid)`` when both are known."""
        if self.uid is None or self.gid is None:
            return None
        return (self.uid, self.gid)


def resolve_operator(env: Mapping[str, str] | None = None) -> OperatorAccount:
    """Return the operator account.

    ``SUDO_USER`` wins over the login name so that ``sudo webhookctl ...``
    assigns ownership to the human operator rather than root.
    """
    environ = os.environ if env is None else env
    name = environ.get("SUDO_USER") or _login_name() or environ.get("USER") or _effective_name()
    try:
        entry = pwd.getpwnam(name)
    except KeyError:
        home = Path(environ.get("HOME", "/root"))
        return OperatorAccount(name=name, uid=None, gid=None, home=home)
    return OperatorAccount(
        name=entry.pw_name,
        uid=entry.pw_uid,
        gid=entry.pw_gid,
        home=Path(entry.pw_dir),
    )


def is_root() -> bool:
    """Return ``True`` when running with an effective uid of 0."""
    return os.geteuid() == 0


def _login_name() -> str | None:
    try:
        return os.getlogin()
    except OSError:
        return None


def _effective_name() -> str:
    try:
        return pwd.getpwuid(os.geteuid()).pw_name
    except KeyError:
        return str(os.geteuid())


__all__ = ["OperatorAccount", "is_root", "resolve_operator"]
