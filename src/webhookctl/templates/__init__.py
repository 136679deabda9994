"""Jinja2 template engine used to render nginx site configurations."""
from __future__ import annotations

import os
import re
import tempfile
from collections.abc import Mapping
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

_NGINX_UNSAFE = re.compile(r"[\s;{}#'\"\\]")
_PLACEHOLDER = re.compile(r"{{.*?}}|{%.*?%}")


class TemplateError(RuntimeError):
    """Raised when a template cannot be rendered."""


def nginx_value(value: object) -> str:
    """Return *value* escaped for use as an nginx directive argument."""
    text = str(value)
    if text and not _NGINX_UNSAFE.search(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class TemplateEngine:
    """Render built-in templates, optionally shadowed by an override directory."""

    def __init__(self, environment: Environment) -> None:
        """Wrap a configured Jinja2 *environment*."""
        self._env = environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers templates found in *override_dir*."""
        loaders = []
        if override_dir is not None and Path(override_dir).is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("webhookctl", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )
        environment.filters["nginx_value"] = nginx_value
        return cls(environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        try:
            template = self._env.get_template(template_name)
            rendered = template.render(**dict(context))
        except TemplateNotFound as exc:
            raise TemplateError(f"Template '{template_name}' not found.") from exc
        except UndefinedError as exc:
            raise TemplateError(
                f"Template '{template_name}' has an unresolved placeholder: {exc.message}"
            ) from exc
        except TemplateSyntaxError as exc:
            raise TemplateError(f"Template '{template_name}' is invalid: {exc}") from exc
        leftover = _PLACEHOLDER.search(rendered)
        if leftover is not None:
            raise TemplateError(
                f"Template '{template_name}' left placeholder text {leftover.group(0)!r}."
            )
        return rendered

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render into *destination* atomically; return ``True`` when it changed."""
        content = self.render_to_string(template_name, context)
        return write_atomic(destination, content, mode=mode)


def write_atomic(destination: Path, content: str, *, mode: int = 0o644) -> bool:
    """Replace *destination* with *content* unless it is already identical."""
    if destination.exists():
        if destination.read_text(encoding="utf-8") == content:
            if (destination.stat().st_mode & 0o777) != mode:
                destination.chmod(mode)
            return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.", dir=str(destination.parent))
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        temp_path.chmod(mode)
        temp_path.replace(destination)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
    return True


__all__ = ["TemplateEngine", "TemplateError", "nginx_value", "write_atomic"]
