"""Nginx provider for the webhook reverse-proxy site."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandError, CommandRunner, describe_output
from ..templates import TemplateEngine, write_atomic

LOGGER = logging.getLogger(__name__)

SITE_TEMPLATE = "nginx/site.conf.j2"
SITE_MODE = 0o644


class NginxError(RuntimeError):
    """Raised when nginx operations fail."""

    def __init__(self, message: str, *, output: str = "") -> None:
        """Keep the raw ``nginx`` output for diagnostics."""
        super().__init__(message)
        self.output = output


@dataclass(slots=True)
class NginxRenderResult:
    """Outcome of rendering the nginx site configuration."""

    changed: bool
    path: Path
    enabled_changed: bool = False
    validation: subprocess.CompletedProcess[str] | None = None
    reload: subprocess.CompletedProcess[str] | None = None
    validation_error: str | None = None
    dry_run: bool = False


@dataclass(slots=True)
class NginxProvider:
    """Render, enable, validate and reload the webhook site."""

    templates: TemplateEngine
    runner: CommandRunner
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    nginx_bin: str = "nginx"

    def site_path(self, site_name: str) -> Path:
        """Return the path to the site configuration file."""
        return self.sites_available / site_name

    def enabled_path(self, site_name: str) -> Path:
        """Return the path of the symlink in sites-enabled."""
        return self.sites_enabled / site_name

    def render_preview(self, context: Mapping[str, object]) -> str:
        """Return the site configuration text without touching the filesystem."""
        return self.templates.render_to_string(SITE_TEMPLATE, context)

    def render_site(
        self,
        site_name: str,
        context: Mapping[str, object],
        *,
        reload_on_change: bool = True,
    ) -> NginxRenderResult:
        """Render, enable and validate the site, reloading nginx on success.

        When ``nginx -t`` rejects the new configuration the previous file
        content and mode are restored (or the new file and symlink removed)
        and nginx is not reloaded; ``validation_error`` carries the reason.
        """
        destination = self.site_path(site_name)
        content = self.render_preview(context)

        if self.runner.dry_run:
            current = destination.read_text(encoding="utf-8") if destination.exists() else None
            return NginxRenderResult(
                changed=current != content or not self.is_enabled(site_name),
                path=destination,
                dry_run=True,
            )

        previous: tuple[str, int] | None = None
        if destination.exists():
            previous = (
                destination.read_text(encoding="utf-8"),
                destination.stat().st_mode & 0o7777,
            )
        link_existed = self.is_enabled(site_name)

        changed = self.templates.render_to_path(
            SITE_TEMPLATE,
            destination,
            context,
            mode=SITE_MODE,
        )
        enabled_changed = self.enable(site_name)
        if not changed and not enabled_changed:
            return NginxRenderResult(changed=False, path=destination)

        try:
            validation_result = self.test_config()
        except NginxError as exc:
            LOGGER.warning("nginx rejected %s; restoring previous state", destination)
            if previous is None:
                destination.unlink(missing_ok=True)
            else:
                prior_content, prior_mode = previous
                write_atomic(destination, prior_content, mode=prior_mode)
            if not link_existed:
                self.disable(site_name)
            return NginxRenderResult(
                changed=False,
                path=destination,
                validation_error=exc.output or str(exc),
            )

        reload_result: subprocess.CompletedProcess[str] | None = None
        if reload_on_change:
            reload_result = self.reload()
        return NginxRenderResult(
            changed=changed,
            path=destination,
            enabled_changed=enabled_changed,
            validation=validation_result,
            reload=reload_result,
        )

    def enable(self, site_name: str) -> bool:
        """Ensure the sites-enabled symlink exists; return ``True`` if created."""
        source = self.site_path(site_name)
        target = self.enabled_path(site_name)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() or target.is_symlink():
            try:
                if target.resolve() == source.resolve():
                    return False
            except FileNotFoundError:
                pass
            target.unlink()
        target.symlink_to(source)
        return True

    def disable(self, site_name: str) -> None:
        """Remove the sites-enabled symlink."""
        self.enabled_path(site_name).unlink(missing_ok=True)

    def is_enabled(self, site_name: str) -> bool:
        """Return True when the site is enabled via a sites-enabled symlink."""
        target = self.enabled_path(site_name)
        if not target.is_symlink():
            return False
        try:
            return target.resolve() == self.site_path(site_name).resolve()
        except FileNotFoundError:
            return False

    def diagnostics(self, site_name: str) -> dict[str, object]:
        """Return diagnostic metadata for *site_name*."""
        site_path = self.site_path(site_name)
        enabled_path = self.enabled_path(site_name)
        return {
            "site_path": str(site_path),
            "site_exists": site_path.exists(),
            "enabled_path": str(enabled_path),
            "enabled": self.is_enabled(site_name),
        }

    def test_config(self) -> subprocess.CompletedProcess[str]:
        """Run ``nginx -t`` to validate the configuration."""
        return self._run_nginx(["-t"], read_only=True)

    def reload(self) -> subprocess.CompletedProcess[str]:
        """Reload nginx to apply configuration changes."""
        return self._run_nginx(["-s", "reload"])

    def version(self) -> str | None:
        """Return the nginx version string (``nginx -v`` writes to stderr)."""
        try:
            result = self.runner.run([self.nginx_bin, "-v"], read_only=True)
        except CommandError:
            return None
        text = (result.stderr or result.stdout or "").strip()
        if "/" in text:
            return text.rsplit("/", 1)[-1].strip() or None
        return text or None

    # ------------------------------------------------------------------
    def _run_nginx(
        self,
        args: Sequence[str],
        *,
        read_only: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = self.runner.run([self.nginx_bin, *args], read_only=read_only)
        except CommandError as exc:
            raise NginxError(str(exc), output=exc.output) from exc
        if result.returncode != 0:
            message = describe_output(result)
            raise NginxError(
                f"{self.nginx_bin} {' '.join(args)} failed (exit {result.returncode}): {message}",
                output=message,
            )
        return result


__all__ = ["NginxError", "NginxProvider", "NginxRenderResult", "SITE_TEMPLATE"]
