"""Provisioning steps, in execution order."""
from __future__ import annotations

import os
from collections.abc import Sequence

from ..config import ProvisioningConfig
from ..envfile import render_env, write_env_file
from ..exit_codes import ExitCode
from ..prompts import ConfirmationDeclined
from ..providers.apt import (
    BASELINE_PACKAGES,
    CERTBOT_PACKAGES,
    DEVTOOLS_PACKAGES,
    EXTRA_NET_PACKAGES,
)
from ..providers.certbot import CertbotError
from ..runner import INSTALL_HINTS, CommandError
from ..telegram import TelegramError
from ..tls import TLSMaterial
from .models import PipelineContext, Step, StepFailure, StepResult, StepSeverity, StepStatus

UPSTREAM_HOST = "localhost"
HTTP_PORT = 80
HTTPS_PORT = 443


def build_vhost_context(
    app: ProvisioningConfig,
    material: TLSMaterial | None = None,
) -> dict[str, object]:
    """Return the template context for the webhook vhost.

    The TLS server block is only rendered when SSL is requested and the
    certificate already exists, so nginx never references missing files.
    """
    tls_enabled = bool(app.enable_ssl and material is not None and material.present)
    return {
        "server_name": app.domain,
        "upstream_host": UPSTREAM_HOST,
        "upstream_port": app.app_port,
        "http_listen_port": HTTP_PORT,
        "https_listen_port": HTTPS_PORT,
        "tls": {
            "enabled": tls_enabled,
            "certificate": str(material.certificate) if material else "",
            "certificate_key": str(material.key) if material else "",
        },
    }


def _result(step_id: str, status: StepStatus, message: str, **kwargs: object) -> StepResult:
    return StepResult(id=step_id, status=status, message=message, **kwargs)  # type: ignore[arg-type]


def _pending_binary(ctx: PipelineContext, step_id: str, binary: str) -> StepResult | None:
    """In dry-run, report a step whose tool an earlier step would install."""
    if ctx.dry_run and not ctx.runner.has(binary):
        return _result(
            step_id,
            StepStatus.CHANGED,
            f"dry-run: would run once '{binary}' is installed.",
        )
    return None


# ---------------------------------------------------------------------------
# Host bootstrap
# ---------------------------------------------------------------------------


def _system_update(ctx: PipelineContext) -> StepResult:
    ctx.apt.update()
    upgrade = ctx.apt.upgrade()
    if ctx.dry_run:
        return _result("system-update", StepStatus.CHANGED, "dry-run: would update and upgrade.")
    if "0 upgraded, 0 newly installed" in (upgrade.stdout or ""):
        return _result("system-update", StepStatus.UNCHANGED, "Packages already up to date.")
    return _result("system-update", StepStatus.CHANGED, "Package index refreshed and upgraded.")


def _install_group(ctx: PipelineContext, step_id: str, packages: Sequence[str]) -> StepResult:
    installed = ctx.apt.install(packages)
    if not installed:
        return _result(
            step_id,
            StepStatus.UNCHANGED,
            f"All {len(packages)} package(s) already installed.",
        )
    verb = "would install" if ctx.dry_run else "installed"
    return _result(
        step_id,
        StepStatus.CHANGED,
        f"{verb}: {' '.join(installed)}",
        data={"packages": list(installed)},
    )


def _packages_baseline(ctx: PipelineContext) -> StepResult:
    return _install_group(ctx, "packages-baseline", BASELINE_PACKAGES)


def _packages_extra_net(ctx: PipelineContext) -> StepResult:
    if not ctx.config.host.install_extra_net:
        return _result("packages-extra-net", StepStatus.SKIPPED, "Disabled (INSTALL_EXTRA_NET=no).")
    return _install_group(ctx, "packages-extra-net", EXTRA_NET_PACKAGES)


def _packages_devtools(ctx: PipelineContext) -> StepResult:
    if not ctx.config.host.install_devtools:
        return _result("packages-devtools", StepStatus.SKIPPED, "Disabled (INSTALL_DEVTOOLS=no).")
    return _install_group(ctx, "packages-devtools", DEVTOOLS_PACKAGES)


def _node_runtime(ctx: PipelineContext) -> StepResult:
    major = ctx.config.host.node_major
    outcome = ctx.node.ensure_major(major)
    if not outcome.installation_performed:
        version = outcome.after.version if outcome.after else "?"
        npm = ctx.node.npm_version() or "missing"
        return _result(
            "node-runtime",
            StepStatus.UNCHANGED,
            f"Node {version} already matches {major}.x (npm {npm}).",
        )
    if outcome.dry_run:
        return _result("node-runtime", StepStatus.CHANGED, f"dry-run: would install Node {major}.x.")
    version = outcome.after.version if outcome.after else "?"
    npm = ctx.node.npm_version() or "missing"
    return _result(
        "node-runtime",
        StepStatus.CHANGED,
        f"Installed Node {version} (npm {npm}).",
        data={"before": outcome.before.version if outcome.before else None},
    )


def _pm2_install(ctx: PipelineContext) -> StepResult:
    if ctx.pm2.ensure_installed():
        return _result("pm2-install", StepStatus.CHANGED, "Installed PM2 globally.")
    return _result("pm2-install", StepStatus.UNCHANGED, f"PM2 {ctx.pm2.version()} present.")


def _pm2_startup(ctx: PipelineContext) -> StepResult:
    pending = _pending_binary(ctx, "pm2-startup", "pm2")
    if pending is not None:
        return pending
    operator = ctx.operator
    ctx.pm2.startup(operator.name, operator.home)
    return _result(
        "pm2-startup",
        StepStatus.CHANGED,
        f"PM2 registered with systemd for {operator.name}.",
        hint=f"Re-run 'pm2 startup systemd -u {operator.name} --hp {operator.home}' if needed.",
    )


def _firewall(ctx: PipelineContext) -> StepResult:
    pending = _pending_binary(ctx, "firewall", "ufw")
    if pending is not None:
        return pending
    rules = [ctx.config.host.admin_rule, str(HTTP_PORT), str(HTTPS_PORT)]
    for rule in rules:
        ctx.firewall.allow(rule)
    if ctx.firewall.enable_if_inactive():
        return _result(
            "firewall",
            StepStatus.CHANGED,
            f"Allowed {', '.join(rules)}; ufw enabled.",
        )
    return _result(
        "firewall",
        StepStatus.UNCHANGED,
        f"Allowed {', '.join(rules)}; ufw already active.",
    )


def _certbot_install(ctx: PipelineContext) -> StepResult:
    if not ctx.config.host.install_ssl:
        return _result("certbot-install", StepStatus.SKIPPED, "Disabled (INSTALL_SSL=no).")
    return _install_group(ctx, "certbot-install", CERTBOT_PACKAGES)


def _nginx_service(ctx: PipelineContext) -> StepResult:
    ctx.systemd.enable("nginx")
    ctx.systemd.restart("nginx")
    return _result("nginx-service", StepStatus.CHANGED, "nginx enabled and restarted.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def _render_vhost(ctx: PipelineContext, step_id: str) -> StepResult:
    app = ctx.config.app
    material = ctx.tls_inspector.material_for(app.domain)
    context = build_vhost_context(app, material)
    outcome = ctx.nginx.render_site(app.site_name, context)
    if outcome.validation_error:
        raise StepFailure(
            f"nginx rejected the new site configuration: {outcome.validation_error}",
            hint="Previous configuration kept and nginx not reloaded; inspect 'nginx -t'.",
            exit_code=ExitCode.PROVIDER,
        )
    tls_note = " with TLS" if context["tls"]["enabled"] else ""  # type: ignore[index]
    if outcome.dry_run:
        status = StepStatus.CHANGED if outcome.changed else StepStatus.UNCHANGED
        return _result(step_id, status, f"dry-run: {outcome.path} would be rendered{tls_note}.")
    if outcome.changed or outcome.enabled_changed:
        return _result(
            step_id,
            StepStatus.CHANGED,
            f"Rendered {outcome.path}{tls_note}; nginx validated and reloaded.",
        )
    return _result(step_id, StepStatus.UNCHANGED, f"{outcome.path} already up to date.")


def _nginx_vhost(ctx: PipelineContext) -> StepResult:
    return _render_vhost(ctx, "nginx-vhost")


def _tls_certificate(ctx: PipelineContext) -> StepResult:
    app = ctx.config.app
    if not app.enable_ssl:
        return _result("tls-certificate", StepStatus.SKIPPED, "SSL not requested.")
    if not ctx.certbot.available():
        if ctx.dry_run:
            return _result(
                "tls-certificate",
                StepStatus.CHANGED,
                f"dry-run: would request a certificate for {app.domain}.",
            )
        raise StepFailure(
            "certbot is not installed.",
            hint=INSTALL_HINTS["certbot"],
            exit_code=ExitCode.ENVIRONMENT,
        )
    try:
        ctx.certbot.request(app.domain, app.admin_email)
    except CertbotError as exc:
        raise StepFailure(
            f"Certificate request failed, keeping HTTP-only vhost: {exc}",
            hint=f"Check DNS for {app.domain} and retry 'webhookctl provision --skip-host'.",
        ) from exc
    if ctx.dry_run:
        return _result(
            "tls-certificate",
            StepStatus.CHANGED,
            f"dry-run: would request a certificate for {app.domain}.",
        )

    try:
        vhost = _render_vhost(ctx, "tls-certificate")
    except StepFailure as exc:
        raise StepFailure(
            f"Certificate issued but the TLS vhost was rejected, keeping HTTP-only vhost: {exc}",
            hint=exc.hint,
        ) from exc
    messages = [f"Certificate ready for {app.domain}.", vhost.message]
    status = StepStatus.CHANGED
    try:
        ctx.certbot.renew_dry_run()
    except CertbotError as exc:
        messages.append(f"Renewal dry-run failed: {exc}")
        status = StepStatus.WARNED
    else:
        messages.append("Renewal dry-run succeeded.")
    return _result("tls-certificate", status, " ".join(messages))


def _app_directory(ctx: PipelineContext) -> StepResult:
    app_dir = ctx.config.app.app_dir
    operator = ctx.operator
    if not app_dir.exists():
        if ctx.prompter is not None and not ctx.prompter.confirm(
            f"{app_dir} does not exist. Create it?", True
        ):
            raise ConfirmationDeclined(f"Creation of {app_dir} declined.")
        if ctx.dry_run:
            return _result("app-directory", StepStatus.CHANGED, f"dry-run: would create {app_dir}.")
        app_dir.mkdir(parents=True, exist_ok=True)
        _chown_tree(ctx)
        return _result(
            "app-directory",
            StepStatus.CHANGED,
            f"Created {app_dir} owned by {operator.name}.",
        )
    if _chown_needed(ctx) and app_dir.stat().st_uid != operator.uid:
        _chown_tree(ctx)
        verb = "would change" if ctx.dry_run else "changed"
        return _result(
            "app-directory",
            StepStatus.CHANGED,
            f"{verb} ownership of {app_dir} to {operator.name}.",
        )
    return _result("app-directory", StepStatus.UNCHANGED, f"{app_dir} exists.")


def _chown_needed(ctx: PipelineContext) -> bool:
    uid = ctx.operator.uid
    return uid is not None and uid != 0 and os.geteuid() == 0


def _chown_tree(ctx: PipelineContext) -> None:
    operator = ctx.operator
    if not _chown_needed(ctx):
        return
    ctx.runner.run(
        ["chown", "-R", f"{operator.uid}:{operator.gid}", str(ctx.config.app.app_dir)],
        check=True,
    )


def _app_env(ctx: PipelineContext) -> StepResult:
    app = ctx.config.app
    path = app.app_dir / ".env"
    content = render_env(app.env_values())
    existing = path.read_text(encoding="utf-8") if path.exists() else None
    if existing == content:
        if not ctx.dry_run:
            write_env_file(path, content, owner=ctx.operator.owner)
        return _result("app-env", StepStatus.UNCHANGED, f"{path} already up to date.")

    overwrite = True
    if existing is not None:
        overwrite = ctx.overwrite_env
        if not overwrite and ctx.prompter is not None:
            overwrite = ctx.prompter.confirm(f"{path} exists and differs. Overwrite it?", False)
        if not overwrite:
            return _result("app-env", StepStatus.UNCHANGED, f"Kept existing {path}.")

    if ctx.dry_run:
        return _result("app-env", StepStatus.CHANGED, f"dry-run: would write {path} (0600).")
    write_env_file(path, content, owner=ctx.operator.owner, overwrite=overwrite)
    return _result("app-env", StepStatus.CHANGED, f"Wrote {path} (0600).")


def _app_dependencies(ctx: PipelineContext) -> StepResult:
    app_dir = ctx.config.app.app_dir
    if not (app_dir / "package.json").exists():
        return _result(
            "app-dependencies",
            StepStatus.WARNED,
            f"No package.json in {app_dir}; skipped npm install.",
            hint=f"Upload the application code to {app_dir} and re-run.",
        )
    pending = _pending_binary(ctx, "app-dependencies", "npm")
    if pending is not None:
        return pending
    try:
        ctx.runner.run(["npm", "install"], cwd=app_dir, check=True)
    except CommandError as exc:
        raise StepFailure(f"npm install failed: {exc.output or exc}") from exc
    return _result("app-dependencies", StepStatus.CHANGED, "npm install completed.")


def _app_process(ctx: PipelineContext) -> StepResult:
    app = ctx.config.app
    entry = app.app_dir / app.entry_file
    if not entry.exists():
        return _result(
            "app-process",
            StepStatus.WARNED,
            f"{entry} not found; PM2 process not started.",
            hint=f"Start it later: pm2 start {app.entry_file} --name {app.process_name}",
        )
    pending = _pending_binary(ctx, "app-process", "pm2")
    if pending is not None:
        return pending
    action = ctx.pm2.start_or_restart(app.process_name, app.entry_file, app.app_dir)
    return _result("app-process", StepStatus.CHANGED, f"PM2 process '{app.process_name}' {action}.")


def _pm2_save(ctx: PipelineContext) -> StepResult:
    pending = _pending_binary(ctx, "pm2-save", "pm2")
    if pending is not None:
        return pending
    ctx.pm2.save()
    return _result("pm2-save", StepStatus.CHANGED, "PM2 process list saved.")


def _telegram_webhook(ctx: PipelineContext) -> StepResult:
    app = ctx.config.app
    if not app.set_webhook_now:
        return _result("telegram-webhook", StepStatus.SKIPPED, "Webhook registration not requested.")
    if not app.bot_token:
        return _result(
            "telegram-webhook",
            StepStatus.WARNED,
            "TELEGRAM_TOKEN is empty; webhook not set.",
            hint="Run 'webhookctl webhook set' once the token is available.",
        )
    if ctx.dry_run:
        return _result(
            "telegram-webhook",
            StepStatus.CHANGED,
            f"dry-run: would set webhook to {app.webhook_url}.",
        )
    client = ctx.telegram_factory(app.bot_token)
    try:
        response = client.set_webhook(app.webhook_url)
        info = client.webhook_info()
    except TelegramError as exc:
        raise StepFailure(f"Telegram API call failed: {exc}") from exc
    if response.get("ok") is not True:
        raise StepFailure(
            f"setWebhook rejected: {response.get('description', 'unknown error')}",
            data={"response": response},
        )
    message = f"Webhook set to {app.webhook_url} (pending updates: {info.pending_update_count})."
    if info.last_error_message:
        message += f" Last error: {info.last_error_message}"
    return _result(
        "telegram-webhook",
        StepStatus.CHANGED,
        message,
        data={"webhook_info": info.raw},
    )


HOST_STEPS: tuple[Step, ...] = (
    Step("system-update", "Update system packages", StepSeverity.FATAL, _system_update, host=True),
    Step(
        "packages-baseline",
        "Install baseline packages",
        StepSeverity.FATAL,
        _packages_baseline,
        host=True,
    ),
    Step(
        "packages-extra-net",
        "Install extra networking tools",
        StepSeverity.FATAL,
        _packages_extra_net,
        host=True,
    ),
    Step(
        "packages-devtools",
        "Install developer toolchain",
        StepSeverity.FATAL,
        _packages_devtools,
        host=True,
    ),
    Step("node-runtime", "Install Node.js", StepSeverity.FATAL, _node_runtime, host=True),
    Step("pm2-install", "Install PM2", StepSeverity.FATAL, _pm2_install, host=True),
    Step("pm2-startup", "Register PM2 at boot", StepSeverity.BEST_EFFORT, _pm2_startup, host=True),
    Step("firewall", "Configure ufw", StepSeverity.BEST_EFFORT, _firewall, host=True),
    Step("certbot-install", "Install certbot", StepSeverity.FATAL, _certbot_install, host=True),
    Step("nginx-service", "Enable nginx", StepSeverity.FATAL, _nginx_service, host=True),
)

APP_STEPS: tuple[Step, ...] = (
    Step("nginx-vhost", "Configure nginx site", StepSeverity.FATAL, _nginx_vhost),
    Step("tls-certificate", "Obtain TLS certificate", StepSeverity.BEST_EFFORT, _tls_certificate),
    Step("app-directory", "Prepare app directory", StepSeverity.FATAL, _app_directory),
    Step("app-env", "Write .env", StepSeverity.FATAL, _app_env),
    Step("app-dependencies", "Install npm dependencies", StepSeverity.FATAL, _app_dependencies),
    Step("app-process", "Start PM2 process", StepSeverity.FATAL, _app_process),
    Step("pm2-save", "Save PM2 process list", StepSeverity.BEST_EFFORT, _pm2_save),
    Step(
        "telegram-webhook",
        "Register Telegram webhook",
        StepSeverity.BEST_EFFORT,
        _telegram_webhook,
    ),
)


def build_steps(*, skip_host: bool = False, host_only: bool = False) -> list[Step]:
    """Return the ordered steps for a provisioning run."""
    if skip_host and host_only:
        raise ValueError("skip_host and host_only are mutually exclusive.")
    steps: list[Step] = []
    if not skip_host:
        steps.extend(HOST_STEPS)
    if not host_only:
        steps.extend(APP_STEPS)
    return steps


__all__ = ["APP_STEPS", "HOST_STEPS", "build_steps", "build_vhost_context"]
