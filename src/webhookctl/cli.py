"""Typer-powered command line interface for ``webhookctl``.

``provision`` prepares a Debian/Ubuntu host and deploys the Telegram webhook
application behind nginx; ``verify`` inspects the result without changing
anything. Every command is wrapped in a structured operation so that the
outcome lands in ``operations.jsonl``.
"""
from __future__ import annotations

import json
import logging
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .accounts import OperatorAccount, is_root, resolve_operator
from .config import AppConfig, ConfigError, ProvisioningConfig, ValidationError, load_config
from .doctor import (
    DoctorEngine,
    DoctorImpact,
    DoctorReport,
    ProbeContext,
    ProbeResult,
    ProbeStatus,
    VerifyTarget,
    collect_probes,
    serialize_report,
)
from .envfile import env_values, parse_env
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .node_runtime import NodeRuntimeManager
from .pipeline import (
    PipelineContext,
    PipelineReport,
    PreflightError,
    Step,
    StepResult,
    StepStatus,
    build_steps,
    build_vhost_context,
    run_pipeline,
    run_preflight,
)
from .prompts import ConfirmationDeclined, TyperPrompter, confirm_or_abort, resolve_interactive
from .providers import (
    AptProvider,
    CertbotProvider,
    FirewallProvider,
    NginxProvider,
    Pm2Provider,
    SystemdProvider,
)
from .runner import CommandRunner
from .telegram import TelegramClient, TelegramError
from .templates import TemplateEngine, TemplateError, write_atomic
from .tls import CertificateInspector

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    "-c",
    help="Path to an alternate config file.",
)
YES_OPTION = typer.Option(
    False,
    "--yes",
    "-y",
    help="Run non-interactively: no prompts, no confirmation, overwrite .env.",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Show what would change without running mutating commands or writing files.",
)
DOMAIN_OPTION = typer.Option(None, "--domain", help="Public domain served by nginx.")
PORT_OPTION = typer.Option(None, "--port", help="Local port the Node.js app listens on.")
SITE_OPTION = typer.Option(None, "--site", help="Nginx site name.")
APP_DIR_OPTION = typer.Option(None, "--app-dir", help="Application directory.")
PM2_NAME_OPTION = typer.Option(None, "--pm2-name", help="PM2 process name.")
SSL_OPTION = typer.Option(
    None,
    "--ssl/--no-ssl",
    help="Obtain a Let's Encrypt certificate and serve HTTPS.",
)
EMAIL_OPTION = typer.Option(None, "--email", help="Let's Encrypt registration email.")
WEBHOOK_URL_OPTION = typer.Option(None, "--webhook-url", help="Public webhook URL.")
TOKEN_OPTION = typer.Option(
    None,
    "--token",
    help="Telegram bot token (defaults to TELEGRAM_TOKEN or the app's .env).",
)
JSON_OPTION = typer.Option(False, "--json", help="Emit JSON instead of formatted text.")

_STEP_STATUS_STYLE = {
    StepStatus.CHANGED: "[green]CHANGED[/green]",
    StepStatus.UNCHANGED: "[green]OK[/green]",
    StepStatus.SKIPPED: "[dim]SKIP[/dim]",
    StepStatus.WARNED: "[yellow]WARN[/yellow]",
    StepStatus.FAILED: "[red]FAIL[/red]",
}
_PROBE_STATUS_STYLE = {
    ProbeStatus.OK: "[green]OK[/green]",
    ProbeStatus.WARN: "[yellow]WARN[/yellow]",
    ProbeStatus.FAIL: "[red]FAIL[/red]",
}
_VERIFY_IMPACT_MESSAGES = {
    DoctorImpact.OK: "Verification completed successfully.",
    DoctorImpact.VALIDATION: "Verification detected configuration errors.",
    DoctorImpact.ENVIRONMENT: "Verification detected missing dependencies.",
    DoctorImpact.PROVIDER: "Verification detected service failures.",
}


app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Provision and verify a Telegram webhook host.

        Installs Node.js, PM2, nginx and (optionally) certbot, publishes the
        application through an nginx reverse proxy, writes its .env file and
        registers the webhook with Telegram.
        """
    ).strip(),
)
webhook_app = typer.Typer(help="Inspect or register the Telegram webhook.")
config_app = typer.Typer(help="Inspect the effective configuration.")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    runner: CommandRunner
    logger: StructuredLogger
    templates: TemplateEngine
    apt: AptProvider
    node: NodeRuntimeManager
    pm2: Pm2Provider
    firewall: FirewallProvider
    systemd: SystemdProvider
    nginx: NginxProvider
    certbot: CertbotProvider
    tls_inspector: CertificateInspector

    def telegram_client(self, token: str) -> TelegramClient:
        return TelegramClient(token=token, timeout=self.config.http_timeout)


def _create_runtime(
    config: AppConfig,
    *,
    dry_run: bool = False,
    logger: StructuredLogger | None = None,
) -> RuntimeContext:
    runner = CommandRunner(dry_run=dry_run)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    apt = AptProvider(runner=runner)
    return RuntimeContext(
        config=config,
        runner=runner,
        logger=logger or StructuredLogger(config.logs_dir),
        templates=templates,
        apt=apt,
        node=NodeRuntimeManager(
            runner=runner,
            apt=apt,
            download_timeout=max(config.http_timeout, 60.0),
        ),
        pm2=Pm2Provider(runner=runner),
        firewall=FirewallProvider(runner=runner),
        systemd=SystemdProvider(runner=runner),
        nginx=NginxProvider(
            templates=templates,
            runner=runner,
            sites_available=config.nginx.sites_available,
            sites_enabled=config.nginx.sites_enabled,
            nginx_bin=config.nginx.nginx_bin,
        ),
        certbot=CertbotProvider(runner=runner),
        tls_inspector=CertificateInspector(config.tls.live_dir, config.tls.warn_expiry_days),
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc
    runtime = _create_runtime(config)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the webhookctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every executed command to stderr.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    _configure_logging(verbose)
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"webhookctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
    hint: str | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    if hint:
        console.print(f"  hint: {escape(hint)}")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _app_overrides(
    *,
    domain: str | None = None,
    port: int | None = None,
    site: str | None = None,
    app_dir: Path | None = None,
    pm2_name: str | None = None,
    ssl: bool | None = None,
    email: str | None = None,
    webhook_url: str | None = None,
    set_webhook: bool | None = None,
) -> dict[str, object]:
    """Map CLI options onto the ``app`` config section, ignoring unset ones."""
    candidates: dict[str, object | None] = {
        "domain": domain,
        "app_port": port,
        "site_name": site,
        "app_dir": str(app_dir) if app_dir is not None else None,
        "process_name": pm2_name,
        "enable_ssl": ssl,
        "admin_email": email,
        "webhook_url": webhook_url,
        "set_webhook_now": set_webhook,
    }
    overrides = {key: value for key, value in candidates.items() if value is not None}
    return {"app": overrides} if overrides else {}


def _reload_config(
    op: OperationScope,
    runtime: RuntimeContext,
    overrides: Mapping[str, object],
) -> AppConfig:
    if not overrides:
        return runtime.config
    try:
        return load_config(config_file=runtime.config.config_file, overrides=overrides)
    except ConfigError as exc:
        _command_error(op, f"Invalid configuration: {exc}", rc=ExitCode.VALIDATION)


def _host_table(config: AppConfig) -> Table:
    host = config.host
    table = Table(title="Host bootstrap", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Node.js major", str(host.node_major))
    table.add_row("Install certbot", "yes" if host.install_ssl else "no")
    table.add_row("Extra network tools", "yes" if host.install_extra_net else "no")
    table.add_row("Developer toolchain", "yes" if host.install_devtools else "no")
    table.add_row("Firewall admin rule", host.admin_rule)
    return table


def quick_checks(app_config: ProvisioningConfig) -> list[tuple[str, str]]:
    """Return follow-up commands an operator can run after provisioning."""
    port = app_config.app_port
    checks = [
        ("Nginx status", "sudo systemctl status nginx --no-pager"),
        ("PM2 list", "pm2 list"),
        ("PM2 logs", f"pm2 logs {app_config.process_name}"),
        ("Ports", f"sudo ss -tulpn | grep -E ':80|:443|:{port}'"),
        ("App health", f"curl -I http://127.0.0.1:{port}"),
    ]
    if app_config.enable_ssl:
        checks.append(("HTTPS head", f"curl -I https://{app_config.domain} -k"))
    checks.append(("Verify", "sudo webhookctl verify"))
    return checks


def _render_step(step: Step, result: StepResult) -> None:
    marker = _STEP_STATUS_STYLE[result.status]
    console.print(f"{marker} {escape(step.id + ': ' + result.message)}")
    if result.hint and result.status in (StepStatus.WARNED, StepStatus.FAILED):
        console.print(f"  hint: {escape(result.hint)}")


def _render_pipeline_summary(report: PipelineReport) -> None:
    totals = report.totals
    totals_line = " ".join(f"{status.value}={count}" for status, count in totals.items())
    console.print()
    console.print(f"Totals: {totals_line}")
    if report.aborted:
        console.print("[red]Provisioning stopped at the first fatal failure.[/red]")
        console.print("Fix the problem and re-run the same command; completed steps are skipped.")


def _print_quick_checks(app_config: ProvisioningConfig) -> None:
    console.print()
    console.print("[bold]Quick checks[/bold]")
    for label, command in quick_checks(app_config):
        console.print(f"  {label + ':':<14} {command}", markup=False, highlight=False)


def _preflight(
    op: OperationScope,
    *,
    interactive: bool,
    allow_non_root: bool,
    dry_run: bool,
) -> None:
    try:
        report = run_preflight()
    except PreflightError as exc:
        _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
    for warning in report.warnings:
        console.print(f"[yellow]WARN[/yellow] {escape(warning)}")
    op.add_step("preflight", status="success", detail=report.os_id or "unknown")
    if report.is_root or allow_non_root or dry_run:
        return
    if not interactive:
        _command_error(
            op,
            "Provisioning requires root privileges.",
            rc=ExitCode.ENVIRONMENT,
            hint="Re-run with sudo or pass --allow-non-root.",
        )
    if not typer.confirm("Continue without root privileges?", default=False):
        _command_error(op, "Provisioning cancelled by operator.", rc=ExitCode.ABORTED)


@app.command()
def provision(
    ctx: typer.Context,
    yes: bool = YES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    skip_host: bool = typer.Option(
        False,
        "--skip-host",
        help="Skip host bootstrap (packages, Node.js, PM2, firewall).",
    ),
    host_only: bool = typer.Option(
        False,
        "--host-only",
        help="Only bootstrap the host; do not deploy the application.",
    ),
    allow_non_root: bool = typer.Option(
        False,
        "--allow-non-root",
        help="Proceed without root privileges in non-interactive mode.",
    ),
    domain: str | None = DOMAIN_OPTION,
    port: int | None = PORT_OPTION,
    site: str | None = SITE_OPTION,
    app_dir: Path | None = APP_DIR_OPTION,
    pm2_name: str | None = PM2_NAME_OPTION,
    ssl: bool | None = SSL_OPTION,
    email: str | None = EMAIL_OPTION,
    webhook_url: str | None = WEBHOOK_URL_OPTION,
    set_webhook: bool | None = typer.Option(
        None,
        "--set-webhook/--no-set-webhook",
        help="Register the Telegram webhook once the app is running.",
    ),
    node_major: int | None = typer.Option(
        None,
        "--node-major",
        min=1,
        help="Node.js major version to install from NodeSource.",
    ),
) -> None:
    """Bootstrap the host and deploy the webhook application."""
    runtime = _get_runtime(ctx)
    interactive = not yes
    with runtime.logger.operation(
        "provision",
        args={
            "yes": yes,
            "dry_run": dry_run,
            "skip_host": skip_host,
            "host_only": host_only,
            "allow_non_root": allow_non_root,
            "domain": domain,
            "port": port,
            "site": site,
            "app_dir": str(app_dir) if app_dir else None,
            "pm2_name": pm2_name,
            "ssl": ssl,
            "webhook_url": webhook_url,
            "set_webhook": set_webhook,
            "node_major": node_major,
        },
        target={"kind": "host", "scope": "provision"},
    ) as op:
        if skip_host and host_only:
            _command_error(op, "Cannot combine --skip-host and --host-only.", rc=ExitCode.VALIDATION)

        overrides = _app_overrides(
            domain=domain,
            port=port,
            site=site,
            app_dir=app_dir,
            pm2_name=pm2_name,
            ssl=ssl,
            email=email,
            webhook_url=webhook_url,
            set_webhook=set_webhook,
        )
        if node_major is not None:
            overrides["host"] = {"node_major": node_major}
        config = _reload_config(op, runtime, overrides)

        _preflight(op, interactive=interactive, allow_non_root=allow_non_root, dry_run=dry_run)

        prompter = TyperPrompter() if interactive else None
        if prompter is not None:
            try:
                if host_only:
                    console.print(_host_table(config))
                    if not prompter.confirm("Proceed with host bootstrap?", False):
                        raise ConfirmationDeclined("Provisioning cancelled by operator.")
                else:
                    resolved = resolve_interactive(config.app, prompter)
                    config = replace(config, app=resolved)
                    confirm_or_abort(config.app, prompter, console)
            except ValidationError as exc:
                _command_error(op, str(exc), rc=ExitCode.VALIDATION)
            except ConfirmationDeclined as exc:
                _command_error(op, str(exc), rc=ExitCode.ABORTED)
        op.add_step("configuration", status="success", detail=config.app.domain)

        session = _create_runtime(config, dry_run=dry_run, logger=runtime.logger)
        operator = resolve_operator()
        context = _pipeline_context(session, operator, prompter=prompter, overwrite_env=yes)
        steps = build_steps(skip_host=skip_host, host_only=host_only)

        if dry_run:
            console.print("[yellow]Dry run[/yellow]: mutating commands and file writes are skipped.")

        def _on_result(step: Step, result: StepResult) -> None:
            _render_step(step, result)
            op.add_step(step.id, status=result.status.value, detail=result.message)

        report = run_pipeline(
            steps,
            context,
            on_result=_on_result,
            metadata={"skip_host": skip_host, "host_only": host_only},
        )
        _render_pipeline_summary(report)
        if not host_only and not report.aborted:
            _print_quick_checks(config.app)

        log_context = {"report": report.to_dict()}
        if dry_run:
            log_context["commands"] = [" ".join(command) for command in session.runner.history]
        failed = [result.id for result in report.results if result.status is StepStatus.FAILED]
        warned = [result.id for result in report.results if result.status is StepStatus.WARNED]
        changed = report.totals[StepStatus.CHANGED]

        if report.exit_code != ExitCode.OK:
            console.print("[red]Provisioning finished with failures.[/red]")
            op.error(
                "Provisioning failed.",
                rc=report.exit_code,
                errors=failed or None,
                warnings=warned or None,
                context=log_context,
            )
            raise typer.Exit(code=report.exit_code)
        if warned:
            console.print("[yellow]Provisioning completed with warnings.[/yellow]")
            op.warning(
                "Provisioning completed with warnings.",
                warnings=warned,
                changed=changed,
                context=log_context,
            )
            return
        console.print("[green]Provisioning complete.[/green]")
        op.success("Provisioning complete.", changed=changed, context=log_context)


def _pipeline_context(
    runtime: RuntimeContext,
    operator: OperatorAccount,
    *,
    prompter: TyperPrompter | None,
    overwrite_env: bool,
) -> PipelineContext:
    return PipelineContext(
        config=runtime.config,
        runner=runtime.runner,
        operator=operator,
        apt=runtime.apt,
        node=runtime.node,
        pm2=runtime.pm2,
        firewall=runtime.firewall,
        systemd=runtime.systemd,
        nginx=runtime.nginx,
        certbot=runtime.certbot,
        tls_inspector=runtime.tls_inspector,
        telegram_factory=runtime.telegram_client,
        prompter=prompter,
        console=console,
        overwrite_env=overwrite_env,
    )


def _render_verify_totals(report: DoctorReport) -> None:
    summary = report.summary
    totals = summary.totals
    console.print()
    console.print(
        f"Totals: ok={totals.get(ProbeStatus.OK, 0)} "
        f"warn={totals.get(ProbeStatus.WARN, 0)} "
        f"fail={totals.get(ProbeStatus.FAIL, 0)}"
    )
    console.print(f"Summary: {_PROBE_STATUS_STYLE[summary.status]} (exit={summary.exit_code})")


def _render_probe(result: ProbeResult) -> None:
    label = escape(f"[{result.category}] {result.id}: {result.message}")
    console.print(f"{_PROBE_STATUS_STYLE[result.status]} {label}")
    if result.remediation and result.status is not ProbeStatus.OK:
        console.print(f"  hint: {escape(result.remediation)}")
    for line in result.details:
        console.print(f"    {escape(line)}", highlight=False)


@app.command()
def verify(
    ctx: typer.Context,
    domain: str | None = typer.Option(
        None,
        "--domain",
        help="Domain whose certificate should be inspected (defaults to the configured "
        "domain when SSL is enabled).",
    ),
    port: int | None = PORT_OPTION,
    site: str | None = SITE_OPTION,
    app_dir: Path | None = APP_DIR_OPTION,
    pm2_name: str | None = PM2_NAME_OPTION,
    token: str | None = TOKEN_OPTION,
    webhook_url: str | None = WEBHOOK_URL_OPTION,
    supabase_url: str | None = typer.Option(None, "--supabase-url", help="Supabase project URL."),
    json_output: bool = JSON_OPTION,
) -> None:
    """Run read-only health checks against a provisioned host."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "verify",
        args={
            "domain": domain,
            "port": port,
            "site": site,
            "app_dir": str(app_dir) if app_dir else None,
            "pm2_name": pm2_name,
            "token": token,
            "webhook_url": webhook_url,
            "json": json_output,
        },
        target={"kind": "host", "scope": "verify"},
    ) as op:
        config = _reload_config(
            op,
            runtime,
            _app_overrides(
                port=port,
                site=site,
                app_dir=app_dir,
                pm2_name=pm2_name,
            ),
        )
        target = build_verify_target(
            config.app,
            domain=domain,
            token=token,
            supabase_url=supabase_url,
            webhook_url=webhook_url,
        )
        session = _create_runtime(config, logger=runtime.logger)
        context = ProbeContext(
            config=config,
            target=target,
            runner=session.runner,
            node=session.node,
            pm2=session.pm2,
            nginx=session.nginx,
            systemd=session.systemd,
            firewall=session.firewall,
            certbot=session.certbot,
            tls_inspector=session.tls_inspector,
            telegram_factory=session.telegram_client,
            is_root=is_root(),
        )
        probes = list(collect_probes(context))
        engine = DoctorEngine(context)
        report = engine.run(
            probes,
            metadata={"site": target.site_name, "domain": target.domain},
            on_result=None if json_output else _render_probe,
        )
        payload = serialize_report(report)

        if json_output:
            console.print_json(data=payload)
        else:
            _render_verify_totals(report)

        summary = report.summary
        warning_ids = [r.id for r in report.results if r.status is ProbeStatus.WARN]
        error_ids = [r.id for r in report.results if r.status is ProbeStatus.FAIL]
        message = _VERIFY_IMPACT_MESSAGES.get(summary.impact, "Verification detected issues.")
        log_context = {"report": payload}

        if summary.exit_code == 0:
            if warning_ids:
                if not json_output:
                    console.print("[yellow]Verification completed with warnings.[/yellow]")
                op.warning(
                    "Verification completed with warnings.",
                    warnings=warning_ids,
                    context=log_context,
                )
            else:
                if not json_output:
                    console.print(f"[green]{message}[/green]")
                op.success(message, context=log_context)
            return

        if not json_output:
            console.print(f"[red]{message}[/red]")
        op.error(
            message,
            rc=summary.exit_code,
            errors=error_ids or None,
            warnings=warning_ids or None,
            context=log_context,
        )
        raise typer.Exit(code=summary.exit_code)


def build_verify_target(
    app_config: ProvisioningConfig,
    *,
    domain: str | None = None,
    token: str | None = None,
    supabase_url: str | None = None,
    webhook_url: str | None = None,
) -> VerifyTarget:
    """Return what ``verify`` should inspect.

    Certificates are only checked for an explicit ``--domain`` or when the
    configuration enables SSL. The registered webhook is compared against
    ``webhook_url`` only when one is given.
    """
    tls_domain = domain or (app_config.domain if app_config.enable_ssl else None)
    return VerifyTarget(
        site_name=app_config.site_name,
        app_dir=app_config.app_dir,
        app_port=app_config.app_port,
        entry_file=app_config.entry_file,
        process_name=app_config.process_name,
        domain=tls_domain,
        webhook_url=webhook_url,
        bot_token=token or app_config.bot_token or None,
        supabase_url=supabase_url or app_config.supabase_url,
    )


@app.command("render-vhost")
def render_vhost(
    ctx: typer.Context,
    domain: str | None = DOMAIN_OPTION,
    port: int | None = PORT_OPTION,
    ssl: bool | None = SSL_OPTION,
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the configuration to this file instead of stdout.",
    ),
) -> None:
    """Render the nginx site configuration without touching nginx."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "render-vhost",
        args={"domain": domain, "port": port, "ssl": ssl, "output": str(output) if output else None},
        target={"kind": "nginx", "scope": "vhost"},
    ) as op:
        config = _reload_config(op, runtime, _app_overrides(domain=domain, port=port, ssl=ssl))
        material = runtime.tls_inspector.material_for(config.app.domain)
        context = build_vhost_context(config.app, material)
        try:
            rendered = runtime.nginx.render_preview(context)
        except TemplateError as exc:
            _command_error(op, str(exc), rc=ExitCode.VALIDATION)

        if output is None:
            typer.echo(rendered, nl=False)
            op.success("Rendered vhost to stdout.", changed=0)
            return
        try:
            changed = write_atomic(output, rendered)
        except OSError as exc:
            _command_error(op, f"Failed to write {output}: {exc}", rc=ExitCode.PROVIDER)
        state = "written" if changed else "unchanged"
        console.print(f"[green]{output}[/green] {state}.")
        op.add_step("vhost.write", status="success", detail=f"{output} {state}")
        op.success("Rendered vhost to file.", changed=int(changed))


def _resolve_token(runtime: RuntimeContext, token: str | None) -> str:
    """Return the bot token from the option, the config or the app's ``.env``."""
    if token:
        return token
    if runtime.config.app.bot_token:
        return runtime.config.app.bot_token
    env_path = runtime.config.app.app_dir / ".env"
    try:
        text = env_path.read_text(encoding="utf-8")
    except OSError:
        return ""
    return env_values(parse_env(text)).get("TELEGRAM_TOKEN", "")


@webhook_app.command("set")
def webhook_set(
    ctx: typer.Context,
    url: str | None = typer.Option(
        None,
        "--url",
        help="Webhook URL to register (defaults to the configured WEBHOOK_URL).",
    ),
    token: str | None = TOKEN_OPTION,
) -> None:
    """Register the webhook URL with Telegram."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "webhook set",
        args={"url": url, "token": token},
        target={"kind": "telegram", "scope": "webhook"},
    ) as op:
        config = _reload_config(op, runtime, _app_overrides(webhook_url=url))
        resolved_token = _resolve_token(runtime, token)
        if not resolved_token:
            _command_error(
                op,
                "TELEGRAM_TOKEN is not configured.",
                rc=ExitCode.VALIDATION,
                hint="Pass --token, export TELEGRAM_TOKEN or write it to the app's .env.",
            )
        target_url = config.app.webhook_url
        client = runtime.telegram_client(resolved_token)
        try:
            response = client.set_webhook(target_url)
            info = client.webhook_info()
        except TelegramError as exc:
            _command_error(op, f"Telegram API call failed: {exc}", rc=ExitCode.PROVIDER)
        if response.get("ok") is not True:
            _command_error(
                op,
                f"setWebhook rejected: {response.get('description', 'unknown error')}",
                rc=ExitCode.PROVIDER,
            )
        console.print(f"[green]Webhook set[/green] to {target_url}.")
        _print_webhook_info(info.url, info.pending_update_count, info.last_error_message)
        op.success("Webhook registered.", changed=1, context={"webhook_info": info.raw})


@webhook_app.command("info")
def webhook_info(
    ctx: typer.Context,
    token: str | None = TOKEN_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show Telegram's view of the webhook."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "webhook info",
        args={"token": token, "json": json_output},
        target={"kind": "telegram", "scope": "webhook"},
    ) as op:
        resolved_token = _resolve_token(runtime, token)
        if not resolved_token:
            _command_error(
                op,
                "TELEGRAM_TOKEN is not configured.",
                rc=ExitCode.VALIDATION,
                hint="Pass --token, export TELEGRAM_TOKEN or write it to the app's .env.",
            )
        try:
            info = runtime.telegram_client(resolved_token).webhook_info()
        except TelegramError as exc:
            _command_error(op, f"Telegram API call failed: {exc}", rc=ExitCode.PROVIDER)
        if json_output:
            console.print_json(data=info.raw)
        else:
            _print_webhook_info(info.url, info.pending_update_count, info.last_error_message)
        op.success("Fetched webhook info.", changed=0)


def _print_webhook_info(url: str, pending: int, last_error: str | None) -> None:
    console.print(f"  url:              {url or '(not set)'}", markup=False, highlight=False)
    console.print(f"  pending updates:  {pending}", markup=False, highlight=False)
    if last_error:
        console.print(f"  last error:       {last_error}", style="yellow", markup=False, highlight=False)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges (secrets masked)."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict(mask=True)

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


app.add_typer(webhook_app, name="webhook")
app.add_typer(config_app, name="config")


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "build_verify_target", "main", "quick_checks"]
