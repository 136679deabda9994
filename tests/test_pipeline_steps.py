"""Tests for the individual provisioning steps."""
from __future__ import annotations

import stat
from dataclasses import replace
from pathlib import Path

import pytest
from conftest import FakeRunner, build_pipeline_context

from webhookctl.config import AppConfig
from webhookctl.exit_codes import ExitCode
from webhookctl.pipeline import (
    APP_STEPS,
    HOST_STEPS,
    PipelineContext,
    StepResult,
    StepStatus,
    build_steps,
    run_step,
)
from webhookctl.telegram import WebhookInfo


def _run(step_id: str, context: PipelineContext) -> StepResult:
    (step,) = [step for step in (*HOST_STEPS, *APP_STEPS) if step.id == step_id]
    return run_step(step, context)


def _with_app(context: PipelineContext, **changes: object) -> None:
    context.config = replace(context.config, app=replace(context.config.app, **changes))


def _with_host(context: PipelineContext, **changes: object) -> None:
    context.config = replace(context.config, host=replace(context.config.host, **changes))


class StubTelegram:
    """Records webhook calls and answers successfully."""

    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.urls: list[str] = []

    def set_webhook(self, url: str) -> dict[str, object]:
        self.urls.append(url)
        if self.ok:
            return {"ok": True, "result": True}
        return {"ok": False, "description": "Bad Request: bad webhook"}

    def webhook_info(self) -> WebhookInfo:
        return WebhookInfo(url=self.urls[-1] if self.urls else "", pending_update_count=3)


def test_build_steps_selects_phases() -> None:
    """Host and application phases can be run separately."""
    everything = [step.id for step in build_steps()]
    assert everything[0] == "system-update"
    assert everything[-1] == "telegram-webhook"
    assert everything.index("nginx-service") < everything.index("nginx-vhost")
    assert all(not step.host for step in build_steps(skip_host=True))
    assert all(step.host for step in build_steps(host_only=True))
    with pytest.raises(ValueError):
        build_steps(skip_host=True, host_only=True)


def test_system_update_detects_nothing_to_upgrade(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """An upgrade that touches nothing is unchanged."""
    fake_runner.respond(
        "apt-get",
        stdout="0 upgraded, 0 newly installed, 0 to remove and 0 not upgraded.",
    )

    result = _run("system-update", pipeline_context)

    assert result.status is StepStatus.UNCHANGED


def test_disabled_package_groups_are_skipped(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """Toggled-off groups never reach apt."""
    _with_host(pipeline_context, install_extra_net=False, install_devtools=False, install_ssl=False)

    for step_id in ("packages-extra-net", "packages-devtools", "certbot-install"):
        assert _run(step_id, pipeline_context).status is StepStatus.SKIPPED

    assert fake_runner.history == []


def test_package_group_installs_only_missing(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """Installed packages are left alone and the rest reported."""
    fake_runner.respond("dpkg-query", stdout="install ok installed")
    fake_runner.respond("dpkg-query", "-W", "-f=${Status}", "nmap", returncode=1)

    result = _run("packages-extra-net", pipeline_context)

    assert result.status is StepStatus.CHANGED
    assert result.data["packages"] == ["nmap"]


def test_firewall_already_active_is_unchanged(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """Rules are applied but ufw is not re-enabled."""
    fake_runner.binaries.add("ufw")
    fake_runner.respond("ufw", "status", stdout="Status: active\n")

    result = _run("firewall", pipeline_context)

    assert result.status is StepStatus.UNCHANGED
    assert fake_runner.ran("ufw", "allow", "OpenSSH")
    assert fake_runner.ran("ufw", "allow", "80")
    assert fake_runner.ran("ufw", "allow", "443")
    assert not fake_runner.ran("ufw", "--force", "enable")


def test_firewall_failure_is_a_warning(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """ufw errors do not stop provisioning."""
    fake_runner.binaries.add("ufw")
    fake_runner.respond("ufw", "allow", returncode=1, stderr="ERROR: problem running iptables")

    result = _run("firewall", pipeline_context)

    assert result.status is StepStatus.WARNED
    assert "iptables" in result.message


def test_dry_run_reports_tools_installed_by_earlier_steps(
    app_config: AppConfig,
    tmp_path: Path,
) -> None:
    """In dry-run, steps needing a not-yet-installed tool report the intent."""
    runner = FakeRunner(dry_run=True)
    context = build_pipeline_context(app_config, runner, home=tmp_path)

    result = _run("pm2-startup", context)

    assert result.status is StepStatus.CHANGED
    assert "would run" in result.message
    assert runner.history == []


def test_nginx_vhost_renders_site(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """The vhost step writes, validates and reloads nginx."""
    fake_runner.binaries.add("nginx")

    first = _run("nginx-vhost", pipeline_context)
    second = _run("nginx-vhost", pipeline_context)

    assert first.status is StepStatus.CHANGED
    assert second.status is StepStatus.UNCHANGED
    site = pipeline_context.config.nginx.sites_available / "webhook"
    assert "proxy_pass http://localhost:3000;" in site.read_text(encoding="utf-8")


def test_nginx_vhost_validation_failure_fails_step(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """A rejected configuration is a provider failure."""
    fake_runner.binaries.add("nginx")
    fake_runner.respond("nginx", "-t", returncode=1, stderr="[emerg] unknown directive")

    result = _run("nginx-vhost", pipeline_context)

    assert result.status is StepStatus.FAILED
    assert result.exit_code is ExitCode.PROVIDER
    assert "unknown directive" in result.message


def test_tls_certificate_skipped_without_ssl(pipeline_context: PipelineContext) -> None:
    """No certificate is requested unless SSL is enabled."""
    assert _run("tls-certificate", pipeline_context).status is StepStatus.SKIPPED


def test_tls_certificate_without_certbot_fails(pipeline_context: PipelineContext) -> None:
    """A missing certbot is an environment failure even though the step is best-effort."""
    _with_app(pipeline_context, enable_ssl=True, admin_email="ops@example.com")

    result = _run("tls-certificate", pipeline_context)

    assert result.status is StepStatus.FAILED
    assert result.exit_code is ExitCode.ENVIRONMENT


def test_tls_certificate_request_failure_warns(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """A failed certbot request keeps the HTTP-only site and warns."""
    _with_app(pipeline_context, enable_ssl=True, admin_email="ops@example.com")
    fake_runner.binaries.add("certbot")
    fake_runner.respond("certbot", "certonly", returncode=1, stderr="DNS problem: NXDOMAIN")

    result = _run("tls-certificate", pipeline_context)

    assert result.status is StepStatus.WARNED
    assert "HTTP-only" in result.message


def test_app_directory_created(pipeline_context: PipelineContext) -> None:
    """A missing application directory is created."""
    app_dir = pipeline_context.config.app.app_dir

    result = _run("app-directory", pipeline_context)

    assert result.status is StepStatus.CHANGED
    assert app_dir.is_dir()
    assert _run("app-directory", pipeline_context).status is StepStatus.UNCHANGED


def test_app_env_written_with_owner_only_mode(pipeline_context: PipelineContext) -> None:
    """The .env file is written 0600 and untouched on re-run."""
    _with_app(pipeline_context, bot_token="123456:ABCDEF", supabase_key="service-key")
    path = pipeline_context.config.app.app_dir / ".env"

    result = _run("app-env", pipeline_context)

    assert result.status is StepStatus.CHANGED
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert "TELEGRAM_TOKEN=123456:ABCDEF" in path.read_text(encoding="utf-8")
    assert "123456:ABCDEF" not in result.message
    assert _run("app-env", pipeline_context).status is StepStatus.UNCHANGED


def test_app_env_keeps_different_file_without_overwrite(pipeline_context: PipelineContext) -> None:
    """An operator-edited file survives non-interactive runs."""
    path = pipeline_context.config.app.app_dir / ".env"
    path.parent.mkdir(parents=True)
    path.write_text("PORT=1\n", encoding="utf-8")

    result = _run("app-env", pipeline_context)

    assert result.status is StepStatus.UNCHANGED
    assert "Kept existing" in result.message
    assert path.read_text(encoding="utf-8") == "PORT=1\n"


def test_app_env_overwrite_flag_replaces_file(pipeline_context: PipelineContext) -> None:
    """``overwrite_env`` replaces a differing file."""
    path = pipeline_context.config.app.app_dir / ".env"
    path.parent.mkdir(parents=True)
    path.write_text("PORT=1\n", encoding="utf-8")
    pipeline_context.overwrite_env = True

    result = _run("app-env", pipeline_context)

    assert result.status is StepStatus.CHANGED
    assert path.read_text(encoding="utf-8").startswith("PORT=3000\n")


def test_app_dependencies_without_package_json_warns(pipeline_context: PipelineContext) -> None:
    """Missing application code is a warning, not a failure."""
    pipeline_context.config.app.app_dir.mkdir(parents=True)

    result = _run("app-dependencies", pipeline_context)

    assert result.status is StepStatus.WARNED
    assert result.hint is not None


def test_app_dependencies_runs_npm_install(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """npm install runs in the application directory."""
    app_dir = pipeline_context.config.app.app_dir
    app_dir.mkdir(parents=True)
    (app_dir / "package.json").write_text("{}", encoding="utf-8")
    fake_runner.binaries.add("npm")

    result = _run("app-dependencies", pipeline_context)

    assert result.status is StepStatus.CHANGED
    assert fake_runner.ran("npm", "install")


def test_app_process_starts_new_process(
    pipeline_context: PipelineContext,
    fake_runner: FakeRunner,
) -> None:
    """An unknown PM2 process is started from the entry file."""
    app_dir = pipeline_context.config.app.app_dir
    app_dir.mkdir(parents=True)
    (app_dir / "index.js").write_text("", encoding="utf-8")
    fake_runner.binaries.add("pm2")
    fake_runner.respond("pm2", "jlist", stdout="[]")

    result = _run("app-process", pipeline_context)

    assert result.status is StepStatus.CHANGED
    assert fake_runner.ran("pm2", "start", "index.js", "--name", "telegram-webhook")


def test_app_process_without_entry_file_warns(pipeline_context: PipelineContext) -> None:
    """A missing entry file is reported with the start command."""
    result = _run("app-process", pipeline_context)

    assert result.status is StepStatus.WARNED
    assert "pm2 start index.js --name telegram-webhook" in (result.hint or "")


def test_telegram_webhook_not_requested(pipeline_context: PipelineContext) -> None:
    """Registration is opt-in."""
    assert _run("telegram-webhook", pipeline_context).status is StepStatus.SKIPPED


def test_telegram_webhook_empty_token_warns(pipeline_context: PipelineContext) -> None:
    """An empty token warns instead of calling the API."""
    _with_app(pipeline_context, set_webhook_now=True, bot_token="")

    result = _run("telegram-webhook", pipeline_context)

    assert result.status is StepStatus.WARNED
    assert "TELEGRAM_TOKEN is empty" in result.message


def test_telegram_webhook_registers_url(pipeline_context: PipelineContext) -> None:
    """The configured webhook URL is registered and info reported."""
    stub = StubTelegram()
    pipeline_context.telegram_factory = lambda token: stub  # type: ignore[assignment,return-value]
    _with_app(pipeline_context, set_webhook_now=True, bot_token="123456:ABCDEF")

    result = _run("telegram-webhook", pipeline_context)

    assert result.status is StepStatus.CHANGED
    assert stub.urls == ["https://example.com/webhook"]
    assert "pending updates: 3" in result.message


def test_telegram_webhook_rejection_warns(pipeline_context: PipelineContext) -> None:
    """An API rejection is a warning for this best-effort step."""
    pipeline_context.telegram_factory = lambda token: StubTelegram(ok=False)  # type: ignore[assignment,return-value]
    _with_app(pipeline_context, set_webhook_now=True, bot_token="123456:ABCDEF")

    result = _run("telegram-webhook", pipeline_context)

    assert result.status is StepStatus.WARNED
    assert "bad webhook" in result.message
