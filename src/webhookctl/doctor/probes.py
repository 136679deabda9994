"""Probe registration entry point for the verify command."""

from __future__ import annotations

import re
import stat
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from .. import http
from ..envfile import ENV_FILE_MODE, REQUIRED_KEYS, env_values, masked_lines, parse_env
from ..providers.certbot import CertbotError
from ..providers.nginx import NginxError
from ..providers.pm2 import Pm2Error
from ..providers.systemd import SystemdError
from ..providers.ufw import FirewallError
from ..runner import CommandError, MissingDependencyError, install_hint
from ..telegram import TelegramError, WebhookInfo
from ..tls import TLSValidationSeverity
from .models import (
    DoctorImpact,
    ProbeCategory,
    ProbeContext,
    ProbeDefinition,
    ProbeResult,
    ProbeStatus,
)

HEAD_LINES = 30
_PORT_RE = re.compile(r":(\d+)\s")

REQUIRED_BINARIES: tuple[str, ...] = ("node", "npm", "pm2", "nginx")
OPTIONAL_BINARIES: tuple[str, ...] = ("certbot", "ufw", "curl", "jq")


def collect_probes(context: ProbeContext) -> Sequence[ProbeDefinition]:
    """Return the probes to run for *context*, in reporting order."""
    probes: list[ProbeDefinition] = []
    probes.extend(_env_probes())
    probes.extend(_service_probes())
    probes.extend(_nginx_probes())
    probes.extend(_app_probes())
    probes.extend(_log_probes())
    if context.target.expect_tls:
        probes.append(_make_probe("tls-certificate", "tls", _probe_tls_certificate))
    probes.extend(_http_probes())
    probes.append(_make_probe("firewall-status", "firewall", _probe_firewall_status))
    return tuple(probes)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_probe(
    probe_id: str,
    category: ProbeCategory,
    handler: Callable[[ProbeContext], ProbeResult],
) -> ProbeDefinition:
    return ProbeDefinition(id=probe_id, category=category, run=handler)


def _result(
    probe_id: str,
    category: ProbeCategory,
    status: ProbeStatus,
    message: str,
    *,
    impact: DoctorImpact = DoctorImpact.OK,
    remediation: str | None = None,
    data: Mapping[str, Any] | None = None,
    details: Sequence[str] = (),
) -> ProbeResult:
    return ProbeResult(
        id=probe_id,
        category=category,
        status=status,
        impact=impact,
        message=message,
        remediation=remediation,
        data=data,
        details=tuple(details),
    )


def _head(path: Path, lines: int = HEAD_LINES) -> list[str]:
    with path.open(encoding="utf-8", errors="replace") as handle:
        collected = []
        for index, line in enumerate(handle):
            if index >= lines:
                break
            collected.append(line.rstrip("\n"))
        return collected


def _tail(path: Path, lines: int = HEAD_LINES) -> list[str]:
    text = path.read_text(encoding="utf-8", errors="replace")
    return text.splitlines()[-lines:]


def _listening_ports(text: str) -> set[int]:
    ports: set[int] = set()
    for line in text.splitlines():
        for match in _PORT_RE.finditer(line + " "):
            ports.add(int(match.group(1)))
    return ports


def _app_env(context: ProbeContext) -> dict[str, str]:
    path = context.target.app_dir / ".env"
    try:
        return env_values(parse_env(path.read_text(encoding="utf-8")))
    except OSError:
        return {}


# ---------------------------------------------------------------------------
# Environment probes
# ---------------------------------------------------------------------------


def _env_probes() -> Sequence[ProbeDefinition]:
    probes = [_make_probe("env-privileges", "env", _probe_env_privileges)]
    for binary in REQUIRED_BINARIES:
        probes.append(_make_probe(f"env-{binary}", "env", _probe_env_command(binary, fatal=True)))
    for binary in OPTIONAL_BINARIES:
        probes.append(_make_probe(f"env-{binary}", "env", _probe_env_command(binary, fatal=False)))
    probes.append(_make_probe("env-ss", "env", _probe_env_socket_tool))
    probes.append(_make_probe("env-versions", "env", _probe_env_versions))
    return probes


def _probe_env_privileges(context: ProbeContext) -> ProbeResult:
    if context.is_root:
        return _result("env-privileges", "env", ProbeStatus.OK, "Running as root.")
    return _result(
        "env-privileges",
        "env",
        ProbeStatus.WARN,
        "Not running as root; port, nginx and certificate checks may be incomplete.",
        remediation="Re-run with sudo for complete results.",
    )


def _probe_env_command(
    command: str,
    *,
    fatal: bool,
) -> Callable[[ProbeContext], ProbeResult]:
    def _run(context: ProbeContext) -> ProbeResult:
        resolved = context.runner.which(command)
        if resolved is not None:
            return _result(
                f"env-{command}",
                "env",
                ProbeStatus.OK,
                f"Command '{command}' is installed ({resolved}).",
            )
        hint = install_hint(command)
        if command == "node":
            hint = (hint or "").replace("<major>", str(context.config.host.node_major))
        if fatal:
            return _result(
                f"env-{command}",
                "env",
                ProbeStatus.FAIL,
                f"Command '{command}' is NOT installed.",
                impact=DoctorImpact.ENVIRONMENT,
                remediation=hint,
            )
        return _result(
            f"env-{command}",
            "env",
            ProbeStatus.WARN,
            f"Optional command '{command}' is not installed.",
            remediation=hint,
        )

    return _run


def _probe_env_socket_tool(context: ProbeContext) -> ProbeResult:
    if context.runner.has("ss"):
        return _result("env-ss", "env", ProbeStatus.OK, "Command 'ss' is installed.")
    if context.runner.has("netstat"):
        return _result(
            "env-ss",
            "env",
            ProbeStatus.OK,
            "Command 'ss' missing; falling back to 'netstat'.",
        )
    return _result(
        "env-ss",
        "env",
        ProbeStatus.WARN,
        "Neither 'ss' nor 'netstat' is installed.",
        remediation=install_hint("ss"),
    )


def _probe_env_versions(context: ProbeContext) -> ProbeResult:
    node = context.node.detect_version()
    versions = {
        "node": node.raw if node else None,
        "npm": context.node.npm_version(),
        "pm2": context.pm2.version(),
        "nginx": context.nginx.version() if context.runner.has(context.nginx.nginx_bin) else None,
    }
    found = ", ".join(f"{name} {value}" for name, value in versions.items() if value)
    if node is None:
        return _result(
            "env-versions",
            "env",
            ProbeStatus.WARN,
            f"Node.js not detected. {found}".strip(),
            data=versions,
        )
    message = f"Versions: {found}."
    if node.major != context.config.host.node_major:
        return _result(
            "env-versions",
            "env",
            ProbeStatus.WARN,
            f"{message} Expected Node {context.config.host.node_major}.x.",
            remediation="Run 'webhookctl provision --host-only' to install the expected major.",
            data=versions,
        )
    return _result("env-versions", "env", ProbeStatus.OK, message, data=versions)


# ---------------------------------------------------------------------------
# Service and port probes
# ---------------------------------------------------------------------------


def _service_probes() -> Sequence[ProbeDefinition]:
    return (
        _make_probe("systemd-nginx", "systemd", _probe_systemd_nginx),
        _make_probe("ports-listening", "ports", _probe_ports_listening),
    )


def _probe_systemd_nginx(context: ProbeContext) -> ProbeResult:
    if not context.runner.has(context.systemd.systemctl_bin):
        return _result(
            "systemd-nginx",
            "systemd",
            ProbeStatus.WARN,
            "systemctl not available; check nginx with your init system.",
        )
    try:
        registered = context.systemd.is_registered("nginx")
        active = registered and context.systemd.is_active("nginx")
    except SystemdError as exc:
        return _result("systemd-nginx", "systemd", ProbeStatus.WARN, f"systemctl failed: {exc}")
    if not registered:
        return _result(
            "systemd-nginx",
            "systemd",
            ProbeStatus.WARN,
            "nginx service not registered with systemd.",
            remediation=install_hint("nginx"),
        )
    if not active:
        try:
            status = context.systemd.status("nginx").stdout or ""
        except SystemdError as exc:
            status = str(exc)
        lines = status.splitlines()[:HEAD_LINES]
        return _result(
            "systemd-nginx",
            "systemd",
            ProbeStatus.WARN,
            "nginx is inactive.",
            remediation="Check 'sudo systemctl status nginx'.",
            data={"status": lines},
            details=lines,
        )
    return _result("systemd-nginx", "systemd", ProbeStatus.OK, "nginx is active.")


def _probe_ports_listening(context: ProbeContext) -> ProbeResult:
    if context.runner.has("ss"):
        argv = ["ss", "-tulpn"]
    elif context.runner.has("netstat"):
        argv = ["netstat", "-tulpn"]
    else:
        return _result(
            "ports-listening",
            "ports",
            ProbeStatus.WARN,
            "Neither 'ss' nor 'netstat' found; listening ports not checked.",
            remediation=install_hint("ss"),
        )
    try:
        output = context.runner.run(argv, read_only=True).stdout or ""
    except CommandError as exc:
        return _result("ports-listening", "ports", ProbeStatus.WARN, f"{argv[0]} failed: {exc}")

    listening = _listening_ports(output)
    required = sorted({80, context.target.app_port})
    missing = [port for port in required if port not in listening]
    data = {"listening": sorted(listening), "required": required, "tool": argv[0]}
    if missing:
        return _result(
            "ports-listening",
            "ports",
            ProbeStatus.FAIL,
            f"Nothing listening on port(s) {', '.join(str(p) for p in missing)}.",
            impact=DoctorImpact.PROVIDER,
            remediation="Check nginx and the PM2 process ('pm2 logs').",
            data=data,
        )
    if context.target.expect_tls and 443 not in listening:
        return _result(
            "ports-listening",
            "ports",
            ProbeStatus.WARN,
            "Port 443 is not listening although TLS is expected.",
            remediation="Obtain a certificate with 'webhookctl provision --skip-host'.",
            data=data,
        )
    return _result(
        "ports-listening",
        "ports",
        ProbeStatus.OK,
        f"Listening on {', '.join(str(p) for p in required)}.",
        data=data,
    )


# ---------------------------------------------------------------------------
# Nginx probes
# ---------------------------------------------------------------------------


def _nginx_probes() -> Sequence[ProbeDefinition]:
    return (
        _make_probe("nginx-config", "nginx", _probe_nginx_config),
        _make_probe("nginx-site-available", "nginx", _probe_nginx_site_available),
        _make_probe("nginx-site-enabled", "nginx", _probe_nginx_site_enabled),
    )


def _probe_nginx_config(context: ProbeContext) -> ProbeResult:
    provider = context.nginx
    if not context.runner.has(provider.nginx_bin):
        return _result("nginx-config", "nginx", ProbeStatus.WARN, "nginx is not installed.")
    try:
        result = provider.test_config()
    except NginxError as exc:
        return _result(
            "nginx-config",
            "nginx",
            ProbeStatus.FAIL,
            "nginx -t failed.",
            impact=DoctorImpact.PROVIDER,
            remediation="Fix the reported error, then 'sudo systemctl reload nginx'.",
            data={"output": exc.output or str(exc)},
            details=(exc.output or str(exc)).splitlines(),
        )
    output = (result.stderr or result.stdout or "").strip()
    return _result(
        "nginx-config",
        "nginx",
        ProbeStatus.OK,
        "nginx -t returned OK.",
        data={"output": output},
        details=output.splitlines(),
    )


def _probe_nginx_site_available(context: ProbeContext) -> ProbeResult:
    path = context.nginx.site_path(context.target.site_name)
    if not path.is_file():
        return _result(
            "nginx-site-available",
            "nginx",
            ProbeStatus.WARN,
            f"Missing: {path}",
            remediation="Render it with 'webhookctl provision --skip-host'.",
        )
    try:
        head = _head(path)
    except OSError as exc:
        return _result("nginx-site-available", "nginx", ProbeStatus.WARN, f"Unreadable: {exc}")
    return _result(
        "nginx-site-available",
        "nginx",
        ProbeStatus.OK,
        f"Found: {path}",
        data={"head": head},
        details=head,
    )


def _probe_nginx_site_enabled(context: ProbeContext) -> ProbeResult:
    site_name = context.target.site_name
    target = context.nginx.enabled_path(site_name)
    site_info = context.nginx.diagnostics(site_name)
    if site_info["enabled"] or target.exists():
        return _result(
            "nginx-site-enabled",
            "nginx",
            ProbeStatus.OK,
            f"Enabled: {target}",
            data=site_info,
        )
    source = context.nginx.site_path(site_name)
    return _result(
        "nginx-site-enabled",
        "nginx",
        ProbeStatus.WARN,
        f"Not enabled: {target}",
        remediation=f"ln -s {source} {target} && nginx -t && systemctl reload nginx",
        data=site_info,
    )


# ---------------------------------------------------------------------------
# Application probes
# ---------------------------------------------------------------------------


def _app_probes() -> Sequence[ProbeDefinition]:
    return (
        _make_probe("app-directory", "app", _probe_app_directory),
        _make_probe("app-package-json", "app", _probe_app_file("package.json", "app-package-json")),
        _make_probe("app-entry", "app", _probe_app_entry),
        _make_probe("app-env", "app", _probe_app_env),
        _make_probe("pm2-process", "pm2", _probe_pm2_process),
    )


def _probe_app_directory(context: ProbeContext) -> ProbeResult:
    app_dir = context.target.app_dir
    if app_dir.is_dir():
        return _result("app-directory", "app", ProbeStatus.OK, f"App directory exists: {app_dir}")
    return _result(
        "app-directory",
        "app",
        ProbeStatus.WARN,
        f"App directory not found: {app_dir}",
        remediation="Run 'webhookctl provision --skip-host'.",
    )


def _probe_app_file(name: str, probe_id: str) -> Callable[[ProbeContext], ProbeResult]:
    def _run(context: ProbeContext) -> ProbeResult:
        path = context.target.app_dir / name
        if path.is_file():
            return _result(probe_id, "app", ProbeStatus.OK, f"Found {name}.")
        return _result(
            probe_id,
            "app",
            ProbeStatus.WARN,
            f"Missing {name} (did you copy the project?).",
        )

    return _run


def _probe_app_entry(context: ProbeContext) -> ProbeResult:
    entry = context.target.entry_file
    return _probe_app_file(entry, "app-entry")(context)


def _probe_app_env(context: ProbeContext) -> ProbeResult:
    path = context.target.app_dir / ".env"
    if not path.is_file():
        return _result(
            "app-env",
            "app",
            ProbeStatus.WARN,
            f"No .env found at {context.target.app_dir}.",
            remediation="Run 'webhookctl provision --skip-host' to write it.",
        )
    try:
        text = path.read_text(encoding="utf-8")
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError as exc:
        return _result("app-env", "app", ProbeStatus.WARN, f"Unable to read {path}: {exc}")

    values = env_values(parse_env(text))
    missing = [key for key in REQUIRED_KEYS if not values.get(key)]
    masked = masked_lines(text)
    data = {"path": str(path), "mode": f"{mode:03o}", "masked": masked}
    problems: list[str] = []
    if missing:
        problems.append(f"missing or empty: {', '.join(missing)}")
    if mode != ENV_FILE_MODE:
        problems.append(f"mode is {mode:03o}, expected {ENV_FILE_MODE:03o}")
    if problems:
        return _result(
            "app-env",
            "app",
            ProbeStatus.WARN,
            f"{path}: {'; '.join(problems)}.",
            remediation=f"chmod 600 {path} and fill in the required keys.",
            data=data,
            details=masked,
        )
    return _result(
        "app-env",
        "app",
        ProbeStatus.OK,
        f"Found .env at {path}.",
        data=data,
        details=masked,
    )


def _probe_pm2_process(context: ProbeContext) -> ProbeResult:
    name = context.target.process_name
    if not context.runner.has(context.pm2.pm2_bin):
        return _result(
            "pm2-process",
            "pm2",
            ProbeStatus.WARN,
            "pm2 is not installed.",
            remediation=install_hint("pm2"),
        )
    if not name:
        table = context.pm2.list_table()
        return _result(
            "pm2-process",
            "pm2",
            ProbeStatus.OK,
            "No PM2 process name given; skipped.",
            data={"list": table},
            details=table.splitlines(),
        )
    try:
        process = context.pm2.describe(name)
    except (Pm2Error, MissingDependencyError) as exc:
        return _result("pm2-process", "pm2", ProbeStatus.WARN, f"pm2 jlist failed: {exc}")
    if process is None:
        return _result(
            "pm2-process",
            "pm2",
            ProbeStatus.WARN,
            f"PM2 process '{name}' not found.",
            remediation=f"pm2 start index.js --name {name} && pm2 save",
        )
    data = {"status": process.status, "restarts": process.restarts, "cwd": process.cwd}
    if not process.online:
        return _result(
            "pm2-process",
            "pm2",
            ProbeStatus.WARN,
            f"PM2 process '{name}' is {process.status}.",
            remediation=f"pm2 logs {name}",
            data=data,
        )
    return _result("pm2-process", "pm2", ProbeStatus.OK, f"PM2 process '{name}' is online.", data=data)


# ---------------------------------------------------------------------------
# Log probes
# ---------------------------------------------------------------------------


def _log_probes() -> Sequence[ProbeDefinition]:
    return (
        _make_probe("logs-nginx", "logs", _probe_logs_nginx),
        _make_probe("logs-pm2", "logs", _probe_logs_pm2),
    )


def _probe_logs_nginx(context: ProbeContext) -> ProbeResult:
    path = context.config.nginx.error_log
    try:
        lines = _tail(path)
    except OSError as exc:
        return _result(
            "logs-nginx",
            "logs",
            ProbeStatus.WARN,
            f"{path} not readable: {exc.strerror or exc}",
        )
    return _result(
        "logs-nginx",
        "logs",
        ProbeStatus.OK,
        f"Last {len(lines)} line(s) of {path}.",
        data={"lines": lines},
        details=lines,
    )


def _probe_logs_pm2(context: ProbeContext) -> ProbeResult:
    name = context.target.process_name
    if not name:
        return _result(
            "logs-pm2",
            "logs",
            ProbeStatus.OK,
            "No PM2 process name given; skipped.",
        )
    if not context.runner.has(context.pm2.pm2_bin):
        return _result("logs-pm2", "logs", ProbeStatus.WARN, "pm2 is not installed.")
    try:
        output = context.pm2.logs(name, lines=HEAD_LINES)
    except (Pm2Error, MissingDependencyError) as exc:
        return _result("logs-pm2", "logs", ProbeStatus.WARN, f"pm2 logs failed: {exc}")
    return _result(
        "logs-pm2",
        "logs",
        ProbeStatus.OK,
        f"Last {HEAD_LINES} line(s) of pm2 logs for '{name}'.",
        data={"lines": output.splitlines()},
        details=output.splitlines(),
    )


# ---------------------------------------------------------------------------
# TLS probe
# ---------------------------------------------------------------------------


_TLS_STATUS: Mapping[TLSValidationSeverity, ProbeStatus] = {
    TLSValidationSeverity.OK: ProbeStatus.OK,
    TLSValidationSeverity.WARNING: ProbeStatus.WARN,
    TLSValidationSeverity.ERROR: ProbeStatus.FAIL,
}


def _probe_tls_certificate(context: ProbeContext) -> ProbeResult:
    domain = context.target.domain or ""
    report = context.tls_inspector.inspect(domain)
    data: dict[str, object] = report.to_dict()
    if context.certbot.available():
        try:
            data["certbot"] = context.certbot.certificates(domain)
        except (CertbotError, MissingDependencyError) as exc:
            data["certbot"] = f"unavailable: {exc}"
    status = _TLS_STATUS[report.status]
    remediation = None
    if status is not ProbeStatus.OK:
        remediation = f"sudo certbot certonly --nginx -d {domain}"
    return _result(
        "tls-certificate",
        "tls",
        status,
        report.summary(),
        impact=DoctorImpact.PROVIDER if status is ProbeStatus.FAIL else DoctorImpact.OK,
        remediation=remediation,
        data=data,
    )


# ---------------------------------------------------------------------------
# HTTP probes
# ---------------------------------------------------------------------------


def _http_probes() -> Sequence[ProbeDefinition]:
    return (
        _make_probe("app-health", "http", _probe_app_health),
        _make_probe("telegram-webhook", "http", _probe_telegram_webhook),
        _make_probe("supabase-http", "http", _probe_supabase_http),
    )


def _probe_app_health(context: ProbeContext) -> ProbeResult:
    url = f"http://127.0.0.1:{context.target.app_port}"
    try:
        response = http.head(url, timeout=context.http_timeout)
    except http.HttpError as exc:
        return _result(
            "app-health",
            "http",
            ProbeStatus.WARN,
            f"App not reachable at {url}: {exc}",
            remediation=f"pm2 logs {context.target.process_name or '<name>'}",
        )
    if response.status >= 500:
        return _result(
            "app-health",
            "http",
            ProbeStatus.WARN,
            f"App at {url} answered HTTP {response.status}.",
            data={"status": response.status},
        )
    return _result(
        "app-health",
        "http",
        ProbeStatus.OK,
        f"App at {url} answered HTTP {response.status}.",
        data={"status": response.status},
    )


def _probe_telegram_webhook(context: ProbeContext) -> ProbeResult:
    token = context.target.bot_token or _app_env(context).get("TELEGRAM_TOKEN", "")
    if not token:
        return _result(
            "telegram-webhook",
            "http",
            ProbeStatus.WARN,
            "No TELEGRAM_TOKEN provided; webhook check skipped.",
        )
    client = context.telegram_factory(token)
    try:
        payload = client.get_webhook_info()
    except TelegramError as exc:
        return _result(
            "telegram-webhook",
            "http",
            ProbeStatus.WARN,
            f"Telegram API returned empty/failed: {exc}",
            remediation="Check internet connectivity or token validity.",
        )
    if payload.get("ok") is not True:
        return _result(
            "telegram-webhook",
            "http",
            ProbeStatus.WARN,
            f"getWebhookInfo rejected: {payload.get('description', 'unknown error')}",
            data={"response": payload},
        )
    info = WebhookInfo.from_payload(payload)
    data = {"webhook_info": payload.get("result")}
    expected = context.target.webhook_url
    if expected and info.url != expected:
        return _result(
            "telegram-webhook",
            "http",
            ProbeStatus.WARN,
            f"Webhook points to '{info.url or '(none)'}', expected '{expected}'.",
            remediation="Run 'webhookctl webhook set'.",
            data=data,
        )
    if info.last_error_message:
        return _result(
            "telegram-webhook",
            "http",
            ProbeStatus.WARN,
            f"Telegram reports a delivery error: {info.last_error_message}",
            data=data,
        )
    return _result(
        "telegram-webhook",
        "http",
        ProbeStatus.OK,
        f"Webhook set to {info.url or '(none)'} (pending updates: {info.pending_update_count}).",
        data=data,
    )


def _probe_supabase_http(context: ProbeContext) -> ProbeResult:
    url = context.target.supabase_url or _app_env(context).get("SUPABASE_URL", "")
    if not url or "YOUR-PROJECT" in url:
        return _result(
            "supabase-http",
            "http",
            ProbeStatus.OK,
            "SUPABASE_URL not configured; skipped.",
        )
    try:
        response = http.head(url, timeout=context.http_timeout)
    except http.HttpError as exc:
        return _result("supabase-http", "http", ProbeStatus.WARN, f"Connection failed: {exc}")
    return _result(
        "supabase-http",
        "http",
        ProbeStatus.OK,
        f"{url} answered HTTP {response.status}.",
        data={"status": response.status, "headers": dict(list(response.headers.items())[:20])},
    )


# ---------------------------------------------------------------------------
# Firewall probe
# ---------------------------------------------------------------------------


def _probe_firewall_status(context: ProbeContext) -> ProbeResult:
    if not context.runner.has(context.firewall.ufw_bin):
        return _result(
            "firewall-status",
            "firewall",
            ProbeStatus.WARN,
            "ufw not installed.",
            remediation=install_hint("ufw"),
        )
    try:
        output = context.firewall.status_verbose()
    except (FirewallError, MissingDependencyError) as exc:
        return _result(
            "firewall-status",
            "firewall",
            ProbeStatus.WARN,
            f"ufw status not available: {exc}",
        )
    rules = output.splitlines()[:200]
    data = {"status": rules}
    if "status: active" not in output.lower():
        return _result(
            "firewall-status",
            "firewall",
            ProbeStatus.WARN,
            "ufw is inactive.",
            remediation="Run 'webhookctl provision --host-only' or 'sudo ufw enable'.",
            data=data,
            details=rules,
        )
    return _result(
        "firewall-status",
        "firewall",
        ProbeStatus.OK,
        "ufw is active.",
        data=data,
        details=rules,
    )


__all__ = ["OPTIONAL_BINARIES", "REQUIRED_BINARIES", "collect_probes"]
