"""Configuration loader for webhookctl.

This module centralises the logic for reading configuration values from
multiple sources, lowest priority first:

1. Built-in defaults.
2. ``/etc/webhookctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``WEBHOOKCTL_`` plus the historical
   bootstrap/application variables (``NODE_MAJOR``, ``INSTALL_SSL``,
   ``TELEGRAM_TOKEN`` ...).
4. Explicit overrides supplied programmatically (CLI flags).

Interactive prompts are layered on top by :mod:`webhookctl.prompts`.

Environment keys use double underscores to express nesting, e.g.::

    export WEBHOOKCTL_APP__DOMAIN=bot.example.com
    export WEBHOOKCTL_HOST__NODE_MAJOR=20

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``; once built it is never mutated, only replaced.
"""
from __future__ import annotations

import os
import re
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

from .envfile import mask_secret

ENV_PREFIX = "WEBHOOKCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

# Variables understood by the original shell tooling, mapped onto config paths.
LEGACY_ENV_KEYS: Mapping[str, tuple[str, ...]] = {
    "NODE_MAJOR": ("host", "node_major"),
    "INSTALL_SSL": ("host", "install_ssl"),
    "INSTALL_EXTRA_NET": ("host", "install_extra_net"),
    "INSTALL_DEVTOOLS": ("host", "install_devtools"),
    "TELEGRAM_TOKEN": ("app", "bot_token"),
    "WEBHOOK_URL": ("app", "webhook_url"),
    "SUPABASE_URL": ("app", "supabase_url"),
    "SUPABASE_SERVICE_ROLE_KEY": ("app", "supabase_key"),
}

_DOMAIN_RE = re.compile(r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)*")
_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")
_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


class ValidationError(ConfigError):
    """Raised when a configuration value is malformed."""


@dataclass(frozen=True)
class HostConfig:
    """Host bootstrap toggles."""

    node_major: int = 18
    install_ssl: bool = True
    install_extra_net: bool = True
    install_devtools: bool = True
    admin_rule: str = "OpenSSH"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "node_major": self.node_major,
            "install_ssl": self.install_ssl,
            "install_extra_net": self.install_extra_net,
            "install_devtools": self.install_devtools,
            "admin_rule": self.admin_rule,
        }


@dataclass(frozen=True)
class NginxConfig:
    """Locations used by the nginx integration."""

    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    error_log: Path = Path("/var/log/nginx/error.log")
    nginx_bin: str = "nginx"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "sites_available": str(self.sites_available),
            "sites_enabled": str(self.sites_enabled),
            "error_log": str(self.error_log),
            "nginx_bin": self.nginx_bin,
        }


@dataclass(frozen=True)
class TLSConfig:
    """Let's Encrypt locations and expiry policy."""

    live_dir: Path = Path("/etc/letsencrypt/live")
    warn_expiry_days: int = 30

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"live_dir": str(self.live_dir), "warn_expiry_days": self.warn_expiry_days}


@dataclass(frozen=True)
class ProvisioningConfig:
    """Settings for the webhook application; secrets never appear in ``repr``."""

    domain: str = "bot.example.com"
    app_port: int = 3000
    site_name: str = "webhook"
    app_dir: Path = Path("/var/www/webhook")
    process_name: str = "telegram-webhook"
    entry_file: str = "index.js"
    enable_ssl: bool = False
    admin_email: str = "admin@example.com"
    webhook_url: str = ""
    bot_token: str = field(default="", repr=False)
    supabase_url: str = "https://YOUR-PROJECT.supabase.co"
    supabase_key: str = field(default="", repr=False)
    set_webhook_now: bool = False

    def env_values(self) -> dict[str, object]:
        """Return the application's ``.env`` contents in file order."""
        return {
            "PORT": self.app_port,
            "TELEGRAM_TOKEN": self.bot_token,
            "WEBHOOK_URL": self.webhook_url,
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_SERVICE_ROLE_KEY": self.supabase_key,
        }

    def summary_lines(self) -> list[tuple[str, str]]:
        """Return label/value pairs for the confirmation summary."""
        return [
            ("Domain", self.domain),
            ("App port", str(self.app_port)),
            ("Nginx site", self.site_name),
            ("App dir", str(self.app_dir)),
            ("PM2 name", self.process_name),
            ("SSL via certbot", "yes" if self.enable_ssl else "no"),
            ("Admin email", self.admin_email if self.enable_ssl else "-"),
            ("WEBHOOK_URL", self.webhook_url),
            ("TELEGRAM_TOKEN", mask_secret(self.bot_token) or "(empty)"),
            ("SUPABASE_URL", self.supabase_url),
            ("SUPABASE key", mask_secret(self.supabase_key) or "(empty)"),
            ("Set webhook now", "yes" if self.set_webhook_now else "no"),
        ]

    def to_dict(self, *, mask: bool = True) -> dict[str, object]:
        """Return a serialisable representation (secrets masked by default)."""
        token = mask_secret(self.bot_token) if mask else self.bot_token
        key = mask_secret(self.supabase_key) if mask else self.supabase_key
        return {
            "domain": self.domain,
            "app_port": self.app_port,
            "site_name": self.site_name,
            "app_dir": str(self.app_dir),
            "process_name": self.process_name,
            "entry_file": self.entry_file,
            "enable_ssl": self.enable_ssl,
            "admin_email": self.admin_email,
            "webhook_url": self.webhook_url,
            "bot_token": token,
            "supabase_url": self.supabase_url,
            "supabase_key": key,
            "set_webhook_now": self.set_webhook_now,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for webhookctl."""

    config_file: Path
    logs_dir: Path
    templates_dir: Path
    http_timeout: float
    host: HostConfig
    nginx: NginxConfig
    tls: TLSConfig
    app: ProvisioningConfig

    def to_dict(self, *, mask: bool = True) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir),
            "http_timeout": self.http_timeout,
            "host": self.host.to_dict(),
            "nginx": self.nginx.to_dict(),
            "tls": self.tls.to_dict(),
            "app": self.app.to_dict(mask=mask),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/webhookctl/config.yml",
    "logs_dir": "/var/log/webhookctl",
    "templates_dir": "/etc/webhookctl/templates",
    "http_timeout": 10.0,
    "host": {
        "node_major": 18,
        "install_ssl": True,
        "install_extra_net": True,
        "install_devtools": True,
        "admin_rule": "OpenSSH",
    },
    "nginx": {
        "sites_available": "/etc/nginx/sites-available",
        "sites_enabled": "/etc/nginx/sites-enabled",
        "error_log": "/var/log/nginx/error.log",
        "nginx_bin": "nginx",
    },
    "tls": {
        "live_dir": "/etc/letsencrypt/live",
        "warn_expiry_days": 30,
    },
    "app": {
        "domain": "bot.example.com",
        "app_port": 3000,
        "site_name": "webhook",
        "app_dir": "/var/www/webhook",
        "process_name": "telegram-webhook",
        "entry_file": "index.js",
        "enable_ssl": False,
        "admin_email": "admin@example.com",
        "webhook_url": None,  # derived from domain when absent
        "bot_token": "",
        "supabase_url": "https://YOUR-PROJECT.supabase.co",
        "supabase_key": "",
        "set_webhook_now": False,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SECTION_KEYS: Mapping[str, set[str]] = {
    section: set(cast(Mapping[str, object], DEFAULTS[section]).keys())
    for section in ("host", "nginx", "tls", "app")
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def default_webhook_url(domain: str) -> str:
    """Return the conventional webhook URL for *domain*."""
    return f"https://{domain}/webhook"


# ---------------------------------------------------------------------------
# Value validators (shared with the interactive resolver)
# ---------------------------------------------------------------------------


def validate_domain(value: object) -> str:
    """Validate and normalise a domain/FQDN."""
    if not isinstance(value, str):
        raise ValidationError("Domain must be a string.")
    normalised = value.strip().lower()
    if not normalised:
        raise ValidationError("Domain must be a non-empty string.")
    if len(normalised) > 253:
        raise ValidationError("Domain must be 253 characters or fewer.")
    if "/" in normalised or "\\" in normalised:
        raise ValidationError("Domain must not contain path separators.")
    if not _DOMAIN_RE.fullmatch(normalised):
        raise ValidationError(
            "Domain may contain letters, numbers, dots, and hyphens "
            "(labels cannot start or end with a hyphen)."
        )
    return normalised


def validate_port(value: object) -> int:
    """Return *value* as a TCP port in ``[1, 65535]``."""
    if isinstance(value, bool):
        raise ValidationError(f"Port must be an integer, got {value!r}.")
    if isinstance(value, int):
        port = value
    elif isinstance(value, str) and value.strip().isdigit():
        port = int(value.strip())
    else:
        raise ValidationError(f"Port must be an integer, got {value!r}.")
    if not 1 <= port <= 65535:
        raise ValidationError(f"Port must be between 1 and 65535, got {port}.")
    return port


def validate_name(value: object, label: str) -> str:
    """Validate a file or process name (no path separators)."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string.")
    normalised = value.strip()
    if not _NAME_RE.fullmatch(normalised):
        raise ValidationError(
            f"{label} may contain letters, numbers, dots, underscores, and hyphens."
        )
    return normalised


def validate_app_dir(value: object) -> Path:
    """Validate that the application directory is an absolute path."""
    if not isinstance(value, (str, Path)) or not str(value).strip():
        raise ValidationError("App directory must be a non-empty path.")
    path = Path(str(value).strip()).expanduser()
    if not path.is_absolute():
        raise ValidationError(f"App directory must be an absolute path, got {value!r}.")
    return path


def validate_email(value: object) -> str:
    """Validate the Let's Encrypt registration address."""
    if not isinstance(value, str) or not _EMAIL_RE.fullmatch(value.strip()):
        raise ValidationError(f"Admin email must look like user@example.com, got {value!r}.")
    return value.strip()


def validate_url(value: object, label: str) -> str:
    """Validate an http(s) URL without spaces."""
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string.")
    text = value.strip()
    if not text.startswith(("http://", "https://")) or any(ch.isspace() for ch in text):
        raise ValidationError(f"{label} must be an http(s) URL, got {value!r}.")
    return text


def validate_secret(value: object, label: str) -> str:
    """Validate a secret value (single line, may be empty)."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string.")
    text = value.strip()
    if "\n" in text or "\r" in text:
        raise ValidationError(f"{label} must be a single line.")
    return text


def build_provisioning_config(raw: Mapping[str, object]) -> ProvisioningConfig:
    """Validate *raw* app values and return a :class:`ProvisioningConfig`."""
    domain = validate_domain(raw.get("domain"))
    webhook_raw = raw.get("webhook_url")
    webhook_url = (
        validate_url(webhook_raw, "WEBHOOK_URL")
        if isinstance(webhook_raw, str) and webhook_raw.strip()
        else default_webhook_url(domain)
    )
    enable_ssl = _expect_bool(raw.get("enable_ssl"), "app.enable_ssl", default=False)
    admin_email_raw = raw.get("admin_email", "admin@example.com")
    admin_email = (
        validate_email(admin_email_raw) if enable_ssl else str(admin_email_raw or "").strip()
    )
    return ProvisioningConfig(
        domain=domain,
        app_port=validate_port(raw.get("app_port")),
        site_name=validate_name(raw.get("site_name"), "Site name"),
        app_dir=validate_app_dir(raw.get("app_dir")),
        process_name=validate_name(raw.get("process_name"), "PM2 process name"),
        entry_file=validate_name(raw.get("entry_file", "index.js"), "Entry file"),
        enable_ssl=enable_ssl,
        admin_email=admin_email,
        webhook_url=webhook_url,
        bot_token=validate_secret(raw.get("bot_token"), "TELEGRAM_TOKEN"),
        supabase_url=validate_url(raw.get("supabase_url"), "SUPABASE_URL"),
        supabase_key=validate_secret(raw.get("supabase_key"), "SUPABASE_SERVICE_ROLE_KEY"),
        set_webhook_now=_expect_bool(
            raw.get("set_webhook_now"), "app.set_webhook_now", default=False
        ),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in ALLOWED_SECTION_KEYS.items():
        mapping = _as_dict(raw.get(section), section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    host_mapping = _as_dict(raw.get("host"), "host")
    node_major = _expect_int(host_mapping.get("node_major"), "host.node_major", default=18)
    if node_major <= 0:
        raise ValidationError(f"host.node_major must be a positive integer, got {node_major}.")
    admin_rule = str(host_mapping.get("admin_rule") or "OpenSSH").strip()
    host = HostConfig(
        node_major=node_major,
        install_ssl=_expect_bool(host_mapping.get("install_ssl"), "host.install_ssl", default=True),
        install_extra_net=_expect_bool(
            host_mapping.get("install_extra_net"), "host.install_extra_net", default=True
        ),
        install_devtools=_expect_bool(
            host_mapping.get("install_devtools"), "host.install_devtools", default=True
        ),
        admin_rule=admin_rule,
    )

    nginx_mapping = _as_dict(raw.get("nginx"), "nginx")
    nginx = NginxConfig(
        sites_available=_to_path(nginx_mapping.get("sites_available")),
        sites_enabled=_to_path(nginx_mapping.get("sites_enabled")),
        error_log=_to_path(nginx_mapping.get("error_log")),
        nginx_bin=str(nginx_mapping.get("nginx_bin") or "nginx"),
    )

    tls_mapping = _as_dict(raw.get("tls"), "tls")
    warn_days = _expect_int(tls_mapping.get("warn_expiry_days"), "tls.warn_expiry_days", default=30)
    if warn_days < 0:
        raise ConfigError("tls.warn_expiry_days must be non-negative.")
    tls = TLSConfig(live_dir=_to_path(tls_mapping.get("live_dir")), warn_expiry_days=warn_days)

    app = build_provisioning_config(_as_dict(raw.get("app"), "app"))

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        http_timeout=_expect_positive_float(raw.get("http_timeout"), "http_timeout", default=10.0),
        host=host,
        nginx=nginx,
        tls=tls,
        app=app,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, path in LEGACY_ENV_KEYS.items():
        if key in env:
            _assign_nested(overrides, list(path), _coerce_env_value(path, env[key]))
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_env_value(tuple(path_segments), value))
    return overrides


def _coerce_env_value(path: tuple[str, ...], raw: str) -> object:
    # Secrets and URLs are kept verbatim; YAML coercion would mangle them.
    if path[0] == "app":
        return raw.strip()
    return _coerce_value(raw)


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"yes", "y", "true", "on", "1"}:
            return True
        if lowered in {"no", "n", "false", "off", "0"}:
            return False
    raise ConfigError(f"Expected {label} to be a boolean (yes/no). Got {value!r}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 10)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.")
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULTS",
    "HostConfig",
    "NginxConfig",
    "ProvisioningConfig",
    "TLSConfig",
    "ValidationError",
    "build_provisioning_config",
    "default_webhook_url",
    "load_config",
    "validate_app_dir",
    "validate_domain",
    "validate_email",
    "validate_name",
    "validate_port",
    "validate_secret",
    "validate_url",
]
