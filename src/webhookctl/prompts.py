"""Interactive collection of provisioning settings."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Protocol, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from .config import (
    ProvisioningConfig,
    ValidationError,
    default_webhook_url,
    validate_app_dir,
    validate_domain,
    validate_email,
    validate_name,
    validate_port,
    validate_secret,
    validate_url,
)

T = TypeVar("T")

MAX_ATTEMPTS = 3


class ConfirmationDeclined(RuntimeError):
    """Raised when the operator declines to continue."""


class Prompter(Protocol):
    """Minimal prompt surface used by the resolver."""

    def ask(self, label: str, default: str, *, secret: bool = False) -> str:
        """Return the operator's answer (``default`` on enter)."""

    def confirm(self, label: str, default: bool) -> bool:
        """Return the operator's yes/no answer."""


class TyperPrompter:
    """Prompt on the terminal via Typer/Click."""

    def ask(self, label: str, default: str, *, secret: bool = False) -> str:
        """Prompt for *label*, hiding input and the default when *secret*."""
        return str(
            typer.prompt(
                label,
                default=default,
                hide_input=secret,
                show_default=not secret,
            )
        )

    def confirm(self, label: str, default: bool) -> bool:
        """Ask a yes/no question on the terminal."""
        return bool(typer.confirm(label, default=default))


def resolve_interactive(
    config: ProvisioningConfig,
    prompter: Prompter,
    *,
    max_attempts: int = MAX_ATTEMPTS,
) -> ProvisioningConfig:
    """Prompt for every setting, offering the already resolved value as default.

    Invalid answers are re-asked up to *max_attempts* times before
    :class:`~webhookctl.config.ValidationError` propagates.
    """

    def ask(label: str, default: str, validator: Callable[[str], T], *, secret: bool = False) -> T:
        return _ask_valid(prompter, label, default, validator, secret=secret, attempts=max_attempts)

    domain = ask("Domain", config.domain, validate_domain)
    app_port = ask("App port", str(config.app_port), validate_port)
    site_name = ask("Nginx site name", config.site_name, lambda v: validate_name(v, "Site name"))
    app_dir = ask("App directory", str(config.app_dir), validate_app_dir)
    process_name = ask(
        "PM2 process name",
        config.process_name,
        lambda v: validate_name(v, "PM2 process name"),
    )
    enable_ssl = prompter.confirm("Obtain a Let's Encrypt certificate?", config.enable_ssl)
    admin_email = config.admin_email
    if enable_ssl:
        admin_email = ask("Let's Encrypt email", config.admin_email, validate_email)

    # Follow the domain when the URL was derived rather than chosen.
    webhook_default = config.webhook_url
    if not webhook_default or webhook_default == default_webhook_url(config.domain):
        webhook_default = default_webhook_url(domain)
    webhook_url = ask("WEBHOOK_URL", webhook_default, lambda v: validate_url(v, "WEBHOOK_URL"))
    bot_token = ask(
        "TELEGRAM_TOKEN",
        config.bot_token,
        lambda v: validate_secret(v, "TELEGRAM_TOKEN"),
        secret=True,
    )
    supabase_url = ask(
        "SUPABASE_URL",
        config.supabase_url,
        lambda v: validate_url(v, "SUPABASE_URL"),
    )
    supabase_key = ask(
        "SUPABASE_SERVICE_ROLE_KEY",
        config.supabase_key,
        lambda v: validate_secret(v, "SUPABASE_SERVICE_ROLE_KEY"),
        secret=True,
    )
    set_webhook_now = prompter.confirm("Set the Telegram webhook now?", config.set_webhook_now)

    return replace(
        config,
        domain=domain,
        app_port=app_port,
        site_name=site_name,
        app_dir=app_dir,
        process_name=process_name,
        enable_ssl=enable_ssl,
        admin_email=admin_email,
        webhook_url=webhook_url,
        bot_token=bot_token,
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        set_webhook_now=set_webhook_now,
    )


def summary_table(config: ProvisioningConfig) -> Table:
    """Return a Rich table summarising *config* with secrets masked."""
    table = Table(title="Provisioning summary", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for label, value in config.summary_lines():
        table.add_row(label, value)
    return table


def confirm_or_abort(
    config: ProvisioningConfig,
    prompter: Prompter,
    console: Console,
) -> None:
    """Print the summary and require explicit confirmation."""
    console.print(summary_table(config))
    if not prompter.confirm("Proceed with these settings?", False):
        raise ConfirmationDeclined("Provisioning cancelled by operator.")


def _ask_valid(
    prompter: Prompter,
    label: str,
    default: str,
    validator: Callable[[str], T],
    *,
    secret: bool,
    attempts: int,
) -> T:
    for _ in range(attempts - 1):
        answer = prompter.ask(label, default, secret=secret)
        try:
            return validator(answer)
        except ValidationError as exc:
            typer.echo(f"Invalid value: {exc}", err=True)
    answer = prompter.ask(label, default, secret=secret)
    try:
        return validator(answer)
    except ValidationError as exc:
        raise ValidationError(f"{label}: giving up after {attempts} attempts. {exc}") from exc


__all__ = [
    "ConfirmationDeclined",
    "MAX_ATTEMPTS",
    "Prompter",
    "TyperPrompter",
    "confirm_or_abort",
    "resolve_interactive",
    "summary_table",
]
