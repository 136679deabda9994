"""Telegram Bot API calls used to register and inspect the webhook."""
from __future__ import annotations

import json
import urllib.parse
from dataclasses import dataclass, field

from . import http
from .envfile import mask_secret

API_BASE = "https://api.telegram.org"


class TelegramError(RuntimeError):
    """Raised when the Bot API cannot be reached or answers with garbage."""


@dataclass(frozen=True)
class WebhookInfo:
    """Relevant fields of ``getWebhookInfo``."""

    url: str
    pending_update_count: int = 0
    last_error_message: str | None = None
    last_error_date: int | None = None
    raw: dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> WebhookInfo:
        """Build from a decoded API response."""
        result = payload.get("result")
        if not isinstance(result, dict):
            result = {}
        pending = result.get("pending_update_count")
        error_date = result.get("last_error_date")
        message = result.get("last_error_message")
        return cls(
            url=str(result.get("url") or ""),
            pending_update_count=pending if isinstance(pending, int) else 0,
            last_error_message=str(message) if message else None,
            last_error_date=error_date if isinstance(error_date, int) else None,
            raw=payload,
        )


@dataclass(slots=True)
class TelegramClient:
    """Thin wrapper over the Bot API; the token never appears in errors."""

    token: str
    timeout: float = http.DEFAULT_TIMEOUT
    api_base: str = API_BASE

    def set_webhook(self, url: str) -> dict[str, object]:
        """Register *url* as the bot's webhook."""
        query = urllib.parse.urlencode({"url": url})
        return self._call(f"setWebhook?{query}")

    def get_webhook_info(self) -> dict[str, object]:
        """Return the raw ``getWebhookInfo`` payload."""
        return self._call("getWebhookInfo")

    def webhook_info(self) -> WebhookInfo:
        """Return ``getWebhookInfo`` as a :class:`WebhookInfo`."""
        return WebhookInfo.from_payload(self.get_webhook_info())

    # ------------------------------------------------------------------
    def _call(self, method: str) -> dict[str, object]:
        if not self.token:
            raise TelegramError("Telegram bot token is empty.")
        url = f"{self.api_base}/bot{self.token}/{method}"
        try:
            response = http.fetch(url, timeout=self.timeout)
        except http.HttpError as exc:
            raise TelegramError(self._scrub(str(exc))) from None
        try:
            payload = json.loads(response.text())
        except json.JSONDecodeError:
            raise TelegramError(
                f"Bot API returned a non-JSON response (HTTP {response.status})."
            ) from None
        if not isinstance(payload, dict):
            raise TelegramError("Bot API returned an unexpected payload.")
        return payload

    def _scrub(self, message: str) -> str:
        return message.replace(self.token, mask_secret(self.token))


__all__ = ["API_BASE", "TelegramClient", "TelegramError", "WebhookInfo"]
