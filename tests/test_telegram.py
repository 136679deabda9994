"""Tests for the Telegram Bot API client."""
from __future__ import annotations

import json

import pytest

from webhookctl import http
from webhookctl.telegram import TelegramClient, TelegramError, WebhookInfo

TOKEN = "123456789:AAHsecretTokenValue"


def _respond(monkeypatch: pytest.MonkeyPatch, payload: object, status: int = 200) -> list[str]:
    calls: list[str] = []

    def fake_fetch(url: str, **kwargs: object) -> http.HttpResponse:
        calls.append(url)
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return http.HttpResponse(url=url, status=status, body=body)

    monkeypatch.setattr(http, "fetch", fake_fetch)
    return calls


def test_set_webhook_encodes_url(monkeypatch: pytest.MonkeyPatch) -> None:
    """The webhook URL is passed as an encoded query parameter."""
    calls = _respond(monkeypatch, {"ok": True, "result": True})

    payload = TelegramClient(TOKEN).set_webhook("https://example.com/webhook")

    assert payload == {"ok": True, "result": True}
    assert calls == [
        f"https://api.telegram.org/bot{TOKEN}/setWebhook?url=https%3A%2F%2Fexample.com%2Fwebhook"
    ]


def test_webhook_info_parses_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    """Relevant fields are lifted out of the payload."""
    _respond(
        monkeypatch,
        {
            "ok": True,
            "result": {
                "url": "https://example.com/webhook",
                "pending_update_count": 4,
                "last_error_message": "Connection refused",
                "last_error_date": 1700000000,
            },
        },
    )

    info = TelegramClient(TOKEN).webhook_info()

    assert info.url == "https://example.com/webhook"
    assert info.pending_update_count == 4
    assert info.last_error_message == "Connection refused"
    assert info.last_error_date == 1700000000


def test_webhook_info_tolerates_missing_result() -> None:
    """Payloads without a result yield empty defaults."""
    info = WebhookInfo.from_payload({"ok": False, "description": "Unauthorized"})

    assert info.url == ""
    assert info.pending_update_count == 0
    assert info.last_error_message is None


def test_http_errors_are_returned_as_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    """API error statuses still carry a JSON description."""
    _respond(monkeypatch, {"ok": False, "error_code": 401, "description": "Unauthorized"}, 401)

    payload = TelegramClient(TOKEN).get_webhook_info()

    assert payload["ok"] is False


def test_transport_errors_scrub_token(monkeypatch: pytest.MonkeyPatch) -> None:
    """The token never appears in raised errors."""

    def fail(url: str, **kwargs: object) -> http.HttpResponse:
        raise http.HttpError(f"GET {url} failed: timed out")

    monkeypatch.setattr(http, "fetch", fail)

    with pytest.raises(TelegramError) as excinfo:
        TelegramClient(TOKEN).get_webhook_info()

    assert TOKEN not in str(excinfo.value)
    assert "12****ue" in str(excinfo.value)


def test_non_json_response_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    """HTML error pages are reported without the body."""
    _respond(monkeypatch, b"<html>bad gateway</html>", 502)

    with pytest.raises(TelegramError, match="HTTP 502"):
        TelegramClient(TOKEN).get_webhook_info()


def test_empty_token_is_rejected() -> None:
    """No request is attempted without a token."""
    with pytest.raises(TelegramError, match="empty"):
        TelegramClient("").set_webhook("https://example.com/webhook")
