"""Small HTTP client built on :mod:`urllib.request`."""
from __future__ import annotations

import socket
import ssl
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field

DEFAULT_TIMEOUT = 10.0
USER_AGENT = "webhookctl"


class HttpError(RuntimeError):
    """Raised when a request cannot be completed (DNS, connect, timeout, TLS)."""


@dataclass(slots=True)
class HttpResponse:
    """Status, headers and body of a completed request."""

    url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        """Return True for 2xx and 3xx responses."""
        return 200 <= self.status < 400

    def text(self) -> str:
        """Return the body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")


def fetch(
    url: str,
    *,
    method: str = "GET",
    timeout: float = DEFAULT_TIMEOUT,
    headers: Mapping[str, str] | None = None,
    verify: bool = True,
) -> HttpResponse:
    """Perform a request with a bounded *timeout*.

    HTTP error statuses are returned as responses; only transport failures
    raise :class:`HttpError`.
    """
    request_headers = {"User-Agent": USER_AGENT, **dict(headers or {})}
    request = urllib.request.Request(url, method=method.upper(), headers=request_headers)
    context = None
    if url.startswith("https://"):
        context = ssl.create_default_context()
        if not verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
    try:
        with urllib.request.urlopen(request, timeout=timeout, context=context) as response:
            body = response.read() if request.get_method() != "HEAD" else b""
            return HttpResponse(
                url=url,
                status=response.status,
                headers=dict(response.headers.items()),
                body=body,
            )
    except urllib.error.HTTPError as exc:
        body = exc.read() if exc.fp is not None else b""
        return HttpResponse(
            url=url,
            status=exc.code,
            headers=dict(exc.headers.items()) if exc.headers else {},
            body=body,
        )
    except urllib.error.URLError as exc:
        raise HttpError(f"{method.upper()} {url} failed: {exc.reason}") from exc
    except (socket.timeout, TimeoutError) as exc:
        raise HttpError(f"{method.upper()} {url} timed out after {timeout}s") from exc
    except OSError as exc:
        raise HttpError(f"{method.upper()} {url} failed: {exc}") from exc


def head(url: str, *, timeout: float = DEFAULT_TIMEOUT, verify: bool = True) -> HttpResponse:
    """Issue a ``HEAD`` request."""
    return fetch(url, method="HEAD", timeout=timeout, verify=verify)


__all__ = ["DEFAULT_TIMEOUT", "HttpError", "HttpResponse", "fetch", "head"]
