"""Tests for the certbot provider."""
from __future__ import annotations

import subprocess

import pytest
from conftest import FakeRunner, completed

from webhookctl.providers.certbot import CertbotError, CertbotProvider
from webhookctl.runner import MissingDependencyError


def test_request_uses_certonly_with_nginx_authenticator() -> None:
    """Certificates are requested without letting certbot edit the vhost."""
    runner = FakeRunner(binaries=["certbot"])

    CertbotProvider(runner=runner).request("example.com", "ops@example.com")

    assert runner.executed == [
        (
            "certbot",
            "certonly",
            "--nginx",
            "-d",
            "example.com",
            "-m",
            "ops@example.com",
            "--agree-tos",
            "--non-interactive",
            "--keep-until-expiring",
        )
    ]


def test_request_requires_certbot() -> None:
    """A missing certbot is reported with an install hint."""
    runner = FakeRunner()

    with pytest.raises(MissingDependencyError) as excinfo:
        CertbotProvider(runner=runner).request("example.com", "ops@example.com")

    assert "python3-certbot-nginx" in (excinfo.value.hint or "")


def test_renew_dry_run_retries_once() -> None:
    """A transient renewal failure is retried exactly once."""
    runner = FakeRunner(binaries=["certbot"])
    outcomes = iter([1, 0])

    def flaky(command: list[str]) -> subprocess.CompletedProcess[str]:
        return completed(command, returncode=next(outcomes), stderr="timeout")

    runner.respond_with("certbot", "renew", responder=flaky)

    CertbotProvider(runner=runner).renew_dry_run()

    assert runner.executed.count(("certbot", "renew", "--dry-run")) == 2


def test_renew_dry_run_gives_up_after_two_attempts() -> None:
    """Persistent failures raise after the single retry."""
    runner = FakeRunner(binaries=["certbot"])
    runner.respond("certbot", "renew", returncode=1, stderr="challenge failed")

    with pytest.raises(CertbotError, match="challenge failed"):
        CertbotProvider(runner=runner).renew_dry_run()

    assert runner.executed.count(("certbot", "renew", "--dry-run")) == 2


def test_renew_dry_run_without_retries_runs_once() -> None:
    """With a single attempt configured the failure surfaces immediately."""
    runner = FakeRunner(binaries=["certbot"])
    runner.respond("certbot", "renew", returncode=1, stderr="challenge failed")

    with pytest.raises(CertbotError, match="challenge failed"):
        CertbotProvider(runner=runner, renew_attempts=1).renew_dry_run()

    assert runner.executed.count(("certbot", "renew", "--dry-run")) == 1


def test_certificates_filters_domain_block() -> None:
    """Only the block describing the requested domain is returned."""
    runner = FakeRunner(binaries=["certbot"])
    runner.respond(
        "certbot",
        "certificates",
        stdout=(
            "Found the following certs:\n"
            "  Certificate Name: other.org\n"
            "    Domains: other.org\n"
            "- - - -\n"
            "  Certificate Name: example.com\n"
            "    Domains: example.com\n"
            "    Expiry Date: 2030-01-01\n"
            "-------------------------------\n"
            "trailing\n"
        ),
    )

    block = CertbotProvider(runner=runner).certificates("example.com")

    assert block.splitlines()[0] == "  Certificate Name: example.com"
    assert "other.org" not in block
    assert "trailing" not in block
