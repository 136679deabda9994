"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from webhookctl.accounts import OperatorAccount
from webhookctl.config import AppConfig, load_config
from webhookctl.doctor import ProbeContext, VerifyTarget
from webhookctl.node_runtime import NodeRuntimeManager
from webhookctl.pipeline import PipelineContext
from webhookctl.providers import (
    AptProvider,
    CertbotProvider,
    FirewallProvider,
    NginxProvider,
    Pm2Provider,
    SystemdProvider,
)
from webhookctl.runner import CommandError, CommandRunner, describe_output
from webhookctl.telegram import TelegramClient
from webhookctl.templates import TemplateEngine
from webhookctl.tls import CertificateInspector

Responder = Callable[[list[str]], subprocess.CompletedProcess[str]]


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


def completed(
    args: Sequence[str] = (),
    returncode: int = 0,
    stdout: str = "",
    stderr: str = "",
) -> subprocess.CompletedProcess[str]:
    """Return a ``CompletedProcess`` for scripted commands."""
    return subprocess.CompletedProcess(list(args), returncode=returncode, stdout=stdout, stderr=stderr)


class FakeRunner(CommandRunner):
    """Command runner that answers from a script instead of spawning processes.

    Responses are matched on the longest registered argv prefix; unmatched
    commands succeed with empty output.
    """

    def __init__(
        self,
        *,
        dry_run: bool = False,
        binaries: Sequence[str] = (),
    ) -> None:
        super().__init__(dry_run=dry_run)
        self.binaries = set(binaries)
        self.responses: dict[tuple[str, ...], Responder | subprocess.CompletedProcess[str]] = {}
        self.executed: list[tuple[str, ...]] = []
        self.envs: list[Mapping[str, str] | None] = []

    def which(self, binary: str) -> str | None:
        return f"/usr/bin/{binary}" if binary in self.binaries else None

    def respond(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.responses[tuple(prefix)] = completed(prefix, returncode, stdout, stderr)

    def respond_with(self, *prefix: str, responder: Responder) -> None:
        self.responses[tuple(prefix)] = responder

    def run(
        self,
        args: Sequence[str],
        *,
        read_only: bool = False,
        check: bool = False,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        input: str | None = None,  # noqa: A002 - mirrors CommandRunner.run
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        command = [str(item) for item in args]
        self.history.append(tuple(command))
        if self.dry_run and not read_only:
            return completed(command)
        self.executed.append(tuple(command))
        self.envs.append(env)
        result = self._lookup(command)
        if check and result.returncode != 0:
            message = describe_output(result)
            raise CommandError(
                f"{' '.join(command)} failed (exit {result.returncode}): {message}",
                args=command,
                returncode=result.returncode,
                output=message,
            )
        return result

    def ran(self, *prefix: str) -> bool:
        """Return True when an executed command starts with *prefix*."""
        return any(command[: len(prefix)] == prefix for command in self.executed)

    def _lookup(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        best: tuple[str, ...] | None = None
        for prefix in self.responses:
            if tuple(command[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return completed(command)
        response = self.responses[best]
        if callable(response):
            return response(command)
        return completed(command, response.returncode, response.stdout, response.stderr)


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Return a runner with no binaries and no scripted responses."""
    return FakeRunner()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Return a configuration whose paths all live under ``tmp_path``."""
    return load_config(
        tmp_path / "missing-config.yml",
        env={},
        overrides={
            "logs_dir": str(tmp_path / "logs"),
            "templates_dir": str(tmp_path / "templates"),
            "nginx": {
                "sites_available": str(tmp_path / "sites-available"),
                "sites_enabled": str(tmp_path / "sites-enabled"),
                "error_log": str(tmp_path / "nginx-error.log"),
            },
            "tls": {"live_dir": str(tmp_path / "live")},
            "app": {
                "domain": "example.com",
                "app_dir": str(tmp_path / "app"),
            },
        },
    )


def build_pipeline_context(
    config: AppConfig,
    runner: FakeRunner,
    *,
    home: Path,
    telegram_factory: Callable[[str], TelegramClient] = TelegramClient,
    **kwargs: object,
) -> PipelineContext:
    """Wire real providers around *runner* for pipeline tests."""
    apt = AptProvider(runner=runner)
    return PipelineContext(
        config=config,
        runner=runner,
        operator=OperatorAccount(name="deploy", uid=None, gid=None, home=home),
        apt=apt,
        node=NodeRuntimeManager(runner=runner, apt=apt),
        pm2=Pm2Provider(runner=runner),
        firewall=FirewallProvider(runner=runner),
        systemd=SystemdProvider(runner=runner),
        nginx=NginxProvider(
            templates=TemplateEngine.with_overrides(None),
            runner=runner,
            sites_available=config.nginx.sites_available,
            sites_enabled=config.nginx.sites_enabled,
        ),
        certbot=CertbotProvider(runner=runner),
        tls_inspector=CertificateInspector(config.tls.live_dir),
        telegram_factory=telegram_factory,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.fixture
def pipeline_context(app_config: AppConfig, fake_runner: FakeRunner, tmp_path: Path) -> PipelineContext:
    """Return a pipeline context backed by ``fake_runner``."""
    return build_pipeline_context(app_config, fake_runner, home=tmp_path)


def build_probe_context(
    config: AppConfig,
    runner: FakeRunner,
    *,
    target: VerifyTarget | None = None,
    is_root: bool = True,
) -> ProbeContext:
    """Return a probe context whose providers share *runner*."""
    app = config.app
    return ProbeContext(
        config=config,
        target=target
        or VerifyTarget(
            site_name=app.site_name,
            app_dir=app.app_dir,
            app_port=app.app_port,
            process_name=app.process_name,
        ),
        runner=runner,
        node=NodeRuntimeManager(runner=runner, apt=AptProvider(runner=runner)),
        pm2=Pm2Provider(runner=runner),
        nginx=NginxProvider(
            templates=TemplateEngine.with_overrides(None),
            runner=runner,
            sites_available=config.nginx.sites_available,
            sites_enabled=config.nginx.sites_enabled,
        ),
        systemd=SystemdProvider(runner=runner),
        firewall=FirewallProvider(runner=runner),
        certbot=CertbotProvider(runner=runner),
        tls_inspector=CertificateInspector(config.tls.live_dir),
        telegram_factory=TelegramClient,
        is_root=is_root,
    )
