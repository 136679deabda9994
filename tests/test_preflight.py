"""Tests for host preflight checks."""
from __future__ import annotations

from pathlib import Path

import pytest

from webhookctl.pipeline import PreflightError, run_preflight
from webhookctl.pipeline.preflight import read_os_id


def _os_release(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "os-release"
    path.write_text(content, encoding="utf-8")
    return path


def test_non_linux_is_rejected(tmp_path: Path) -> None:
    """Provisioning refuses to run on other platforms."""
    with pytest.raises(PreflightError, match="Linux"):
        run_preflight(platform="darwin", os_release=tmp_path / "missing", root=True)


def test_supported_os_as_root_has_no_warnings(tmp_path: Path) -> None:
    """Ubuntu as root passes cleanly."""
    release = _os_release(tmp_path, 'NAME="Ubuntu"\nID=ubuntu\nVERSION_ID="22.04"\n')

    report = run_preflight(platform="linux", os_release=release, root=True)

    assert report.os_id == "ubuntu"
    assert report.warnings == []


def test_unknown_os_and_non_root_warn(tmp_path: Path) -> None:
    """Other distributions and non-root users produce warnings only."""
    release = _os_release(tmp_path, 'ID="fedora"\n')

    report = run_preflight(platform="linux", os_release=release, root=False)

    assert report.os_id == "fedora"
    assert len(report.warnings) == 2
    assert "apt may fail" in report.warnings[0]
    assert "Not running as root" in report.warnings[1]


def test_read_os_id_handles_missing_file(tmp_path: Path) -> None:
    """A missing os-release file yields no id."""
    assert read_os_id(tmp_path / "absent") is None
