"""Utility helpers for serialising verification reports."""
from __future__ import annotations

from ..logging import sanitize
from .models import DoctorReport, ProbeStatus


def serialize_report(report: DoctorReport) -> dict[str, object]:
    """Convert a report into a JSON-serialisable mapping."""
    totals = {
        status.value: int(report.summary.totals.get(status, 0))
        for status in ProbeStatus
    }
    summary_payload = {
        "status": report.summary.status.value,
        "impact": report.summary.impact.name.lower(),
        "exit_code": report.summary.exit_code,
        "totals": totals,
    }
    results_payload: list[dict[str, object]] = []
    for result in report.results:
        result_payload: dict[str, object] = {
            "id": result.id,
            "category": result.category,
            "status": result.status.value,
            "impact": result.impact.name.lower(),
            "message": result.message,
        }
        if result.remediation:
            result_payload["remediation"] = result.remediation
        if result.duration_ms is not None:
            result_payload["duration_ms"] = result.duration_ms
        if result.data:
            result_payload["data"] = sanitize(result.data)
        if result.warnings:
            result_payload["warnings"] = list(result.warnings)
        results_payload.append(result_payload)

    metadata_payload = sanitize(report.metadata) if report.metadata else {}
    return {
        "summary": summary_payload,
        "results": results_payload,
        "metadata": metadata_payload,
    }


__all__ = ["serialize_report"]
