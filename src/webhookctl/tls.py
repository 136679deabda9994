"""Inspection of Let's Encrypt certificates issued for the webhook domain."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Protocol, cast

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID


class TLSValidationSeverity(Enum):
    """Validation severities for TLS checks."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class TLSValidationFinding:
    """Individual validation check outcome."""

    check: str
    severity: TLSValidationSeverity
    message: str
    path: Path | None = None


@dataclass(frozen=True)
class TLSMaterial:
    """Certificate chain and private key locations for a domain."""

    certificate: Path
    key: Path

    @property
    def present(self) -> bool:
        """Return True when the certificate file exists."""
        return self.certificate.exists()


@dataclass(frozen=True)
class CertificateReport:
    """Aggregate inspection results for a domain's certificate."""

    domain: str
    material: TLSMaterial
    findings: tuple[TLSValidationFinding, ...]
    present: bool = False
    subject: str | None = None
    sans: tuple[str, ...] = field(default_factory=tuple)
    not_valid_after: datetime | None = None
    days_remaining: int | None = None
    covers_domain: bool | None = None
    key_matches: bool | None = None

    @property
    def status(self) -> TLSValidationSeverity:
        """Return the worst severity among the findings."""
        severities = {finding.severity for finding in self.findings}
        if TLSValidationSeverity.ERROR in severities:
            return TLSValidationSeverity.ERROR
        if TLSValidationSeverity.WARNING in severities:
            return TLSValidationSeverity.WARNING
        return TLSValidationSeverity.OK

    def summary(self) -> str:
        """Return the most relevant finding message."""
        status = self.status
        for finding in self.findings:
            if finding.severity is status:
                return finding.message
        return "No certificate findings."

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation of the report."""
        return {
            "domain": self.domain,
            "status": self.status.value,
            "present": self.present,
            "certificate": str(self.material.certificate),
            "key": str(self.material.key),
            "subject": self.subject,
            "sans": list(self.sans),
            "not_valid_after": (
                self.not_valid_after.isoformat() if self.not_valid_after else None
            ),
            "days_remaining": self.days_remaining,
            "covers_domain": self.covers_domain,
            "key_matches": self.key_matches,
            "findings": [
                {
                    "check": finding.check,
                    "severity": finding.severity.value,
                    "message": finding.message,
                    "path": str(finding.path) if finding.path is not None else None,
                }
                for finding in self.findings
            ],
        }


class PublicKeyProtocol(Protocol):
    """Protocol covering public keys exposing ``public_bytes``."""

    def public_bytes(
        self,
        encoding: serialization.Encoding,
        format: serialization.PublicFormat,  # noqa: A002 - mirrors cryptography API
    ) -> bytes:
        """Serialise the public key."""


class PrivateKeyProtocol(Protocol):
    """Protocol covering private keys exposing ``public_key``."""

    def public_key(self) -> PublicKeyProtocol:
        """Return the associated public key."""


class CertificateInspector:
    """Inspect ``<live_dir>/<domain>/fullchain.pem`` and its private key."""

    def __init__(self, live_dir: Path, warn_expiry_days: int = 30) -> None:
        """Capture the Let's Encrypt live directory and expiry threshold."""
        self._live_dir = Path(live_dir)
        self._warn_expiry_days = warn_expiry_days

    def material_for(self, domain: str) -> TLSMaterial:
        """Return the expected certificate paths for *domain*."""
        base = self._live_dir / domain
        return TLSMaterial(certificate=base / "fullchain.pem", key=base / "privkey.pem")

    def inspect(self, domain: str, *, now: datetime | None = None) -> CertificateReport:
        """Inspect the certificate for *domain* and classify it."""
        now = now or datetime.now(UTC)
        material = self.material_for(domain)
        findings: list[TLSValidationFinding] = []

        if not material.certificate.exists():
            findings.append(
                TLSValidationFinding(
                    check="presence",
                    severity=TLSValidationSeverity.WARNING,
                    message=f"No certificate found for {domain}.",
                    path=material.certificate,
                )
            )
            return CertificateReport(domain=domain, material=material, findings=tuple(findings))

        try:
            certificate = _load_certificate(material.certificate)
        except (OSError, ValueError) as exc:
            findings.append(
                TLSValidationFinding(
                    check="parse",
                    severity=TLSValidationSeverity.ERROR,
                    message=f"Failed to parse certificate: {exc}",
                    path=material.certificate,
                )
            )
            return CertificateReport(
                domain=domain,
                material=material,
                findings=tuple(findings),
                present=True,
            )

        subject = _common_name(certificate)
        sans = _subject_alt_names(certificate)
        covers = _covers(domain, subject, sans)
        if not covers:
            findings.append(
                TLSValidationFinding(
                    check="domain",
                    severity=TLSValidationSeverity.ERROR,
                    message=f"Certificate does not cover {domain}.",
                    path=material.certificate,
                )
            )

        key_matches: bool | None = None
        if os.access(material.key, os.R_OK):
            try:
                key_matches = _public_keys_match(certificate, _load_private_key(material.key))
            except (OSError, ValueError, TypeError) as exc:
                findings.append(
                    TLSValidationFinding(
                        check="key",
                        severity=TLSValidationSeverity.ERROR,
                        message=f"Failed to parse private key: {exc}",
                        path=material.key,
                    )
                )
            else:
                if not key_matches:
                    findings.append(
                        TLSValidationFinding(
                            check="key",
                            severity=TLSValidationSeverity.ERROR,
                            message="Certificate does not match the private key.",
                            path=material.key,
                        )
                    )

        not_after = _not_valid_after(certificate)
        days_remaining = (not_after - now).days
        if not_after <= now:
            findings.append(
                TLSValidationFinding(
                    check="expiry",
                    severity=TLSValidationSeverity.ERROR,
                    message=f"Certificate expired on {not_after.isoformat()}",
                    path=material.certificate,
                )
            )
        elif days_remaining <= self._warn_expiry_days:
            findings.append(
                TLSValidationFinding(
                    check="expiry",
                    severity=TLSValidationSeverity.WARNING,
                    message=(
                        "Certificate expires soon "
                        f"({not_after.isoformat()}, {days_remaining} day(s) remaining)"
                    ),
                    path=material.certificate,
                )
            )
        else:
            findings.append(
                TLSValidationFinding(
                    check="expiry",
                    severity=TLSValidationSeverity.OK,
                    message=f"Certificate valid until {not_after.isoformat()}",
                    path=material.certificate,
                )
            )

        return CertificateReport(
            domain=domain,
            material=material,
            findings=tuple(findings),
            present=True,
            subject=subject,
            sans=sans,
            not_valid_after=not_after,
            days_remaining=days_remaining,
            covers_domain=covers,
            key_matches=key_matches,
        )


def _load_certificate(path: Path) -> x509.Certificate:
    data = path.read_bytes()
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError:
        return x509.load_der_x509_certificate(data)


def _load_private_key(path: Path) -> PrivateKeyProtocol:
    data = path.read_bytes()
    private_key = serialization.load_pem_private_key(data, password=None)
    return cast(PrivateKeyProtocol, private_key)


def _public_keys_match(cert: x509.Certificate, private_key: PrivateKeyProtocol) -> bool:
    cert_bytes = cert.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return cert_bytes == key_bytes


def _common_name(cert: x509.Certificate) -> str | None:
    attributes = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return None
    value = attributes[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def _subject_alt_names(cert: x509.Certificate) -> tuple[str, ...]:
    try:
        extension = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return ()
    return tuple(extension.value.get_values_for_type(x509.DNSName))


def _covers(domain: str, subject: str | None, sans: tuple[str, ...]) -> bool:
    names = list(sans) or ([subject] if subject else [])
    target = domain.lower()
    for name in names:
        candidate = name.lower()
        if candidate == target:
            return True
        if candidate.startswith("*.") and target.count(".") >= 1:
            if target.split(".", 1)[1] == candidate[2:]:
                return True
    return False


def _not_valid_after(cert: x509.Certificate) -> datetime:
    value = getattr(cert, "not_valid_after_utc", None)
    if isinstance(value, datetime):
        return value
    return _as_utc(cert.not_valid_after)  # pragma: no cover - older cryptography


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


__all__ = [
    "CertificateInspector",
    "CertificateReport",
    "TLSMaterial",
    "TLSValidationFinding",
    "TLSValidationSeverity",
]
