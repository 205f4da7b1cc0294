from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import PrivateFormat, pkcs12
from cryptography.x509.oid import NameOID

from autoprovision.logger import debug, get_console
from autoprovision.src.apple.app_store_connect_api import create_retrying_session
from autoprovision.src.core.errors import CertificateDownloadError

console = get_console()

DISTRIBUTION_PREFIXES = ("iphone distribution", "apple distribution")


@dataclass
class CertificateFileURL:
    url: str
    passphrase: str = ""


@dataclass
class LocalCertificate:
    """A signing identity loaded from a PKCS#12 bundle"""

    common_name: str
    team_id: str
    team_name: str
    serial_number: int
    not_valid_before: datetime
    not_valid_after: datetime
    certificate: x509.Certificate = field(repr=False)
    private_key: object = field(default=None, repr=False)

    @classmethod
    def from_x509(cls, certificate: x509.Certificate, private_key=None) -> "LocalCertificate":
        def subject_value(oid) -> str:
            attrs = certificate.subject.get_attributes_for_oid(oid)
            return str(attrs[0].value) if attrs else ""

        return cls(
            common_name=subject_value(NameOID.COMMON_NAME),
            team_id=subject_value(NameOID.ORGANIZATIONAL_UNIT_NAME),
            team_name=subject_value(NameOID.ORGANIZATION_NAME),
            serial_number=certificate.serial_number,
            not_valid_before=certificate.not_valid_before_utc,
            not_valid_after=certificate.not_valid_after_utc,
            certificate=certificate,
            private_key=private_key,
        )

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.not_valid_before <= now <= self.not_valid_after

    def to_pkcs12(self, passphrase: bytes) -> bytes:
        """Re-export the identity with an encryption `security import` accepts"""
        encryption = (
            PrivateFormat.PKCS12.encryption_builder()
            .kdf_rounds(50000)
            .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
            .hmac_hash(hashes.SHA1())
            .build(passphrase)
        )
        return pkcs12.serialize_key_and_certificates(
            self.common_name.encode(), self.private_key, self.certificate, None, encryption
        )

    def __str__(self) -> str:
        return (
            f"{self.common_name} [{format(self.serial_number, 'X')}] "
            f"team: {self.team_name} ({self.team_id}) "
            f"expire: {self.not_valid_after:%Y-%m-%d}"
        )


@dataclass
class FilteredCertificates:
    valid: List[LocalCertificate] = field(default_factory=list)
    invalid: List[LocalCertificate] = field(default_factory=list)
    duplicated: List[LocalCertificate] = field(default_factory=list)


def is_distribution_certificate(certificate: LocalCertificate) -> bool:
    return certificate.common_name.lower().startswith(DISTRIBUTION_PREFIXES)


def filter_valid_certificates(
    certificates: List[LocalCertificate], now: Optional[datetime] = None
) -> FilteredCertificates:
    """Drop expired and not yet valid certificates, keep the newest of duplicates.

    Certificates are duplicates when they share the common name and the team.
    """
    now = now or datetime.now(timezone.utc)
    result = FilteredCertificates()
    newest: Dict[Tuple[str, str], LocalCertificate] = {}

    for certificate in certificates:
        if not certificate.is_valid(now):
            result.invalid.append(certificate)
            continue

        key = (certificate.common_name, certificate.team_id)
        current = newest.get(key)
        if current is None:
            newest[key] = certificate
        elif certificate.not_valid_after > current.not_valid_after:
            result.duplicated.append(current)
            newest[key] = certificate
        else:
            result.duplicated.append(certificate)

    result.valid = list(newest.values())
    return result


def load_pkcs12(content: bytes, passphrase: str) -> List[LocalCertificate]:
    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            content, passphrase.encode() if passphrase else None
        )
    except ValueError as e:
        raise CertificateDownloadError(f"failed to parse PKCS#12 certificate: {e}") from e
    if certificate is None:
        return []
    return [LocalCertificate.from_x509(certificate, private_key)]


def _download(url: str, session: requests.Session) -> bytes:
    parts = urlsplit(url)
    if parts.scheme == "file":
        path = unquote(parts.path)
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise CertificateDownloadError(f"failed to read certificate ({path}): {e}") from e

    try:
        response = session.get(url, timeout=60)
        response.raise_for_status()
    except requests.RequestException as e:
        raise CertificateDownloadError(f"failed to download certificate: {e}") from e
    return response.content


def download_certificates(
    certificate_urls: List[CertificateFileURL],
    session: Optional[requests.Session] = None,
) -> List[LocalCertificate]:
    session = session or create_retrying_session()
    certificates = []
    for index, certificate_url in enumerate(certificate_urls):
        debug(f"Downloading certificate {index + 1}/{len(certificate_urls)}")
        content = _download(certificate_url.url, session)
        certificates.extend(load_pkcs12(content, certificate_url.passphrase))

    console.print(f"[green]{len(certificates)} certificates downloaded:")
    for certificate in certificates:
        console.print(f"- {certificate.common_name}")
    return certificates
