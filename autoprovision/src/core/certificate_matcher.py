from dataclasses import dataclass
from typing import Dict, List, Mapping

from autoprovision.logger import debug, get_console, is_verbose
from autoprovision.src.apple.models import CertificateType, PortalCertificate
from autoprovision.src.apple.portal_client import DeveloperPortalClient
from autoprovision.src.certificates.local_certificates import (
    LocalCertificate,
    filter_valid_certificates,
    is_distribution_certificate,
)
from autoprovision.src.core.errors import (
    MissingCertificateError,
    PortalAPIError,
    UnmatchedCertificatesError,
)

console = get_console()


@dataclass
class MatchedCertificate:
    """A local signing identity together with its developer portal record"""

    local: LocalCertificate
    portal: PortalCertificate

    @property
    def id(self) -> str:
        return self.portal.id

    def __str__(self) -> str:
        return str(self.local)


def _describe(certificates: List[LocalCertificate]) -> str:
    return "\n".join(f"- {c}" for c in certificates)


def certificate_type_of(certificate: LocalCertificate) -> CertificateType:
    if is_distribution_certificate(certificate):
        return CertificateType.IOS_DISTRIBUTION
    return CertificateType.IOS_DEVELOPMENT


def valid_local_certificates(
    certificates: List[LocalCertificate], team_id: str = ""
) -> Dict[CertificateType, List[LocalCertificate]]:
    """Valid, deduplicated local certificates bucketed by type, optionally for one team"""
    filtered = filter_valid_certificates(certificates)
    if filtered.invalid:
        console.print(
            f"[yellow]Ignoring expired or not yet valid certificates:\n{_describe(filtered.invalid)}"
        )
    if filtered.duplicated:
        console.print(
            f"[yellow]Ignoring duplicated certificates with the same name:\n{_describe(filtered.duplicated)}"
        )
    debug(f"Valid and deduplicated certificates:\n{_describe(filtered.valid)}")

    by_type: Dict[CertificateType, List[LocalCertificate]] = {
        CertificateType.IOS_DEVELOPMENT: [],
        CertificateType.IOS_DISTRIBUTION: [],
    }
    for certificate in filtered.valid:
        if team_id and certificate.team_id != team_id:
            continue
        by_type[certificate_type_of(certificate)].append(certificate)

    for certificate_type, certs in by_type.items():
        debug(
            f"Valid certificates with type {certificate_type.value}, "
            f"Team ID: ({team_id}):\n{_describe(certs)}"
        )
    return by_type


def match_portal_certificates(
    client: DeveloperPortalClient, certificates: List[LocalCertificate]
) -> List[MatchedCertificate]:
    matches = []
    for certificate in certificates:
        try:
            portal_certificate = client.find_certificate_by_serial(certificate.serial_number)
        except PortalAPIError as e:
            if e.is_unauthorized:
                raise
            console.print(
                f"[yellow]Certificate ({certificate}) not found on Developer Portal: {e}"
            )
            continue

        if portal_certificate is None:
            console.print(f"[yellow]Certificate ({certificate}) not found on Developer Portal")
            continue

        debug(f"Certificate ({certificate}) found with ID: {portal_certificate.id}")
        matches.append(MatchedCertificate(local=certificate, portal=portal_certificate))
    return matches


def _log_portal_certificates(client: DeveloperPortalClient) -> None:
    try:
        portal_certificates = client.list_certificates()
    except PortalAPIError as e:
        debug(f"Failed to log all Developer Portal certificates: {e}")
        return
    for certificate in portal_certificates:
        debug(
            f"Developer Portal {certificate.certificate_type} certificate: "
            f"{certificate.name} [{format(certificate.serial_number, 'X')}]"
        )


def select_certificates(
    client: DeveloperPortalClient,
    certificates: List[LocalCertificate],
    required_types: Mapping[CertificateType, bool],
    team_id: str = "",
) -> Dict[CertificateType, List[MatchedCertificate]]:
    """Local certificates that exist on the developer portal, by certificate type.

    A required type without any valid local certificate raises
    MissingCertificateError, one without any portal match raises
    UnmatchedCertificatesError. Optional types are left out when unmatched.
    """
    local_by_type = valid_local_certificates(certificates, team_id)

    debug(
        "Certificates required for Development: "
        f"{required_types.get(CertificateType.IOS_DEVELOPMENT, False)}; "
        f"Distribution: {required_types.get(CertificateType.IOS_DISTRIBUTION, False)}"
    )
    for certificate_type, required in required_types.items():
        if required and not local_by_type.get(certificate_type):
            raise MissingCertificateError(certificate_type.value, team_id)

    if is_verbose():
        _log_portal_certificates(client)

    matched_by_type: Dict[CertificateType, List[MatchedCertificate]] = {}
    for certificate_type, local_certificates in local_by_type.items():
        matches = match_portal_certificates(client, local_certificates)
        if matches:
            debug(f"Certificates type {certificate_type.value} has matches on Developer Portal:")
            for match in matches:
                debug(f"- {match}")
            matched_by_type[certificate_type] = matches
        elif required_types.get(certificate_type, False):
            raise UnmatchedCertificatesError(
                certificate_type.value, [str(c) for c in local_certificates]
            )
    return matched_by_type
