"""
Verification Document Requirements.

Decides which required KYC purposes and KYB checks are satisfied by the
evidence on file: verified, unexpired documents, verified active
beneficial owners and legally reviewed powers of attorney.
Pure deterministic logic, no store access.
"""

from datetime import datetime
from typing import Union

from models import (
    CorporateDocument, CorporateDocumentType, KybVerification, PowerOfAttorney,
    Ubo, VerificationDocument,
)


# Every boolean check carried on a KybVerification
KYB_CHECKS = [
    "mercantile_registry_verified",
    "deed_of_incorporation_verified",
    "business_structure_verified",
    "ubo_verified",
    "tax_id_verified",
    "operating_license_verified",
    "powers_of_attorney_verified",
]


def is_current(document: Union[VerificationDocument, CorporateDocument], as_of: datetime) -> bool:
    """Verified and not expired at as_of."""
    return document.is_verified and (document.expiry_date is None or document.expiry_date > as_of)


def missing_kyc_purposes(
    documents: list[VerificationDocument],
    required_purposes: list[str],
    as_of: datetime,
) -> list[str]:
    """Required purposes with no verified, unexpired document."""
    return [
        purpose for purpose in required_purposes
        if not any(
            doc.verification_purpose.value == purpose and is_current(doc, as_of)
            for doc in documents
        )
    ]


def _has_current(documents: list[CorporateDocument], document_type: CorporateDocumentType, as_of: datetime) -> bool:
    return any(doc.document_type == document_type and is_current(doc, as_of) for doc in documents)


def derive_kyb_checks(
    verification: KybVerification,
    corporate_documents: list[CorporateDocument],
    ubos: list[Ubo],
    powers: list[PowerOfAttorney],
    as_of: datetime,
) -> dict[str, bool]:
    """
    Evaluate the KYB checks against the evidence on file.

    A check already recorded on the verification stays satisfied; otherwise
    it is satisfied by:
        mercantile_registry_verified: a current corporate document with a
            commercial registry entry
        deed_of_incorporation_verified: a current DEED_OF_INCORPORATION
        tax_id_verified: a current TAX_ID
        ubo_verified: at least one active UBO, every active UBO verified
        powers_of_attorney_verified: an active, verified power whose legal
            sufficiency review (bastanteo) is complete

    business_structure_verified and operating_license_verified have no
    document evidence and are only satisfied when recorded.
    """
    active_ubos = [u for u in ubos if u.is_active(as_of)]
    evidence = {
        "mercantile_registry_verified": any(
            doc.commercial_registry and is_current(doc, as_of) for doc in corporate_documents
        ),
        "deed_of_incorporation_verified": _has_current(
            corporate_documents, CorporateDocumentType.DEED_OF_INCORPORATION, as_of
        ),
        "tax_id_verified": _has_current(corporate_documents, CorporateDocumentType.TAX_ID, as_of),
        "ubo_verified": bool(active_ubos) and all(u.is_verified for u in active_ubos),
        "powers_of_attorney_verified": any(
            p.is_active(as_of) and p.is_verified and p.is_bastanteo_completed for p in powers
        ),
    }

    checks = {}
    for name in KYB_CHECKS:
        checks[name] = bool(getattr(verification, name)) or evidence.get(name, False)
    return checks


def missing_kyb_checks(checks: dict[str, bool], required_checks: list[str]) -> list[str]:
    return [name for name in required_checks if not checks.get(name, False)]
