"""
Enhanced Due Diligence (EDD) Requirements.

Maps EDD reasons to the measures that must be applied and checks the
approval requirements for closing an EDD record.
Pure deterministic logic, no store access.
"""

from typing import Optional

from errors import PreconditionNotMet
from models import EddReason, EddStatus, EnhancedDueDiligence, RiskLevel


# Measures applied for each EDD reason
EDD_MEASURES = {
    EddReason.SANCTIONS: [
        "Confirm the sanctions exposure against the official list entry",
        "Freeze onboarding until the compliance officer signs off",
        "Assess the obligation to communicate to SEPBLAC",
    ],
    EddReason.PEP: [
        "Obtain senior management approval for the relationship",
        "Establish source of wealth and source of funds",
        "Apply enhanced ongoing monitoring",
    ],
    EddReason.COMPLEX_STRUCTURE: [
        "Obtain a certified ownership chart up to the ultimate parents",
        "Verify each intermediate holding against the mercantile registry",
        "Document the economic rationale of the structure",
    ],
    EddReason.HIGH_RISK: [
        "Obtain additional identification and address evidence",
        "Verify source of funds with documentary evidence",
        "Shorten the review cycle",
    ],
}

# Reasons ordered from most to least severe
REASON_PRIORITY = [
    EddReason.SANCTIONS,
    EddReason.PEP,
    EddReason.COMPLEX_STRUCTURE,
    EddReason.HIGH_RISK,
]

OPEN_STATUSES = {EddStatus.PENDING, EddStatus.IN_PROGRESS}


def describe_edd(reasons: list[EddReason]) -> str:
    """Human-readable EDD description listing the triggered reasons and measures."""
    parts = []
    for reason in REASON_PRIORITY:
        if reason not in reasons:
            continue
        parts.append(f"{reason.value}: " + "; ".join(EDD_MEASURES[reason]))
    return " | ".join(parts)


def is_open(edd: EnhancedDueDiligence) -> bool:
    return edd.edd_status in OPEN_STATUSES


def check_edd_closure(
    edd: EnhancedDueDiligence,
    target: EddStatus,
    verification_risk_level: Optional[RiskLevel],
    approving_authority: Optional[str],
    committee_approval: bool,
    notes: Optional[str],
):
    """
    Check the approval requirements for a terminal EDD transition.

    COMPLETED needs an approving authority, plus internal committee approval
    when the verification's risk level is EXTREME. WAIVED needs an approving
    authority and notes explaining the waiver.

    Raises:
        PreconditionNotMet: naming the missing approval
    """
    missing = []
    if not (approving_authority or edd.approving_authority):
        missing.append("approving_authority")
    if target == EddStatus.COMPLETED:
        if verification_risk_level == RiskLevel.EXTREME and not (
            committee_approval or edd.internal_committee_approval
        ):
            missing.append("internal_committee_approval")
    elif target == EddStatus.WAIVED:
        if not (notes and notes.strip()):
            missing.append("notes")

    if missing:
        raise PreconditionNotMet(
            f"EDD {edd.edd_id} cannot move to {target.value}: missing {', '.join(missing)}",
            current_state=edd.edd_status.value,
            target_state=target.value,
            details={"missing": missing, "risk_level": verification_risk_level.value if verification_risk_level else None},
        )
