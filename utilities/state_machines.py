"""
Transition tables for every lifecycle in the engine.

Each lifecycle is an Enum plus an explicit table of allowed moves, so an
illegal transition is rejected in one place before any precondition is
evaluated or any record is written.
"""

from enum import Enum

from errors import PreconditionNotMet
from models import (
    ActionStatus, CaseStatus, EddStatus, ReportStatus,
    ResolutionStatus, VerificationStatus,
)


VERIFICATION_TRANSITIONS = {
    VerificationStatus.PENDING: {VerificationStatus.IN_PROGRESS},
    VerificationStatus.IN_PROGRESS: {VerificationStatus.VERIFIED, VerificationStatus.REJECTED},
    # Re-review: next review date reached or a new EDD trigger
    VerificationStatus.VERIFIED: {VerificationStatus.IN_PROGRESS},
    VerificationStatus.REJECTED: set(),
}

MATCH_TRANSITIONS = {
    ResolutionStatus.PENDING: {ResolutionStatus.FALSE_POSITIVE, ResolutionStatus.CONFIRMED_HIT},
    ResolutionStatus.FALSE_POSITIVE: set(),
    ResolutionStatus.CONFIRMED_HIT: set(),
}

CASE_TRANSITIONS = {
    CaseStatus.OPEN: {CaseStatus.IN_REVIEW},
    CaseStatus.IN_REVIEW: {CaseStatus.ESCALATED, CaseStatus.CLOSED},
    CaseStatus.ESCALATED: {CaseStatus.CLOSED},
    CaseStatus.CLOSED: set(),
}

ACTION_TRANSITIONS = {
    ActionStatus.PENDING: {ActionStatus.IN_PROGRESS},
    ActionStatus.IN_PROGRESS: {ActionStatus.COMPLETED, ActionStatus.FAILED},
    ActionStatus.COMPLETED: set(),
    ActionStatus.FAILED: set(),
}

EDD_TRANSITIONS = {
    EddStatus.PENDING: {EddStatus.IN_PROGRESS},
    EddStatus.IN_PROGRESS: {EddStatus.COMPLETED, EddStatus.WAIVED},
    EddStatus.COMPLETED: set(),
    EddStatus.WAIVED: set(),
}

REPORT_TRANSITIONS = {
    ReportStatus.DRAFT: {ReportStatus.SUBMITTED},
    ReportStatus.SUBMITTED: {ReportStatus.ACKNOWLEDGED, ReportStatus.SUPPLEMENTED},
    ReportStatus.ACKNOWLEDGED: {ReportStatus.SUPPLEMENTED},
    # A supplemented report is resubmitted
    ReportStatus.SUPPLEMENTED: {ReportStatus.SUBMITTED},
}

_TABLES = {
    VerificationStatus: VERIFICATION_TRANSITIONS,
    ResolutionStatus: MATCH_TRANSITIONS,
    CaseStatus: CASE_TRANSITIONS,
    ActionStatus: ACTION_TRANSITIONS,
    EddStatus: EDD_TRANSITIONS,
    ReportStatus: REPORT_TRANSITIONS,
}


def allowed_targets(current: Enum) -> set:
    """States reachable in one step from the current state."""
    return set(_TABLES[type(current)][current])


def is_terminal(state: Enum) -> bool:
    return not _TABLES[type(state)][state]


def can_transition(current: Enum, target: Enum) -> bool:
    if type(current) is not type(target):
        return False
    return target in _TABLES[type(current)][current]


def check_transition(entity_type: str, entity_id, current: Enum, target: Enum):
    """Raise PreconditionNotMet unless current -> target is in the table."""
    if not can_transition(current, target):
        raise PreconditionNotMet(
            f"{entity_type} {entity_id} cannot move from {current.value} to {target.value}",
            current_state=current.value,
            target_state=target.value,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "allowed": sorted(s.value for s in allowed_targets(current)),
            },
        )
