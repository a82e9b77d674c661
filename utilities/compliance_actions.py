"""
Compliance Actions and Reporting Obligations.

SLA due dates, default first actions per case type, case priority for
confirmed AML hits and the SEPBLAC reporting obligation.
Pure deterministic logic, no store access.
"""

from datetime import datetime, timedelta
from typing import Optional

from config import Config, get_config
from models import (
    ActionStatus, ActionType, CasePriority, CaseType,
    ComplianceAction, ListType,
)


# First action created when a case of each type is opened
DEFAULT_FIRST_ACTIONS = {
    CaseType.KYC_REVIEW: (ActionType.DOCUMENT_REQUEST, "Request outstanding verification documents"),
    CaseType.AML_ALERT: (ActionType.CUSTOMER_CONTACT, "Contact customer regarding screening alert"),
    CaseType.SUSPICIOUS_ACTIVITY: (ActionType.ESCALATION, "Escalate suspicious activity to the compliance officer"),
}

TERMINAL_ACTION_STATUSES = {ActionStatus.COMPLETED, ActionStatus.FAILED}

# Case priorities at which a failed action escalates the case
ESCALATING_PRIORITIES = {CasePriority.HIGH, CasePriority.CRITICAL}

SEPBLAC_ESCALATION_DESCRIPTION = "Prepare SEPBLAC communication"


def sla_due_date(opened_at: datetime, priority: CasePriority, config: Optional[Config] = None) -> datetime:
    """Due date for a case or action opened at the given instant."""
    config = config or get_config()
    return opened_at + timedelta(days=config.get_sla_days(priority.value))


def default_first_action(case_type: CaseType) -> tuple[ActionType, str]:
    return DEFAULT_FIRST_ACTIONS[case_type]


def hit_case_priority(list_type: ListType) -> CasePriority:
    """Priority of the AML_ALERT case opened for a confirmed hit."""
    if list_type == ListType.SANCTIONS:
        return CasePriority.CRITICAL
    return CasePriority.HIGH


def hit_requires_sepblac(list_type: ListType) -> bool:
    """Confirmed sanctions hits must be communicated to SEPBLAC."""
    return list_type == ListType.SANCTIONS


def higher_priority(a: CasePriority, b: CasePriority) -> CasePriority:
    order = [CasePriority.LOW, CasePriority.MEDIUM, CasePriority.HIGH, CasePriority.CRITICAL]
    return a if order.index(a) >= order.index(b) else b


def case_reference(party_id: int, case_id: int) -> str:
    return f"CASE-{party_id}-{case_id}"


def is_action_terminal(action: ComplianceAction) -> bool:
    return action.action_status in TERMINAL_ACTION_STATUSES


def is_action_overdue(action: ComplianceAction, as_of: datetime) -> bool:
    """Non-terminal action whose due date has passed."""
    return (
        not is_action_terminal(action)
        and action.due_date is not None
        and action.due_date < as_of
    )
