"""
Case mixin for the Compliance Engine.

Compliance case and action lifecycle, SLA-driven escalation and the
regulatory reporting gate on case closure.

Writes that depend on a case's state re-put the case itself, so a
concurrent change to the case (closure, escalation) surfaces as a version
conflict and is retried.
"""

from datetime import datetime
from typing import Optional

from errors import PreconditionNotMet, ReportingObligationUnmet, ValidationError
from logger import get_logger, log_transition
from models import (
    ActionStatus, ActionType, CasePriority, CaseStatus, CaseType,
    ComplianceAction, ComplianceCase, RegulatoryReporting, ReportStatus,
    ReportType, TransitionResult,
)
from utilities.compliance_actions import (
    ESCALATING_PRIORITIES, SEPBLAC_ESCALATION_DESCRIPTION, case_reference,
    default_first_action, is_action_overdue, is_action_terminal, sla_due_date,
)
from utilities.state_machines import check_transition

logger = get_logger(__name__)


class CaseMixin:
    """Compliance cases, actions and regulatory reports."""

    # =========================================================================
    # Cases
    # =========================================================================

    def open_case(
        self,
        party_id: int,
        case_type: CaseType,
        priority: CasePriority = CasePriority.MEDIUM,
        summary: Optional[str] = None,
        assigned_to: Optional[str] = None,
        report_to_sepblac_required: bool = False,
    ) -> ComplianceCase:
        """
        Open a case with its mandatory first action.

        Both the case and the first action are due at now + SLA(priority).
        """
        case_type = CaseType(case_type)
        priority = CasePriority(priority)

        def operation():
            now = self.now()
            due = sla_due_date(now, priority, self.config)
            # The case and its first action are created in one write
            case_id = self.store.reserve_id(ComplianceCase)
            action_type, description = default_first_action(case_type)
            written = self.store.put_all([
                ComplianceCase(
                    compliance_case_id=case_id,
                    case_reference=case_reference(party_id, case_id),
                    party_id=party_id,
                    case_type=case_type,
                    case_priority=priority,
                    case_summary=summary,
                    assigned_to=assigned_to,
                    due_date=due,
                    report_to_sepblac_required=report_to_sepblac_required,
                ),
                ComplianceAction(
                    compliance_case_id=case_id,
                    action_type=action_type,
                    action_description=description,
                    action_agent=assigned_to,
                    due_date=due,
                ),
            ])
            return written[0], written[1]

        case, action = self._run(party_id, f"open_case(party={party_id})", operation)
        log_transition(
            "ComplianceCase", case.compliance_case_id, None, case.case_status.value,
            party=party_id, type=case_type.value, priority=priority.value,
        )
        log_transition(
            "ComplianceAction", action.compliance_action_id, None, action.action_status.value,
            case=case.compliance_case_id,
        )
        return case

    def transition_case(
        self,
        case_id: int,
        target: CaseStatus,
        agent: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Move a case along OPEN -> IN_REVIEW -> {ESCALATED, CLOSED}."""
        target = CaseStatus(target)
        if target == CaseStatus.CLOSED:
            return self.close_case(case_id, agent=agent, notes=notes)
        if target == CaseStatus.ESCALATED:
            return self._escalate_case(case_id, reason=notes or "manual escalation", agent=agent, strict=True)

        party_id = self.store.get(ComplianceCase, case_id).party_id

        def operation():
            case = self.store.get(ComplianceCase, case_id)
            check_transition("ComplianceCase", case_id, case.case_status, target)
            self.store.put(case.model_copy(update={"case_status": target}))
            return case.case_status

        previous = self._run(party_id, f"transition_case(case={case_id}, {target.value})", operation)
        log_transition("ComplianceCase", case_id, previous.value, target.value, agent=agent)
        return TransitionResult(
            entity_type="ComplianceCase", entity_id=case_id,
            from_state=previous.value, to_state=target.value,
        )

    def close_case(self, case_id: int, agent: Optional[str] = None, notes: Optional[str] = None) -> TransitionResult:
        """
        Close a case under review or escalated.

        Raises:
            PreconditionNotMet: case not in a closable state, or actions still open
            ReportingObligationUnmet: SEPBLAC communication required but no report linked
        """
        party_id = self.store.get(ComplianceCase, case_id).party_id

        def operation():
            case = self.store.get(ComplianceCase, case_id)
            check_transition("ComplianceCase", case_id, case.case_status, CaseStatus.CLOSED)

            open_actions = [
                a.compliance_action_id
                for a in self.store.query(ComplianceAction, "compliance_case_id", case_id)
                if not is_action_terminal(a)
            ]
            if open_actions:
                raise PreconditionNotMet(
                    f"Case {case_id} has {len(open_actions)} non-terminal action(s)",
                    current_state=case.case_status.value,
                    target_state=CaseStatus.CLOSED.value,
                    details={"open_action_ids": open_actions},
                )

            if case.report_to_sepblac_required and not self.store.query(
                RegulatoryReporting, "compliance_case_id", case_id
            ):
                raise ReportingObligationUnmet(
                    f"Case {case_id} requires a SEPBLAC communication before closure",
                    details={"case_id": case_id, "case_reference": case.case_reference},
                )

            self.store.put(case.model_copy(update={
                "case_status": CaseStatus.CLOSED,
                "resolution_date": self.now(),
                "resolution_notes": notes or case.resolution_notes,
            }))
            return case.case_status

        previous = self._run(party_id, f"close_case(case={case_id})", operation)
        log_transition("ComplianceCase", case_id, previous.value, CaseStatus.CLOSED.value, agent=agent)
        return TransitionResult(
            entity_type="ComplianceCase", entity_id=case_id,
            from_state=previous.value, to_state=CaseStatus.CLOSED.value,
        )

    def _escalate_case(
        self,
        case_id: int,
        reason: str,
        agent: Optional[str] = None,
        strict: bool = False,
    ) -> TransitionResult:
        """
        Escalate a case, passing through IN_REVIEW when it is still OPEN.

        Automatic escalations (strict=False) of an already escalated or
        closed case are no-ops. A case requiring SEPBLAC reporting gets an
        ESCALATION action to prepare the communication.
        """
        party_id = self.store.get(ComplianceCase, case_id).party_id

        def operation():
            case = self.store.get(ComplianceCase, case_id)
            if not strict and case.case_status in (CaseStatus.ESCALATED, CaseStatus.CLOSED):
                return case.case_status, [], None

            path = [CaseStatus.ESCALATED]
            if case.case_status == CaseStatus.OPEN and not strict:
                path = [CaseStatus.IN_REVIEW, CaseStatus.ESCALATED]
            current = case.case_status
            for step in path:
                check_transition("ComplianceCase", case_id, current, step)
                current = step

            writes = [case.model_copy(update={"case_status": CaseStatus.ESCALATED})]
            if case.report_to_sepblac_required:
                writes.append(ComplianceAction(
                    compliance_case_id=case_id,
                    action_type=ActionType.ESCALATION,
                    action_description=SEPBLAC_ESCALATION_DESCRIPTION,
                    action_agent=agent,
                    due_date=sla_due_date(self.now(), case.case_priority, self.config),
                ))
            written = self.store.put_all(writes)
            return case.case_status, path, written[1] if len(written) > 1 else None

        previous, path, action = self._run(party_id, f"escalate_case(case={case_id})", operation)
        if not path:
            return TransitionResult(
                entity_type="ComplianceCase", entity_id=case_id,
                from_state=previous.value, to_state=previous.value, changed=False,
            )

        logger.warning(f"Case {case_id} escalated: {reason}")
        state = previous
        for step in path:
            log_transition("ComplianceCase", case_id, state.value, step.value, agent=agent, reason=reason)
            state = step
        triggered = []
        if action is not None:
            log_transition("ComplianceAction", action.compliance_action_id, None, action.action_status.value,
                           case=case_id, type=action.action_type.value)
            triggered.append(f"action_created:{action.compliance_action_id}")
        return TransitionResult(
            entity_type="ComplianceCase", entity_id=case_id,
            from_state=previous.value, to_state=CaseStatus.ESCALATED.value,
            triggered=triggered,
        )

    def escalate_overdue(self, as_of: Optional[datetime] = None) -> list[TransitionResult]:
        """Escalate every open or in-review case holding a non-terminal action past its due date."""
        as_of = self._as_of(as_of)
        results = []
        for case in self.store.query(ComplianceCase, order_by="compliance_case_id"):
            if case.case_status not in (CaseStatus.OPEN, CaseStatus.IN_REVIEW):
                continue
            overdue = [
                a.compliance_action_id
                for a in self.store.query(ComplianceAction, "compliance_case_id", case.compliance_case_id)
                if is_action_overdue(a, as_of)
            ]
            if overdue:
                result = self._escalate_case(
                    case.compliance_case_id,
                    reason=f"overdue action(s) {overdue}",
                    agent="sla_monitor",
                )
                if result.changed:
                    results.append(result)
        return results

    # =========================================================================
    # Actions
    # =========================================================================

    def add_action(
        self,
        case_id: int,
        action_type: ActionType,
        description: Optional[str] = None,
        agent: Optional[str] = None,
        due_date: Optional[datetime] = None,
    ) -> ComplianceAction:
        """
        Add an action to a case that is not closed.

        Defaults the due date to now + SLA(case priority).
        """
        action_type = ActionType(action_type)
        if due_date is not None and due_date.tzinfo is None:
            raise ValidationError("due_date must be timezone-aware", field="due_date")
        party_id = self.store.get(ComplianceCase, case_id).party_id

        def operation():
            case = self.store.get(ComplianceCase, case_id)
            if case.case_status == CaseStatus.CLOSED:
                raise PreconditionNotMet(
                    f"Case {case_id} is closed",
                    current_state=case.case_status.value,
                    details={"case_id": case_id},
                )
            written = self.store.put_all([
                ComplianceAction(
                    compliance_case_id=case_id,
                    action_type=action_type,
                    action_description=description,
                    action_agent=agent,
                    due_date=due_date or sla_due_date(self.now(), case.case_priority, self.config),
                ),
                case,
            ])
            return written[0]

        action = self._run(party_id, f"add_action(case={case_id})", operation)
        log_transition("ComplianceAction", action.compliance_action_id, None, action.action_status.value,
                       case=case_id, type=action_type.value)
        return action

    def transition_action(
        self,
        action_id: int,
        target: ActionStatus,
        agent: Optional[str] = None,
        result: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move an action along PENDING -> IN_PROGRESS -> {COMPLETED, FAILED}.

        A FAILED action on a HIGH or CRITICAL case escalates the case.
        """
        target = ActionStatus(target)
        action = self.store.get(ComplianceAction, action_id)
        case_id = action.compliance_case_id
        party_id = self.store.get(ComplianceCase, case_id).party_id

        def operation():
            current = self.store.get(ComplianceAction, action_id)
            case = self.store.get(ComplianceCase, case_id)
            check_transition("ComplianceAction", action_id, current.action_status, target)
            update = {"action_status": target}
            if agent:
                update["action_agent"] = agent
            if result:
                update["result"] = result
            if target in (ActionStatus.COMPLETED, ActionStatus.FAILED):
                update["completion_date"] = self.now()
            self.store.put_all([current.model_copy(update=update), case])
            return current.action_status, case.case_priority

        with self.store.party_lock(party_id):
            previous, priority = self._run(
                party_id, f"transition_action(action={action_id}, {target.value})", operation,
            )
            log_transition("ComplianceAction", action_id, previous.value, target.value, agent=agent)

            triggered = []
            if target == ActionStatus.FAILED and priority in ESCALATING_PRIORITIES:
                escalation = self._escalate_case(
                    case_id, reason=f"action {action_id} failed", agent=agent,
                )
                if escalation.changed:
                    triggered.append(f"case_escalated:{case_id}")
                    triggered.extend(escalation.triggered)

        return TransitionResult(
            entity_type="ComplianceAction", entity_id=action_id,
            from_state=previous.value, to_state=target.value,
            triggered=triggered,
        )

    # =========================================================================
    # Regulatory reports
    # =========================================================================

    def file_report(
        self,
        case_id: int,
        report_type: ReportType = ReportType.COMUNICACION_SEPBLAC,
        summary: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> RegulatoryReporting:
        """Create a DRAFT regulatory report linked to a case."""
        report_type = ReportType(report_type)
        case = self.store.get(ComplianceCase, case_id)

        report = self._run(
            case.party_id,
            f"file_report(case={case_id})",
            lambda: self.store.put(RegulatoryReporting(
                compliance_case_id=case_id,
                report_type=report_type,
                report_reference=reference,
                report_content_summary=summary,
            )),
        )
        log_transition("RegulatoryReporting", report.report_id, None, report.report_status.value,
                       case=case_id, type=report_type.value)
        return report

    def transition_report(
        self,
        report_id: int,
        target: ReportStatus,
        agent: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move a report along DRAFT -> SUBMITTED -> {ACKNOWLEDGED, SUPPLEMENTED}.

        SUBMITTED requires the submitting agent and stamps submissionDate;
        ACKNOWLEDGED stamps acknowledgmentDate.
        """
        target = ReportStatus(target)
        if target == ReportStatus.SUBMITTED and not (agent and agent.strip()):
            raise ValidationError("Submitting a report requires an agent", field="agent")
        report = self.store.get(RegulatoryReporting, report_id)
        party_id = self.store.get(ComplianceCase, report.compliance_case_id).party_id

        def operation():
            current = self.store.get(RegulatoryReporting, report_id)
            check_transition("RegulatoryReporting", report_id, current.report_status, target)
            update = {"report_status": target}
            if target == ReportStatus.SUBMITTED:
                update.update(submission_date=self.now(), submitting_agent=agent)
            elif target == ReportStatus.ACKNOWLEDGED:
                update["acknowledgment_date"] = self.now()
            self.store.put(current.model_copy(update=update))
            return current.report_status

        previous = self._run(party_id, f"transition_report(report={report_id}, {target.value})", operation)
        log_transition("RegulatoryReporting", report_id, previous.value, target.value, agent=agent)
        return TransitionResult(
            entity_type="RegulatoryReporting", entity_id=report_id,
            from_state=previous.value, to_state=target.value,
        )
