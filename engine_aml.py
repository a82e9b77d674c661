"""
AML mixin for the Compliance Engine.

Screenings and their matches: recording, derived screening counters,
analyst dispositions and the follow-on effects of a confirmed hit.
"""

from datetime import timedelta
from typing import Iterable, Optional

from config import get_review_interval_days
from errors import ValidationError
from logger import get_logger, log_transition
from models import (
    AmlMatch, AmlScreening, AssessmentType, CaseStatus, CaseType, ComplianceCase,
    ResolutionStatus, RiskAssessment, ScreeningResult, TransitionResult,
)
from utilities.compliance_actions import higher_priority, hit_case_priority, hit_requires_sepblac
from utilities.state_machines import check_transition

logger = get_logger(__name__)


def derive_screening(screening: AmlScreening, matches: list[AmlMatch]) -> AmlScreening:
    """Screening with matchesFound, matchCount and screeningResult derived from its matches."""
    statuses = {m.resolution_status for m in matches}
    if ResolutionStatus.CONFIRMED_HIT in statuses:
        result = ScreeningResult.POSITIVE_HIT
    elif ResolutionStatus.PENDING in statuses:
        result = ScreeningResult.REVIEW_REQUIRED
    else:
        result = ScreeningResult.CLEAR
    return screening.model_copy(update={
        "matches_found": len(matches) > 0,
        "match_count": len(matches),
        "screening_result": result,
    })


def _require_text(value: Optional[str], field: str, action: str):
    if not (value and value.strip()):
        raise ValidationError(f"{action} requires {field}", field=field)


class AmlMixin:
    """AML screening and match resolution workflow."""

    def record_screening(self, screening: AmlScreening, matches: Iterable[AmlMatch] = ()) -> AmlScreening:
        """
        Persist a screening run together with its matches.

        Counters and result are derived from the matches, whatever the
        caller supplied. Matches must start PENDING. Risk is re-assessed when
        any match was found.
        """
        matches = list(matches)
        for match in matches:
            if match.resolution_status != ResolutionStatus.PENDING:
                raise ValidationError(
                    "New AML matches must start PENDING", field="resolutionStatus",
                    details={"matched_name": match.matched_name},
                )
        party_id = screening.party_id

        def operation():
            base = derive_screening(screening, [])
            if base.next_screening_date is None:
                latest = self.store.latest(RiskAssessment, "party_id", party_id, "assessment_date")
                interval = get_review_interval_days(latest.risk_level.value if latest else "")
                base = base.model_copy(update={
                    "next_screening_date": base.screening_date + timedelta(days=interval),
                })
            stored = self.store.put(base)
            if not matches:
                return stored, []
            attached = [m.model_copy(update={"aml_screening_id": stored.aml_screening_id}) for m in matches]
            written = self.store.put_all([derive_screening(stored, attached)] + attached)
            return written[0], written[1:]

        stored, stored_matches = self._run(party_id, f"record_screening(party={party_id})", operation)
        logger.info(
            f"Screening {stored.aml_screening_id} recorded for party {party_id}: "
            f"{stored.match_count} match(es), {stored.screening_result.value}"
        )
        for match in stored_matches:
            log_transition("AmlMatch", match.aml_match_id, None, match.resolution_status.value,
                           screening=stored.aml_screening_id, score=match.match_score)
        if stored.matches_found:
            self.assess_risk(party_id, agent="aml_screening")
        return stored

    def add_match(self, screening_id: int, match: AmlMatch) -> AmlMatch:
        """Attach a new PENDING match to an existing screening and re-assess risk."""
        if match.resolution_status != ResolutionStatus.PENDING:
            raise ValidationError("New AML matches must start PENDING", field="resolutionStatus")
        party_id = self.store.get(AmlScreening, screening_id).party_id

        def operation():
            screening = self.store.get(AmlScreening, screening_id)
            existing = self.store.query(AmlMatch, "aml_screening_id", screening_id)
            new_match = match.model_copy(update={"aml_screening_id": screening_id})
            written = self.store.put_all([new_match, derive_screening(screening, existing + [new_match])])
            return written[0]

        stored = self._run(party_id, f"add_match(screening={screening_id})", operation)
        log_transition("AmlMatch", stored.aml_match_id, None, stored.resolution_status.value,
                       screening=screening_id, score=stored.match_score)
        self.assess_risk(party_id, agent="aml_screening")
        return stored

    def resolve_match(
        self,
        match_id: int,
        decision: ResolutionStatus,
        agent: Optional[str],
        notes: Optional[str],
    ) -> TransitionResult:
        """
        Record an analyst decision on a PENDING match.

        CONFIRMED_HIT opens (or updates) the party's AML_ALERT case; every
        decision re-assesses the party's risk.

        Raises:
            ValidationError: missing agent or notes
            PreconditionNotMet: the match is already resolved
        """
        decision = ResolutionStatus(decision)
        _require_text(agent, "agent", "A match decision")
        _require_text(notes, "notes", "A match decision")

        match = self.store.get(AmlMatch, match_id)
        party_id = self.store.get(AmlScreening, match.aml_screening_id).party_id

        def operation():
            current = self.store.get(AmlMatch, match_id)
            check_transition("AmlMatch", match_id, current.resolution_status, decision)
            resolved = current.model_copy(update={
                "resolution_status": decision,
                "resolution_agent": agent,
                "resolution_notes": notes,
                "resolution_date": self.now(),
            })
            screening = self.store.get(AmlScreening, current.aml_screening_id)
            siblings = [
                resolved if m.aml_match_id == match_id else m
                for m in self.store.query(AmlMatch, "aml_screening_id", current.aml_screening_id)
            ]
            written = self.store.put_all([resolved, derive_screening(screening, siblings)])
            return written[0]

        with self.store.party_lock(party_id):
            resolved = self._run(party_id, f"resolve_match(match={match_id})", operation)
            log_transition("AmlMatch", match_id, ResolutionStatus.PENDING.value, decision.value, agent=agent)

            triggered = []
            if decision == ResolutionStatus.CONFIRMED_HIT:
                case, opened = self._open_or_update_alert_case(party_id, resolved)
                triggered.append(f"{'case_opened' if opened else 'case_updated'}:{case.compliance_case_id}")
            assessment = self.assess_risk(
                party_id, assessment_type=AssessmentType.EVENT_DRIVEN, agent=agent,
            )
            triggered.append(f"risk_assessed:{assessment.risk_assessment_id}")

        return TransitionResult(
            entity_type="AmlMatch",
            entity_id=match_id,
            from_state=ResolutionStatus.PENDING.value,
            to_state=decision.value,
            triggered=triggered,
        )

    def _open_or_update_alert_case(self, party_id: int, match: AmlMatch) -> tuple[ComplianceCase, bool]:
        """Open an AML_ALERT case for a confirmed hit, or fold the hit into the open one."""
        priority = hit_case_priority(match.list_type)
        sepblac = hit_requires_sepblac(match.list_type)
        line = f"Confirmed {match.list_type.value} hit '{match.matched_name}' (match {match.aml_match_id})"

        def find_open():
            return [
                c for c in self.store.query(ComplianceCase, "party_id", party_id)
                if c.case_type == CaseType.AML_ALERT and c.case_status != CaseStatus.CLOSED
            ]

        with self.store.party_lock(party_id):
            if not find_open():
                case = self.open_case(
                    party_id, CaseType.AML_ALERT,
                    priority=priority,
                    summary=line,
                    report_to_sepblac_required=sepblac,
                )
                if sepblac:
                    logger.warning(f"Confirmed sanctions hit for party {party_id}: SEPBLAC communication required")
                return case, True

            def operation():
                case = min(find_open(), key=lambda c: c.compliance_case_id)
                summary = f"{case.case_summary}\n{line}" if case.case_summary else line
                return self.store.put(case.model_copy(update={
                    "case_priority": higher_priority(case.case_priority, priority),
                    "report_to_sepblac_required": case.report_to_sepblac_required or sepblac,
                    "case_summary": summary,
                }))

            case = self._run(party_id, f"update_alert_case(party={party_id})", operation)
            logger.info(f"AML_ALERT case {case.compliance_case_id} updated with match {match.aml_match_id}")
            return case, False
