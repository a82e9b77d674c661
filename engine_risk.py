"""
Risk mixin for the Compliance Engine.

Reads every risk input for a party from one consistent snapshot, runs the
pure risk aggregation, appends the RiskAssessment and propagates the
result to the party's current KYC/KYB verifications, opening EDD records
when a new EDD trigger appears.
"""

from datetime import datetime
from typing import Optional

from logger import get_logger, log_transition
from models import (
    AmlMatch, AmlScreening, AssessmentType, BusinessLocation, BusinessProfile,
    EconomicActivity, EnhancedDueDiligence, ExpectedActivity, IndustryRisk,
    RiskAssessment, SanctionsQuestionnaire, SourceOfFunds, Ubo,
    VerificationKind, VerificationStatus,
)
from store import EntityReader
from utilities.edd_requirements import describe_edd
from utilities.risk_scoring import RiskInputs, compute_risk

logger = get_logger(__name__)


def _latest_or_last(records: list, order_by: str):
    """Latest record by a date field, falling back to insertion order."""
    if not records:
        return None
    dated = [r for r in records if getattr(r, order_by) is not None]
    if dated:
        return max(dated, key=lambda r: getattr(r, order_by))
    return records[-1]


class RiskMixin:
    """Risk aggregation against the entity store."""

    def assess_risk(
        self,
        party_id: int,
        as_of: Optional[datetime] = None,
        assessment_type: Optional[AssessmentType] = None,
        agent: Optional[str] = None,
    ) -> RiskAssessment:
        """
        Compute and persist a new RiskAssessment for a party.

        Args:
            party_id: Party to assess
            as_of: Reference instant (defaults to now)
            assessment_type: INITIAL for a first assessment when omitted, else EVENT_DRIVEN
            agent: Who requested the assessment

        Returns:
            The stored RiskAssessment
        """
        as_of = self._as_of(as_of)
        return self._run(
            party_id,
            f"assess_risk(party={party_id})",
            lambda: self._assess_risk_once(party_id, as_of, assessment_type, agent),
        )

    def gather_risk_inputs(self, reader: EntityReader, party_id: int, as_of: datetime) -> RiskInputs:
        """Collect a party's risk inputs from a reader (normally a snapshot)."""
        activities = reader.query(EconomicActivity, "party_id", party_id)
        primary = next((a for a in activities if a.is_primary), activities[0] if activities else None)
        industry_risk = None
        if primary is not None:
            industry_risk = _latest_or_last(
                reader.query(IndustryRisk, "activity_code", primary.activity_code),
                "assessment_date",
            )

        screenings = reader.query(AmlScreening, "party_id", party_id)
        matches = []
        for screening in screenings:
            matches.extend(reader.query(AmlMatch, "aml_screening_id", screening.aml_screening_id))

        profiles = reader.query(BusinessProfile, "party_id", party_id)

        return RiskInputs(
            party_id=party_id,
            ownership=self.resolve_ownership(party_id, as_of, reader=reader),
            industry_risk=industry_risk,
            economic_activities=activities,
            screenings=screenings,
            matches=matches,
            sanctions_questionnaire=_latest_or_last(
                reader.query(SanctionsQuestionnaire, "party_id", party_id),
                "questionnaire_date",
            ),
            expected_activities=reader.query(ExpectedActivity, "party_id", party_id),
            sources_of_funds=reader.query(SourceOfFunds, "party_id", party_id),
            ubos=reader.query(Ubo, "party_id", party_id),
            business_profile=profiles[-1] if profiles else None,
            business_locations=reader.query(BusinessLocation, "party_id", party_id),
            has_prior_assessment=bool(reader.query(RiskAssessment, "party_id", party_id)),
        )

    def _assess_risk_once(self, party_id, as_of, assessment_type, agent) -> RiskAssessment:
        snapshot = self.store.snapshot()
        inputs = self.gather_risk_inputs(snapshot, party_id, as_of)
        assessment = compute_risk(inputs, as_of, self.config, assessment_type, agent)

        writes = [assessment]
        transitions = []

        for kind in VerificationKind:
            verification = self._current_verification(snapshot, kind, party_id)
            if verification is None:
                continue
            update = {
                "risk_score": assessment.risk_score,
                "risk_level": assessment.risk_level,
                "enhanced_due_diligence": assessment.enhanced_due_diligence,
            }
            new_reasons = [
                reason for reason in assessment.edd_reasons
                if self._is_new_edd_trigger(snapshot, kind, verification.entity_id, reason)
            ]
            for reason in new_reasons:
                writes.append(EnhancedDueDiligence(
                    verification_id=verification.entity_id,
                    verification_kind=kind,
                    edd_reason=reason,
                    edd_description=describe_edd([reason]),
                ))
            if new_reasons and verification.verification_status == VerificationStatus.VERIFIED:
                update["verification_status"] = VerificationStatus.IN_PROGRESS
                transitions.append(verification)
            writes.append(verification.model_copy(update=update))

        stored = self.store.put_all(writes)
        result = stored[0]

        for entity in stored[1:]:
            if isinstance(entity, EnhancedDueDiligence):
                log_transition(
                    "EnhancedDueDiligence", entity.edd_id, None, entity.edd_status.value,
                    party=party_id, reason=entity.edd_reason.value,
                )
        for verification in transitions:
            logger.warning(
                f"New EDD trigger for party {party_id}: "
                f"{verification.entity_type()} {verification.entity_id} returned to review"
            )
            log_transition(
                verification.entity_type(), verification.entity_id,
                VerificationStatus.VERIFIED.value, VerificationStatus.IN_PROGRESS.value,
                reason="edd_trigger",
            )

        logger.info(
            f"Risk assessed for party {party_id}: score={result.risk_score} "
            f"level={result.risk_level.value} edd={result.enhanced_due_diligence}"
        )
        if result.manual_review_required:
            logger.warning(f"Party {party_id} flagged for manual review (ownership anomaly)")
        return result

    def _is_new_edd_trigger(self, reader: EntityReader, kind: VerificationKind, verification_id: int, reason) -> bool:
        """A reason is new when the verification has no EDD record for it in any status."""
        return not any(
            edd.verification_kind == kind and edd.edd_reason == reason
            for edd in reader.query(EnhancedDueDiligence, "verification_id", verification_id)
        )
