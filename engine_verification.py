"""
Verification mixin for the Compliance Engine.

Owns the KYC/KYB verification state machine: opening records, document
submission, gated transitions to VERIFIED, rejection and the periodic
re-review sweep.
"""

from datetime import datetime, timedelta
from typing import Optional, Union

from config import get_review_interval_days
from errors import PreconditionNotMet, ValidationError
from logger import get_logger, log_transition
from models import (
    AmlMatch, AmlScreening, AssessmentType, CorporateDocument, EnhancedDueDiligence,
    KybVerification, KycVerification, PowerOfAttorney, ResolutionStatus, RiskAssessment,
    TransitionContext, TransitionResult, Ubo, VerificationDocument, VerificationKind,
    VerificationStatus,
)
from store import EntityReader
from utilities.document_requirements import (
    KYB_CHECKS, derive_kyb_checks, missing_kyb_checks, missing_kyc_purposes,
)
from utilities.edd_requirements import is_open
from utilities.state_machines import check_transition

logger = get_logger(__name__)

VERIFICATION_MODELS = {
    VerificationKind.KYC: KycVerification,
    VerificationKind.KYB: KybVerification,
}

Verification = Union[KycVerification, KybVerification]


class VerificationMixin:
    """KYC/KYB verification lifecycle."""

    # =========================================================================
    # Lookups
    # =========================================================================

    def _current_verification(self, reader: EntityReader, kind: VerificationKind, party_id: int) -> Optional[Verification]:
        """The party's most recent non-rejected verification of a kind."""
        model = VERIFICATION_MODELS[kind]
        records = [
            v for v in reader.query(model, "party_id", party_id)
            if v.verification_status != VerificationStatus.REJECTED
        ]
        if not records:
            return None
        return max(records, key=lambda v: v.entity_id)

    def get_verification(self, verification_id: int, kind: VerificationKind = VerificationKind.KYC) -> Verification:
        return self.store.get(VERIFICATION_MODELS[VerificationKind(kind)], verification_id)

    # =========================================================================
    # Opening and documents
    # =========================================================================

    def open_verification(
        self,
        party_id: int,
        kind: VerificationKind = VerificationKind.KYC,
        agent: Optional[str] = None,
    ) -> Verification:
        """
        Open a new PENDING verification for a party.

        A party holds at most one non-rejected verification of each kind; a
        new record may only be opened once the previous one was rejected.
        """
        kind = VerificationKind(kind)
        model = VERIFICATION_MODELS[kind]

        def operation():
            existing = self._current_verification(self.store, kind, party_id)
            if existing is not None:
                raise PreconditionNotMet(
                    f"Party {party_id} already has {model.entity_type()} {existing.entity_id} "
                    f"({existing.verification_status.value})",
                    current_state=existing.verification_status.value,
                    target_state=VerificationStatus.PENDING.value,
                    details={"existing_id": existing.entity_id},
                )
            fields = {"party_id": party_id}
            if kind == VerificationKind.KYC and agent:
                fields["verification_agent"] = agent
            # Carry the latest risk result onto the new record
            latest = self.store.latest(RiskAssessment, "party_id", party_id, "assessment_date")
            if latest is not None:
                fields.update(
                    risk_score=latest.risk_score,
                    risk_level=latest.risk_level,
                    enhanced_due_diligence=latest.enhanced_due_diligence,
                )
            return self.store.put(model(**fields))

        stored = self._run(party_id, f"open_verification(party={party_id}, kind={kind.value})", operation)
        log_transition(model.entity_type(), stored.entity_id, None, stored.verification_status.value, party=party_id)
        return stored

    def submit_document(self, document: Union[VerificationDocument, CorporateDocument, PowerOfAttorney]):
        """
        Store a submitted document, moving a PENDING verification to IN_PROGRESS.

        VerificationDocuments attach to a KYC verification; CorporateDocuments
        and powers of attorney attach to the party's current KYB verification.
        """
        if isinstance(document, VerificationDocument):
            kind = VerificationKind.KYC
            verification = self.store.get(KycVerification, document.kyc_verification_id)
            party_id = verification.party_id
        elif isinstance(document, (CorporateDocument, PowerOfAttorney)):
            kind = VerificationKind.KYB
            party_id = document.party_id
        else:
            raise ValidationError(
                f"Unsupported document type {type(document).__name__}", field="document",
            )

        def operation():
            current = (
                self.store.get(KycVerification, document.kyc_verification_id)
                if kind == VerificationKind.KYC
                else self._current_verification(self.store, kind, party_id)
            )
            if current is not None and current.verification_status == VerificationStatus.REJECTED:
                raise PreconditionNotMet(
                    f"{current.entity_type()} {current.entity_id} is rejected",
                    current_state=current.verification_status.value,
                )
            writes = [document]
            started = None
            if current is not None and current.verification_status == VerificationStatus.PENDING:
                started = current
                writes.append(current.model_copy(update={"verification_status": VerificationStatus.IN_PROGRESS}))
            stored = self.store.put_all(writes)
            return stored[0], started

        stored, started = self._run(party_id, f"submit_document(party={party_id})", operation)
        logger.info(f"Document {stored.entity_type()} {stored.entity_id} submitted for party {party_id}")
        if started is not None:
            log_transition(
                started.entity_type(), started.entity_id,
                VerificationStatus.PENDING.value, VerificationStatus.IN_PROGRESS.value,
                reason="document_submitted",
            )
        return stored

    def record_kyb_check(
        self,
        kyb_verification_id: int,
        check: str,
        agent: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> KybVerification:
        """
        Record a KYB check confirmed by an analyst rather than by documents,
        such as the business structure review or the operating licence.
        """
        if check not in KYB_CHECKS:
            raise ValidationError(f"Unknown KYB check '{check}'", field="check", details={"known": KYB_CHECKS})
        party_id = self.store.get(KybVerification, kyb_verification_id).party_id

        def operation():
            verification = self.store.get(KybVerification, kyb_verification_id)
            if verification.verification_status not in (VerificationStatus.PENDING, VerificationStatus.IN_PROGRESS):
                raise PreconditionNotMet(
                    f"KybVerification {kyb_verification_id} is {verification.verification_status.value}",
                    current_state=verification.verification_status.value,
                    details={"check": check},
                )
            update = {check: True}
            if notes:
                update["verification_notes"] = notes
            return self.store.put(verification.model_copy(update=update))

        stored = self._run(party_id, f"record_kyb_check(KybVerification={kyb_verification_id}, {check})", operation)
        logger.info(f"KYB check {check} recorded on KybVerification {kyb_verification_id} by {agent or 'unknown'}")
        return stored

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition_verification(
        self,
        verification_id: int,
        target: VerificationStatus,
        context: Optional[TransitionContext] = None,
        kind: VerificationKind = VerificationKind.KYC,
    ) -> TransitionResult:
        """
        Move a verification to a new status, enforcing its preconditions.

        Raises:
            PreconditionNotMet: illegal move or unmet gate (details list what is missing)
            ValidationError: rejection or re-opening of a VERIFIED record without a reason
        """
        target = VerificationStatus(target)
        kind = VerificationKind(kind)
        context = context or TransitionContext()
        model = VERIFICATION_MODELS[kind]
        party_id = self.store.get(model, verification_id).party_id

        if target == VerificationStatus.REJECTED and not (context.reason and context.reason.strip()):
            raise ValidationError("A rejection requires a reason", field="reason")

        def operation():
            verification = self.store.get(model, verification_id)
            current = verification.verification_status
            check_transition(model.entity_type(), verification_id, current, target)

            if (current == VerificationStatus.VERIFIED and target == VerificationStatus.IN_PROGRESS
                    and not (context.reason and context.reason.strip())):
                raise ValidationError("Re-opening a verified record requires a reason", field="reason")

            now = self.now()
            update = {"verification_status": target}
            if target == VerificationStatus.IN_PROGRESS and current == VerificationStatus.PENDING:
                self._require_submitted_documents(kind, verification)
            elif target == VerificationStatus.VERIFIED:
                latest = self._check_verified_gates(kind, verification, now)
                level = verification.risk_level or latest.risk_level
                update.update(
                    verification_date=now,
                    next_review_date=now + timedelta(days=get_review_interval_days(level.value)),
                    rejection_reason=None,
                )
                if kind == VerificationKind.KYC:
                    update.update(
                        verification_method=context.verification_method or verification.verification_method,
                        verification_agent=context.agent or verification.verification_agent,
                    )
                else:
                    # Record which checks the evidence satisfied
                    update.update(self._kyb_checks(verification, now))
                    if context.notes:
                        update["verification_notes"] = context.notes
            elif target == VerificationStatus.REJECTED:
                update["rejection_reason"] = context.reason

            self.store.put(verification.model_copy(update=update))
            return current

        previous = self._run(
            party_id,
            f"transition_verification({model.entity_type()}={verification_id}, {target.value})",
            operation,
        )
        log_transition(
            model.entity_type(), verification_id, previous.value, target.value,
            agent=context.agent, reason=context.reason,
        )
        return TransitionResult(
            entity_type=model.entity_type(),
            entity_id=verification_id,
            from_state=previous.value,
            to_state=target.value,
        )

    def _require_submitted_documents(self, kind: VerificationKind, verification: Verification):
        if kind == VerificationKind.KYC:
            documents = self.store.query(VerificationDocument, "kyc_verification_id", verification.entity_id)
        else:
            documents = self.store.query(CorporateDocument, "party_id", verification.party_id)
        if not documents:
            raise PreconditionNotMet(
                f"{verification.entity_type()} {verification.entity_id} has no submitted documents",
                current_state=verification.verification_status.value,
                target_state=VerificationStatus.IN_PROGRESS.value,
                details={"unmet": ["documents_submitted"]},
            )

    def _check_verified_gates(self, kind: VerificationKind, verification: Verification, now: datetime) -> RiskAssessment:
        """Raise PreconditionNotMet listing every unmet VERIFIED gate; return the latest assessment."""
        unmet = []
        details = {}

        missing = self._missing_requirements(kind, verification, now)
        if missing:
            unmet.append("required_documents")
            details["missing_requirements"] = missing

        latest = self.store.latest(RiskAssessment, "party_id", verification.party_id, "assessment_date")
        if latest is None:
            unmet.append("risk_assessment")
        elif latest.cycle_detected or latest.max_depth_exceeded:
            unmet.append("ownership_anomaly")
            details["risk_assessment_id"] = latest.risk_assessment_id

        blocking = self._blocking_match_ids(verification.party_id)
        if blocking:
            unmet.append("unresolved_aml_matches")
            details["blocking_match_ids"] = blocking

        open_edd = [
            edd.edd_id
            for edd in self.store.query(EnhancedDueDiligence, "verification_id", verification.entity_id)
            if edd.verification_kind == kind and is_open(edd)
        ]
        if open_edd:
            unmet.append("open_edd")
            details["open_edd_ids"] = open_edd

        if unmet:
            details["unmet"] = unmet
            raise PreconditionNotMet(
                f"{verification.entity_type()} {verification.entity_id} cannot be VERIFIED: {', '.join(unmet)}",
                current_state=verification.verification_status.value,
                target_state=VerificationStatus.VERIFIED.value,
                details=details,
            )
        return latest

    def _missing_requirements(self, kind: VerificationKind, verification: Verification, now: datetime) -> list[str]:
        if kind == VerificationKind.KYB:
            return missing_kyb_checks(self._kyb_checks(verification, now), self.config.required_kyb_checks)

        documents = self.store.query(VerificationDocument, "kyc_verification_id", verification.entity_id)
        return missing_kyc_purposes(documents, self.config.required_kyc_purposes, now)

    def _kyb_checks(self, verification: KybVerification, now: datetime) -> dict[str, bool]:
        party_id = verification.party_id
        return derive_kyb_checks(
            verification,
            self.store.query(CorporateDocument, "party_id", party_id),
            self.store.query(Ubo, "party_id", party_id),
            self.store.query(PowerOfAttorney, "party_id", party_id),
            now,
        )

    def _blocking_match_ids(self, party_id: int) -> list[int]:
        """Matches for the party still PENDING or CONFIRMED_HIT."""
        blocking = []
        for screening in self.store.query(AmlScreening, "party_id", party_id):
            for match in self.store.query(AmlMatch, "aml_screening_id", screening.aml_screening_id):
                if match.resolution_status in (ResolutionStatus.PENDING, ResolutionStatus.CONFIRMED_HIT):
                    blocking.append(match.aml_match_id)
        return sorted(blocking)

    # =========================================================================
    # Periodic reviews
    # =========================================================================

    def run_periodic_reviews(self, as_of: Optional[datetime] = None) -> list[TransitionResult]:
        """
        Sweep for due reviews as of a reference instant.

        - VERIFIED records whose nextReviewDate has passed return to IN_PROGRESS
        - Parties whose latest assessment is due are re-assessed (PERIODIC)
        - Cases with overdue actions are escalated
        """
        as_of = self._as_of(as_of)
        results = []

        for kind, model in VERIFICATION_MODELS.items():
            due = self.store.query(model, "next_review_date", between=(None, as_of))
            for verification in due:
                if verification.verification_status != VerificationStatus.VERIFIED:
                    continue
                results.append(self.transition_verification(
                    verification.entity_id,
                    VerificationStatus.IN_PROGRESS,
                    TransitionContext(agent="periodic_review", reason="next review date reached"),
                    kind=kind,
                ))

        party_ids = sorted({a.party_id for a in self.store.query(RiskAssessment)})
        for party_id in party_ids:
            latest = self.store.latest(RiskAssessment, "party_id", party_id, "assessment_date")
            if latest.next_assessment_date is not None and latest.next_assessment_date <= as_of:
                assessment = self.assess_risk(party_id, as_of, AssessmentType.PERIODIC, agent="periodic_review")
                results.append(TransitionResult(
                    entity_type="RiskAssessment",
                    entity_id=assessment.risk_assessment_id,
                    from_state=latest.risk_level.value,
                    to_state=assessment.risk_level.value,
                    changed=latest.risk_level != assessment.risk_level,
                ))

        results.extend(self.escalate_overdue(as_of))
        logger.info(f"Periodic review sweep as of {as_of.isoformat()}: {len(results)} change(s)")
        return results
