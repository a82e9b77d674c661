"""
EDD mixin for the Compliance Engine.

Enhanced Due Diligence records attached to a KYC or KYB verification:
opening (which sends a VERIFIED record back to review) and the approval
gated lifecycle PENDING -> IN_PROGRESS -> {COMPLETED, WAIVED}.
"""

from typing import Optional

from errors import PreconditionNotMet
from logger import get_logger, log_transition
from models import (
    EddReason, EddStatus, EnhancedDueDiligence, TransitionResult,
    VerificationKind, VerificationStatus,
)
from utilities.edd_requirements import EDD_MEASURES, check_edd_closure, is_open
from utilities.state_machines import check_transition, is_terminal
from engine_verification import VERIFICATION_MODELS

logger = get_logger(__name__)


class EddMixin:
    """Enhanced Due Diligence workflow."""

    def open_edd(
        self,
        verification_id: int,
        reason: EddReason,
        kind: VerificationKind = VerificationKind.KYC,
        description: Optional[str] = None,
    ) -> EnhancedDueDiligence:
        """
        Open a PENDING EDD record on a verification.

        A VERIFIED verification returns to IN_PROGRESS; rejected
        verifications and duplicate open records for the same reason are refused.
        """
        reason = EddReason(reason)
        kind = VerificationKind(kind)
        model = VERIFICATION_MODELS[kind]
        party_id = self.store.get(model, verification_id).party_id

        def operation():
            verification = self.store.get(model, verification_id)
            if verification.verification_status == VerificationStatus.REJECTED:
                raise PreconditionNotMet(
                    f"{model.entity_type()} {verification_id} is rejected",
                    current_state=verification.verification_status.value,
                )
            duplicate = [
                edd.edd_id
                for edd in self.store.query(EnhancedDueDiligence, "verification_id", verification_id)
                if edd.verification_kind == kind and edd.edd_reason == reason and is_open(edd)
            ]
            if duplicate:
                raise PreconditionNotMet(
                    f"{model.entity_type()} {verification_id} already has an open {reason.value} EDD",
                    details={"open_edd_ids": duplicate},
                )

            writes = [EnhancedDueDiligence(
                verification_id=verification_id,
                verification_kind=kind,
                edd_reason=reason,
                edd_description=description or "; ".join(EDD_MEASURES[reason]),
            )]
            reopened = verification.verification_status == VerificationStatus.VERIFIED
            # Always re-put the verification so a concurrent status change conflicts
            update = {"enhanced_due_diligence": True}
            if reopened:
                update["verification_status"] = VerificationStatus.IN_PROGRESS
            writes.append(verification.model_copy(update=update))
            written = self.store.put_all(writes)
            return written[0], reopened

        edd, reopened = self._run(party_id, f"open_edd({model.entity_type()}={verification_id})", operation)
        log_transition("EnhancedDueDiligence", edd.edd_id, None, edd.edd_status.value,
                       verification=verification_id, reason=reason.value)
        if reopened:
            log_transition(model.entity_type(), verification_id,
                           VerificationStatus.VERIFIED.value, VerificationStatus.IN_PROGRESS.value,
                           reason="edd_trigger")
        return edd

    def transition_edd(
        self,
        edd_id: int,
        target: EddStatus,
        agent: Optional[str] = None,
        notes: Optional[str] = None,
        approving_authority: Optional[str] = None,
        committee_approval: bool = False,
    ) -> TransitionResult:
        """
        Move an EDD record forward.

        Raises:
            PreconditionNotMet: illegal move or missing approval
        """
        target = EddStatus(target)
        edd = self.store.get(EnhancedDueDiligence, edd_id)
        model = VERIFICATION_MODELS[edd.verification_kind]
        party_id = self.store.get(model, edd.verification_id).party_id

        def operation():
            current = self.store.get(EnhancedDueDiligence, edd_id)
            verification = self.store.get(model, current.verification_id)
            check_transition("EnhancedDueDiligence", edd_id, current.edd_status, target)

            now = self.now()
            update = {"edd_status": target}
            if notes:
                update["edd_notes"] = notes
            if is_terminal(target):
                check_edd_closure(
                    current, target, verification.risk_level,
                    approving_authority, committee_approval, notes,
                )
                authority = approving_authority or current.approving_authority
                update.update(
                    approving_authority=authority,
                    approval_date=now,
                    completion_date=now,
                    completed_by=agent or authority,
                )
                if committee_approval:
                    update.update(internal_committee_approval=True, committee_approval_date=now)
            self.store.put(current.model_copy(update=update))
            return current.edd_status

        previous = self._run(party_id, f"transition_edd(edd={edd_id}, {target.value})", operation)
        log_transition("EnhancedDueDiligence", edd_id, previous.value, target.value,
                       agent=agent, authority=approving_authority)
        if target == EddStatus.WAIVED:
            logger.warning(f"EDD {edd_id} waived by {approving_authority or agent}")
        return TransitionResult(
            entity_type="EnhancedDueDiligence", entity_id=edd_id,
            from_state=previous.value, to_state=target.value,
        )
