"""Tests for the KYC/KYB verification state machine."""

from datetime import timedelta
from decimal import Decimal

import pytest

from config import Config
from errors import PreconditionNotMet, ValidationError
from models import (
    CorporateDocument, CorporateDocumentType, DocumentType,
    EddReason, EnhancedDueDiligence, KybVerification, KycVerification, ListType,
    PowerOfAttorney, PowerType, RiskLevel, TransitionContext, Ubo,
    VerificationDocument, VerificationKind, VerificationMethod,
    VerificationPurpose, VerificationStatus,
)


class TestOpening:
    def test_open_creates_pending(self, engine):
        v = engine.open_verification(1)
        assert v.verification_status == VerificationStatus.PENDING
        assert v.party_id == 1

    def test_one_live_verification_per_kind(self, engine):
        engine.open_verification(1)
        with pytest.raises(PreconditionNotMet):
            engine.open_verification(1)
        # A KYB record is independent
        assert engine.open_verification(1, VerificationKind.KYB).verification_status == VerificationStatus.PENDING

    def test_new_record_after_rejection(self, engine, verified_kyc_documents):
        v = verified_kyc_documents(1)
        engine.transition_verification(
            v.kyc_verification_id, VerificationStatus.REJECTED, TransitionContext(reason="Forged ID"),
        )
        fresh = engine.open_verification(1)
        assert fresh.kyc_verification_id != v.kyc_verification_id

    def test_open_carries_latest_risk(self, engine):
        engine.assess_risk(1)
        v = engine.open_verification(1)
        assert v.risk_level is not None


class TestDocumentSubmission:
    def test_first_document_starts_verification(self, engine, store):
        v = engine.open_verification(1)
        engine.submit_document(VerificationDocument(
            kyc_verification_id=v.kyc_verification_id, document_type=DocumentType.PASSPORT,
        ))
        assert store.get(KycVerification, v.kyc_verification_id).verification_status == VerificationStatus.IN_PROGRESS

    def test_corporate_document_starts_kyb(self, engine, store):
        v = engine.open_verification(2, VerificationKind.KYB)
        engine.submit_document(CorporateDocument(party_id=2, document_type=CorporateDocumentType.BYLAWS))
        assert store.get(KybVerification, v.kyb_verification_id).verification_status == VerificationStatus.IN_PROGRESS

    def test_manual_start_requires_documents(self, engine):
        v = engine.open_verification(1)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.IN_PROGRESS)
        assert exc.value.details["unmet"] == ["documents_submitted"]

    def test_pending_cannot_jump_to_verified(self, engine):
        v = engine.open_verification(1)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert exc.value.current_state == "PENDING"


class TestVerifiedGates:
    def test_happy_path(self, engine, store, verified_kyc_documents, now):
        v = verified_kyc_documents(1)
        engine.assess_risk(1)
        result = engine.transition_verification(
            v.kyc_verification_id, VerificationStatus.VERIFIED,
            TransitionContext(agent="analyst.garcia", verification_method=VerificationMethod.MANUAL),
        )
        assert result.from_state == "IN_PROGRESS"
        assert result.to_state == "VERIFIED"
        stored = store.get(KycVerification, v.kyc_verification_id)
        assert stored.verification_date == now
        assert stored.next_review_date == now + timedelta(days=365)
        assert stored.verification_agent == "analyst.garcia"

    def test_requires_risk_assessment(self, engine, verified_kyc_documents):
        v = verified_kyc_documents(1)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert "risk_assessment" in exc.value.details["unmet"]

    def test_missing_address_document(self, engine):
        v = engine.open_verification(1)
        engine.submit_document(VerificationDocument(
            kyc_verification_id=v.kyc_verification_id, document_type=DocumentType.DNI,
            verification_purpose=VerificationPurpose.IDENTITY, is_verified=True,
        ))
        engine.assess_risk(1)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert exc.value.details["missing_requirements"] == ["ADDRESS"]

    def test_unverified_or_expired_documents_do_not_count(self, engine, now):
        v = engine.open_verification(1)
        engine.submit_document(VerificationDocument(
            kyc_verification_id=v.kyc_verification_id, document_type=DocumentType.DNI,
            verification_purpose=VerificationPurpose.IDENTITY, is_verified=True,
            expiry_date=now - timedelta(days=1),
        ))
        engine.submit_document(VerificationDocument(
            kyc_verification_id=v.kyc_verification_id, document_type=DocumentType.UTILITY_BILL,
            verification_purpose=VerificationPurpose.ADDRESS, is_verified=False,
        ))
        engine.assess_risk(1)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert exc.value.details["missing_requirements"] == ["IDENTITY", "ADDRESS"]

    def test_pending_match_blocks_verification(self, engine, verified_kyc_documents, screen):
        v = verified_kyc_documents(1)
        screen(1, (ListType.ADVERSE_MEDIA, 40))
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert exc.value.details["unmet"] == ["unresolved_aml_matches"]
        assert exc.value.details["blocking_match_ids"] == [1]

    def test_false_positive_unblocks(self, engine, verified_kyc_documents, screen):
        v = verified_kyc_documents(1)
        screen(1, (ListType.ADVERSE_MEDIA, 40))
        engine.resolve_match(1, "FALSE_POSITIVE", agent="analyst", notes="Different date of birth")
        result = engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert result.to_state == "VERIFIED"

    def test_ownership_cycle_blocks_verification(self, engine, store, verified_kyc_documents, add_edge):
        v = verified_kyc_documents(1)
        add_edge(1, 2, 60)
        add_edge(2, 1, 10)
        assessment = engine.assess_risk(1)
        assert assessment.cycle_detected
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert "ownership_anomaly" in exc.value.details["unmet"]

    def test_depth_limit_escalates_and_blocks_verification(self, engine, store, verified_kyc_documents, add_edge):
        engine.config = Config(max_ownership_depth=2)
        v = verified_kyc_documents(1)
        add_edge(1, 2, 60)
        add_edge(2, 3, 60)
        add_edge(3, 4, 60)

        assessment = engine.assess_risk(1)

        assert assessment.max_depth_exceeded
        assert assessment.manual_review_required
        assert assessment.risk_score >= engine.config.risk_threshold_high
        assert assessment.risk_level in (RiskLevel.HIGH, RiskLevel.EXTREME)
        assert EddReason.COMPLEX_STRUCTURE in assessment.edd_reasons
        edds = store.query(EnhancedDueDiligence, "verification_id", v.kyc_verification_id)
        assert EddReason.COMPLEX_STRUCTURE in [e.edd_reason for e in edds]

        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert "ownership_anomaly" in exc.value.details["unmet"]
        assert exc.value.details["risk_assessment_id"] == assessment.risk_assessment_id

    def test_kyb_checks_follow_submitted_evidence(self, engine, store):
        v = engine.open_verification(5, VerificationKind.KYB)
        engine.submit_document(CorporateDocument(
            party_id=5, document_type=CorporateDocumentType.DEED_OF_INCORPORATION, is_verified=True,
        ))
        engine.assess_risk(5)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyb_verification_id, VerificationStatus.VERIFIED, kind=VerificationKind.KYB)
        assert exc.value.details["missing_requirements"] == [
            "mercantile_registry_verified", "ubo_verified", "tax_id_verified", "powers_of_attorney_verified",
        ]

        engine.submit_document(CorporateDocument(
            party_id=5, document_type=CorporateDocumentType.TAX_ID, is_verified=True,
            commercial_registry="Registro Mercantil de Madrid",
        ))
        store.put(Ubo(party_id=5, natural_person_id=50, ownership_percentage=Decimal("60"), is_verified=True))
        # Not yet reviewed for legal sufficiency
        engine.submit_document(PowerOfAttorney(
            party_id=5, attorney_id=70, power_type=PowerType.GENERAL, is_verified=True,
        ))
        engine.assess_risk(5)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyb_verification_id, VerificationStatus.VERIFIED, kind=VerificationKind.KYB)
        assert exc.value.details["missing_requirements"] == ["powers_of_attorney_verified"]

        engine.submit_document(PowerOfAttorney(
            party_id=5, attorney_id=71, power_type=PowerType.LIMITED, is_verified=True,
            is_bastanteo_completed=True, financial_limit=Decimal("250000"), currency="EUR",
        ))
        result = engine.transition_verification(
            v.kyb_verification_id, VerificationStatus.VERIFIED,
            TransitionContext(notes="Registry extract checked"), kind=VerificationKind.KYB,
        )
        assert result.to_state == "VERIFIED"
        stored = store.get(KybVerification, v.kyb_verification_id)
        assert stored.verification_notes == "Registry extract checked"
        assert stored.mercantile_registry_verified
        assert stored.deed_of_incorporation_verified
        assert stored.ubo_verified
        assert stored.tax_id_verified
        assert stored.powers_of_attorney_verified
        assert not stored.operating_license_verified

    def test_unverified_active_ubo_blocks_kyb(self, engine, store, now):
        engine.config = Config(required_kyb_checks=["ubo_verified"])
        v = engine.open_verification(5, VerificationKind.KYB)
        engine.submit_document(CorporateDocument(party_id=5, document_type=CorporateDocumentType.BYLAWS))
        store.put(Ubo(party_id=5, natural_person_id=50, ownership_percentage=Decimal("60"), is_verified=True))
        store.put(Ubo(party_id=5, natural_person_id=51, ownership_percentage=Decimal("30")))
        # A departed owner is ignored
        store.put(Ubo(
            party_id=5, natural_person_id=52, ownership_percentage=Decimal("10"),
            end_date=now - timedelta(days=1),
        ))
        engine.assess_risk(5)
        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyb_verification_id, VerificationStatus.VERIFIED, kind=VerificationKind.KYB)
        assert exc.value.details["missing_requirements"] == ["ubo_verified"]

    def test_analyst_recorded_check(self, engine, store):
        engine.config = Config(required_kyb_checks=["operating_license_verified"])
        v = engine.open_verification(5, VerificationKind.KYB)
        engine.submit_document(CorporateDocument(party_id=5, document_type=CorporateDocumentType.BYLAWS))
        engine.assess_risk(5)

        engine.record_kyb_check(
            v.kyb_verification_id, "operating_license_verified",
            agent="analyst", notes="Licence checked with the Bank of Spain register",
        )
        result = engine.transition_verification(v.kyb_verification_id, VerificationStatus.VERIFIED, kind=VerificationKind.KYB)
        assert result.to_state == "VERIFIED"
        assert store.get(KybVerification, v.kyb_verification_id).operating_license_verified

    def test_unknown_kyb_check_rejected(self, engine):
        v = engine.open_verification(5, VerificationKind.KYB)
        with pytest.raises(ValidationError) as exc:
            engine.record_kyb_check(v.kyb_verification_id, "vibes_verified")
        assert exc.value.field == "check"


class TestRejection:
    def test_rejection_requires_reason(self, engine, verified_kyc_documents):
        v = verified_kyc_documents(1)
        with pytest.raises(ValidationError) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.REJECTED)
        assert exc.value.field == "reason"

    def test_rejected_is_terminal(self, engine, store, verified_kyc_documents):
        v = verified_kyc_documents(1)
        engine.transition_verification(
            v.kyc_verification_id, VerificationStatus.REJECTED, TransitionContext(reason="Customer withdrew"),
        )
        assert store.get(KycVerification, v.kyc_verification_id).rejection_reason == "Customer withdrew"
        with pytest.raises(PreconditionNotMet):
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.IN_PROGRESS)


class TestPeriodicReview:
    def test_due_review_reopens_verification(self, engine, store, verified_kyc_documents, now):
        v = verified_kyc_documents(1)
        engine.assess_risk(1)
        engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)

        assert engine.run_periodic_reviews(now + timedelta(days=30)) == []

        results = engine.run_periodic_reviews(now + timedelta(days=366))
        assert any(r.entity_type == "KycVerification" and r.to_state == "IN_PROGRESS" for r in results)
        assert any(r.entity_type == "RiskAssessment" for r in results)
        assert store.get(KycVerification, v.kyc_verification_id).verification_status == VerificationStatus.IN_PROGRESS


class TestReopening:
    def test_manual_reopen_requires_reason(self, engine, store, verified_kyc_documents):
        v = verified_kyc_documents(1)
        engine.assess_risk(1)
        engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)

        with pytest.raises(ValidationError) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.IN_PROGRESS)
        assert exc.value.field == "reason"
        assert store.get(KycVerification, v.kyc_verification_id).verification_status == VerificationStatus.VERIFIED

        result = engine.transition_verification(
            v.kyc_verification_id, VerificationStatus.IN_PROGRESS,
            TransitionContext(agent="analyst", reason="Adverse press coverage"),
        )
        assert result.from_state == "VERIFIED"
        assert result.to_state == "IN_PROGRESS"
