"""End-to-end lifecycle scenarios across ownership, risk, AML, cases and verification."""

import sys
from decimal import Decimal

import pytest

from errors import PreconditionNotMet, ReportingObligationUnmet
from models import (
    AmlMatch, AmlScreening, CaseStatus, ComplianceAction, ComplianceCase,
    EddReason, EnhancedDueDiligence, KybVerification, KycVerification, ListType,
    ResolutionStatus, RiskLevel, VerificationKind, VerificationStatus,
)


class TestOnboardingScenarios:
    def test_indirect_ownership_chain(self, engine, add_edge):
        add_edge(10, 20, 60)
        add_edge(20, 30, 50)
        result = engine.resolve_ownership(10)
        assert result.effective_percentage(30) == Decimal("30")
        assert not result.cycle_detected
        assert result.ultimate_parents == [30]

    def test_strong_pending_match_blocks_onboarding(self, engine, store, verified_kyc_documents, screen):
        v = verified_kyc_documents(1)
        screen(1, (ListType.WATCHLIST, 85))

        stored = store.get(KycVerification, v.kyc_verification_id)
        assert stored.risk_level == RiskLevel.HIGH
        assert stored.enhanced_due_diligence

        with pytest.raises(PreconditionNotMet) as exc:
            engine.transition_verification(v.kyc_verification_id, VerificationStatus.VERIFIED)
        assert exc.value.details["unmet"] == ["unresolved_aml_matches", "open_edd"]

    def test_sanctions_hit_through_to_case_closure(self, engine, store, screen):
        screen(1, (ListType.SANCTIONS, 96))
        engine.resolve_match(1, ResolutionStatus.CONFIRMED_HIT, agent="analyst", notes="Listed entity")
        case = store.query(ComplianceCase, "party_id", 1)[0]

        for action in store.query(ComplianceAction, "compliance_case_id", case.compliance_case_id):
            engine.transition_action(action.compliance_action_id, "IN_PROGRESS", agent="analyst")
            engine.transition_action(action.compliance_action_id, "COMPLETED", agent="analyst")
        engine.transition_case(case.compliance_case_id, CaseStatus.IN_REVIEW)

        with pytest.raises(ReportingObligationUnmet):
            engine.close_case(case.compliance_case_id)

        engine.file_report(case.compliance_case_id, summary="Confirmed sanctions match")
        engine.close_case(case.compliance_case_id, agent="mlro")
        assert store.get(ComplianceCase, case.compliance_case_id).case_status == CaseStatus.CLOSED

    def test_screening_counters_stay_consistent(self, engine, store, screen):
        screening = screen(1, (ListType.PEP, 50))
        engine.add_match(screening.aml_screening_id, AmlMatch(list_type=ListType.WATCHLIST, match_score=Decimal("45")))
        engine.resolve_match(1, ResolutionStatus.FALSE_POSITIVE, agent="analyst", notes="Namesake")

        stored = store.get(AmlScreening, screening.aml_screening_id)
        matches = store.query(AmlMatch, "aml_screening_id", screening.aml_screening_id)
        assert stored.match_count == len(matches) == 2
        assert stored.matches_found


class TestHoldingGroup:
    def test_ownership(self, holding_group_engine, now):
        result = holding_group_engine.resolve_ownership(1, now)
        assert result.effective_percentage(4) == Decimal("50")
        assert result.effective_percentage(9) == Decimal("0")
        assert result.ultimate_parents == [4]

        owners = {o.natural_person_id: o for o in result.beneficial_owners}
        assert owners[100].effective_percentage == Decimal("40")
        assert owners[100].reportable
        assert not owners[101].reportable
        assert owners[102].reportable

    def test_assessment(self, holding_group_engine, now):
        assessment = holding_group_engine.assess_risk(1, now)
        assert assessment.risk_score == 71
        assert assessment.risk_level == RiskLevel.HIGH
        assert assessment.edd_reasons == [EddReason.HIGH_RISK]

        store = holding_group_engine.store
        kyb = store.get(KybVerification, 1)
        assert kyb.risk_score == 71
        assert kyb.enhanced_due_diligence
        edds = store.query(EnhancedDueDiligence, "verification_id", 1)
        assert [(e.verification_kind, e.edd_reason) for e in edds] == [(VerificationKind.KYB, EddReason.HIGH_RISK)]


class TestCli:
    def _run(self, monkeypatch, *args):
        import main
        monkeypatch.setattr(sys, "argv", ["kycb-engine", *args])
        return main.main()

    def test_assess(self, monkeypatch, holding_group_path):
        code = self._run(
            monkeypatch, "--data", holding_group_path, "--party", "1",
            "--ownership", "--assess", "--as-of", "2025-07-01T09:00:00+00:00", "-q",
        )
        assert code == 0

    def test_party_required(self, monkeypatch, holding_group_path):
        assert self._run(monkeypatch, "--data", holding_group_path, "--assess") == 1

    def test_missing_data_set(self, monkeypatch):
        assert self._run(monkeypatch, "--data", "does-not-exist.json", "--reviews") == 1

    def test_naive_as_of_is_reported(self, monkeypatch, holding_group_path):
        code = self._run(
            monkeypatch, "--data", holding_group_path, "--party", "1",
            "--assess", "--as-of", "2025-07-01T09:00:00",
        )
        assert code == 1
