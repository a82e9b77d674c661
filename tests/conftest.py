"""Pytest configuration and fixtures for compliance engine tests."""

import pytest
import sys
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


NOW = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Deterministic clock for the engine; advance() moves it forward."""

    def __init__(self, start: datetime = NOW):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def reset_config():
    """Reset configuration before each test."""
    import config
    config._config = None
    yield
    config._config = None


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    from store import InMemoryEntityStore
    return InMemoryEntityStore()


@pytest.fixture
def engine(store, clock):
    from engine import ComplianceEngine
    return ComplianceEngine(store, clock=clock)


@pytest.fixture
def holding_group_path():
    """Path to the holding group data set (party 1 owned through a diamond)."""
    return os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        "test_cases", "holding_group.json"
    )


@pytest.fixture
def holding_group_engine(holding_group_path, clock):
    from engine import ComplianceEngine
    from store import load_store_from_json
    return ComplianceEngine(load_store_from_json(holding_group_path), clock=clock)


@pytest.fixture
def add_edge(store):
    """Persist an ownership edge: party owned by parent at pct%."""
    from models import CorporateStructure, RelationshipType

    def _add(party_id, parent_id, pct, relationship_type=RelationshipType.SUBSIDIARY, **kwargs):
        return store.put(CorporateStructure(
            party_id=party_id,
            parent_entity_id=parent_id,
            ownership_percentage=Decimal(str(pct)),
            relationship_type=relationship_type,
            **kwargs,
        ))
    return _add


@pytest.fixture
def screen(engine):
    """Record a screening for a party with matches given as (list_type, score) pairs."""
    from models import AmlMatch, AmlScreening

    def _screen(party_id, *matches, screening_date=None):
        screening = AmlScreening(party_id=party_id, screening_date=screening_date or NOW)
        return engine.record_screening(screening, [
            AmlMatch(list_type=list_type, matched_name=f"Match {i}", match_score=Decimal(str(score)))
            for i, (list_type, score) in enumerate(matches, start=1)
        ])
    return _screen


@pytest.fixture
def verified_kyc_documents(engine, store):
    """Open a KYC verification for a party and submit verified IDENTITY and ADDRESS documents."""
    from models import (
        DocumentType, KycVerification, VerificationDocument, VerificationPurpose,
    )

    def _prepare(party_id) -> KycVerification:
        verification = engine.open_verification(party_id)
        engine.submit_document(VerificationDocument(
            kyc_verification_id=verification.kyc_verification_id,
            document_type=DocumentType.DNI,
            verification_purpose=VerificationPurpose.IDENTITY,
            is_verified=True,
            expiry_date=NOW + timedelta(days=900),
        ))
        engine.submit_document(VerificationDocument(
            kyc_verification_id=verification.kyc_verification_id,
            document_type=DocumentType.UTILITY_BILL,
            verification_purpose=VerificationPurpose.ADDRESS,
            is_verified=True,
        ))
        return store.get(KycVerification, verification.kyc_verification_id)
    return _prepare
