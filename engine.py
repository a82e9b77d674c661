"""
KYC/KYB Compliance Lifecycle Engine

Combines the lifecycle components into one orchestrator:
1. Ownership graph resolution (deterministic)
2. Risk aggregation and EDD triggering
3. Verification state machine
4. AML match resolution workflow
5. Compliance case/action orchestration and regulatory reporting
6. EDD workflow

Every mutating operation runs under the party's lock and follows a
read-compute-conditional-write cycle, retried on version conflicts.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

from config import Config, get_config
from errors import ValidationError
from logger import get_logger
from store import EntityStore, retry_on_conflict
from engine_ownership import OwnershipMixin
from engine_risk import RiskMixin
from engine_verification import VerificationMixin
from engine_aml import AmlMixin
from engine_cases import CaseMixin
from engine_edd import EddMixin

logger = get_logger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ComplianceEngine(OwnershipMixin, RiskMixin, VerificationMixin, AmlMixin, CaseMixin, EddMixin):
    """Orchestrates the compliance lifecycle for parties held in an EntityStore."""

    def __init__(
        self,
        store: EntityStore,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self._clock = clock or _utc_now

    def now(self) -> datetime:
        """Current instant from the injected clock (always timezone-aware)."""
        value = self._clock()
        if value.tzinfo is None:
            raise ValidationError("Engine clock returned a naive datetime", field="clock")
        return value

    def _as_of(self, as_of: Optional[datetime]) -> datetime:
        """Default a reference instant to now and reject naive datetimes."""
        if as_of is None:
            return self.now()
        if as_of.tzinfo is None or as_of.tzinfo.utcoffset(as_of) is None:
            raise ValidationError("as_of must be timezone-aware", field="as_of")
        return as_of

    def _run(self, party_id: int, description: str, operation: Callable[[], T]) -> T:
        """Run a read-compute-write operation under the party lock with conflict retries."""
        with self.store.party_lock(party_id):
            return retry_on_conflict(operation, self.config.max_retries, description)
