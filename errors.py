"""Error types for the compliance lifecycle engine.

Every error carries a human-readable message and a details dict with the
offending field or state, so callers can surface the reason for a rejected
operation.

Example:
    raise PreconditionNotMet(
        "Unresolved AML matches block verification",
        current_state="IN_PROGRESS",
        target_state="VERIFIED",
        details={"pending_match_ids": [12, 14]},
    )
"""

from typing import Any, Optional


class KYCBError(Exception):
    """Base class for all engine errors.

    Attributes:
        message: Error message
        details: Additional error context
        error_type: Error type string (defaults to class name)
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_type = self.__class__.__name__


class ValidationError(KYCBError):
    """Malformed input, rejected before any state change.

    Examples:
        - Ownership percentage outside 0-100
        - Match score outside 0-100
        - Naive (timezone-less) timestamps
        - Missing mandatory notes on a match decision
    """

    def __init__(self, message: str, field: Optional[str] = None,
                 details: Optional[dict[str, Any]] = None) -> None:
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        super().__init__(message, details)
        self.field = field


class PreconditionNotMet(KYCBError):
    """A state transition was attempted without its required predecessor state."""

    def __init__(self, message: str, current_state: Optional[str] = None,
                 target_state: Optional[str] = None,
                 details: Optional[dict[str, Any]] = None) -> None:
        details = dict(details or {})
        if current_state is not None:
            details.setdefault("current_state", current_state)
        if target_state is not None:
            details.setdefault("target_state", target_state)
        super().__init__(message, details)
        self.current_state = current_state
        self.target_state = target_state


class OwnershipAnomaly(KYCBError):
    """Base class for ownership graph anomalies.

    Anomalies never abort a risk computation; the resolver flags them and
    only strict callers see them raised.
    """


class CycleDetected(OwnershipAnomaly):
    """A traversal path revisited an entity already on that path."""

    def __init__(self, message: str, path: Optional[list[int]] = None) -> None:
        super().__init__(message, {"path": list(path or [])})
        self.path = list(path or [])


class MaxDepthExceeded(OwnershipAnomaly):
    """Ownership traversal went deeper than the configured maximum."""

    def __init__(self, message: str, max_depth: int, path: Optional[list[int]] = None) -> None:
        super().__init__(message, {"max_depth": max_depth, "path": list(path or [])})
        self.max_depth = max_depth
        self.path = list(path or [])


class EntityNotFound(KYCBError):
    """The store has no record for the requested key."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity_type} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class VersionConflict(KYCBError):
    """A conditional write found the record changed since it was read.

    Raised by the store and retried by the engine; callers only ever see
    ConcurrentModification.
    """

    def __init__(self, entity_type: str, entity_id: Any, expected: int, actual: int) -> None:
        super().__init__(
            f"{entity_type} {entity_id} version {expected} is stale (current {actual})",
            {"entity_type": entity_type, "entity_id": entity_id,
             "expected_version": expected, "actual_version": actual},
        )


class ConcurrentModification(KYCBError):
    """Optimistic-lock conflicts persisted past the retry limit."""


class ReportingObligationUnmet(KYCBError):
    """A case requiring a SEPBLAC communication was closed without one."""
