"""
Entity store for the compliance lifecycle engine.

The engine depends only on the narrow interface below: keyed reads,
conditional writes guarded by a per-record version, query-by-field,
consistent snapshots and a per-party lock. InMemoryEntityStore is the
reference implementation used by the CLI and the tests; a relational
backend implements the same contract.
"""

import copy
import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from errors import ConcurrentModification, EntityNotFound, ValidationError, VersionConflict
from logger import get_logger
from models import ENTITY_TYPES, Entity

logger = get_logger(__name__)

E = TypeVar("E", bound=Entity)
T = TypeVar("T")

# Sentinel for "any value" in queries
ANY = object()


def validate_entity(entity: E) -> E:
    """Re-validate an entity, converting pydantic errors into ValidationError."""
    try:
        return type(entity).model_validate(entity.model_dump(by_alias=True))
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"Invalid {entity.entity_type()}: {first.get('msg')}",
            field=field,
            details={"errors": e.errors(include_url=False)},
        ) from e


class EntityReader(ABC):
    """Read side of the store: keyed lookups and query-by-field."""

    @abstractmethod
    def find(self, model: type[E], entity_id: int) -> Optional[E]:
        """Return the record or None."""

    @abstractmethod
    def query(
        self,
        model: type[E],
        field: Optional[str] = None,
        value: Any = ANY,
        *,
        between: Optional[tuple[Any, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[E]:
        """
        Query records of one type.

        Args:
            model: Entity class
            field: snake_case field to filter on (None returns every record)
            value: Exact value to match (ANY skips the equality filter)
            between: Inclusive (low, high) range on the field; None bounds are open
            order_by: Field to sort by (default: insertion order)
            descending: Reverse the sort

        Returns:
            Copies of the matching records
        """

    def get(self, model: type[E], entity_id: int) -> E:
        """Return the record or raise EntityNotFound."""
        entity = self.find(model, entity_id)
        if entity is None:
            raise EntityNotFound(model.entity_type(), entity_id)
        return entity

    def latest(self, model: type[E], field: str, value: Any, order_by: str) -> Optional[E]:
        """Most recent record for field == value, by the given ordering field."""
        records = [
            r for r in self.query(model, field, value)
            if getattr(r, order_by) is not None
        ]
        if not records:
            return None
        return max(records, key=lambda r: getattr(r, order_by))


class EntityStore(EntityReader):
    """Full store contract used by the engine."""

    @abstractmethod
    def put(self, entity: E) -> E:
        """
        Create or conditionally update a record.

        A record without a key is created; otherwise the write succeeds only
        when entity.version equals the stored version. Returns the stored
        copy with its new version. Raises VersionConflict on a stale write.
        """

    @abstractmethod
    def put_all(self, entities: Iterable[Entity]) -> list[Entity]:
        """Atomically apply several conditional writes (all or nothing)."""

    @abstractmethod
    def reserve_id(self, model: type[Entity]) -> int:
        """
        Allocate a key for a record that will be created later.

        Lets a caller reference the new record from other writes in the
        same put_all. A reserved key that is never written is not reused.
        """

    @abstractmethod
    def snapshot(self) -> EntityReader:
        """A consistent read-only view as of now."""

    @abstractmethod
    def party_lock(self, party_id: int):
        """Re-entrant lock serializing engine operations on one party."""


class _RecordReader(EntityReader):
    """Query implementation over a {type name: {id: entity}} mapping."""

    _records: dict[str, dict[int, Entity]]

    def find(self, model, entity_id):
        record = self._records.get(model.entity_type(), {}).get(entity_id)
        return record.model_copy(deep=True) if record is not None else None

    def query(self, model, field=None, value=ANY, *, between=None, order_by=None, descending=False):
        results = []
        for record in self._records.get(model.entity_type(), {}).values():
            if field is not None:
                current = getattr(record, field)
                if value is not ANY and current != value:
                    continue
                if between is not None:
                    low, high = between
                    if current is None:
                        continue
                    if low is not None and current < low:
                        continue
                    if high is not None and current > high:
                        continue
            results.append(record.model_copy(deep=True))

        if order_by is not None:
            # None sorts first so ascending order puts unknown values up front
            results.sort(
                key=lambda r: (getattr(r, order_by) is not None, getattr(r, order_by) or 0),
                reverse=descending,
            )
        elif descending:
            results.reverse()
        return results


class StoreSnapshot(_RecordReader):
    """Frozen copy of the store's records."""

    def __init__(self, records: dict[str, dict[int, Entity]]):
        self._records = records


class InMemoryEntityStore(_RecordReader, EntityStore):
    """Thread-safe in-memory store with optimistic versioning."""

    def __init__(self):
        self._records: dict[str, dict[int, Entity]] = {}
        self._next_ids: dict[str, int] = {}
        self._lock = threading.RLock()
        self._party_locks: dict[int, threading.RLock] = {}
        self._party_locks_guard = threading.Lock()

    # =========================================================================
    # Writes
    # =========================================================================

    def put(self, entity):
        return self.put_all([entity])[0]

    def put_all(self, entities):
        validated = [validate_entity(e) for e in entities]
        with self._lock:
            for entity in validated:
                self._check_version(entity)
            return [self._write(entity) for entity in validated]

    def reserve_id(self, model):
        with self._lock:
            return self._allocate_id(model.entity_type())

    def _check_version(self, entity: Entity):
        type_name = entity.entity_type()
        if entity.entity_id is None:
            if entity.version != 0:
                raise ValidationError(
                    f"New {type_name} must have version 0",
                    field="version",
                )
            return
        stored = self._records.get(type_name, {}).get(entity.entity_id)
        stored_version = stored.version if stored is not None else 0
        if entity.version != stored_version:
            raise VersionConflict(type_name, entity.entity_id, entity.version, stored_version)

    def _write(self, entity: Entity) -> Entity:
        type_name = entity.entity_type()
        table = self._records.setdefault(type_name, {})
        record = entity.model_copy(deep=True)
        if record.entity_id is None:
            new_id = self._allocate_id(type_name)
            record = record.model_copy(update={record.id_field: new_id})
        else:
            self._next_ids[type_name] = max(
                self._next_ids.get(type_name, 1), record.entity_id + 1
            )
        record = record.model_copy(update={"version": record.version + 1})
        table[record.entity_id] = record
        return record.model_copy(deep=True)

    def _allocate_id(self, type_name: str) -> int:
        next_id = self._next_ids.get(type_name, 1)
        self._next_ids[type_name] = next_id + 1
        return next_id

    # =========================================================================
    # Reads and locking
    # =========================================================================

    def find(self, model, entity_id):
        with self._lock:
            return super().find(model, entity_id)

    def query(self, model, field=None, value=ANY, *, between=None, order_by=None, descending=False):
        with self._lock:
            return super().query(
                model, field, value,
                between=between, order_by=order_by, descending=descending,
            )

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(copy.deepcopy(self._records))

    def party_lock(self, party_id: int) -> threading.RLock:
        with self._party_locks_guard:
            lock = self._party_locks.get(party_id)
            if lock is None:
                lock = threading.RLock()
                self._party_locks[party_id] = lock
            return lock


# =============================================================================
# Optimistic concurrency
# =============================================================================

def retry_on_conflict(operation: Callable[[], T], max_retries: int, description: str = "operation") -> T:
    """
    Run a read-compute-write operation, retrying on version conflicts.

    Args:
        operation: Callable that re-reads its inputs on every call
        max_retries: Retries after the first attempt
        description: Used in logs and the surfaced error

    Returns:
        The operation's result

    Raises:
        ConcurrentModification: when every attempt conflicted
    """
    last_conflict: Optional[VersionConflict] = None
    for attempt in range(max_retries + 1):
        try:
            return operation()
        except VersionConflict as e:
            last_conflict = e
            logger.debug(f"{description}: version conflict on attempt {attempt + 1} ({e.message})")
    raise ConcurrentModification(
        f"{description} failed after {max_retries + 1} attempts due to concurrent modification",
        details=dict(last_conflict.details) if last_conflict else {},
    )


# =============================================================================
# Data set loading
# =============================================================================

def load_store_from_json(path: str | Path, store: Optional[InMemoryEntityStore] = None) -> InMemoryEntityStore:
    """
    Load a JSON data set ({EntityType: [records...]}) into a store.

    Records use the persisted camelCase field names.
    """
    store = store or InMemoryEntityStore()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    for type_name, records in data.items():
        model = ENTITY_TYPES.get(type_name)
        if model is None:
            raise ValidationError(f"Unknown entity type in data set: {type_name}", field=type_name)
        for raw in records:
            try:
                entity = model.model_validate(raw)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid {type_name} record: {e.errors()[0].get('msg')}",
                    field=type_name,
                    details={"record": raw},
                ) from e
            store.put(entity)
    logger.info(f"Loaded data set {path} ({sum(len(r) for r in data.values())} records)")
    return store
