"""
Ownership mixin for the Compliance Engine.

Gathers the CorporateStructure edges and UBO records above a party from
the store and hands them to the pure ownership graph resolver.
"""

from datetime import datetime
from typing import Optional

from logger import get_logger
from models import CorporateStructure, OwnershipResult, Ubo
from store import EntityReader
from utilities.ownership_graph import resolve_ownership_graph

logger = get_logger(__name__)


class OwnershipMixin:
    """Ownership graph resolution against the entity store."""

    def resolve_ownership(
        self,
        party_id: int,
        as_of: Optional[datetime] = None,
        reader: Optional[EntityReader] = None,
    ) -> OwnershipResult:
        """
        Resolve effective ownership above a party as of a reference date.

        Cycles and over-deep chains are flagged on the result, never raised;
        call raise_for_anomalies() on the result for strict handling.
        """
        as_of = self._as_of(as_of)
        reader = reader or self.store.snapshot()

        edges, reached = self._collect_ownership_edges(reader, party_id)
        ubos = []
        for entity_id in sorted(reached):
            ubos.extend(reader.query(Ubo, "party_id", entity_id))

        return resolve_ownership_graph(
            party_id,
            edges,
            as_of,
            max_depth=self.config.max_ownership_depth,
            complex_structure_threshold=self.config.complex_structure_threshold,
            ubos=ubos,
            ubo_threshold=self.config.ubo_threshold,
        )

    def _collect_ownership_edges(self, reader: EntityReader, party_id: int):
        """Every edge reachable upwards from the party; each entity is expanded once."""
        edges: list[CorporateStructure] = []
        reached = {party_id}
        frontier = [party_id]
        while frontier:
            entity_id = frontier.pop()
            for edge in reader.query(CorporateStructure, "party_id", entity_id):
                edges.append(edge)
                if edge.parent_entity_id not in reached:
                    reached.add(edge.parent_entity_id)
                    frontier.append(edge.parent_entity_id)
        logger.debug(f"Collected {len(edges)} ownership edge(s) above party {party_id}")
        return edges, reached
