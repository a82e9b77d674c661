"""
Ownership Graph Resolver.

Computes effective (indirect) ownership of every ancestor of a party by
walking active CorporateStructure edges from the party towards its
parents. Effective ownership of an ancestor is the sum, over every distinct
path, of the product of the percentages along that path, capped at 100.

Two passes keep the work linear in the number of edges (times the depth
limit) however many distinct paths a layered structure holds:

1. An iterative depth-first search from the party marks entities in
   progress; an edge back to an entity still in progress closes a cycle.
   Those edges are recorded as anomalies and dropped, leaving a DAG.
2. Entities are visited in reverse post-order (the party first) and each
   one pushes, per path length, the summed path products and path counts
   it has received on to its parents. Contributions that would need more
   than max_depth edges are dropped and recorded as anomalies.

Anomalies flag the result for manual review instead of aborting it.
Pure deterministic logic, no store access.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from logger import get_logger
from models import (
    AncestorOwnership, BeneficialOwnership, CorporateStructure,
    OwnershipAnomalyRecord, OwnershipResult, OwnershipType,
    RelationshipType, Ubo,
)

logger = get_logger(__name__)

HUNDRED = Decimal("100")
MAJORITY = Decimal("50")

_IN_PROGRESS = 1
_DONE = 2


def _cap(fraction: Decimal) -> Decimal:
    """Convert an ownership fraction to a percentage capped at 100."""
    return min(fraction * HUNDRED, HUNDRED)


def active_edges(edges: Iterable[CorporateStructure], as_of: datetime) -> list[CorporateStructure]:
    """Edges whose [start_date, end_date] interval contains as_of, in a stable order."""
    active = [e for e in edges if e.is_active(as_of)]
    active.sort(key=lambda e: (e.party_id, e.parent_entity_id, e.corporate_structure_id or 0))
    return active


def _break_cycles(
    party_id: int,
    parents_of: dict[int, list[CorporateStructure]],
) -> tuple[list[int], dict[int, list[CorporateStructure]], list[list[int]]]:
    """
    Depth-first search above the party.

    Returns:
        (post-order of reached entities, acyclic parent edges per entity,
         paths closed by each cycle-forming edge)
    """
    state = {party_id: _IN_PROGRESS}
    path = [party_id]
    stack = [(party_id, iter(parents_of.get(party_id, [])))]
    postorder: list[int] = []
    acyclic: dict[int, list[CorporateStructure]] = defaultdict(list)
    cycles: list[list[int]] = []

    while stack:
        node, pending = stack[-1]
        edge = next(pending, None)
        if edge is None:
            stack.pop()
            path.pop()
            state[node] = _DONE
            postorder.append(node)
            continue

        parent = edge.parent_entity_id
        seen = state.get(parent)
        if seen == _IN_PROGRESS:
            cycles.append(path + [parent])
            continue
        acyclic[node].append(edge)
        if seen is None:
            state[parent] = _IN_PROGRESS
            path.append(parent)
            stack.append((parent, iter(parents_of.get(parent, []))))

    return postorder, acyclic, cycles


def _sample_path(predecessor: dict[tuple[int, int], int], node: int, depth: int) -> list[int]:
    """One path of the given length from the party to node."""
    path = [node]
    while depth > 0:
        node = predecessor[(node, depth)]
        depth -= 1
        path.append(node)
    path.reverse()
    return path


def resolve_ownership_graph(
    party_id: int,
    edges: Iterable[CorporateStructure],
    as_of: datetime,
    max_depth: int = 10,
    complex_structure_threshold: Decimal = Decimal("25"),
    ubos: Iterable[Ubo] = (),
    ubo_threshold: Decimal = Decimal("25"),
) -> OwnershipResult:
    """
    Resolve the ownership graph above a party.

    Args:
        party_id: Party whose owners are resolved
        edges: CorporateStructure edges (inactive ones are ignored)
        as_of: Reference date for edge and UBO activity
        max_depth: Maximum number of edges on a path
        complex_structure_threshold: Effective % at which an ancestor marks a complex structure
        ubos: UBO records of the party and any ancestor
        ubo_threshold: Effective % at which a natural person is a reportable UBO

    Returns:
        OwnershipResult with ancestors, ultimate parents, beneficial owners and anomaly flags
    """
    parents_of: dict[int, list[CorporateStructure]] = defaultdict(list)
    for edge in active_edges(edges, as_of):
        parents_of[edge.party_id].append(edge)

    postorder, acyclic, cycles = _break_cycles(party_id, parents_of)

    anomalies: list[OwnershipAnomalyRecord] = []
    for cycle in cycles:
        anomalies.append(OwnershipAnomalyRecord(kind="cycle", path=cycle))
        logger.warning(f"Ownership cycle for party {party_id}: {' -> '.join(map(str, cycle))}")

    # Per entity and path length: [summed path products, number of paths]
    layers: dict[int, dict[int, list]] = defaultdict(dict)
    layers[party_id][0] = [Decimal("1"), 1]
    predecessor: dict[tuple[int, int], int] = {}
    control_without_majority: set[int] = set()
    too_deep: set[tuple[int, int]] = set()

    for node in reversed(postorder):
        for depth in sorted(layers[node]):
            product, count = layers[node][depth]
            for edge in acyclic.get(node, []):
                parent = edge.parent_entity_id
                if depth + 1 > max_depth:
                    if (node, parent) not in too_deep:
                        too_deep.add((node, parent))
                        anomalies.append(OwnershipAnomalyRecord(
                            kind="max_depth",
                            path=_sample_path(predecessor, node, depth) + [parent],
                            max_depth=max_depth,
                        ))
                        logger.warning(
                            f"Ownership depth limit {max_depth} exceeded for party {party_id} at entity {parent}"
                        )
                    continue

                if (edge.relationship_type == RelationshipType.SUBSIDIARY
                        and edge.ownership_percentage <= MAJORITY):
                    control_without_majority.add(parent)

                slot = layers[parent].get(depth + 1)
                if slot is None:
                    slot = layers[parent][depth + 1] = [Decimal("0"), 0]
                    predecessor[(parent, depth + 1)] = node
                slot[0] += product * edge.ownership_percentage / HUNDRED
                slot[1] += count

    reach: dict[int, Decimal] = {party_id: Decimal("1")}
    ancestors = []
    for entity_id in sorted(layers):
        by_depth = {d: v for d, v in layers[entity_id].items() if d > 0}
        if not by_depth:
            continue
        reach[entity_id] = sum((v[0] for v in by_depth.values()), Decimal("0"))
        ancestors.append(AncestorOwnership(
            entity_id=entity_id,
            effective_percentage=_cap(reach[entity_id]),
            path_count=sum(v[1] for v in by_depth.values()),
            min_depth=min(by_depth),
            is_ultimate_parent=not parents_of.get(entity_id),
        ))

    beneficial_owners = _resolve_beneficial_owners(reach, ubos, as_of, ubo_threshold)

    result = OwnershipResult(
        party_id=party_id,
        as_of=as_of,
        ancestors=ancestors,
        ultimate_parents=[a.entity_id for a in ancestors if a.is_ultimate_parent],
        beneficial_owners=beneficial_owners,
        cycle_detected=any(a.kind == "cycle" for a in anomalies),
        max_depth_exceeded=any(a.kind == "max_depth" for a in anomalies),
        complex_structure=any(
            a.effective_percentage >= complex_structure_threshold for a in ancestors
        ),
        control_without_majority=sorted(control_without_majority),
        anomalies=anomalies,
    )
    logger.debug(
        f"Resolved ownership for party {party_id}: {len(ancestors)} ancestor(s), "
        f"{len(beneficial_owners)} beneficial owner(s), manual review={result.manual_review_required}"
    )
    return result


def _resolve_beneficial_owners(
    reach: dict[int, Decimal],
    ubos: Iterable[Ubo],
    as_of: datetime,
    ubo_threshold: Decimal,
) -> list[BeneficialOwnership]:
    """Effective ownership of natural persons through the reached entities."""
    totals: dict[int, Decimal] = defaultdict(Decimal)
    via: dict[int, set[int]] = defaultdict(set)
    control: dict[int, bool] = defaultdict(bool)

    for ubo in ubos:
        if not ubo.is_active(as_of) or ubo.party_id not in reach:
            continue
        totals[ubo.natural_person_id] += reach[ubo.party_id] * ubo.ownership_percentage / HUNDRED
        via[ubo.natural_person_id].add(ubo.party_id)
        if ubo.ownership_type == OwnershipType.CONTROL:
            control[ubo.natural_person_id] = True

    owners = []
    for person_id in sorted(totals):
        effective = _cap(totals[person_id])
        owners.append(BeneficialOwnership(
            natural_person_id=person_id,
            effective_percentage=effective,
            via_entities=sorted(via[person_id]),
            has_control=control[person_id],
            # Control-based UBOs are reportable regardless of their stake
            reportable=effective >= ubo_threshold or control[person_id],
        ))
    return owners
