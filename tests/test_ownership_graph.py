"""Tests for the ownership graph resolver."""

import itertools
import time
from datetime import datetime, timezone
from decimal import Decimal

from models import CorporateStructure, OwnershipType, RelationshipType, Ubo
from utilities.ownership_graph import active_edges, resolve_ownership_graph

NOW = datetime(2025, 7, 1, tzinfo=timezone.utc)


def edge(party, parent, pct, relationship_type=RelationshipType.SUBSIDIARY, **kwargs):
    return CorporateStructure(
        party_id=party,
        parent_entity_id=parent,
        ownership_percentage=Decimal(str(pct)),
        relationship_type=relationship_type,
        **kwargs,
    )


class TestEffectiveOwnership:
    def test_chain_multiplies(self):
        # 2 owns 60% of 3, 1 owns 50% of 2
        result = resolve_ownership_graph(3, [edge(3, 2, 60), edge(2, 1, 50)], NOW)
        assert result.effective_percentage(2) == Decimal("60")
        assert result.effective_percentage(1) == Decimal("30")
        assert result.ultimate_parents == [1]

    def test_diamond_paths_are_summed(self):
        # 4 reaches 1 through 2 (60% x 50%) and 3 (40% x 50%)
        edges = [edge(1, 2, 60), edge(1, 3, 40), edge(2, 4, 50), edge(3, 4, 50)]
        result = resolve_ownership_graph(1, edges, NOW)
        ancestor = next(a for a in result.ancestors if a.entity_id == 4)
        assert ancestor.effective_percentage == Decimal("50")
        assert ancestor.path_count == 2
        assert ancestor.min_depth == 2

    def test_effective_percentage_capped_at_100(self):
        edges = [edge(1, 2, 100), edge(1, 3, 100), edge(2, 4, 100), edge(3, 4, 100)]
        result = resolve_ownership_graph(1, edges, NOW)
        assert result.effective_percentage(4) == Decimal("100")

    def test_insertion_order_does_not_change_result(self):
        edges = [edge(1, 2, 60), edge(1, 3, 40), edge(2, 4, 50), edge(3, 4, 50), edge(4, 5, 70)]
        expected = resolve_ownership_graph(1, edges, NOW)
        for ordering in itertools.permutations(edges):
            result = resolve_ownership_graph(1, list(ordering), NOW)
            assert result.ancestors == expected.ancestors

    def test_inactive_edges_ignored(self):
        edges = [
            edge(1, 2, 60),
            edge(1, 3, 40, end_date=datetime(2024, 1, 1, tzinfo=timezone.utc)),
            edge(1, 5, 10, start_date=datetime(2026, 1, 1, tzinfo=timezone.utc)),
        ]
        assert [e.parent_entity_id for e in active_edges(edges, NOW)] == [2]
        result = resolve_ownership_graph(1, edges, NOW)
        assert [a.entity_id for a in result.ancestors] == [2]

    def test_no_owners(self):
        result = resolve_ownership_graph(1, [], NOW)
        assert result.ancestors == []
        assert not result.manual_review_required


class TestAnomalies:
    def test_cycle_is_flagged_not_raised(self):
        edges = [edge(1, 2, 60), edge(2, 3, 50), edge(3, 2, 50)]
        result = resolve_ownership_graph(1, edges, NOW)
        assert result.cycle_detected
        assert result.manual_review_required
        assert any(a.kind == "cycle" for a in result.anomalies)
        # Non-cyclic contributions are still reported
        assert result.effective_percentage(2) == Decimal("60")
        assert result.effective_percentage(3) == Decimal("30")

    def test_self_ownership_is_a_cycle(self):
        result = resolve_ownership_graph(1, [edge(1, 1, 10)], NOW)
        assert result.cycle_detected
        assert result.ancestors == []

    def test_max_depth_exceeded(self):
        edges = [edge(i, i + 1, 100) for i in range(1, 8)]
        result = resolve_ownership_graph(1, edges, NOW, max_depth=3)
        assert result.max_depth_exceeded
        assert [a.entity_id for a in result.ancestors] == [2, 3, 4]
        anomaly = next(a for a in result.anomalies if a.kind == "max_depth")
        assert anomaly.max_depth == 3

    def test_chain_at_max_depth_is_clean(self):
        edges = [edge(i, i + 1, 100) for i in range(1, 4)]
        result = resolve_ownership_graph(1, edges, NOW, max_depth=3)
        assert not result.max_depth_exceeded


class TestStructureFlags:
    def test_complex_structure_threshold(self):
        assert resolve_ownership_graph(1, [edge(1, 2, 25)], NOW).complex_structure
        assert not resolve_ownership_graph(1, [edge(1, 2, 20)], NOW).complex_structure

    def test_control_without_majority(self):
        edges = [edge(1, 2, 40), edge(1, 3, 60), edge(1, 4, 30, RelationshipType.AFFILIATE)]
        result = resolve_ownership_graph(1, edges, NOW)
        assert result.control_without_majority == [2]


class TestBeneficialOwners:
    def test_natural_person_through_chain(self):
        edges = [edge(1, 2, 60), edge(2, 3, 50)]
        ubos = [
            Ubo(party_id=3, natural_person_id=100, ownership_percentage=Decimal("90")),
            Ubo(party_id=3, natural_person_id=101, ownership_percentage=Decimal("10")),
        ]
        result = resolve_ownership_graph(1, edges, NOW, ubos=ubos)
        owners = {o.natural_person_id: o for o in result.beneficial_owners}
        assert owners[100].effective_percentage == Decimal("27")
        assert owners[100].reportable
        assert owners[101].effective_percentage == Decimal("3")
        assert not owners[101].reportable

    def test_control_ubo_always_reportable(self):
        ubos = [Ubo(party_id=1, natural_person_id=7, ownership_percentage=Decimal("0"),
                    ownership_type=OwnershipType.CONTROL)]
        result = resolve_ownership_graph(1, [], NOW, ubos=ubos)
        assert result.beneficial_owners[0].reportable
        assert result.beneficial_owners[0].has_control

    def test_ubos_of_unreached_entities_ignored(self):
        ubos = [Ubo(party_id=99, natural_person_id=5, ownership_percentage=Decimal("100"))]
        result = resolve_ownership_graph(1, [edge(1, 2, 50)], NOW, ubos=ubos)
        assert result.beneficial_owners == []


class TestLayeredStructures:
    @staticmethod
    def layered(width, layers, pct):
        """Party 1 held by `width` entities per layer, each layer held by every entity of the next."""
        edges = [edge(1, 100 + i, pct) for i in range(width)]
        for layer in range(1, layers):
            for child in range(width):
                for parent in range(width):
                    edges.append(edge(layer * 100 + child, (layer + 1) * 100 + parent, pct))
        return edges

    def test_fully_connected_layers_resolve_quickly(self):
        edges = self.layered(width=5, layers=9, pct=20)

        started = time.perf_counter()
        result = resolve_ownership_graph(1, edges, NOW)
        elapsed = time.perf_counter() - started

        assert elapsed < 1.0
        top = next(a for a in result.ancestors if a.entity_id == 900)
        # 5^8 distinct paths of 20%^9 each
        assert top.path_count == 5 ** 8
        assert top.effective_percentage == Decimal("20")
        assert top.min_depth == 9
        assert not result.manual_review_required

    def test_wide_structure_past_depth_limit_is_bounded(self):
        edges = self.layered(width=8, layers=14, pct=12.5)

        started = time.perf_counter()
        result = resolve_ownership_graph(1, edges, NOW, max_depth=10)
        elapsed = time.perf_counter() - started

        assert elapsed < 2.0
        assert result.max_depth_exceeded
        # One anomaly per edge leaving the last reachable layer
        assert len([a for a in result.anomalies if a.kind == "max_depth"]) == 8 * 8
        assert max(a.min_depth for a in result.ancestors) == 10

    def test_paths_of_different_lengths_are_summed(self):
        # 3 holds 2 directly and through 4
        edges = [edge(1, 2, 50), edge(2, 3, 40), edge(2, 4, 50), edge(4, 3, 20)]
        result = resolve_ownership_graph(1, edges, NOW)
        ancestor = next(a for a in result.ancestors if a.entity_id == 3)
        # 50% x 40% + 50% x 50% x 20%
        assert ancestor.effective_percentage == Decimal("25")
        assert ancestor.path_count == 2
        assert ancestor.min_depth == 2
