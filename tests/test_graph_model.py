"""Graph model: Step / Edge / FlowGraph parsing, serialisation and accessors.

Covers:
  - lenient from_document() (malformed records, missing connections)
  - to_document() preserving unknown keys and trimming empty slots
  - edge accessors (inbound/outbound/has/add/remove/replace)
  - atomic rename_steps() including swaps and index-only renames
"""

from __future__ import annotations

import copy

from workflow_doctor.graph.model import Edge, FlowGraph, Step


def _node(name, kind="n8n-nodes-base.set", x=0, y=0, **extra):
    return {
        "id": f"id-{name}",
        "name": name,
        "type": kind,
        "typeVersion": 1,
        "position": [x, y],
        "parameters": {},
        **extra,
    }


def _conn(*targets, port="main"):
    return {port: [[{"node": t, "type": port, "index": 0} for t in targets]]}


def _doc():
    return {
        "name": "Demo",
        "nodes": [
            _node("Trigger", "n8n-nodes-base.manualTrigger"),
            _node("A", webhookId="abc"),
            _node("B"),
        ],
        "connections": {"Trigger": _conn("A"), "A": _conn("B")},
        "active": False,
        "settings": {"executionOrder": "v1"},
    }


# ---------------------------------------------------------------------------
# Parsing / serialisation
# ---------------------------------------------------------------------------


class TestFromDocument:
    def test_steps_and_edges_parsed_in_order(self):
        graph = FlowGraph.from_document(_doc())
        assert graph.names() == ["Trigger", "A", "B"]
        assert [e.key() for e in graph.edges()] == [
            ("Trigger", "main", 0, "A", 0),
            ("A", "main", 0, "B", 0),
        ]
        assert graph.name == "Demo"
        assert graph.malformed == []
        assert graph.connections_missing is False

    def test_input_document_not_mutated(self):
        doc = _doc()
        snapshot = copy.deepcopy(doc)
        graph = FlowGraph.from_document(doc)
        graph.steps[0].parameters["x"] = 1
        graph.add_edge(Edge("B", "main", 0, "Trigger", 0))
        assert doc == snapshot

    def test_malformed_records_are_skipped_and_described(self):
        doc = _doc()
        doc["connections"]["B"] = {"main": [[{"index": 0}, "junk"]]}
        graph = FlowGraph.from_document(doc)
        assert len(graph.malformed) == 2
        assert graph.edge_count() == 2

    def test_negative_index_is_malformed(self):
        doc = _doc()
        doc["connections"]["B"] = {"main": [[{"node": "A", "type": "main", "index": -1}]]}
        graph = FlowGraph.from_document(doc)
        assert len(graph.malformed) == 1

    def test_missing_connections_flagged(self):
        doc = _doc()
        del doc["connections"]
        graph = FlowGraph.from_document(doc)
        assert graph.connections_missing is True
        assert graph.malformed == []
        assert "connections" not in graph.to_document()

    def test_non_object_connections_flagged_as_malformed(self):
        doc = _doc()
        doc["connections"] = ["nope"]
        graph = FlowGraph.from_document(doc)
        assert graph.connections_missing is True
        assert len(graph.malformed) == 1

    def test_malformed_position_kept_in_extra(self):
        doc = _doc()
        doc["nodes"][1]["position"] = [10]
        step = FlowGraph.from_document(doc).steps[1]
        assert step.position is None
        assert step.has_malformed_position
        assert step.to_dict()["position"] == [10]

    def test_missing_position_is_not_malformed(self):
        doc = _doc()
        del doc["nodes"][1]["position"]
        step = FlowGraph.from_document(doc).steps[1]
        assert step.position is None
        assert not step.has_malformed_position


class TestToDocument:
    def test_round_trip_preserves_unknown_keys(self):
        doc = _doc()
        out = FlowGraph.from_document(doc).to_document()
        assert out == doc

    def test_trailing_empty_slots_and_groups_trimmed(self):
        graph = FlowGraph.from_document(_doc())
        graph.add_edge(Edge("B", "main", 2, "A", 0))
        graph.remove_edges(lambda e: e.source == "B")
        graph.remove_edges(lambda e: e.source == "A")
        connections = graph.to_document()["connections"]
        assert "A" not in connections
        assert "B" not in connections
        assert connections["Trigger"] == {"main": [[{"node": "A", "type": "main", "index": 0}]]}

    def test_inner_empty_slot_kept(self):
        graph = FlowGraph.from_document(_doc())
        graph.add_edge(Edge("A", "main", 2, "Trigger", 0))
        slots = graph.to_document()["connections"]["A"]["main"]
        assert len(slots) == 3
        assert slots[1] == []


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


class TestEdgeAccessors:
    def test_inbound_and_outbound(self):
        graph = FlowGraph.from_document(_doc())
        assert [e.source for e in graph.inbound("A")] == ["Trigger"]
        assert [e.target for e in graph.outbound("A")] == ["B"]
        assert graph.outbound("A", "ai_tool") == []

    def test_has_edge(self):
        graph = FlowGraph.from_document(_doc())
        assert graph.has_edge(Edge("A", "main", 0, "B", 0))
        assert not graph.has_edge(Edge("A", "main", 1, "B", 0))
        assert not graph.has_edge(Edge("B", "main", 0, "A", 0))

    def test_add_edge_grows_slots(self):
        graph = FlowGraph()
        graph.add_edge(Edge("X", "main", 2, "Y", 0))
        assert graph.adjacency["X"]["main"] == [[], [], [Edge("X", "main", 2, "Y", 0)]]

    def test_remove_edges_returns_removed(self):
        graph = FlowGraph.from_document(_doc())
        removed = graph.remove_edges(lambda e: e.target == "B")
        assert [e.key() for e in removed] == [("A", "main", 0, "B", 0)]
        assert graph.edge_count() == 1

    def test_replace_edge_in_place_keeps_order(self):
        doc = _doc()
        doc["connections"]["A"] = _conn("B", "Trigger")
        graph = FlowGraph.from_document(doc)
        old = Edge("A", "main", 0, "B", 0)
        new = Edge("A", "main", 0, "B", 1)
        assert graph.replace_edge(old, new)
        assert graph.outbound("A") == [new, Edge("A", "main", 0, "Trigger", 0)]

    def test_replace_missing_edge_returns_false(self):
        graph = FlowGraph.from_document(_doc())
        assert not graph.replace_edge(Edge("B", "main", 0, "A", 0), Edge("B", "main", 0, "A", 1))

    def test_remove_step_drops_touching_edges(self):
        graph = FlowGraph.from_document(_doc())
        assert graph.remove_step("A")
        assert graph.names() == ["Trigger", "B"]
        assert graph.edge_count() == 0
        assert not graph.remove_step("A")

    def test_clone_is_independent(self):
        graph = FlowGraph.from_document(_doc())
        clone = graph.clone()
        clone.steps[0].set_name("Other")
        clone.remove_edges(lambda e: True)
        assert graph.names()[0] == "Trigger"
        assert graph.edge_count() == 2


# ---------------------------------------------------------------------------
# Renaming
# ---------------------------------------------------------------------------


class TestRenameSteps:
    def test_rename_rewrites_both_edge_ends(self):
        graph = FlowGraph.from_document(_doc())
        graph.rename_steps({"A": "Middle"})
        assert graph.names() == ["Trigger", "Middle", "B"]
        assert [e.key() for e in graph.edges()] == [
            ("Trigger", "main", 0, "Middle", 0),
            ("Middle", "main", 0, "B", 0),
        ]
        assert "A" not in graph.adjacency

    def test_swap_is_atomic(self):
        graph = FlowGraph.from_document(_doc())
        graph.rename_steps({"A": "B", "B": "A"})
        assert graph.names() == ["Trigger", "B", "A"]
        # The step formerly called A (now B) still feeds the former B (now A).
        assert graph.outbound("B") == [Edge("B", "main", 0, "A", 0)]
        assert graph.inbound("B") == [Edge("Trigger", "main", 0, "B", 0)]

    def test_by_index_does_not_move_edges(self):
        doc = _doc()
        doc["nodes"].append(_node("A"))
        graph = FlowGraph.from_document(doc)
        graph.rename_steps({}, by_index={3: "A 2"})
        assert graph.names() == ["Trigger", "A", "B", "A 2"]
        assert graph.inbound("A 2") == []
        assert len(graph.inbound("A")) == 1

    def test_edge_count_unchanged(self):
        graph = FlowGraph.from_document(_doc())
        before = graph.edge_count()
        graph.rename_steps({"Trigger": "Start", "B": "End"})
        assert graph.edge_count() == before


def test_step_from_dict_keeps_non_string_name_in_extra():
    step = Step.from_dict({"name": 42, "type": "n8n-nodes-base.set", "parameters": {}})
    assert step.name is None
    assert step.to_dict()["name"] == 42
    step.set_name("Fixed")
    assert step.to_dict()["name"] == "Fixed"
