"""Structural validator: fatal gate, every accumulated check, combined report."""

from __future__ import annotations

import copy

import pytest

from workflow_doctor.graph.errors import FatalInputError
from workflow_doctor.graph.model import FlowGraph
from workflow_doctor.graph.ports import PortPolicy
from workflow_doctor.graph.validator import (
    check_workflow,
    ensure_well_formed,
    validate_workflow,
)
from workflow_doctor.knowledge.catalog import NodeCatalog

TRIGGER = "n8n-nodes-base.manualTrigger"
SET = "n8n-nodes-base.set"
IF = "n8n-nodes-base.if"
AGENT = "@n8n/n8n-nodes-langchain.agent"
MODEL = "@n8n/n8n-nodes-langchain.lmChatOpenAi"
MEMORY = "@n8n/n8n-nodes-langchain.memoryBufferWindow"
TOOL = "@n8n/n8n-nodes-langchain.toolCalculator"

_POLICY = PortPolicy(NodeCatalog.builtin())


def _node(name, kind=SET, x=0, y=0):
    return {"name": name, "type": kind, "position": [x, y], "parameters": {}}


def _edge(target, port="main", index=0):
    return {"node": target, "type": port, "index": index}


def _doc(nodes, connections=None):
    return {"name": "Test", "nodes": nodes, "connections": connections or {}}


def _errors(doc):
    return check_workflow(doc, _POLICY).errors


def _warnings(doc):
    return check_workflow(doc, _POLICY).warnings


def _agent_doc():
    """Trigger → agent, with model and memory wired and no tools."""
    return _doc(
        [_node("Trigger", TRIGGER), _node("Agent", AGENT), _node("Model", MODEL), _node("Memory", MEMORY)],
        {
            "Trigger": {"main": [[_edge("Agent")]]},
            "Model": {"ai_languageModel": [[_edge("Agent", "ai_languageModel")]]},
            "Memory": {"ai_memory": [[_edge("Agent", "ai_memory")]]},
        },
    )


# ---------------------------------------------------------------------------
# Fatal gate
# ---------------------------------------------------------------------------


class TestEnsureWellFormed:
    @pytest.mark.parametrize("document", [
        None,
        "not a workflow",
        [],
        {},
        {"nodes": "abc"},
        {"nodes": []},
        {"nodes": ["step"]},
        {"nodes": [{"name": "A", "parameters": ["x"]}]},
        {"nodes": [{"name": "A", "parameters": {"x": object()}}]},
    ])
    def test_rejects(self, document):
        with pytest.raises(FatalInputError):
            ensure_well_formed(document)

    def test_fatal_error_is_value_error(self):
        with pytest.raises(ValueError):
            ensure_well_formed(42)

    def test_null_parameters_are_not_fatal(self):
        ensure_well_formed({"nodes": [{"name": "A", "type": SET, "parameters": None}]})

    def test_validate_short_circuits_with_single_error(self):
        report = validate_workflow({"nodes": []})
        assert report.valid is False
        assert report.errors == ["Workflow has no nodes"]
        assert report.fixes == []
        assert report.autofixed is False
        assert "normalized" not in report.to_dict()


# ---------------------------------------------------------------------------
# Schema checks
# ---------------------------------------------------------------------------


class TestSchemaChecks:
    def test_missing_name_reported_by_index(self):
        doc = _doc([_node("T", TRIGGER), {"type": SET, "position": [0, 0], "parameters": {}}])
        assert "Node at index 1 is missing a name" in _errors(doc)

    def test_missing_type(self):
        doc = _doc([{"name": "A", "position": [0, 0], "parameters": {}}])
        assert 'Node "A" is missing a type' in _errors(doc)

    def test_type_without_package_prefix(self):
        errors = _errors(_doc([_node("A", "set")]))
        assert any('type "set" without a package prefix' in e for e in errors)

    def test_malformed_position_distinct_from_missing(self):
        bad = _node("A")
        bad["position"] = ["x", 1]
        missing = _node("B")
        del missing["position"]
        errors = _errors(_doc([bad, missing]))
        assert "Node at index 0 has a malformed position (expected [x, y])" in errors
        assert 'Node "B" is missing a position' in errors

    def test_missing_parameters(self):
        node = _node("A")
        del node["parameters"]
        assert 'Node "A" is missing parameters' in _errors(_doc([node]))

    def test_missing_connections_object(self):
        doc = {"nodes": [_node("A")]}
        assert "Workflow is missing a connections object" in _errors(doc)

    def test_malformed_connection_record(self):
        doc = _doc([_node("A"), _node("B")], {"A": {"main": [[{"index": 0}]]}})
        assert any(e.startswith("Malformed connection record") for e in _errors(doc))


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------


class TestStructuralChecks:
    def test_duplicate_names(self):
        doc = _doc([_node("T", TRIGGER), _node("A"), _node("A")], {"T": {"main": [[_edge("A")]]}})
        assert 'Duplicate node name "A" (2 nodes)' in _errors(doc)

    def test_dangling_edge_names_both_ends(self):
        doc = _doc(
            [_node("T", TRIGGER), _node("A")],
            {"T": {"main": [[_edge("A")]]}, "A": {"main": [[_edge("Ghost")]]}},
        )
        assert 'Connection "A" -> "Ghost" (main) references unknown node "Ghost"' in _errors(doc)

    def test_hanging_messages_differ_by_kind(self):
        doc = _doc(
            [
                _node("T", TRIGGER),
                _node("A"),
                _node("Model", MODEL),
                _node("Note", "n8n-nodes-base.stickyNote"),
                _node("Lonely Agent", AGENT),
            ],
        )
        errors = _errors(doc)
        assert 'Trigger node "T" has no connections and cannot start the workflow' in errors
        assert 'Node "A" is not connected to the workflow' in errors
        assert 'Node "Model" is not wired to an agent' in errors
        assert not any('"Note"' in e and "connected" in e for e in errors)
        assert not any('"Lonely Agent" is not' in e for e in errors)

    def test_duplicate_edge_is_warning_only(self):
        doc = _doc([_node("T", TRIGGER), _node("A")], {"T": {"main": [[_edge("A"), _edge("A")]]}})
        result = check_workflow(doc, _POLICY)
        assert 'Duplicate connection "T" -> "A" (main, output 0)' in result.warnings
        assert not any("Duplicate connection" in e for e in result.errors)

    def test_tool_edge_from_regular_step(self):
        doc = _agent_doc()
        doc["nodes"].append(_node("Set", SET))
        doc["connections"]["Set"] = {"ai_tool": [[_edge("Agent", "ai_tool")]]}
        errors = _errors(doc)
        assert any('"Set" is not tool-capable' in e for e in errors)

    def test_tool_edge_to_non_agent_and_bad_index(self):
        doc = _doc(
            [_node("T", TRIGGER), _node("A"), _node("Calc", TOOL)],
            {"T": {"main": [[_edge("A")]]}, "Calc": {"ai_tool": [[_edge("A", "ai_tool", 1)]]}},
        )
        errors = _errors(doc)
        assert 'ai_tool connection from "Calc" targets "A", which is not an agent' in errors
        assert any("uses target index 1 (must be 0)" in e for e in errors)

    def test_fanout_error_for_regular_step(self):
        doc = _doc(
            [_node("T", TRIGGER), _node("A"), _node("B")],
            {"T": {"main": [[_edge("A"), _edge("B")]]}},
        )
        assert any('"T" has 2 connections on main output 0' in e for e in _errors(doc))

    def test_router_may_branch(self):
        doc = _doc(
            [_node("T", TRIGGER), _node("Check", IF), _node("A"), _node("B")],
            {"T": {"main": [[_edge("Check")]]}, "Check": {"main": [[_edge("A"), _edge("B")]]}},
        )
        assert _errors(doc) == []

    def test_port_kind_warning(self):
        doc = _doc(
            [_node("T", TRIGGER), _node("A"), _node("Model", MODEL)],
            {"T": {"main": [[_edge("A")]]}, "Model": {"ai_languageModel": [[_edge("A", "ai_languageModel")]]}},
        )
        warnings = _warnings(doc)
        assert 'Node "A" (regular) should not receive ai_languageModel connections' in warnings


class TestAgentCompleteness:
    def test_complete_agent_has_no_errors(self):
        result = check_workflow(_agent_doc(), _POLICY)
        assert result.errors == []
        assert 'AI Agent "Agent" has no tools connected' in result.warnings

    def test_missing_model_and_memory(self):
        doc = _doc([_node("T", TRIGGER), _node("Agent", AGENT)], {"T": {"main": [[_edge("Agent")]]}})
        errors = _errors(doc)
        assert 'AI Agent "Agent" is missing a language model connection (ai_languageModel)' in errors
        assert 'AI Agent "Agent" is missing a memory connection (ai_memory)' in errors

    def test_two_models_is_an_error(self):
        doc = _agent_doc()
        doc["nodes"].append(_node("Model 2", MODEL))
        doc["connections"]["Model 2"] = {"ai_languageModel": [[_edge("Agent", "ai_languageModel")]]}
        assert 'AI Agent "Agent" has 2 language model connections; exactly one is required' in _errors(doc)

    def test_wrong_source_kind(self):
        doc = _agent_doc()
        doc["connections"]["Memory"] = {"ai_languageModel": [[_edge("Agent", "ai_languageModel")]]}
        errors = _errors(doc)
        assert any('receives ai_languageModel from "Memory"' in e for e in errors)


class TestEntryWarnings:
    def test_no_trigger(self):
        doc = _doc([_node("A"), _node("B")], {"A": {"main": [[_edge("B")]]}})
        assert "Workflow has no trigger node" in _warnings(doc)

    def test_multiple_triggers(self):
        doc = _doc(
            [_node("T1", TRIGGER), _node("T2", "n8n-nodes-base.webhook"), _node("A")],
            {"T1": {"main": [[_edge("A")]]}, "T2": {"main": [[_edge("A")]]}},
        )
        assert any(w.startswith("Workflow has 2 trigger nodes") for w in _warnings(doc))

    def test_generic_name(self):
        doc = _doc([_node("T", TRIGGER), _node("Node1")], {"T": {"main": [[_edge("Node1")]]}})
        assert 'Node "Node1" has a generic placeholder name' in _warnings(doc)


# ---------------------------------------------------------------------------
# Combined report
# ---------------------------------------------------------------------------


class TestValidateWorkflow:
    def test_input_never_mutated(self):
        doc = _doc([_node("Node1"), _node("T", TRIGGER)])
        del doc["nodes"][0]["position"]
        snapshot = copy.deepcopy(doc)
        validate_workflow(doc)
        assert doc == snapshot

    def test_no_autofix_reports_raw_errors(self):
        doc = _doc([_node("T", TRIGGER), _node("A")])
        report = validate_workflow(doc, autofix=False)
        assert report.valid is False
        assert report.fixes == []
        assert report.autofixed is False
        assert report.normalized is None
        assert 'Node "A" is not connected to the workflow' in report.errors

    def test_autofix_resolves_and_keeps_pre_repair_warnings(self):
        doc = _doc([_node("T", TRIGGER), _node("Node1")])
        report = validate_workflow(doc)
        assert report.valid is True
        assert report.autofixed is True
        assert 'Node "Node1" has a generic placeholder name' in report.warnings
        assert report.normalized["connections"] == {
            "T": {"main": [[{"node": "Set Data", "type": "main", "index": 0}]]}
        }

    def test_to_dict_shape(self):
        report = validate_workflow(_agent_doc())
        out = report.to_dict()
        assert set(out) == {"valid", "errors", "warnings", "fixes", "autofixed", "normalized"}

    def test_accepts_graph_directly(self):
        graph = FlowGraph.from_document(_agent_doc())
        assert check_workflow(graph, _POLICY).ok
