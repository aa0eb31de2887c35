"""Port-kind policy: role classification, capability table, tool equivalents."""

from __future__ import annotations

import pytest

from workflow_doctor.graph.ports import (
    AGENT,
    DECORATIVE,
    LANGUAGE_MODEL,
    MAIN,
    MEMORY,
    MEMORY_ROLE,
    MODEL,
    REGULAR,
    ROUTER,
    TOOL,
    TOOL_ROLE,
    TRIGGER,
    PortPolicy,
    classify,
)
from workflow_doctor.knowledge.catalog import CatalogEntry, NodeCatalog


@pytest.mark.parametrize("kind, role", [
    ("n8n-nodes-base.manualTrigger", TRIGGER),
    ("n8n-nodes-base.webhook", TRIGGER),
    ("n8n-nodes-base.scheduleTrigger", TRIGGER),
    ("@n8n/n8n-nodes-langchain.chatTrigger", TRIGGER),
    ("@n8n/n8n-nodes-langchain.agent", AGENT),
    ("@n8n/n8n-nodes-langchain.lmChatOpenAi", MODEL),
    ("@n8n/n8n-nodes-langchain.lmChatAnthropic", MODEL),
    ("@n8n/n8n-nodes-langchain.memoryBufferWindow", MEMORY_ROLE),
    ("@n8n/n8n-nodes-langchain.toolCalculator", TOOL_ROLE),
    ("n8n-nodes-base.slackTool", TOOL_ROLE),
    ("n8n-nodes-base.if", ROUTER),
    ("n8n-nodes-base.switch", ROUTER),
    ("n8n-nodes-base.stickyNote", DECORATIVE),
    ("n8n-nodes-base.noOp", DECORATIVE),
    ("n8n-nodes-base.set", REGULAR),
    ("n8n-nodes-base.slack", REGULAR),
    ("n8n-nodes-base.shopify", REGULAR),
    ("", REGULAR),
])
def test_classify(kind, role):
    assert classify(kind) == role


@pytest.fixture
def policy():
    return PortPolicy(NodeCatalog.builtin())


# ---------------------------------------------------------------------------
# Capability table
# ---------------------------------------------------------------------------


class TestCapabilities:
    def test_tool_emits_only_tool_edges(self, policy):
        kind = "@n8n/n8n-nodes-langchain.toolCalculator"
        assert policy.can_emit(kind, TOOL)
        assert not policy.can_emit(kind, MAIN)
        assert not policy.can_receive(kind, MAIN)

    def test_agent_receives_infrastructure_and_main(self, policy):
        kind = "@n8n/n8n-nodes-langchain.agent"
        for port_kind in (MAIN, TOOL, LANGUAGE_MODEL, MEMORY):
            assert policy.can_receive(kind, port_kind)
        assert policy.can_emit(kind, MAIN)
        assert not policy.can_emit(kind, TOOL)

    def test_trigger_cannot_receive_main(self, policy):
        assert not policy.can_receive("n8n-nodes-base.manualTrigger", MAIN)
        assert policy.can_emit("n8n-nodes-base.manualTrigger", MAIN)

    def test_regular_step_may_not_receive_model(self, policy):
        assert not policy.can_receive("n8n-nodes-base.set", LANGUAGE_MODEL)

    def test_decorative_has_no_ports(self, policy):
        assert not policy.can_emit("n8n-nodes-base.stickyNote", MAIN)
        assert not policy.can_receive("n8n-nodes-base.stickyNote", MAIN)

    def test_unknown_port_kinds_are_not_checked(self, policy):
        assert policy.can_emit("n8n-nodes-base.set", "ai_outputParser")
        assert policy.can_receive("n8n-nodes-base.manualTrigger", "ai_embedding")

    def test_predicates(self, policy):
        assert policy.is_agent("@n8n/n8n-nodes-langchain.agent")
        assert policy.is_tool_capable("n8n-nodes-base.gmailTool")
        assert policy.is_trigger("n8n-nodes-base.webhook")
        assert policy.is_router("n8n-nodes-base.if")
        assert policy.is_decorative("n8n-nodes-base.stickyNote")
        assert policy.is_auxiliary("@n8n/n8n-nodes-langchain.memoryBufferWindow")
        assert not policy.is_auxiliary("n8n-nodes-base.set")


# ---------------------------------------------------------------------------
# Tool equivalents
# ---------------------------------------------------------------------------


class TestToolEquivalent:
    def test_builtin_table(self):
        policy = PortPolicy(NodeCatalog())
        assert policy.tool_equivalent("n8n-nodes-base.salesforce") == "n8n-nodes-base.salesforceTool"

    def test_catalog_wins_over_table(self):
        catalog = NodeCatalog([
            CatalogEntry("n8n-nodes-base.slack", "Slack", tool_equivalent="acme.slackAgentTool"),
        ])
        assert PortPolicy(catalog).tool_equivalent("n8n-nodes-base.slack") == "acme.slackAgentTool"

    def test_no_equivalent_for_plain_steps(self, policy):
        assert policy.tool_equivalent("n8n-nodes-base.set") is None

    def test_no_equivalent_for_non_regular_roles(self, policy):
        assert policy.tool_equivalent("n8n-nodes-base.slackTool") is None
        assert policy.tool_equivalent("n8n-nodes-base.manualTrigger") is None
