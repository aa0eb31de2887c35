"""Port-kind policy: which step kinds may use which port kinds.

A step's role is derived from its kind string (catalog metadata refines the
tool-equivalent lookup). The capability table then says which port kinds a
role may receive on and emit from:

  trigger         in: —                              out: main
  agent           in: main + agent infrastructure    out: main
  language_model  in: —                              out: ai_languageModel
  memory          in: —                              out: ai_memory
  tool            in: —                              out: ai_tool
  router/regular  in: main                           out: main
  decorative      in: —                              out: —

Only the four known port kinds are policy-checked; anything else
(ai_outputParser, ai_embedding, ...) passes through as opaque wiring.
"""

from __future__ import annotations

from typing import NamedTuple

from workflow_doctor.knowledge.catalog import CatalogLookup, default_catalog

# Port kinds on the wire
MAIN = "main"
TOOL = "ai_tool"
LANGUAGE_MODEL = "ai_languageModel"
MEMORY = "ai_memory"
OUTPUT_PARSER = "ai_outputParser"

KNOWN_PORT_KINDS: frozenset[str] = frozenset({MAIN, TOOL, LANGUAGE_MODEL, MEMORY})
AGENT_INFRA_PORTS: frozenset[str] = frozenset({TOOL, LANGUAGE_MODEL, MEMORY, OUTPUT_PARSER})

# Roles
TRIGGER = "trigger"
AGENT = "agent"
MODEL = "language_model"
MEMORY_ROLE = "memory"
TOOL_ROLE = "tool"
ROUTER = "router"
DECORATIVE = "decorative"
REGULAR = "regular"

AUXILIARY_ROLES: frozenset[str] = frozenset({MODEL, MEMORY_ROLE, TOOL_ROLE})


class Capability(NamedTuple):
    inbound: frozenset[str]
    outbound: frozenset[str]


_NONE: frozenset[str] = frozenset()
_MAIN_ONLY: frozenset[str] = frozenset({MAIN})

CAPABILITIES: dict[str, Capability] = {
    TRIGGER: Capability(_NONE, _MAIN_ONLY),
    AGENT: Capability(_MAIN_ONLY | AGENT_INFRA_PORTS, _MAIN_ONLY),
    MODEL: Capability(_NONE, frozenset({LANGUAGE_MODEL})),
    MEMORY_ROLE: Capability(_NONE, frozenset({MEMORY})),
    TOOL_ROLE: Capability(_NONE, frozenset({TOOL})),
    ROUTER: Capability(_MAIN_ONLY, _MAIN_ONLY),
    REGULAR: Capability(_MAIN_ONLY, _MAIN_ONLY),
    DECORATIVE: Capability(_NONE, _NONE),
}

_BASE = "n8n-nodes-base."

# Regular service kind → tool-capable variant. The catalog's own
# tool_equivalent wins when present.
TOOL_EQUIVALENTS: dict[str, str] = {
    _BASE + name: _BASE + name + "Tool"
    for name in (
        "gmail", "googleSheets", "slack", "notion", "airtable", "github",
        "googleDrive", "hubspot", "salesforce", "jira", "trello", "asana",
        "linear", "discord", "telegram", "httpRequest",
    )
}

_TOOL_KINDS: frozenset[str] = frozenset(TOOL_EQUIVALENTS.values())

_DECORATIVE_SEGMENTS = frozenset({"stickyNote", "noOp"})
_ROUTER_SEGMENTS = frozenset({"if", "switch", "textClassifier", "compareDatasets"})
_TRIGGER_MARKERS = ("trigger", "webhook", "manual", "schedule", "cron")


def kind_segment(kind: str) -> str:
    """Last dotted segment of a kind: "n8n-nodes-base.slack" -> "slack"."""
    return kind.rsplit(".", 1)[-1] if kind else ""


def classify(kind: str) -> str:
    """Derive the structural role of a step from its kind string."""
    if not kind:
        return REGULAR
    seg = kind_segment(kind)
    lowered = kind.lower()
    if seg in _DECORATIVE_SEGMENTS:
        return DECORATIVE
    if seg == "agent":
        return AGENT
    if seg.startswith("tool") or seg.endswith(("Tool", "tool")) or kind in _TOOL_KINDS:
        return TOOL_ROLE
    if "lmChat" in seg or "ChatModel" in seg:
        return MODEL
    if "memory" in lowered:
        return MEMORY_ROLE
    if any(marker in lowered for marker in _TRIGGER_MARKERS):
        return TRIGGER
    if seg in _ROUTER_SEGMENTS:
        return ROUTER
    return REGULAR


class PortPolicy:
    """Static role/capability lookups, refined by an injected catalog."""

    def __init__(self, catalog: CatalogLookup | None = None) -> None:
        self._catalog = catalog if catalog is not None else default_catalog()

    @property
    def catalog(self) -> CatalogLookup:
        return self._catalog

    def role(self, kind: str) -> str:
        return classify(kind)

    def is_agent(self, kind: str) -> bool:
        return self.role(kind) == AGENT

    def is_tool_capable(self, kind: str) -> bool:
        return self.role(kind) == TOOL_ROLE

    def is_trigger(self, kind: str) -> bool:
        return self.role(kind) == TRIGGER

    def is_router(self, kind: str) -> bool:
        return self.role(kind) == ROUTER

    def is_decorative(self, kind: str) -> bool:
        return self.role(kind) == DECORATIVE

    def is_auxiliary(self, kind: str) -> bool:
        return self.role(kind) in AUXILIARY_ROLES

    def can_emit(self, kind: str, port_kind: str) -> bool:
        """True when a step of *kind* may be the source of a *port_kind* edge.

        Unknown port kinds are not policy-checked and always pass.
        """
        if port_kind not in KNOWN_PORT_KINDS:
            return True
        return port_kind in CAPABILITIES[self.role(kind)].outbound

    def can_receive(self, kind: str, port_kind: str) -> bool:
        """True when a step of *kind* may be the target of a *port_kind* edge."""
        if port_kind not in KNOWN_PORT_KINDS:
            return True
        return port_kind in CAPABILITIES[self.role(kind)].inbound

    def tool_equivalent(self, kind: str) -> str | None:
        """Return the tool-capable variant of a regular service kind, if any."""
        if self.role(kind) != REGULAR:
            return None
        entry = self._catalog.lookup(kind)
        if entry is not None and entry.tool_equivalent:
            return entry.tool_equivalent
        return TOOL_EQUIVALENTS.get(kind)
