"""Deterministic repair pipeline for flow graphs.

repair_graph() clones the graph and runs a fixed sequence of passes. Later
passes assume invariants restored by earlier ones, so the order matters:

   0. normalize schema        — connections object, kind prefixes, default
                                positions/parameters, placeholder credentials,
                                malformed/dangling/duplicate edges, auto-chain
   1. canonicalize deprecated kinds
   2. strip misused tool edges
   3. promote isolated service steps to their tool equivalent
   4. strip embedded model identifiers
   5. reverse backwards tool edges
   6. recompute auxiliary positions
   7. repair step names
   8. normalize tool edge target indices
   9. prune over-fanout
  10. reconnect orphans

Every pass is idempotent and self-skipping: it returns the list of fixes it
applied (empty when its precondition did not hold). Passes never raise on
well-formed input. A second run of the whole pipeline yields no fixes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from workflow_doctor.graph.connectivity import orphans
from workflow_doctor.graph.model import Edge, FlowGraph, Step
from workflow_doctor.graph.naming import is_generic_name, suggest_name, uniquify
from workflow_doctor.graph.ports import (
    AGENT,
    AGENT_INFRA_PORTS,
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
)
from workflow_doctor.graph.validator import ensure_well_formed
from workflow_doctor.knowledge.catalog import CatalogLookup

logger = logging.getLogger("workflow_doctor.graph.repair")

_DEFAULT_PACKAGE = "n8n-nodes-base."

DEPRECATED_KINDS: dict[str, str] = {
    "@n8n/n8n-nodes-langchain.openAi": "@n8n/n8n-nodes-langchain.lmChatOpenAi",
    "@n8n/n8n-nodes-langchain.chatOpenAi": "@n8n/n8n-nodes-langchain.lmChatOpenAi",
}

# Substrings of model identifiers that must not be baked into graph data.
MODEL_DENY_LIST: tuple[str, ...] = (
    "gpt-4", "gpt-3.5", "gpt-4-turbo", "gpt-4o",
    "claude-3", "claude-2", "claude-instant", "claude-3-5-sonnet",
    "claude-3-opus", "claude-3-sonnet", "claude-3-haiku",
    "gemini", "palm", "llama", "mistral", "mixtral",
)

# Auxiliary layout offsets relative to the owning agent (pixels)
_AUX_X: int = 200
_AUX_Y: int = 300
_AUX_ROW: int = 150


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class RepairResult:
    """Outcome of one pipeline run.

    graph:   The repaired clone (the input graph is untouched).
    changed: True when any pass modified the graph.
    fixes:   One human-readable line per applied change, in pass order.
    """

    graph: FlowGraph
    changed: bool = False
    fixes: list[str] = field(default_factory=list)

    @property
    def document(self) -> dict[str, Any]:
        return self.graph.to_document()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _role(step: Step | None, policy: PortPolicy) -> str | None:
    if step is None:
        return None
    return policy.role(step.kind or "")


def _agents(graph: FlowGraph, policy: PortPolicy) -> list[Step]:
    return [s for s in graph.steps if s.name and policy.is_agent(s.kind or "")]


def _rename_step(graph: FlowGraph, index: int, new_name: str) -> None:
    """Rename one step; edges follow it only if it is the first holder of its name."""
    step = graph.steps[index]
    old = step.name
    if old is None:
        graph.rename_steps({}, by_index={index: new_name})
        return
    holders = [i for i, s in enumerate(graph.steps) if s.name == old]
    if holders[0] == index:
        graph.rename_steps({old: new_name}, by_index={i: old for i in holders[1:]})
    else:
        graph.rename_steps({}, by_index={index: new_name})


def _placeholder_credentials(step: Step, catalog: CatalogLookup) -> dict[str, Any] | None:
    entry = catalog.lookup(step.kind or "")
    if entry is None or not entry.requires_credentials or not entry.credential_kind:
        return None
    display = entry.display_name or suggest_name(step.kind)
    return {
        entry.credential_kind: {
            "id": f"placeholder-{entry.credential_kind}",
            "name": f"{display} account",
        }
    }


def _ensure_credentials(step: Step, catalog: CatalogLookup, label: str | None = None) -> list[str]:
    """Attach placeholder credentials when the step's kind needs some and it has none.

    Called by every pass that sets or changes a step's kind.
    """
    if step.credentials or not step.kind:
        return []
    creds = _placeholder_credentials(step, catalog)
    if not creds:
        return []
    step.credentials = creds
    return [f'Added placeholder credentials to "{label or step.name}" ({", ".join(creds)})']


def _aux_owner_map(graph: FlowGraph, policy: PortPolicy) -> dict[str, list[str]]:
    """agent name -> auxiliary step names it owns (first agent fed wins).

    The list is ordered models, then memories, then tools, each in inbound
    edge order.
    """
    claimed: set[str] = set()
    owned: dict[str, list[str]] = {}
    for agent in _agents(graph, policy):
        groups: dict[str, list[str]] = {MODEL: [], MEMORY_ROLE: [], TOOL_ROLE: []}
        for port_kind, role in ((LANGUAGE_MODEL, MODEL), (MEMORY, MEMORY_ROLE), (TOOL, TOOL_ROLE)):
            for edge in graph.inbound(agent.name, port_kind):
                if edge.source in claimed:
                    continue
                if _role(graph.get_step(edge.source), policy) != role:
                    continue
                claimed.add(edge.source)
                groups[role].append(edge.source)
        owned[agent.name] = groups[MODEL] + groups[MEMORY_ROLE] + groups[TOOL_ROLE]
    return owned


def _layout_agent(graph: FlowGraph, agent: Step, aux_names: list[str], policy: PortPolicy) -> int:
    """Place *aux_names* around *agent*; return how many steps moved."""
    if agent.position is None:
        return 0
    ax, ay = agent.position
    by_role: dict[str, list[Step]] = {MODEL: [], MEMORY_ROLE: [], TOOL_ROLE: []}
    for name in aux_names:
        step = graph.get_step(name)
        role = _role(step, policy)
        if step is not None and role in by_role:
            by_role[role].append(step)

    targets: list[tuple[Step, list[float]]] = []
    for i, step in enumerate(by_role[MODEL]):
        targets.append((step, [ax - _AUX_X, ay + _AUX_Y + _AUX_ROW * i]))
    for i, step in enumerate(by_role[MEMORY_ROLE]):
        targets.append((step, [ax + _AUX_X, ay + _AUX_Y + _AUX_ROW * i]))
    tools = by_role[TOOL_ROLE]
    for i, step in enumerate(tools):
        targets.append((step, [ax + (i - len(tools) // 2) * _AUX_X, ay + _AUX_Y]))

    moved = 0
    for step, (x, y) in targets:
        if step.position != [x, y]:
            step.set_position(x, y)
            moved += 1
    return moved


# ---------------------------------------------------------------------------
# Pass 0: normalize schema
# ---------------------------------------------------------------------------


def normalize_schema(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    fixes: list[str] = []

    if graph.connections_missing:
        graph.connections_missing = False
        fixes.append("Added missing connections object")
    if graph.malformed:
        fixes.append(f"Removed {len(graph.malformed)} malformed connection record(s)")
        graph.malformed = []

    for i, step in enumerate(graph.steps):
        label = step.name or f"node at index {i}"
        if step.kind and "." not in step.kind:
            old = step.kind
            step.kind = _DEFAULT_PACKAGE + old
            fixes.append(f'Prefixed type of "{label}": "{old}" -> "{step.kind}"')
        if step.position is None:
            step.set_position(100 + 200 * i, 250)
            fixes.append(f'Set default position for "{label}"')
        if step.parameters is None:
            step.parameters = {}
            fixes.append(f'Added empty parameters to "{label}"')
        fixes.extend(_ensure_credentials(step, policy.catalog, label))

    known = set(graph.names())
    for edge in graph.remove_edges(lambda e: e.source not in known or e.target not in known):
        missing = edge.source if edge.source not in known else edge.target
        fixes.append(
            f'Removed connection "{edge.source}" -> "{edge.target}": unknown node "{missing}"'
        )
    for source in [s for s in graph.adjacency if s not in known]:
        del graph.adjacency[source]

    seen: set[tuple] = set()

    def _is_duplicate(edge: Edge) -> bool:
        key = edge.key()
        if key in seen:
            return True
        seen.add(key)
        return False

    for edge in graph.remove_edges(_is_duplicate):
        fixes.append(f'Removed duplicate connection "{edge.source}" -> "{edge.target}"')

    fixes.extend(_auto_chain(graph, policy))
    return fixes


def _auto_chain(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    """Chain trigger + main-chain steps when the graph has no wiring at all."""
    if graph.edge_count() or _agents(graph, policy):
        return []
    counts: dict[str, int] = {}
    for name in graph.names():
        counts[name] = counts.get(name, 0) + 1

    trigger: str | None = None
    chain: list[str] = []
    for step in graph.steps:
        if not step.name or counts[step.name] > 1:
            continue
        role = policy.role(step.kind or "")
        if role == TRIGGER:
            trigger = trigger or step.name
        elif role not in (DECORATIVE, MODEL, MEMORY_ROLE, TOOL_ROLE):
            chain.append(step.name)
    ordered = ([trigger] if trigger else []) + chain
    if len(ordered) < 2:
        return []
    for source, target in zip(ordered, ordered[1:]):
        graph.add_edge(Edge(source, MAIN, 0, target, 0))
    return [f"Connected {len(ordered)} unconnected nodes sequentially: {' -> '.join(ordered)}"]


# ---------------------------------------------------------------------------
# Pass 1: canonicalize deprecated kinds
# ---------------------------------------------------------------------------


def canonicalize_deprecated(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    fixes: list[str] = []
    for i, step in enumerate(graph.steps):
        replacement = DEPRECATED_KINDS.get(step.kind or "")
        if replacement is None:
            continue
        old_kind, old_name = step.kind, step.name
        step.kind = replacement
        taken = {s.name for j, s in enumerate(graph.steps) if j != i and s.name}
        new_name = uniquify(suggest_name(replacement, policy.catalog), taken)
        if new_name != old_name:
            _rename_step(graph, i, new_name)
        fixes.append(
            f'Replaced deprecated type "{old_kind}" with "{replacement}" (name: "{new_name}")'
        )
        fixes.extend(_ensure_credentials(graph.steps[i], policy.catalog))
    return fixes


# ---------------------------------------------------------------------------
# Pass 2: strip misused tool edges
# ---------------------------------------------------------------------------


def strip_misused_tool_edges(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    def _misused(edge: Edge) -> bool:
        if edge.port_kind != TOOL:
            return False
        source = graph.get_step(edge.source)
        if source is None or policy.is_tool_capable(source.kind or ""):
            return False
        # agent -> tool edges are reversed by pass 5, not dropped
        target = graph.get_step(edge.target)
        if policy.is_agent(source.kind or "") and target is not None and policy.is_tool_capable(target.kind or ""):
            return False
        return True

    return [
        f'Removed ai_tool connection "{e.source}" -> "{e.target}": '
        f'"{e.source}" is not tool-capable'
        for e in graph.remove_edges(_misused)
    ]


# ---------------------------------------------------------------------------
# Pass 3: promote isolated service steps
# ---------------------------------------------------------------------------


def promote_tool_equivalents(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    if not _agents(graph, policy):
        return []
    fixes: list[str] = []
    for step in graph.steps:
        if not step.name or not step.kind:
            continue
        equivalent = policy.tool_equivalent(step.kind)
        if equivalent is None:
            continue
        wiring = graph.outbound(step.name) + graph.inbound(step.name)
        if any(e.port_kind not in AGENT_INFRA_PORTS for e in wiring):
            continue
        old = step.kind
        step.kind = equivalent
        fixes.append(f'Converted "{step.name}" from "{old}" to tool "{equivalent}"')
        fixes.extend(_ensure_credentials(step, policy.catalog))
    return fixes


# ---------------------------------------------------------------------------
# Pass 4: strip embedded model identifiers
# ---------------------------------------------------------------------------


def _model_literal(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("value")
    if not isinstance(value, str):
        return None
    lowered = value.lower()
    return value if any(token in lowered for token in MODEL_DENY_LIST) else None


def strip_model_literals(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    fixes: list[str] = []
    for step in graph.steps:
        if policy.role(step.kind or "") != MODEL or not step.parameters:
            continue
        removed = False
        for key in list(step.parameters):
            if "model" not in key.lower():
                continue
            literal = _model_literal(step.parameters[key])
            if literal is None:
                continue
            del step.parameters[key]
            removed = True
            fixes.append(f'Removed hard-coded model "{literal}" ({key}) from "{step.name}"')
        if removed:
            step.parameters.setdefault("options", {})
    return fixes


# ---------------------------------------------------------------------------
# Pass 5: reverse backwards tool edges
# ---------------------------------------------------------------------------


def reverse_tool_edges(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    def _backwards(edge: Edge) -> bool:
        if edge.port_kind != TOOL:
            return False
        source = graph.get_step(edge.source)
        target = graph.get_step(edge.target)
        return (
            source is not None
            and target is not None
            and policy.is_agent(source.kind or "")
            and policy.is_tool_capable(target.kind or "")
        )

    fixes: list[str] = []
    for edge in graph.remove_edges(_backwards):
        canonical = Edge(edge.target, TOOL, 0, edge.source, 0)
        if not graph.has_edge(canonical):
            graph.add_edge(canonical)
        fixes.append(
            f'Reversed ai_tool connection "{edge.source}" -> "{edge.target}" '
            f'to "{edge.target}" -> "{edge.source}"'
        )
    return fixes


# ---------------------------------------------------------------------------
# Pass 6: recompute auxiliary positions
# ---------------------------------------------------------------------------


def layout_auxiliaries(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    fixes: list[str] = []
    owners = _aux_owner_map(graph, policy)
    for agent in _agents(graph, policy):
        moved = _layout_agent(graph, agent, owners.get(agent.name, []), policy)
        if moved:
            fixes.append(f'Repositioned {moved} auxiliary node(s) around "{agent.name}"')
    return fixes


# ---------------------------------------------------------------------------
# Pass 7: repair names
# ---------------------------------------------------------------------------


def repair_names(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    first_holder: dict[str, int] = {}
    to_rename: list[int] = []
    for i, step in enumerate(graph.steps):
        name = step.name
        if name is None or name in first_holder:
            to_rename.append(i)
            continue
        first_holder[name] = i
        if not name.strip() or is_generic_name(name):
            to_rename.append(i)
    if not to_rename:
        return []

    renaming = set(to_rename)
    taken = {s.name for i, s in enumerate(graph.steps) if i not in renaming and s.name}
    mapping: dict[str, str] = {}
    by_index: dict[int, str] = {}
    fixes: list[str] = []
    for i in to_rename:
        step = graph.steps[i]
        base = suggest_name(step.kind, policy.catalog)
        if is_generic_name(base):
            base = "Step"
        new_name = uniquify(base, taken)
        taken.add(new_name)
        old = step.name
        # "" is a real name for edge bookkeeping: its edges move with the first holder
        if old is not None and first_holder.get(old) == i:
            mapping[old] = new_name
        by_index[i] = new_name
        if old:
            fixes.append(f'Renamed "{old}" to "{new_name}"')
        else:
            fixes.append(f'Named unnamed node at index {i} "{new_name}"')

    graph.rename_steps(mapping, by_index=by_index)
    return fixes


# ---------------------------------------------------------------------------
# Pass 8: normalize tool edge indices
# ---------------------------------------------------------------------------


def normalize_tool_indices(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    fixes: list[str] = []
    for edge in [e for e in graph.edges() if e.port_kind == TOOL and e.target_index != 0]:
        fixed = Edge(edge.source, TOOL, edge.source_index, edge.target, 0)
        if graph.has_edge(fixed):
            graph.remove_edges(lambda e, old=edge: e == old)
        else:
            graph.replace_edge(edge, fixed)
        fixes.append(
            f'Set target index of ai_tool connection "{edge.source}" -> "{edge.target}" '
            f"from {edge.target_index} to 0"
        )
    return fixes


# ---------------------------------------------------------------------------
# Pass 9: prune over-fanout
# ---------------------------------------------------------------------------


def prune_fanout(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    fixes: list[str] = []
    for step in graph.steps:
        if not step.name or policy.is_router(step.kind or ""):
            continue
        slots = graph.adjacency.get(step.name, {}).get(MAIN, [])
        for slot_index, slot in enumerate(slots):
            if len(slot) <= 1:
                continue
            kept, dropped = slot[0], slot[1:]
            slots[slot_index] = [kept]
            for edge in dropped:
                fixes.append(
                    f'Removed extra connection "{edge.source}" -> "{edge.target}" '
                    f'(main output {slot_index} already feeds "{kept.target}")'
                )
    return fixes


# ---------------------------------------------------------------------------
# Pass 10: reconnect orphans
# ---------------------------------------------------------------------------


def _chain_head(graph: FlowGraph, policy: PortPolicy, exclude: str) -> str | None:
    for step in graph.steps:
        if not step.name or step.name == exclude:
            continue
        if policy.role(step.kind or "") not in (AGENT, ROUTER, REGULAR):
            continue
        if not graph.inbound(step.name, MAIN):
            return step.name
    return None


def _splice_source(graph: FlowGraph, policy: PortPolicy, exclude: str) -> Step | None:
    agents = [a for a in _agents(graph, policy) if a.name != exclude]
    if agents:
        return agents[0]
    for step in graph.steps:
        if not step.name or step.name == exclude:
            continue
        kind = step.kind or ""
        if policy.is_trigger(kind) or policy.is_decorative(kind):
            continue
        if policy.can_emit(kind, MAIN):
            return step
    return None


def reconnect_orphans(graph: FlowGraph, policy: PortPolicy) -> list[str]:
    # pass 9 may have cut a service step's last main edge, leaving only agent wiring
    fixes = promote_tool_equivalents(graph, policy)
    rewired_agents: set[str] = {a.name for a in _agents(graph, policy)} if fixes else set()
    for name in orphans(graph):
        if name not in orphans(graph):
            continue
        step = graph.get_step(name)
        role = _role(step, policy)
        if role in (AGENT, DECORATIVE):
            continue

        if role == TOOL_ROLE:
            agents = _agents(graph, policy)
            if not agents:
                continue
            graph.add_edge(Edge(name, TOOL, 0, agents[0].name, 0))
            rewired_agents.add(agents[0].name)
            fixes.append(f'Connected orphan tool "{name}" to agent "{agents[0].name}"')

        elif role in (MODEL, MEMORY_ROLE):
            port_kind = LANGUAGE_MODEL if role == MODEL else MEMORY
            agent = next((a for a in _agents(graph, policy) if not graph.inbound(a.name, port_kind)), None)
            if agent is None:
                continue
            graph.add_edge(Edge(name, port_kind, 0, agent.name, 0))
            rewired_agents.add(agent.name)
            fixes.append(f'Connected orphan "{name}" to agent "{agent.name}" ({port_kind})')

        elif role == TRIGGER:
            head = _chain_head(graph, policy, exclude=name)
            if head is None:
                continue
            graph.add_edge(Edge(name, MAIN, 0, head, 0))
            fixes.append(f'Connected orphan trigger "{name}" to "{head}"')

        else:
            source = _splice_source(graph, policy, exclude=name)
            if source is None:
                continue
            _splice_after(graph, source, name, policy)
            fixes.append(f'Spliced orphan "{name}" into the main chain after "{source.name}"')

    owners = _aux_owner_map(graph, policy)
    for agent in _agents(graph, policy):
        if agent.name in rewired_agents:
            _layout_agent(graph, agent, owners.get(agent.name, []), policy)
    return fixes


def _splice_after(graph: FlowGraph, source: Step, orphan: str, policy: PortPolicy) -> None:
    """Insert *orphan* on *source*'s main output 0, taking over its targets.

    Router sources keep their existing branches; the orphan becomes one more.
    """
    if not policy.is_router(source.kind or ""):
        moved = graph.remove_edges(
            lambda e: e.source == source.name and e.port_kind == MAIN and e.source_index == 0
        )
        for edge in moved:
            graph.add_edge(Edge(orphan, MAIN, 0, edge.target, edge.target_index))
    graph.add_edge(Edge(source.name, MAIN, 0, orphan, 0))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

RepairPass = Callable[[FlowGraph, PortPolicy], list[str]]

PASSES: tuple[tuple[str, RepairPass], ...] = (
    ("normalize_schema", normalize_schema),
    ("canonicalize_deprecated", canonicalize_deprecated),
    ("strip_misused_tool_edges", strip_misused_tool_edges),
    ("promote_tool_equivalents", promote_tool_equivalents),
    ("strip_model_literals", strip_model_literals),
    ("reverse_tool_edges", reverse_tool_edges),
    ("layout_auxiliaries", layout_auxiliaries),
    ("repair_names", repair_names),
    ("normalize_tool_indices", normalize_tool_indices),
    ("prune_fanout", prune_fanout),
    ("reconnect_orphans", reconnect_orphans),
)


def repair_graph(graph: FlowGraph, policy: PortPolicy | None = None) -> RepairResult:
    """Run every pass, in order, on a clone of *graph*."""
    policy = policy or PortPolicy()
    work = graph.clone()
    fixes: list[str] = []
    for pass_name, repair_pass in PASSES:
        applied = repair_pass(work, policy)
        if applied:
            for fix in applied:
                logger.info("[%s] %s", pass_name, fix)
            fixes.extend(applied)
        else:
            logger.debug("[%s] nothing to do", pass_name)
    return RepairResult(graph=work, changed=bool(fixes), fixes=fixes)


def repair_workflow(document: Any, catalog: CatalogLookup | None = None) -> RepairResult:
    """Repair a workflow document. Raises FatalInputError on malformed input."""
    ensure_well_formed(document)
    return repair_graph(FlowGraph.from_document(document), PortPolicy(catalog))
