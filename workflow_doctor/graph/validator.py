"""Structural validator for flow-graph documents.

Public API:
  ensure_well_formed(document)                  — raises FatalInputError
  check_workflow(document_or_graph, policy)     -> CheckResult
  validate_workflow(document, autofix, catalog) -> ValidationReport

check_workflow() never raises on a well-formed document: every schema or
structural problem is accumulated as a ValidationIssue so the caller sees all
of them at once. Only input that cannot be treated as a workflow at all
(FatalInputError) short-circuits.

validate_workflow() is the full round trip: gate → check → (optionally)
repair a private clone → re-check → combined report. The caller's document
is never mutated.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from workflow_doctor.graph.errors import (
    SCHEMA,
    STRUCTURAL,
    WARNING,
    FatalInputError,
    ValidationIssue,
)
from workflow_doctor.graph.model import FlowGraph
from workflow_doctor.graph.naming import is_generic_name
from workflow_doctor.graph.ports import (
    KNOWN_PORT_KINDS,
    LANGUAGE_MODEL,
    MAIN,
    MEMORY,
    MEMORY_ROLE,
    MODEL,
    TOOL,
    PortPolicy,
)
from workflow_doctor.knowledge.catalog import CatalogLookup

logger = logging.getLogger("workflow_doctor.graph.validator")


# ---------------------------------------------------------------------------
# Fatal-input gate
# ---------------------------------------------------------------------------


def ensure_well_formed(document: Any) -> None:
    """Raise FatalInputError if *document* cannot be treated as a workflow."""
    if not isinstance(document, Mapping):
        raise FatalInputError(
            f"Workflow must be a JSON object, got {type(document).__name__}"
        )
    nodes = document.get("nodes")
    if nodes is None:
        raise FatalInputError("Workflow has no 'nodes' array")
    if not isinstance(nodes, list):
        raise FatalInputError(f"'nodes' must be an array, got {type(nodes).__name__}")
    if not nodes:
        raise FatalInputError("Workflow has no nodes")
    for i, node in enumerate(nodes):
        if not isinstance(node, Mapping):
            raise FatalInputError(f"Node at index {i} is not an object")
        params = node.get("parameters")
        if params is None:
            continue
        if not isinstance(params, Mapping):
            raise FatalInputError(
                f"Parameters of node at index {i} must be an object, "
                f"got {type(params).__name__}"
            )
        try:
            json.dumps(params)
        except (TypeError, ValueError) as exc:
            raise FatalInputError(
                f"Parameters of node at index {i} are not plain JSON: {exc}"
            ) from exc


# ---------------------------------------------------------------------------
# CheckResult
# ---------------------------------------------------------------------------


@dataclass
class CheckResult:
    """Accumulated issues of one validation pass."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [i.message for i in self.issues if i.is_error]

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if not i.is_error]

    @property
    def ok(self) -> bool:
        return not any(i.is_error for i in self.issues)

    def error(self, category: str, message: str, step: str | None = None) -> None:
        self.issues.append(ValidationIssue("error", category, message, step))

    def warn(self, message: str, step: str | None = None) -> None:
        self.issues.append(ValidationIssue("warning", WARNING, message, step))


def _label(step_name: str | None, index: int) -> str:
    return f'"{step_name}"' if step_name else f"at index {index}"


# ---------------------------------------------------------------------------
# Individual checks (run in this order by check_workflow)
# ---------------------------------------------------------------------------


def _check_step_schema(graph: FlowGraph, result: CheckResult) -> None:
    for i, step in enumerate(graph.steps):
        label = _label(step.name, i)
        if not step.name:
            result.error(SCHEMA, f"Node at index {i} is missing a name")
        if not step.kind:
            result.error(SCHEMA, f"Node {label} is missing a type", step.name)
        elif "." not in step.kind:
            result.error(
                SCHEMA,
                f'Node {label} has type "{step.kind}" without a package prefix '
                '(e.g. "n8n-nodes-base.")',
                step.name,
            )
        if step.has_malformed_position:
            result.error(
                SCHEMA,
                f"Node at index {i} has a malformed position (expected [x, y])",
                step.name,
            )
        elif step.position is None:
            result.error(SCHEMA, f"Node {label} is missing a position", step.name)
        if step.parameters is None:
            result.error(SCHEMA, f"Node {label} is missing parameters", step.name)


def _check_duplicate_names(graph: FlowGraph, result: CheckResult) -> None:
    counts = Counter(graph.names())
    for name, count in counts.items():
        if count > 1:
            result.error(STRUCTURAL, f'Duplicate node name "{name}" ({count} nodes)', name)


def _check_connections_shape(graph: FlowGraph, result: CheckResult) -> None:
    if graph.connections_missing and not graph.malformed:
        result.error(SCHEMA, "Workflow is missing a connections object")
    for message in graph.malformed:
        result.error(SCHEMA, message)


def _check_edge_references(graph: FlowGraph, result: CheckResult) -> None:
    known = set(graph.names())
    for edge in graph.edges():
        missing = [n for n in (edge.source, edge.target) if n not in known]
        if missing:
            unknown = ", ".join(f'"{n}"' for n in dict.fromkeys(missing))
            result.error(
                STRUCTURAL,
                f'Connection "{edge.source}" -> "{edge.target}" ({edge.port_kind}) '
                f"references unknown node {unknown}",
                edge.source,
            )


def _check_hanging(graph: FlowGraph, policy: PortPolicy, result: CheckResult) -> None:
    touched: set[str] = set()
    for edge in graph.edges():
        touched.add(edge.source)
        touched.add(edge.target)
    for step in graph.steps:
        if not step.name or step.name in touched:
            continue
        kind = step.kind or ""
        if policy.is_decorative(kind) or policy.is_agent(kind):
            continue
        if policy.is_trigger(kind):
            message = f'Trigger node "{step.name}" has no connections and cannot start the workflow'
        elif policy.is_auxiliary(kind):
            message = f'Node "{step.name}" is not wired to an agent'
        else:
            message = f'Node "{step.name}" is not connected to the workflow'
        result.error(STRUCTURAL, message, step.name)


def _check_duplicate_edges(graph: FlowGraph, result: CheckResult) -> None:
    seen: set[tuple] = set()
    for edge in graph.edges():
        key = edge.key()
        if key in seen:
            result.warn(
                f'Duplicate connection "{edge.source}" -> "{edge.target}" '
                f"({edge.port_kind}, output {edge.source_index})",
                edge.source,
            )
        seen.add(key)


def _check_tool_edges(graph: FlowGraph, policy: PortPolicy, result: CheckResult) -> None:
    for edge in graph.edges():
        if edge.port_kind != TOOL:
            continue
        source = graph.get_step(edge.source)
        target = graph.get_step(edge.target)
        if source is not None and not policy.is_tool_capable(source.kind or ""):
            result.error(
                STRUCTURAL,
                f'Node "{edge.source}" is not tool-capable but emits an ai_tool '
                f'connection to "{edge.target}"',
                edge.source,
            )
        if target is not None and not policy.is_agent(target.kind or ""):
            result.error(
                STRUCTURAL,
                f'ai_tool connection from "{edge.source}" targets "{edge.target}", '
                "which is not an agent",
                edge.target,
            )
        if edge.target_index != 0:
            result.error(
                STRUCTURAL,
                f'ai_tool connection "{edge.source}" -> "{edge.target}" uses target '
                f"index {edge.target_index} (must be 0)",
                edge.source,
            )


def _check_fanout(graph: FlowGraph, policy: PortPolicy, result: CheckResult) -> None:
    for step in graph.steps:
        if not step.name or policy.is_router(step.kind or ""):
            continue
        for slot_index, slot in enumerate(graph.adjacency.get(step.name, {}).get(MAIN, [])):
            targets = {(e.target, e.target_index) for e in slot}
            if len(targets) > 1:
                result.error(
                    STRUCTURAL,
                    f'Node "{step.name}" has {len(targets)} connections on main output '
                    f"{slot_index}; only router nodes may branch",
                    step.name,
                )


def _check_port_kinds(graph: FlowGraph, policy: PortPolicy, result: CheckResult) -> None:
    for edge in graph.edges():
        if edge.port_kind not in KNOWN_PORT_KINDS or edge.port_kind == TOOL:
            continue
        source = graph.get_step(edge.source)
        target = graph.get_step(edge.target)
        if source is None or target is None:
            continue
        if not policy.can_emit(source.kind or "", edge.port_kind):
            result.warn(
                f'Node "{edge.source}" ({policy.role(source.kind or "")}) should not '
                f"emit {edge.port_kind} connections",
                edge.source,
            )
        if not policy.can_receive(target.kind or "", edge.port_kind):
            result.warn(
                f'Node "{edge.target}" ({policy.role(target.kind or "")}) should not '
                f"receive {edge.port_kind} connections",
                edge.target,
            )


_REQUIRED_AGENT_INPUTS = (
    (LANGUAGE_MODEL, MODEL, "language model"),
    (MEMORY, MEMORY_ROLE, "memory"),
)


def _check_agents(graph: FlowGraph, policy: PortPolicy, result: CheckResult) -> None:
    for step in graph.steps:
        if not step.name or not policy.is_agent(step.kind or ""):
            continue
        for port_kind, role, label in _REQUIRED_AGENT_INPUTS:
            inbound = graph.inbound(step.name, port_kind)
            if not inbound:
                result.error(
                    STRUCTURAL,
                    f'AI Agent "{step.name}" is missing a {label} connection ({port_kind})',
                    step.name,
                )
                continue
            if len(inbound) > 1:
                result.error(
                    STRUCTURAL,
                    f'AI Agent "{step.name}" has {len(inbound)} {label} connections; '
                    "exactly one is required",
                    step.name,
                )
            for edge in inbound:
                source = graph.get_step(edge.source)
                if source is not None and policy.role(source.kind or "") != role:
                    result.error(
                        STRUCTURAL,
                        f'AI Agent "{step.name}" receives {port_kind} from '
                        f'"{edge.source}", which is not a {label} node',
                        step.name,
                    )
        if not graph.inbound(step.name, TOOL):
            result.warn(f'AI Agent "{step.name}" has no tools connected', step.name)


def _check_entry(graph: FlowGraph, policy: PortPolicy, result: CheckResult) -> None:
    triggers = [s.name for s in graph.steps if s.name and policy.is_trigger(s.kind or "")]
    if not triggers:
        result.warn("Workflow has no trigger node")
    elif len(triggers) > 1:
        listed = ", ".join(f'"{t}"' for t in triggers)
        result.warn(f"Workflow has {len(triggers)} trigger nodes ({listed}); expected one entry point")
    for step in graph.steps:
        if is_generic_name(step.name):
            result.warn(f'Node "{step.name}" has a generic placeholder name', step.name)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def check_workflow(
    source: Mapping[str, Any] | FlowGraph,
    policy: PortPolicy | None = None,
) -> CheckResult:
    """Run every schema and structural check against *source*.

    Raises FatalInputError when *source* is a document that fails the
    well-formedness gate.
    """
    policy = policy or PortPolicy()
    if isinstance(source, FlowGraph):
        graph = source
    else:
        ensure_well_formed(source)
        graph = FlowGraph.from_document(source)

    result = CheckResult()
    _check_step_schema(graph, result)
    _check_duplicate_names(graph, result)
    _check_connections_shape(graph, result)
    _check_edge_references(graph, result)
    _check_hanging(graph, policy, result)
    _check_duplicate_edges(graph, result)
    _check_tool_edges(graph, policy, result)
    _check_fanout(graph, policy, result)
    _check_port_kinds(graph, policy, result)
    _check_agents(graph, policy, result)
    _check_entry(graph, policy, result)
    logger.debug(
        "Checked %d steps: %d errors, %d warnings",
        len(graph.steps), len(result.errors), len(result.warnings),
    )
    return result


@dataclass
class ValidationReport:
    """Combined outcome of validate_workflow().

    valid:      True when no errors remain.
    errors:     Residual errors (after repair when autofix ran).
    warnings:   Pre- and post-repair warnings, order-preserving, deduplicated.
    fixes:      One line per change applied by the repair pipeline.
    autofixed:  True when the repair pipeline changed the graph.
    normalized: Repaired document (None when autofix was off or the input was
                rejected by the well-formedness gate).
    """

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    fixes: list[str] = field(default_factory=list)
    autofixed: bool = False
    normalized: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "fixes": list(self.fixes),
            "autofixed": self.autofixed,
        }
        if self.normalized is not None:
            out["normalized"] = self.normalized
        return out


def validate_workflow(
    document: Any,
    autofix: bool = True,
    catalog: CatalogLookup | None = None,
) -> ValidationReport:
    """Validate *document*, optionally repairing a private copy first."""
    from workflow_doctor.graph.repair import repair_graph

    try:
        ensure_well_formed(document)
    except FatalInputError as exc:
        logger.info("Rejected malformed workflow: %s", exc)
        return ValidationReport(valid=False, errors=[str(exc)])

    policy = PortPolicy(catalog)
    graph = FlowGraph.from_document(document)
    before = check_workflow(graph, policy)

    if not autofix:
        return ValidationReport(
            valid=before.ok,
            errors=before.errors,
            warnings=before.warnings,
        )

    repaired = repair_graph(graph, policy)
    after = check_workflow(repaired.graph, policy)
    warnings = list(dict.fromkeys(before.warnings + after.warnings))
    report = ValidationReport(
        valid=after.ok,
        errors=after.errors,
        warnings=warnings,
        fixes=repaired.fixes,
        autofixed=repaired.changed,
        normalized=repaired.document,
    )
    logger.info(
        "Validated workflow: valid=%s errors=%d warnings=%d fixes=%d",
        report.valid, len(report.errors), len(report.warnings), len(report.fixes),
    )
    return report
