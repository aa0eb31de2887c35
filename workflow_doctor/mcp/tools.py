"""Workflow-doctor tool surface.

Each method wraps one engine operation and returns a ``ToolResult``
envelope. Workflow arguments may be a dict or a JSON string (fenced or with
surrounding prose); failures come back as ``ok=False`` envelopes rather than
exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from workflow_doctor.graph.builder import GraphBuilder
from workflow_doctor.graph.connectivity import summarize
from workflow_doctor.graph.errors import FatalInputError, UnknownStepError
from workflow_doctor.graph.model import FlowGraph
from workflow_doctor.graph.ports import MAIN, PortPolicy
from workflow_doctor.graph.repair import repair_workflow
from workflow_doctor.graph.validator import ensure_well_formed, validate_workflow
from workflow_doctor.knowledge.catalog import CatalogLookup, default_catalog
from workflow_doctor.parsing import extract_workflow_json

logger = logging.getLogger("workflow_doctor.mcp.tools")


@dataclass
class ToolResult:
    """Normalized envelope for every tool execution result.

    ok:        True if the tool completed without error.
    summary:   Compact, prompt-safe one-liner for an LLM reader.
    facts:     Small structured key→value extracts (counts, flags).
    data:      Full output of the operation (report, document, ...).
    error:     Present when ok=False. Dict with keys:
                 type:    Exception class name or error category.
                 message: Human-readable summary.
                 detail:  Extra context, may be empty.
    artifacts: Optional references produced by the tool (e.g. step names).
    """

    ok: bool
    summary: str
    facts: dict
    data: Any
    error: dict | None
    artifacts: dict | None


def _ok(summary: str, data: Any, artifacts: dict | None = None, **facts: Any) -> ToolResult:
    return ToolResult(ok=True, summary=summary, facts=facts, data=data, error=None, artifacts=artifacts)


def _fail(error_type: str, message: str, detail: str = "") -> ToolResult:
    return ToolResult(
        ok=False,
        summary=f"Failed: {message}",
        facts={},
        data=None,
        error={"type": error_type, "message": message, "detail": detail},
        artifacts=None,
    )


class _BadArgument(Exception):
    pass


def _coerce_workflow(workflow: Any) -> dict[str, Any]:
    """Accept a dict or a JSON string; return a dict or raise _BadArgument."""
    if isinstance(workflow, dict):
        return workflow
    if isinstance(workflow, str):
        parsed = extract_workflow_json(workflow)
        if not parsed.ok:
            raise _BadArgument(f"workflow is not valid JSON: {parsed.error}")
        return parsed.workflow
    raise _BadArgument(f"workflow must be an object or JSON string, got {type(workflow).__name__}")


class WorkflowDoctorTools:
    """Workflow validation, repair and editing tools returning ``ToolResult`` envelopes."""

    def __init__(self, catalog: CatalogLookup | None = None, autofix_default: bool = True) -> None:
        self._catalog = catalog if catalog is not None else default_catalog()
        self._autofix_default = autofix_default

    # ==================================================================
    # VALIDATION / REPAIR
    # ==================================================================

    async def validate_workflow(self, workflow: Any, autofix: bool | None = None) -> ToolResult:
        try:
            document = _coerce_workflow(workflow)
        except _BadArgument as exc:
            return _fail("InvalidArgument", str(exc))
        if autofix is None:
            autofix = self._autofix_default
        report = validate_workflow(document, autofix=autofix, catalog=self._catalog)
        status = "valid" if report.valid else f"invalid ({len(report.errors)} errors)"
        summary = f"Workflow is {status}"
        if report.fixes:
            summary += f"; applied {len(report.fixes)} fixes"
        return _ok(
            summary,
            report.to_dict(),
            valid=report.valid,
            error_count=len(report.errors),
            warning_count=len(report.warnings),
            fix_count=len(report.fixes),
        )

    async def repair_workflow(self, workflow: Any) -> ToolResult:
        try:
            document = _coerce_workflow(workflow)
            result = repair_workflow(document, catalog=self._catalog)
        except _BadArgument as exc:
            return _fail("InvalidArgument", str(exc))
        except FatalInputError as exc:
            return _fail("FatalInputError", str(exc))
        summary = f"Applied {len(result.fixes)} fixes" if result.changed else "No repairs needed"
        return _ok(
            summary,
            {"workflow": result.document, "fixes": result.fixes, "changed": result.changed},
            fix_count=len(result.fixes),
        )

    async def analyze_workflow(self, workflow: Any) -> ToolResult:
        try:
            document = _coerce_workflow(workflow)
            ensure_well_formed(document)
        except _BadArgument as exc:
            return _fail("InvalidArgument", str(exc))
        except FatalInputError as exc:
            return _fail("FatalInputError", str(exc))
        summary = summarize(FlowGraph.from_document(document), PortPolicy(self._catalog))
        return _ok(
            f"{summary.step_count} steps, depth {summary.depth}, complexity {summary.complexity}",
            summary.to_dict(),
            step_count=summary.step_count,
            orphan_count=len(summary.orphans),
        )

    async def extract_workflow_json(self, text: str) -> ToolResult:
        result = extract_workflow_json(text)
        if not result.ok:
            return _fail("ParseError", result.error or "No workflow JSON found")
        summary = "Extracted workflow JSON"
        if result.recovered:
            summary += " (recovered from malformed input)"
        return _ok(summary, result.workflow, recovered=result.recovered)

    # ==================================================================
    # EDITING
    # ==================================================================

    def _builder(self, workflow: Any) -> GraphBuilder:
        if workflow is None:
            return GraphBuilder(catalog=self._catalog)
        document = _coerce_workflow(workflow)
        if not isinstance(document.get("nodes", []), list):
            raise _BadArgument("workflow 'nodes' must be an array")
        return GraphBuilder.from_document(document, catalog=self._catalog)

    async def add_step(
        self,
        kind: str,
        workflow: Any = None,
        parameters: dict | None = None,
        name: str | None = None,
    ) -> ToolResult:
        try:
            builder = self._builder(workflow)
            step_name = builder.add_step(kind, parameters, name=name)
        except (_BadArgument, ValueError) as exc:
            return _fail("InvalidArgument", str(exc))
        return _ok(
            f'Added step "{step_name}" ({kind})',
            builder.to_document(),
            artifacts={"step_names": [step_name]},
            step_name=step_name,
        )

    async def connect_steps(
        self,
        workflow: Any,
        source: str,
        target: str,
        port_kind: str = MAIN,
        source_index: int = 0,
        target_index: int = 0,
    ) -> ToolResult:
        try:
            builder = self._builder(workflow)
            builder.connect(source, target, port_kind, source_index, target_index)
        except UnknownStepError as exc:
            return _fail("UnknownStepError", str(exc))
        except (_BadArgument, ValueError) as exc:
            return _fail("InvalidArgument", str(exc))
        return _ok(f'Connected "{source}" -> "{target}" ({port_kind})', builder.to_document())

    async def delete_step(self, workflow: Any, name: str) -> ToolResult:
        try:
            builder = self._builder(workflow)
            builder.remove_step(name)
        except UnknownStepError as exc:
            return _fail("UnknownStepError", str(exc))
        except _BadArgument as exc:
            return _fail("InvalidArgument", str(exc))
        return _ok(f'Deleted step "{name}" and its connections', builder.to_document())

