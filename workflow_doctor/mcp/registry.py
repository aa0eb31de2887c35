"""Registry wiring for the workflow-doctor MCP tools.

``TOOL_CATALOG`` is the single source of truth for tool metadata (name,
description, JSON schema). The MCP server consumes it directly.

Adding a tool: append to ``TOOL_CATALOG`` and add the method to
``WorkflowDoctorTools``. Two files, nothing else.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ToolDef:
    """Definition of a callable tool.

    parameters follows JSON Schema format:
        {"type": "object", "properties": {...}, "required": [...]}
    """

    name: str
    description: str
    parameters: dict[str, Any]


def _td(name: str, desc: str, props: dict[str, Any] | None = None, req: list[str] | None = None) -> ToolDef:
    return ToolDef(
        name=name,
        description=desc,
        parameters={"type": "object", "properties": props or {}, "required": req or []},
    )


def _str(description: str) -> dict:
    return {"type": "string", "description": description}


def _bool(description: str) -> dict:
    return {"type": "boolean", "description": description}


def _int(description: str) -> dict:
    return {"type": "integer", "description": description, "minimum": 0}


def _workflow(description: str = "Workflow document (object or JSON string)") -> dict:
    return {"type": ["object", "string"], "description": description}


# ==================================================================
# TOOL_CATALOG: single source of truth for all tools.
# Each entry: (method_name_on_WorkflowDoctorTools, ToolDef)
# ==================================================================

TOOL_CATALOG: list[tuple[str, ToolDef]] = [
    # ── VALIDATION / REPAIR ───────────────────────────────────────
    ("validate_workflow", _td(
        "validate_workflow",
        "Validate a workflow and (by default) auto-repair it. Returns valid, errors, "
        "warnings, fixes, autofixed and the normalized workflow.",
        {"workflow": _workflow(), "autofix": _bool("Run the repair pipeline (default: true)")},
        ["workflow"],
    )),
    ("repair_workflow", _td(
        "repair_workflow",
        "Run the deterministic repair pipeline and return the repaired workflow with the list of fixes",
        {"workflow": _workflow()},
        ["workflow"],
    )),
    ("analyze_workflow", _td(
        "analyze_workflow",
        "Connectivity metrics: depth, max fan-out, orphans, triggers, agents, complexity",
        {"workflow": _workflow()},
        ["workflow"],
    )),
    ("extract_workflow_json", _td(
        "extract_workflow_json",
        "Extract workflow JSON from free text (code fences, trailing commas, truncation)",
        {"text": _str("Text containing a workflow JSON object")},
        ["text"],
    )),

    # ── EDITING ───────────────────────────────────────────────────
    ("add_step", _td(
        "add_step",
        "Add a step to a workflow (or start a new one) and return the updated workflow",
        {
            "kind": _str('Step type, e.g. "n8n-nodes-base.slack"'),
            "workflow": _workflow("Workflow to extend; omit to start a new one"),
            "parameters": {"type": "object", "description": "Step parameters"},
            "name": _str("Step name; derived from the type when omitted"),
        },
        ["kind"],
    )),
    ("connect_steps", _td(
        "connect_steps",
        "Connect two existing steps and return the updated workflow",
        {
            "workflow": _workflow(),
            "source": _str("Source step name"),
            "target": _str("Target step name"),
            "port_kind": _str("main | ai_tool | ai_languageModel | ai_memory (default: main)"),
            "source_index": _int("Source output slot (default: 0)"),
            "target_index": _int("Target input slot (default: 0)"),
        },
        ["workflow", "source", "target"],
    )),
    ("delete_step", _td(
        "delete_step",
        "Delete a step and every connection touching it",
        {"workflow": _workflow(), "name": _str("Step name")},
        ["workflow", "name"],
    )),
]
