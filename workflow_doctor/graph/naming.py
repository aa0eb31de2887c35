"""Descriptive step names derived from step kinds.

Used by the repair pipeline (deprecated-kind canonicalization and name
repair) and by GraphBuilder.add_step.
"""

from __future__ import annotations

import re
from collections.abc import Container

from workflow_doctor.graph.ports import kind_segment
from workflow_doctor.knowledge.catalog import CatalogLookup

# "Node1", "node_2", "Node-3", "node 4"
GENERIC_NAME_RE = re.compile(r"^node[\s_-]?\d+$", re.IGNORECASE)

# Keyed on the exact last kind segment. Checked after the catalog.
_SUGGESTED: dict[str, str] = {
    "manualTrigger": "Manual Trigger",
    "webhook": "Webhook Trigger",
    "scheduleTrigger": "Schedule Trigger",
    "schedule": "Schedule Trigger",
    "googleSheets": "Google Sheets",
    "gmail": "Gmail",
    "slack": "Slack",
    "httpRequest": "HTTP Request",
    "set": "Set Data",
    "code": "Code Execute",
    "if": "Condition Check",
    "function": "Function",
    "merge": "Merge Data",
    "splitInBatches": "Split Data",
    "split": "Split Data",
    "filter": "Filter Data",
    "transform": "Transform Data",
    "emailSend": "Send Email",
    "email": "Send Email",
    "readWriteFile": "File Operation",
    "file": "File Operation",
    "database": "Database Query",
    "lmChatOpenAi": "OpenAI Chat Model",
    "lmChatAnthropic": "Anthropic Chat Model",
    "agent": "AI Agent",
    "memoryBufferWindow": "Chat Memory",
    "memory": "Chat Memory",
    "tool": "AI Tool",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def is_generic_name(name: object) -> bool:
    return isinstance(name, str) and GENERIC_NAME_RE.match(name.strip()) is not None


def title_from_segment(segment: str) -> str:
    """camelCase / snake_case kind segment -> "Title Case" words."""
    words = _CAMEL_BOUNDARY.sub(" ", segment).replace("_", " ").replace("-", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def suggest_name(kind: str | None, catalog: CatalogLookup | None = None) -> str:
    """Descriptive display name for a step of *kind*.

    Order: catalog display name, then the built-in keyword table, then the
    kind segment converted to Title Case.
    """
    if not kind:
        return "Step"
    if catalog is not None:
        entry = catalog.lookup(kind)
        if entry is not None and entry.display_name:
            return entry.display_name
    segment = kind_segment(kind)
    if segment in _SUGGESTED:
        return _SUGGESTED[segment]
    return title_from_segment(segment) or "Step"


def uniquify(base: str, taken: Container[str]) -> str:
    """Return *base*, or "base 2", "base 3", ... whichever is not taken."""
    if base not in taken:
        return base
    n = 2
    while f"{base} {n}" in taken:
        n += 1
    return f"{base} {n}"
