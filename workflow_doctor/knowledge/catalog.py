"""NodeCatalog — read-only step-kind metadata lookup.

The catalog maps a step kind (e.g. "n8n-nodes-base.slack") to the few facts
the graph engine needs:

  display_name          — used to derive descriptive step names
  requires_credentials  — whether a placeholder credential should be attached
  credential_kind       — the credential type key for that placeholder
  tool_equivalent       — the tool-capable variant of a regular service kind

The engine only ever calls lookup(kind). Unknown kinds return None and are
treated as regular steps with no special policy.

Loading is done once per process by default_catalog(). A JSON snapshot can
replace the bundled table via WORKFLOW_DOCTOR_CATALOG_PATH; snapshot entries
use the package-metadata field names (type, displayName, requiresCredentials,
credentialType, toolVariant).
"""

from __future__ import annotations

import functools
import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_CATALOG_PATH_ENV = "WORKFLOW_DOCTOR_CATALOG_PATH"


@dataclass(frozen=True)
class CatalogEntry:
    """Metadata for one step kind."""

    kind: str
    display_name: str
    requires_credentials: bool = False
    credential_kind: str | None = None
    tool_equivalent: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CatalogEntry":
        """Build an entry from a snapshot record.

        Accepts both the snapshot field names and this dataclass's own names.
        """
        kind = raw.get("type") or raw.get("kind") or ""
        if not kind:
            raise ValueError(f"Catalog record has no 'type': {raw!r}")
        return cls(
            kind=kind,
            display_name=raw.get("displayName") or raw.get("display_name") or "",
            requires_credentials=bool(
                raw.get("requiresCredentials", raw.get("requires_credentials", False))
            ),
            credential_kind=raw.get("credentialType") or raw.get("credential_kind"),
            tool_equivalent=raw.get("toolVariant") or raw.get("tool_equivalent"),
        )


class CatalogLookup(Protocol):
    """The only interface the graph engine consumes from a catalog."""

    def lookup(self, kind: str) -> CatalogEntry | None: ...


class NodeCatalog:
    """In-memory, immutable-after-construction catalog of step kinds."""

    def __init__(self, entries: Iterable[CatalogEntry] = ()) -> None:
        self._entries: dict[str, CatalogEntry] = {}
        for entry in entries:
            self._entries[entry.kind] = entry
        # Case-insensitive fallback index (LLM output often gets casing wrong)
        self._lower_index: dict[str, str] = {k.lower(): k for k in self._entries}

    def lookup(self, kind: str) -> CatalogEntry | None:
        """Return the entry for *kind*, or None when the kind is unknown."""
        if not kind:
            return None
        entry = self._entries.get(kind)
        if entry is not None:
            return entry
        canonical = self._lower_index.get(kind.lower())
        if canonical is not None:
            logger.debug("Catalog case-insensitive match: %r -> %r", kind, canonical)
            return self._entries[canonical]
        return None

    def __contains__(self, kind: object) -> bool:
        return isinstance(kind, str) and self.lookup(kind) is not None

    def __len__(self) -> int:
        return len(self._entries)

    @classmethod
    def from_snapshot(cls, path: str | Path) -> "NodeCatalog":
        """Load a catalog from a JSON snapshot.

        The snapshot is either a list of records or {"nodes": {kind: record}}.
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            records = raw.get("nodes", raw)
            if isinstance(records, dict):
                records = [{"type": k, **v} for k, v in records.items()]
        else:
            records = raw
        if not isinstance(records, list):
            raise ValueError(f"Unsupported catalog snapshot format in {path}")
        entries = [CatalogEntry.from_dict(r) for r in records if isinstance(r, dict)]
        logger.info("Loaded %d catalog entries from %s", len(entries), path)
        return cls(entries)

    @classmethod
    def builtin(cls) -> "NodeCatalog":
        """Catalog built from the bundled table of common step kinds."""
        return cls(CatalogEntry.from_dict(r) for r in _BUILTIN_RECORDS)


@functools.lru_cache(maxsize=1)
def default_catalog() -> NodeCatalog:
    """Return the process-wide catalog, loading it on first use."""
    path = os.environ.get(_CATALOG_PATH_ENV)
    if path:
        return NodeCatalog.from_snapshot(path)
    return NodeCatalog.builtin()


# ---------------------------------------------------------------------------
# Bundled table
# ---------------------------------------------------------------------------

_BASE = "n8n-nodes-base."
_LC = "@n8n/n8n-nodes-langchain."


def _svc(name: str, display: str, cred: str | None = None, tool: bool = False) -> dict:
    return {
        "type": _BASE + name,
        "displayName": display,
        "requiresCredentials": cred is not None,
        "credentialType": cred,
        "toolVariant": _BASE + name + "Tool" if tool else None,
    }


_BUILTIN_RECORDS: list[dict[str, Any]] = [
    # Triggers
    _svc("manualTrigger", "Manual Trigger"),
    _svc("webhook", "Webhook Trigger"),
    _svc("scheduleTrigger", "Schedule Trigger"),
    _svc("gmailTrigger", "Gmail Trigger", "gmailOAuth2"),
    {"type": _LC + "chatTrigger", "displayName": "Chat Trigger"},
    # Core
    _svc("set", "Set Data"),
    _svc("code", "Code Execute"),
    _svc("if", "Condition Check"),
    _svc("switch", "Switch"),
    _svc("merge", "Merge Data"),
    _svc("filter", "Filter Data"),
    _svc("noOp", "No Operation"),
    _svc("stickyNote", "Sticky Note"),
    _svc("httpRequest", "HTTP Request", tool=True),
    # Services with tool variants
    _svc("gmail", "Gmail", "gmailOAuth2", tool=True),
    _svc("googleSheets", "Google Sheets", "googleSheetsOAuth2Api", tool=True),
    _svc("googleDrive", "Google Drive", "googleDriveOAuth2Api", tool=True),
    _svc("slack", "Slack", "slackOAuth2Api", tool=True),
    _svc("notion", "Notion", "notionOAuth2Api", tool=True),
    _svc("airtable", "Airtable", "airtableOAuth2Api", tool=True),
    _svc("github", "GitHub", "githubOAuth2Api", tool=True),
    _svc("hubspot", "HubSpot", "hubspotOAuth2Api", tool=True),
    _svc("discord", "Discord", "discordOAuth2Api", tool=True),
    _svc("telegram", "Telegram", "telegramApi", tool=True),
    _svc("jira", "Jira", "jiraSoftwareCloudApi", tool=True),
    _svc("trello", "Trello", "trelloApi", tool=True),
    # Services without tool variants
    _svc("postgres", "PostgreSQL", "postgres"),
    _svc("mySql", "MySQL", "mySql"),
    _svc("stripe", "Stripe", "stripeApi"),
    # Tool variants
    _svc("gmailTool", "Gmail Tool", "gmailOAuth2"),
    _svc("slackTool", "Slack Tool", "slackOAuth2Api"),
    _svc("googleSheetsTool", "Google Sheets Tool", "googleSheetsOAuth2Api"),
    _svc("httpRequestTool", "HTTP Request Tool"),
    # Agent infrastructure
    {"type": _LC + "agent", "displayName": "AI Agent"},
    {"type": _LC + "lmChatOpenAi", "displayName": "OpenAI Chat Model",
     "requiresCredentials": True, "credentialType": "openAiApi"},
    {"type": _LC + "lmChatAnthropic", "displayName": "Anthropic Chat Model",
     "requiresCredentials": True, "credentialType": "anthropicApi"},
    {"type": _LC + "lmChatGoogleGemini", "displayName": "Google Gemini Chat Model",
     "requiresCredentials": True, "credentialType": "googlePalmApi"},
    {"type": _LC + "lmChatGroq", "displayName": "Groq Chat Model",
     "requiresCredentials": True, "credentialType": "groqApi"},
    {"type": _LC + "lmChatOllama", "displayName": "Ollama Chat Model",
     "requiresCredentials": True, "credentialType": "ollamaApi"},
    {"type": _LC + "memoryBufferWindow", "displayName": "Chat Memory"},
    {"type": _LC + "toolCalculator", "displayName": "Calculator"},
    {"type": _LC + "toolCode", "displayName": "Code Tool"},
    {"type": _LC + "toolWikipedia", "displayName": "Wikipedia"},
    {"type": _LC + "toolHttpRequest", "displayName": "HTTP Request Tool"},
]
