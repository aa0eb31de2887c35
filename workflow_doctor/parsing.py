"""Extract workflow JSON from free-form (typically LLM-generated) text.

extract_workflow_json(text) looks for a fenced ```json block first, then the
outermost {...} span, and parses it. When strict parsing fails, a fixed list
of recovery techniques is tried in order; the first one that yields valid
JSON wins and the result is flagged recovered=True.

Recovery techniques:
  1. drop trailing commas before } / ]
  2. close unbalanced braces/brackets (string-aware)
  3. close a truncated string literal, then balance
  4. quote bare object keys
  5. drop the last incomplete field, then balance
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("workflow_doctor.parsing")

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)(?:\n?```|$)", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")


@dataclass
class ParseResult:
    """Outcome of extract_workflow_json().

    ok:        True when a JSON object was parsed.
    workflow:  The parsed object (None on failure).
    recovered: True when a recovery technique was needed.
    error:     Parse error of the strict attempt when every technique failed.
    """

    ok: bool
    workflow: dict[str, Any] | None = None
    recovered: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "workflow": self.workflow,
            "recovered": self.recovered,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Recovery techniques
# ---------------------------------------------------------------------------


def _fix_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text).rstrip().rstrip(",")


def _scan(text: str) -> tuple[list[str], bool]:
    """Return (unclosed opener stack, inside-string flag) at end of *text*."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()
    return stack, in_string


def _close_open_structures(text: str) -> str:
    stack, _ = _scan(text)
    closers = "".join("}" if opener == "{" else "]" for opener in reversed(stack))
    return _fix_trailing_commas(text.rstrip()) + closers


def _close_truncated_string(text: str) -> str:
    _, in_string = _scan(text)
    if not in_string:
        return text
    return _close_open_structures(text.rstrip("\\") + '"')


def _quote_bare_keys(text: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2":', text)


def _drop_incomplete_tail(text: str) -> str:
    stripped = text.rstrip()
    if stripped.endswith(("}", "]")):
        return text
    cut = max(stripped.rfind(","), 0)
    if cut == 0:
        return text
    return _close_open_structures(stripped[:cut])


_TECHNIQUES: tuple[tuple[str, Callable[[str], str]], ...] = (
    ("trailing_commas", _fix_trailing_commas),
    ("missing_closers", _close_open_structures),
    ("truncated_string", _close_truncated_string),
    ("bare_keys", _quote_bare_keys),
    ("incomplete_tail", _drop_incomplete_tail),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _candidate(text: str) -> str:
    fence = _FENCE_RE.search(text)
    if fence:
        text = fence.group(1)
    start = text.find("{")
    if start < 0:
        return text.strip()
    end = text.rfind("}")
    # A truncated document has no closing brace after its opening one.
    return text[start:end + 1] if end > start else text[start:]


def extract_workflow_json(text: str) -> ParseResult:
    """Find and parse the workflow object embedded in *text*."""
    if not isinstance(text, str) or not text.strip():
        return ParseResult(ok=False, error="No text to parse")

    candidate = _candidate(text)
    if not candidate.startswith("{"):
        return ParseResult(ok=False, error="No JSON object found in text")

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        strict_error = str(exc)
    else:
        if isinstance(parsed, dict):
            return ParseResult(ok=True, workflow=parsed)
        return ParseResult(ok=False, error="Parsed JSON is not an object")

    for technique_name, technique in _TECHNIQUES:
        fixed = technique(candidate)
        if fixed == candidate:
            continue
        try:
            parsed = json.loads(fixed)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            logger.info("Recovered malformed workflow JSON via %s", technique_name)
            return ParseResult(ok=True, workflow=parsed, recovered=True)

    logger.debug("Could not recover workflow JSON: %s", strict_error)
    return ParseResult(ok=False, error=strict_error)
