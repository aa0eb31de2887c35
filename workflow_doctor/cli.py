"""Command-line interface for workflow-doctor.

Usage:
    workflow-doctor validate workflow.json
    workflow-doctor validate workflow.json --no-fix
    workflow-doctor validate workflow.json --output repaired.json
    workflow-doctor analyze workflow.json
    cat llm_reply.txt | workflow-doctor extract -

Every command prints JSON to stdout. Exit status: 0 when the workflow is
valid (or the command succeeded), 1 when it is not, 2 when the input could
not be read or parsed.
"""

from __future__ import annotations

import json
import logging
import sys
from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from workflow_doctor.config import DoctorSettings
from workflow_doctor.graph.connectivity import summarize
from workflow_doctor.graph.errors import FatalInputError
from workflow_doctor.graph.model import FlowGraph
from workflow_doctor.graph.ports import PortPolicy
from workflow_doctor.graph.validator import ensure_well_formed, validate_workflow
from workflow_doctor.parsing import extract_workflow_json

logger = logging.getLogger("workflow_doctor.cli")

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_UNREADABLE = 2


class _InputError(Exception):
    pass


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------


def _read_text(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    try:
        return Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        raise _InputError(f"Cannot read {source}: {exc}") from exc


def _read_workflow(source: str) -> Any:
    text = _read_text(source)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        parsed = extract_workflow_json(text)
        if not parsed.ok:
            raise _InputError(f"{source} is not valid JSON: {parsed.error}")
        logger.info("Recovered workflow JSON from %s", source)
        return parsed.workflow


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_validate(args: Namespace, settings: DoctorSettings) -> int:
    document = _read_workflow(args.file)
    autofix = settings.autofix and not args.no_fix
    report = validate_workflow(document, autofix=autofix, catalog=settings.load_catalog())
    if args.output and report.normalized is not None:
        Path(args.output).write_text(json.dumps(report.normalized, indent=2), encoding="utf-8")
        logger.info("Wrote repaired workflow to %s", args.output)
    _emit(report.to_dict())
    return EXIT_OK if report.valid else EXIT_INVALID


def _cmd_analyze(args: Namespace, settings: DoctorSettings) -> int:
    document = _read_workflow(args.file)
    try:
        ensure_well_formed(document)
    except FatalInputError as exc:
        _emit({"ok": False, "error": str(exc)})
        return EXIT_INVALID
    policy = PortPolicy(settings.load_catalog())
    _emit(summarize(FlowGraph.from_document(document), policy).to_dict())
    return EXIT_OK


def _cmd_extract(args: Namespace, settings: DoctorSettings) -> int:
    result = extract_workflow_json(_read_text(args.file))
    _emit(result.to_dict())
    return EXIT_OK if result.ok else EXIT_UNREADABLE


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="workflow-doctor",
        description="Validate and auto-repair workflow graphs.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    validate_p = sub.add_parser("validate", help="Validate (and repair) a workflow document")
    validate_p.add_argument("file", help="Workflow JSON file, or - for stdin")
    validate_p.add_argument("--no-fix", action="store_true", help="Report only; skip the repair pipeline")
    validate_p.add_argument("--output", "-o", help="Write the repaired workflow to this file")
    validate_p.set_defaults(func=_cmd_validate)

    analyze_p = sub.add_parser("analyze", help="Print connectivity metrics")
    analyze_p.add_argument("file", help="Workflow JSON file, or - for stdin")
    analyze_p.set_defaults(func=_cmd_analyze)

    extract_p = sub.add_parser("extract", help="Extract workflow JSON from free text")
    extract_p.add_argument("file", help="Text file, or - for stdin")
    extract_p.set_defaults(func=_cmd_extract)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    settings = DoctorSettings.from_env()
    settings.configure_logging()

    args = build_parser().parse_args(argv)
    try:
        return args.func(args, settings)
    except _InputError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_UNREADABLE


if __name__ == "__main__":
    sys.exit(main())
