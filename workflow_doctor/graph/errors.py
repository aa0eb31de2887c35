"""Error taxonomy for workflow validation and repair.

Only two conditions are raised as exceptions:
  FatalInputError  — the document cannot be treated as a workflow at all.
                     Terminal: no accumulation, no repair.
  UnknownStepError — a builder/tool call names a step that does not exist.

Everything else (schema problems, structural problems, warnings) is
accumulated as ValidationIssue records so a single validation pass can
report all of them at once.
"""

from __future__ import annotations

from dataclasses import dataclass

# Issue categories
SCHEMA = "schema"
STRUCTURAL = "structural"
WARNING = "warning"


class WorkflowDoctorError(Exception):
    """Base class for all workflow_doctor exceptions."""


class FatalInputError(WorkflowDoctorError, ValueError):
    """Raised when the input is not a well-formed workflow document.

    The message is surfaced verbatim as the single error of the report.
    """


class UnknownStepError(WorkflowDoctorError, KeyError):
    """Raised when an edit references a step name that is not in the graph."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown step: {self.name!r}"


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found by the structural validator.

    severity: "error" or "warning".
    category: SCHEMA, STRUCTURAL or WARNING.
    message:  Human-readable description (this is what reports expose).
    step:     Name of the offending step, when one can be named.
    """

    severity: str
    category: str
    message: str
    step: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == "error"
