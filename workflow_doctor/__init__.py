"""workflow-doctor — structural validation and auto-repair of workflow graphs.

    from workflow_doctor import validate_workflow

    report = validate_workflow(document)          # repairs a private copy
    report.valid, report.errors, report.fixes
    repaired = report.normalized
"""

from workflow_doctor.graph.builder import GraphBuilder
from workflow_doctor.graph.errors import FatalInputError, UnknownStepError, WorkflowDoctorError
from workflow_doctor.graph.model import Edge, FlowGraph, Step
from workflow_doctor.graph.repair import RepairResult, repair_graph, repair_workflow
from workflow_doctor.graph.validator import ValidationReport, check_workflow, validate_workflow
from workflow_doctor.knowledge.catalog import CatalogEntry, NodeCatalog, default_catalog
from workflow_doctor.parsing import ParseResult, extract_workflow_json

__version__ = "0.1.0"

__all__ = [
    "CatalogEntry",
    "Edge",
    "FatalInputError",
    "FlowGraph",
    "GraphBuilder",
    "NodeCatalog",
    "ParseResult",
    "RepairResult",
    "Step",
    "UnknownStepError",
    "ValidationReport",
    "WorkflowDoctorError",
    "check_workflow",
    "default_catalog",
    "extract_workflow_json",
    "repair_graph",
    "repair_workflow",
    "validate_workflow",
]
