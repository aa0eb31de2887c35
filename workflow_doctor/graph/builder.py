"""GraphBuilder — incremental construction of candidate workflows.

The builder makes no validity promises: it only guarantees unique step names
and that connect() references existing steps. Run validate_workflow() on the
result before handing it to the execution engine.

    builder = GraphBuilder("Support Bot")
    trigger = builder.add_step("n8n-nodes-base.manualTrigger")
    slack = builder.add_step("n8n-nodes-base.slack", {"channel": "#support"})
    builder.connect(trigger, slack)
    document = builder.to_document()
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any

from workflow_doctor.graph.errors import UnknownStepError
from workflow_doctor.graph.model import Edge, FlowGraph, Step
from workflow_doctor.graph.naming import suggest_name, uniquify
from workflow_doctor.graph.ports import MAIN
from workflow_doctor.knowledge.catalog import CatalogLookup, default_catalog

logger = logging.getLogger("workflow_doctor.graph.builder")

_START_X: int = 250
_START_Y: int = 300
_STEP_X: int = 200


class GraphBuilder:
    """Accumulates steps and edges into a FlowGraph."""

    def __init__(self, name: str = "My Workflow", catalog: CatalogLookup | None = None) -> None:
        self._catalog = catalog if catalog is not None else default_catalog()
        self._graph = FlowGraph(name=name, extra={"active": False, "settings": {}})
        self._next_x = _START_X

    @classmethod
    def from_document(
        cls,
        document: dict[str, Any],
        catalog: CatalogLookup | None = None,
    ) -> "GraphBuilder":
        """Continue editing an existing workflow document (which is not mutated)."""
        builder = cls(catalog=catalog)
        builder._graph = FlowGraph.from_document(document)
        xs = [s.position[0] for s in builder._graph.steps if s.position is not None]
        builder._next_x = max(xs) + _STEP_X if xs else _START_X
        return builder

    @property
    def name(self) -> str | None:
        return self._graph.name

    def step_names(self) -> list[str]:
        return self._graph.names()

    def add_step(
        self,
        kind: str,
        parameters: dict[str, Any] | None = None,
        position: list[float] | None = None,
        *,
        name: str | None = None,
        credentials: dict[str, Any] | None = None,
    ) -> str:
        """Append a step and return its (unique) name."""
        if not kind:
            raise ValueError("kind must be a non-empty string")
        base = name or suggest_name(kind, self._catalog)
        step_name = uniquify(base, set(self._graph.names()))

        if position is None:
            position = [self._next_x, _START_Y]
        self._next_x = max(self._next_x, position[0]) + _STEP_X

        if credentials is None:
            entry = self._catalog.lookup(kind)
            if entry is not None and entry.requires_credentials and entry.credential_kind:
                credentials = {
                    entry.credential_kind: {
                        "id": f"placeholder-{entry.credential_kind}",
                        "name": f"{entry.display_name or base} account",
                    }
                }

        self._graph.steps.append(Step(
            name=step_name,
            kind=kind,
            position=list(position),
            parameters=copy.deepcopy(parameters) if parameters is not None else {},
            credentials=copy.deepcopy(credentials),
            id=str(uuid.uuid4()),
            type_version=1,
        ))
        logger.debug("Added step %r (%s)", step_name, kind)
        return step_name

    def connect(
        self,
        source: str,
        target: str,
        port_kind: str = MAIN,
        source_index: int = 0,
        target_index: int = 0,
    ) -> None:
        """Add an edge. Both ends must already exist."""
        for step_name in (source, target):
            if self._graph.get_step(step_name) is None:
                raise UnknownStepError(step_name)
        if source_index < 0 or target_index < 0:
            raise ValueError("source_index and target_index must be >= 0")
        edge = Edge(source, port_kind, source_index, target, target_index)
        if self._graph.has_edge(edge):
            logger.debug("Edge already present: %s", edge)
            return
        self._graph.add_edge(edge)

    def remove_step(self, name: str) -> None:
        if not self._graph.remove_step(name):
            raise UnknownStepError(name)

    def build(self) -> FlowGraph:
        """Return a copy of the graph built so far."""
        return self._graph.clone()

    def to_document(self) -> dict[str, Any]:
        return self._graph.to_document()
