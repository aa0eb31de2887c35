"""Flow-graph data model: Step, Edge and FlowGraph.

Wire format (n8n-style workflow document):

  {
    "name": "My Workflow",
    "nodes": [
      {
        "id": "…", "name": "Manual Trigger",
        "type": "n8n-nodes-base.manualTrigger", "typeVersion": 1,
        "position": [250, 300], "parameters": {}
      },
      ...
    ],
    "connections": {
      "Manual Trigger": {
        "main": [[{"node": "Set Data", "type": "main", "index": 0}]]
      }
    },
    "active": false,
    "settings": {}
  }

Connections are keyed by source step name, then port kind; the outer list is
indexed by source output slot and each slot holds the parallel targets.

FlowGraph.from_document() is lenient: anything it cannot interpret as a
connection record is skipped and described in FlowGraph.malformed so the
validator can report it. Keys the model does not know about (document level
and step level) are carried through to_document() untouched.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("workflow_doctor.graph.model")

_STEP_FIELDS = ("id", "name", "type", "typeVersion", "position", "parameters", "credentials")


# ---------------------------------------------------------------------------
# Step / Edge
# ---------------------------------------------------------------------------


@dataclass
class Step:
    """A node in the flow graph.

    name:         Addressing key used by edges. None when absent or not a string.
    kind:         Step type tag (wire key "type"), e.g. "n8n-nodes-base.slack".
    position:     [x, y] canvas coordinates, or None when absent/malformed.
    parameters:   Opaque key -> JSON-value map, or None when absent.
    credentials:  Optional credential bindings ({cred_kind: {id, name}}).
    id:           Optional engine-side identifier.
    type_version: Optional kind version number.
    extra:        Every other key of the raw record, preserved verbatim. A
                  malformed "position" or non-string "name" value is kept
                  here so it round-trips until repaired.
    """

    name: str | None
    kind: str | None
    position: list[float] | None = None
    parameters: dict[str, Any] | None = None
    credentials: dict[str, Any] | None = None
    id: str | None = None
    type_version: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_malformed_position(self) -> bool:
        return self.position is None and "position" in self.extra

    def set_position(self, x: float, y: float) -> None:
        self.position = [x, y]
        self.extra.pop("position", None)

    def set_name(self, name: str) -> None:
        self.name = name
        self.extra.pop("name", None)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Step":
        extra = {k: copy.deepcopy(v) for k, v in raw.items() if k not in _STEP_FIELDS}

        name = raw.get("name")
        if name is not None and not isinstance(name, str):
            extra["name"] = name
            name = None

        kind = raw.get("type")
        if kind is not None and not isinstance(kind, str):
            extra["type"] = kind
            kind = None

        position = None
        if "position" in raw:
            raw_pos = raw["position"]
            if _is_point(raw_pos):
                position = list(raw_pos)
            else:
                extra["position"] = copy.deepcopy(raw_pos)

        parameters = raw.get("parameters")
        credentials = raw.get("credentials")
        return cls(
            name=name,
            kind=kind,
            position=position,
            parameters=copy.deepcopy(parameters) if isinstance(parameters, dict) else None,
            credentials=copy.deepcopy(credentials) if isinstance(credentials, dict) else None,
            id=raw.get("id"),
            type_version=raw.get("typeVersion"),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.id is not None:
            out["id"] = self.id
        if self.name is not None:
            out["name"] = self.name
        elif "name" in self.extra:
            out["name"] = copy.deepcopy(self.extra["name"])
        if self.kind is not None:
            out["type"] = self.kind
        elif "type" in self.extra:
            out["type"] = copy.deepcopy(self.extra["type"])
        if self.type_version is not None:
            out["typeVersion"] = self.type_version
        if self.position is not None:
            out["position"] = list(self.position)
        elif "position" in self.extra:
            out["position"] = copy.deepcopy(self.extra["position"])
        if self.parameters is not None:
            out["parameters"] = copy.deepcopy(self.parameters)
        if self.credentials is not None:
            out["credentials"] = copy.deepcopy(self.credentials)
        for key, value in self.extra.items():
            if key not in out:
                out[key] = copy.deepcopy(value)
        return out


@dataclass(frozen=True)
class Edge:
    """One connection from a source output slot to a target input slot."""

    source: str
    port_kind: str
    source_index: int
    target: str
    target_index: int = 0

    def key(self) -> tuple[str, str, int, str, int]:
        return (self.source, self.port_kind, self.source_index, self.target, self.target_index)

    def to_record(self) -> dict[str, Any]:
        return {"node": self.target, "type": self.port_kind, "index": self.target_index}


def _is_point(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
    )


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


# ---------------------------------------------------------------------------
# FlowGraph
# ---------------------------------------------------------------------------

Adjacency = dict[str, dict[str, list[list[Edge]]]]


@dataclass
class FlowGraph:
    """Ordered steps plus name-keyed adjacency.

    adjacency:           {source_name: {port_kind: [[Edge, ...], ...]}}
    name:                Document-level workflow name (None when absent).
    extra:               Other document-level keys (active, settings, id, ...).
    malformed:           Descriptions of connection records that could not be
                         parsed; they are not present in adjacency.
    connections_missing: True when the document had no usable connections
                         object.
    """

    steps: list[Step] = field(default_factory=list)
    adjacency: Adjacency = field(default_factory=dict)
    name: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    malformed: list[str] = field(default_factory=list)
    connections_missing: bool = False

    # -- construction / serialisation ---------------------------------------

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "FlowGraph":
        """Parse a workflow document. The argument is never mutated."""
        steps = [Step.from_dict(raw) for raw in document.get("nodes") or [] if isinstance(raw, dict)]
        extra = {
            k: copy.deepcopy(v)
            for k, v in document.items()
            if k not in ("name", "nodes", "connections")
        }
        name = document.get("name")
        graph = cls(steps=steps, name=name if isinstance(name, str) else None, extra=extra)

        connections = document.get("connections")
        if not isinstance(connections, dict):
            graph.connections_missing = True
            if connections is not None:
                graph.malformed.append("Connections must be an object keyed by step name")
            return graph

        for source, ports in connections.items():
            if not isinstance(ports, dict):
                graph.malformed.append(f'Connections of "{source}" are not an object')
                continue
            for port_kind, slots in ports.items():
                if not isinstance(slots, list):
                    graph.malformed.append(
                        f'Connections "{source}".{port_kind} are not a list of output slots'
                    )
                    continue
                for slot_index, slot in enumerate(slots):
                    if slot is None:
                        continue
                    if not isinstance(slot, list):
                        graph.malformed.append(
                            f'Connections "{source}".{port_kind}[{slot_index}] is not a list'
                        )
                        continue
                    for record in slot:
                        edge = _edge_from_record(source, port_kind, slot_index, record)
                        if edge is None:
                            graph.malformed.append(
                                f'Malformed connection record from "{source}" '
                                f"({port_kind}[{slot_index}]): {record!r}"
                            )
                            continue
                        graph.add_edge(edge)
        return graph

    def to_document(self) -> dict[str, Any]:
        """Serialise to the wire shape, trimming empty slots and port groups."""
        doc: dict[str, Any] = {}
        if self.name is not None:
            doc["name"] = self.name
        doc["nodes"] = [step.to_dict() for step in self.steps]
        connections: dict[str, Any] = {}
        for source, ports in self.adjacency.items():
            out_ports: dict[str, Any] = {}
            for port_kind, slots in ports.items():
                wire = [[edge.to_record() for edge in slot] for slot in slots]
                while wire and not wire[-1]:
                    wire.pop()
                if wire:
                    out_ports[port_kind] = wire
            if out_ports:
                connections[source] = out_ports
        if not self.connections_missing or connections:
            doc["connections"] = connections
        for key, value in self.extra.items():
            doc[key] = copy.deepcopy(value)
        return doc

    def clone(self) -> "FlowGraph":
        return copy.deepcopy(self)

    # -- step accessors ------------------------------------------------------

    def get_step(self, name: str) -> Step | None:
        """First step holding *name*, or None."""
        return next((s for s in self.steps if s.name == name), None)

    def names(self) -> list[str]:
        return [s.name for s in self.steps if s.name is not None]

    def remove_step(self, name: str) -> bool:
        """Remove the step called *name* and every edge touching it."""
        step = self.get_step(name)
        if step is None:
            return False
        self.steps.remove(step)
        self.remove_edges(lambda e: e.source == name or e.target == name)
        self.adjacency.pop(name, None)
        return True

    # -- edge accessors ------------------------------------------------------

    def edges(self) -> Iterator[Edge]:
        """All edges in declaration order."""
        for ports in self.adjacency.values():
            for slots in ports.values():
                for slot in slots:
                    yield from slot

    def edge_count(self) -> int:
        return sum(1 for _ in self.edges())

    def outbound(self, name: str, port_kind: str | None = None) -> list[Edge]:
        ports = self.adjacency.get(name, {})
        return [
            edge
            for pk, slots in ports.items()
            if port_kind is None or pk == port_kind
            for slot in slots
            for edge in slot
        ]

    def inbound(self, name: str, port_kind: str | None = None) -> list[Edge]:
        return [
            e for e in self.edges()
            if e.target == name and (port_kind is None or e.port_kind == port_kind)
        ]

    def has_edge(self, edge: Edge) -> bool:
        slots = self.adjacency.get(edge.source, {}).get(edge.port_kind, [])
        if edge.source_index >= len(slots):
            return False
        return any(e == edge for e in slots[edge.source_index])

    def add_edge(self, edge: Edge) -> None:
        """Append *edge* to its source slot, growing the slot list as needed."""
        slots = self.adjacency.setdefault(edge.source, {}).setdefault(edge.port_kind, [])
        while len(slots) <= edge.source_index:
            slots.append([])
        slots[edge.source_index].append(edge)

    def remove_edges(self, predicate: Callable[[Edge], bool]) -> list[Edge]:
        """Remove every edge matching *predicate*; return the removed edges."""
        removed: list[Edge] = []
        for ports in self.adjacency.values():
            for slots in ports.values():
                for i, slot in enumerate(slots):
                    kept = []
                    for edge in slot:
                        (removed if predicate(edge) else kept).append(edge)
                    slots[i] = kept
        return removed

    def replace_edge(self, old: Edge, new: Edge) -> bool:
        """Replace the first occurrence of *old*; in place when the slot is unchanged."""
        slots = self.adjacency.get(old.source, {}).get(old.port_kind, [])
        if old.source_index >= len(slots):
            return False
        slot = slots[old.source_index]
        for i, edge in enumerate(slot):
            if edge == old:
                if (new.source, new.port_kind, new.source_index) == (
                    old.source, old.port_kind, old.source_index
                ):
                    slot[i] = new
                else:
                    del slot[i]
                    self.add_edge(new)
                return True
        return False

    # -- renaming ------------------------------------------------------------

    def rename_steps(
        self,
        mapping: Mapping[str, str],
        by_index: Mapping[int, str] | None = None,
    ) -> None:
        """Rename steps and every edge end that references an old name.

        mapping:  old name -> new name. Applied to every step holding the old
                  name (unless by_index says otherwise) and to every edge, both
                  as the adjacency key and as the target of edge records.
        by_index: step index -> new name for steps whose edges must NOT move
                  (e.g. the second holder of a duplicated name).

        The new adjacency is built in a single sweep and swapped in at the end,
        so swaps (A -> B, B -> A) and chains resolve consistently.
        """
        by_index = by_index or {}
        for i, step in enumerate(self.steps):
            if i in by_index:
                step.set_name(by_index[i])
            elif step.name is not None and step.name in mapping:
                step.set_name(mapping[step.name])

        if not mapping:
            return

        def _map(name: str) -> str:
            return mapping.get(name, name)

        new_adjacency: Adjacency = {}
        for source, ports in self.adjacency.items():
            new_ports = new_adjacency.setdefault(_map(source), {})
            for port_kind, slots in ports.items():
                new_slots = new_ports.setdefault(port_kind, [])
                for slot_index, slot in enumerate(slots):
                    while len(new_slots) <= slot_index:
                        new_slots.append([])
                    new_slots[slot_index].extend(
                        Edge(
                            source=_map(e.source),
                            port_kind=e.port_kind,
                            source_index=e.source_index,
                            target=_map(e.target),
                            target_index=e.target_index,
                        )
                        for e in slot
                    )
        self.adjacency = new_adjacency
        logger.debug("Renamed steps: %s", dict(mapping))


def _edge_from_record(source: str, port_kind: str, slot_index: int, record: Any) -> Edge | None:
    if not isinstance(record, dict):
        return None
    target = record.get("node")
    if not isinstance(target, str) or not target:
        return None
    index = record.get("index", 0)
    if not _is_index(index):
        return None
    return Edge(
        source=source,
        port_kind=port_kind,
        source_index=slot_index,
        target=target,
        target_index=index,
    )
