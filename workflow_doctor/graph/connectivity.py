"""Connectivity analysis: depth, fan-out and orphan detection.

All functions are read-only over a FlowGraph. Depth uses monotonic worklist
relaxation rather than recursion: a step's best-known depth only increases
and is capped at len(steps) - 1, so cyclic graphs terminate.
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any

from workflow_doctor.graph.model import FlowGraph
from workflow_doctor.graph.ports import MAIN, PortPolicy


def _first_trigger(graph: FlowGraph, policy: PortPolicy) -> str | None:
    for step in graph.steps:
        if step.name is not None and step.kind and policy.is_trigger(step.kind):
            return step.name
    return None


def depth(graph: FlowGraph, policy: PortPolicy | None = None) -> int:
    """Longest main-edge path length from the first trigger step.

    Returns 0 when the graph has no trigger.
    """
    policy = policy or PortPolicy()
    start = _first_trigger(graph, policy)
    if start is None:
        return 0

    cap = max(len(graph.steps) - 1, 0)
    best: dict[str, int] = {start: 0}
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        next_depth = best[current] + 1
        if next_depth > cap:
            continue
        for edge in graph.outbound(current, MAIN):
            if next_depth > best.get(edge.target, -1):
                best[edge.target] = next_depth
                queue.append(edge.target)
    return max(best.values())


def max_fanout(graph: FlowGraph) -> int:
    """Largest number of parallel main edges at a single (step, output slot)."""
    widest = 0
    for ports in graph.adjacency.values():
        for slot in ports.get(MAIN, []):
            widest = max(widest, len(slot))
    return widest


def orphans(graph: FlowGraph) -> list[str]:
    """Names of steps with no inbound and no outbound edges, in step order."""
    connected: set[str] = set()
    for edge in graph.edges():
        connected.add(edge.source)
        connected.add(edge.target)
    return [s.name for s in graph.steps if s.name is not None and s.name not in connected]


def complexity_bucket(score: int) -> str:
    if score <= 10:
        return "low"
    if score <= 25:
        return "medium"
    if score <= 50:
        return "high"
    return "very-high"


@dataclass
class ConnectivitySummary:
    """Read-only connectivity metrics for one graph."""

    step_count: int
    edge_count: int
    depth: int
    max_fanout: int
    orphans: list[str] = field(default_factory=list)
    triggers: list[str] = field(default_factory=list)
    agents: list[str] = field(default_factory=list)
    complexity_score: int = 0
    complexity: str = "low"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def summarize(graph: FlowGraph, policy: PortPolicy | None = None) -> ConnectivitySummary:
    """Step/edge counts, depth, fan-out, orphans and a complexity bucket.

    Score = steps + 2 * depth + 3 * max fan-out; buckets at 10 / 25 / 50.
    """
    policy = policy or PortPolicy()
    d = depth(graph, policy)
    fanout = max_fanout(graph)
    score = len(graph.steps) + 2 * d + 3 * fanout
    return ConnectivitySummary(
        step_count=len(graph.steps),
        edge_count=graph.edge_count(),
        depth=d,
        max_fanout=fanout,
        orphans=orphans(graph),
        triggers=[s.name for s in graph.steps if s.name and s.kind and policy.is_trigger(s.kind)],
        agents=[s.name for s in graph.steps if s.name and s.kind and policy.is_agent(s.kind)],
        complexity_score=score,
        complexity=complexity_bucket(score),
    )
