# graph.py
from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import GraphTooLarge, NodeNotFound
from .model import Pipeline, Stage, StageKind

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    STAGE = "stage"
    JOB = "job"
    APPROVAL = "approval"
    TERMINAL = "terminal"


_STAGE_KIND_TO_NODE = {
    StageKind.STANDARD: NodeKind.STAGE,
    StageKind.APPROVAL: NodeKind.APPROVAL,
    StageKind.TERMINAL: NodeKind.TERMINAL,
}


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    kind: NodeKind
    stage: str
    job: Optional[str] = None


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    label: Optional[str] = None


@dataclass(frozen=True)
class Graph:
    nodes: Tuple[GraphNode, ...]
    edges: Tuple[GraphEdge, ...]

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def node(self, node_id: str) -> GraphNode:
        for n in self.nodes:
            if n.id == node_id:
                return n
        raise NodeNotFound(node_id)

    def outgoing(self, node_id: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> List[GraphEdge]:
        return [e for e in self.edges if e.target == node_id]


# ---------------------------------------------------------------------
# Node details (click-on-node lookups)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StepDetail:
    name: str
    command: str


@dataclass(frozen=True)
class NodeDetail:
    name: str
    steps: Tuple[StepDetail, ...]
    kind: NodeKind = NodeKind.STAGE


class NodeDetailIndex(Mapping[str, NodeDetail]):
    """
    Read-only node id -> NodeDetail mapping.

    Only ever produced by build_graph together with the Graph it describes,
    so ids always match the diagram.
    """

    def __init__(self, details: Dict[str, NodeDetail]):
        self._details = MappingProxyType(dict(details))

    def __getitem__(self, node_id: str) -> NodeDetail:
        try:
            return self._details[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._details)

    def __len__(self) -> int:
        return len(self._details)

    def lookup(self, node_id: str) -> NodeDetail:
        return self[node_id]


# ---------------------------------------------------------------------
# Node ids
# ---------------------------------------------------------------------

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    slug = _NON_ALNUM.sub("_", name.lower()).strip("_")
    return slug or hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]


def _path_digest(path: Sequence[str]) -> str:
    return hashlib.sha1("\x1f".join(path).encode("utf-8")).hexdigest()[:6]


def assign_ids(paths: Sequence[Tuple[str, ...]]) -> Dict[Tuple[str, ...], str]:
    """
    Map (stage,) and (stage, job) name paths to diagram ids.

    Ids are `stage_<slug>` and `job_<stage slug>__<job slug>`; when two
    different paths slug to the same id, each gets a short digest of its
    exact path appended, so ids only depend on the names in the input.
    """
    candidates: Dict[Tuple[str, ...], str] = {}
    for path in paths:
        if len(path) == 1:
            candidates[path] = f"stage_{slugify(path[0])}"
        else:
            candidates[path] = f"job_{slugify(path[0])}__{slugify(path[1])}"

    counts = Counter(candidates.values())
    return {
        path: f"{cid}_{_path_digest(path)}" if counts[cid] > 1 else cid
        for path, cid in candidates.items()
    }


# ---------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------

def _node_paths(pipeline: Pipeline) -> List[Tuple[str, ...]]:
    paths: List[Tuple[str, ...]] = []
    for stage in pipeline.stages:
        paths.append((stage.name,))
        if len(stage.jobs) > 1:
            paths.extend((stage.name, job.name) for job in stage.jobs)
    return paths


def _entry_label(stage: Stage) -> Optional[str]:
    if stage.condition:
        return stage.condition
    if len(stage.jobs) == 1:
        return stage.jobs[0].condition
    return None


def _approve_label(gate_stage: Stage, target: Stage) -> str:
    # the gated stage has no other incoming edge
    label = gate_stage.gate.approve_label
    condition = _entry_label(target)
    return f"{label}: {condition}" if condition else label


def _stage_detail(stage: Stage) -> NodeDetail:
    kind = _STAGE_KIND_TO_NODE[stage.kind]
    if stage.gate is not None:
        return NodeDetail(stage.name, (StepDetail("Wait for manual approval", stage.gate.prompt),), kind)

    many = len(stage.jobs) > 1
    steps = tuple(
        StepDetail(f"{job.name}: {step.name}" if many else step.name, "\n".join(step.commands))
        for job in stage.jobs
        for step in job.steps
    )
    return NodeDetail(stage.name, steps, kind)


def build_graph(pipeline: Pipeline, *, max_nodes: Optional[int] = None) -> Tuple[Graph, NodeDetailIndex]:
    """
    Turn a Pipeline into (Graph, NodeDetailIndex).

    - one node per stage, plus one node per job for stages with several jobs
    - stage node fans out to its job nodes; the next stage is entered from
      every exit (job nodes, or the stage node itself)
    - approval stages only emit their `approved` / `rejected` edges; the
      `approved` label also carries the gated stage's condition
    - terminal stages are only reachable from approval gates
    """
    paths = _node_paths(pipeline)
    if max_nodes is not None and len(paths) > max_nodes:
        raise GraphTooLarge(nodes=len(paths), limit=max_nodes)

    ids = assign_ids(paths)
    nodes: List[GraphNode] = []
    details: Dict[str, NodeDetail] = {}
    edges: List[GraphEdge] = []
    seen_edges = set()

    def edge(source: str, target: str, label: Optional[str] = None) -> None:
        if (source, target) in seen_edges:
            return
        seen_edges.add((source, target))
        edges.append(GraphEdge(source, target, label))

    entry: Dict[str, str] = {}
    exits: Dict[str, List[str]] = {}

    for stage in pipeline.stages:
        sid = ids[(stage.name,)]
        nodes.append(GraphNode(sid, stage.name, _STAGE_KIND_TO_NODE[stage.kind], stage.name))
        details[sid] = _stage_detail(stage)
        entry[stage.name] = sid
        exits[stage.name] = [sid]

        if len(stage.jobs) > 1:
            exits[stage.name] = []
            for job in stage.jobs:
                jid = ids[(stage.name, job.name)]
                nodes.append(GraphNode(jid, job.name, NodeKind.JOB, stage.name, job.name))
                details[jid] = NodeDetail(
                    job.name,
                    tuple(StepDetail(s.name, "\n".join(s.commands)) for s in job.steps),
                    NodeKind.JOB,
                )
                edge(sid, jid, job.condition)
                exits[stage.name].append(jid)

    by_name = {stage.name: stage for stage in pipeline.stages}
    previous: Optional[Stage] = None
    for stage in pipeline.stages:
        if stage.is_terminal:
            continue
        if previous is not None and not previous.is_approval:
            for source in exits[previous.name]:
                edge(source, entry[stage.name], _entry_label(stage))
        if stage.gate is not None:
            gate_id = entry[stage.name]
            edge(gate_id, entry[stage.gate.approve], _approve_label(stage, by_name[stage.gate.approve]))
            edge(gate_id, entry[stage.gate.reject], stage.gate.reject_label)
        previous = stage

    order = {n.id: i for i, n in enumerate(nodes)}
    edges.sort(key=lambda e: (order[e.source], order[e.target]))

    logger.debug("Built graph: %d node(s), %d edge(s)", len(nodes), len(edges))
    return Graph(tuple(nodes), tuple(edges)), NodeDetailIndex(details)
