# diagram.py
from __future__ import annotations

from typing import List, Optional

from .graph import Graph, GraphNode, NodeKind

HEADER = "graph TD"
INDENT = "    "

# Mermaid flowchart shapes: rectangle, rounded, rhombus, stadium
_SHAPES = {
    NodeKind.STAGE: ('["', '"]'),
    NodeKind.JOB: ('("', '")'),
    NodeKind.APPROVAL: ('{"', '"}'),
    NodeKind.TERMINAL: ('(["', '"])'),
}


def escape_label(text: str) -> str:
    """Make arbitrary text safe inside a quoted Mermaid label or edge label."""
    text = " ".join(str(text).split())
    return (
        text.replace("&", "#amp;")
        .replace('"', "#quot;")
        .replace("|", "#124;")
        .replace("<", "#lt;")
        .replace(">", "#gt;")
    )


def node_line(node: GraphNode) -> str:
    left, right = _SHAPES[node.kind]
    return f"{INDENT}{node.id}{left}{escape_label(node.label)}{right}"


def edge_line(source: str, target: str, label: Optional[str] = None) -> str:
    if label:
        return f"{INDENT}{source} -->|{escape_label(label)}| {target}"
    return f"{INDENT}{source} --> {target}"


def serialize(graph: Graph) -> str:
    """
    Render a Graph as Mermaid flowchart text.

    Node declarations come first in graph order, then edges sorted by
    (source position, target position). Same graph in, same bytes out.
    """
    order = {n.id: i for i, n in enumerate(graph.nodes)}
    lines: List[str] = [HEADER]
    lines.extend(node_line(n) for n in graph.nodes)
    for e in sorted(graph.edges, key=lambda e: (order[e.source], order[e.target])):
        lines.append(edge_line(e.source, e.target, e.label))
    return "\n".join(lines) + "\n"
