# errors.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, Optional


class PipelineError(Exception):
    """
    Base for every error the core reports.

    Subclasses are dataclasses so the fields double as structured context for:
      - clean CLI output
      - JSON export
      - tests asserting on exact fields
    """
    kind: ClassVar[str] = "PipelineError"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self) if hasattr(self, "__dataclass_fields__") else {}
        data.pop("message", None)
        return {"kind": self.kind, "message": str(self), **data}


@dataclass
class UnknownFormat(PipelineError):
    filename: str
    reason: str = "could not classify input"
    kind: ClassVar[str] = "UnknownFormat"

    def __str__(self) -> str:
        return f"Unknown pipeline format for '{self.filename}': {self.reason}"


@dataclass
class PipelineSyntaxError(PipelineError):
    line: int
    message: str
    kind: ClassVar[str] = "SyntaxError"

    def __str__(self) -> str:
        return f"line {self.line}: {self.message}"


@dataclass
class UnsupportedFeature(PipelineError):
    feature: str
    line: Optional[int] = None
    kind: ClassVar[str] = "UnsupportedFeature"

    def __str__(self) -> str:
        where = f" (line {self.line})" if self.line is not None else ""
        return f"Unsupported feature: {self.feature}{where}"


@dataclass
class NormalizationError(PipelineError):
    reason: str
    kind: ClassVar[str] = "NormalizationError"

    def __str__(self) -> str:
        return f"Cannot normalize pipeline: {self.reason}"


@dataclass
class SizeLimitExceeded(PipelineError):
    size: int
    limit: int
    kind: ClassVar[str] = "SizeLimitExceeded"

    def __str__(self) -> str:
        return f"Input is {self.size} bytes, limit is {self.limit} bytes"


@dataclass
class GraphTooLarge(PipelineError):
    nodes: int
    limit: int
    kind: ClassVar[str] = "GraphTooLarge"

    def __str__(self) -> str:
        return f"Pipeline graph has {self.nodes} nodes, limit is {self.limit}"


class NodeNotFound(KeyError):
    """Lookup of a node id that the current graph does not contain."""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"No node with id '{self.node_id}'"
