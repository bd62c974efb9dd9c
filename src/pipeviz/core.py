# core.py
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .detect import detect_format
from .diagram import serialize
from .errors import PipelineError, SizeLimitExceeded
from .graph import Graph, NodeDetailIndex, build_graph
from .model import Pipeline, PipelineFormat
from .normalize import normalize
from .parsers import get_parser
from .settings import DEFAULT_LIMITS, Limits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseOutput:
    pipeline: Pipeline
    graph: Graph
    node_details: NodeDetailIndex
    diagram: str
    format: PipelineFormat


@dataclass(frozen=True)
class ParseResult:
    """Either `output` or `error` is set, never both."""
    output: Optional[ParseOutput] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ParseOutput:
        if self.error is not None:
            raise self.error
        if self.output is None:
            raise ValueError("ParseResult holds neither output nor error")
        return self.output


def source_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def run_pipeline(
    content: str,
    filename: str,
    format_hint: Optional[Union[PipelineFormat, str]] = None,
    *,
    limits: Limits = DEFAULT_LIMITS,
) -> ParseOutput:
    """Same as parse_pipeline, but raises PipelineError instead of returning it."""
    size = len(content.encode("utf-8"))
    if size > limits.max_input_bytes:
        raise SizeLimitExceeded(size=size, limit=limits.max_input_bytes)

    fmt = detect_format(filename, content, format_hint)
    logger.debug("Parsing %s as %s (%d bytes)", filename, fmt.value, size)

    raw = get_parser(fmt)(content)
    pipeline = normalize(raw, fmt, source_hash=source_hash(content))
    graph, details = build_graph(pipeline, max_nodes=limits.max_nodes)

    return ParseOutput(
        pipeline=pipeline,
        graph=graph,
        node_details=details,
        diagram=serialize(graph),
        format=fmt,
    )


def parse_pipeline(
    content: str,
    filename: str,
    format_hint: Optional[Union[PipelineFormat, str]] = None,
    *,
    limits: Optional[Limits] = None,
) -> ParseResult:
    """
    Parse one pipeline file end to end.

    raw text -> detect -> parse -> normalize -> graph + node details -> diagram

    Every PipelineError is returned inside the ParseResult; nothing is
    retried and no partial result is produced.
    """
    try:
        output = run_pipeline(content, filename, format_hint, limits=limits or DEFAULT_LIMITS)
    except PipelineError as e:
        logger.debug("Parsing %s failed: %s", filename, e)
        return ParseResult(error=e)
    return ParseResult(output=output)
