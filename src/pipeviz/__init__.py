from .core import ParseOutput, ParseResult, parse_pipeline
from .detect import detect_format
from .diagram import serialize
from .errors import (
    GraphTooLarge,
    NodeNotFound,
    NormalizationError,
    PipelineError,
    PipelineSyntaxError,
    SizeLimitExceeded,
    UnknownFormat,
    UnsupportedFeature,
)
from .graph import Graph, NodeDetail, NodeDetailIndex, build_graph
from .model import Job, Pipeline, PipelineFormat, Stage, Step
from .normalize import normalize

__all__ = [
    "parse_pipeline", "ParseResult", "ParseOutput",
    "detect_format", "normalize", "build_graph", "serialize",
    "Pipeline", "Stage", "Job", "Step", "PipelineFormat",
    "Graph", "NodeDetail", "NodeDetailIndex",
    "PipelineError", "UnknownFormat", "PipelineSyntaxError", "UnsupportedFeature",
    "NormalizationError", "SizeLimitExceeded", "GraphTooLarge", "NodeNotFound",
]
