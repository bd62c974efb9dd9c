# schema.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .core import ParseOutput
from .errors import PipelineError

# -------------------- Export documents --------------------
# Shape handed to rendering / breakdown collaborators.


class StepDoc(BaseModel):
    name: str
    commands: list[str]
    condition: Optional[str] = None
    continue_on_failure: bool = False


class JobDoc(BaseModel):
    name: str
    steps: list[StepDoc]
    parallel: bool = False
    condition: Optional[str] = None


class StageDoc(BaseModel):
    name: str
    kind: str
    condition: Optional[str] = None
    jobs: list[JobDoc] = Field(default_factory=list)


class StepDetailDoc(BaseModel):
    name: str
    command: str


class NodeDetailDoc(BaseModel):
    name: str
    kind: str
    steps: list[StepDetailDoc]


class PipelineDocument(BaseModel):
    file_name: str
    file_type: str
    file_size: int
    source_hash: str
    stages: list[StageDoc]
    diagram: str
    node_details: dict[str, NodeDetailDoc]


class ErrorDocument(BaseModel):
    kind: str
    message: str
    details: dict = Field(default_factory=dict)


def node_detail_doc(output: ParseOutput, node_id: str) -> NodeDetailDoc:
    detail = output.node_details.lookup(node_id)
    return NodeDetailDoc(
        name=detail.name,
        kind=detail.kind.value,
        steps=[StepDetailDoc(name=s.name, command=s.command) for s in detail.steps],
    )


def pipeline_document(output: ParseOutput, *, file_name: str, file_size: int) -> PipelineDocument:
    pipeline = output.pipeline
    return PipelineDocument(
        file_name=file_name,
        file_type=output.format.value,
        file_size=file_size,
        source_hash=pipeline.source_hash,
        stages=[
            StageDoc(
                name=stage.name,
                kind=stage.kind.value,
                condition=stage.condition,
                jobs=[
                    JobDoc(
                        name=job.name,
                        parallel=job.parallel,
                        condition=job.condition,
                        steps=[
                            StepDoc(
                                name=step.name,
                                commands=list(step.commands),
                                condition=step.condition,
                                continue_on_failure=step.continue_on_failure,
                            )
                            for step in job.steps
                        ],
                    )
                    for job in stage.jobs
                ],
            )
            for stage in pipeline.stages
        ],
        diagram=output.diagram,
        node_details={node_id: node_detail_doc(output, node_id) for node_id in output.node_details},
    )


def error_document(error: PipelineError) -> ErrorDocument:
    data = error.to_dict()
    kind = data.pop("kind")
    message = data.pop("message")
    return ErrorDocument(kind=kind, message=message, details=data)
