# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class PipelineFormat(str, Enum):
    JENKINS = "jenkins"
    GITHUB_ACTIONS = "github"
    GITLAB_CI = "gitlab"


class StageKind(str, Enum):
    STANDARD = "standard"
    APPROVAL = "approval"
    TERMINAL = "terminal"


# ---------------------------------------------------------------------
# Raw (per-format) model, produced by the parser drivers
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class RawStep:
    name: str
    commands: Tuple[str, ...]
    condition: Optional[str] = None
    continue_on_failure: bool = False


@dataclass(frozen=True)
class RawJob:
    """
    A job exactly as the source declares it.

    `stage` is None for formats without explicit stages (GitHub Actions);
    the normalizer derives stage placement from `needs` there.
    """
    name: str
    steps: Tuple[RawStep, ...]
    stage: Optional[str] = None
    needs: Tuple[str, ...] = ()
    condition: Optional[str] = None
    manual: bool = False
    prompt: Optional[str] = None         # approval message (Jenkins input)
    allow_failure: bool = False
    parallel: bool = False               # declared inside a parallel block
    matrix: Tuple[Tuple[Tuple[str, str], ...], ...] = ()  # one entry per combination
    line: Optional[int] = None


@dataclass(frozen=True)
class RawPipeline:
    format: PipelineFormat
    jobs: Tuple[RawJob, ...]
    stage_order: Tuple[str, ...] = ()
    stage_conditions: Tuple[Tuple[str, str], ...] = ()
    name: Optional[str] = None
    includes: Tuple[str, ...] = ()


# ---------------------------------------------------------------------
# Canonical model, produced by the normalizer
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Step:
    """A named group of commands inside a job."""
    name: str
    commands: Tuple[str, ...]
    condition: Optional[str] = None
    continue_on_failure: bool = False


@dataclass(frozen=True)
class Job:
    """A unit of work: ordered steps plus its dependency metadata."""
    name: str
    steps: Tuple[Step, ...]
    parallel: bool = False      # runs alongside sibling jobs of its stage
    condition: Optional[str] = None
    allow_failure: bool = False
    needs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ApprovalGate:
    prompt: str
    approve: str                # stage entered when approved
    reject: str                 # stage entered when rejected
    approve_label: str = "approved"
    reject_label: str = "rejected"


@dataclass(frozen=True)
class Stage:
    name: str
    jobs: Tuple[Job, ...] = ()
    condition: Optional[str] = None
    kind: StageKind = StageKind.STANDARD
    gate: Optional[ApprovalGate] = None

    @property
    def is_approval(self) -> bool:
        return self.kind is StageKind.APPROVAL

    @property
    def is_terminal(self) -> bool:
        return self.kind is StageKind.TERMINAL


@dataclass(frozen=True)
class Pipeline:
    """
    The unified, format-independent pipeline.

    Built once per parse and never mutated afterwards.
    """
    format: PipelineFormat
    stages: Tuple[Stage, ...]
    source_hash: str
    name: Optional[str] = None
    includes: Tuple[str, ...] = field(default_factory=tuple)

    def stage(self, name: str) -> Stage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(name)

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self.stages]
