# normalize.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple

from .dag import check_acyclic
from .errors import NormalizationError
from .model import (
    ApprovalGate,
    Job,
    Pipeline,
    PipelineFormat,
    RawJob,
    RawPipeline,
    Stage,
    StageKind,
    Step,
)
from .parsers.gitlab import PARALLEL_INDEX

logger = logging.getLogger(__name__)

# Where a rejected approval leads when there is no later stage to rejoin.
# A rejected Jenkins `input` aborts the build, so Jenkins always goes there.
TERMINAL_STAGE = {
    PipelineFormat.JENKINS: "Aborted",
    PipelineFormat.GITHUB_ACTIONS: "Skipped",
    PipelineFormat.GITLAB_CI: "Skipped",
}


def unique_name(name: str, taken: Set[str]) -> str:
    """Return `name`, or `name (2)`, `name (3)`... when it is already taken."""
    if name not in taken:
        taken.add(name)
        return name
    n = 2
    while f"{name} ({n})" in taken:
        n += 1
    out = f"{name} ({n})"
    taken.add(out)
    return out


# ---------------------------------------------------------------------
# Matrix expansion
# ---------------------------------------------------------------------

def _variant_name(job: RawJob, combo: Tuple[Tuple[str, str], ...], fmt: PipelineFormat) -> str:
    values = [v for _, v in combo]
    if fmt is PipelineFormat.GITLAB_CI:
        if len(combo) == 1 and combo[0][0] == PARALLEL_INDEX:
            return f"{job.name} {values[0]}"
        return f"{job.name}: [{', '.join(values)}]"
    return f"{job.name} ({', '.join(values)})"


def expand_matrix(jobs: Tuple[RawJob, ...], fmt: PipelineFormat) -> Tuple[List[RawJob], Dict[str, List[str]]]:
    """
    Replace matrix jobs by one job per combination.

    Returns the expanded jobs plus origin -> variant names, so `needs` on a
    matrix job can be widened to all of its variants.
    """
    taken: Set[str] = {j.name for j in jobs if not j.matrix}
    out: List[RawJob] = []
    variants: Dict[str, List[str]] = {}

    for job in jobs:
        if not job.matrix:
            out.append(job)
            variants[job.name] = [job.name]
            continue
        names: List[str] = []
        for combo in job.matrix:
            name = unique_name(_variant_name(job, combo, fmt), taken)
            names.append(name)
            out.append(replace(job, name=name, matrix=(), parallel=True))
        variants[job.name] = names

    if any(j.needs for j in out):
        out = [
            replace(j, needs=tuple(v for n in j.needs for v in variants.get(n, [n])))
            for j in out
        ]
    return out, variants


# ---------------------------------------------------------------------
# Stage grouping
# ---------------------------------------------------------------------

@dataclass
class _Group:
    name: str
    jobs: List[RawJob]
    condition: Optional[str] = None


def _group_by_needs(jobs: List[RawJob], origin: Dict[str, str]) -> List[_Group]:
    names = [j.name for j in jobs]
    levels = check_acyclic(names, {j.name: j.needs for j in jobs})
    by_name = {j.name: j for j in jobs}

    groups: List[_Group] = []
    for idx, level in enumerate(levels):
        origins = {origin[n] for n in level}
        if len(level) == 1:
            name = level[0]
        elif len(origins) == 1:
            name = origins.pop()
        else:
            name = f"Stage {idx + 1}"
        groups.append(_Group(name=name, jobs=[by_name[n] for n in level]))
    return groups


def _group_by_stage(raw: RawPipeline, jobs: List[RawJob]) -> List[_Group]:
    conditions = dict(raw.stage_conditions)
    groups: List[_Group] = []
    for stage in dict.fromkeys(raw.stage_order):
        members = [j for j in jobs if j.stage == stage]
        if members:
            groups.append(_Group(name=stage, jobs=members, condition=conditions.get(stage)))
    return groups


# ---------------------------------------------------------------------
# Approval gates
# ---------------------------------------------------------------------

@dataclass
class _Slot:
    """A stage being assembled; gates get their targets in a second pass."""
    kind: StageKind
    name: str = ""
    jobs: List[RawJob] = field(default_factory=list)
    condition: Optional[str] = None
    prompt: str = ""


def _prompt(jobs: List[RawJob]) -> str:
    for job in jobs:
        if job.prompt:
            return job.prompt
    return f"Manual approval to run {', '.join(j.name for j in jobs)}"


def _split_manual(groups: List[_Group], taken: Set[str]) -> List[_Slot]:
    slots: List[_Slot] = []
    for group in groups:
        auto = [j for j in group.jobs if not j.manual]
        manual = [j for j in group.jobs if j.manual]

        if auto:
            slots.append(_Slot(StageKind.STANDARD, unique_name(group.name, taken), auto, group.condition))
        if not manual:
            continue

        gated_name = unique_name(f"{group.name} (manual)" if auto else group.name, taken)
        gate = _Slot(StageKind.APPROVAL, unique_name(f"Approve {gated_name}", taken), prompt=_prompt(manual))
        slots.append(gate)
        slots.append(_Slot(StageKind.STANDARD, gated_name, manual, group.condition))
    return slots


def _convert_job(job: RawJob, taken: Set[str], parallel: bool) -> Job:
    return Job(
        name=unique_name(job.name, taken),
        steps=tuple(
            Step(name=s.name, commands=s.commands, condition=s.condition, continue_on_failure=s.continue_on_failure)
            for s in job.steps
        ),
        parallel=parallel,
        condition=job.condition,
        allow_failure=job.allow_failure,
        needs=job.needs,
    )


def _assemble(slots: List[_Slot], fmt: PipelineFormat, taken: Set[str]) -> Tuple[Stage, ...]:
    terminal: Optional[str] = None
    stages: List[Stage] = []

    for idx, slot in enumerate(slots):
        if slot.kind is StageKind.APPROVAL:
            approve = slots[idx + 1].name
            rejoin = slots[idx + 2].name if idx + 2 < len(slots) else None
            if fmt is PipelineFormat.JENKINS or rejoin is None:
                if terminal is None:
                    terminal = unique_name(TERMINAL_STAGE[fmt], taken)
                reject = terminal
            else:
                reject = rejoin
            stages.append(Stage(
                name=slot.name,
                kind=StageKind.APPROVAL,
                gate=ApprovalGate(prompt=slot.prompt, approve=approve, reject=reject),
            ))
            logger.debug("Approval gate %r: approved -> %r, rejected -> %r", slot.name, approve, reject)
            continue

        job_names: Set[str] = set()
        parallel = len(slot.jobs) > 1
        stages.append(Stage(
            name=slot.name,
            jobs=tuple(_convert_job(j, job_names, parallel) for j in slot.jobs),
            condition=slot.condition,
        ))

    if terminal is not None:
        stages.append(Stage(name=terminal, kind=StageKind.TERMINAL))
    return tuple(stages)


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def normalize(raw: RawPipeline, fmt: PipelineFormat, *, source_hash: str = "") -> Pipeline:
    """
    Reconcile a parser's RawPipeline into the canonical Pipeline.

    - GitHub Actions: `needs` chains become sequential stages (topological levels)
    - GitLab CI / Jenkins: declared stage order, empty stages dropped
    - matrix / parallel jobs expanded into sibling jobs
    - manual jobs (`when: manual`, `input`) placed behind an approval stage
    - names suffixed only on real collisions
    """
    if raw.format is not fmt:
        raise NormalizationError(f"raw pipeline is {raw.format.value}, asked to normalize as {fmt.value}")
    if not raw.jobs:
        raise NormalizationError("pipeline has no jobs")

    jobs, variants = expand_matrix(raw.jobs, fmt)
    origin = {v: o for o, names in variants.items() for v in names}

    if fmt is PipelineFormat.GITHUB_ACTIONS:
        groups = _group_by_needs(jobs, origin)
    else:
        if fmt is PipelineFormat.GITLAB_CI:
            check_acyclic([j.name for j in jobs], {j.name: j.needs for j in jobs})
        groups = _group_by_stage(raw, jobs)

    taken: Set[str] = set()
    slots = _split_manual(groups, taken)
    stages = _assemble(slots, fmt, taken)

    logger.debug("Normalized %s pipeline: %d stage(s)", fmt.value, len(stages))

    return Pipeline(
        format=fmt,
        stages=stages,
        source_hash=source_hash,
        name=raw.name,
        includes=raw.includes,
    )
