# parsers/github.py
from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Tuple

from ..errors import PipelineSyntaxError
from ..model import PipelineFormat, RawJob, RawPipeline, RawStep
from .yamlsrc import as_list, line_of, load_yaml, text

logger = logging.getLogger(__name__)

Combo = Tuple[Tuple[str, str], ...]


def step_label(step: Dict[str, Any]) -> str:
    if step.get("name"):
        return str(step["name"])
    if "uses" in step:
        return f"uses {step['uses']}"
    if "run" in step:
        first = str(step["run"]).strip().splitlines()[0] if str(step["run"]).strip() else ""
        return f"run: {first[:60]}{'…' if len(first) > 60 else ''}"
    return "step"


def _commands(step: Dict[str, Any]) -> Tuple[str, ...]:
    if "run" in step:
        script = str(step["run"] or "")
        return tuple(line.rstrip() for line in script.splitlines() if line.strip())
    if "uses" in step:
        return (f"uses: {step['uses']}",)
    return ()


def _parse_step(job_id: str, step: Any, index: int, job_line: int) -> RawStep:
    if not isinstance(step, dict):
        raise PipelineSyntaxError(job_line, f"job '{job_id}' step {index + 1} must be a mapping")
    if "run" not in step and "uses" not in step:
        raise PipelineSyntaxError(line_of(step, job_line), f"job '{job_id}' step {index + 1} needs 'run' or 'uses'")
    return RawStep(
        name=step_label(step),
        commands=_commands(step),
        condition=text(step.get("if")),
        continue_on_failure=step.get("continue-on-error") is True,
    )


def _scalar(value: Any) -> str:
    if isinstance(value, dict):
        return ", ".join(f"{k}={v}" for k, v in value.items())
    return text(value) or ""


def expand_matrix(matrix: Any, line: int) -> Tuple[Combo, ...]:
    """
    Expand `strategy.matrix` into concrete combinations.

    Follows the Actions rules: cartesian product of the list-valued keys,
    minus `exclude` entries, then `include` entries extend matching
    combinations or get appended. Expression-valued matrices
    (`${{ fromJSON(...) }}`) are left unexpanded.
    """
    if matrix is None or isinstance(matrix, str):
        return ()
    if not isinstance(matrix, dict):
        raise PipelineSyntaxError(line, "strategy.matrix must be a mapping")

    axes = [(k, v) for k, v in matrix.items() if k not in ("include", "exclude")]
    for key, values in axes:
        if not isinstance(values, list):
            # expression valued axis: cannot enumerate statically
            return ()

    combos: List[Dict[str, str]] = []
    if axes:
        keys = [k for k, _ in axes]
        for values in itertools.product(*[v for _, v in axes]):
            combos.append({k: _scalar(v) for k, v in zip(keys, values)})

    for excl in as_list(matrix.get("exclude")):
        if isinstance(excl, dict):
            wanted = {k: _scalar(v) for k, v in excl.items()}
            combos = [c for c in combos if any(c.get(k) != v for k, v in wanted.items())]

    original_keys = {k for k, _ in axes}
    for incl in as_list(matrix.get("include")):
        if not isinstance(incl, dict):
            continue
        extra = {k: _scalar(v) for k, v in incl.items()}
        matched = False
        for combo in combos:
            if all(combo.get(k) == v for k, v in extra.items() if k in original_keys):
                for k, v in extra.items():
                    if k not in original_keys:
                        combo.setdefault(k, v)
                matched = True
        if not matched:
            combos.append(extra)

    return tuple(tuple(c.items()) for c in combos)


def _parse_job(job_id: str, job: Any, root_line: int) -> RawJob:
    if not isinstance(job, dict):
        raise PipelineSyntaxError(root_line, f"job '{job_id}' must be a mapping")
    line = line_of(job, root_line)

    if "uses" in job:
        steps = (RawStep(name=f"uses {job['uses']}", commands=(f"uses: {job['uses']}",)),)
    else:
        raw_steps = job.get("steps")
        if not isinstance(raw_steps, list) or not raw_steps:
            raise PipelineSyntaxError(line, f"job '{job_id}' must define a non-empty 'steps' list")
        steps = tuple(_parse_step(job_id, s, i, line) for i, s in enumerate(raw_steps))

    strategy = job.get("strategy") or {}
    matrix = expand_matrix(strategy.get("matrix"), line) if isinstance(strategy, dict) else ()

    return RawJob(
        name=str(job_id),
        steps=steps,
        needs=tuple(str(n) for n in as_list(job.get("needs"))),
        condition=text(job.get("if")),
        allow_failure=job.get("continue-on-error") is True,
        matrix=matrix,
        line=line,
    )


def parse(content: str) -> RawPipeline:
    """Parse a GitHub Actions workflow into a RawPipeline (one RawJob per `jobs` entry)."""
    doc = load_yaml(content)

    jobs = doc.get("jobs")
    if not isinstance(jobs, dict) or not jobs:
        raise PipelineSyntaxError(doc.line, "workflow must define a non-empty 'jobs' mapping")

    raw_jobs = tuple(_parse_job(job_id, job, line_of(jobs, doc.line)) for job_id, job in jobs.items())
    logger.debug("GitHub Actions workflow: %d job(s)", len(raw_jobs))

    return RawPipeline(
        format=PipelineFormat.GITHUB_ACTIONS,
        jobs=raw_jobs,
        name=text(doc.get("name")),
    )
