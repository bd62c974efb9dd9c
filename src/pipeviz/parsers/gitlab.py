# parsers/gitlab.py
from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from ..errors import PipelineSyntaxError
from ..model import PipelineFormat, RawJob, RawPipeline, RawStep
from .yamlsrc import as_list, line_of, load_yaml, text

logger = logging.getLogger(__name__)

DEFAULT_STAGES = ("build", "test", "deploy")
DEFAULT_JOB_STAGE = "test"
PARALLEL_INDEX = "#"  # matrix key used for `parallel: N` copies

# Top-level keys that are configuration, never jobs.
RESERVED_KEYS = {
    "image", "services", "stages", "types", "before_script", "after_script",
    "variables", "cache", "include", "workflow", "default", "spec",
}

# Keys a job inherits from `default:` (script hooks only; the rest is runner config).
INHERITED_SCRIPTS = ("before_script", "after_script")


def _script_lines(value: Any) -> Tuple[str, ...]:
    """`script:` accepts a string or a (possibly nested) list of strings."""
    out: List[str] = []
    for item in as_list(value):
        if isinstance(item, list):
            out.extend(_script_lines(item))
        elif item is not None:
            out.extend(line.rstrip() for line in str(item).splitlines() if line.strip())
    return tuple(out)


def _resolve_extends(name: str, templates: Dict[str, Any], seen: Tuple[str, ...] = ()) -> Dict[str, Any]:
    """Flatten `extends:` chains (deep-merging mappings, later wins)."""
    job = templates[name]
    line = line_of(job)
    if name in seen:
        chain = " -> ".join(seen + (name,))
        raise PipelineSyntaxError(line, f"circular 'extends' chain: {chain}")

    merged: Dict[str, Any] = {}
    for parent in as_list(job.get("extends")):
        parent = str(parent)
        if parent not in templates:
            raise PipelineSyntaxError(line, f"job '{name}' extends unknown job '{parent}'")
        merged = _deep_merge(merged, _resolve_extends(parent, templates, seen + (name,)))

    own = {k: v for k, v in job.items() if k != "extends"}
    return _deep_merge(merged, own)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _condition(job: Dict[str, Any]) -> Optional[str]:
    parts: List[str] = []
    rule_ifs = [str(r["if"]) for r in as_list(job.get("rules")) if isinstance(r, dict) and r.get("if")]
    if rule_ifs:
        parts.append(" || ".join(rule_ifs))
    for key in ("only", "except"):
        value = job.get(key)
        if value is None:
            continue
        if isinstance(value, dict):
            refs = as_list(value.get("refs")) or list(value.keys())
        else:
            refs = as_list(value)
        parts.append(f"{key}: {', '.join(str(r) for r in refs)}")
    return "; ".join(parts) or None


def _is_manual(job: Dict[str, Any]) -> bool:
    if job.get("when") == "manual":
        return True
    return any(isinstance(r, dict) and r.get("when") == "manual" for r in as_list(job.get("rules")))


def _needs(job: Dict[str, Any]) -> Tuple[str, ...]:
    out: List[str] = []
    for need in as_list(job.get("needs")):
        if isinstance(need, dict):
            # cross-project / pipeline artifacts refer outside this file
            if "project" in need or "pipeline" in need:
                continue
            if need.get("job"):
                out.append(str(need["job"]))
        else:
            out.append(str(need))
    return tuple(out)


def _parallel(value: Any, line: int) -> Tuple[Tuple[Tuple[str, str], ...], ...]:
    """`parallel: N` or `parallel: matrix: [...]` -> combinations."""
    if value is None:
        return ()
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 1:
            raise PipelineSyntaxError(line, "parallel must be a positive integer")
        return tuple((((PARALLEL_INDEX, f"{i}/{value}"),) for i in range(1, value + 1)))
    if isinstance(value, dict) and "matrix" in value:
        combos: List[Tuple[Tuple[str, str], ...]] = []
        for entry in as_list(value["matrix"]):
            if not isinstance(entry, dict):
                raise PipelineSyntaxError(line, "parallel:matrix entries must be mappings")
            keys = list(entry.keys())
            values = [[str(v) for v in as_list(entry[k])] for k in keys]
            for row in itertools.product(*values):
                combos.append(tuple(zip(keys, row)))
        return tuple(combos)
    raise PipelineSyntaxError(line, "parallel must be an integer or a 'matrix' mapping")


def _steps(job: Dict[str, Any], defaults: Dict[str, Any]) -> Tuple[RawStep, ...]:
    steps: List[RawStep] = []
    for section in ("before_script", "script", "after_script"):
        value = job.get(section, defaults.get(section)) if section in INHERITED_SCRIPTS else job.get(section)
        commands = _script_lines(value)
        if commands:
            steps.append(RawStep(name=section, commands=commands))
    if not steps and "trigger" in job:
        trigger = job["trigger"]
        if isinstance(trigger, dict):
            target = trigger.get("project") or trigger.get("include")
        else:
            target = trigger
        steps.append(RawStep(name="trigger", commands=(f"trigger: {target}",)))
    return tuple(steps)


def parse(content: str) -> RawPipeline:
    """
    Parse a .gitlab-ci.yml into a RawPipeline.

    Jobs keep their declared `stage`; stage order comes from `stages:`
    (or GitLab's defaults), wrapped by the implicit `.pre` / `.post` stages.
    """
    doc = load_yaml(content)

    declared = doc.get("stages")
    if declared is None:
        stages = list(DEFAULT_STAGES)
    elif isinstance(declared, list):
        stages = list(dict.fromkeys(str(s) for s in declared))  # first occurrence wins
    else:
        raise PipelineSyntaxError(line_of(doc), "'stages' must be a list")
    stage_order = [".pre"] + [s for s in stages if s not in (".pre", ".post")] + [".post"]

    defaults: Dict[str, Any] = {}
    for section in INHERITED_SCRIPTS:
        if section in doc:
            defaults[section] = doc[section]
    if isinstance(doc.get("default"), dict):
        for section in INHERITED_SCRIPTS:
            if section in doc["default"]:
                defaults[section] = doc["default"][section]

    templates = {str(k): v for k, v in doc.items() if k not in RESERVED_KEYS and isinstance(v, dict)}
    for key, value in doc.items():
        if key not in RESERVED_KEYS and not str(key).startswith(".") and not isinstance(value, dict):
            raise PipelineSyntaxError(line_of(doc), f"job '{key}' must be a mapping")

    known_stages: Set[str] = set(stage_order)
    raw_jobs: List[RawJob] = []
    for name, body in templates.items():
        if name.startswith("."):
            continue
        line = line_of(body)
        job = _resolve_extends(name, templates)

        stage = str(job.get("stage", DEFAULT_JOB_STAGE))
        if stage not in known_stages:
            raise PipelineSyntaxError(line, f"job '{name}' uses stage '{stage}' which is not declared in 'stages'")

        steps = _steps(job, defaults)
        if not steps:
            raise PipelineSyntaxError(line, f"job '{name}' has no 'script' or 'trigger'")

        raw_jobs.append(RawJob(
            name=name,
            steps=steps,
            stage=stage,
            needs=_needs(job),
            condition=_condition(job),
            manual=_is_manual(job),
            allow_failure=job.get("allow_failure") is True,
            matrix=_parallel(job.get("parallel"), line),
            line=line,
        ))

    if not raw_jobs:
        raise PipelineSyntaxError(line_of(doc), "configuration defines no jobs")

    includes = []
    for inc in as_list(doc.get("include")):
        if isinstance(inc, dict):
            includes.append(str(next(iter(inc.values()), "")))
        else:
            includes.append(str(inc))

    logger.debug("GitLab CI config: %d job(s) across %d declared stage(s)", len(raw_jobs), len(stages))

    return RawPipeline(
        format=PipelineFormat.GITLAB_CI,
        jobs=tuple(raw_jobs),
        stage_order=tuple(stage_order),
        includes=tuple(includes),
    )
