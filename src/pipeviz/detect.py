# detect.py
from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Optional, Union

from .errors import UnknownFormat
from .model import PipelineFormat

logger = logging.getLogger(__name__)

FORMAT_ALIASES = {
    "jenkins": PipelineFormat.JENKINS,
    "jenkinsfile": PipelineFormat.JENKINS,
    "groovy": PipelineFormat.JENKINS,
    "github": PipelineFormat.GITHUB_ACTIONS,
    "github-actions": PipelineFormat.GITHUB_ACTIONS,
    "githubactions": PipelineFormat.GITHUB_ACTIONS,
    "gitlab": PipelineFormat.GITLAB_CI,
    "gitlab-ci": PipelineFormat.GITLAB_CI,
    "gitlabci": PipelineFormat.GITLAB_CI,
}

_YAML_EXTENSIONS = (".yml", ".yaml")

_TOP_STAGES = re.compile(r"^stages\s*:", re.MULTILINE)
_TOP_JOBS = re.compile(r"^jobs\s*:", re.MULTILINE)
_TOP_INCLUDE = re.compile(r"^include\s*:", re.MULTILINE)


def coerce_format(hint: Union[PipelineFormat, str], filename: str = "<hint>") -> PipelineFormat:
    """Turn a caller supplied hint ("gitlab", "github-actions", enum...) into a PipelineFormat."""
    if isinstance(hint, PipelineFormat):
        return hint
    key = str(hint).strip().lower().replace("_", "-")
    fmt = FORMAT_ALIASES.get(key) or FORMAT_ALIASES.get(key.replace("-", ""))
    if fmt is None:
        raise UnknownFormat(filename, f"unrecognized format hint {hint!r}")
    return fmt


def detect_format(
    filename: str,
    content: str,
    hint: Optional[Union[PipelineFormat, str]] = None,
) -> PipelineFormat:
    """
    Pick the parser for a file.

    An explicit hint always wins. Otherwise:
      - .groovy / Jenkinsfile            -> Jenkins
      - .yml/.yaml named like *gitlab*   -> GitLab CI
      - .yml/.yaml with top-level stages: plus include: or a gitlab-ci marker,
        or stages: without jobs:         -> GitLab CI
      - .yml/.yaml with top-level jobs:  -> GitHub Actions
    """
    if hint is not None:
        fmt = coerce_format(hint, filename)
        logger.debug("Using format hint %s for %s", fmt.value, filename)
        return fmt

    path = PurePath(filename or "")
    suffix = path.suffix.lower()
    basename = path.name.lower()

    if suffix == ".groovy" or basename.startswith("jenkinsfile"):
        return PipelineFormat.JENKINS

    if suffix not in _YAML_EXTENSIONS:
        raise UnknownFormat(filename, f"unsupported file extension {suffix or '(none)'!r}")

    if "gitlab" in basename:
        return PipelineFormat.GITLAB_CI

    has_stages = bool(_TOP_STAGES.search(content))
    has_jobs = bool(_TOP_JOBS.search(content))

    if not (has_stages or has_jobs):
        raise UnknownFormat(filename, "no top-level 'stages:' or 'jobs:' key")

    if has_stages and (_TOP_INCLUDE.search(content) or "gitlab-ci" in content or not has_jobs):
        return PipelineFormat.GITLAB_CI

    return PipelineFormat.GITHUB_ACTIONS
