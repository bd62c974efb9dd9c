"""Parser drivers: one `parse(content) -> RawPipeline` per source format."""
from __future__ import annotations

from typing import Callable, Dict

from ..model import PipelineFormat, RawPipeline
from . import github, gitlab, jenkins

ParseFn = Callable[[str], RawPipeline]

PARSERS: Dict[PipelineFormat, ParseFn] = {
    PipelineFormat.JENKINS: jenkins.parse,
    PipelineFormat.GITHUB_ACTIONS: github.parse,
    PipelineFormat.GITLAB_CI: gitlab.parse,
}


def get_parser(fmt: PipelineFormat) -> ParseFn:
    return PARSERS[fmt]


__all__ = ["PARSERS", "ParseFn", "get_parser"]
