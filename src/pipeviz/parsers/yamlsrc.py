# parsers/yamlsrc.py
from __future__ import annotations

from typing import Any, Optional

import yaml

from ..errors import PipelineSyntaxError, UnsupportedFeature


class LineDict(dict):
    """A mapping that remembers the 1-based source line it started on."""
    line: int = 1


class _LineLoader(yaml.SafeLoader):
    pass


def _construct_mapping(loader: _LineLoader, node: yaml.MappingNode):
    data = LineDict()
    data.line = node.start_mark.line + 1
    yield data
    data.update(loader.construct_mapping(node))


_LineLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping)


def _mark_line(exc: yaml.YAMLError) -> int:
    mark = getattr(exc, "problem_mark", None) or getattr(exc, "context_mark", None)
    return mark.line + 1 if mark is not None else 1


def load_yaml(content: str) -> LineDict:
    """
    Load a single YAML document whose root must be a mapping.

    Raises:
      PipelineSyntaxError: malformed YAML, empty or too deeply nested document,
        non-mapping root
      UnsupportedFeature: undefined aliases and custom tags (e.g. !reference)
    """
    try:
        data = yaml.load(content, Loader=_LineLoader)
    except yaml.composer.ComposerError as e:
        problem = e.problem or ""
        if "undefined alias" in problem:
            alias = problem.split("undefined alias", 1)[1].strip()
            raise UnsupportedFeature(f"undefined YAML alias {alias}", line=_mark_line(e)) from e
        raise PipelineSyntaxError(_mark_line(e), problem or "malformed YAML") from e
    except yaml.constructor.ConstructorError as e:
        problem = e.problem or ""
        if "constructor for the tag" in problem:
            tag = problem.rsplit(" ", 1)[-1]
            raise UnsupportedFeature(f"YAML tag {tag}", line=_mark_line(e)) from e
        raise PipelineSyntaxError(_mark_line(e), problem or "malformed YAML") from e
    except yaml.MarkedYAMLError as e:
        message = e.problem or e.context or "malformed YAML"
        raise PipelineSyntaxError(_mark_line(e), message) from e
    except yaml.YAMLError as e:
        raise PipelineSyntaxError(1, str(e)) from e
    except RecursionError:
        raise PipelineSyntaxError(1, "document is nested too deeply") from None

    if data is None:
        raise PipelineSyntaxError(1, "document is empty")
    if not isinstance(data, dict):
        raise PipelineSyntaxError(1, f"expected a mapping at the top level, got {type(data).__name__}")
    return data


def line_of(value: Any, default: int = 1) -> int:
    return getattr(value, "line", default)


def as_list(value: Any) -> list:
    """YAML fields that accept either one item or a list of them."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
