from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MAX_INPUT_BYTES = 2 * 1024 * 1024
DEFAULT_MAX_GRAPH_NODES = 500
ALLOWED_EXTENSIONS = (".yml", ".yaml", ".groovy")


@dataclass(frozen=True)
class Limits:
    """Resource ceilings enforced around a single parse call."""
    max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES
    max_nodes: int = DEFAULT_MAX_GRAPH_NODES

    @classmethod
    def from_env(cls) -> Limits:
        return cls(
            max_input_bytes=int(os.environ.get("PIPEVIZ_MAX_INPUT_BYTES", str(DEFAULT_MAX_INPUT_BYTES))),
            max_nodes=int(os.environ.get("PIPEVIZ_MAX_GRAPH_NODES", str(DEFAULT_MAX_GRAPH_NODES))),
        )


DEFAULT_LIMITS = Limits.from_env()
