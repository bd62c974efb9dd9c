"""Console output formatting utilities for pipeviz."""

from __future__ import annotations

import sys
from typing import Optional

from ..errors import PipelineError
from ..graph import Graph, NodeDetail


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_parse_summary(self, file_name: str, file_type: str, stage_count: int, node_count: int) -> None:
        """Print a one-glance summary of a parsed pipeline (to stderr, keeps stdout clean)."""
        print(f"FILE: {file_name}", file=sys.stderr)
        print(f"Format: {file_type}", file=sys.stderr)
        print(f"Stages: {stage_count}", file=sys.stderr)
        print(f"Nodes: {node_count}", file=sys.stderr)

    def print_diagram(self, diagram: str) -> None:
        sys.stdout.write(diagram)

    def print_nodes(self, graph: Graph) -> None:
        """Print node ids with their kind and label."""
        width = max((len(n.id) for n in graph.nodes), default=0)
        for node in graph.nodes:
            print(f"{node.id.ljust(width)}  {node.kind.value:<8}  {node.label}")

    def print_node_detail(self, node_id: str, detail: NodeDetail) -> None:
        """Print the steps behind one diagram node."""
        self.print_header(f"{detail.name} [{node_id}]")
        if not detail.steps:
            print("(no steps)")
            return
        for idx, step in enumerate(detail.steps, start=1):
            print(f"{idx}. {step.name}")
            for line in step.command.splitlines() or [""]:
                print(f"     $ {line}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_pipeline_error(self, error: PipelineError, file_name: str) -> None:
        """Print a core error with a hint matching its kind."""
        hints = {
            "UnknownFormat": "Pass the format explicitly:\n  pipeviz render FILE --format gitlab",
            "SizeLimitExceeded": "Split the pipeline or raise the limit with --max-bytes.",
            "GraphTooLarge": "Raise the node limit with --max-nodes.",
        }
        details = [f"{k}: {v}" for k, v in error.to_dict().items() if k not in ("kind", "message")]
        self.print_error(
            error.kind,
            f"{file_name}: {error}",
            details=details if self.debug else None,
            suggestion=hints.get(error.kind),
        )

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
