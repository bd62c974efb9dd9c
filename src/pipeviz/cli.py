# cli.py
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from pipeviz.core import ParseOutput, parse_pipeline
from pipeviz.detect import FORMAT_ALIASES, detect_format
from pipeviz.errors import NodeNotFound, PipelineError
from pipeviz.schema import error_document, node_detail_doc, pipeline_document
from pipeviz.settings import ALLOWED_EXTENSIONS, Limits
from pipeviz.ui.console import Console, get_console, set_console

FORMAT_CHOICES = click.Choice(sorted(FORMAT_ALIASES), case_sensitive=False)


def _accepts(path: Path) -> bool:
    return path.suffix.lower() in ALLOWED_EXTENSIONS or path.name.lower().startswith("jenkinsfile")


def read_pipeline_file(path_arg: str, max_bytes: int) -> tuple[Path, str]:
    """
    Read a pipeline file. Extension and size are checked before the
    content is read.

    Raises:
        SystemExit: If the file is missing, has the wrong type or is too big
    """
    console = get_console()
    path = Path(path_arg)

    if not path.is_file():
        console.print_error("File not found", f"Could not find pipeline file: {path_arg}")
        sys.exit(1)

    if not _accepts(path):
        console.print_error(
            "Invalid file format",
            f"{path.name} is not a supported pipeline file.",
            suggestion="Use a .yml, .yaml or .groovy file (or a Jenkinsfile).",
        )
        sys.exit(1)

    size = path.stat().st_size
    if size > max_bytes:
        console.print_error(
            "File too large",
            f"{path.name} is {size} bytes, the limit is {max_bytes} bytes.",
            suggestion="Raise the limit with --max-bytes or PIPEVIZ_MAX_INPUT_BYTES.",
        )
        sys.exit(1)

    try:
        return path, path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print_exception(e)
        sys.exit(1)


def _parse_or_exit(ctx, path_arg: str, fmt: str | None) -> tuple[Path, ParseOutput]:
    console = get_console()
    limits: Limits = ctx.obj["limits"]

    path, content = read_pipeline_file(path_arg, limits.max_input_bytes)
    result = parse_pipeline(content, path.name, fmt, limits=limits)
    if not result.ok:
        if ctx.obj.get("json"):
            click.echo(error_document(result.error).model_dump_json(indent=2))
        console.print_pipeline_error(result.error, path.name)
        sys.exit(1)

    output = result.unwrap()
    console.print_debug(f"source sha256 {output.pipeline.source_hash}")
    return path, output


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--max-bytes", default=None, type=int, help="Maximum input size in bytes")
@click.option("--max-nodes", default=None, type=int, help="Maximum number of diagram nodes")
@click.pass_context
def cli(ctx, debug, max_bytes, max_nodes):
    """pipeviz: turn CI/CD pipeline files into flowchart diagrams."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    limits = Limits.from_env()
    limits = Limits(
        max_input_bytes=max_bytes if max_bytes is not None else limits.max_input_bytes,
        max_nodes=max_nodes if max_nodes is not None else limits.max_nodes,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["limits"] = limits


@cli.command()
@click.argument("path")
@click.option("--format", "fmt", type=FORMAT_CHOICES, default=None, help="Skip detection and parse as this format")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the full export document as JSON")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Write to a file instead of stdout")
@click.pass_context
def render(ctx, path, fmt, as_json, output):
    """Render a pipeline file as a Mermaid flowchart."""
    console = get_console()
    ctx.obj["json"] = as_json
    src, parsed = _parse_or_exit(ctx, path, fmt)

    if as_json:
        doc = pipeline_document(parsed, file_name=src.name, file_size=src.stat().st_size)
        text = doc.model_dump_json(indent=2) + "\n"
    else:
        text = parsed.diagram

    if output:
        try:
            Path(output).write_text(text, encoding="utf-8")
        except OSError as e:
            console.print_exception(e)
            sys.exit(1)
        console.print_parse_summary(src.name, parsed.format.value, len(parsed.pipeline.stages), len(parsed.graph))
        console.print_info(f"Wrote {output}")
    else:
        console.print_diagram(text)


@cli.command()
@click.argument("path")
@click.option("--format", "fmt", type=FORMAT_CHOICES, default=None, help="Skip detection and parse as this format")
@click.pass_context
def nodes(ctx, path, fmt):
    """List diagram node ids (use them with `inspect`)."""
    _src, parsed = _parse_or_exit(ctx, path, fmt)
    get_console().print_nodes(parsed.graph)


@cli.command()
@click.argument("path")
@click.argument("node_id")
@click.option("--format", "fmt", type=FORMAT_CHOICES, default=None, help="Skip detection and parse as this format")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the node detail as JSON")
@click.pass_context
def inspect(ctx, path, node_id, fmt, as_json):
    """Show the jobs/steps behind one diagram node."""
    console = get_console()
    ctx.obj["json"] = as_json
    _src, parsed = _parse_or_exit(ctx, path, fmt)

    try:
        detail = parsed.node_details.lookup(node_id)
    except NodeNotFound as e:
        console.print_error(
            "Unknown node",
            str(e),
            details=[f"Known nodes: {', '.join(parsed.graph.ids)}"],
            suggestion=f"List node ids with:\n  pipeviz nodes {path}",
        )
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(node_detail_doc(parsed, node_id).model_dump(), indent=2))
    else:
        console.print_node_detail(node_id, detail)


@cli.command()
@click.argument("path")
@click.pass_context
def detect(ctx, path):
    """Print which pipeline format a file is detected as."""
    console = get_console()
    limits: Limits = ctx.obj["limits"]
    src, content = read_pipeline_file(path, limits.max_input_bytes)
    try:
        fmt = detect_format(src.name, content)
    except PipelineError as e:
        console.print_pipeline_error(e, src.name)
        sys.exit(1)
    console.print_info(fmt.value)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
