"""CLI interface for modsplit."""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from modsplit import __version__
from modsplit.config import Config
from modsplit.core import ParseError, process_source, write_outputs
from modsplit import debug
from modsplit.debug import debug_log, setup_debug_logger

console = Console()

# esprima and the passes recurse once per nesting level
_RECURSION_LIMIT = 20000


def print_summary(input_name: str, result, written: list[Path]) -> None:
    """Print the processing summary table."""
    table = Table(title="Processing Summary")
    table.add_column("Module File")
    table.add_column("Entry Point")
    table.add_column("Source Path")

    for artifact in result.artifacts:
        table.add_row(artifact.file_name, f"{artifact.symbol}()", artifact.module_path)

    console.print(table)
    stats = result.stats
    console.print(
        f"Created {stats['modules_extracted']} files, skipped {stats['calls_skipped']} calls, "
        f"folded {stats['conditions_folded']} conditions, reordered {stats['loops_reordered']} loops"
    )
    if written:
        console.print(f"\nModified {input_name} saved as: {written[-1].name}")


@click.command()
@click.version_option(version=__version__)
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-fold", is_flag=True, help="Disable constant condition folding")
@click.option("--no-reorder", is_flag=True, help="Disable array-permutation switch reordering")
@click.option("--dry-run", is_flag=True, help="Analyze and report without writing any file")
@click.option("--debug", "debug_enabled", is_flag=True, help="Enable debug logging to file")
@click.option("--debug-file", type=click.Path(path_type=Path), help="Debug log file path (default: modsplit_debug_TIMESTAMP.log)")
def main(
    input_path: Path,
    no_fold: bool,
    no_reorder: bool,
    dry_run: bool,
    debug_enabled: bool,
    debug_file: Optional[Path],
):
    """Split a System.register bundle into module files and undo control-flow obfuscation.

    Module files are written beside INPUT_PATH, together with
    <name>_modified.<ext> which requires them.
    """
    if debug_enabled or debug_file:
        setup_debug_logger(debug_file)
        console.print(f"[yellow]Debug logging enabled: {debug.debug_log_file}[/yellow]")

    sys.setrecursionlimit(max(sys.getrecursionlimit(), _RECURSION_LIMIT))

    config_kwargs = {}
    if no_fold:
        config_kwargs["fold_conditions"] = False
    if no_reorder:
        config_kwargs["reorder_switches"] = False
    config = Config(**config_kwargs)

    debug_log("info", "Configuration loaded", config.model_dump())
    console.print(f"Processing {input_path.name} in: {input_path.parent}")

    try:
        source_code = input_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Error reading {input_path.name}: {escape(str(e))}[/red]")
        debug_log("error", "Input unreadable", {"error": str(e)})
        raise SystemExit(1)

    try:
        result = process_source(source_code, config)
    except ParseError as e:
        console.print(f"[red]Error parsing {input_path.name}: {escape(str(e))}[/red]")
        debug_log("error", "Parse failed", {"error": str(e)})
        raise SystemExit(1)

    written: list[Path] = []
    if dry_run:
        console.print("[yellow]Dry run: no files written[/yellow]")
    else:
        written = write_outputs(input_path, result, config)

    print_summary(input_path.name, result, written)
    debug_log("info", "Processing complete", {"written": [str(p) for p in written], **result.stats})

    if debug_enabled or debug_file:
        console.print(f"\n[yellow]Debug log saved to: {debug.debug_log_file}[/yellow]")


if __name__ == "__main__":
    main()
