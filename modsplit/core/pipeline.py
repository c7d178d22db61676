"""Pass sequencing and output assembly."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from tqdm import tqdm

from modsplit.config import Config
from modsplit.debug import debug_log
from modsplit.core.evaluator import fold_conditions
from modsplit.core.extractor import ModuleArtifact, extract_modules
from modsplit.core.parser import ParseError, parse_javascript
from modsplit.core.reorderer import reorder_switches
from modsplit.core.rewriter import apply_replacements, merge_replacements

console = Console()


@dataclass
class PipelineResult:
    """Everything produced from one input snapshot."""
    artifacts: list[ModuleArtifact]
    main_source: str
    stats: dict = field(default_factory=dict)


def build_main_source(rewritten: str, artifacts: list[ModuleArtifact]) -> str:
    """Prefix the rewritten text with one require statement per artifact."""
    if not artifacts:
        return rewritten
    require_statements = "\n".join(a.require_statement for a in artifacts)
    return require_statements + "\n\n" + rewritten


def process_source(source_code: str, config: Optional[Config] = None) -> PipelineResult:
    """Run every pass over one source snapshot.

    The extractor, the reorderer and the condition folder run against the
    same snapshot and their disjoint replacements are applied together.
    When loops were reordered, the result is parsed again and conditions
    are folded against the fresh snapshot.

    Args:
        source_code: Bundled script text
        config: Configuration (defaults when omitted)

    Returns:
        PipelineResult with artifacts in discovery order

    Raises:
        ParseError: if the input does not parse
    """
    config = config or Config()
    parse_result = parse_javascript(source_code)

    extraction = extract_modules(
        parse_result,
        object_name=config.register_object,
        property_name=config.register_property,
        prefix=config.symbol_prefix,
        extension=config.module_extension,
    )
    console.print(
        f"Found {extraction.calls_found} {config.register_object}.{config.register_property} calls"
    )

    reordered = reorder_switches(parse_result, config.math_namespace) if config.reorder_switches else []
    folded = fold_conditions(parse_result, config.math_namespace) if config.fold_conditions else []

    merged = merge_replacements(extraction.replacements, reordered, folded)
    rewritten = apply_replacements(source_code, merged)

    stats = {
        "registration_calls": extraction.calls_found,
        "modules_extracted": len(extraction.artifacts),
        "calls_skipped": len(extraction.skipped),
        "loops_reordered": sum(1 for r in reordered if r in merged),
        "conditions_folded": sum(1 for r in folded if r in merged),
    }

    if stats["loops_reordered"] and config.fold_conditions and config.refold_after_reorder:
        try:
            reparsed = parse_javascript(rewritten)
        except ParseError as e:
            console.print(f"[yellow]Reordered output does not parse, skipping second folding pass: {escape(str(e))}[/yellow]")
            debug_log("warning", "Second folding pass skipped", {"error": str(e)})
        else:
            refolded = fold_conditions(reparsed, config.math_namespace)
            rewritten = apply_replacements(rewritten, refolded)
            stats["conditions_folded"] += len(refolded)

    debug_log("info", "Pipeline finished", stats)
    return PipelineResult(
        artifacts=extraction.artifacts,
        main_source=build_main_source(rewritten, extraction.artifacts),
        stats=stats,
    )


def modified_file_path(input_path: Path, suffix: str = "_modified") -> Path:
    """Path of the rewritten main file, e.g. `game.js` -> `game_modified.js`."""
    return input_path.with_name(f"{input_path.stem}{suffix}{input_path.suffix}")


def save_output(
    code: str,
    output_path: Path,
    create_dirs: bool = True,
) -> None:
    """Save code to file.

    Args:
        code: Source code to save
        output_path: Path to save to
        create_dirs: Whether to create parent directories
    """
    if create_dirs:
        output_path.parent.mkdir(parents=True, exist_ok=True)

    output_path.write_text(code, encoding="utf-8")


def write_outputs(input_path: Path, result: PipelineResult, config: Optional[Config] = None) -> list[Path]:
    """Write artifacts and the rewritten main file beside the input.

    Artifact name collisions overwrite earlier files.

    Returns:
        Written paths, artifacts first and the main file last
    """
    config = config or Config()
    working_directory = input_path.parent
    written: list[Path] = []

    for artifact in tqdm(result.artifacts, desc="Writing modules", unit="file", disable=len(result.artifacts) < 2):
        artifact_path = working_directory / artifact.file_name
        save_output(artifact.content, artifact_path)
        debug_log("info", f"Created: {artifact_path} with method {artifact.symbol}()")
        written.append(artifact_path)

    main_path = modified_file_path(input_path, config.output_suffix)
    save_output(result.main_source, main_path)
    console.print(f"[green]Saved output to: {main_path}[/green]")
    written.append(main_path)
    return written
