"""Module registration call extraction."""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape

from modsplit.debug import debug_log
from modsplit.core.parser import ParseResult, Span, is_static_member, node_type, span_of, walk
from modsplit.core.rewriter import Replacement

console = Console()

_PATH_SEPARATORS = ("\\", "/", ":")
_LEADING_JUNK_RE = re.compile(r"^[^A-Za-z0-9_.\-]+")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_]")
_UNDERSCORE_RUN_RE = re.compile(r"_{2,}")

ARTIFACT_TEMPLATE = """// Generated from {module_path}
function {symbol}() {{
    {body}
}}

module.exports = {{ {symbol} }};
"""


@dataclass
class ModuleArtifact:
    """A standalone module recovered from one registration call."""
    module_path: str
    file_name: str
    symbol: str
    content: str
    span: Span

    @property
    def require_statement(self) -> str:
        return f"const {{ {self.symbol} }} = require('./{self.file_name}');"


@dataclass
class ExtractionResult:
    """Artifacts and main-file replacements produced by one extraction."""
    artifacts: list[ModuleArtifact] = field(default_factory=list)
    replacements: list[Replacement] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    calls_found: int = 0


def extract_file_name(module_path: str) -> Optional[str]:
    r"""Extract a bare file name from any path format.

    Examples:
        "chunk:\\SomeFolder\\FileName.ts" -> "FileName.ts"
        "src/components/Button.tsx" -> "Button.tsx"
        "chunks:///_virtual/util.mjs_cjs=&original=.js" -> "util.mjs_cjs=&original=.js"
    """
    file_name = module_path.replace("'", "").replace('"', "")
    for separator in _PATH_SEPARATORS:
        file_name = file_name.split(separator)[-1]
    file_name = _LEADING_JUNK_RE.sub("", file_name)
    return file_name or None


def _ensure_identifier_start(name: str) -> str:
    if name and not (name[0].isascii() and (name[0].isalpha() or name[0] == "_")):
        return "_" + name
    return name


def sanitize_base_name(file_name: str) -> Optional[str]:
    """Turn a file name into a base name safe for files and identifiers.

    The extension (after the last dot) is dropped, unsafe characters become
    underscores, underscore runs collapse and edge underscores are trimmed.
    """
    base, dot, _ext = file_name.rpartition(".")
    if not dot:
        base = file_name
    base = _UNSAFE_CHARS_RE.sub("_", base)
    base = _UNDERSCORE_RUN_RE.sub("_", base).strip("_")
    if not base:
        return None
    return _ensure_identifier_start(base)


def create_symbol_name(base_name: str, prefix: str = "Register") -> str:
    """Create the entry point name for a module, e.g. `util` -> `RegisterUtil`."""
    return _ensure_identifier_start(prefix + base_name[:1].upper() + base_name[1:])


def find_registration_calls(program: Any, object_name: str = "System", property_name: str = "register") -> list[Any]:
    """Collect every `<object>.<property>(...)` call in source order."""
    return [
        node for node in walk(program)
        if node_type(node) == "CallExpression"
        and is_static_member(node.callee, object_name, property_name)
    ]


def build_artifact(
    module_path: str,
    call_text: str,
    span: Span,
    prefix: str = "Register",
    extension: str = "js",
) -> Optional[ModuleArtifact]:
    """Build the artifact for one registration call, or None if no name is derivable."""
    file_name = extract_file_name(module_path)
    if not file_name:
        return None
    base_name = sanitize_base_name(file_name)
    if not base_name:
        return None
    symbol = create_symbol_name(base_name, prefix)
    content = ARTIFACT_TEMPLATE.format(module_path=module_path, symbol=symbol, body=call_text)
    return ModuleArtifact(
        module_path=module_path,
        file_name=f"{base_name}.{extension}",
        symbol=symbol,
        content=content,
        span=span,
    )


def extract_modules(
    parse_result: ParseResult,
    object_name: str = "System",
    property_name: str = "register",
    prefix: str = "Register",
    extension: str = "js",
) -> ExtractionResult:
    """Slice every registration call into a module artifact.

    Each call yields exactly one artifact and one replacement, or is
    skipped entirely with a diagnostic.

    Args:
        parse_result: Parsed source snapshot
        object_name: Object identifier of the registration callee
        property_name: Property identifier of the registration callee
        prefix: Entry point name prefix
        extension: Artifact file extension

    Returns:
        ExtractionResult with artifacts in discovery order
    """
    source_code = parse_result.source_code
    calls = find_registration_calls(parse_result.program, object_name, property_name)
    result = ExtractionResult(calls_found=len(calls))
    accepted_spans: list[Span] = []

    def skip(index: int, reason: str) -> None:
        message = f"Skipping call {index}: {reason}"
        console.print(f"[yellow]{escape(message)}[/yellow]")
        debug_log("info", message)
        result.skipped.append(message)

    for index, call in enumerate(calls, start=1):
        span = span_of(call)
        if any(outer.contains(span) for outer in accepted_spans):
            skip(index, "Nested inside an extracted registration call")
            continue

        arguments = call.arguments or []
        if not arguments:
            skip(index, "No arguments found")
            continue

        first_arg = arguments[0]
        if node_type(first_arg) != "Literal" or getattr(first_arg, "regex", None) is not None:
            skip(index, f"First argument is not a string literal (type: {node_type(first_arg)})")
            continue
        module_path = first_arg.value
        if not isinstance(module_path, str):
            skip(index, "First argument is not a string")
            continue

        call_text = source_code[span.start:span.end]
        artifact = build_artifact(module_path, call_text, span, prefix, extension)
        if artifact is None:
            skip(index, f'Could not derive a module name from "{module_path}"')
            continue

        console.print(f"[blue]Processing:[/blue] {escape(module_path)} -> {artifact.file_name}")
        result.artifacts.append(artifact)
        result.replacements.append(Replacement(span.start, span.end, f"{artifact.symbol}()"))
        accepted_spans.append(span)

    debug_log("info", "Module extraction finished", {
        "calls_found": result.calls_found,
        "artifacts": [a.file_name for a in result.artifacts],
        "skipped": len(result.skipped),
    })
    return result
