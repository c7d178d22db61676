"""JavaScript AST parsing using esprima."""

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

import esprima
from esprima.error_handler import Error as EsprimaError
from rich.console import Console

console = Console()

# Node fields that never hold child nodes
_NON_CHILD_FIELDS = frozenset({"type", "range", "loc", "errors", "comments", "tokens", "regex"})


@dataclass
class Position:
    """Position in source code."""
    row: int
    column: int


@dataclass(frozen=True)
class Span:
    """Half-open `[start, end)` offset range in a source snapshot."""
    start: int
    end: int

    def contains(self, other: "Span") -> bool:
        """Check if this span completely contains another span."""
        return self.start <= other.start and self.end >= other.end

    def overlaps(self, other: "Span") -> bool:
        """Check if this span shares at least one offset with another span."""
        return self.start < other.end and other.start < self.end


class ParseError(Exception):
    """Raised when the source cannot be parsed."""

    def __init__(self, message: str, position: Optional[Position] = None, index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.position = position
        self.index = index

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} (line {self.position.row}, column {self.position.column})"


@dataclass
class ParseResult:
    """Result of parsing JavaScript code."""
    source_code: str
    program: Any
    tolerated_errors: list[str] = field(default_factory=list)


def _parse_error_from(error: EsprimaError) -> ParseError:
    line = getattr(error, "lineNumber", None)
    column = getattr(error, "column", None)
    description = getattr(error, "description", None) or str(error)
    position = Position(row=line, column=column) if line is not None else None
    return ParseError(description, position=position, index=getattr(error, "index", None))


def parse_javascript(source_code: str) -> ParseResult:
    """Parse JavaScript code into an AST with offset ranges.

    The grammar is permissive: top-level `return` and stray import/export
    tokens are tolerated so packer output survives parsing.

    Args:
        source_code: The JavaScript source code to parse

    Returns:
        ParseResult holding the Program node

    Raises:
        ParseError: if neither script nor module grammar accepts the source
    """
    options = {"range": True, "tolerant": True}
    try:
        program = esprima.parseScript(source_code, options)
    except EsprimaError as script_error:
        try:
            program = esprima.parseModule(source_code, options)
        except EsprimaError:
            raise _parse_error_from(script_error) from script_error

    tolerated = [
        getattr(error, "description", None) or str(error)
        for error in (getattr(program, "errors", None) or [])
    ]
    if tolerated:
        console.print(f"[dim]Tolerated {len(tolerated)} parse error(s)[/dim]")

    return ParseResult(
        source_code=source_code,
        program=program,
        tolerated_errors=tolerated,
    )


def is_node(value: Any) -> bool:
    """Whether a value is an AST node."""
    return isinstance(getattr(value, "type", None), str)


def node_type(node: Any) -> Optional[str]:
    """Type tag of a node, or None for non-nodes."""
    return getattr(node, "type", None) if is_node(node) else None


def span_of(node: Any) -> Span:
    """Offset span of a node."""
    start, end = node.range
    return Span(start, end)


def source_of(source_code: str, node: Any) -> str:
    """Verbatim source text of a node."""
    span = span_of(node)
    return source_code[span.start:span.end]


def iter_fields(node: Any) -> Iterator[tuple[str, Any]]:
    """Yield `(name, value)` for every child field of a node, in declaration order."""
    for name, value in vars(node).items():
        if name in _NON_CHILD_FIELDS or name.startswith("_"):
            continue
        yield name, value


def iter_child_nodes(node: Any) -> Iterator[Any]:
    """Yield the direct child nodes of a node in source order."""
    for _name, value in iter_fields(node):
        if isinstance(value, list):
            for item in value:
                if is_node(item):
                    yield item
        elif is_node(value):
            yield value


def walk(node: Any) -> Iterator[Any]:
    """Yield a node and all its descendants in pre-order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        children = list(iter_child_nodes(current))
        stack.extend(reversed(children))


def is_identifier(node: Any, name: Optional[str] = None) -> bool:
    """Whether a node is an Identifier, optionally with a given name."""
    if node_type(node) != "Identifier":
        return False
    return name is None or node.name == name


def is_static_member(node: Any, object_name: Optional[str] = None, property_name: Optional[str] = None) -> bool:
    """Whether a node is a non-computed `object.property` member access."""
    if node_type(node) != "MemberExpression" or getattr(node, "computed", False):
        return False
    return is_identifier(node.object, object_name) and is_identifier(node.property, property_name)
