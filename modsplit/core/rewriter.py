"""Span-addressed text rewriting."""

from dataclasses import dataclass
from typing import Iterable

from modsplit.debug import debug_log
from modsplit.core.parser import Span


class OverlappingReplacementError(ValueError):
    """Raised when two replacements for one snapshot share offsets."""


@dataclass(frozen=True)
class Replacement:
    """A text substitution over `[start, end)` of one source snapshot."""
    start: int
    end: int
    text: str

    @property
    def span(self) -> Span:
        return Span(self.start, self.end)


def _check_disjoint(ordered: list[Replacement]) -> None:
    """Check a list sorted by descending start for overlaps."""
    for later, earlier in zip(ordered, ordered[1:]):
        # zero-width inserts at the same offset would splice in arbitrary order
        if earlier.end > later.start or earlier.start == later.start:
            raise OverlappingReplacementError(
                f"Replacements [{earlier.start}, {earlier.end}) and "
                f"[{later.start}, {later.end}) overlap"
            )


def apply_replacements(source_code: str, replacements: Iterable[Replacement]) -> str:
    """Apply replacements to the snapshot they were computed against.

    Replacements are spliced in descending start order, so every edit
    only touches text after all pending edits.

    Args:
        source_code: The snapshot the replacements refer to
        replacements: Pairwise-disjoint replacements

    Returns:
        Rewritten source code
    """
    ordered = sorted(replacements, key=lambda r: (r.start, r.end), reverse=True)
    for replacement in ordered:
        if not 0 <= replacement.start <= replacement.end <= len(source_code):
            raise ValueError(
                f"Replacement [{replacement.start}, {replacement.end}) is outside "
                f"a snapshot of length {len(source_code)}"
            )
    _check_disjoint(ordered)

    result = source_code
    for replacement in ordered:
        result = result[:replacement.start] + replacement.text + result[replacement.end:]
    return result


def merge_replacements(*replacement_sets: Iterable[Replacement]) -> list[Replacement]:
    """Merge replacement sets computed against one snapshot.

    Sets are taken in priority order: a replacement overlapping one that
    was already accepted is dropped. Exact duplicates collapse into one.

    Returns:
        Disjoint replacements sorted by start offset
    """
    accepted: list[Replacement] = []
    for replacement_set in replacement_sets:
        for replacement in replacement_set:
            if replacement in accepted:
                continue
            clash = next((r for r in accepted if _conflicts(r, replacement)), None)
            if clash is not None:
                debug_log("debug", "Dropped overlapping replacement", {
                    "dropped": [replacement.start, replacement.end],
                    "kept": [clash.start, clash.end],
                })
                continue
            accepted.append(replacement)
    accepted.sort(key=lambda r: r.start)
    return accepted


def _conflicts(a: Replacement, b: Replacement) -> bool:
    if a.start == b.start:
        return True
    return a.span.overlaps(b.span)
