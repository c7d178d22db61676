"""Statically known identifier bindings tracked during traversal."""

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class LiteralBinding:
    """Identifier initialized from a literal."""
    value: Any


@dataclass(frozen=True)
class MathRef:
    """Identifier aliasing a member of the math namespace, e.g. `Math.log`."""
    name: str

    @property
    def member(self) -> str:
        return self.name.rpartition(".")[2]


@dataclass
class ArrayBinding:
    """Identifier bound to an integer array literal.

    `values` is mutated in place as swap calls are replayed. The object is
    shared between scope copies, like the runtime array it models.
    """
    values: list[int] = field(default_factory=list)
    poisoned: bool = False
    # traversal region of the declaration; swaps elsewhere cannot be replayed
    region: int = 0

    def swap(self, i: int, j: int) -> None:
        self.values[i], self.values[j] = self.values[j], self.values[i]

    def poison(self) -> None:
        self.poisoned = True


@dataclass(frozen=True)
class SwapFunctionMarker:
    """Identifier naming a function that exchanges two elements of its first argument."""
    name: str


Binding = Union[LiteralBinding, MathRef, ArrayBinding, SwapFunctionMarker]
Scope = dict[str, Binding]
