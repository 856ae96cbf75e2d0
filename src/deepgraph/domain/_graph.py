"""
Computation-graph model for deepgraph.

This module defines the plain data types that describe a computation graph:

- `OpTy`: the discriminant of an op variant, used as a dispatch key
- `Feed` / `Internal`: the two kinds of `Input` an op can read from
- `Op` and its variants (`Add`, `Sub`, `Mul`, `Square`, `TrainConst`, `Const`)
- `Graph`: an append-only list of ops forming a DAG

Design notes
------------
- Node indices are positions in `Graph.ops` and are only meaningful relative
  to the graph that holds them.
- Every `Internal` operand of the op at index ``i`` points at a node ``< i``.
  This is guaranteed by construction order (ops are only ever appended), not
  by runtime validation.
- Ops are frozen dataclasses. Merging graphs produces shifted *copies* of the
  merged ops rather than mutating them.
- This module has no behavior beyond structure and must not depend on any
  numeric library.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

if TYPE_CHECKING:
    from ._immediate import ImOp


class OpTy(Enum):
    """
    Discriminant of an `Op` variant.

    An `OpTy` carries no operand data. Backends key their handler tables by
    it and errors use it to name the offending operation.
    """

    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    SQUARE = "square"
    TRAIN_CONST = "train_const"
    CONST = "const"


@dataclass(frozen=True, order=True)
class Internal:
    """
    Address of one output slot of one node in a graph.

    Attributes
    ----------
    node : int
        Index of the producing op in `Graph.ops`.
    output : int
        Index of the output slot of that op.
    """

    node: int
    output: int = 0

    def shifted(self, shift: int) -> "Internal":
        return Internal(self.node + shift, self.output)


@dataclass(frozen=True)
class Feed:
    """Reference to an externally supplied, named input tensor."""

    name: str

    def shifted(self, shift: int) -> "Feed":
        # Feeds are addressed by name, not by position.
        return self


Input = Union[Feed, Internal]


def as_input(value: Union[str, Input]) -> Input:
    """
    Coerce a feed name or an existing `Input` into an `Input`.

    Raises
    ------
    TypeError
        If `value` is neither a string nor an `Input`.
    """
    if isinstance(value, str):
        return Feed(value)
    if isinstance(value, (Feed, Internal)):
        return value
    raise TypeError(f"expected a feed name or an Input, got {type(value)!r}")


@dataclass(frozen=True)
class Op:
    """
    Base class of all graph operations.

    Subclasses declare their discriminant in `ty` and list their operand
    fields in `_operand_fields`. Every other field is static data (shape,
    fill value) handed to the backend when it initializes state.
    """

    ty: ClassVar[OpTy]
    _operand_fields: ClassVar[Tuple[str, ...]] = ()

    @property
    def inputs(self) -> Tuple[Input, ...]:
        """Operand inputs in operand order (empty for source ops)."""
        return tuple(getattr(self, name) for name in self._operand_fields)

    @property
    def arity(self) -> int:
        return len(self._operand_fields)

    def shifted(self, shift: int) -> "Op":
        """
        Return a copy of this op with every `Internal` operand moved by `shift`.
        """
        if not self._operand_fields:
            return self
        changes = {
            name: getattr(self, name).shifted(shift) for name in self._operand_fields
        }
        return type(self)(**{**self._static_fields(), **changes})

    def immediate(self, tensors: Sequence[Any]) -> "ImOp":
        """
        Build the immediate op of this variant from resolved operand tensors.

        Raises
        ------
        AssertionError
            If the number of tensors does not match the op's arity.
        """
        from ._immediate import immediate_type

        if len(tensors) != self.arity:
            raise AssertionError(
                f"{self.ty} takes {self.arity} operand(s), got {len(tensors)}"
            )
        return immediate_type(self.ty)(*tensors)

    def _static_fields(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Add(Op):
    ty: ClassVar[OpTy] = OpTy.ADD
    _operand_fields: ClassVar[Tuple[str, ...]] = ("a", "b")

    a: Input
    b: Input


@dataclass(frozen=True)
class Sub(Op):
    ty: ClassVar[OpTy] = OpTy.SUB
    _operand_fields: ClassVar[Tuple[str, ...]] = ("a", "b")

    a: Input
    b: Input


@dataclass(frozen=True)
class Mul(Op):
    ty: ClassVar[OpTy] = OpTy.MUL
    _operand_fields: ClassVar[Tuple[str, ...]] = ("a", "b")

    a: Input
    b: Input


@dataclass(frozen=True)
class Square(Op):
    ty: ClassVar[OpTy] = OpTy.SQUARE
    _operand_fields: ClassVar[Tuple[str, ...]] = ("a",)

    a: Input


@dataclass(frozen=True)
class TrainConst(Op):
    """
    Trainable parameter source.

    Takes no inputs. Its value lives in the node's state, is initialized to
    `value` broadcast to `shape`, and is updated by training.
    """

    ty: ClassVar[OpTy] = OpTy.TRAIN_CONST

    shape: Tuple[int, ...] = ()
    value: float = 0.0


@dataclass(frozen=True)
class Const(Op):
    """Non-trainable constant source; like `TrainConst` but never updated."""

    ty: ClassVar[OpTy] = OpTy.CONST

    shape: Tuple[int, ...] = ()
    value: float = 0.0


@dataclass
class Graph:
    """
    Append-only sequence of ops forming a directed acyclic graph.

    Graphs only grow: there is no removal operation. Two graphs are combined
    with `merge`, which appends the other graph's ops and rewrites their
    internal references so the merged portion keeps its structure inside the
    combined address space.
    """

    ops: List[Op] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self) -> Iterator[Op]:
        return iter(self.ops)

    def __getitem__(self, node: int) -> Op:
        return self.ops[node]

    def get(self, node: int) -> Optional[Op]:
        """Return the op at `node`, or None if the index is out of range."""
        if 0 <= node < len(self.ops):
            return self.ops[node]
        return None

    def copy(self) -> "Graph":
        return Graph(list(self.ops))

    def append(self, op: Op) -> int:
        """
        Append `op` and return its node index.

        Parameters
        ----------
        op : Op
            The operation to add. Its `Internal` operands must already refer
            to nodes of this graph.

        Returns
        -------
        int
            Index of the new node.
        """
        if not isinstance(op, Op):
            raise TypeError(f"Graph.append expects an Op, got {type(op)!r}")
        self.ops.append(op)
        return len(self.ops) - 1

    def merge(self, other: "Graph") -> None:
        """
        Append every op of `other`, shifting its internal references.

        Each `Internal.node` in the merged portion grows by the length this
        graph had before the merge. `other` is consumed and must not be
        used afterwards.

        Raises
        ------
        ValueError
            If `other` is this graph.
        """
        if other is self:
            raise ValueError("cannot merge a graph into itself")
        current = len(self.ops)
        self.ops.extend(op.shifted(current) for op in other.ops)
        other.ops = []

    def merge_input(self, other: "Graph", input: Input) -> Input:
        """
        Merge `other` and shift `input`, which referred into `other`.

        Returns
        -------
        Input
            `input` re-addressed against this (combined) graph.
        """
        current = len(self.ops)
        self.merge(other)
        return input.shifted(current)
