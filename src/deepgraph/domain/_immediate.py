"""
Immediate (fully materialized) operations.

An immediate op is a graph `Op` whose operand addresses have been resolved to
concrete tensors, ready for a backend kernel. The same variants travel in the
other direction during backpropagation: a backward kernel returns the variant
it was given, now carrying the gradient of each operand instead of its value.

The tensor type is opaque here; deepgraph never inspects it.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Generic, Tuple, Type, TypeVar

from ._graph import OpTy

T = TypeVar("T")


@dataclass(frozen=True, eq=False)
class ImOp(Generic[T]):
    """Base class of immediate ops."""

    ty: ClassVar[OpTy]

    @property
    def operands(self) -> Tuple[Any, ...]:
        """Operand tensors (or operand gradients) in operand order."""
        return tuple(getattr(self, f.name) for f in fields(self))


@dataclass(frozen=True, eq=False)
class ImAdd(ImOp[T]):
    ty: ClassVar[OpTy] = OpTy.ADD

    a: T
    b: T


@dataclass(frozen=True, eq=False)
class ImSub(ImOp[T]):
    ty: ClassVar[OpTy] = OpTy.SUB

    a: T
    b: T


@dataclass(frozen=True, eq=False)
class ImMul(ImOp[T]):
    ty: ClassVar[OpTy] = OpTy.MUL

    a: T
    b: T


@dataclass(frozen=True, eq=False)
class ImSquare(ImOp[T]):
    ty: ClassVar[OpTy] = OpTy.SQUARE

    a: T


@dataclass(frozen=True, eq=False)
class ImTrainConst(ImOp[T]):
    ty: ClassVar[OpTy] = OpTy.TRAIN_CONST


@dataclass(frozen=True, eq=False)
class ImConst(ImOp[T]):
    ty: ClassVar[OpTy] = OpTy.CONST


_IMMEDIATE_TYPES: Dict[OpTy, Type[ImOp]] = {
    cls.ty: cls for cls in (ImAdd, ImSub, ImMul, ImSquare, ImTrainConst, ImConst)
}


def immediate_type(ty: OpTy) -> Type[ImOp]:
    """Return the immediate-op class for the op type `ty`."""
    return _IMMEDIATE_TYPES[ty]
