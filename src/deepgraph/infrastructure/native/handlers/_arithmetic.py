"""
Element-wise arithmetic handlers: add, sub, mul, square.

All four ops are stateless and produce a single output slot. Binary ops
follow NumPy broadcasting in the forward pass; their backward pass reduces
each operand gradient back to the operand's shape with `sum_to_shape`.

Backward rules for ``out = f(a, b)`` and incoming gradient ``g``:

- add:    da = g,      db = g
- sub:    da = g,      db = -g
- mul:    da = g * b,  db = g * a
- square: da = 2 * a * g
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

import numpy as np

from ....domain._graph import Op, OpTy
from ....domain._immediate import ImAdd, ImMul, ImOp, ImSquare, ImSub
from .._handler import Handler
from .._tensors import sum_to_shape


class _StatelessHandler(Handler):
    def generate_state(self, op: Op, rng: Any) -> List[Any]:
        if op.ty is not self.op:
            raise AssertionError(f"got {op.ty!r} when {self.op!r} was expected")
        return []


@Handler.register_builtin()
class AddHandler(_StatelessHandler):
    op = OpTy.ADD

    def forward(self, imop: ImOp, state: Sequence[Any]) -> List[Any]:
        a, b = self.expect(imop)
        return [a + b]

    def backward(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Tuple[ImOp, List[Any]]:
        a, b = self.expect(imop)
        g = self.expect_slot(output_delta)
        return ImAdd(sum_to_shape(g, np.shape(a)), sum_to_shape(g, np.shape(b))), []


@Handler.register_builtin()
class SubHandler(_StatelessHandler):
    op = OpTy.SUB

    def forward(self, imop: ImOp, state: Sequence[Any]) -> List[Any]:
        a, b = self.expect(imop)
        return [a - b]

    def backward(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Tuple[ImOp, List[Any]]:
        a, b = self.expect(imop)
        g = self.expect_slot(output_delta)
        return ImSub(sum_to_shape(g, np.shape(a)), sum_to_shape(-g, np.shape(b))), []


@Handler.register_builtin()
class MulHandler(_StatelessHandler):
    op = OpTy.MUL

    def forward(self, imop: ImOp, state: Sequence[Any]) -> List[Any]:
        a, b = self.expect(imop)
        return [a * b]

    def backward(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Tuple[ImOp, List[Any]]:
        a, b = self.expect(imop)
        g = self.expect_slot(output_delta)
        return (
            ImMul(sum_to_shape(g * b, np.shape(a)), sum_to_shape(g * a, np.shape(b))),
            [],
        )


@Handler.register_builtin()
class SquareHandler(_StatelessHandler):
    op = OpTy.SQUARE

    def forward(self, imop: ImOp, state: Sequence[Any]) -> List[Any]:
        (a,) = self.expect(imop)
        return [np.square(a)]

    def backward(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Tuple[ImOp, List[Any]]:
        (a,) = self.expect(imop)
        g = self.expect_slot(output_delta)
        return ImSquare(sum_to_shape(2.0 * a * g, np.shape(a))), []


__all__ = ["AddHandler", "SubHandler", "MulHandler", "SquareHandler"]
