"""
Source handlers: trainable and non-trainable constants.

Both ops take no inputs and keep their value as the node's single state slot,
initialized to ``value`` broadcast to ``shape``. They differ only in backward:
a trainable constant reports the incoming gradient as its state gradient, a
plain constant reports a zero gradient, so training never moves it. Forward
returns a copy of the state so evaluated values never change under training.
"""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

import numpy as np

from ....domain._graph import Const, Op, OpTy, TrainConst
from ....domain._immediate import ImConst, ImOp, ImTrainConst
from .._handler import Handler
from .._tensors import sum_to_shape


class _ConstantHandler(Handler):
    def generate_state(self, op: Op, rng: Any) -> List[Any]:
        if not isinstance(op, (TrainConst, Const)) or op.ty is not self.op:
            raise AssertionError(f"got {op.ty!r} when {self.op!r} was expected")
        return [np.full(op.shape, op.value)]

    def forward(self, imop: ImOp, state: Sequence[Any]) -> List[Any]:
        self.expect(imop)
        return [np.copy(state[0])]


@Handler.register_builtin()
class TrainConstHandler(_ConstantHandler):
    op = OpTy.TRAIN_CONST

    def backward(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Tuple[ImOp, List[Any]]:
        self.expect(imop)
        g = self.expect_slot(output_delta)
        return ImTrainConst(), [sum_to_shape(g, np.shape(state[0]))]


@Handler.register_builtin()
class ConstHandler(_ConstantHandler):
    op = OpTy.CONST

    def backward(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Tuple[ImOp, List[Any]]:
        self.expect(imop)
        self.expect_slot(output_delta)
        return ImConst(), [np.zeros_like(state[0])]


__all__ = ["TrainConstHandler", "ConstHandler"]
