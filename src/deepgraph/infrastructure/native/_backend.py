"""
NumPy reference backend.

`NativeBackend` implements every backend contract of
`deepgraph.domain._backend` on top of `numpy.ndarray`:

- `IBackend`: `state`, `forward`, `backward`, `train`
- `IFeed`, `IImmediate`, `IPropagate`: the per-node surface the `Tape` drives

Kernels are not hard-coded. They are supplied by `Handler` instances keyed by
`OpTy`, registered one by one with `handler()` or all at once with
`with_builtin_handlers()`.

Representations
---------------
- Inputs: ``Mapping[str, numpy.ndarray]``
- State:  ``list[list[numpy.ndarray]]``, one slot list per graph node
- Tape:   `Tape`
- Delta:  `AccumulateTensors`
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from typing_extensions import Self

from ...domain._errors import OpHasNoHandlerError
from ...domain._graph import Graph, Input, OpTy
from ...domain._immediate import ImOp
from .._accumulate import AccumulateTensors
from .._tape import Tape
from ._handler import Handler
from ._tensors import DEFAULT_DTYPE

logger = logging.getLogger(__name__)

State = List[List[np.ndarray]]


class NativeBackend:
    """
    Handler-driven NumPy backend.

    Parameters
    ----------
    dtype : numpy dtype, optional
        Data type of generated state. Defaults to ``numpy.float32``.

    Examples
    --------
    >>> backend = NativeBackend.with_builtin_handlers()
    >>> c = SymbolicTensor("a") + SymbolicTensor("b")
    >>> state = c.generate_state(backend, np.random.default_rng(0))
    >>> float(c.evaluate(backend, state, {"a": scalar_tensor(2.0), "b": scalar_tensor(3.0)}))
    5.0
    """

    def __init__(self, *, dtype: Any = DEFAULT_DTYPE) -> None:
        self.dtype = np.dtype(dtype)
        self.handlers: Dict[OpTy, Handler] = {}

    @classmethod
    def with_builtin_handlers(cls, *, dtype: Any = DEFAULT_DTYPE) -> "NativeBackend":
        """Return a backend with every built-in handler registered."""
        from . import handlers  # noqa: F401  (registers built-ins)

        backend = cls(dtype=dtype)
        for handler_cls in Handler.builtins():
            backend.handler(handler_cls())
        return backend

    def handler(self, handler: Handler, *, overwrite: bool = False) -> Self:
        """
        Register `handler` for its op type and return the backend.

        Raises
        ------
        TypeError
            If `handler` is not a `Handler`.
        ValueError
            If a handler for the same op type is registered and `overwrite`
            is False.
        """
        if not isinstance(handler, Handler):
            raise TypeError(f"expected a Handler, got {type(handler)!r}")
        ty = handler.op
        if not overwrite and ty in self.handlers:
            raise ValueError(f"a handler for {ty!r} is already registered")
        self.handlers[ty] = handler
        logger.debug("registered %s for %s", type(handler).__name__, ty.value)
        return self

    # ------------------------------------------------------------------
    # Whole-graph contract
    # ------------------------------------------------------------------
    def state(self, graph: Graph, rng: Any) -> State:
        """
        Generate one slot list per node of `graph`, in node order.

        Raises
        ------
        OpHasNoHandlerError
            If a node's op type has no handler.
        """
        state: State = []
        for op in graph:
            handler = self.handlers.get(op.ty)
            if handler is None:
                raise OpHasNoHandlerError(op.ty)
            slots = handler.generate_state(op, rng)
            state.append([np.array(t, dtype=self.dtype) for t in slots])
        logger.debug("generated state for %d node(s)", len(state))
        return state

    def forward(
        self, graph: Graph, state: State, inputs: Mapping[str, Any], target: Input
    ) -> Tuple[Any, Tape]:
        """
        Evaluate `target` with a fresh tape.

        Raises
        ------
        ValueError
            If `state` was not generated for `graph`.
        """
        self._check_state(graph, state)
        tape = Tape()
        output = tape.solve(self, graph, state, inputs, target)
        return output, tape

    def backward(
        self,
        graph: Graph,
        state: State,
        tape: Tape,
        inputs: Mapping[str, Any],
        target: Input,
        output_delta: Any,
    ) -> AccumulateTensors:
        """
        Propagate `output_delta` from `target` using the forward `tape`.

        Raises
        ------
        ValueError
            If `state` was not generated for `graph`.
        """
        self._check_state(graph, state)
        return tape.backprop(
            self, graph, state, inputs, target, output_delta, AccumulateTensors()
        )

    def train(self, state: State, delta: Mapping[int, Sequence[Any]]) -> None:
        """
        Add every gradient of `delta` into the matching state slot, in place.

        Raises
        ------
        AssertionError
            If a node's gradient count differs from its state slot count.
        """
        for node, gradients in delta.items():
            slots = state[node]
            if len(slots) != len(gradients):
                raise AssertionError(
                    f"node {node} has {len(slots)} state slot(s) but received "
                    f"{len(gradients)} gradient(s)"
                )
            for i, g in enumerate(gradients):
                slots[i] += g

    # ------------------------------------------------------------------
    # Per-node contract
    # ------------------------------------------------------------------
    def feed(self, inputs: Mapping[str, Any], name: str) -> Optional[Any]:
        return inputs.get(name)

    def solve(self, imop: ImOp, state: Sequence[Any]) -> Optional[List[Any]]:
        handler = self.handlers.get(imop.ty)
        if handler is None:
            return None
        return handler.forward(imop, state)

    def propagate(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Optional[Tuple[ImOp, List[Any]]]:
        handler = self.handlers.get(imop.ty)
        if handler is None:
            return None
        return handler.backward(imop, state, output_delta)

    @staticmethod
    def _check_state(graph: Graph, state: State) -> None:
        if len(state) != len(graph):
            raise ValueError(
                f"state has {len(state)} node(s) but the graph has {len(graph)}; "
                f"generate the state after the expression is complete"
            )
