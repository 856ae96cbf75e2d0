"""
Memoized forward evaluation and reverse-mode propagation over a `Graph`.

A `Tape` records, for one forward pass, every output slot of every node it
evaluated. The matching backward pass reads operand values back from the tape
instead of recomputing them, so gradients at shared sub-expressions are taken
at exactly the values the forward pass produced.

Traversal
---------
- Forward (`solve`) is a depth-first, post-order walk from the target. A node
  with N consumers is evaluated once; later reads are cache hits.
- Backward (`backprop`) walks from the target towards the sources, once per
  path. Gradients reaching the same node along different paths are summed by
  the accumulator passed in.

Errors
------
Missing feeds, missing tape entries and unregistered op types raise the typed
errors of `deepgraph.domain._errors`. A backend returning an immediate op of
the wrong variant or arity is a programmer error and raises `AssertionError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence, TypeVar

from ..domain._backend import IFeed
from ..domain._errors import (
    InputNotProvidedError,
    InternalNotComputedError,
    OpHasNoHandlerError,
)
from ..domain._graph import Feed, Graph, Input, Internal, Op
from ..domain._immediate import ImOp

logger = logging.getLogger(__name__)

E = TypeVar("E")


class Tape:
    """
    Forward cache of one evaluation pass.

    Attributes
    ----------
    solved : dict[int, list]
        Output tensors of every evaluated node, keyed by node index. All
        slots of a node are stored together on its first evaluation.

    Notes
    -----
    A tape is private to one evaluation or training step. Create a new one
    for every forward pass.
    """

    def __init__(self) -> None:
        self.solved: Dict[int, List[Any]] = {}

    def __contains__(self, node: object) -> bool:
        return node in self.solved

    def __len__(self) -> int:
        return len(self.solved)

    def input(
        self, backend: IFeed, inputs: Mapping[str, Any], graph: Graph, input: Input
    ) -> Any:
        """
        Resolve `input` without evaluating anything.

        Used by the backward pass, which requires a completed tape.

        Raises
        ------
        InputNotProvidedError
            If a feed is absent from `inputs`.
        InternalNotComputedError
            If an internal node is absent from the tape.
        """
        if isinstance(input, Feed):
            return _feed(backend, inputs, input.name)

        outputs = self.solved.get(input.node)
        if outputs is None or input.output >= len(outputs):
            op = graph.get(input.node)
            raise InternalNotComputedError(input.node, op.ty if op else None)
        return outputs[input.output]

    def solve(
        self,
        backend: Any,
        graph: Graph,
        state: Sequence[Sequence[Any]],
        inputs: Mapping[str, Any],
        input: Input,
    ) -> Any:
        """
        Evaluate `input`, reusing and filling the tape.

        Parameters
        ----------
        backend : IFeed and IImmediate
            Supplies feeds and forward kernels.
        graph : Graph
            The graph `input` belongs to.
        state : Sequence[Sequence[Tensor]]
            Per-node state, aligned with `graph`.
        inputs : Mapping[str, Tensor]
            Named feeds.
        input : Input
            What to evaluate.

        Returns
        -------
        Tensor
            The requested output slot.

        Raises
        ------
        InputNotProvidedError
            If a reachable feed is missing from `inputs`.
        OpHasNoHandlerError
            If the backend has no forward kernel for a reachable op.
        InternalNotComputedError
            If `input` refers to a node outside `graph`.
        """
        if isinstance(input, Feed):
            return _feed(backend, inputs, input.name)

        cached = self.solved.get(input.node)
        if cached is not None:
            logger.debug("tape hit for node %d", input.node)
            return _slot(cached, input)

        op = graph.get(input.node)
        if op is None:
            raise InternalNotComputedError(input.node, None)

        tensors = [
            self.solve(backend, graph, state, inputs, operand) for operand in op.inputs
        ]
        solutions = backend.solve(op.immediate(tensors), state[input.node])
        if solutions is None:
            raise OpHasNoHandlerError(op.ty)

        logger.debug("solved node %d (%s)", input.node, op.ty.value)
        self.solved[input.node] = list(solutions)
        return _slot(solutions, input)

    def backprop(
        self,
        backend: Any,
        graph: Graph,
        state: Sequence[Sequence[Any]],
        inputs: Mapping[str, Any],
        input: Input,
        output_delta: Any,
        deltas: E,
    ) -> E:
        """
        Propagate `output_delta` from `input` to everything that produced it.

        The gradient of each visited node's state is added to `deltas` through
        its ``extend`` method, so a node reached along several paths gets the
        sum of all contributions.

        Parameters
        ----------
        backend : IFeed and IPropagate
            Supplies feeds and backward kernels.
        input : Input
            The node output `output_delta` belongs to. Feeds are terminal.
        output_delta : Tensor
            Gradient of the objective with respect to `input`.
        deltas : accumulator
            Anything with ``extend(iterable of (node, list of tensors))``.

        Returns
        -------
        accumulator
            `deltas`, extended.

        Raises
        ------
        InputNotProvidedError, InternalNotComputedError
            If an operand cannot be read back from the feeds or the tape.
        OpHasNoHandlerError
            If the backend has no backward kernel for a visited op.
        AssertionError
            If `input` refers to a node outside `graph`, or the backend
            returns operand gradients of the wrong variant or arity.
        """
        if isinstance(input, Feed):
            return deltas

        op = graph.get(input.node)
        if op is None:
            raise AssertionError(
                f"node {input.node} requested in backprop but does not exist"
            )

        imop = op.immediate(
            [self.input(backend, inputs, graph, operand) for operand in op.inputs]
        )
        result = backend.propagate(
            imop, state[input.node], (input.output, output_delta)
        )
        if result is None:
            raise OpHasNoHandlerError(op.ty)

        input_gradients, state_gradients = result
        logger.debug("backprop through node %d (%s)", input.node, op.ty.value)
        deltas.extend([(input.node, list(state_gradients))])

        for operand, gradient in zip(op.inputs, _decompose(op, input_gradients)):
            deltas = self.backprop(
                backend, graph, state, inputs, operand, gradient, deltas
            )
        return deltas


def _feed(backend: IFeed, inputs: Mapping[str, Any], name: str) -> Any:
    tensor = backend.feed(inputs, name)
    if tensor is None:
        raise InputNotProvidedError(name)
    return tensor


def _slot(outputs: Sequence[Any], internal: Internal) -> Any:
    if internal.output >= len(outputs):
        raise AssertionError(
            f"node {internal.node} produced {len(outputs)} output(s), "
            f"slot {internal.output} was requested"
        )
    return outputs[internal.output]


def _decompose(op: Op, imop: ImOp) -> tuple:
    """Unpack operand gradients, checking they came back as `op`'s variant."""
    produced = getattr(imop, "ty", None)
    if produced is not op.ty:
        raise AssertionError(f"op {op.ty!r} gave back ImOp type {produced!r}")
    gradients = imop.operands
    if len(gradients) != op.arity:
        raise AssertionError(
            f"op {op.ty!r} has {op.arity} operand(s) but {len(gradients)} "
            f"gradient(s) came back"
        )
    return gradients


__all__ = ["Tape"]
