"""
Symbolic tensor handles used to build computation graphs.

A `SymbolicTensor` pairs a shared graph with the `Input` that designates the
handle's value inside that graph. Composing handles with ``+``, ``-``, ``*``
or `squared()` appends ops to the shared graph; combining handles that live in
different graphs merges one graph into the other first.

Graph sharing
-------------
Handles do not point at a `Graph` directly but at a `_GraphCell`. When the
graph of one cell is merged into another, the consumed cell is redirected to
the surviving cell together with the index shift applied by the merge. Every
handle that was built on the consumed graph therefore keeps resolving to the
same nodes, now inside the combined graph. A trainable constant used in two
places stays a single parameter.

Because graphs only grow and node indices are monotonic, the redirection
chain never forms a cycle.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Type, Union

from ..domain._backend import IBackend, State
from ..domain._graph import (
    Add,
    Const,
    Graph,
    Input,
    Internal,
    Mul,
    Op,
    Square,
    Sub,
    TrainConst,
    as_input,
)

logger = logging.getLogger(__name__)


class _GraphCell:
    """
    Shared owner of a graph.

    A cell either owns a graph or forwards to another cell with an index
    shift. `resolve` follows the forwarding chain and compresses it.
    """

    __slots__ = ("_graph", "_target", "_shift")

    def __init__(self, graph: Optional[Graph] = None) -> None:
        self._graph: Optional[Graph] = graph if graph is not None else Graph()
        self._target: Optional[_GraphCell] = None
        self._shift = 0

    def resolve(self) -> Tuple["_GraphCell", int]:
        """Return the owning cell and the shift to apply to this cell's inputs."""
        if self._target is None:
            return self, 0
        root, shift = self._target.resolve()
        self._target, self._shift = root, self._shift + shift
        return root, self._shift

    @property
    def graph(self) -> Graph:
        root, _ = self.resolve()
        assert root._graph is not None
        return root._graph

    def absorb(self, other: "_GraphCell") -> None:
        """
        Merge `other`'s graph into this cell's graph and redirect `other`.

        Both cells must be roots and distinct.
        """
        assert self._target is None and other._target is None and self is not other
        graph, consumed = self._graph, other._graph
        assert graph is not None and consumed is not None

        shift = len(graph)
        graph.merge(consumed)
        other._graph = None
        other._target, other._shift = self, shift
        logger.debug("merged %d node(s) at offset %d", len(graph) - shift, shift)


class SymbolicTensor:
    """
    Handle on one value of a computation graph.

    Construction
    ------------
    - ``SymbolicTensor("x")`` or ``SymbolicTensor.feed("x")``: a named input.
    - ``SymbolicTensor.train_const(shape, value)``: a trainable parameter.
    - ``SymbolicTensor.const(shape, value)``: a non-trainable constant.
    - ``a + b``, ``a - b``, ``a * b``, ``a.squared()``: composed values.

    Evaluation
    ----------
    - `generate_state` allocates the per-node state through a backend.
    - `evaluate` runs a forward pass and returns the handle's tensor.
    - `gradient_descent` runs one forward/backward/apply training step.

    Notes
    -----
    Building expressions mutates the shared graph in place. Generate the state
    after the expression is complete: a state is only valid for the graph
    length it was generated for.
    """

    __slots__ = ("_cell", "_input")

    def __init__(self, source: Union[str, Input], *, _cell: Optional[_GraphCell] = None):
        source = as_input(source)
        if _cell is None:
            if isinstance(source, Internal):
                raise ValueError(
                    f"{source!r} addresses a node but no graph was given; "
                    f"use from_op, train_const or const"
                )
            _cell = _GraphCell()
        self._cell = _cell
        self._input = source

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def feed(cls, name: str) -> "SymbolicTensor":
        """Return a handle on the named input `name`."""
        return cls(name)

    @classmethod
    def from_op(cls, op: Op) -> "SymbolicTensor":
        """
        Return a handle on output 0 of `op`, placed in a fresh graph.

        Only source ops (no inputs) can be placed this way.
        """
        if op.inputs:
            raise ValueError(f"{op.ty} takes inputs and cannot start a new graph")
        cell = _GraphCell()
        node = cell.graph.append(op)
        return cls(Internal(node, 0), _cell=cell)

    @classmethod
    def train_const(
        cls, shape: Sequence[int] = (), value: float = 0.0
    ) -> "SymbolicTensor":
        """Return a handle on a trainable parameter of `shape` filled with `value`."""
        return cls.from_op(TrainConst(tuple(int(d) for d in shape), float(value)))

    @classmethod
    def const(cls, shape: Sequence[int] = (), value: float = 0.0) -> "SymbolicTensor":
        """Return a handle on a constant of `shape` filled with `value`."""
        return cls.from_op(Const(tuple(int(d) for d in shape), float(value)))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def graph(self) -> Graph:
        """The graph this handle currently lives in."""
        return self._cell.graph

    @property
    def input(self) -> Input:
        """This handle's value, addressed against `graph`."""
        _, shift = self._cell.resolve()
        return self._input.shifted(shift)

    def shares_graph_with(self, other: "SymbolicTensor") -> bool:
        return self._cell.resolve()[0] is other._cell.resolve()[0]

    def __repr__(self) -> str:
        return f"SymbolicTensor({self.input!r}, nodes={len(self.graph)})"

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------
    def _binary(self, other: "SymbolicTensor", op_type: Type[Op]) -> "SymbolicTensor":
        if isinstance(other, str):
            other = SymbolicTensor(other)
        if not isinstance(other, SymbolicTensor):
            return NotImplemented

        root, _ = self._cell.resolve()
        other_root, _ = other._cell.resolve()
        if root is not other_root:
            root.absorb(other_root)

        a, b = self.input, other.input
        node = root.graph.append(op_type(a, b))
        return SymbolicTensor(Internal(node, 0), _cell=root)

    def __add__(self, other: "SymbolicTensor") -> "SymbolicTensor":
        return self._binary(other, Add)

    def __sub__(self, other: "SymbolicTensor") -> "SymbolicTensor":
        return self._binary(other, Sub)

    def __mul__(self, other: "SymbolicTensor") -> "SymbolicTensor":
        return self._binary(other, Mul)

    def squared(self) -> "SymbolicTensor":
        """Return a handle on the element-wise square of this value."""
        root, _ = self._cell.resolve()
        node = root.graph.append(Square(self.input))
        return SymbolicTensor(Internal(node, 0), _cell=root)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def generate_state(self, backend: IBackend, rng: Any) -> State:
        """
        Generate the initial state of this handle's graph.

        Raises
        ------
        OpHasNoHandlerError
            If the backend cannot initialize one of the graph's op types.
        """
        return backend.state(self.graph, rng)

    def evaluate(self, backend: IBackend, state: State, inputs: Mapping[str, Any]) -> Any:
        """
        Evaluate this handle and return its tensor.

        The forward tape is discarded.

        Raises
        ------
        InputNotProvidedError
            If a reachable feed is missing from `inputs`.
        OpHasNoHandlerError
            If the backend cannot execute a reachable op.
        """
        output, _ = backend.forward(self.graph, state, inputs, self.input)
        return output

    def gradient_descent(
        self,
        backend: IBackend,
        state: State,
        inputs: Mapping[str, Any],
        learning_rate: float,
        tensor_to_scalar: Callable[[Any], float],
        scalar_to_tensor: Callable[[float], Any],
    ) -> float:
        """
        Run one training step that treats this handle as the loss.

        The step evaluates the loss, builds an output delta of
        ``-learning_rate * loss``, propagates it back through the same tape
        and applies the resulting delta to `state` in place.

        Parameters
        ----------
        backend : IBackend
            The numeric backend.
        state : State
            Graph state, updated in place.
        inputs : Mapping[str, Tensor]
            Named feeds for this step.
        learning_rate : float
            Step size.
        tensor_to_scalar : Callable[[Tensor], float]
            Reduces the loss tensor to a plain number.
        scalar_to_tensor : Callable[[float], Tensor]
            Builds the output delta tensor from a plain number.

        Returns
        -------
        float
            The loss before the update.
        """
        graph, target = self.graph, self.input

        output, tape = backend.forward(graph, state, inputs, target)
        loss = tensor_to_scalar(output)
        output_delta = scalar_to_tensor(-learning_rate * loss)

        delta = backend.backward(graph, state, tape, inputs, target, output_delta)
        backend.train(state, delta)

        logger.debug("gradient descent step: loss=%s", loss)
        return loss
