"""
Backend contracts for deepgraph.

A backend is any numeric engine that can plug into the graph engine. The
engine never sees the backend's tensor type; it only moves opaque tensors
between the protocols defined here.

Two layers of contract exist:

- `IBackend` is the whole-graph surface used by `SymbolicTensor`: generate
  state, run a forward pass, run a backward pass, apply a delta.
- `IFeed`, `IImmediate` and `IPropagate` are the per-node surface used by
  `Tape` to implement forward and backward on the backend's behalf. A
  backend that implements them gets memoized forward evaluation and
  reverse-mode propagation for free by delegating to a `Tape`.

Notes
-----
- All contracts are structural (`typing.Protocol`) and runtime-checkable.
- Returning ``None`` from `IImmediate.solve` or `IPropagate.propagate` means
  exactly one thing: no handler is registered for that op type. Every other
  inconsistency is a programmer error and must raise `AssertionError`.
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from ._graph import Graph, Input
from ._immediate import ImOp

if TYPE_CHECKING:
    from ..infrastructure._tape import Tape

Tensor = Any
State = List[List[Tensor]]
Inputs = Mapping[str, Tensor]


@runtime_checkable
class IFeed(Protocol):
    """Resolve a named feed from the caller-supplied inputs."""

    def feed(self, inputs: Any, name: str) -> Optional[Tensor]:
        """
        Return the tensor fed under `name`, or None if it is absent.
        """
        ...


@runtime_checkable
class IImmediate(Protocol):
    """Forward kernel execution for a single, fully materialized op."""

    def solve(self, imop: ImOp, state: Sequence[Tensor]) -> Optional[List[Tensor]]:
        """
        Execute the forward kernel for `imop`.

        Parameters
        ----------
        imop : ImOp
            Operation with every operand resolved to a tensor.
        state : Sequence[Tensor]
            The node's current state slots.

        Returns
        -------
        list[Tensor] or None
            One tensor per output slot, or None if no handler is registered
            for ``imop.ty``.
        """
        ...


@runtime_checkable
class IPropagate(Protocol):
    """Backward kernel execution for a single, fully materialized op."""

    def propagate(
        self,
        imop: ImOp,
        state: Sequence[Tensor],
        output_delta: Tuple[int, Tensor],
    ) -> Optional[Tuple[ImOp, List[Tensor]]]:
        """
        Propagate the gradient of one output slot back to the operands.

        Parameters
        ----------
        imop : ImOp
            The same immediate op the forward kernel received.
        state : Sequence[Tensor]
            The node's current state slots.
        output_delta : tuple[int, Tensor]
            ``(output_slot, delta)``. Only this slot is propagated. A slot the
            op does not produce is a programmer error (`AssertionError`).

        Returns
        -------
        tuple[ImOp, list[Tensor]] or None
            The operand gradients re-packed as the same immediate variant, and
            one gradient per state slot. None only if no handler is registered.
        """
        ...


@runtime_checkable
class IBackend(Protocol):
    """
    Whole-graph backend contract.

    The concrete representations of inputs, tape, tensors, delta and state are
    chosen by the backend.
    """

    def state(self, graph: Graph, rng: Any) -> State:
        """
        Generate the initial state for every node of `graph`, in node order.

        Raises
        ------
        OpHasNoHandlerError
            If a node's op type has no registered initializer.
        """
        ...

    def forward(
        self, graph: Graph, state: State, inputs: Any, target: Input
    ) -> Tuple[Tensor, "Tape"]:
        """
        Evaluate `target` and return its tensor together with the forward tape.
        """
        ...

    def backward(
        self,
        graph: Graph,
        state: State,
        tape: "Tape",
        inputs: Any,
        target: Input,
        output_delta: Tensor,
    ) -> Any:
        """
        Propagate `output_delta` from `target` back through the graph.

        The returned delta maps node indices to per-state-slot gradients and
        can be handed to `train`.
        """
        ...

    def train(self, state: State, delta: Any) -> None:
        """Apply `delta` to `state` in place."""
        ...
