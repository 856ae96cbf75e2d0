"""
Recoverable evaluation errors for deepgraph.

This module defines the typed errors that forward and backward traversals
surface to the caller. They describe conditions a caller can act on: an
input that was not supplied, or an op type the backend cannot execute.

Programmer errors (a kernel returning the wrong immediate variant, a node
receiving a different number of gradient slots than before, a request for an
output slot an op does not produce) are deliberately *not* part of this
hierarchy. They are raised as `AssertionError` so they can never be mistaken
for, or caught together with, the recoverable conditions below.
"""

from __future__ import annotations

from typing import Optional

from ._graph import OpTy


class GraphEvaluationError(RuntimeError):
    """
    Base class of all recoverable evaluation errors.

    Errors of this family bubble up unmodified through the recursive forward
    and backward traversals. A single error aborts the whole evaluation or
    training step; no partial result is returned.
    """


class InputNotProvidedError(GraphEvaluationError):
    """
    Raised when a `Feed` input is requested but absent from the input mapping.

    Attributes
    ----------
    name : str
        Name of the missing feed.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"input not provided for {name!r}")
        self.name = name


class InternalNotComputedError(GraphEvaluationError):
    """
    Raised when an `Internal` address is absent from the forward tape.

    This only happens when a graph and a tape (or state) do not belong
    together, for instance a tape produced for a different target.

    Attributes
    ----------
    node : int
        The node index that was requested.
    ty : OpTy or None
        The op type at that index, or None if the index is not in the graph.
    """

    def __init__(self, node: int, ty: Optional[OpTy]) -> None:
        super().__init__(
            f"internal node {node} ({ty!r}) was not found in the tape (not computed)"
        )
        self.node = node
        self.ty = ty


class OpHasNoHandlerError(GraphEvaluationError):
    """
    Raised when the backend has no kernel registered for an op type.

    Attributes
    ----------
    ty : OpTy
        The op type without a handler.
    """

    def __init__(self, ty: OpTy) -> None:
        super().__init__(f"no handler for {ty!r}")
        self.ty = ty
