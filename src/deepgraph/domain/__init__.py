"""
Domain layer of deepgraph.

Plain graph data, immediate ops, backend contracts and the recoverable error
taxonomy. Nothing in this package depends on a numeric library.
"""

from ._graph import (
    Add,
    Const,
    Feed,
    Graph,
    Input,
    Internal,
    Mul,
    Op,
    OpTy,
    Square,
    Sub,
    TrainConst,
    as_input,
)
from ._immediate import (
    ImAdd,
    ImConst,
    ImMul,
    ImOp,
    ImSquare,
    ImSub,
    ImTrainConst,
    immediate_type,
)
from ._backend import IBackend, IFeed, IImmediate, IPropagate
from ._errors import (
    GraphEvaluationError,
    InputNotProvidedError,
    InternalNotComputedError,
    OpHasNoHandlerError,
)

__all__ = [
    "Add",
    "Const",
    "Feed",
    "Graph",
    "Input",
    "Internal",
    "Mul",
    "Op",
    "OpTy",
    "Square",
    "Sub",
    "TrainConst",
    "as_input",
    "ImAdd",
    "ImConst",
    "ImMul",
    "ImOp",
    "ImSquare",
    "ImSub",
    "ImTrainConst",
    "immediate_type",
    "IBackend",
    "IFeed",
    "IImmediate",
    "IPropagate",
    "GraphEvaluationError",
    "InputNotProvidedError",
    "InternalNotComputedError",
    "OpHasNoHandlerError",
]
