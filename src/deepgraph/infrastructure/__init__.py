"""
Infrastructure layer of deepgraph.

The evaluation engine (`Tape`), the gradient accumulator, the symbolic tensor
builder and the NumPy reference backend.
"""

from ._accumulate import AccumulateTensors
from ._tape import Tape
from ._symbolic import SymbolicTensor
from .native import (
    Handler,
    NativeBackend,
    scalar_tensor,
    sum_to_shape,
    to_scalar,
    vector_tensor,
)

__all__ = [
    "AccumulateTensors",
    "Tape",
    "SymbolicTensor",
    "Handler",
    "NativeBackend",
    "scalar_tensor",
    "sum_to_shape",
    "to_scalar",
    "vector_tensor",
]
