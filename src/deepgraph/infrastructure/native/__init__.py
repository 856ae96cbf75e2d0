"""
NumPy reference backend for deepgraph.

Exports
-------
- NativeBackend: handler-driven backend implementing every backend contract
- Handler: per-op-type kernel contract and built-in registry
- scalar_tensor, vector_tensor, to_scalar, sum_to_shape: tensor helpers
"""

from ._handler import Handler
from ._backend import NativeBackend
from ._tensors import scalar_tensor, sum_to_shape, to_scalar, vector_tensor
from . import handlers

__all__ = [
    NativeBackend.__name__,
    Handler.__name__,
    scalar_tensor.__name__,
    vector_tensor.__name__,
    to_scalar.__name__,
    sum_to_shape.__name__,
]
