"""
deepgraph: a backend-agnostic reverse-mode automatic differentiation engine.

Build a graph from symbolic tensors, evaluate it through any backend that
implements the contracts in `deepgraph.domain`, and propagate gradients back
for training.

    >>> import numpy as np
    >>> from deepgraph import NativeBackend, SymbolicTensor, scalar_tensor
    >>> backend = NativeBackend.with_builtin_handlers()
    >>> c = SymbolicTensor("a") + SymbolicTensor("b")
    >>> state = c.generate_state(backend, np.random.default_rng(0))
    >>> float(c.evaluate(backend, state, {"a": scalar_tensor(2.0), "b": scalar_tensor(3.0)}))
    5.0
"""

from .domain import *
from .domain import __all__ as _domain_all
from .infrastructure import *
from .infrastructure import __all__ as _infrastructure_all

__version__ = "0.1.0"

__all__ = [*_domain_all, *_infrastructure_all]
