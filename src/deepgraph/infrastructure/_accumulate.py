"""
Gradient accumulation keyed by graph node.

`AccumulateTensors` is the delta produced by one backward pass: a mapping from
node index to one gradient tensor per state slot of that node.

A node whose output feeds several consumers is reached once per path during
backpropagation. Its total gradient is the sum over all those paths, so
contributions are added element-wise into the stored tensors instead of
replacing them.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, Iterator, List, Tuple

logger = logging.getLogger(__name__)


class AccumulateTensors(Mapping):
    """
    Per-node gradient accumulator.

    Parameters
    ----------
    clone : Callable[[Any], Any], optional
        Applied to each tensor the first time a node is inserted. Kernels are
        free to return aliased tensors (the same delta for both operands of an
        add, or the incoming delta itself), and later contributions are added
        in place, so the stored tensors must be private. Defaults to
        `copy.copy`, which copies NumPy arrays.

    Notes
    -----
    - Tensors only need to support ``+=``.
    - The mapping is read-only from the outside; it grows through `insert`
      and `extend`.
    """

    def __init__(self, clone: Callable[[Any], Any] = copy.copy) -> None:
        self.table: Dict[int, List[Any]] = {}
        self._clone = clone

    def __getitem__(self, node: int) -> List[Any]:
        return self.table[node]

    def __iter__(self) -> Iterator[int]:
        return iter(self.table)

    def __len__(self) -> int:
        return len(self.table)

    def __repr__(self) -> str:
        return f"AccumulateTensors({self.table!r})"

    def insert(self, node: int, tensors: List[Any]) -> None:
        """
        Record the gradients of `node`, adding onto any earlier contribution.

        Raises
        ------
        AssertionError
            If `node` was already recorded with a different number of slots.
        """
        existing = self.table.get(node)
        if existing is None:
            self.table[node] = [self._clone(t) for t in tensors]
            return

        if len(existing) != len(tensors):
            raise AssertionError(
                f"node {node} received {len(tensors)} gradient slot(s) but was "
                f"first recorded with {len(existing)}"
            )
        logger.debug("accumulating %d slot(s) into node %d", len(tensors), node)
        for i, t in enumerate(tensors):
            existing[i] += t

    def extend(self, items: Iterable[Tuple[int, List[Any]]]) -> None:
        for node, tensors in items:
            self.insert(node, tensors)
