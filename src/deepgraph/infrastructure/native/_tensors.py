"""
NumPy tensor helpers for the native backend.

The native backend represents tensors as `numpy.ndarray` (or NumPy scalars
produced by arithmetic on 0-d arrays). This module holds the small helpers the
handlers and callers share:

- `scalar_tensor` / `vector_tensor`: build tensors from Python numbers
- `to_scalar`: reduce a tensor to its first element as a float
- `sum_to_shape`: inverse-broadcast a gradient back to an operand's shape
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence, Tuple

import numpy as np

DEFAULT_DTYPE = np.float32


def scalar_tensor(value: float, dtype: Any = DEFAULT_DTYPE) -> np.ndarray:
    """Return a 0-d array holding `value`."""
    return np.array(value, dtype=dtype)


def vector_tensor(values: Iterable[float], dtype: Any = DEFAULT_DTYPE) -> np.ndarray:
    """Return a 1-d array holding `values`."""
    return np.asarray(list(values), dtype=dtype)


def to_scalar(tensor: Any) -> float:
    """
    Return the first element of `tensor` as a Python float.

    This is the reduction the bundled training helpers use for a loss tensor.
    Callers with multi-element losses should supply their own reduction.
    """
    flat = np.asarray(tensor).reshape(-1)
    if flat.size == 0:
        raise ValueError("cannot reduce an empty tensor to a scalar")
    return float(flat[0])


def _sum_to_shape_reduce_axes(
    src_shape: Sequence[int], target_shape: Sequence[int]
) -> Tuple[Tuple[int, ...], int]:
    """
    Compute the reduction axes for `sum_to_shape`.

    `target_shape` is left-padded with ones to the rank of `src_shape`; every
    axis where the padded target is 1 and the source is not gets summed.

    Returns
    -------
    reduce_axes:
        Axes of the source to sum over with ``keepdims=True``.
    pad:
        Number of leading dimensions added to the target.

    Raises
    ------
    ValueError
        If `target_shape` could not have been broadcast to `src_shape`.
    """
    src = tuple(int(d) for d in src_shape)
    tgt = tuple(int(d) for d in target_shape)
    if len(tgt) > len(src):
        raise ValueError(f"target_shape rank {len(tgt)} > src rank {len(src)}")

    pad = len(src) - len(tgt)
    padded_tgt = (1,) * pad + tgt
    for i, (sd, td) in enumerate(zip(src, padded_tgt)):
        if td not in (1, sd):
            raise ValueError(
                f"Cannot sum_to_shape from {src_shape} to {target_shape}: "
                f"dim mismatch at axis {i}: src={sd}, target={td}"
            )

    reduce_axes = tuple(
        i for i, (sd, td) in enumerate(zip(src, padded_tgt)) if td == 1 and sd != 1
    )
    return reduce_axes, pad


def sum_to_shape(grad: Any, target_shape: Sequence[int]) -> Any:
    """
    Sum-reduce `grad` to `target_shape`.

    If an operand of shape `target_shape` was broadcast during the forward
    pass, its gradient is the incoming gradient summed over the broadcast
    axes. Gradients that already have the target shape are returned as-is.
    """
    src_shape = np.shape(grad)
    target_shape = tuple(int(d) for d in target_shape)
    if src_shape == target_shape:
        return grad

    reduce_axes, pad = _sum_to_shape_reduce_axes(src_shape, target_shape)
    out = np.asarray(grad)
    if reduce_axes:
        out = out.sum(axis=reduce_axes, keepdims=True)
    if pad:
        out = out.reshape(out.shape[pad:])
    return out.reshape(target_shape)
