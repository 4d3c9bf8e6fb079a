"""
matrix.py
~~~~~~~~~

Dense 2-D matrix primitives used by the network.

A matrix is a C-contiguous ``float64`` numpy array with exactly two
dimensions. Every operation returns a newly allocated array; nothing here
mutates its arguments. There is no explicit release: a buffer is freed once
the last reference to it is dropped.
"""

from typing import Any

import numpy as np

from feedforward.errors import PreconditionError, ViolationKind


def as_matrix(data: Any, name: str = 'matrix') -> np.ndarray:
    """
    Convert ``data`` to a 2-D float64 array.

    A 1-D sequence is treated as a single row.

    Raises:
        PreconditionError: If the data has more than two dimensions or
            cannot be converted to floats.
    """
    try:
        array = np.asarray(data, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise PreconditionError(
            ViolationKind.NOT_A_MATRIX,
            f"{name} is not numeric: {e}"
        ) from e

    if array.ndim == 1:
        array = array.reshape(1, -1)
    if array.ndim != 2:
        raise PreconditionError(
            ViolationKind.NOT_A_MATRIX,
            f"{name} must be 2-D, got {array.ndim} dimensions"
        )
    return array


def zeros(rows: int, cols: int) -> np.ndarray:
    """Allocate a zero-filled ``rows x cols`` matrix."""
    return np.zeros((rows, cols), dtype=np.float64)


def multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Standard matrix product; requires ``a.cols == b.rows``."""
    if a.shape[1] != b.shape[0]:
        raise PreconditionError(
            ViolationKind.SHAPE_MISMATCH,
            f"cannot multiply {a.shape} by {b.shape}"
        )
    return a @ b


def add_to_each_row(m: np.ndarray, bias_row: np.ndarray) -> np.ndarray:
    """Broadcast-add a ``1 x cols`` row to every row of ``m``."""
    if bias_row.shape != (1, m.shape[1]):
        raise PreconditionError(
            ViolationKind.SHAPE_MISMATCH,
            f"bias of shape {bias_row.shape} does not fit "
            f"matrix of shape {m.shape}"
        )
    return m + bias_row


def copy(m: np.ndarray) -> np.ndarray:
    """Deep copy."""
    return np.array(m, dtype=np.float64, copy=True, order='C')
