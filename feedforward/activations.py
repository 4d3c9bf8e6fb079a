"""
activations.py
~~~~~~~~~~~~~~

Catalog of activation functions.

Each activation transforms a matrix in place. ``softmax`` works row-wise
(one row per example); the others are element-wise. The enum value is the
stable name written to serialized network files.
"""

from enum import Enum
from typing import Callable, Dict, Union

import numpy as np

from feedforward.errors import PreconditionError, ViolationKind


class Activation(Enum):
    IDENTITY = 'identity'
    SIGMOID = 'sigmoid'
    RELU = 'relu'
    TANH = 'tanH'
    SOFTMAX = 'softmax'

    @property
    def serial_name(self) -> str:
        return self.value

    def apply(self, m: np.ndarray) -> None:
        """Apply this activation to ``m`` in place."""
        _TRANSFORMS[self](m)


def _identity(m: np.ndarray) -> None:
    pass


def _sigmoid(m: np.ndarray) -> None:
    # Keep exp() finite.
    np.clip(m, -709.0, 709.0, out=m)
    np.negative(m, out=m)
    np.exp(m, out=m)
    m += 1.0
    np.reciprocal(m, out=m)


def _relu(m: np.ndarray) -> None:
    np.maximum(m, 0.0, out=m)


def _tanh(m: np.ndarray) -> None:
    np.tanh(m, out=m)


def _softmax(m: np.ndarray) -> None:
    m -= m.max(axis=1, keepdims=True)
    np.exp(m, out=m)
    m /= m.sum(axis=1, keepdims=True)


_TRANSFORMS: Dict[Activation, Callable[[np.ndarray], None]] = {
    Activation.IDENTITY: _identity,
    Activation.SIGMOID: _sigmoid,
    Activation.RELU: _relu,
    Activation.TANH: _tanh,
    Activation.SOFTMAX: _softmax,
}

_BY_NAME: Dict[str, Activation] = {a.serial_name: a for a in Activation}


def activation_names():
    """Names accepted by :func:`resolve_activation`, in catalog order."""
    return [a.serial_name for a in Activation]


def resolve_activation(value: Union[Activation, str]) -> Activation:
    """
    Look up an activation by enum member or serialization name.

    Raises:
        PreconditionError: If the name is not in the catalog.
    """
    if isinstance(value, Activation):
        return value
    try:
        return _BY_NAME[value]
    except (KeyError, TypeError):
        raise PreconditionError(
            ViolationKind.UNKNOWN_ACTIVATION,
            f"Unknown activation {value!r}, expected one of "
            f"{activation_names()}"
        ) from None
