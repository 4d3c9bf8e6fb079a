"""
layer.py
~~~~~~~~

Layers and the connections between them.

A layer is one stage of the pipeline: it knows its role, its width and its
activation, and holds the batch it most recently received. A connection is
the weight matrix and bias row that link two adjacent layers; it refers to
those layers by their index in the owning network.
"""

import logging
from enum import Enum
from typing import Optional

import numpy as np

from feedforward import matrix
from feedforward.activations import Activation
from feedforward.errors import PreconditionError, ViolationKind

logger = logging.getLogger(__name__)


class LayerRole(Enum):
    INPUT = 'input'
    HIDDEN = 'hidden'
    OUTPUT = 'output'


class Layer:
    """One pipeline stage and its current batch buffer."""

    def __init__(
        self,
        role: LayerRole,
        size: int,
        activation: Optional[Activation]
    ):
        self.role = role
        self.size = size
        self.activation = activation
        self.input = matrix.zeros(1, size)

    def __repr__(self) -> str:
        name = self.activation.serial_name if self.activation else None
        return f"Layer({self.role.name}, size={self.size}, activation={name})"


class Connection:
    """Weights ``[from.size x to.size]`` and bias ``[1 x to.size]``."""

    def __init__(self, from_index: int, to_index: int, from_size: int, to_size: int):
        self.from_index = from_index
        self.to_index = to_index
        self.weights = matrix.zeros(from_size, to_size)
        self.bias = matrix.zeros(1, to_size)

    def __repr__(self) -> str:
        return (
            f"Connection({self.from_index}->{self.to_index}, "
            f"weights={self.weights.shape})"
        )


def create_layer(
    role: LayerRole,
    size: int,
    activation: Optional[Activation] = None
) -> Layer:
    """
    Create a layer with a zero ``1 x size`` input buffer.

    Raises:
        PreconditionError: If ``size`` is not a positive integer, if an
            INPUT layer is given an activation, or if a HIDDEN/OUTPUT layer
            is given none.
    """
    if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size <= 0:
        raise PreconditionError(
            ViolationKind.NON_POSITIVE_SIZE,
            f"{role.name} layer size must be a positive integer, got {size!r}"
        )
    if role is LayerRole.INPUT and activation is not None:
        raise PreconditionError(
            ViolationKind.UNKNOWN_ACTIVATION,
            "INPUT layer cannot have an activation"
        )
    if role is not LayerRole.INPUT and activation is None:
        raise PreconditionError(
            ViolationKind.UNKNOWN_ACTIVATION,
            f"{role.name} layer requires an activation"
        )
    return Layer(role, int(size), activation)


def create_connection(
    from_index: int,
    from_layer: Layer,
    to_index: int,
    to_layer: Layer
) -> Connection:
    """Create a zero-initialized connection between two adjacent layers."""
    if to_index != from_index + 1:
        raise PreconditionError(
            ViolationKind.SHAPE_MISMATCH,
            f"connections link adjacent layers, got {from_index}->{to_index}"
        )
    return Connection(from_index, to_index, from_layer.size, to_layer.size)


def initialize_connection(
    connection: Connection,
    rng: Optional[np.random.Generator] = None
) -> None:
    """
    Fill weights and bias with random values.

    Weights are drawn from a standard normal scaled by
    ``1/sqrt(fan_in)``; biases are standard normal.
    """
    if rng is None:
        rng = np.random.default_rng()
    fan_in, fan_out = connection.weights.shape
    connection.weights[...] = rng.standard_normal((fan_in, fan_out)) / np.sqrt(fan_in)
    connection.bias[...] = rng.standard_normal((1, fan_out))
    logger.debug(f"Initialized {connection!r}")


def activate_layer(layer: Layer) -> None:
    """Apply the layer's activation to its stored input in place."""
    if layer.activation is not None:
        layer.activation.apply(layer.input)


def destroy_layer(layer: Layer) -> None:
    layer.input = None


def destroy_connection(connection: Connection) -> None:
    connection.weights = None
    connection.bias = None
