"""
network.py
~~~~~~~~~~

A feedforward network for batched inference.

The network owns an ordered chain of layers and the connections between
them. ``forward_pass`` pushes a batch (one example per row) through every
connection, leaving each layer holding the batch it received; ``predict``
and ``accuracy`` read the output layer's buffer afterwards.

Example:
    >>> net = Network(2, [], [], 2, 'softmax')
    >>> out = net.forward_pass([[1.0, 0.0]])
    >>> out.shape
    (1, 2)
"""

import logging
import sys
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from feedforward import matrix
from feedforward.activations import Activation, resolve_activation
from feedforward.errors import (
    NetworkStateError,
    PreconditionError,
    ViolationKind,
)
from feedforward.layer import (
    Connection,
    Layer,
    LayerRole,
    activate_layer,
    create_connection,
    create_layer,
    destroy_connection,
    destroy_layer,
    initialize_connection,
)

logger = logging.getLogger(__name__)

# Floor applied to predictions before taking the log (DBL_MIN).
LOG_EPSILON = sys.float_info.min

ActivationLike = Union[Activation, str]


class Network:
    """
    Chain of layers ``[INPUT] + [HIDDEN]* + [OUTPUT]`` and the connections
    linking each adjacent pair.

    Args:
        num_features: Width of the input layer.
        hidden_sizes: Width of each hidden layer, in order.
        hidden_activations: Activation of each hidden layer, in order.
        num_classes: Width of the output layer.
        output_activation: Activation of the output layer.
        rng: Optional generator used to initialize the connections.

    Raises:
        PreconditionError: If a size is not positive, the hidden lists differ
            in length, or an activation name is unknown.
    """

    def __init__(
        self,
        num_features: int,
        hidden_sizes: Sequence[int],
        hidden_activations: Sequence[ActivationLike],
        num_classes: int,
        output_activation: ActivationLike,
        rng: Optional[np.random.Generator] = None
    ):
        hidden_sizes = list(hidden_sizes)
        hidden_activations = list(hidden_activations)
        if len(hidden_sizes) != len(hidden_activations):
            raise PreconditionError(
                ViolationKind.LENGTH_MISMATCH,
                f"Got {len(hidden_sizes)} hidden sizes but "
                f"{len(hidden_activations)} hidden activations"
            )

        layers = [create_layer(LayerRole.INPUT, num_features)]
        for size, activation in zip(hidden_sizes, hidden_activations):
            layers.append(
                create_layer(LayerRole.HIDDEN, size, resolve_activation(activation))
            )
        layers.append(
            create_layer(
                LayerRole.OUTPUT,
                num_classes,
                resolve_activation(output_activation)
            )
        )
        self.layers: Optional[List[Layer]] = layers

        if rng is None:
            rng = np.random.default_rng()
        connections = []
        for i in range(len(layers) - 1):
            connection = create_connection(i, layers[i], i + 1, layers[i + 1])
            initialize_connection(connection, rng)
            connections.append(connection)
        self.connections: Optional[List[Connection]] = connections

        logger.debug(f"Created network with sizes {self.sizes}")

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def _check_alive(self) -> None:
        if self.layers is None:
            raise NetworkStateError("Network has been destroyed")

    @property
    def num_layers(self) -> int:
        self._check_alive()
        return len(self.layers)

    @property
    def num_connections(self) -> int:
        self._check_alive()
        return len(self.connections)

    @property
    def sizes(self) -> List[int]:
        """Layer widths from input to output."""
        self._check_alive()
        return [layer.size for layer in self.layers]

    @property
    def input_layer(self) -> Layer:
        self._check_alive()
        return self.layers[0]

    @property
    def output_layer(self) -> Layer:
        self._check_alive()
        return self.layers[-1]

    @property
    def hidden_activations(self) -> List[Activation]:
        self._check_alive()
        return [layer.activation for layer in self.layers[1:-1]]

    @property
    def output_activation(self) -> Activation:
        return self.output_layer.activation

    @property
    def destroyed(self) -> bool:
        return self.layers is None

    def __repr__(self) -> str:
        if self.destroyed:
            return "Network(<destroyed>)"
        names = [a.serial_name for a in self.hidden_activations]
        return (
            f"Network(sizes={self.sizes}, hidden_activations={names}, "
            f"output_activation={self.output_activation.serial_name!r})"
        )

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def forward_pass(self, batch: Any) -> np.ndarray:
        """
        Propagate a batch through every connection in order.

        The input layer keeps its own copy of ``batch``; every later layer's
        buffer is replaced with the activated output of the connection
        feeding it. The returned array is the output layer's buffer and is
        only valid until the next forward pass.

        Args:
            batch: Matrix with one example per row and one column per
                input feature. A 1-D vector is treated as a single row.

        Returns:
            np.ndarray: Output layer buffer, ``rows x num_classes``

        Raises:
            PreconditionError: If the column count does not match the
                input layer.
        """
        self._check_alive()
        batch = matrix.as_matrix(batch, 'input')
        input_layer = self.layers[0]
        if batch.shape[1] != input_layer.size:
            raise PreconditionError(
                ViolationKind.SHAPE_MISMATCH,
                f"Input has {batch.shape[1]} columns, "
                f"network expects {input_layer.size}"
            )

        input_layer.input = matrix.copy(batch)
        for connection in self.connections:
            source = self.layers[connection.from_index]
            target = self.layers[connection.to_index]
            pre = matrix.multiply(source.input, connection.weights)
            target.input = matrix.add_to_each_row(pre, connection.bias)
            activate_layer(target)

        logger.debug(
            f"Forward pass: {batch.shape[0]} rows through "
            f"{len(self.connections)} connections"
        )
        return self.layers[-1].input

    def predict(self) -> np.ndarray:
        """
        Index of the highest-scoring class for each row of the last batch.

        Columns are scanned in order and a column only wins if it is
        strictly greater than the best so far, so ties go to the lowest
        index and a NaN never replaces the current best.

        Returns:
            np.ndarray: 1-D integer array, one entry per row
        """
        self._check_alive()
        output = self.layers[-1].input
        best = output[:, 0].copy()
        predictions = np.zeros(output.shape[0], dtype=np.intp)
        for j in range(1, output.shape[1]):
            better = output[:, j] > best
            predictions[better] = j
            best[better] = output[better, j]
        return predictions

    def accuracy(self, data: Any, classes: Any) -> float:
        """
        Fraction of rows whose predicted class is marked ``1`` in ``classes``.

        Runs a fresh forward pass on ``data``, so the layer buffers are
        replaced as a side effect.

        Args:
            data: Input matrix, one example per row
            classes: One-hot matrix, one row per example and one column per
                class

        Returns:
            float: ``correct / rows`` in ``[0, 1]``
        """
        self._check_alive()
        data = matrix.as_matrix(data, 'data')
        classes = matrix.as_matrix(classes, 'classes')
        if data.shape[0] != classes.shape[0]:
            raise PreconditionError(
                ViolationKind.SHAPE_MISMATCH,
                f"data has {data.shape[0]} rows but classes has "
                f"{classes.shape[0]}"
            )
        if data.shape[0] == 0:
            raise PreconditionError(
                ViolationKind.SHAPE_MISMATCH,
                "accuracy needs at least one row"
            )
        output_size = self.layers[-1].size
        if classes.shape[1] != output_size:
            raise PreconditionError(
                ViolationKind.SHAPE_MISMATCH,
                f"classes has {classes.shape[1]} columns, "
                f"network outputs {output_size}"
            )

        self.forward_pass(data)
        predictions = self.predict()
        hits = classes[np.arange(classes.shape[0]), predictions] == 1
        return float(np.count_nonzero(hits)) / classes.shape[0]

    def loss(
        self,
        prediction: Any,
        actual: Any,
        regularization_strength: float = 0.0
    ) -> float:
        """Cross-entropy loss with L2 regularization over this network's weights."""
        return cross_entropy_loss(self, prediction, actual, regularization_strength)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def destroy(self) -> None:
        """Release every layer and connection. Safe to call twice."""
        if self.destroyed:
            return
        for layer in self.layers:
            destroy_layer(layer)
        for connection in self.connections:
            destroy_connection(connection)
        self.layers = None
        self.connections = None
        logger.debug("Destroyed network")


def create_network(
    num_features: int,
    num_hidden_layers: int,
    hidden_sizes: Optional[Sequence[int]],
    hidden_activations: Optional[Sequence[ActivationLike]],
    num_classes: int,
    output_activation: ActivationLike,
    rng: Optional[np.random.Generator] = None
) -> Network:
    """
    Build a network from an explicit hidden layer count.

    ``hidden_sizes`` and ``hidden_activations`` may be ``None`` when
    ``num_hidden_layers`` is zero.
    """
    if num_hidden_layers < 0:
        raise PreconditionError(
            ViolationKind.NON_POSITIVE_SIZE,
            f"num_hidden_layers must be >= 0, got {num_hidden_layers}"
        )
    hidden_sizes = [] if hidden_sizes is None else list(hidden_sizes)
    hidden_activations = [] if hidden_activations is None else list(hidden_activations)
    for label, values in (('sizes', hidden_sizes),
                          ('activations', hidden_activations)):
        if len(values) != num_hidden_layers:
            raise PreconditionError(
                ViolationKind.LENGTH_MISMATCH,
                f"Expected {num_hidden_layers} hidden {label}, "
                f"got {len(values)}"
            )
    return Network(
        num_features,
        hidden_sizes,
        hidden_activations,
        num_classes,
        output_activation,
        rng=rng
    )


def cross_entropy_loss(
    network: Optional[Network],
    prediction: Any,
    actual: Any,
    regularization_strength: float = 0.0
) -> float:
    """
    Mean cross-entropy between predictions and targets.

    ``loss = -(1/N) * sum(actual * ln(max(prediction, DBL_MIN)))``

    When ``network`` is given, ``regularization_strength * 0.5 * sum(w**2)``
    over every connection's weights is added (biases are not penalized).
    Passing ``None`` disables regularization whatever the strength.

    Args:
        network: Network whose weights are penalized, or None
        prediction: ``examples x classes`` matrix of probabilities
        actual: ``examples x classes`` one-hot or soft-label matrix
        regularization_strength: L2 penalty multiplier

    Returns:
        float: Loss value
    """
    prediction = matrix.as_matrix(prediction, 'prediction')
    actual = matrix.as_matrix(actual, 'actual')
    if prediction.shape != actual.shape:
        raise PreconditionError(
            ViolationKind.SHAPE_MISMATCH,
            f"prediction {prediction.shape} and actual {actual.shape} "
            f"must have the same shape"
        )
    if actual.shape[0] == 0:
        raise PreconditionError(
            ViolationKind.SHAPE_MISMATCH,
            "loss needs at least one row"
        )

    total = np.sum(actual * np.log(np.maximum(prediction, LOG_EPSILON)))
    data_loss = (-1.0 / actual.shape[0]) * total

    reg_loss = 0.0
    if network is not None:
        network._check_alive()
        reg_loss = sum(
            float(np.sum(connection.weights * connection.weights))
            for connection in network.connections
        )
    return float(data_loss + regularization_strength * 0.5 * reg_loss)


def forward_pass(network: Network, batch: Any) -> np.ndarray:
    return network.forward_pass(batch)


def predict(network: Network) -> np.ndarray:
    return network.predict()


def accuracy(network: Network, data: Any, classes: Any) -> float:
    return network.accuracy(data, classes)


def destroy_network(network: Network) -> None:
    network.destroy()
