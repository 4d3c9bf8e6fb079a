"""
feedforward package
~~~~~~~~~~~~~~~~~~~

Small feedforward-network inference engine for embedding a classifier in
a larger program. Contains the network core, its plain-text serialization,
a SQLite model registry, and a Flask API server.
"""

from feedforward.activations import Activation
from feedforward.errors import (
    NetworkError,
    NetworkFormatError,
    NetworkIOError,
    NetworkStateError,
    PreconditionError,
    ViolationKind,
)
from feedforward.layer import LayerRole
from feedforward.network import (
    Network,
    accuracy,
    create_network,
    cross_entropy_loss,
    destroy_network,
    forward_pass,
    predict,
)
from feedforward.serialization import dumps, loads, read_network, save_network

__version__ = "1.0.0"
