"""
serialization.py
~~~~~~~~~~~~~~~~

Plain-text persistence for networks.

One token per line, in this order: the number of layers, every layer
size, one activation name per hidden layer, the output activation name,
then every connection's weights (row-major, connection by connection) and
finally every connection's bias values. Numbers are hexadecimal floats
(``float.hex``) so a save/load cycle reproduces every bit.

Reading always builds a new network through the normal constructor and
then overwrites its parameters.
"""

import logging
import re
from typing import Iterator, List, Optional, Tuple

import numpy as np

from feedforward.activations import Activation
from feedforward.errors import (
    NetworkFormatError,
    NetworkIOError,
    PreconditionError,
)
from feedforward.network import Network

logger = logging.getLogger(__name__)

_HEX_FLOAT = re.compile(
    r'[+-]?(0[xX][0-9a-fA-F]*\.?[0-9a-fA-F]*([pP][+-]?\d+)?|inf|infinity|nan)',
    re.IGNORECASE
)
_UNSIGNED_INT = re.compile(r"\d+")


def _format_float(value: float) -> str:
    return float(value).hex()


def dumps(network: Network) -> str:
    """Serialize a network to the text format."""
    lines = [str(network.num_layers)]
    lines.extend(str(size) for size in network.sizes)
    lines.extend(a.serial_name for a in network.hidden_activations)
    lines.append(network.output_activation.serial_name)

    for connection in network.connections:
        lines.extend(_format_float(v) for v in connection.weights.ravel())
    for connection in network.connections:
        lines.extend(_format_float(v) for v in connection.bias.ravel())

    return '\n'.join(lines) + '\n'


def save_network(network: Network, path: str) -> None:
    """
    Write a network to ``path``, replacing any existing file.

    Raises:
        NetworkIOError: If the file cannot be written.
    """
    text = dumps(network)
    try:
        with open(path, 'w', encoding='ascii') as f:
            f.write(text)
    except OSError as e:
        raise NetworkIOError(e.errno, f"Cannot write network file: {e.strerror}", path) from e

    logger.info(f"Saved network {network.sizes} to {path}")


class _TokenReader:
    """Hands out one token per line and tracks the current line number."""

    def __init__(self, text: str):
        self._lines: List[str] = text.splitlines()
        self._pos = 0

    @property
    def line(self) -> int:
        return self._pos

    def next_token(self, what: str) -> str:
        if self._pos >= len(self._lines):
            raise NetworkFormatError(f"unexpected end of data, expected {what}")
        token = self._lines[self._pos].strip()
        self._pos += 1
        if not token:
            raise NetworkFormatError(f"empty line, expected {what}", self._pos)
        return token

    def count_remaining(self) -> int:
        return sum(1 for _ in self.remaining())

    def remaining(self) -> Iterator[Tuple[int, str]]:
        for offset, raw in enumerate(self._lines[self._pos:], self._pos + 1):
            if raw.strip():
                yield offset, raw.strip()


def _read_int(reader: _TokenReader, what: str, minimum: int) -> int:
    token = reader.next_token(what)
    if not _UNSIGNED_INT.fullmatch(token):
        raise NetworkFormatError(
            f"expected integer {what}, got {token!r}", reader.line
        )
    value = int(token)
    if value < minimum:
        raise NetworkFormatError(
            f"{what} must be at least {minimum}, got {value}", reader.line
        )
    return value


def _read_float(reader: _TokenReader, what: str) -> float:
    token = reader.next_token(what)
    # float.fromhex also accepts bare digits ("1.5" == 0x1.5), which would
    # silently misread a decimal file.
    if not _HEX_FLOAT.fullmatch(token):
        raise NetworkFormatError(
            f"expected hexadecimal float for {what}, got {token!r}", reader.line
        )
    try:
        return float.fromhex(token)
    except (ValueError, OverflowError):
        raise NetworkFormatError(
            f"invalid hexadecimal float for {what}: {token!r}", reader.line
        ) from None


def _read_activation(reader: _TokenReader, what: str, strict: bool) -> Activation:
    token = reader.next_token(what)
    try:
        return Activation(token)
    except ValueError:
        if strict:
            raise NetworkFormatError(
                f"unknown activation {token!r} for {what}", reader.line
            ) from None
    logger.warning(
        f"Unknown activation {token!r} for {what} on line {reader.line}, "
        f"using softmax"
    )
    return Activation.SOFTMAX


def _fill(reader: _TokenReader, target: np.ndarray, what: str) -> None:
    flat = target.reshape(-1)
    for i in range(flat.size):
        flat[i] = _read_float(reader, what)


def loads(text: str, strict: bool = True) -> Network:
    """
    Build a network from its text form.

    Args:
        text: Serialized network
        strict: When False, an unrecognized activation name is read as
            ``softmax`` and trailing data is ignored, as older readers did.

    Returns:
        Network: A new network holding the stored parameters

    Raises:
        NetworkFormatError: If the text is malformed or truncated.
    """
    reader = _TokenReader(text)
    num_layers = _read_int(reader, 'layer count', 2)
    sizes = [
        _read_int(reader, f'size of layer {i}', 1) for i in range(num_layers)
    ]
    hidden_activations = [
        _read_activation(reader, f'hidden layer {i + 1}', strict)
        for i in range(num_layers - 2)
    ]
    output_activation = _read_activation(reader, 'output layer', strict)

    # Check the parameter count before allocating anything sized by the header.
    expected = sum(a * b for a, b in zip(sizes, sizes[1:])) + sum(sizes[1:])
    available = reader.count_remaining()
    if available < expected:
        raise NetworkFormatError(
            f"unexpected end of data, header declares {expected} parameters "
            f"but only {available} values follow"
        )

    try:
        network = Network(
            sizes[0],
            sizes[1:-1],
            hidden_activations,
            sizes[-1],
            output_activation
        )
    except (PreconditionError, MemoryError, ValueError) as e:
        raise NetworkFormatError(f"invalid network structure: {e}") from e

    for k, connection in enumerate(network.connections):
        _fill(reader, connection.weights, f'weights of connection {k}')
    for k, connection in enumerate(network.connections):
        _fill(reader, connection.bias, f'bias of connection {k}')

    extra: Optional[Tuple[int, str]] = next(reader.remaining(), None)
    if extra is not None:
        if strict:
            raise NetworkFormatError(f"unexpected trailing data {extra[1]!r}", extra[0])
        logger.warning(f"Ignoring trailing data from line {extra[0]}")

    logger.debug(f"Parsed network with sizes {sizes}")
    return network


def read_network(path: str, strict: bool = True) -> Network:
    """
    Read a network written by :func:`save_network`.

    Raises:
        NetworkIOError: If the file cannot be opened or read.
        NetworkFormatError: If its content is malformed.
    """
    try:
        with open(path, 'r', encoding='ascii') as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise NetworkFormatError(f"{path} is not a text network file: {e}") from e
    except OSError as e:
        raise NetworkIOError(e.errno, f"Cannot read network file: {e.strerror}", path) from e

    network = loads(text, strict=strict)
    logger.info(f"Loaded network {network.sizes} from {path}")
    return network
