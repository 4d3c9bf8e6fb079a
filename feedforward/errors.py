"""
errors.py
~~~~~~~~~

Exception types raised by the feedforward engine.

Precondition failures (bad sizes, mismatched shapes) are ``ValueError``
subclasses so callers that already catch ``ValueError`` keep working.
Problems with persisted network files are split into format errors
(the file was read but its content is wrong) and I/O errors (the file
could not be opened or read at all).
"""

from enum import Enum
from typing import Optional


class ViolationKind(Enum):
    """Categories of precondition violation."""

    NON_POSITIVE_SIZE = 'non_positive_size'
    LENGTH_MISMATCH = 'length_mismatch'
    SHAPE_MISMATCH = 'shape_mismatch'
    UNKNOWN_ACTIVATION = 'unknown_activation'
    NOT_A_MATRIX = 'not_a_matrix'


class NetworkError(Exception):
    """Base class for every error raised by this package."""


class PreconditionError(NetworkError, ValueError):
    """An argument violated a documented precondition."""

    def __init__(self, kind: ViolationKind, message: str):
        super().__init__(message)
        self.kind = kind


class NetworkStateError(NetworkError, RuntimeError):
    """The network was used after it was destroyed."""


class NetworkFormatError(NetworkError, ValueError):
    """A serialized network could not be parsed."""

    def __init__(self, message: str, line: Optional[int] = None):
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
        self.line = line


class NetworkIOError(NetworkError, OSError):
    """A network file could not be opened, read or written."""
