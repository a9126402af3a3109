"""Error types raised by the POLR parameter server.

None of these are recovered from inside the package. They propagate to the
orchestration layer, which decides whether to abort the run or restart a
stalled worker.
"""


class POLRError(Exception):
    """Base class for all POLR parameter server errors."""


class ConfigurationError(POLRError, ValueError):
    """Missing or invalid setup parameters, raised before training starts."""


class DimensionMismatchError(POLRError, ValueError):
    """A vector length disagrees with the configured parameter layout."""

    def __init__(self, expected: int, actual: int, context: str = "vector"):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{context} length mismatch: expected {expected}, got {actual}"
        )


class RecordParseError(POLRError, ValueError):
    """A raw input record could not be converted to a labeled feature vector."""


class SerializationError(POLRError, ValueError):
    """Wire bytes could not be decoded into a protocol message."""


class ProtocolError(POLRError, RuntimeError):
    """The synchronous round protocol was violated by a caller."""


class QueueUnderflowError(ProtocolError):
    """A consumer drained an empty queue."""


class IncompleteRoundError(ProtocolError):
    """Aggregation was attempted before every expected worker reported."""

    def __init__(self, round_id: int, received: int, expected: int):
        self.round_id = round_id
        self.received = received
        self.expected = expected
        super().__init__(
            f"Round {round_id} incomplete: {received} of {expected} "
            f"gradient messages folded"
        )


class StaleGradientError(ProtocolError):
    """A gradient message was tagged with a round other than the current one."""


class DuplicateGradientError(ProtocolError):
    """A worker reported twice in one round, or too many workers reported."""
