"""Message definitions for the master/worker gradient protocol."""

from enum import IntEnum
from dataclasses import dataclass, field
from typing import Any, Dict
import time

from polr_ps.model.parameter_vector import ParameterVector


class MessageType(IntEnum):
    """Message types carried on the wire."""

    GRADIENT_UPDATE = 1
    GLOBAL_PARAMETER_VECTOR_UPDATE = 2


@dataclass(frozen=True)
class GradientUpdateMessage:
    """
    A worker's net local change since its last applied broadcast.

    Created by a worker at the end of a round and consumed exactly once by
    the master.
    """

    origin_worker_id: str
    delta: ParameterVector
    observed_batch_size: int
    round_id: int
    end_of_data: bool = False
    timestamp: float = field(default_factory=time.time, compare=False)

    msg_type = MessageType.GRADIENT_UPDATE

    def __post_init__(self):
        if not self.origin_worker_id:
            raise ValueError("origin_worker_id must be non-empty")
        if self.observed_batch_size < 0:
            raise ValueError("observed_batch_size must be non-negative")
        if self.round_id < 0:
            raise ValueError("round_id must be non-negative")
        if not self.delta.is_frozen:
            object.__setattr__(self, "delta", self.delta.snapshot())

    def to_dict(self) -> Dict[str, Any]:
        """Header fields, without the vector payload."""
        return {
            "msg_type": int(self.msg_type),
            "origin_worker_id": self.origin_worker_id,
            "observed_batch_size": self.observed_batch_size,
            "round_id": self.round_id,
            "end_of_data": self.end_of_data,
            "vector_length": len(self.delta),
        }


@dataclass(frozen=True)
class GlobalParameterVectorUpdateMessage:
    """
    The master's authoritative parameters after aggregating ``round_id``.

    The vector is an immutable snapshot, so one message can be handed to
    every worker.
    """

    vector: ParameterVector
    round_id: int
    is_final: bool = False
    timestamp: float = field(default_factory=time.time, compare=False)

    msg_type = MessageType.GLOBAL_PARAMETER_VECTOR_UPDATE

    def __post_init__(self):
        if self.round_id < 0:
            raise ValueError("round_id must be non-negative")
        if not self.vector.is_frozen:
            object.__setattr__(self, "vector", self.vector.snapshot())

    def to_dict(self) -> Dict[str, Any]:
        """Header fields, without the vector payload."""
        return {
            "msg_type": int(self.msg_type),
            "round_id": self.round_id,
            "is_final": self.is_final,
            "vector_length": len(self.vector),
        }
