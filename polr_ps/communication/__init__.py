"""Protocol messages, queues, and the wire codec."""

from polr_ps.communication.protocol import (
    MessageType,
    GradientUpdateMessage,
    GlobalParameterVectorUpdateMessage,
)
from polr_ps.communication.queues import MessageQueue, GradientQueue, BroadcastQueue
from polr_ps.communication.serialization import Serializer

__all__ = [
    "MessageType",
    "GradientUpdateMessage",
    "GlobalParameterVectorUpdateMessage",
    "MessageQueue",
    "GradientQueue",
    "BroadcastQueue",
    "Serializer",
]
