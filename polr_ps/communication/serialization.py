"""Binary wire codec for protocol messages."""

import struct
from typing import Union
import numpy as np
import lz4.frame

from polr_ps.communication.protocol import (
    GlobalParameterVectorUpdateMessage,
    GradientUpdateMessage,
    MessageType,
)
from polr_ps.exceptions import SerializationError
from polr_ps.model.parameter_vector import ParameterVector


Message = Union[GradientUpdateMessage, GlobalParameterVectorUpdateMessage]


class Serializer:
    """
    Encodes messages as a fixed header plus a length-prefixed vector.

    Layout (little-endian), after a one-byte compression flag:

        magic        4s   b"POLR"
        version      B
        msg_type     B
        flags        B    bit 0: end_of_data / is_final
        round_id     Q
        batch_size   Q    observed_batch_size (0 for broadcasts)
        id_length    H
        worker_id    id_length bytes, utf-8
        vector_len   Q
        vector       vector_len float64 values

    Bodies larger than ``compression_threshold`` bytes are lz4-frame
    compressed when compression is enabled.
    """

    MAGIC = b"POLR"
    VERSION = 1
    HEADER = struct.Struct("<4sBBBQQH")
    LENGTH = struct.Struct("<Q")

    FLAG_UNCOMPRESSED = 0
    FLAG_LZ4 = 1

    def __init__(
        self,
        compression: bool = True,
        compression_level: int = 0,
        compression_threshold: int = 1024
    ):
        """
        Args:
            compression: Enable lz4 compression of large bodies
            compression_level: lz4 frame compression level
            compression_threshold: Minimum body size to compress
        """
        self.compression = compression
        self.compression_level = compression_level
        self.compression_threshold = compression_threshold

    def encode(self, msg: Message) -> bytes:
        """Serialize a message to bytes."""
        if isinstance(msg, GradientUpdateMessage):
            worker_id = msg.origin_worker_id.encode("utf-8")
            flag = msg.end_of_data
            batch_size = msg.observed_batch_size
            vector = msg.delta
        elif isinstance(msg, GlobalParameterVectorUpdateMessage):
            worker_id = b""
            flag = msg.is_final
            batch_size = 0
            vector = msg.vector
        else:
            raise SerializationError(f"Cannot encode {type(msg).__name__}")

        if len(worker_id) > 0xFFFF:
            raise SerializationError("worker id too long")

        payload = vector.values.astype("<f8", copy=False).tobytes()
        body = b"".join((
            self.HEADER.pack(
                self.MAGIC,
                self.VERSION,
                int(msg.msg_type),
                int(flag),
                msg.round_id,
                batch_size,
                len(worker_id),
            ),
            worker_id,
            self.LENGTH.pack(len(vector)),
            payload,
        ))

        if self.compression and len(body) > self.compression_threshold:
            compressed = lz4.frame.compress(body, compression_level=self.compression_level)
            return bytes([self.FLAG_LZ4]) + compressed
        return bytes([self.FLAG_UNCOMPRESSED]) + body

    def decode(self, data: bytes) -> Message:
        """
        Deserialize bytes produced by ``encode``.

        Raises:
            SerializationError: on truncated, corrupt, or unknown input
        """
        if not data:
            raise SerializationError("Empty message")

        flag, body = data[0], data[1:]
        if flag == self.FLAG_LZ4:
            try:
                body = lz4.frame.decompress(body)
            except (RuntimeError, ValueError) as e:
                raise SerializationError(f"Corrupt lz4 body: {e}") from e
        elif flag != self.FLAG_UNCOMPRESSED:
            raise SerializationError(f"Unknown compression flag: {flag}")

        if len(body) < self.HEADER.size:
            raise SerializationError("Truncated header")
        magic, version, msg_type, flags, round_id, batch_size, id_length = \
            self.HEADER.unpack_from(body, 0)
        if magic != self.MAGIC:
            raise SerializationError(f"Bad magic: {magic!r}")
        if version != self.VERSION:
            raise SerializationError(f"Unsupported version: {version}")

        offset = self.HEADER.size
        try:
            worker_id = body[offset:offset + id_length].decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError(f"Bad worker id: {e}") from e
        offset += id_length

        if len(body) < offset + self.LENGTH.size:
            raise SerializationError("Truncated vector length")
        (vector_len,) = self.LENGTH.unpack_from(body, offset)
        offset += self.LENGTH.size
        if len(body) != offset + 8 * vector_len:
            raise SerializationError(
                f"Vector payload is {len(body) - offset} bytes, expected {8 * vector_len}"
            )
        values = np.frombuffer(body, dtype="<f8", count=vector_len, offset=offset)
        vector = ParameterVector(values)

        try:
            kind = MessageType(msg_type)
        except ValueError:
            raise SerializationError(f"Unknown message type: {msg_type}") from None

        if kind == MessageType.GRADIENT_UPDATE:
            try:
                return GradientUpdateMessage(
                    origin_worker_id=worker_id,
                    delta=vector,
                    observed_batch_size=batch_size,
                    round_id=round_id,
                    end_of_data=bool(flags & 1),
                )
            except ValueError as e:
                raise SerializationError(str(e)) from e
        return GlobalParameterVectorUpdateMessage(
            vector=vector,
            round_id=round_id,
            is_final=bool(flags & 1),
        )
