"""Length-framed payload codec with prefix decoding.

A payload is a short header followed by one frame per value. Each frame holds
the ``cloudpickle`` serialization of a single value, so a reader can decode a
leading range of values without unpickling, or even being able to resolve,
the frames that follow it.
"""

import pickle
import struct

import cloudpickle

from isoworker.errors import PayloadDecodeError

PAYLOAD_MAGIC: bytes = b"ISOW"
PAYLOAD_VERSION: int = 1
_HEADER: struct.Struct = struct.Struct(">4sHI")
_FRAME_LENGTH: struct.Struct = struct.Struct(">Q")


def dumps(value: object) -> bytes:
    """Serialize one value, closures and locally defined callables included.

    :param value: Value to serialize.
    :returns: Serialized bytes.
    """
    return cloudpickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)


def loads(data: bytes | memoryview) -> object:
    """Deserialize one value produced by :func:`dumps`.

    :param data: Serialized bytes.
    :returns: Deserialized value.
    :raises PayloadDecodeError: If the bytes are not a valid pickle stream.
    """
    try:
        return pickle.loads(data)
    except (pickle.UnpicklingError, EOFError, ValueError) as exc:
        raise PayloadDecodeError("Failed to unpickle payload frame") from exc


def try_dumps(value: object) -> bytes | None:
    """Try to serialize one value and return payload bytes on success.

    :param value: Value to serialize.
    :returns: Serialized bytes or ``None`` when serialization fails.
    """
    try:
        return dumps(value)
    except (pickle.PicklingError, TypeError, AttributeError, ValueError, RecursionError):
        return None


def encode(values: list[object]) -> bytes:
    """Encode an ordered list of values.

    :param values: Values to encode, in order.
    :returns: Encoded payload bytes.
    """
    chunks: list[bytes] = [_HEADER.pack(PAYLOAD_MAGIC, PAYLOAD_VERSION, len(values))]
    for value in values:
        frame: bytes = dumps(value)
        chunks.append(_FRAME_LENGTH.pack(len(frame)))
        chunks.append(frame)
    return b"".join(chunks)


def _read_header(payload: bytes) -> int:
    """Validate the payload header.

    :param payload: Encoded payload bytes.
    :returns: Number of encoded values.
    :raises PayloadDecodeError: If the header is missing or invalid.
    """
    if len(payload) < _HEADER.size:
        raise PayloadDecodeError("Payload is shorter than its header")
    magic, version, count = _HEADER.unpack_from(payload, 0)
    if magic != PAYLOAD_MAGIC:
        raise PayloadDecodeError(f"Unexpected payload magic: {magic!r}")
    if version != PAYLOAD_VERSION:
        raise PayloadDecodeError(f"Unsupported payload version: {version}")
    return count


def _read_frame(payload: bytes, offset: int) -> tuple[memoryview, int]:
    """Read one frame starting at ``offset``.

    :param payload: Encoded payload bytes.
    :param offset: Offset of the frame length prefix.
    :returns: Tuple of ``(frame_bytes, next_offset)``.
    :raises PayloadDecodeError: If the frame is truncated.
    """
    body_start: int = offset + _FRAME_LENGTH.size
    if body_start > len(payload):
        raise PayloadDecodeError(f"Truncated frame length at offset {offset}")
    (length,) = _FRAME_LENGTH.unpack_from(payload, offset)
    body_end: int = body_start + length
    if body_end > len(payload):
        raise PayloadDecodeError(f"Truncated frame body at offset {offset}")
    return memoryview(payload)[body_start:body_end], body_end


def decode(payload: bytes, start: int = 0, count: int | None = None) -> list[object]:
    """Decode a contiguous range of values from an encoded payload.

    Frames before ``start`` are skipped without being unpickled and frames
    after the requested range are not read at all.

    :param payload: Encoded payload bytes.
    :param start: Index of the first value to decode.
    :param count: Number of values to decode; all remaining values when ``None``.
    :returns: Decoded values.
    :raises PayloadDecodeError: If the payload is malformed or the range is invalid.
    """
    total: int = _read_header(payload)
    if start < 0 or start > total:
        raise PayloadDecodeError(f"Start index {start} out of range for {total} values")
    if count is None:
        count = total - start
    if count < 0 or start + count > total:
        raise PayloadDecodeError(f"Cannot decode {count} values from index {start} of {total}")

    offset: int = _HEADER.size
    for _ in range(start):
        _, offset = _read_frame(payload, offset)

    values: list[object] = []
    for _ in range(count):
        frame, offset = _read_frame(payload, offset)
        values.append(loads(frame))
    return values
