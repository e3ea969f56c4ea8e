"""Wire-level helpers shared by the naming server, storage servers and clients."""

from __future__ import annotations

import struct
from enum import IntEnum

_INT = struct.Struct("<i")


class ClientCommand(IntEnum):
    """Operations a client asks the naming server for, sent as decimal text."""

    READ = 1
    WRITE = 2
    INFO = 3
    CREATE = 4
    DELETE = 5
    COPY = 6


class StorageCommand(IntEnum):
    """Operations a client asks a storage server for, sent as a packed integer."""

    READ = 1
    APPEND = 2
    INFO = 3


def pack_int(value: int) -> bytes:
    """Encode a signed 32-bit integer as it travels on the wire."""
    try:
        return _INT.pack(value)
    except struct.error as exc:
        raise ValueError(f"{value!r} does not fit in a 32-bit integer") from exc


def unpack_int(data: bytes) -> int:
    """Decode a signed 32-bit integer received from the wire."""
    if len(data) != _INT.size:
        raise ValueError(f"expected {_INT.size} bytes, got {len(data)}")
    (value,) = _INT.unpack(data)
    return value


def _as_text(message: bytes | str) -> str:
    if isinstance(message, bytes):
        message = message.decode("utf-8")
    return message.rstrip("\0")


def parse_registration(message: bytes | str) -> tuple[str, int]:
    """Split a storage server's ``directory:port`` announcement."""
    fields = [field for field in _as_text(message).split(":") if field]
    if len(fields) < 2:
        raise ValueError(f"malformed registration message: {message!r}")
    directory, port_text = fields[0], fields[1].strip()
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ValueError(f"invalid port in registration: {port_text!r}") from exc
    return directory, port


def format_registration(directory: str, port: int) -> bytes:
    """Build the ``directory:port`` announcement a storage server sends."""
    return f"{directory}:{port}".encode("utf-8")