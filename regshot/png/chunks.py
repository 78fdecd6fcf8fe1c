"""PNG chunk codec: reads the chunk stream and reads/writes tEXt metadata.

A PNG file is the 8-byte signature followed by a list of chunks:

1. Length (4 bytes, big-endian): size of the data field.
2. Type (4 bytes): ASCII name such as ``IHDR``, ``tEXt`` or ``IEND``.
3. Data (Length bytes): the payload.
4. CRC (4 bytes): CRC-32 over type + data.

None of the functions here decode pixels, and none of them raise on a
malformed stream: a bad signature, a truncated chunk or a missing ``IEND``
degrades to "no metadata" or "buffer unchanged".
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Mapping

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

TEXT_CHUNK_TYPE = "tEXt"
END_CHUNK_TYPE = "IEND"

# Length + type
_CHUNK_HEADER_SIZE = 8
_CRC_SIZE = 4


def _build_crc_table() -> list[int]:
    table = []
    for index in range(256):
        c = index
        for _ in range(8):
            c = 0xEDB88320 ^ (c >> 1) if c & 1 else c >> 1
        table.append(c)
    return table


_CRC_TABLE = _build_crc_table()


@dataclass(frozen=True)
class Chunk:
    type: str
    data: bytes
    length: int
    offset: int  # position of the length field inside the buffer


def has_png_signature(buffer: bytes) -> bool:
    return bytes(buffer[: len(PNG_SIGNATURE)]) == PNG_SIGNATURE


def read_chunks(buffer: bytes) -> Iterator[Chunk]:
    """Yield the chunks of ``buffer`` in stream order.

    Each call starts a fresh scan right after the signature. The scan stops
    once ``IEND`` has been yielded, when fewer than 8 header bytes remain, or
    when a chunk's declared length runs past the end of the buffer (that
    chunk is not yielded).
    """
    offset = len(PNG_SIGNATURE)
    end = len(buffer)

    while offset + _CHUNK_HEADER_SIZE <= end:
        (length,) = struct.unpack_from(">I", buffer, offset)
        chunk_type = bytes(buffer[offset + 4 : offset + 8]).decode("ascii", errors="replace")
        data_start = offset + _CHUNK_HEADER_SIZE
        data_end = data_start + length

        if data_end > end:
            return

        yield Chunk(
            type=chunk_type,
            data=bytes(buffer[data_start:data_end]),
            length=length,
            offset=offset,
        )

        offset = data_end + _CRC_SIZE

        if chunk_type == END_CHUNK_TYPE:
            return


def find_chunk(buffer: bytes, chunk_type: str) -> Chunk | None:
    """Return the first chunk of ``chunk_type``, or None."""
    for chunk in read_chunks(buffer):
        if chunk.type == chunk_type:
            return chunk
    return None


def crc32(data: bytes) -> int:
    """CRC-32 as used by PNG chunks (same result as ``zlib.crc32``)."""
    crc = 0xFFFFFFFF
    for byte in data:
        crc = (crc >> 8) ^ _CRC_TABLE[(crc ^ byte) & 0xFF]
    return crc ^ 0xFFFFFFFF


def _encode_text_field(text: str, field: str) -> bytes:
    if "\x00" in text:
        raise ValueError(f"tEXt {field} must not contain a NUL byte: {text!r}")
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError as e:
        raise ValueError(f"tEXt {field} is not representable in Latin-1: {text!r}") from e


def create_text_chunk(key: str, value: str) -> bytes:
    """Build a complete ``tEXt`` chunk (length, type, ``key\\0value``, CRC).

    NUL separates key from value, so neither may contain one; that and any
    character outside Latin-1 raises ``ValueError``.
    """
    data = _encode_text_field(key, "key") + b"\x00" + _encode_text_field(value, "value")
    type_bytes = TEXT_CHUNK_TYPE.encode("ascii")
    return (
        struct.pack(">I", len(data))
        + type_bytes
        + data
        + struct.pack(">I", crc32(type_bytes + data))
    )


def extract_text_metadata(buffer: bytes) -> dict[str, str]:
    """Collect every ``tEXt`` key/value pair; later chunks win on duplicate keys."""
    if not has_png_signature(buffer):
        return {}

    metadata: dict[str, str] = {}
    for chunk in read_chunks(buffer):
        if chunk.type != TEXT_CHUNK_TYPE:
            continue

        separator = chunk.data.find(b"\x00")
        if separator < 0:
            continue

        key = chunk.data[:separator].decode("latin-1")
        metadata[key] = chunk.data[separator + 1 :].decode("latin-1")

    return metadata


def inject_text_metadata(buffer: bytes, metadata: Mapping[str, str]) -> bytes:
    """Insert one ``tEXt`` chunk per entry right before ``IEND``.

    Buffers without a PNG signature or without an ``IEND`` chunk are
    returned unchanged.
    """
    if not has_png_signature(buffer):
        return buffer

    iend = find_chunk(buffer, END_CHUNK_TYPE)
    if iend is None:
        return buffer

    text_chunks = b"".join(create_text_chunk(key, value) for key, value in metadata.items())
    return bytes(buffer[: iend.offset]) + text_chunks + bytes(buffer[iend.offset :])
