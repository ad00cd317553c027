"""Chunked binary format of the vault blob.

The blob is a flat sequence of chunks:
- 4 bytes: ASCII tag
- 4 bytes: payload length (big-endian)
- N bytes: payload

Record chunks (accounts, shared folders, fields) are themselves a sequence of
items, each prefixed with a 4-byte big-endian length. Items are positional:
their meaning depends on their index within the chunk.

All parsing uses Python's struct module for binary operations.
"""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass

from lpvault.exceptions import FormatError

HEADER_SIZE = 8
ITEM_HEADER_SIZE = 4


class ChunkTag:
    """Known chunk tags.

    Tags not listed here are skipped by the decoder.
    """

    VERSION = b"LPAV"
    ACCOUNT = b"ACCT"
    ACCOUNT_FIELD = b"ACFL"
    SHARE = b"SHAR"
    END = b"ENDM"


@dataclass(frozen=True, slots=True)
class Chunk:
    """A tagged chunk.

    Attributes:
        tag: 4-byte tag
        payload: Chunk contents
        offset: Position of the chunk header in the blob
    """

    tag: bytes
    payload: bytes
    offset: int = 0

    @property
    def name(self) -> str:
        """Tag as text, for logging."""
        return self.tag.decode("ascii", errors="replace")


class ChunkReader:
    """Pull-based reader producing chunks from a blob.

    Iterating the reader yields chunks lazily in stream order. A truncated
    header or a length running past the end of the data raises FormatError.
    """

    def __init__(self, data: bytes) -> None:
        """Initialize reader with blob data.

        Args:
            data: Complete blob bytes
        """
        self._data = data
        self._offset = 0

    def __iter__(self) -> Iterator[Chunk]:
        return self

    def __next__(self) -> Chunk:
        if self._offset >= len(self._data):
            raise StopIteration
        return self.read_chunk()

    def read_chunk(self) -> Chunk:
        """Read the chunk at the current position."""
        start = self._offset
        if start + HEADER_SIZE > len(self._data):
            raise FormatError(f"Truncated chunk header at offset {start}")

        tag = self._data[start : start + 4]
        (length,) = struct.unpack_from(">I", self._data, start + 4)
        payload_start = start + HEADER_SIZE

        if payload_start + length > len(self._data):
            raise FormatError(
                f"Chunk {tag!r} at offset {start} declares {length} bytes, "
                f"only {len(self._data) - payload_start} remain"
            )

        self._offset = payload_start + length
        return Chunk(
            tag=tag,
            payload=self._data[payload_start : self._offset],
            offset=start,
        )


def read_items(payload: bytes) -> list[bytes]:
    """Split a record chunk payload into its length-prefixed items.

    Args:
        payload: Chunk payload

    Returns:
        Items in order

    Raises:
        FormatError: If an item header or item body is truncated
    """
    items = []
    offset = 0

    while offset < len(payload):
        if offset + ITEM_HEADER_SIZE > len(payload):
            raise FormatError(f"Truncated item header at offset {offset}")
        (length,) = struct.unpack_from(">I", payload, offset)
        offset += ITEM_HEADER_SIZE

        if offset + length > len(payload):
            raise FormatError(
                f"Item at offset {offset} declares {length} bytes, "
                f"only {len(payload) - offset} remain"
            )
        items.append(payload[offset : offset + length])
        offset += length

    return items


def write_item(data: bytes) -> bytes:
    """Encode one length-prefixed item."""
    return struct.pack(">I", len(data)) + data


def write_chunk(tag: bytes, payload: bytes) -> bytes:
    """Encode one chunk.

    Raises:
        ValueError: If the tag is not exactly 4 bytes
    """
    if len(tag) != 4:
        raise ValueError(f"Chunk tag must be 4 bytes, got {tag!r}")
    return tag + struct.pack(">I", len(payload)) + payload
