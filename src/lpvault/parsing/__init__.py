"""Vault binary format and server response parsing.

This module handles low-level format operations:
- Chunk reading and writing
- Two-pass blob decoding into accounts and shared folders
- Request-form encoding for account mutations
- XML response parsing

All binary parsing uses Python's struct module.
"""

from .blob import (
    AccountItem,
    BlobDecoder,
    ShareItem,
    decode_blob,
    encode_account_form,
)
from .chunks import (
    Chunk,
    ChunkReader,
    ChunkTag,
    read_items,
    write_chunk,
    write_item,
)
from .responses import (
    LoginFailure,
    LoginResult,
    MutationResult,
    parse_iterations,
    parse_login_response,
    parse_mutation_response,
    parse_ok_attributes,
)

__all__ = [
    # Chunks
    "Chunk",
    "ChunkReader",
    "ChunkTag",
    "read_items",
    "write_chunk",
    "write_item",
    # Blob
    "AccountItem",
    "BlobDecoder",
    "ShareItem",
    "decode_blob",
    "encode_account_form",
    # Responses
    "LoginFailure",
    "LoginResult",
    "MutationResult",
    "parse_iterations",
    "parse_login_response",
    "parse_mutation_response",
    "parse_ok_attributes",
]
