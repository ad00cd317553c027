"""Shared-folder model."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class SharedFolder:
    """A shared partition of the vault.

    Attributes:
        id: Server-assigned folder ID
        name: Decrypted folder name
        key: 32-byte AES key for the folder's accounts
        readonly: True if this session may only read the folder
    """

    id: str
    name: str
    key: bytes = field(repr=False)
    readonly: bool = False

    def __repr__(self) -> str:
        """Return string representation (hides key)."""
        return (
            f"SharedFolder(id={self.id!r}, name={self.name!r}, "
            f"readonly={self.readonly})"
        )
