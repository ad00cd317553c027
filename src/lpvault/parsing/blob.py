"""Vault blob decoding and account request encoding.

Decoding runs in two passes over the chunk stream:

1. Every shared-folder chunk is resolved to a SharedFolder. Its key comes
   from the session cache when the folder was seen before; otherwise it is
   unwrapped with the user's private key and cached in the session.
2. Account chunks are decrypted in stream order. An account belongs to the
   most recent shared-folder chunk before it, or to the private vault when
   no folder chunk has been seen yet.

Any format or crypto failure aborts the whole decode; no partial account
list is ever returned.
"""

from __future__ import annotations

import binascii
import logging
from typing import TYPE_CHECKING

from lpvault.exceptions import CryptoError, FormatError
from lpvault.models import Account, AccountField, SharedFolder
from lpvault.models.account import GROUP_URL
from lpvault.security import decrypt_text, encrypt_text, unwrap_folder_key

from .chunks import Chunk, ChunkReader, ChunkTag, read_items

if TYPE_CHECKING:
    from lpvault.session import Session

logger = logging.getLogger(__name__)


class AccountItem:
    """Positions of the items inside an account chunk."""

    ID = 0
    NAME = 1
    GROUP = 2
    URL = 3
    NOTES = 4
    FAV = 5
    SHARED_FROM_AID = 6
    USERNAME = 7
    PASSWORD = 8
    PWPROTECT = 9
    GENPW = 10
    SECURE_NOTE = 11
    LAST_TOUCH = 12
    LAST_MODIFIED_GMT = 31


class ShareItem:
    """Positions of the items inside a shared-folder chunk."""

    ID = 0
    RSA_KEY = 1
    NAME = 2
    READONLY = 3
    GIVE = 4
    AES_KEY = 5


class FieldItem:
    """Positions of the items inside an account-field chunk."""

    NAME = 0
    TYPE = 1
    VALUE = 2
    CHECKED = 3


# Field types whose value is stored encrypted
ENCRYPTED_FIELD_TYPES = frozenset({"email", "tel", "text", "password", "textarea"})


def _item(items: list[bytes], index: int) -> bytes:
    """Return item at index, or empty bytes for missing trailing items."""
    return items[index] if index < len(items) else b""


def _plain(items: list[bytes], index: int) -> str:
    try:
        return _item(items, index).decode("utf-8")
    except UnicodeDecodeError as e:
        raise FormatError(f"Item {index} is not valid UTF-8") from e


def _hex_text(items: list[bytes], index: int) -> str:
    try:
        return binascii.unhexlify(_item(items, index)).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Item {index} is not valid hex-encoded text") from e


class BlobDecoder:
    """Decoder turning blob bytes into accounts.

    The decoder borrows a Session for its keys and adds newly resolved
    folders to the session's cache, so repeated decodes reuse earlier
    unwraps.
    """

    def __init__(self, session: Session) -> None:
        """Initialize decoder.

        Args:
            session: Session providing the vault key, private key and
                folder-key cache
        """
        self._session = session
        self._folders: list[SharedFolder] = []

    @property
    def folders(self) -> list[SharedFolder]:
        """Shared folders found by the last decode, in stream order."""
        return list(self._folders)

    def decode(self, data: bytes) -> list[Account]:
        """Decode a complete blob.

        Args:
            data: Raw (base64-decoded) blob bytes

        Returns:
            Accounts in encounter order

        Raises:
            FormatError: If the blob structure is malformed
            CryptoError: If a field or folder key cannot be decrypted
        """
        chunks = list(ChunkReader(data))

        # Pass 1: resolve every folder before touching accounts
        folders_at: dict[int, SharedFolder] = {}
        for index, chunk in enumerate(chunks):
            if chunk.tag == ChunkTag.SHARE:
                folders_at[index] = self._resolve_folder(chunk)
        self._folders = list(folders_at.values())

        # Pass 2: decrypt accounts with their owning folder's key
        accounts: list[Account] = []
        current_folder: SharedFolder | None = None
        last_account: Account | None = None

        for index, chunk in enumerate(chunks):
            if chunk.tag == ChunkTag.SHARE:
                current_folder = folders_at[index]
            elif chunk.tag == ChunkTag.ACCOUNT:
                last_account = self._parse_account(chunk, current_folder)
                if last_account is not None:
                    accounts.append(last_account)
            elif chunk.tag == ChunkTag.ACCOUNT_FIELD:
                if last_account is not None:
                    key = (
                        current_folder.key
                        if current_folder is not None
                        else self._session.vault_key
                    )
                    last_account.fields.append(self._parse_field(chunk, key))
            elif chunk.tag == ChunkTag.END:
                break

        logger.debug(
            "Decoded %d accounts and %d shared folders from %d chunks",
            len(accounts),
            len(self._folders),
            len(chunks),
        )
        return accounts

    def _resolve_folder(self, chunk: Chunk) -> SharedFolder:
        """Build a SharedFolder from a folder chunk, unwrapping its key."""
        items = read_items(chunk.payload)
        folder_id = _plain(items, ShareItem.ID)

        cached = self._session.cached_folder(folder_id)
        if cached is not None:
            key = cached.key
        else:
            key = self._unwrap_key(folder_id, items)

        folder = SharedFolder(
            id=folder_id,
            name=decrypt_text(_item(items, ShareItem.NAME), key),
            key=key,
            readonly=_plain(items, ShareItem.READONLY) == "1",
        )
        self._session.cache_folder(folder)
        return folder

    def _unwrap_key(self, folder_id: str, items: list[bytes]) -> bytes:
        aes_key = _item(items, ShareItem.AES_KEY)
        if aes_key:
            # Some folders carry their key AES-encrypted with the vault key
            key_hex = decrypt_text(aes_key, self._session.vault_key)
            try:
                return binascii.unhexlify(key_hex)
            except (binascii.Error, ValueError) as e:
                raise CryptoError(f"Invalid AES share key for folder {folder_id}") from e

        if self._session.private_key is None:
            raise CryptoError(
                f"Cannot unwrap key of shared folder {folder_id}: no private key"
            )
        logger.debug("Unwrapping key of shared folder %s", folder_id)
        return unwrap_folder_key(
            _item(items, ShareItem.RSA_KEY), self._session.private_key
        )

    def _parse_account(
        self, chunk: Chunk, folder: SharedFolder | None
    ) -> Account | None:
        """Decrypt an account chunk; folder placeholders yield None."""
        items = read_items(chunk.payload)
        key = folder.key if folder is not None else self._session.vault_key

        url = _hex_text(items, AccountItem.URL)
        if url == GROUP_URL:
            return None

        return Account(
            id=_plain(items, AccountItem.ID),
            name=decrypt_text(_item(items, AccountItem.NAME), key),
            username=decrypt_text(_item(items, AccountItem.USERNAME), key),
            password=decrypt_text(_item(items, AccountItem.PASSWORD), key),
            url=url,
            group=decrypt_text(_item(items, AccountItem.GROUP), key),
            notes=decrypt_text(_item(items, AccountItem.NOTES), key),
            share=folder.name if folder is not None else "",
            last_modified_gmt=_plain(items, AccountItem.LAST_MODIFIED_GMT),
            last_touch=_plain(items, AccountItem.LAST_TOUCH),
        )

    def _parse_field(self, chunk: Chunk, key: bytes) -> AccountField:
        items = read_items(chunk.payload)
        field_type = _plain(items, FieldItem.TYPE)
        if field_type in ENCRYPTED_FIELD_TYPES:
            value = decrypt_text(_item(items, FieldItem.VALUE), key)
        else:
            value = _plain(items, FieldItem.VALUE)
        return AccountField(
            name=_plain(items, FieldItem.NAME),
            type=field_type,
            value=value,
            checked=_plain(items, FieldItem.CHECKED) == "1",
        )


def decode_blob(data: bytes, session: Session) -> list[Account]:
    """Convenience function to decode a blob.

    Args:
        data: Raw blob bytes
        session: Session providing keys

    Returns:
        Accounts in encounter order
    """
    return BlobDecoder(session).decode(data)


def encode_account_form(account: Account, key: bytes) -> dict[str, str]:
    """Build the request form fields describing an account.

    Args:
        account: Account to encode
        key: Vault key, or the owning folder's key for shared accounts

    Returns:
        Form fields for the add/update endpoint
    """
    return {
        "aid": account.id or "0",
        "url": account.url.encode("utf-8").hex(),
        "name": encrypt_text(account.name, key),
        "grouping": encrypt_text(account.group, key),
        "username": encrypt_text(account.username, key),
        "password": encrypt_text(account.password, key),
        "extra": encrypt_text(account.notes, key),
    }
