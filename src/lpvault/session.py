"""Authenticated session state.

A Session is everything needed to talk to the vault after login: the
server-side session identifier and CSRF token, the derived vault key, the
user's RSA private key, and the cache of already-unwrapped shared-folder
keys. The master password is not part of it.

Sessions serialize to an opaque string and can be restored from it without
network access, which enables decoding a captured blob or building requests
offline.
"""

from __future__ import annotations

import base64
import binascii
import json
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from Cryptodome.PublicKey.RSA import RsaKey

from .exceptions import CryptoError, SessionError
from .models import SharedFolder
from .security import export_private_key, import_private_key
from .security.kdf import VAULT_KEY_SIZE

# Version of the serialized form
SERIALIZATION_VERSION = 1

# Cookie carrying the server-side session identifier
SESSION_COOKIE = "PHPSESSID"


class SessionState(Enum):
    """Lifecycle of a session as seen by the SessionManager."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    LOGGED_OUT = "logged_out"
    EXPIRED = "expired"


@dataclass
class Session:
    """Authenticated identity plus cryptographic material.

    Attributes:
        username: Account e-mail used to log in
        session_id: Value of the server session cookie
        token: CSRF token sent with every mutation
        vault_key: 32-byte AES key derived from the master password
        iterations: Iteration count the vault key was derived with
        server: Base URL of the service
        uid: Server-side user ID
        private_key: User's RSA private key, if the account has one
    """

    username: str
    session_id: str
    token: str
    vault_key: bytes = field(repr=False)
    iterations: int
    server: str
    uid: str = ""
    private_key: RsaKey | None = field(default=None, repr=False)
    _folders: dict[str, SharedFolder] = field(
        default_factory=dict, repr=False, compare=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        """Validate key material."""
        if len(self.vault_key) != VAULT_KEY_SIZE:
            raise SessionError(
                f"Vault key must be {VAULT_KEY_SIZE} bytes, got {len(self.vault_key)}"
            )

    # --- Request material ---

    @property
    def cookies(self) -> dict[str, str]:
        """Cookies to attach to every request."""
        return {SESSION_COOKIE: self.session_id}

    @property
    def cookie_header(self) -> str:
        """Cookies formatted as a ``Cookie`` header value."""
        return "; ".join(f"{k}={v}" for k, v in self.cookies.items())

    # --- Folder-key cache ---

    @property
    def folders(self) -> list[SharedFolder]:
        """Snapshot of the resolved shared folders."""
        with self._lock:
            return list(self._folders.values())

    def cached_folder(self, folder_id: str) -> SharedFolder | None:
        """Return the cached folder with the given ID, if any."""
        with self._lock:
            return self._folders.get(folder_id)

    def find_folder(self, name: str) -> SharedFolder | None:
        """Return the cached folder with the given name, if any."""
        with self._lock:
            for folder in self._folders.values():
                if folder.name == name:
                    return folder
        return None

    def cache_folder(self, folder: SharedFolder) -> None:
        """Add or refresh a resolved folder."""
        with self._lock:
            self._folders[folder.id] = folder

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation including key material."""
        return {
            "version": SERIALIZATION_VERSION,
            "username": self.username,
            "uid": self.uid,
            "session_id": self.session_id,
            "token": self.token,
            "iterations": self.iterations,
            "server": self.server,
            "vault_key": self.vault_key.hex(),
            "private_key": (
                export_private_key(self.private_key).hex()
                if self.private_key is not None
                else None
            ),
            "folders": [
                {
                    "id": f.id,
                    "name": f.name,
                    "key": f.key.hex(),
                    "readonly": f.readonly,
                }
                for f in self.folders
            ],
        }

    def serialize(self) -> str:
        """Serialize to an opaque string.

        The result contains the vault key and private key in the clear;
        callers must store it as securely as the master password.
        """
        raw = json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """Rebuild a session from to_dict() output.

        Raises:
            SessionError: If required data is missing or malformed
        """
        if data.get("version") != SERIALIZATION_VERSION:
            raise SessionError(
                f"Unsupported session version: {data.get('version')!r}"
            )
        try:
            private_key_hex = data.get("private_key")
            session = cls(
                username=data["username"],
                uid=data.get("uid", ""),
                session_id=data["session_id"],
                token=data["token"],
                iterations=int(data["iterations"]),
                server=data["server"],
                vault_key=bytes.fromhex(data["vault_key"]),
                private_key=(
                    import_private_key(bytes.fromhex(private_key_hex))
                    if private_key_hex
                    else None
                ),
            )
            for entry in data.get("folders", []):
                session.cache_folder(
                    SharedFolder(
                        id=entry["id"],
                        name=entry["name"],
                        key=bytes.fromhex(entry["key"]),
                        readonly=bool(entry["readonly"]),
                    )
                )
        except (KeyError, TypeError, ValueError, CryptoError) as e:
            raise SessionError(f"Invalid serialized session: {e}") from e
        return session

    @classmethod
    def deserialize(cls, serialized: str) -> Session:
        """Restore a session from serialize() output.

        Raises:
            SessionError: If the string is not a valid serialized session
        """
        try:
            raw = base64.urlsafe_b64decode(serialized.encode("ascii"))
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeError) as e:
            raise SessionError("Invalid serialized session") from e
        if not isinstance(data, dict):
            raise SessionError("Invalid serialized session")
        return cls.from_dict(data)
