"""Custom exception hierarchy for lpvault.

All exceptions raised by lpvault inherit from VaultError, so callers can
catch every library-specific failure with a single except clause.

Exception Hierarchy:
    VaultError (base)
    ├── AuthenticationError
    │   └── ChallengeRequiredError
    ├── CryptoError
    │   └── KdfError
    ├── FormatError
    ├── ProtocolError
    ├── TransportError
    ├── SessionError
    └── AccountError
        ├── AccountNotFoundError
        ├── ReadOnlyShareError
        └── ShareNotFoundError

Security Note:
    Exception messages never include key material, passwords or decrypted
    field values. They carry identifiers (account IDs, folder names, server
    causes) only.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base exception for all lpvault errors."""


# --- Authentication Errors ---


class AuthenticationError(VaultError):
    """The server rejected the supplied credentials.

    Raised for unknown usernames, wrong master passwords and rejected
    second-factor responses.
    """

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class ChallengeRequiredError(AuthenticationError):
    """The server requires an interactive second factor.

    lpvault does not drive multi-factor prompts. The caller resolves the
    challenge (for example by asking the user for a one-time password) and
    logs in again with the answer in LoginOptions.

    Attributes:
        cause: Server cause code, e.g. "otprequired" or "outofbandrequired"
    """

    def __init__(self, cause: str, message: str = "") -> None:
        self.cause = cause
        super().__init__(message or f"Second factor required: {cause}")


# --- Crypto Errors ---


class CryptoError(VaultError):
    """Malformed ciphertext or key material.

    Raised when a payload has the wrong block alignment, a truncated IV,
    invalid padding, or when a key cannot be parsed or unwrapped.
    """


class KdfError(CryptoError):
    """Invalid key derivation parameters."""


# --- Format Errors ---


class FormatError(VaultError):
    """Malformed blob bytes.

    Raised when a chunk header is truncated or a declared length runs past
    the end of the buffer.
    """


# --- Protocol / Transport Errors ---


class ProtocolError(VaultError):
    """Unexpected or unparseable server response.

    Attributes:
        detail: Raw server message or a description of what was unexpected
    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class TransportError(VaultError):
    """The transport failed to deliver a request.

    The underlying network exception is chained as ``__cause__`` and is not
    interpreted further. Retry policy belongs to the caller.
    """


class SessionError(VaultError):
    """The session is unusable.

    Raised for malformed serialized sessions and for operations attempted
    after logout.
    """


# --- Account Errors ---


class AccountError(VaultError):
    """Base class for per-account mutation failures."""


class AccountNotFoundError(AccountError):
    """The target account ID does not exist in the vault.

    Two instances compare equal when they refer to the same ID.

    Attributes:
        id: The account ID that could not be resolved
    """

    def __init__(self, id: str) -> None:
        self.id = id
        super().__init__(f"Could not find LastPass account with ID={id}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountNotFoundError):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((AccountNotFoundError, self.id))


class ReadOnlyShareError(AccountError):
    """The target shared folder is read-only for this session.

    Attributes:
        folder_name: Name of the shared folder
    """

    def __init__(self, folder_name: str) -> None:
        self.folder_name = folder_name
        super().__init__(
            f"Account cannot be written to read-only shared folder {folder_name}."
        )


class ShareNotFoundError(AccountError):
    """No shared folder with the given name is visible to this session.

    Attributes:
        folder_name: Name that was looked up
    """

    def __init__(self, folder_name: str) -> None:
        self.folder_name = folder_name
        super().__init__(f"Shared folder not found: {folder_name}")
