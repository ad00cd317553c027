"""lpvault - A Python client library for the LastPass password vault.

This library logs in to the service, downloads and decrypts the vault
(including shared folders), and adds, updates or deletes accounts. It
supports working offline:
- Sessions serialize to an opaque string and restore without the password
- Downloaded vaults can be decoded later without network access
- Mutations can be recorded now and delivered later

Example:
    from lpvault import Account, Client

    client = Client.login("user@example.com", "secret")
    for account in client.accounts():
        print(account.name, account.username)

    # Create new account
    account = client.add(
        Account(name="New Site", username="user", password="pass123")
    )
    client.logout()
"""

__version__ = "0.1.0"

from .auth import LoginOptions, SessionManager
from .client import Client
from .commands import CommandExecutor
from .config import ClientSettings
from .exceptions import (
    AccountError,
    AccountNotFoundError,
    AuthenticationError,
    ChallengeRequiredError,
    CryptoError,
    FormatError,
    KdfError,
    ProtocolError,
    ReadOnlyShareError,
    SessionError,
    ShareNotFoundError,
    TransportError,
    VaultError,
)
from .models import Account, AccountField, SharedFolder
from .session import Session, SessionState
from .transport import HttpxTransport, RecordingTransport, Transport

__all__ = [
    # Core classes
    "Account",
    "AccountField",
    "Client",
    "ClientSettings",
    "CommandExecutor",
    "LoginOptions",
    "Session",
    "SessionManager",
    "SessionState",
    "SharedFolder",
    # Transports
    "HttpxTransport",
    "RecordingTransport",
    "Transport",
    # Exceptions
    "AccountError",
    "AccountNotFoundError",
    "AuthenticationError",
    "ChallengeRequiredError",
    "CryptoError",
    "FormatError",
    "KdfError",
    "ProtocolError",
    "ReadOnlyShareError",
    "SessionError",
    "ShareNotFoundError",
    "TransportError",
    "VaultError",
]
