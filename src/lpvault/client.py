"""High-level client API for a LastPass vault.

Client ties a Session to a SessionManager and a CommandExecutor sharing
one transport. It is the main entry point of the library.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import BinaryIO

from .auth import LoginOptions, SessionManager
from .commands import CommandExecutor
from .config import ClientSettings
from .exceptions import SessionError
from .models import Account, SharedFolder
from .session import Session, SessionState
from .transport import USE_SETTINGS, HttpxTransport, Transport

logger = logging.getLogger(__name__)


class Client:
    """Authenticated vault client.

    Example usage:
        # Log in and list accounts
        client = Client.login("user@example.com", "secret")
        for account in client.accounts():
            print(account.name, account.username)

        # Create an account
        account = client.add(Account(name="New Site", password="pass123"))

        # Save the session and restore it later without the password
        saved = client.session()
        client = Client.from_session(saved)
    """

    def __init__(
        self,
        session: Session,
        transport: Transport,
        settings: ClientSettings | None = None,
        *,
        manager: SessionManager | None = None,
        owns_transport: bool = False,
    ) -> None:
        """Initialize client.

        Usually you should use Client.login() or Client.from_session()
        instead.

        Args:
            session: Authenticated session
            transport: Transport for all requests
            settings: Client settings
            manager: Session manager that produced the session
            owns_transport: Close the transport together with the client
        """
        self._settings = settings or ClientSettings()
        self._session: Session | None = session
        self._transport = transport
        self._manager = manager or SessionManager(transport, self._settings)
        self._executor = CommandExecutor(transport, self._settings)
        self._owns_transport = owns_transport

    def __enter__(self) -> Client:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager, closing an owned transport."""
        self.close()

    def close(self) -> None:
        """Close the transport if the client created it."""
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            self._transport.close()

    # --- Construction ---

    @classmethod
    def login(
        cls,
        username: str,
        password: str,
        *,
        transport: Transport | None = None,
        settings: ClientSettings | None = None,
        options: LoginOptions | None = None,
    ) -> Client:
        """Log in and return a client.

        Args:
            username: Account e-mail
            password: Master password
            transport: Transport to use (defaults to a new HttpxTransport)
            settings: Client settings
            options: Second-factor answer, trusted-device data, timeout

        Returns:
            Client instance

        Raises:
            AuthenticationError: If the credentials are rejected
            ChallengeRequiredError: If a second factor must be supplied
            ProtocolError: If the server response is unexpected
        """
        owns_transport = transport is None
        transport = transport if transport is not None else HttpxTransport()
        settings = settings or ClientSettings()
        manager = SessionManager(transport, settings)
        try:
            session = manager.login(username, password, options)
        except BaseException:
            if owns_transport and isinstance(transport, HttpxTransport):
                transport.close()
            raise
        return cls(
            session,
            transport,
            settings,
            manager=manager,
            owns_transport=owns_transport,
        )

    @classmethod
    def from_session(
        cls,
        serialized: str,
        *,
        transport: Transport | None = None,
        settings: ClientSettings | None = None,
    ) -> Client:
        """Restore a client from Client.session() output.

        No request is sent; the restored client can decode previously
        fetched blobs even without network access.

        Raises:
            SessionError: If the serialized form is invalid
        """
        owns_transport = transport is None
        transport = transport if transport is not None else HttpxTransport()
        settings = settings or ClientSettings()
        manager = SessionManager(transport, settings)
        session = manager.from_session(serialized)
        return cls(
            session,
            transport,
            settings,
            manager=manager,
            owns_transport=owns_transport,
        )

    # --- Properties ---

    @property
    def settings(self) -> ClientSettings:
        """Get client settings."""
        return self._settings

    @property
    def state(self) -> SessionState:
        """Lifecycle state of the client's session."""
        return self._manager.state

    @property
    def username(self) -> str:
        """Account e-mail of the logged-in user."""
        return self._require_session().username

    @property
    def folders(self) -> list[SharedFolder]:
        """Shared folders resolved so far."""
        return self._require_session().folders

    def _require_session(self) -> Session:
        if self._session is None:
            raise SessionError("Client is logged out")
        return self._session

    # --- Vault operations ---
    # Every timeout defaults to ClientSettings.timeout; None disables it.

    def accounts(self, timeout: float | None | object = USE_SETTINGS) -> list[Account]:
        """Fetch and decrypt all accounts, shared ones included."""
        return self._executor.list_accounts(self._require_session(), timeout)

    def add(self, account: Account, timeout: float | None | object = USE_SETTINGS) -> Account:
        """Create an account and return it with its server-assigned ID."""
        return self._executor.add(self._require_session(), account, timeout)

    def update(self, account: Account, timeout: float | None | object = USE_SETTINGS) -> None:
        """Overwrite an existing account."""
        self._executor.update(self._require_session(), account, timeout)

    def delete(self, account: Account, timeout: float | None | object = USE_SETTINGS) -> None:
        """Remove an account."""
        self._executor.delete(self._require_session(), account, timeout)

    def fetch_encrypted_accounts(self, timeout: float | None | object = USE_SETTINGS) -> bytes:
        """Download the encrypted vault for later offline decoding."""
        return self._executor.fetch_raw_blob(self._require_session(), timeout)

    def parse_encrypted_accounts(self, data: bytes | BinaryIO) -> list[Account]:
        """Decode a vault previously returned by fetch_encrypted_accounts().

        Args:
            data: Blob bytes or a binary file object to read them from
        """
        if not isinstance(data, (bytes, bytearray)):
            data = data.read()
        return self._executor.decode_blob(self._require_session(), bytes(data))

    # --- Session lifecycle ---

    def session(self) -> str:
        """Serialize the session for Client.from_session().

        The result contains the vault key; store it as securely as the
        master password.
        """
        return self._require_session().serialize()

    def check(self, timeout: float | None | object = USE_SETTINGS) -> bool:
        """Return whether the server still accepts the session."""
        return self._manager.check(self._require_session(), timeout)

    def logout(self, timeout: float | None | object = USE_SETTINGS) -> None:
        """Invalidate the session on the server.

        Further operations on this client raise SessionError. Logging out
        twice is a no-op.
        """
        if self._session is None:
            return
        self._manager.logout(self._session, timeout)
        self._session = None
        logger.debug("Logged out")
