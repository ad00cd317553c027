"""Vault retrieval and account mutations.

CommandExecutor builds protocol requests from a Session, hands them to a
Transport and interprets the answers. It never retries. Every request it
builds carries the session cookie and CSRF token, so a request captured by a
RecordingTransport can be delivered later on its own.

A mutation the server answers with a well-formed result lacking the expected
success marker is treated as "account not found".
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import replace

import httpx

from .config import ClientSettings
from .exceptions import (
    AccountNotFoundError,
    ProtocolError,
    ReadOnlyShareError,
    ShareNotFoundError,
)
from .models import Account, SharedFolder
from .parsing import BlobDecoder, encode_account_form, parse_mutation_response
from .parsing.responses import MutationResult
from .session import Session
from .transport import BLOB_PATH, MUTATE_PATH, USE_SETTINGS, Transport, build_request

logger = logging.getLogger(__name__)

# Success markers of the mutation endpoint
ADDED = "accountadded"
UPDATED = "accountupdated"
DELETED = "accountdeleted"


class CommandExecutor:
    """Executes vault commands for a Session over a Transport.

    Example:
        executor = CommandExecutor(HttpxTransport())
        account = executor.add(session, Account(name="site", password="pw"))
        for acct in executor.list_accounts(session):
            print(acct.fullname)
    """

    def __init__(
        self,
        transport: Transport,
        settings: ClientSettings | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            transport: Transport used for every request
            settings: Client settings (defaults to ClientSettings())
        """
        self._transport = transport
        self._settings = settings or ClientSettings()

    @property
    def transport(self) -> Transport:
        """Transport requests are sent through."""
        return self._transport

    def _send(
        self,
        session: Session,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        timeout: float | None | object = USE_SETTINGS,
    ) -> httpx.Response:
        request = build_request(
            self._settings,
            method,
            path,
            session=session,
            params=params,
            data=data,
            timeout=timeout,
        )
        return self._transport.send(request)

    # --- Retrieval ---

    def fetch_raw_blob(
        self, session: Session, timeout: float | None | object = USE_SETTINGS
    ) -> bytes:
        """Download the encrypted vault.

        Returns:
            Raw blob bytes (base64 transport encoding removed)

        Raises:
            ProtocolError: On a non-200 answer or an empty or invalid body
            TransportError: If the request cannot be delivered
        """
        response = self._send(
            session,
            "GET",
            BLOB_PATH,
            params={
                "mobile": "1",
                "b64": "1",
                "hash": "0.0",
                "hasplugin": self._settings.plugin_version,
                "requestsrc": self._settings.client_method,
            },
            timeout=timeout,
        )
        if response.status_code != 200:
            raise ProtocolError(
                f"Vault download failed with status {response.status_code}"
            )

        body = response.content.strip()
        if not body:
            raise ProtocolError("Vault download returned an empty body")
        try:
            blob = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProtocolError("Vault download returned invalid base64") from e

        logger.debug("Fetched %d byte blob", len(blob))
        return blob

    def decode_blob(self, session: Session, data: bytes) -> list[Account]:
        """Decode previously fetched blob bytes without network access."""
        return BlobDecoder(session).decode(data)

    def list_accounts(
        self, session: Session, timeout: float | None | object = USE_SETTINGS
    ) -> list[Account]:
        """Fetch and decode the vault.

        Raises:
            FormatError: If the blob is malformed
            CryptoError: If a field or folder key cannot be decrypted
            ProtocolError: If the download fails
        """
        return self.decode_blob(session, self.fetch_raw_blob(session, timeout))

    # --- Shared folders ---

    def resolve_folder(
        self,
        session: Session,
        name: str,
        timeout: float | None | object = USE_SETTINGS,
    ) -> SharedFolder:
        """Find a shared folder by name.

        The session cache is consulted first; the vault is fetched and
        decoded only when the folder is not cached yet.

        Raises:
            ShareNotFoundError: If no visible folder has that name
        """
        folder = session.find_folder(name)
        if folder is None:
            logger.debug("Shared folder %r not cached, fetching vault", name)
            self.list_accounts(session, timeout)
            folder = session.find_folder(name)
        if folder is None:
            raise ShareNotFoundError(name)
        return folder

    def _writable_folder(
        self, session: Session, account: Account, timeout: float | None | object
    ) -> SharedFolder | None:
        if not account.is_shared:
            return None
        folder = self.resolve_folder(session, account.share, timeout)
        if folder.readonly:
            raise ReadOnlyShareError(folder.name)
        return folder

    # --- Mutations ---

    def _mutate(
        self,
        session: Session,
        form: dict[str, str],
        timeout: float | None | object,
    ) -> MutationResult:
        response = self._send(session, "POST", MUTATE_PATH, data=form, timeout=timeout)
        if response.status_code != 200:
            raise ProtocolError(
                f"Account request failed with status {response.status_code}: "
                f"{response.text[:200]}"
            )
        return parse_mutation_response(response.content)

    def _save_form(
        self, session: Session, account: Account, folder: SharedFolder | None
    ) -> dict[str, str]:
        key = folder.key if folder is not None else session.vault_key
        form = {
            "extjs": "1",
            "token": session.token,
            "method": self._settings.client_method,
            "pwprotect": "off",
        }
        form.update(encode_account_form(account, key))
        if folder is not None:
            form["sharedfolderid"] = folder.id
        return form

    def add(
        self,
        session: Session,
        account: Account,
        timeout: float | None | object = USE_SETTINGS,
    ) -> Account:
        """Create an account.

        Args:
            session: Authenticated session
            account: Account to create; its ``id`` is ignored
            timeout: Per-request timeout in seconds

        Returns:
            Copy of the account with the server-assigned ID

        Raises:
            ReadOnlyShareError: If the target folder is read-only
            ShareNotFoundError: If the target folder is unknown
            ProtocolError: If the server does not confirm the addition
        """
        folder = self._writable_folder(session, account, timeout)
        form = self._save_form(session, replace(account, id=""), folder)
        result = self._mutate(session, form, timeout)

        if result.msg != ADDED:
            raise ProtocolError(f"Account was not added: {result.msg or 'no status'}")

        logger.debug("Added account %s", result.aid)
        return replace(account, id=result.aid, fields=list(account.fields))

    def update(
        self,
        session: Session,
        account: Account,
        timeout: float | None | object = USE_SETTINGS,
    ) -> None:
        """Overwrite an existing account.

        Raises:
            AccountNotFoundError: If the server does not know the account ID
            ReadOnlyShareError: If the target folder is read-only
            ShareNotFoundError: If the target folder is unknown
            ProtocolError: If the server answers with an error
        """
        if not account.id:
            raise AccountNotFoundError(account.id)

        folder = self._writable_folder(session, account, timeout)
        result = self._mutate(session, self._save_form(session, account, folder), timeout)

        if result.msg != UPDATED:
            raise AccountNotFoundError(account.id)
        logger.debug("Updated account %s", account.id)

    def delete(
        self,
        session: Session,
        account: Account,
        timeout: float | None | object = USE_SETTINGS,
    ) -> None:
        """Remove an account.

        Raises:
            AccountNotFoundError: If the server does not know the account ID
            ReadOnlyShareError: If the target folder is read-only
            ShareNotFoundError: If the target folder is unknown
            ProtocolError: If the server answers with an error
        """
        if not account.id:
            raise AccountNotFoundError(account.id)

        folder = self._writable_folder(session, account, timeout)
        form = {
            "extjs": "1",
            "token": session.token,
            "delete": "1",
            "aid": account.id,
        }
        if folder is not None:
            form["sharedfolderid"] = folder.id

        result = self._mutate(session, form, timeout)
        if result.msg != DELETED:
            raise AccountNotFoundError(account.id)
        logger.debug("Deleted account %s", account.id)
