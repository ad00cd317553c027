"""Test utilities for lpvault.

WARNING: The helpers in this module are for TESTING ONLY. MockVaultServer
keeps master passwords and folder keys in plain memory and implements just
enough of the service to exercise the client.

Two helpers are provided:
- BlobBuilder assembles vault blobs chunk by chunk, encrypting fields the
  way the service does
- MockVaultServer is an in-memory service answering the endpoints the
  client uses; plug it into httpx with ``httpx.MockTransport``

Example:
    >>> server = MockVaultServer()
    >>> server.add_user("alice@example.com", "secret", iterations=2)
    >>> client = Client.login(
    ...     "alice@example.com", "secret", transport=server.transport()
    ... )
"""

from __future__ import annotations

import base64
import itertools
import secrets
import time
from dataclasses import dataclass, field
from http.cookies import SimpleCookie

import httpx
from Cryptodome.PublicKey import RSA
from Cryptodome.PublicKey.RSA import RsaKey

from lpvault.models import Account, SharedFolder
from lpvault.models.account import GROUP_URL, SECURE_NOTE_URL
from lpvault.parsing.blob import AccountItem, ShareItem
from lpvault.parsing.chunks import ChunkTag, write_chunk, write_item
from lpvault.security import (
    DEFAULT_ITERATIONS,
    FieldEncoding,
    derive_keys,
    encrypt_field,
    encrypt_private_key,
    encrypt_text,
    secure_random_bytes,
    wrap_folder_key,
)
from lpvault.session import SESSION_COOKIE
from lpvault.transport import (
    BLOB_PATH,
    ITERATIONS_PATH,
    LOGIN_CHECK_PATH,
    LOGIN_PATH,
    LOGOUT_PATH,
    MUTATE_PATH,
    HttpxTransport,
    form_fields,
)

# Number of positional items in an account chunk
ACCOUNT_ITEM_COUNT = AccountItem.LAST_MODIFIED_GMT + 1

# Smallest key size pycryptodome generates
TEST_RSA_BITS = 1024


def _account_items(
    *,
    id: str,
    name: bytes,
    group: bytes,
    url_hex: bytes,
    notes: bytes,
    username: bytes,
    password: bytes,
    secure_note: bool,
    last_touch: str,
    last_modified_gmt: str,
) -> bytes:
    items = [b""] * ACCOUNT_ITEM_COUNT
    items[AccountItem.ID] = id.encode("utf-8")
    items[AccountItem.NAME] = name
    items[AccountItem.GROUP] = group
    items[AccountItem.URL] = url_hex
    items[AccountItem.NOTES] = notes
    items[AccountItem.FAV] = b"0"
    items[AccountItem.USERNAME] = username
    items[AccountItem.PASSWORD] = password
    items[AccountItem.PWPROTECT] = b"0"
    items[AccountItem.GENPW] = b"0"
    items[AccountItem.SECURE_NOTE] = b"1" if secure_note else b"0"
    items[AccountItem.LAST_TOUCH] = last_touch.encode("ascii")
    items[AccountItem.LAST_MODIFIED_GMT] = last_modified_gmt.encode("ascii")
    return b"".join(write_item(item) for item in items)


def _share_items(
    folder_id: str,
    wrapped_key: bytes,
    encrypted_name: bytes,
    readonly: bool,
    aes_key: bytes = b"",
) -> bytes:
    items = [b""] * (ShareItem.AES_KEY + 1)
    items[ShareItem.ID] = folder_id.encode("utf-8")
    items[ShareItem.RSA_KEY] = wrapped_key
    items[ShareItem.NAME] = encrypted_name
    items[ShareItem.READONLY] = b"1" if readonly else b"0"
    items[ShareItem.GIVE] = b"0" if readonly else b"1"
    items[ShareItem.AES_KEY] = aes_key
    return b"".join(write_item(item) for item in items)


class BlobBuilder:
    """Assembles a vault blob.

    Accounts added after a share() call belong to that shared folder and
    are encrypted with its key, mirroring the chunk order the service uses.

    Example:
        >>> blob = (
        ...     BlobBuilder(vault_key)
        ...     .account(Account(id="1", name="site"))
        ...     .share(folder, public_key)
        ...     .account(Account(id="2", name="shared site"))
        ...     .build()
        ... )
    """

    def __init__(
        self,
        vault_key: bytes,
        encoding: FieldEncoding = FieldEncoding.CBC,
    ) -> None:
        """Initialize builder.

        Args:
            vault_key: Key for private accounts
            encoding: Field encoding used for encrypted items
        """
        self._vault_key = vault_key
        self._encoding = encoding
        self._current_key = vault_key
        self._chunks: list[bytes] = [write_chunk(ChunkTag.VERSION, b"1")]

    def chunk(self, tag: bytes, payload: bytes) -> BlobBuilder:
        """Append a raw chunk."""
        self._chunks.append(write_chunk(tag, payload))
        return self

    def account(self, account: Account, key: bytes | None = None) -> BlobBuilder:
        """Append an account chunk.

        Args:
            account: Account to encode; empty timestamps become "now"
            key: Encryption key (defaults to the current folder or vault key)
        """
        key = key if key is not None else self._current_key
        now = str(int(time.time()))

        def enc(value: str) -> bytes:
            return encrypt_field(value, key, self._encoding)

        payload = _account_items(
            id=account.id,
            name=enc(account.name),
            group=enc(account.group),
            url_hex=account.url.encode("utf-8").hex().encode("ascii"),
            notes=enc(account.notes),
            username=enc(account.username),
            password=enc(account.password),
            secure_note=account.url == SECURE_NOTE_URL,
            last_touch=account.last_touch or now,
            last_modified_gmt=account.last_modified_gmt or now,
        )
        return self.chunk(ChunkTag.ACCOUNT, payload)

    def group(self, id: str, name: str) -> BlobBuilder:
        """Append a folder placeholder record."""
        return self.account(Account(id=id, name=name, group=name, url=GROUP_URL))

    def field(
        self,
        name: str,
        value: str,
        type: str = "text",
        checked: bool = False,
    ) -> BlobBuilder:
        """Append a custom field to the preceding account."""
        payload = b"".join(
            write_item(item)
            for item in (
                name.encode("utf-8"),
                type.encode("utf-8"),
                encrypt_field(value, self._current_key, self._encoding)
                if type != "checkbox"
                else value.encode("utf-8"),
                b"1" if checked else b"0",
            )
        )
        return self.chunk(ChunkTag.ACCOUNT_FIELD, payload)

    def share(
        self,
        folder: SharedFolder,
        public_key: RsaKey | None = None,
    ) -> BlobBuilder:
        """Append a shared-folder chunk and switch to the folder's key.

        Args:
            folder: Folder to encode
            public_key: Member's RSA public key to wrap the folder key with.
                When omitted the key is stored AES-encrypted with the vault
                key instead.
        """
        if public_key is not None:
            wrapped = wrap_folder_key(folder.key, public_key).encode("ascii")
            aes_key = b""
        else:
            wrapped = b""
            aes_key = encrypt_text(folder.key.hex(), self._vault_key).encode("ascii")

        payload = _share_items(
            folder.id,
            wrapped,
            encrypt_text(folder.name, folder.key).encode("ascii"),
            folder.readonly,
            aes_key,
        )
        self._current_key = folder.key
        return self.chunk(ChunkTag.SHARE, payload)

    def build(self) -> bytes:
        """Return the blob, terminated with an end chunk."""
        return b"".join(self._chunks) + write_chunk(ChunkTag.END, b"OK")


# --- Mock server ---


@dataclass
class MockUser:
    """A user known to MockVaultServer."""

    username: str
    password: str
    iterations: int
    private_key: RsaKey
    uid: str
    otp: str | None = None
    advertised_iterations: int | None = None

    @property
    def vault_key(self) -> bytes:
        return derive_keys(self.username, self.password, self.iterations).vault_key

    @property
    def login_hash(self) -> str:
        return derive_keys(self.username, self.password, self.iterations).login_hash


@dataclass
class MockShare:
    """A shared folder held by MockVaultServer."""

    id: str
    name: str
    key: bytes
    members: dict[str, bool] = field(default_factory=dict)


@dataclass
class MockRecord:
    """An account as stored by MockVaultServer (fields still encrypted)."""

    id: str
    owner: str
    share_id: str | None
    form: dict[str, str]
    last_touch: str
    last_modified_gmt: str


@dataclass
class _ServerSession:
    username: str
    token: str


def _xml(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code, headers={"Content-Type": "text/xml"}, text=body
    )


def _login_error(cause: str, message: str, extra: str = "") -> httpx.Response:
    return _xml(
        f'<response><error cause="{cause}" message="{message}"{extra}/></response>'
    )


class MockVaultServer:
    """In-memory stand-in for the vault service.

    Instances are callables usable as an ``httpx.MockTransport`` handler.
    Accounts are stored exactly as the client encrypted them, so the server
    never needs account keys; shared folders are re-wrapped per member when
    a blob is served.

    Attributes:
        requests: Every request the server received, in order
    """

    def __init__(self, base_url: str = "https://lastpass.com") -> None:
        """Initialize server.

        Args:
            base_url: Origin the server answers for
        """
        self.base_url = base_url.rstrip("/")
        self.requests: list[httpx.Request] = []
        self.users: dict[str, MockUser] = {}
        self.shares: dict[str, MockShare] = {}
        self.records: dict[str, MockRecord] = {}
        self._sessions: dict[str, _ServerSession] = {}
        self._ids = itertools.count(1000)

    # --- Setup ---

    def add_user(
        self,
        username: str,
        password: str,
        *,
        iterations: int = 2,
        private_key: RsaKey | None = None,
        otp: str | None = None,
    ) -> MockUser:
        """Register a user.

        Args:
            username: Account e-mail
            password: Master password
            iterations: KDF iteration count assigned to the account
            private_key: RSA key pair (generated when omitted)
            otp: One-time password required at login, if any
        """
        user = MockUser(
            username=username,
            password=password,
            iterations=iterations,
            private_key=private_key or RSA.generate(TEST_RSA_BITS),
            uid=str(next(self._ids)),
            otp=otp,
        )
        self.users[username] = user
        return user

    def add_share(self, name: str, members: dict[str, bool]) -> MockShare:
        """Create a shared folder.

        Args:
            name: Folder name
            members: Username to read-only flag
        """
        share = MockShare(
            id=str(next(self._ids)),
            name=name,
            key=secure_random_bytes(32),
            members=dict(members),
        )
        self.shares[share.id] = share
        return share

    def transport(self) -> HttpxTransport:
        """Return a transport whose requests are answered by this server."""
        return HttpxTransport(self.http_client())

    def http_client(self) -> httpx.Client:
        """Return an httpx.Client wired to this server."""
        return httpx.Client(transport=httpx.MockTransport(self))

    def active_sessions(self, username: str) -> int:
        """Return the number of live sessions of a user."""
        return sum(1 for s in self._sessions.values() if s.username == username)

    # --- Request handling ---

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handlers = {
            ITERATIONS_PATH: self._iterations,
            LOGIN_PATH: self._login,
            BLOB_PATH: self._blob,
            MUTATE_PATH: self._mutate,
            LOGOUT_PATH: self._logout,
            LOGIN_CHECK_PATH: self._login_check,
        }
        handler = handlers.get(request.url.path)
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)

    def _session_for(self, request: httpx.Request) -> _ServerSession | None:
        cookie = SimpleCookie(request.headers.get("Cookie", ""))
        morsel = cookie.get(SESSION_COOKIE)
        return self._sessions.get(morsel.value) if morsel is not None else None

    def _iterations(self, request: httpx.Request) -> httpx.Response:
        user = self.users.get(form_fields(request).get("email", ""))
        if user is None:
            return httpx.Response(200, text=str(DEFAULT_ITERATIONS))
        return httpx.Response(
            200, text=str(user.advertised_iterations or user.iterations)
        )

    def _login(self, request: httpx.Request) -> httpx.Response:
        form = form_fields(request)
        user = self.users.get(form.get("username", ""))
        if user is None:
            return _login_error("unknownemail", "Invalid username")

        if int(form.get("iterations", "0")) != user.iterations:
            return _login_error(
                "", "Iteration count mismatch", f' iterations="{user.iterations}"'
            )
        if form.get("hash") != user.login_hash:
            return _login_error("unknownpassword", "Invalid password")

        if user.otp is not None:
            if "otp" not in form:
                return _login_error("otprequired", "Google Authenticator code required")
            if form["otp"] != user.otp:
                return _login_error("multifactorresponsefailed", "Invalid code")

        session_id = secrets.token_hex(16)
        token = secrets.token_hex(8)
        self._sessions[session_id] = _ServerSession(user.username, token)
        private_key_enc = encrypt_private_key(user.private_key, user.vault_key)
        return _xml(
            f'<response><ok uid="{user.uid}" sessionid="{session_id}" '
            f'token="{token}" privatekeyenc="{private_key_enc}" '
            f'lpusername="{user.username}"/></response>'
        )

    def _blob(self, request: httpx.Request) -> httpx.Response:
        session = self._session_for(request)
        if session is None:
            return httpx.Response(403, text="not logged in")
        user = self.users[session.username]

        chunks = [write_chunk(ChunkTag.VERSION, b"1")]
        for record in self.records.values():
            if record.share_id is None and record.owner == user.username:
                chunks.append(self._record_chunk(record))

        for share in self.shares.values():
            if user.username not in share.members:
                continue
            chunks.append(
                write_chunk(
                    ChunkTag.SHARE,
                    _share_items(
                        share.id,
                        wrap_folder_key(share.key, user.private_key.publickey()).encode("ascii"),
                        encrypt_text(share.name, share.key).encode("ascii"),
                        share.members[user.username],
                    ),
                )
            )
            for record in self.records.values():
                if record.share_id == share.id:
                    chunks.append(self._record_chunk(record))

        chunks.append(write_chunk(ChunkTag.END, b"OK"))
        return httpx.Response(200, content=base64.b64encode(b"".join(chunks)))

    @staticmethod
    def _record_chunk(record: MockRecord) -> bytes:
        form = record.form
        return write_chunk(
            ChunkTag.ACCOUNT,
            _account_items(
                id=record.id,
                name=form.get("name", "").encode("ascii"),
                group=form.get("grouping", "").encode("ascii"),
                url_hex=form.get("url", "").encode("ascii"),
                notes=form.get("extra", "").encode("ascii"),
                username=form.get("username", "").encode("ascii"),
                password=form.get("password", "").encode("ascii"),
                secure_note=False,
                last_touch=record.last_touch,
                last_modified_gmt=record.last_modified_gmt,
            ),
        )

    def _writable(self, record: MockRecord, username: str) -> bool:
        if record.share_id is None:
            return record.owner == username
        share = self.shares.get(record.share_id)
        return (
            share is not None
            and username in share.members
            and not share.members[username]
        )

    def _mutate(self, request: httpx.Request) -> httpx.Response:
        session = self._session_for(request)
        form = form_fields(request)
        if session is None or form.get("token") != session.token:
            return _xml('<xmlresponse><error msg="Invalid session"/></xmlresponse>')

        share_id = form.get("sharedfolderid") or None
        if share_id is not None:
            share = self.shares.get(share_id)
            if share is None or session.username not in share.members:
                return _xml('<xmlresponse><error msg="Unknown shared folder"/></xmlresponse>')
            if share.members[session.username]:
                return _xml('<xmlresponse><error msg="Shared folder is read-only"/></xmlresponse>')

        aid = form.get("aid", "")
        record = self.records.get(aid)
        now_gmt = int(time.time())
        # Access time is recorded in server-local time
        now_local = now_gmt + time.localtime().tm_gmtoff

        if form.get("delete") == "1":
            if record is None or not self._writable(record, session.username):
                return _xml(f'<xmlresponse><result aid="{aid}"/></xmlresponse>')
            del self.records[aid]
            return _xml(
                f'<xmlresponse><result aid="{aid}" msg="accountdeleted"/></xmlresponse>'
            )

        if aid == "0":
            aid = str(next(self._ids))
            self.records[aid] = MockRecord(
                id=aid,
                owner=session.username,
                share_id=share_id,
                form=form,
                last_touch=str(now_local),
                last_modified_gmt=str(now_gmt),
            )
            return _xml(
                f'<xmlresponse><result aid="{aid}" msg="accountadded"/></xmlresponse>'
            )

        if record is None or not self._writable(record, session.username):
            return _xml(f'<xmlresponse><result aid="{aid}"/></xmlresponse>')
        record.form = form
        record.last_touch = str(now_local)
        record.last_modified_gmt = str(now_gmt)
        return _xml(
            f'<xmlresponse><result aid="{aid}" msg="accountupdated"/></xmlresponse>'
        )

    def _logout(self, request: httpx.Request) -> httpx.Response:
        cookie = SimpleCookie(request.headers.get("Cookie", ""))
        morsel = cookie.get(SESSION_COOKIE)
        if morsel is not None:
            self._sessions.pop(morsel.value, None)
        return _xml("<xmlresponse><ok/></xmlresponse>")

    def _login_check(self, request: httpx.Request) -> httpx.Response:
        if self._session_for(request) is None:
            return _xml('<response><error cause="notloggedin"/></response>')
        return _xml(f'<response><ok accts_version="{len(self.records)}"/></response>')


__all__ = [
    "BlobBuilder",
    "MockRecord",
    "MockShare",
    "MockUser",
    "MockVaultServer",
]
