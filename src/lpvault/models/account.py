"""Account model for vault records."""

from __future__ import annotations

from dataclasses import dataclass, field

# URL the service uses for folder placeholder records
GROUP_URL = "http://group"
# URL the service uses for secure notes
SECURE_NOTE_URL = "http://sn"


@dataclass
class AccountField:
    """A custom form field attached to an account.

    Attributes:
        name: Form field name
        type: Field type ("text", "password", "checkbox", ...)
        value: Decrypted field value
        checked: Checked state for checkbox and radio fields
    """

    name: str
    type: str = "text"
    value: str = ""
    checked: bool = False


@dataclass
class Account:
    """A password record in the vault.

    All string fields are plaintext in memory and encrypted on the server.
    Accounts are plain values: they hold no reference to the session that
    decoded them.

    Attributes:
        id: Server-assigned ID; empty until the account has been added
        name: Display name
        username: Login name
        password: Password
        url: Site URL
        group: Folder path inside the vault (or inside the shared folder)
        notes: Free-form notes
        share: Name of the owning shared folder; empty for the private vault
        last_modified_gmt: Unix time of the last change, server clock (UTC)
        last_touch: Unix time of the last access, not timezone-normalized
        fields: Custom form fields (not part of equality)
    """

    id: str = ""
    name: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    url: str = ""
    group: str = ""
    notes: str = field(default="", repr=False)
    share: str = ""
    last_modified_gmt: str = ""
    last_touch: str = ""
    fields: list[AccountField] = field(default_factory=list, repr=False, compare=False)

    @property
    def is_shared(self) -> bool:
        """True if the account lives in a shared folder."""
        return bool(self.share)

    @property
    def is_secure_note(self) -> bool:
        """True if the record is a secure note rather than a site login."""
        return self.url == SECURE_NOTE_URL

    @property
    def fullname(self) -> str:
        """Group-qualified name, e.g. ``Email/Gmail``."""
        return f"{self.group}/{self.name}" if self.group else self.name
