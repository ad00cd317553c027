"""Key derivation for LastPass vault credentials.

Two keys come out of the master password:
- the vault key, a 32-byte AES key that decrypts account fields and the
  user's private key; it never leaves the client
- the login hash, a hex string sent to the server in place of the password

The iteration count is chosen by the server per account (see the
``/iterations.php`` endpoint). A count of 1 selects the legacy single-round
SHA-256 scheme; anything higher uses PBKDF2-HMAC-SHA256 salted with the
username.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from lpvault.exceptions import KdfError

# Length of the AES-256 vault key
VAULT_KEY_SIZE = 32

# Iteration count the service assigns to new accounts
DEFAULT_ITERATIONS = 100100


@dataclass(frozen=True, slots=True)
class VaultKeys:
    """Key material derived from a username/password pair.

    Attributes:
        vault_key: 32-byte AES key for decrypting the vault
        login_hash: Hex-encoded hash proving password knowledge
        iterations: Iteration count used for the derivation
    """

    vault_key: bytes
    login_hash: str
    iterations: int

    def __repr__(self) -> str:
        """Return string representation (hides key material)."""
        return f"VaultKeys(<{len(self.vault_key)} byte key>, iterations={self.iterations})"


def _check_iterations(iterations: int) -> None:
    if iterations < 1:
        raise KdfError(f"Iteration count must be at least 1, got {iterations}")


def derive_vault_key(username: str, password: str, iterations: int) -> bytes:
    """Derive the 32-byte vault key.

    Args:
        username: Account e-mail, used as the PBKDF2 salt
        password: Master password
        iterations: Server-assigned iteration count

    Returns:
        32-byte AES key

    Raises:
        KdfError: If iterations is below 1
    """
    _check_iterations(iterations)

    if iterations == 1:
        return hashlib.sha256(
            username.encode("utf-8") + password.encode("utf-8")
        ).digest()

    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        username.encode("utf-8"),
        iterations,
        VAULT_KEY_SIZE,
    )


def derive_login_hash(vault_key: bytes, password: str, iterations: int) -> str:
    """Derive the login hash submitted to the server.

    The second stage must match the scheme that produced the vault key, so
    the iteration count is passed again here.

    Args:
        vault_key: Key returned by derive_vault_key()
        password: Master password
        iterations: Iteration count used for the vault key

    Returns:
        64-character lowercase hex string

    Raises:
        KdfError: If iterations is below 1 or the vault key has the wrong size
    """
    _check_iterations(iterations)
    if len(vault_key) != VAULT_KEY_SIZE:
        raise KdfError(
            f"Vault key must be {VAULT_KEY_SIZE} bytes, got {len(vault_key)}"
        )

    if iterations == 1:
        return hashlib.sha256(
            vault_key.hex().encode("ascii") + password.encode("utf-8")
        ).hexdigest()

    return hashlib.pbkdf2_hmac(
        "sha256", vault_key, password.encode("utf-8"), 1, VAULT_KEY_SIZE
    ).hex()


def derive_keys(username: str, password: str, iterations: int) -> VaultKeys:
    """Derive both the vault key and the login hash.

    Args:
        username: Account e-mail
        password: Master password
        iterations: Server-assigned iteration count

    Returns:
        VaultKeys holding both values
    """
    vault_key = derive_vault_key(username, password, iterations)
    return VaultKeys(
        vault_key=vault_key,
        login_hash=derive_login_hash(vault_key, password, iterations),
        iterations=iterations,
    )
