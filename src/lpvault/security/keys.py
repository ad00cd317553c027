"""Asymmetric key handling for shared folders.

Each user owns an RSA key pair. The server stores the private key encrypted
with the user's vault key and hands it out at login as ``privatekeyenc``.
Every shared folder has its own 32-byte AES key, delivered in the blob
wrapped with the member's RSA public key (OAEP, SHA-1).

Envelope formats:
- private key: hex(AES-CBC-fixed-IV(``LastPassPrivateKey<`` + hex(PKCS#8 DER)
  + ``>LastPassPrivateKey``))
- folder key: hex(RSA-OAEP(hex(folder_key)))
"""

from __future__ import annotations

import binascii
import logging

from Cryptodome.Cipher import PKCS1_OAEP
from Cryptodome.PublicKey import RSA
from Cryptodome.PublicKey.RSA import RsaKey

from lpvault.exceptions import CryptoError

from .crypto import KEY_SIZE, decrypt_cbc_fixed_iv, encrypt_cbc_fixed_iv

logger = logging.getLogger(__name__)

PRIVATE_KEY_PREFIX = b"LastPassPrivateKey<"
PRIVATE_KEY_SUFFIX = b">LastPassPrivateKey"


def _unhex(data: str | bytes, what: str) -> bytes:
    try:
        return binascii.unhexlify(data)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Invalid hex encoding in {what}") from e


def export_private_key(private_key: RsaKey) -> bytes:
    """Export a private key as PKCS#8 DER."""
    return private_key.export_key(format="DER", pkcs=8)


def import_private_key(der: bytes) -> RsaKey:
    """Parse a PKCS#8 (or PKCS#1) DER private key.

    Raises:
        CryptoError: If the bytes are not a usable RSA private key
    """
    try:
        key = RSA.import_key(der)
    except (ValueError, IndexError, TypeError) as e:
        raise CryptoError("Could not parse RSA private key") from e
    if not key.has_private():
        raise CryptoError("Key material does not contain a private key")
    return key


def encrypt_private_key(private_key: RsaKey, vault_key: bytes) -> str:
    """Build the ``privatekeyenc`` envelope for a private key.

    Args:
        private_key: RSA private key
        vault_key: 32-byte vault key

    Returns:
        Hex string as delivered by the login endpoint
    """
    envelope = (
        PRIVATE_KEY_PREFIX
        + export_private_key(private_key).hex().encode("ascii")
        + PRIVATE_KEY_SUFFIX
    )
    return encrypt_cbc_fixed_iv(envelope, vault_key).hex()


def decrypt_private_key(encrypted_hex: str, vault_key: bytes) -> RsaKey:
    """Recover the user's RSA private key from the login response.

    Args:
        encrypted_hex: ``privatekeyenc`` attribute from the login response
        vault_key: 32-byte vault key

    Returns:
        The parsed RSA private key

    Raises:
        CryptoError: If decryption or parsing fails
    """
    envelope = decrypt_cbc_fixed_iv(_unhex(encrypted_hex, "private key"), vault_key)

    if not (
        envelope.startswith(PRIVATE_KEY_PREFIX)
        and envelope.endswith(PRIVATE_KEY_SUFFIX)
    ):
        raise CryptoError("Private key envelope markers missing - wrong vault key?")

    der_hex = envelope[len(PRIVATE_KEY_PREFIX) : -len(PRIVATE_KEY_SUFFIX)]
    key = import_private_key(_unhex(der_hex, "private key"))
    logger.debug("Decrypted %d-bit private key", key.size_in_bits())
    return key


def wrap_folder_key(folder_key: bytes, public_key: RsaKey) -> str:
    """Wrap a folder key for a member's public key.

    Args:
        folder_key: 32-byte AES folder key
        public_key: Member's RSA key (public part is used)

    Returns:
        Hex string as found in the blob's shared-folder chunk
    """
    if len(folder_key) != KEY_SIZE:
        raise CryptoError(f"Folder key must be {KEY_SIZE} bytes, got {len(folder_key)}")
    cipher = PKCS1_OAEP.new(public_key.publickey())
    return cipher.encrypt(folder_key.hex().encode("ascii")).hex()


def unwrap_folder_key(wrapped_hex: str | bytes, private_key: RsaKey) -> bytes:
    """Unwrap a shared-folder key with the user's private key.

    Args:
        wrapped_hex: Hex-encoded RSA-OAEP ciphertext
        private_key: User's RSA private key

    Returns:
        32-byte AES folder key

    Raises:
        CryptoError: If the key cannot be unwrapped
    """
    ciphertext = _unhex(wrapped_hex, "wrapped folder key")
    try:
        key_hex = PKCS1_OAEP.new(private_key).decrypt(ciphertext)
    except (ValueError, TypeError) as e:
        raise CryptoError("Folder key unwrap failed - wrong private key?") from e

    folder_key = _unhex(key_hex, "unwrapped folder key")
    if len(folder_key) != KEY_SIZE:
        raise CryptoError(
            f"Unwrapped folder key has {len(folder_key)} bytes, expected {KEY_SIZE}"
        )
    logger.debug("Unwrapped folder key")
    return folder_key
