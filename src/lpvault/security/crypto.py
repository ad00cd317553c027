"""AES-256 field encryption used throughout the vault.

Every secret field in the vault (account name, username, password, notes,
group, shared-folder name) is AES-256 encrypted with PKCS#7 padding. Three
wire encodings exist, distinguished by the shape of the payload alone:

- ECB (legacy): raw ciphertext, length a multiple of 16, no IV
- CBC (raw): ``b"!" + iv(16) + ciphertext``, length is 1 mod 16
- CBC (base64): ``"!" + b64(iv) + "|" + b64(ciphertext)``

Base64 ECB payloads are also accepted on input. New data is always written
with a random IV.
"""

from __future__ import annotations

import base64
import binascii
import os
import re
from enum import Enum

from Cryptodome.Cipher import AES

from lpvault.exceptions import CryptoError

BLOCK_SIZE = AES.block_size
KEY_SIZE = 32

# Marker byte that prefixes CBC payloads
CBC_MARKER = b"!"
# Separator between the base64 IV and ciphertext
BASE64_SEPARATOR = b"|"
# Whole payload drawn from the base64 alphabet
_BASE64_RE = re.compile(rb"[A-Za-z0-9+/]+={0,2}")


class FieldEncoding(Enum):
    """Wire encodings for encrypted fields."""

    ECB = "ecb"
    CBC = "cbc"
    CBC_BASE64 = "cbc_base64"


def secure_random_bytes(n: int) -> bytes:
    """Return n bytes from the OS CSPRNG."""
    return os.urandom(n)


def _check_key(key: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise CryptoError(f"AES-256 key must be {KEY_SIZE} bytes, got {len(key)}")


def _pad(data: bytes) -> bytes:
    """Add PKCS#7 padding to make data a multiple of 16 bytes."""
    padding_len = BLOCK_SIZE - (len(data) % BLOCK_SIZE)
    return data + bytes([padding_len] * padding_len)


def _unpad(data: bytes) -> bytes:
    """Remove PKCS#7 padding.

    Raises:
        CryptoError: If the padding is invalid
    """
    if not data:
        raise CryptoError("Decryption failed - empty payload")
    padding_len = data[-1]
    if padding_len == 0 or padding_len > BLOCK_SIZE:
        raise CryptoError("Decryption failed - invalid padding")
    if data[-padding_len:] != bytes([padding_len] * padding_len):
        raise CryptoError("Decryption failed - invalid padding")
    return data[:-padding_len]


def _b64decode(data: bytes) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Invalid base64 in encrypted payload: {e}") from e


def _decrypt_ecb(ciphertext: bytes, key: bytes) -> bytes:
    if not ciphertext or len(ciphertext) % BLOCK_SIZE:
        raise CryptoError(
            f"ECB ciphertext length {len(ciphertext)} is not a multiple of {BLOCK_SIZE}"
        )
    return _unpad(AES.new(key, AES.MODE_ECB).decrypt(ciphertext))


def _decrypt_cbc(iv: bytes, ciphertext: bytes, key: bytes) -> bytes:
    if len(iv) != BLOCK_SIZE:
        raise CryptoError(f"Truncated IV: {len(iv)} bytes, expected {BLOCK_SIZE}")
    if not ciphertext or len(ciphertext) % BLOCK_SIZE:
        raise CryptoError(
            f"CBC ciphertext length {len(ciphertext)} is not a multiple of {BLOCK_SIZE}"
        )
    return _unpad(AES.new(key, AES.MODE_CBC, iv=iv).decrypt(ciphertext))


def _is_base64_ecb(data: bytes) -> bool:
    if len(data) % 4 or not _BASE64_RE.fullmatch(data):
        return False
    decoded_size = len(data) // 4 * 3 - len(data) + len(data.rstrip(b"="))
    return decoded_size > 0 and decoded_size % BLOCK_SIZE == 0


def decrypt_raw_field(data: bytes, key: bytes) -> bytes:
    """Decrypt a binary payload: raw ECB or ``!`` + IV + ciphertext.

    Raises:
        CryptoError: If the payload is malformed
    """
    if not data:
        return b""
    _check_key(key)
    if data.startswith(CBC_MARKER) and len(data) % BLOCK_SIZE == 1:
        return _decrypt_cbc(data[1 : 1 + BLOCK_SIZE], data[1 + BLOCK_SIZE :], key)
    return _decrypt_ecb(data, key)


def decrypt_base64_field(data: bytes, key: bytes) -> bytes:
    """Decrypt a text payload: base64 ECB or ``!`` + b64(IV) + ``|`` + b64(ciphertext).

    Raises:
        CryptoError: If the payload is malformed
    """
    if not data:
        return b""
    _check_key(key)
    if data.startswith(CBC_MARKER):
        if BASE64_SEPARATOR not in data:
            raise CryptoError("CBC payload has neither a raw IV nor a base64 separator")
        iv_b64, _, ct_b64 = data[1:].partition(BASE64_SEPARATOR)
        return _decrypt_cbc(_b64decode(iv_b64), _b64decode(ct_b64), key)
    return _decrypt_ecb(_b64decode(data), key)


def decrypt_field(data: bytes | str, key: bytes) -> bytes:
    """Decrypt a field in any of the supported encodings.

    The encoding is detected from the payload. A ``!`` marker with a length
    of 1 mod 16 is raw CBC, any other marked payload is base64 CBC. Unmarked
    payloads made only of base64 characters that decode to whole blocks are
    base64 ECB; everything else is raw ECB. A raw ECB ciphertext is taken for
    base64 only if every one of its bytes falls in the base64 alphabet, which
    for a single block happens with a probability below 1e-9.

    Args:
        data: Encrypted payload (str is treated as ASCII/UTF-8 text)
        key: 32-byte AES key

    Returns:
        Plaintext bytes (empty for empty input)

    Raises:
        CryptoError: If the payload is malformed
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    if not data:
        return b""
    _check_key(key)

    if data.startswith(CBC_MARKER):
        if len(data) % BLOCK_SIZE == 1:
            return decrypt_raw_field(data, key)
        return decrypt_base64_field(data, key)

    if _is_base64_ecb(data):
        return decrypt_base64_field(data, key)
    if len(data) % BLOCK_SIZE == 0:
        return decrypt_raw_field(data, key)
    raise CryptoError("Input doesn't seem to be AES-256 encrypted")


def encrypt_field(
    plaintext: bytes | str,
    key: bytes,
    encoding: FieldEncoding = FieldEncoding.CBC,
) -> bytes:
    """Encrypt a field.

    Args:
        plaintext: Data to encrypt (str is UTF-8 encoded)
        key: 32-byte AES key
        encoding: Output encoding

    Returns:
        Encrypted payload; empty for empty plaintext
    """
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    if not plaintext:
        return b""
    _check_key(key)

    padded = _pad(plaintext)

    if encoding == FieldEncoding.ECB:
        return AES.new(key, AES.MODE_ECB).encrypt(padded)

    iv = secure_random_bytes(BLOCK_SIZE)
    ciphertext = AES.new(key, AES.MODE_CBC, iv=iv).encrypt(padded)

    if encoding == FieldEncoding.CBC:
        return CBC_MARKER + iv + ciphertext

    return (
        CBC_MARKER
        + base64.b64encode(iv)
        + BASE64_SEPARATOR
        + base64.b64encode(ciphertext)
    )


def decrypt_text(data: bytes | str, key: bytes) -> str:
    """Decrypt a field and decode it as UTF-8."""
    plaintext = decrypt_field(data, key)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoError("Decrypted field is not valid UTF-8") from e


def encrypt_text(text: str, key: bytes) -> str:
    """Encrypt a string into the base64 CBC text form used in requests."""
    return encrypt_field(text, key, FieldEncoding.CBC_BASE64).decode("ascii")


def encrypt_cbc_fixed_iv(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt with AES-256-CBC using the first 16 key bytes as IV.

    Only the private-key envelope uses this scheme.
    """
    _check_key(key)
    return AES.new(key, AES.MODE_CBC, iv=key[:BLOCK_SIZE]).encrypt(_pad(plaintext))


def decrypt_cbc_fixed_iv(ciphertext: bytes, key: bytes) -> bytes:
    """Inverse of encrypt_cbc_fixed_iv()."""
    _check_key(key)
    return _decrypt_cbc(key[:BLOCK_SIZE], ciphertext, key)
