"""Security-critical components for lpvault.

This module contains all cryptographic code:
- Key derivation from the master password
- AES-256 field encryption and decryption
- RSA private-key recovery and shared-folder key unwrapping

All code in this module should be audited carefully.
"""

from .crypto import (
    FieldEncoding,
    decrypt_base64_field,
    decrypt_cbc_fixed_iv,
    decrypt_field,
    decrypt_raw_field,
    decrypt_text,
    encrypt_cbc_fixed_iv,
    encrypt_field,
    encrypt_text,
    secure_random_bytes,
)
from .kdf import (
    DEFAULT_ITERATIONS,
    VAULT_KEY_SIZE,
    VaultKeys,
    derive_keys,
    derive_login_hash,
    derive_vault_key,
)
from .keys import (
    decrypt_private_key,
    encrypt_private_key,
    export_private_key,
    import_private_key,
    unwrap_folder_key,
    wrap_folder_key,
)

__all__ = [
    # Field crypto
    "FieldEncoding",
    "decrypt_cbc_fixed_iv",
    "decrypt_base64_field",
    "decrypt_field",
    "decrypt_raw_field",
    "decrypt_text",
    "encrypt_cbc_fixed_iv",
    "encrypt_field",
    "encrypt_text",
    "secure_random_bytes",
    # KDF
    "DEFAULT_ITERATIONS",
    "VAULT_KEY_SIZE",
    "VaultKeys",
    "derive_keys",
    "derive_login_hash",
    "derive_vault_key",
    # Asymmetric keys
    "decrypt_private_key",
    "encrypt_private_key",
    "export_private_key",
    "import_private_key",
    "unwrap_folder_key",
    "wrap_folder_key",
]
