"""Shared fixtures for lpvault tests."""

import pytest
from Cryptodome.PublicKey import RSA
from Cryptodome.PublicKey.RSA import RsaKey

from lpvault.security import derive_vault_key
from lpvault.session import Session
from lpvault.testing import TEST_RSA_BITS

USERNAME = "alice@example.com"
PASSWORD = "correct horse battery staple"
ITERATIONS = 2


@pytest.fixture(scope="session")
def rsa_key() -> RsaKey:
    """RSA key pair shared by the whole run (generation is slow)."""
    return RSA.generate(TEST_RSA_BITS)


@pytest.fixture(scope="session")
def other_rsa_key() -> RsaKey:
    """A second, unrelated RSA key pair."""
    return RSA.generate(TEST_RSA_BITS)


@pytest.fixture
def vault_key() -> bytes:
    """Vault key derived from the test credentials."""
    return derive_vault_key(USERNAME, PASSWORD, ITERATIONS)


@pytest.fixture
def session(vault_key: bytes, rsa_key: RsaKey) -> Session:
    """Authenticated session holding the test keys."""
    return Session(
        username=USERNAME,
        uid="1",
        session_id="sid123",
        token="tok456",
        vault_key=vault_key,
        iterations=ITERATIONS,
        server="https://lastpass.com",
        private_key=rsa_key,
    )
