import pytest

from calendar_crypto.crypto import derive_auth_hash, derive_encryption_key
from calendar_crypto.crypto import KeySession
from calendar_crypto.storage import SessionStorage


EMAIL = "ana@example.com"
PASSWORD = "correct-horse"


@pytest.fixture(scope="session")
def encryption_key():
    """Encryption key for the test account (100,000 iterations, derived once)."""
    return derive_encryption_key(PASSWORD, EMAIL)


@pytest.fixture(scope="session")
def auth_hash():
    return derive_auth_hash(PASSWORD, EMAIL)


@pytest.fixture
def storage():
    return SessionStorage()


@pytest.fixture
def key_session(storage):
    """A locked KeySession over a fresh storage."""
    return KeySession(storage)


@pytest.fixture
def unlocked_session(key_session, encryption_key):
    key_session.unlock(encryption_key)
    return key_session
