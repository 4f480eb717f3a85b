"""
KeySession — The session's stored encryption key.

Provides the public API of the session cache:
- ``login(email, password)`` — derive both secrets, keep the encryption key,
  return the auth hash for the authentication service
- ``unlock(key)`` / ``store_session_key(key)`` — keep an already derived key
- ``get_session_key()`` — the cached key, or ``None``
- ``encrypt_with_stored_key`` / ``decrypt_with_stored_key`` — codec calls
  bound to the cached key
- ``logout()`` / ``clear()`` — forget the key

State machine: Unset -> Set on login/unlock, Set -> Unset on logout/clear
or when the backing storage expires. Reads while Unset return absent, a key
is never derived implicitly.

Security Note:
    The key lives in the storage's in-memory object slot and is never part
    of the persistable session data. Never log the key or passwords.
"""
import logging
import threading
from typing import Any, Optional

from ..storage import SessionStorage
from .config import DEFAULT_CONFIG, CryptoConfig
from .errors import Decrypted, FormatError, SessionKeyMissing
from .kdf import DerivedSecret, SecretKind, derive_credentials
from .codec import (
    Envelope,
    decrypt_json,
    encrypt,
    encrypt_json,
    open_envelope,
)

logger = logging.getLogger("calendar.crypto")


class KeySession:
    """Session-scoped holder of the derived encryption key.

    One instance per client session; writes (login, logout) are serialized
    by a lock, reads only take a reference to the current key.
    """

    def __init__(
        self,
        storage: Optional[SessionStorage] = None,
        config: CryptoConfig = DEFAULT_CONFIG,
    ):
        self._storage = storage if storage is not None else SessionStorage()
        self._config = config
        self._lock = threading.Lock()

    @property
    def storage(self) -> SessionStorage:
        return self._storage

    @property
    def is_unlocked(self) -> bool:
        return self.get_session_key() is not None

    # ------------------------------------------------------------------
    # Key slot
    # ------------------------------------------------------------------

    def store_session_key(self, key: DerivedSecret) -> None:
        """Cache the encryption key, replacing any previous one.

        Raises:
            FormatError: If ``key`` is not an encryption key.
        """
        if not isinstance(key, DerivedSecret) or key.kind is not SecretKind.ENCRYPTION_KEY:
            raise FormatError("Only an encryption key can be stored in the session")
        with self._lock:
            self._storage[self._config.session_key_name] = key
        logger.debug("Session key stored: session=%s", self._storage.session_id)

    def get_session_key(self) -> Optional[DerivedSecret]:
        """Return the cached key, or None if unset or the session expired."""
        if self._storage.expired:
            self.clear()
            return None
        return self._storage.get(self._config.session_key_name)

    def clear(self) -> None:
        with self._lock:
            self._storage.pop(self._config.session_key_name, None)

    unlock = store_session_key

    # ------------------------------------------------------------------
    # Login flow
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> DerivedSecret:
        """Derive the credentials for ``email`` and keep the encryption key.

        Args:
            email: Account email, part of both salts.
            password: Account password; not retained.

        Returns:
            The auth hash to hand to the authentication service.
        """
        auth_hash, encryption_key = derive_credentials(
            password, email, self._config
        )
        self.store_session_key(encryption_key)
        logger.info("Session unlocked: session=%s", self._storage.session_id)
        return auth_hash

    def logout(self) -> None:
        """Forget the key and invalidate the whole session storage."""
        with self._lock:
            self._storage.invalidate()
        logger.info("Session locked: session=%s", self._storage.session_id)

    # ------------------------------------------------------------------
    # Codec bound to the stored key
    # ------------------------------------------------------------------

    def encrypt_with_stored_key(self, plaintext: str) -> Optional[Envelope]:
        """Encrypt with the cached key; None when no key is cached."""
        key = self.get_session_key()
        if key is None:
            return None
        return encrypt(plaintext, key, config=self._config)

    def decrypt_with_stored_key(
        self, envelope: Envelope, *, quiet: bool = False
    ) -> Decrypted[str]:
        """Decrypt with the cached key.

        Returns a ``SessionKeyMissing`` failure when no key is cached.
        """
        key = self.get_session_key()
        if key is None:
            return self._missing(quiet)
        return open_envelope(envelope, key, quiet=quiet, config=self._config)

    def encrypt_json_with_stored_key(self, value: Any) -> Optional[Envelope]:
        key = self.get_session_key()
        if key is None:
            return None
        return encrypt_json(value, key, config=self._config)

    def decrypt_json_with_stored_key(
        self, envelope: Envelope, *, quiet: bool = False
    ) -> Decrypted[Any]:
        key = self.get_session_key()
        if key is None:
            return self._missing(quiet)
        return decrypt_json(envelope, key, quiet=quiet, config=self._config)

    def _missing(self, quiet: bool) -> Decrypted:
        if not quiet:
            logger.warning(
                "No session key for session=%s", self._storage.session_id
            )
        return Decrypted.failure(SessionKeyMissing("No session key is stored"))
