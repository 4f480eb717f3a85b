"""
Record boundary — Sealing and opening storage rows with the session key.

Rows exchanged with the CRUD backend have the shape
``{id, user_id, encrypted_data, iv, salt, created_at, updated_at}``. Only
``encrypted_data``, ``iv`` and ``salt`` take part in the crypto; the rest is
metadata passed through untouched.

Each record gets its own key: PBKDF2(session key hex, record salt) with the
``LEGACY`` policy, so the salt stored beside the ciphertext is the one that
re-derives it.
"""
import logging
from datetime import datetime
from typing import Any, Optional
from collections.abc import Iterable

from datamodel import BaseModel

from .codec import (
    Envelope,
    decrypt_json_with_password,
    encrypt_json_with_password,
)
from .errors import (
    CryptoError,
    Decrypted,
    FormatError,
    ParseFailure,
    SessionKeyMissing,
)
from .kdf import DerivationPolicy
from .session_keys import KeySession

logger = logging.getLogger("calendar.crypto")

_METADATA_FIELDS = ("id", "user_id", "created_at", "updated_at")


class EncryptedRecord(BaseModel):
    """A row as stored by the backend."""
    id: str
    user_id: str
    encrypted_data: str
    iv: str
    salt: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecordCipher:
    """Encrypts payloads for, and decrypts payloads from, the storage backend."""

    def __init__(
        self,
        session: KeySession,
        policy: DerivationPolicy = DerivationPolicy.LEGACY,
    ):
        self._session = session
        self._policy = policy

    def seal(self, payload: dict[str, Any]) -> dict[str, str]:
        """Encrypt a payload into the encrypted columns of a row.

        Raises:
            SessionKeyMissing: If the session is locked.
        """
        key = self._session.get_session_key()
        if key is None:
            raise SessionKeyMissing("Cannot encrypt a record without a session key")
        envelope = encrypt_json_with_password(payload, key.hex(), policy=self._policy)
        return envelope.to_record()

    def open(self, record: EncryptedRecord, *, quiet: bool = False) -> Decrypted[dict]:
        """Decrypt a row into its payload merged with the row metadata.

        A locked session gives a ``SessionKeyMissing`` result; no cipher
        work is attempted.
        """
        key = self._session.get_session_key()
        if key is None:
            return self._failed(
                SessionKeyMissing("No session key is stored"), quiet
            )
        try:
            envelope = Envelope.from_record(record)
        except FormatError as err:
            return self._failed(err, quiet)
        result = decrypt_json_with_password(
            envelope, key.hex(), policy=self._policy, quiet=quiet
        )
        if not result.ok:
            return result
        payload = result.value
        if not isinstance(payload, dict):
            return self._failed(
                ParseFailure(
                    f"Record {record.id} payload is {type(payload).__name__}, "
                    "expected object"
                ),
                quiet,
            )
        for name in _METADATA_FIELDS:
            payload[name] = getattr(record, name)
        return Decrypted.success(payload)

    @staticmethod
    def _failed(error: CryptoError, quiet: bool) -> Decrypted:
        if not quiet:
            logger.warning("Decryption failed [%s]: %s", error.kind, error)
        return Decrypted.failure(error)

    def open_many(self, records: Iterable[EncryptedRecord]) -> list[dict]:
        """Decrypt rows, skipping the ones that cannot be read."""
        opened = []
        for record in records:
            result = self.open(record, quiet=True)
            if result.ok:
                opened.append(result.value)
            else:
                logger.warning(
                    "Skipping record id=%s [%s]", record.id, result.error.kind
                )
        return opened
