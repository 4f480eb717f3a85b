"""
Compatibility shims for data written by earlier clients.

Read-only: new records always go through ``RecordCipher`` and the
``CURRENT`` session key.
"""
import logging
from typing import Any

from cryptography.hazmat.primitives import hashes

from .codec import Envelope, decrypt_json_with_password
from .errors import Decrypted, FormatError
from .kdf import DerivationPolicy

logger = logging.getLogger("calendar.crypto")


def open_legacy_record(
    encrypted_data: str,
    password: str,
    iv: str,
    salt: str,
    *,
    quiet: bool = False,
) -> Decrypted[Any]:
    """Decrypt an item or event stored with the 1,000-iteration derivation.

    Both the OpenSSL "Salted__" layout and the raw layout are accepted.
    Old rows may carry null or non-string columns; those come back as a
    ``FormatError`` result.
    """
    try:
        envelope = Envelope.build(encrypted_data, iv, salt)
    except FormatError as err:
        if not quiet:
            logger.warning("Decryption failed [%s]: %s", err.kind, err)
        return Decrypted.failure(err)
    return decrypt_json_with_password(
        envelope, password, policy=DerivationPolicy.LEGACY_V1, quiet=quiet
    )


def legacy_password_hash(password: str) -> str:
    """Unsalted SHA-256 hex of a password, the local key of the oldest clients."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(password.encode("utf-8"))
    return digest.finalize().hex()
