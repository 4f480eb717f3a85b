"""Calendar Crypto.

Client-side key derivation and record encryption for an end-to-end
encrypted calendar.
"""
from .version import __version__
from .storage import SessionStorage
from .crypto import (
    CryptoError,
    FormatError,
    DecryptionFailure,
    ParseFailure,
    Decrypted,
    DerivedSecret,
    Envelope,
    KeySession,
    RecordCipher,
    EncryptedRecord,
)

__all__ = [
    "__version__",
    "SessionStorage",
    "CryptoError",
    "FormatError",
    "DecryptionFailure",
    "ParseFailure",
    "Decrypted",
    "DerivedSecret",
    "Envelope",
    "KeySession",
    "RecordCipher",
    "EncryptedRecord",
]
