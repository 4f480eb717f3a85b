"""Calendar Crypto — Client-side encryption of calendar and task records.

Security Note (Threat Model):
    The server only ever stores ciphertext, IVs and salts. The encryption
    key is derived from the user's password on the client and kept in
    process memory for the session lifetime; a memory dump of the client
    process could expose it. Records written with the legacy 1,000 and
    10,000 iteration derivations are weaker than current ones and there is
    no re-encryption migration for them.
"""

from .config import CryptoConfig, DEFAULT_CONFIG
from .errors import (
    CryptoError,
    FormatError,
    DecryptionFailure,
    SessionKeyMissing,
    ParseFailure,
    Decrypted,
)
from .kdf import (
    DerivationPolicy,
    DerivedSecret,
    SecretKind,
    derive,
    derive_auth_hash,
    derive_encryption_key,
    derive_credentials,
    derive_key,
)
from .codec import (
    CipherFormat,
    Envelope,
    generate_iv,
    generate_salt,
    encrypt,
    decrypt,
    encrypt_json,
    decrypt_json,
    encrypt_with_password,
    decrypt_with_password,
    encrypt_json_with_password,
    decrypt_json_with_password,
)
from .session_keys import KeySession
from .records import EncryptedRecord, RecordCipher
from .legacy import open_legacy_record, legacy_password_hash

__all__ = [
    "CryptoConfig",
    "DEFAULT_CONFIG",
    "CryptoError",
    "FormatError",
    "DecryptionFailure",
    "SessionKeyMissing",
    "ParseFailure",
    "Decrypted",
    "DerivationPolicy",
    "DerivedSecret",
    "SecretKind",
    "derive",
    "derive_auth_hash",
    "derive_encryption_key",
    "derive_credentials",
    "derive_key",
    "CipherFormat",
    "Envelope",
    "generate_iv",
    "generate_salt",
    "encrypt",
    "decrypt",
    "encrypt_json",
    "decrypt_json",
    "encrypt_with_password",
    "decrypt_with_password",
    "encrypt_json_with_password",
    "decrypt_json_with_password",
    "KeySession",
    "EncryptedRecord",
    "RecordCipher",
    "open_legacy_record",
    "legacy_password_hash",
]
