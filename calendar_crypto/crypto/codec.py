"""
Envelope Codec — AES-CBC encryption of records into {ciphertext, iv, salt}.

Envelope formats:
- RAW (current): AES-CBC/PKCS#7 with the derived key bytes and the envelope IV;
  ciphertext is base64(ct).
- OPENSSL (read compatibility): the hex form of the key is used as a
  passphrase, key and IV come from EVP_BytesToKey(MD5) over a random 8-byte
  salt; ciphertext is base64("Salted__" || salt8 || ct). Records written by
  earlier clients use this layout; ``decrypt`` recognises it by its header.

Every encryption draws a fresh 128-bit IV and 128-bit salt from ``secrets``.

Security Note:
    CBC without a MAC gives confidentiality only; a wrong key is detected by
    padding / UTF-8 / emptiness checks, which is why a decrypt result is
    always checked before use. Never log plaintext, ciphertext or keys.
"""
import re
import base64
import binascii
import secrets
import logging
import enum
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel, ValidationError
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .config import DEFAULT_CONFIG, CryptoConfig
from .errors import (
    CryptoError,
    Decrypted,
    DecryptionFailure,
    FormatError,
    ParseFailure,
)
from .kdf import DerivationPolicy, DerivedSecret, derive_key

logger = logging.getLogger("calendar.crypto")

BLOCK_SIZE = 16  # AES block, bytes
OPENSSL_MAGIC = b"Salted__"
OPENSSL_SALT_SIZE = 8

KeyLike = Union[DerivedSecret, bytes]


class CipherFormat(str, enum.Enum):
    RAW = "raw"
    OPENSSL = "openssl"


class Envelope(BaseModel):
    """Persisted triple of one encrypted record.

    Construction only checks that each field is a string; ``build`` and
    ``from_record`` turn a non-string column into a ``FormatError``. The hex
    format of ``iv`` and ``salt`` is checked by the decrypt functions, which
    report it as a ``FormatError`` result.
    """

    ciphertext: str
    iv: str
    salt: str

    model_config = {"frozen": True}

    def to_record(self) -> dict[str, str]:
        """Column mapping used by the storage backend."""
        return {
            "encrypted_data": self.ciphertext,
            "iv": self.iv,
            "salt": self.salt,
        }

    @classmethod
    def build(cls, ciphertext: Any, iv: Any, salt: Any) -> "Envelope":
        """Create an envelope from untrusted column values.

        Raises:
            FormatError: If a column is missing or not a string.
        """
        try:
            return cls(ciphertext=ciphertext, iv=iv, salt=salt)
        except ValidationError as err:
            fields = ", ".join(
                str(e["loc"][0]) for e in err.errors() if e.get("loc")
            )
            raise FormatError(f"Invalid envelope fields: {fields}") from err

    @classmethod
    def from_record(cls, record: Any) -> "Envelope":
        """Build an envelope from a storage row (mapping or object).

        Raises:
            FormatError: If a column is missing or not a string.
        """
        if isinstance(record, dict):
            return cls.build(
                record.get("encrypted_data"), record.get("iv"), record.get("salt")
            )
        return cls.build(
            getattr(record, "encrypted_data", None),
            getattr(record, "iv", None),
            getattr(record, "salt", None),
        )


# ---------------------------------------------------------------------------
# Random parameters
# ---------------------------------------------------------------------------

def generate_salt(config: CryptoConfig = DEFAULT_CONFIG) -> str:
    """Return a fresh random salt as lowercase hex."""
    return secrets.token_hex(config.salt_bytes)


def generate_iv(config: CryptoConfig = DEFAULT_CONFIG) -> str:
    """Return a fresh random IV as lowercase hex."""
    return secrets.token_hex(config.iv_bytes)


_HEX_RE = re.compile(r"[0-9a-fA-F]+")


def validate_hex(value: Any, name: str, length: int) -> str:
    """Check that value is a hex string of exactly ``length`` characters.

    Raises:
        FormatError: If the value is not such a string.
    """
    if (
        not isinstance(value, str)
        or len(value) != length
        or not _HEX_RE.fullmatch(value)
    ):
        raise FormatError(
            f"Invalid {name} format: must be a {length}-character hex string"
        )
    return value


def _check_params(iv: Any, salt: Any, config: CryptoConfig) -> None:
    validate_hex(iv, "IV", config.iv_bytes * 2)
    validate_hex(salt, "salt", config.salt_bytes * 2)


# ---------------------------------------------------------------------------
# Cipher helpers
# ---------------------------------------------------------------------------

def _key_bytes(key: KeyLike) -> bytes:
    if isinstance(key, DerivedSecret):
        return key.value
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    raise FormatError(f"Key must be a DerivedSecret or bytes, got {type(key).__name__}")


def _key_hex(key: KeyLike) -> str:
    return _key_bytes(key).hex()


def _evp_bytes_to_key(
    passphrase: bytes, salt: bytes, key_len: int = 32, iv_len: int = 16
) -> tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5 and a single round."""
    derived = b""
    block = b""
    while len(derived) < key_len + iv_len:
        digest = hashes.Hash(hashes.MD5())
        digest.update(block + passphrase + salt)
        block = digest.finalize()
        derived += block
    return derived[:key_len], derived[key_len:key_len + iv_len]


def _aes_cbc(key: bytes, iv: bytes) -> Cipher:
    try:
        return Cipher(algorithms.AES(key), modes.CBC(iv))
    except ValueError as err:
        raise FormatError(f"Invalid AES parameters: {err}") from err


def _encrypt_block_stream(data: bytes, key: bytes, iv: bytes) -> bytes:
    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = _aes_cbc(key, iv).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def _decrypt_block_stream(data: bytes, key: bytes, iv: bytes) -> bytes:
    """Raises DecryptionFailure on bad length or padding."""
    if not data or len(data) % BLOCK_SIZE:
        raise DecryptionFailure(
            f"Ciphertext length {len(data)} is not a multiple of {BLOCK_SIZE}"
        )
    decryptor = _aes_cbc(key, iv).decryptor()
    padded = decryptor.update(data) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as err:
        raise DecryptionFailure(
            "Invalid padding (wrong key or corrupted data)"
        ) from err


def _seal(
    plaintext: bytes,
    key: KeyLike,
    iv: str,
    salt: str,
    cipher_format: CipherFormat,
) -> Envelope:
    if CipherFormat(cipher_format) is CipherFormat.OPENSSL:
        openssl_salt = secrets.token_bytes(OPENSSL_SALT_SIZE)
        aes_key, aes_iv = _evp_bytes_to_key(
            _key_hex(key).encode("ascii"), openssl_salt
        )
        ct = OPENSSL_MAGIC + openssl_salt + _encrypt_block_stream(
            plaintext, aes_key, aes_iv
        )
    else:
        ct = _encrypt_block_stream(plaintext, _key_bytes(key), bytes.fromhex(iv))
    return Envelope(
        ciphertext=base64.b64encode(ct).decode("ascii"), iv=iv, salt=salt
    )


def _open(ciphertext: Any, key: KeyLike, iv: str) -> str:
    """Decrypt to text; raises CryptoError subclasses."""
    if not isinstance(ciphertext, str) or not ciphertext:
        raise DecryptionFailure("Ciphertext is empty")
    try:
        raw = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecryptionFailure("Ciphertext is not valid base64") from err
    if raw.startswith(OPENSSL_MAGIC):
        header = len(OPENSSL_MAGIC) + OPENSSL_SALT_SIZE
        aes_key, aes_iv = _evp_bytes_to_key(
            _key_hex(key).encode("ascii"), raw[len(OPENSSL_MAGIC):header]
        )
        data = _decrypt_block_stream(raw[header:], aes_key, aes_iv)
    else:
        data = _decrypt_block_stream(raw, _key_bytes(key), bytes.fromhex(iv))
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecryptionFailure(
            "Decrypted bytes are not valid UTF-8 (wrong key or corrupted data)"
        ) from err
    if not text:
        raise DecryptionFailure("Decryption failed: empty result")
    return text


def _failed(error: CryptoError, quiet: bool) -> Decrypted:
    if not quiet:
        logger.warning("Decryption failed [%s]: %s", error.kind, error)
    return Decrypted.failure(error)


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a Python value to canonical JSON bytes for encryption.

    Supports: str, int, float, dict, list, bool, None, datetime. Object keys
    are sorted. Binary data is not a JSON value; callers encode it first.

    Raises:
        FormatError: If the value is not JSON serializable (bytes included).
    """
    try:
        return orjson.dumps(value, option=orjson.OPT_SORT_KEYS)
    except orjson.JSONEncodeError as err:
        raise FormatError(f"Value is not JSON serializable: {err}") from err


def deserialize_value(data: Union[str, bytes]) -> Any:
    """Deserialize JSON back to a Python value.

    Raises:
        ParseFailure: If data is not valid JSON.
    """
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise ParseFailure(f"Decrypted data is not valid JSON: {err}") from err


def _parsed(result: Decrypted, quiet: bool) -> Decrypted:
    if not result.ok:
        return result
    try:
        return Decrypted.success(deserialize_value(result.value))
    except ParseFailure as err:
        return _failed(err, quiet)


# ---------------------------------------------------------------------------
# Key-based API
# ---------------------------------------------------------------------------

def encrypt(
    plaintext: str,
    key: KeyLike,
    *,
    cipher_format: CipherFormat = CipherFormat.RAW,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Envelope:
    """Encrypt text under ``key`` with a fresh IV and salt.

    Args:
        plaintext: Text to encrypt.
        key: 128/192/256-bit secret.
        cipher_format: RAW for new records.

    Returns:
        Envelope with base64 ciphertext and hex IV / salt.

    Raises:
        FormatError: If the key has an invalid size.
    """
    return _seal(
        plaintext.encode("utf-8"),
        key,
        generate_iv(config),
        generate_salt(config),
        cipher_format,
    )


def decrypt(
    ciphertext: str,
    key: KeyLike,
    iv: str,
    salt: str,
    *,
    quiet: bool = False,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Decrypted[str]:
    """Decrypt an envelope's ciphertext.

    IV and salt are validated before the cipher is touched.

    Args:
        ciphertext: Base64 ciphertext.
        key: Secret used at encryption time.
        iv: 32-character hex IV.
        salt: 32-character hex salt.
        quiet: Do not log failures (speculative decryption attempts).

    Returns:
        ``Decrypted`` with the plaintext, or with a ``FormatError`` /
        ``DecryptionFailure``.
    """
    try:
        _check_params(iv, salt, config)
        return Decrypted.success(_open(ciphertext, key, iv))
    except CryptoError as err:
        return _failed(err, quiet)


def encrypt_json(
    value: Any, key: KeyLike, *, config: CryptoConfig = DEFAULT_CONFIG
) -> Envelope:
    """Serialize ``value`` to canonical JSON and encrypt it."""
    return _seal(
        serialize_value(value),
        key,
        generate_iv(config),
        generate_salt(config),
        CipherFormat.RAW,
    )


def decrypt_json(
    envelope: Envelope,
    key: KeyLike,
    *,
    quiet: bool = False,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Decrypted[Any]:
    """Decrypt and parse a JSON envelope.

    A ``ParseFailure`` means the cipher accepted the data but the plaintext
    is not JSON.
    """
    result = decrypt(
        envelope.ciphertext, key, envelope.iv, envelope.salt,
        quiet=quiet, config=config,
    )
    return _parsed(result, quiet)


# ---------------------------------------------------------------------------
# Password-based API
# ---------------------------------------------------------------------------

def encrypt_with_password(
    plaintext: str,
    password: str,
    *,
    policy: DerivationPolicy = DerivationPolicy.LEGACY,
    cipher_format: CipherFormat = CipherFormat.RAW,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Envelope:
    """Derive a key from ``password`` and a fresh salt, then encrypt.

    The salt stored in the envelope is the one used for the derivation.
    """
    salt = generate_salt(config)
    key = derive_key(password, salt, config.key_size_bits, policy, config)
    return _seal(
        plaintext.encode("utf-8"), key, generate_iv(config), salt, cipher_format
    )


def decrypt_with_password(
    envelope: Envelope,
    password: str,
    *,
    policy: DerivationPolicy = DerivationPolicy.LEGACY,
    quiet: bool = False,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Decrypted[str]:
    """Re-derive the key from the envelope salt and decrypt."""
    try:
        _check_params(envelope.iv, envelope.salt, config)
        key = derive_key(
            password, envelope.salt, config.key_size_bits, policy, config
        )
        return Decrypted.success(_open(envelope.ciphertext, key, envelope.iv))
    except CryptoError as err:
        return _failed(err, quiet)


def encrypt_json_with_password(
    value: Any,
    password: str,
    *,
    policy: DerivationPolicy = DerivationPolicy.LEGACY,
    cipher_format: CipherFormat = CipherFormat.RAW,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Envelope:
    salt = generate_salt(config)
    key = derive_key(password, salt, config.key_size_bits, policy, config)
    return _seal(
        serialize_value(value), key, generate_iv(config), salt, cipher_format
    )


def decrypt_json_with_password(
    envelope: Envelope,
    password: str,
    *,
    policy: DerivationPolicy = DerivationPolicy.LEGACY,
    quiet: bool = False,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Decrypted[Any]:
    result = decrypt_with_password(
        envelope, password, policy=policy, quiet=quiet, config=config
    )
    return _parsed(result, quiet)


def open_envelope(
    envelope: Envelope,
    key: Optional[KeyLike],
    *,
    quiet: bool = False,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> Decrypted[str]:
    """``decrypt`` taking an ``Envelope``."""
    if key is None:
        return _failed(DecryptionFailure("No key supplied"), quiet)
    return decrypt(
        envelope.ciphertext, key, envelope.iv, envelope.salt,
        quiet=quiet, config=config,
    )
