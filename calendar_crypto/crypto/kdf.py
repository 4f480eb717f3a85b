"""
Key Derivation — Password-based secrets for authentication and encryption.

A single PBKDF2-HMAC primitive, parameterised by a ``DerivationPolicy``:

- ``CURRENT``: salt = purpose prefix + email, 100,000 iterations.
  Used for the auth hash and the session encryption key.
- ``LEGACY``: explicit random salt, 10,000 iterations (per-record keys).
- ``LEGACY_V1``: explicit random salt, 1,000 iterations (oldest records).

Salts are passed to PBKDF2 as UTF-8 text, a hex salt is not hex-decoded.

Security Note:
    The auth hash and the encryption key are derived independently from the
    password with different salts; neither can be computed from the other.
    Never log passwords or derived values.
"""
import enum
import hmac
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import DEFAULT_CONFIG, CryptoConfig
from .errors import FormatError


_DIGESTS = {
    "sha256": hashes.SHA256,
    "sha512": hashes.SHA512,
}


class SecretKind(str, enum.Enum):
    AUTH_HASH = "auth_hash"
    ENCRYPTION_KEY = "encryption_key"
    RECORD_KEY = "record_key"


class DerivationPolicy(str, enum.Enum):
    """Salt source and iteration count of a derivation."""

    CURRENT = "current"
    LEGACY = "legacy"
    LEGACY_V1 = "legacy_v1"

    def iterations(self, config: CryptoConfig = DEFAULT_CONFIG) -> int:
        if self is DerivationPolicy.CURRENT:
            return config.current_iterations
        if self is DerivationPolicy.LEGACY:
            return config.legacy_iterations
        return config.legacy_v1_iterations

    @property
    def email_salted(self) -> bool:
        return self is DerivationPolicy.CURRENT


class DerivedSecret:
    """Opaque fixed-length secret produced by PBKDF2.

    Key material is never shown by ``repr``/``str`` and equality is
    constant-time.
    """

    __slots__ = ("_value", "_kind")

    def __init__(self, value: bytes, kind: SecretKind = SecretKind.RECORD_KEY):
        if not isinstance(value, (bytes, bytearray)) or not value:
            raise FormatError("DerivedSecret requires non-empty bytes")
        self._value = bytes(value)
        self._kind = SecretKind(kind)

    @classmethod
    def from_hex(
        cls, value: str, kind: SecretKind = SecretKind.ENCRYPTION_KEY
    ) -> "DerivedSecret":
        """Rebuild a secret from its hex form (e.g. a key kept by a host app)."""
        try:
            raw = bytes.fromhex(value)
        except (TypeError, ValueError) as err:
            raise FormatError(f"Secret is not valid hex: {err}") from err
        return cls(raw, kind)

    @property
    def kind(self) -> SecretKind:
        return self._kind

    @property
    def value(self) -> bytes:
        return self._value

    @property
    def size_bits(self) -> int:
        return len(self._value) * 8

    def hex(self) -> str:
        return self._value.hex()

    def __len__(self) -> int:
        return len(self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DerivedSecret):
            return NotImplemented
        return self._kind is other._kind and hmac.compare_digest(
            self._value, other._value
        )

    def __hash__(self) -> int:
        return hash((self._kind, self._value))

    def __repr__(self) -> str:
        return f"<DerivedSecret kind={self._kind.value} bits={self.size_bits}>"

    __str__ = __repr__


def _as_bytes(value: Union[str, bytes], name: str) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise FormatError(f"{name} must be str or bytes, got {type(value).__name__}")


# ---------------------------------------------------------------------------
# Core primitive
# ---------------------------------------------------------------------------

def derive(
    password: Union[str, bytes],
    salt: Union[str, bytes],
    policy: DerivationPolicy,
    key_size_bits: int = 256,
    kind: SecretKind = SecretKind.RECORD_KEY,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> DerivedSecret:
    """Stretch a password into a secret with PBKDF2-HMAC.

    Args:
        password: Non-empty password (or hex key used as a password).
        salt: Salt text; email-based for ``CURRENT``, random hex otherwise.
        policy: Derivation policy selecting the iteration count.
        key_size_bits: Output size, a positive multiple of 8.
        kind: Kind tag attached to the resulting secret.
        config: Crypto parameters.

    Returns:
        The derived secret.

    Raises:
        FormatError: If the password is empty or key_size_bits is invalid.
    """
    password_bytes = _as_bytes(password, "password")
    if not password_bytes:
        raise FormatError("Password cannot be empty")
    if key_size_bits <= 0 or key_size_bits % 8:
        raise FormatError(
            f"key_size_bits must be a positive multiple of 8, got {key_size_bits}"
        )
    policy = DerivationPolicy(policy)
    kdf = PBKDF2HMAC(
        algorithm=_DIGESTS[config.digest](),
        length=key_size_bits // 8,
        salt=_as_bytes(salt, "salt"),
        iterations=policy.iterations(config),
    )
    return DerivedSecret(kdf.derive(password_bytes), kind)


# ---------------------------------------------------------------------------
# Purpose-specific derivations
# ---------------------------------------------------------------------------

def derive_auth_hash(
    password: str, email: str, config: CryptoConfig = DEFAULT_CONFIG
) -> DerivedSecret:
    """Derive the hash sent to the server to prove identity.

    Deterministic for a given (password, email) so the server can verify it
    across logins. Never used as an encryption key.
    """
    return derive(
        password,
        f"{config.auth_salt_prefix}{email}",
        DerivationPolicy.CURRENT,
        config.key_size_bits,
        SecretKind.AUTH_HASH,
        config,
    )


def derive_encryption_key(
    password: str, email: str, config: CryptoConfig = DEFAULT_CONFIG
) -> DerivedSecret:
    """Derive the client-only key that encrypts user data.

    Same algorithm and iteration count as ``derive_auth_hash`` with a
    different salt prefix.
    """
    return derive(
        password,
        f"{config.encryption_salt_prefix}{email}",
        DerivationPolicy.CURRENT,
        config.key_size_bits,
        SecretKind.ENCRYPTION_KEY,
        config,
    )


def derive_credentials(
    password: str, email: str, config: CryptoConfig = DEFAULT_CONFIG
) -> tuple[DerivedSecret, DerivedSecret]:
    """Return ``(auth_hash, encryption_key)`` for a login."""
    return (
        derive_auth_hash(password, email, config),
        derive_encryption_key(password, email, config),
    )


def derive_key(
    password: Union[str, bytes],
    salt: str,
    key_size_bits: int = 256,
    policy: DerivationPolicy = DerivationPolicy.LEGACY,
    config: CryptoConfig = DEFAULT_CONFIG,
) -> DerivedSecret:
    """Derive a key from an explicit random salt (legacy, low-iteration path).

    Kept so that records encrypted with per-record salts stay readable.

    Args:
        password: Password, or the hex form of a session key.
        salt: The record's random salt, as stored.
        key_size_bits: Output size in bits.
        policy: ``LEGACY`` (10,000 iterations) or ``LEGACY_V1`` (1,000).

    Raises:
        FormatError: If the policy is ``CURRENT``, which is email-salted.
    """
    policy = DerivationPolicy(policy)
    if policy.email_salted:
        raise FormatError(
            "derive_key takes an explicit salt; use derive_encryption_key "
            "for the email-salted derivation"
        )
    return derive(
        password, salt, policy, key_size_bits, SecretKind.RECORD_KEY, config
    )
