"""
Crypto errors and the decryption result type.

Decrypt operations never raise for bad data: they return a ``Decrypted``
holding either a value or one of the errors below, so a calendar view can
skip an unreadable event instead of aborting.
"""
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class CryptoError(Exception):
    """Base class for every error of the crypto layer."""

    kind: str = "crypto"

    def __init__(self, message: str = "", *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message

    def __str__(self) -> str:
        return self.message or self.kind


class FormatError(CryptoError, ValueError):
    """Malformed caller input: non-hex IV or salt, empty password, wrong key kind."""

    kind = "format"


class DecryptionFailure(CryptoError):
    """Wrong key, tampered or corrupted ciphertext."""

    kind = "decryption"


class SessionKeyMissing(DecryptionFailure):
    """No encryption key is cached for the current session."""

    kind = "session_key_missing"


class ParseFailure(CryptoError):
    """Decryption succeeded but the plaintext is not valid structured data."""

    kind = "parse"


@dataclass(frozen=True)
class Decrypted(Generic[T]):
    """Outcome of a decrypt call.

    Exactly one of ``value`` / ``error`` is meaningful: ``error`` is ``None``
    on success.
    """

    value: Optional[T] = None
    error: Optional[CryptoError] = None

    @classmethod
    def success(cls, value: T) -> "Decrypted[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CryptoError) -> "Decrypted[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def value_or(self, default: Any = None) -> Any:
        return default if self.error is not None else self.value

    def __bool__(self) -> bool:
        return self.ok
