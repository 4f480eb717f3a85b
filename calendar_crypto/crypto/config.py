"""
Crypto Configuration — Fixed, validated parameters of the encryption layer.

Iteration counts, key size and salt prefixes are part of the on-disk
contract: every stored record was produced with them, so they are not read
from the environment or from user settings.

Security Note:
    Never log key material. Only log parameter names and policy names.
"""

from pydantic import BaseModel, Field, field_validator, model_validator


MIN_CURRENT_ITERATIONS = 100_000


class CryptoConfig(BaseModel):
    """Validated crypto parameters."""

    key_size_bits: int = Field(default=256)
    salt_bytes: int = Field(default=16, ge=8)
    iv_bytes: int = Field(default=16)
    digest: str = Field(default="sha256")
    current_iterations: int = Field(default=100_000)
    legacy_iterations: int = Field(default=10_000, ge=1)
    legacy_v1_iterations: int = Field(default=1_000, ge=1)
    auth_salt_prefix: str = Field(default="auth_", min_length=1)
    encryption_salt_prefix: str = Field(default="encrypt_", min_length=1)
    session_key_name: str = Field(default="encryption_key", min_length=1)

    model_config = {"frozen": True}

    @field_validator("key_size_bits")
    @classmethod
    def validate_key_size(cls, v: int) -> int:
        """AES accepts 128, 192 or 256 bit keys."""
        if v not in (128, 192, 256):
            raise ValueError(f"Unsupported AES key size: {v}")
        return v

    @field_validator("iv_bytes")
    @classmethod
    def validate_iv(cls, v: int) -> int:
        """CBC needs an IV of exactly one AES block."""
        if v != 16:
            raise ValueError(f"IV must be 16 bytes for AES-CBC, got {v}")
        return v

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        v = v.lower()
        if v not in ("sha256", "sha512"):
            raise ValueError(f"Unsupported PBKDF2 digest: {v}")
        return v

    @model_validator(mode="after")
    def validate_domain_separation(self) -> "CryptoConfig":
        """Auth and encryption salts must never collide."""
        if self.auth_salt_prefix == self.encryption_salt_prefix:
            raise ValueError(
                "auth_salt_prefix and encryption_salt_prefix must differ"
            )
        if self.current_iterations < MIN_CURRENT_ITERATIONS:
            raise ValueError(
                f"current_iterations must be >= {MIN_CURRENT_ITERATIONS}, "
                f"got {self.current_iterations}"
            )
        return self

    @property
    def key_bytes(self) -> int:
        return self.key_size_bits // 8

    @property
    def hex_length(self) -> int:
        """Length in hex characters of a salt or IV."""
        return self.iv_bytes * 2


DEFAULT_CONFIG = CryptoConfig()
