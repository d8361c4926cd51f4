"""
Key derivation - derives the KEK (Key-Encryption-Key) from a passphrase.

The KDF is deliberately slow to resist offline brute force. PBKDF2-HMAC-SHA256
is the default; scrypt is available when a memory-hard function is wanted.
Cost parameters come from configuration and are stored with the vault record
so a passphrase can always be re-derived with the parameters it was set with.
"""

import hmac
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..core.exceptions import SecurityError, ValidationError
from ..core.types import KEKResult


logger = logging.getLogger(__name__)

PBKDF2_SHA256 = "pbkdf2-sha256"
SCRYPT = "scrypt"

MIN_PASSPHRASE_LENGTH = 8
SALT_LENGTH = 32
KEY_LENGTH = 32


@dataclass(frozen=True)
class KdfParams:
    """
    Cost parameters for passphrase key derivation.

    Attributes:
        algorithm: "pbkdf2-sha256" or "scrypt"
        iterations: PBKDF2 iteration count
        scrypt_n: scrypt CPU/memory cost (power of two)
        scrypt_r: scrypt block size
        scrypt_p: scrypt parallelization
    """
    algorithm: str = PBKDF2_SHA256
    iterations: int = 100_000
    scrypt_n: int = 2 ** 15
    scrypt_r: int = 8
    scrypt_p: int = 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "algorithm": self.algorithm,
            "iterations": self.iterations,
            "scrypt_n": self.scrypt_n,
            "scrypt_r": self.scrypt_r,
            "scrypt_p": self.scrypt_p,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KdfParams":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            algorithm=data.get("algorithm", defaults.algorithm),
            iterations=int(data.get("iterations", defaults.iterations)),
            scrypt_n=int(data.get("scrypt_n", defaults.scrypt_n)),
            scrypt_r=int(data.get("scrypt_r", defaults.scrypt_r)),
            scrypt_p=int(data.get("scrypt_p", defaults.scrypt_p)),
        )


def random_bytes(length: int) -> bytes:
    """
    Read bytes from the operating system's CSPRNG.

    Raises:
        SecurityError: If the random source is unavailable. There is no fallback.
    """
    try:
        return os.urandom(length)
    except (OSError, NotImplementedError) as e:
        raise SecurityError(f"Secure random source unavailable: {e}") from e


def generate_salt() -> bytes:
    """Generate a random 256-bit KDF salt."""
    return random_bytes(SALT_LENGTH)


def generate_dek() -> bytes:
    """Generate a random 256-bit Data-Encryption-Key."""
    return random_bytes(KEY_LENGTH)


def _build_kdf(salt: bytes, params: KdfParams):
    if params.algorithm == PBKDF2_SHA256:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=params.iterations,
        )
    if params.algorithm == SCRYPT:
        return Scrypt(
            salt=salt,
            length=KEY_LENGTH,
            n=params.scrypt_n,
            r=params.scrypt_r,
            p=params.scrypt_p,
        )
    raise ValidationError(f"Unsupported KDF algorithm: {params.algorithm}")


def _derive(passphrase: str, salt: bytes, params: KdfParams) -> bytes:
    kdf = _build_kdf(bytes(salt), params)
    try:
        return kdf.derive(passphrase.encode("utf-8"))
    except (ValueError, UnsupportedAlgorithm, MemoryError) as e:
        raise SecurityError(f"Key derivation failed: {e}") from e


def derive_kek(
    passphrase: str,
    salt: Optional[bytes] = None,
    params: Optional[KdfParams] = None,
) -> KEKResult:
    """
    Derive a KEK from a passphrase.

    Args:
        passphrase: User passphrase (at least 8 characters)
        salt: Existing salt; a fresh random salt is generated if omitted
        params: KDF cost parameters (defaults to production PBKDF2 settings)

    Returns:
        KEKResult with the salt used and the derived key

    Raises:
        ValidationError: If the passphrase is too short
        SecurityError: If the random source or the KDF fails
    """
    if passphrase is None or len(passphrase) < MIN_PASSPHRASE_LENGTH:
        raise ValidationError(
            f"Passphrase must be at least {MIN_PASSPHRASE_LENGTH} characters"
        )

    params = params or KdfParams()
    if salt is None:
        salt = generate_salt()

    kek = _derive(passphrase, salt, params)
    logger.debug(f"Derived KEK with {params.algorithm}")
    return KEKResult(salt=bytes(salt), kek=kek)


def verify_passphrase(
    passphrase: str,
    salt: bytes,
    expected_key: bytes,
    params: Optional[KdfParams] = None,
) -> bool:
    """
    Check a passphrase by re-deriving and comparing in constant time.

    Any derivation failure counts as a mismatch.
    """
    try:
        derived = derive_kek(passphrase, salt, params).kek
    except (ValidationError, SecurityError):
        return False

    return hmac.compare_digest(derived, bytes(expected_key))
