"""
AES-256-GCM envelope - DEK wrapping and entry content encryption.

Every seal draws a fresh 96-bit random nonce. Nonce reuse under one key is a
caller bug and is not detected here.

Failures are all-or-nothing: an exception means no plaintext was produced.
The try_* variants return a CryptoResult instead of raising.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import AuthenticationError, SecurityError, ValidationError
from ..core.types import EncryptedBlob, WrappedKey
from .kdf import KEY_LENGTH, random_bytes


NONCE_LENGTH = 12
VALID_KEY_LENGTHS = (16, 24, 32)


def _cipher(key: bytes) -> AESGCM:
    if len(key) not in VALID_KEY_LENGTHS:
        raise ValidationError(
            f"AES key must be 128, 192 or 256 bits, got {len(key) * 8} bits"
        )
    return AESGCM(bytes(key))


def _check_nonce(nonce: bytes) -> None:
    if len(nonce) != NONCE_LENGTH:
        raise ValidationError(
            f"Nonce must be {NONCE_LENGTH} bytes, got {len(nonce)}"
        )


def generate_nonce() -> bytes:
    """Generate a random 96-bit nonce for AES-GCM."""
    return random_bytes(NONCE_LENGTH)


def wrap_dek(kek: bytes, dek: bytes) -> WrappedKey:
    """
    Encrypt a DEK under a KEK.

    Args:
        kek: Key-Encryption-Key
        dek: Plaintext 32-byte DEK

    Returns:
        WrappedKey with the ciphertext and its nonce

    Raises:
        ValidationError: If the DEK is not 32 bytes
    """
    if len(dek) != KEY_LENGTH:
        raise ValidationError("DEK must be 256 bits (32 bytes)")

    aesgcm = _cipher(kek)
    nonce = generate_nonce()
    wrapped = aesgcm.encrypt(nonce, bytes(dek), None)
    return WrappedKey(wrapped=wrapped, nonce=nonce)


def unwrap_dek(kek: bytes, wrapped: bytes, nonce: bytes) -> bytes:
    """
    Decrypt a wrapped DEK.

    Raises:
        AuthenticationError: On tag mismatch (wrong KEK or tampered bytes)
        ValidationError: On malformed key or nonce lengths
    """
    aesgcm = _cipher(kek)
    _check_nonce(nonce)
    try:
        return aesgcm.decrypt(bytes(nonce), bytes(wrapped), None)
    except InvalidTag as e:
        raise AuthenticationError("DEK unwrapping failed: authentication tag mismatch") from e


def seal(dek: bytes, plaintext: bytes, associated_data: Optional[bytes] = None) -> EncryptedBlob:
    """
    Encrypt content under a DEK.

    Args:
        dek: Data-Encryption-Key
        plaintext: Bytes to encrypt
        associated_data: Optional bytes bound to the ciphertext (e.g. entry id)

    Returns:
        EncryptedBlob with ciphertext (tag appended) and nonce
    """
    aesgcm = _cipher(dek)
    nonce = generate_nonce()
    cipher = aesgcm.encrypt(nonce, bytes(plaintext), associated_data)
    return EncryptedBlob(cipher=cipher, nonce=nonce)


def open_blob(
    dek: bytes,
    cipher: bytes,
    nonce: bytes,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """
    Decrypt content sealed with seal().

    Raises:
        AuthenticationError: On tag mismatch (wrong key, tampered ciphertext,
            nonce or associated data)
    """
    aesgcm = _cipher(dek)
    _check_nonce(nonce)
    try:
        return aesgcm.decrypt(bytes(nonce), bytes(cipher), associated_data)
    except InvalidTag as e:
        raise AuthenticationError("Decryption failed: authentication tag mismatch") from e


def seal_string(dek: bytes, text: str, associated_data: Optional[bytes] = None) -> EncryptedBlob:
    """Encrypt a string as UTF-8."""
    return seal(dek, text.encode("utf-8"), associated_data)


def open_string(
    dek: bytes,
    cipher: bytes,
    nonce: bytes,
    associated_data: Optional[bytes] = None,
) -> str:
    """Decrypt to a UTF-8 string."""
    plaintext = open_blob(dek, cipher, nonce, associated_data)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError("Decrypted content is not valid UTF-8") from e


@dataclass(frozen=True)
class CryptoResult:
    """
    Explicit outcome of a crypto operation.

    Attributes:
        ok: Whether the operation succeeded
        value: Plaintext on success, always None on failure
        error_kind: "validation", "authentication" or "security" on failure
        error: The underlying exception on failure
    """
    ok: bool
    value: Optional[bytes] = None
    error_kind: Optional[str] = None
    error: Optional[Exception] = None


def _as_result(operation: Callable[[], Any]) -> CryptoResult:
    try:
        return CryptoResult(ok=True, value=operation())
    except AuthenticationError as e:
        return CryptoResult(ok=False, error_kind="authentication", error=e)
    except ValidationError as e:
        return CryptoResult(ok=False, error_kind="validation", error=e)
    except SecurityError as e:
        return CryptoResult(ok=False, error_kind="security", error=e)


def try_unwrap_dek(kek: bytes, wrapped: bytes, nonce: bytes) -> CryptoResult:
    """unwrap_dek() returning a CryptoResult instead of raising."""
    return _as_result(lambda: unwrap_dek(kek, wrapped, nonce))


def try_open(
    dek: bytes,
    cipher: bytes,
    nonce: bytes,
    associated_data: Optional[bytes] = None,
) -> CryptoResult:
    """open_blob() returning a CryptoResult instead of raising."""
    return _as_result(lambda: open_blob(dek, cipher, nonce, associated_data))
