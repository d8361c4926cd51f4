"""
Vault session - owns the unwrapped DEK for the lifetime of an unlocked session.

A vault is created once per user: a random DEK is generated and wrapped under
a KEK derived from the passphrase. Only the salt, the wrapped DEK, its nonce
and the KDF parameters are persisted (VaultRecord). Unlocking re-derives the
KEK and unwraps the DEK into memory; locking wipes it.
"""

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ..core.exceptions import AuthenticationError, VaultLockedError
from ..core.types import EncryptedBlob, utc_now
from ..core.utils import compute_content_hash
from .envelope import open_string, seal_string, unwrap_dek, wrap_dek
from .kdf import KdfParams, derive_kek, generate_dek


logger = logging.getLogger(__name__)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"))


@dataclass
class VaultRecord:
    """
    Persisted vault material (users.kdf_salt / users.wrapped_dek).

    Attributes:
        salt: KDF salt
        wrapped_dek: DEK encrypted under the KEK
        dek_nonce: Nonce used to wrap the DEK
        kdf: KDF parameters the KEK was derived with
        created_at: When the vault was created
    """
    salt: bytes
    wrapped_dek: bytes
    dek_nonce: bytes
    kdf: KdfParams = field(default_factory=KdfParams)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary (binary fields base64-encoded)."""
        return {
            "salt": _b64(self.salt),
            "wrapped_dek": _b64(self.wrapped_dek),
            "dek_nonce": _b64(self.dek_nonce),
            "kdf": self.kdf.to_dict(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultRecord":
        """Create from dictionary."""
        created = data.get("created_at")
        return cls(
            salt=_unb64(data["salt"]),
            wrapped_dek=_unb64(data["wrapped_dek"]),
            dek_nonce=_unb64(data["dek_nonce"]),
            kdf=KdfParams.from_dict(data.get("kdf", {})),
            created_at=datetime.fromisoformat(created) if created else utc_now(),
        )


@dataclass(frozen=True)
class SealedEntry:
    """Encrypted entry content plus the hash of its plaintext (entries.content_hash)."""
    blob: EncryptedBlob
    content_hash: str


class VaultSession:
    """
    An unlocked vault holding the DEK in memory.

    Use as a context manager to lock automatically:

        >>> record, session = VaultSession.create("correct horse battery")
        >>> with VaultSession.unlock(record, "correct horse battery") as vault:
        ...     sealed = vault.seal_entry("Dear diary...", entry_id="e-1")
    """

    def __init__(self, dek: bytes):
        self._dek: Optional[bytearray] = bytearray(dek)

    @classmethod
    def create(
        cls,
        passphrase: str,
        params: Optional[KdfParams] = None,
    ) -> Tuple[VaultRecord, "VaultSession"]:
        """
        Create a new vault with a fresh DEK.

        Returns:
            Tuple of (record to persist, unlocked session)
        """
        params = params or KdfParams()
        kek_result = derive_kek(passphrase, params=params)
        dek = generate_dek()
        wrapped = wrap_dek(kek_result.kek, dek)

        record = VaultRecord(
            salt=kek_result.salt,
            wrapped_dek=wrapped.wrapped,
            dek_nonce=wrapped.nonce,
            kdf=params,
        )
        logger.info(f"Created vault ({params.algorithm})")
        return record, cls(dek)

    @classmethod
    def unlock(cls, record: VaultRecord, passphrase: str) -> "VaultSession":
        """
        Unlock a vault.

        Raises:
            AuthenticationError: Wrong passphrase or tampered vault record
            ValidationError: Passphrase shorter than the minimum length
        """
        kek_result = derive_kek(passphrase, salt=record.salt, params=record.kdf)
        try:
            dek = unwrap_dek(kek_result.kek, record.wrapped_dek, record.dek_nonce)
        except AuthenticationError as e:
            logger.warning("Vault unlock failed")
            raise AuthenticationError("Incorrect passphrase or corrupted vault record") from e

        logger.info("Vault unlocked")
        return cls(dek)

    @property
    def is_unlocked(self) -> bool:
        return self._dek is not None

    def lock(self) -> None:
        """Wipe the DEK from memory."""
        if self._dek is not None:
            for i in range(len(self._dek)):
                self._dek[i] = 0
            self._dek = None
            logger.info("Vault locked")

    def _require_dek(self) -> bytes:
        if self._dek is None:
            raise VaultLockedError("Vault is locked")
        return bytes(self._dek)

    def seal_entry(self, text: str, entry_id: Optional[str] = None) -> SealedEntry:
        """
        Encrypt entry text.

        When entry_id is given it is bound as associated data, so the
        ciphertext cannot be swapped onto another entry row.
        """
        aad = entry_id.encode("utf-8") if entry_id else None
        blob = seal_string(self._require_dek(), text, aad)
        return SealedEntry(blob=blob, content_hash=compute_content_hash(text))

    def open_entry(self, blob: EncryptedBlob, entry_id: Optional[str] = None) -> str:
        """Decrypt entry text sealed with seal_entry()."""
        aad = entry_id.encode("utf-8") if entry_id else None
        return open_string(self._require_dek(), blob.cipher, blob.nonce, aad)

    @classmethod
    def change_passphrase(
        cls,
        record: VaultRecord,
        old_passphrase: str,
        new_passphrase: str,
        params: Optional[KdfParams] = None,
    ) -> VaultRecord:
        """
        Re-wrap the vault's DEK under a new passphrase.

        Entry ciphertexts are untouched since the DEK does not change. A new
        salt is always drawn.

        Args:
            record: Current vault record
            old_passphrase: Passphrase the record was created with
            new_passphrase: Replacement passphrase
            params: KDF parameters for the new record (defaults to the old ones)

        Returns:
            New VaultRecord to persist in place of the old one

        Raises:
            AuthenticationError: If old_passphrase is wrong
        """
        with cls.unlock(record, old_passphrase) as session:
            params = params or record.kdf
            kek_result = derive_kek(new_passphrase, params=params)
            wrapped = wrap_dek(kek_result.kek, session._require_dek())

        logger.info("Vault passphrase changed")
        return VaultRecord(
            salt=kek_result.salt,
            wrapped_dek=wrapped.wrapped,
            dek_nonce=wrapped.nonce,
            kdf=params,
        )

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(self, *args) -> None:
        self.lock()
