"""
Crypto envelope for content at rest.

- kdf: passphrase -> KEK derivation, random DEK/salt generation
- envelope: AES-256-GCM DEK wrapping and content sealing
- vault: unlocked-session management of the DEK
"""

from .envelope import (
    CryptoResult,
    open_blob,
    open_string,
    seal,
    seal_string,
    try_open,
    try_unwrap_dek,
    unwrap_dek,
    wrap_dek,
)
from .kdf import (
    KdfParams,
    derive_kek,
    generate_dek,
    generate_salt,
    verify_passphrase,
)
from .vault import SealedEntry, VaultRecord, VaultSession

__all__ = [
    "CryptoResult",
    "KdfParams",
    "SealedEntry",
    "VaultRecord",
    "VaultSession",
    "derive_kek",
    "generate_dek",
    "generate_salt",
    "open_blob",
    "open_string",
    "seal",
    "seal_string",
    "try_open",
    "try_unwrap_dek",
    "unwrap_dek",
    "verify_passphrase",
    "wrap_dek",
]
