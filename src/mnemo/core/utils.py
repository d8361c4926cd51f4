"""
Core Utilities - Shared hashing helpers.
"""

import hashlib


def compute_content_hash(content: str) -> str:
    """
    Compute SHA256 hash of text content.

    Used for the entries.content_hash column of sealed entries.

    Args:
        content: Text content to hash

    Returns:
        Hex-encoded SHA256 hash (64 characters)

    Example:
        >>> compute_content_hash("Hello, World!")
        'dffd6021bb2bd5b0af676290809ec3a53191dd81c7f70a4b28688a362182986f'
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def generate_chunk_id(
    entry_id: str,
    chunk_index: int,
    start_offset: int,
    end_offset: int,
    policy_version: str,
) -> str:
    """
    Generate a deterministic chunk id.

    The same entry chunked with the same policy always yields the same ids,
    so re-indexing an unchanged entry is idempotent.
    """
    key = f"{entry_id}:{chunk_index}:{start_offset}:{end_offset}:{policy_version}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
