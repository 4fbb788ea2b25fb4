"""Content hashing used for upload watermarks."""

from __future__ import annotations

import hashlib


def compute_content_hash(data: bytes) -> str:
    """Compute the SHA-256 hash of in-memory content.

    Args:
        data: Content bytes.

    Returns:
        Hexadecimal SHA-256 hash string.
    """
    return hashlib.sha256(data).hexdigest()
