"""Provides SHA-256 content identifiers for upload deduplication."""

import hashlib
from typing import BinaryIO

from common.constants import HASH_CHUNK_SIZE


def compute_content_id(stream: BinaryIO, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """
    Compute the content identifier of a byte stream.

    The stream is read from its current position to EOF, so callers must
    seek back to the start before reading it again.

    Args:
        stream: Binary file-like object
        chunk_size: Number of bytes read per iteration

    Returns:
        Hexadecimal SHA-256 digest of everything read
    """
    hasher = hashlib.sha256()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.hexdigest()
