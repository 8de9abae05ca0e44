"""Hasher - Content fingerprints for modules and bundles.

Module digests identify the exact bytes a parsed module was built from;
the bundle digest identifies an emitted artifact in build and status output.
"""

import hashlib


def calculate_hash(
    content: str | bytes,
    length: int = 12,
    algorithm: str = "sha256",
) -> str:
    """Calculate a short content hash.

    Args:
        content: Text (encoded as UTF-8) or raw bytes to hash
        length: Number of characters in the hash (default 12)
        algorithm: Any algorithm name hashlib accepts (default "sha256")

    Returns:
        Hexadecimal hash string of specified length
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    try:
        hash_obj = hashlib.new(algorithm, data)
    except ValueError as e:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}") from e
    return hash_obj.hexdigest()[:length]
