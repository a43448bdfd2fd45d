import hashlib
from typing import Union

HASH_LENGTH = 8


def compute_file_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def short_hash(content: Union[str, bytes], length: int = HASH_LENGTH) -> str:
    """Short fingerprint used for the ``[hash]`` naming placeholder."""
    if isinstance(content, str):
        content = content.encode('utf-8')
    return compute_file_hash(content)[:length]
