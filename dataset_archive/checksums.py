"""
Checksum helpers shared by the storage repositories.
"""

import hashlib
from typing import Iterable

from .domain import ChecksumType

CHUNK_SIZE = 1024 * 1024

_ALGORITHMS = {
    ChecksumType.MD5: "md5",
    ChecksumType.SHA1: "sha1",
    ChecksumType.SHA256: "sha256",
    ChecksumType.SHA512: "sha512",
}


def new_hasher(checksum_type: ChecksumType):
    return hashlib.new(_ALGORITHMS[checksum_type])


def checksum_of_chunks(
    chunks: Iterable[bytes], checksum_type: ChecksumType
) -> str:
    hasher = new_hasher(checksum_type)
    for chunk in chunks:
        hasher.update(chunk)
    return hasher.hexdigest()


def checksum_of_bytes(data: bytes, checksum_type: ChecksumType) -> str:
    return checksum_of_chunks([data], checksum_type)
