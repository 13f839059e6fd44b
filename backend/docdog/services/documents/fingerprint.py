"""Content fingerprints used as deduplication keys.

SHA-256 over the full byte stream, consumed in fixed-size chunks so memory
stays bounded by the chunk size regardless of file size.
"""
import hashlib
import inspect
import os
from pathlib import Path
from typing import Any, Union

import aiofiles

from docdog.services.documents.errors import IOFailure

CHUNK_SIZE = 1024 * 1024

FingerprintSource = Union[bytes, bytearray, memoryview, str, os.PathLike, Any]


async def fingerprint(source: FingerprintSource, chunk_size: int = CHUNK_SIZE) -> str:
    """Return the lowercase hex SHA-256 digest of ``source``.

    ``source`` may be raw bytes, a filesystem path, or any object with a
    ``read(n)`` method, sync (open file, BytesIO) or async (UploadFile,
    aiofiles handle). Read errors raise IOFailure; an unreadable file must
    never be mistaken for "no duplicate".
    """
    hasher = hashlib.sha256()

    if isinstance(source, (bytes, bytearray, memoryview)):
        view = memoryview(source)
        for start in range(0, len(view), chunk_size):
            hasher.update(view[start:start + chunk_size])
        return hasher.hexdigest()

    try:
        if isinstance(source, (str, os.PathLike)):
            async with aiofiles.open(Path(source), "rb") as f:
                while chunk := await f.read(chunk_size):
                    hasher.update(chunk)
        elif hasattr(source, "read"):
            while True:
                chunk = source.read(chunk_size)
                if inspect.isawaitable(chunk):
                    chunk = await chunk
                if not chunk:
                    break
                hasher.update(chunk)
        else:
            raise IOFailure(f"Cannot fingerprint object of type {type(source).__name__}")
    except OSError as e:
        raise IOFailure(f"Could not read document bytes: {e}") from e

    return hasher.hexdigest()
