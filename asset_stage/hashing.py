"""Content hashing for staged trees.

The digest of a set of files depends only on their contents: every file is
hashed on its own, the per-file digests are sorted, and the sorted digests are
hashed again. Discovery order and file names therefore never affect the
result, while changing a single byte in any file does.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import typing as typ

from .errors import HashError

if typ.TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "HASH_ALGORITHM",
    "compute_digest",
    "compute_hash",
    "encode_token",
    "file_digest",
]

logger = logging.getLogger(__name__)

HASH_ALGORITHM = "sha256"
_CHUNK_SIZE = 64 * 1024


def file_digest(path: Path) -> str:
    """Return the hex digest of the bytes stored at ``path``."""
    hasher = hashlib.new(HASH_ALGORITHM)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


async def _digest_or_raise(path: Path) -> str:
    try:
        return await asyncio.to_thread(file_digest, path)
    except OSError as exc:
        logger.error("Unable to hash %s: %s", path, exc)
        msg = f"Unable to read {path} while hashing: {exc}"
        raise HashError(msg) from exc


async def compute_digest(paths: typ.Iterable[Path]) -> str:
    """Return the order-independent hex digest of the files at ``paths``.

    Parameters
    ----------
    paths
        Files to include in the digest, in any order.

    Returns
    -------
    str
        Hex digest combining the sorted per-file digests.

    Raises
    ------
    HashError
        Raised when any file cannot be read. No partial digest is returned.
    """
    digests = await asyncio.gather(*(_digest_or_raise(path) for path in paths))
    combined = hashlib.new(HASH_ALGORITHM)
    for digest in sorted(digests):
        combined.update(bytes.fromhex(digest))
    return combined.hexdigest()


def encode_token(hexdigest: str) -> str:
    """Encode a hex digest as a filesystem and URL safe token.

    The raw digest bytes are base64 encoded, then ``/`` becomes ``_``, ``+``
    becomes ``-`` and ``=`` padding is dropped.

    Examples
    --------
    >>> encode_token("fbff")
    '-_8'
    """
    encoded = base64.urlsafe_b64encode(bytes.fromhex(hexdigest))
    return encoded.decode("ascii").rstrip("=")


async def compute_hash(paths: typ.Iterable[Path]) -> str:
    """Return the content token for the files at ``paths``."""
    return encode_token(await compute_digest(paths))
