"""File based probes: content identity and presence."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024

PATCHED_EXECUTABLE_HASHES: frozenset[str] = frozenset({
    "3e00e9397d71fae83af39129471024a7",  # GOG
    "27c096c5ad9657af4f39f764231521da",  # Epic Games
    "50c70408a000acade2ed257c87cecbc2",  # Steam (US)
    "efee1ff64ea7f2b179d888e4a6c154c0",  # Steam (Russian)
})

LEGACY_NVSE_HASH = "23bd7b28b6022c23ff1fb2443467ad99"


def file_digest(path: Path) -> str:
    """MD5 hex digest of the full file contents."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def read_digest(path: Path) -> str | None:
    """Like file_digest(), but logs and returns None when the file can't be read."""
    try:
        return file_digest(path)
    except OSError as e:
        logger.error("Error reading %s: %s", path, e)
        return None


def is_known_variant(path: Path, known_hashes: frozenset[str] | set[str]) -> bool:
    digest = read_digest(path)
    if digest is None:
        return False
    logger.debug("%s hash=%s", path.name, digest)
    return digest in known_hashes


def path_present(path: Path) -> bool:
    """
    Existence test that never raises. Permission errors and broken links
    count as absent.
    """
    try:
        path.stat()
    except OSError:
        return False
    return True
