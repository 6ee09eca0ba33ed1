"""
Archive override markers.

With JIP LN NVSE installed, an empty `<name>.override` file beside
`<name>.bsa` makes that archive override loose files and earlier archives.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".bsa"
MARKER_SUFFIX = ".override"
IGNORED_DIRS = {".git"}


def ensure_marker(archive: Path) -> bool:
    """Create the marker beside `archive` if missing. True when created."""
    marker = archive.with_suffix(MARKER_SUFFIX)
    try:
        # "x" never truncates an existing marker
        with open(marker, "x"):
            pass
    except FileExistsError:
        return False
    except OSError as e:
        logger.warning("Failed to create %s: %s", marker, e)
        return False
    logger.info("An override file for %s is missing, one was automatically generated", archive)
    return True


def _is_archive(name: str) -> bool:
    return name.lower().endswith(ARCHIVE_SUFFIX)


def create_override_files(staging_root: Path) -> bool:
    """Walk every mod under `staging_root` and add missing markers."""
    created = False

    def on_error(err: OSError) -> None:
        logger.warning("Failed to scan %s: %s", err.filename, err)

    for dirpath, dirnames, filenames in os.walk(staging_root, onerror=on_error):
        dirnames[:] = [d for d in dirnames if d not in IGNORED_DIRS]
        for name in filenames:
            if _is_archive(name) and ensure_marker(Path(dirpath) / name):
                created = True
    return created


def create_single_override_files(mod_path: Path) -> bool:
    """Top level of one mod folder only."""
    created = False
    try:
        entries = list(os.scandir(mod_path))
    except OSError as e:
        logger.warning("Failed to create override files in %s: %s", mod_path, e)
        return False
    for entry in entries:
        try:
            is_file = entry.is_file()
        except OSError:
            continue
        if is_file and _is_archive(entry.name) and ensure_marker(Path(entry.path)):
            created = True
    return created
