"""Locate the game through Steam library manifests."""

from __future__ import annotations

import logging
import platform
import re
from pathlib import Path
from typing import Iterable, Iterator

from fnv_sanity_check import config
from fnv_sanity_check.registry import RegistryStore, WinRegStore

logger = logging.getLogger(__name__)

# Per-user SteamPath first; the machine-wide key only exists for installer builds
STEAM_REGISTRY_VALUES = (
    ("HKEY_CURRENT_USER", r"Software\Valve\Steam", "SteamPath"),
    ("HKEY_LOCAL_MACHINE", r"SOFTWARE\WOW6432Node\Valve\Steam", "InstallPath"),
)


def steam_roots(store: RegistryStore | None = None) -> Iterator[Path]:
    """Steam installations this machine may have, most likely first."""
    if platform.system() == "Windows":
        store = store or WinRegStore()
        for hive, key, name in STEAM_REGISTRY_VALUES:
            try:
                yield Path(store.read_value(hive, key, name))
            except OSError as e:
                logger.debug("No Steam %s in %s: %s", name, hive, e)
    elif platform.system() == "Linux":
        home = Path.home()
        yield home / ".local" / "share" / "Steam"
        yield home / ".steam" / "steam"
        yield home / ".var" / "app" / "com.valvesoftware.Steam" / ".local" / "share" / "Steam"


def iter_libraries(roots: Iterable[Path] | None = None) -> Iterator[Path]:
    """
    Yield steamapps folders lazily: each root's own library, then the extra
    libraries its libraryfolders.vdf lists. A folder is yielded once.
    """
    seen: set[Path] = set()
    for root in steam_roots() if roots is None else roots:
        steamapps = root / "steamapps"
        if not steamapps.is_dir():
            continue
        for library in [steamapps, *parse_library_folders(steamapps / "libraryfolders.vdf")]:
            if library not in seen:
                seen.add(library)
                yield library


def parse_library_folders(vdf: Path) -> list[Path]:
    try:
        text = vdf.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.debug("Could not read %s: %s", vdf, e)
        return []
    return [Path(p) / "steamapps" for p in re.findall(r'"path"\s+"([^"]+)"', text)]


def read_install_dir(acf: Path) -> str | None:
    try:
        text = acf.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.debug("Could not read %s: %s", acf, e)
        return None
    m = re.search(r'"installdir"\s+"([^"]+)"', text, re.IGNORECASE)
    return m.group(1) if m else None


def find_game_folder(libraries: Iterable[Path] | None = None) -> Path | None:
    """Locate the New Vegas installation folder via Steam ACF manifests.

    Stops at the first library holding a manifest for either edition.
    """
    for library in iter_libraries() if libraries is None else libraries:
        for app_id in config.STEAM_APP_IDS:
            install_dir = read_install_dir(library / f"appmanifest_{app_id}.acf")
            if not install_dir:
                continue
            candidate = library / "common" / install_dir
            if candidate.is_dir():
                logger.debug("Found game folder %s in %s", candidate, library)
                return candidate
    return None
