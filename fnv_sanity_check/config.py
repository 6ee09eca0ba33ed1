"""Game constants and runtime settings."""

from __future__ import annotations

import logging
import ntpath
import os
import platform
from dataclasses import dataclass
from pathlib import Path

from fnv_sanity_check.registry import RegistryStore, WinRegStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Game metadata
# ---------------------------------------------------------------------------

GAME_ID = "falloutnv"
GAME_NAME = "Fallout: New Vegas"

FNV_EXECUTABLE = "FalloutNV.exe"
NVSE_EXECUTABLE = "nvse_loader.exe"
TRANSLATION_PLUGIN = "FalloutNV_lang.esp"
DATA_FOLDER = "Data"

# Base game and PCR edition
STEAM_APP_IDS: tuple[str, ...] = ("22380", "22490")

JIP_LN_NVSE_MOD_ID = 58277
PATCH_4GB_MOD_ID = 62552
PATCH_4GB_MOD_ID_EPIC = 81281
PATCH_4GB_EXECUTABLES = ("FNVpatch.exe", "FalloutNVpatch.exe", "Patcher.exe")

NEXUS_MOD_PAGE = "https://www.nexusmods.com/newvegas/mods/{mod_id}"
NVSE_PAGE = "https://www.nexusmods.com/newvegas/mods/67883"

GAMEMODE_ACTIVATED = "gamemode-activated"
MOD_ENABLED = "mod-enabled"

GECK_CONFIG_NAME = "GECKCustom.ini"
# No whitespace around "=" and no trailing newline
GECK_CONFIG_CONTENT = (
    "[General]\n"
    "bUseMultibounds=0\n"
    "bAllowMultipleMasterLoads=1\n"
    "bAllowMultipleEditors=1\n"
    "[Localization]\n"
    "iExtendedTopicLength=255\n"
    "bAllowExtendedText=1"
)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass
class Settings:
    debug: bool = False
    # Seconds to wait for the patch installer; None waits forever
    installer_timeout: float | None = None
    game_folder: Path | None = None
    documents: Path | None = None

    @classmethod
    def from_env(cls) -> Settings:
        timeout = os.environ.get("FNVSC_INSTALLER_TIMEOUT")
        game_folder = os.environ.get("FNVSC_GAME_FOLDER")
        documents = os.environ.get("FNVSC_DOCUMENTS")
        try:
            installer_timeout = float(timeout) if timeout else None
        except ValueError:
            installer_timeout = None
        return cls(
            debug=os.environ.get("FNVSC_DEBUG") == "1",
            installer_timeout=installer_timeout,
            game_folder=Path(game_folder) if game_folder else None,
            documents=Path(documents) if documents else None,
        )


SHELL_FOLDERS_KEY = r"Software\Microsoft\Windows\CurrentVersion\Explorer\User Shell Folders"


def default_documents_folder(store: RegistryStore | None = None) -> Path:
    """
    The user's Documents folder. On Windows this follows known-folder
    redirection (OneDrive, moved libraries) through the "Personal" shell folder.
    """
    if platform.system() == "Windows":
        store = store or WinRegStore()
        try:
            personal = store.read_value("HKEY_CURRENT_USER", SHELL_FOLDERS_KEY, "Personal")
        except OSError as e:
            logger.debug("Documents shell folder not in registry: %s", e)
        else:
            # REG_EXPAND_SZ, usually "%USERPROFILE%\Documents"
            return Path(ntpath.expandvars(personal))
    return Path.home() / "Documents"


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="[FNVSC] %(levelname)s %(name)s: %(message)s",
    )
