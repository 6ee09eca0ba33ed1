"""Fallout: New Vegas sanity checks."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from fnv_sanity_check import config, overrides, patcher, probes, registry
from fnv_sanity_check.config import Settings
from fnv_sanity_check.findings import (
    Description,
    DialogButton,
    Finding,
    Notification,
    NotificationAction,
    Severity,
)
from fnv_sanity_check.host import GameSnapshot, Host, supports
from fnv_sanity_check.registry import RegistryStore, WinRegStore
from fnv_sanity_check.runner import DiagnosticRunner

logger = logging.getLogger(__name__)

TEST_AMD_DRIVER = "fnvsanitycheck-test-amd-driver"
TEST_DISABLE_ASLR = "fnvsanitycheck-test-disable-aslr"
TEST_EXECUTABLE = "fnvsanitycheck-test-executable"
TEST_TRANSLATION_PLUGIN = "fnvsanitycheck-test-translation-plugin"
TEST_LEGACY_NVSE = "fnvsanitycheck-test-legacy-nvse"

REDEPLOY_NOTIFICATION_ID = "sanitycheck-fnvoverridedeploy"


# ---------------------------------------------------------------------------
# Finding texts
# ---------------------------------------------------------------------------

_ASLR_TEXT = (
    "Base Address Randomization is a security feature in Windows that allows a program's "
    "starting address to be randomized, which will crash the game when using NVSE plugins "
    "or the 4GB Patch.<br/><br/>While the feature should be disabled by default, it is "
    "currently enabled on your system.<br/><br/>"
    "It can be disabled automatically by modifying the necessary registry keys. "
    "A restart is required afterwards.<br/><br/>"
    "Alternatively you can disable it manually:<br/><br/>"
    "[list]"
    "[*] Open [b]Windows Security[/b] from your Start Menu."
    "[*] Click on [b]App & browser control[/b] in the left sidebar."
    "[*] Click on [b]Exploit protection settings[/b] under [b]Exploit protection[/b]."
    "[*] Ensure [b]Force randomization for images (Mandatory ASLR)[/b] is set to "
    "[b]Use default (Off)[/b]."
    "[/list]"
)

_AMD_DRIVER_TEXT = (
    "The GPU driver versions from [b]24.1.1[/b] up to [b]24.5.1[/b] may fail to compile "
    "shaders and [b]crash the game[/b]. The issue is stated on the official AMD website "
    "[url=https://www.amd.com/en/resources/support-articles/release-notes/RN-RAD-WIN-24-4-1.html]"
    "here[/url].<br/><br/>Make sure your driver version is updated."
)

_EXECUTABLE_TEXT = (
    "The game executable hasn't been patched with the 4GB Patcher. It won't load xNVSE and "
    "will be limited to 2GB of RAM.<br/><br/>"
    "The 4GB Patcher can be downloaded, installed and run automatically.<br/><br/>"
    "Alternatively, you can download and install the patch according to your platform "
    "from the links below:<br/><br/>"
    f"[url={config.NEXUS_MOD_PAGE.format(mod_id=config.PATCH_4GB_MOD_ID)}]Steam/GOG Patcher[/url]"
    "<br/><br/>"
    f"[url={config.NEXUS_MOD_PAGE.format(mod_id=config.PATCH_4GB_MOD_ID_EPIC)}]Epic Games Patcher[/url]"
    "<br/><br/>After patching the game you should only launch the game from the game "
    "executable and not from New Vegas Script Extender, to avoid loading the script "
    "extender twice."
)

_TRANSLATION_TEXT = (
    f"{config.TRANSLATION_PLUGIN} was found in the data folder.<br/><br/>"
    "This translation plugin directly edits thousands of records to change the language, "
    "which will cause many incompatibilities with most mods.<br/><br/>"
    "It is recommended to delete it."
)

_LEGACY_NVSE_TEXT = (
    "You are using an old legacy version of NVSE hosted on the silverlock website, "
    "which might cause issues with current plugin mods.<br/><br/>"
    f"A newer version of NVSE can be found [url={config.NVSE_PAGE}]here[/url]."
)

_REDEPLOY_TEXT = (
    ".override files were added automatically for all BSA files in the staging folder.<br/>"
    "Redeployment of mods is necessary to ensure the override files are added.<br/><br/>"
    "BSA files can be made to override previous BSA files like newer Bethesda titles by "
    "creating an empty file with the same name as the BSA file and the extension "
    ".override. More information "
    "[url=https://geckwiki.com/index.php?title=BSA_Files]here[/url].<br/><br/>"
    "This behavior requires the "
    f"[url={config.NEXUS_MOD_PAGE.format(mod_id=config.JIP_LN_NVSE_MOD_ID)}]JIP LN NVSE[/url] "
    "plugin to work as expected."
)


# ---------------------------------------------------------------------------
# Checker
# ---------------------------------------------------------------------------

class SanityChecker:
    """
    Probes, remediations and lifecycle handlers for one host.

    Every probe takes the GameSnapshot of the event that triggered it and
    returns None unless New Vegas is the managed game and a problem was found.
    """

    def __init__(
        self,
        host: Host,
        store: RegistryStore | None = None,
        settings: Settings | None = None,
    ):
        self.host = host
        self.store = store if store is not None else WinRegStore()
        self.settings = settings or Settings.from_env()

    @staticmethod
    def _is_target(snapshot: GameSnapshot) -> bool:
        return snapshot.game_id == config.GAME_ID

    def build_runner(self) -> DiagnosticRunner:
        runner = DiagnosticRunner()
        event = config.GAMEMODE_ACTIVATED
        runner.add(TEST_AMD_DRIVER, event, self.test_amd_driver)
        runner.add(TEST_DISABLE_ASLR, event, self.test_aslr)
        runner.add(TEST_EXECUTABLE, event, self.test_executable)
        runner.add(TEST_TRANSLATION_PLUGIN, event, self.test_translation_plugin)
        runner.add(TEST_LEGACY_NVSE, event, self.test_legacy_nvse)
        return runner

    # -- registry -----------------------------------------------------------

    async def is_aslr_forced(self) -> bool:
        return await asyncio.to_thread(registry.is_aslr_forced, self.store)

    async def test_aslr(self, snapshot: GameSnapshot) -> Finding | None:
        if not self._is_target(snapshot) or not await self.is_aslr_forced():
            return None

        async def fix() -> None:
            ok = await asyncio.to_thread(registry.disable_aslr, self.store)
            if not ok:
                self._notify_error("Failed to disable Base Address Randomization")

        async def recheck() -> bool:
            return not await self.is_aslr_forced()

        return Finding(
            severity=Severity.WARNING,
            description=Description("Base Address Randomization is enabled", _ASLR_TEXT),
            automatic_fix=fix,
            on_recheck=recheck,
        )

    async def test_amd_driver(self, snapshot: GameSnapshot) -> Finding | None:
        if not self._is_target(snapshot):
            return None
        if not await asyncio.to_thread(registry.has_outdated_amd_driver, self.store):
            return None
        return Finding(
            severity=Severity.WARNING,
            description=Description("Outdated AMD GPU Driver detected", _AMD_DRIVER_TEXT),
        )

    # -- executables --------------------------------------------------------

    async def is_executable_patched(self, snapshot: GameSnapshot) -> bool:
        if not snapshot.discovery_path:
            return False
        exe = snapshot.discovery_path / config.FNV_EXECUTABLE
        return await asyncio.to_thread(
            probes.is_known_variant, exe, probes.PATCHED_EXECUTABLE_HASHES
        )

    async def test_executable(self, snapshot: GameSnapshot) -> Finding | None:
        if not self._is_target(snapshot) or not snapshot.discovery_path:
            return None
        exe = snapshot.discovery_path / config.FNV_EXECUTABLE
        digest = await asyncio.to_thread(probes.read_digest, exe)
        if digest is None or digest in probes.PATCHED_EXECUTABLE_HASHES:
            return None

        async def fix() -> None:
            try:
                await patcher.download_and_install_4gb_patch(
                    self.host, snapshot, self.settings.installer_timeout
                )
            except Exception:
                logger.exception("4GB patch remediation failed")

        async def recheck() -> bool:
            return await self.is_executable_patched(snapshot)

        return Finding(
            severity=Severity.WARNING,
            description=Description("Unpatched game executable", _EXECUTABLE_TEXT),
            automatic_fix=fix,
            on_recheck=recheck,
        )

    async def is_legacy_nvse(self, snapshot: GameSnapshot) -> bool:
        if not snapshot.discovery_path:
            return False
        loader = snapshot.discovery_path / config.NVSE_EXECUTABLE
        if not probes.path_present(loader):
            return False
        digest = await asyncio.to_thread(probes.read_digest, loader)
        return digest == probes.LEGACY_NVSE_HASH

    async def test_legacy_nvse(self, snapshot: GameSnapshot) -> Finding | None:
        if not self._is_target(snapshot) or not await self.is_legacy_nvse(snapshot):
            return None

        async def fix() -> None:
            if not supports(self.host, "emit_and_await"):
                self.host.open_url(config.NVSE_PAGE)
                return
            try:
                await self.host.emit_and_await("download-script-extender", config.GAME_ID)
            except Exception as e:
                logger.error("Failed to download script extender: %s", e)
                self.host.open_url(config.NVSE_PAGE)

        async def recheck() -> bool:
            return not await self.is_legacy_nvse(snapshot)

        return Finding(
            severity=Severity.WARNING,
            description=Description("Old NVSE version detected", _LEGACY_NVSE_TEXT),
            automatic_fix=fix,
            on_recheck=recheck,
        )

    # -- translation plugin -------------------------------------------------

    @staticmethod
    def translation_plugin_path(snapshot: GameSnapshot) -> Path | None:
        if not snapshot.discovery_path:
            return None
        return snapshot.discovery_path / config.DATA_FOLDER / config.TRANSLATION_PLUGIN

    async def test_translation_plugin(self, snapshot: GameSnapshot) -> Finding | None:
        if not self._is_target(snapshot):
            return None
        plugin = self.translation_plugin_path(snapshot)
        if plugin is None or not probes.path_present(plugin):
            return None

        async def fix() -> None:
            try:
                plugin.unlink()
            except FileNotFoundError:
                return
            except OSError as e:
                logger.error("Failed to delete %s: %s", plugin, e)
                self._notify_error(f"Failed to delete {config.TRANSLATION_PLUGIN}")
                return
            logger.info("Translation plugin deleted successfully")

        async def recheck() -> bool:
            return not probes.path_present(plugin)

        return Finding(
            severity=Severity.WARNING,
            description=Description("Translation plugin present", _TRANSLATION_TEXT),
            automatic_fix=fix,
            on_recheck=recheck,
        )

    # -- lifecycle handlers -------------------------------------------------

    def is_jip_enabled(self, snapshot: GameSnapshot) -> bool:
        if not snapshot.profile_id:
            return False
        mod = self.host.get_mod(config.GAME_ID, config.JIP_LN_NVSE_MOD_ID)
        if mod is None:
            return False
        return self.host.is_mod_enabled(snapshot.profile_id, mod.id)

    async def on_gamemode_activated(self, game_id: str) -> None:
        if game_id != config.GAME_ID:
            return
        snapshot = self.host.snapshot()
        try:
            await self.automatic_override_creation(snapshot)
            await self.ensure_geck_config(snapshot)
        except Exception:
            logger.exception("Game activation tasks failed")

    async def on_mod_enabled(self, profile_id: str, mod_id: str) -> None:
        snapshot = self.host.snapshot()
        if not self._is_target(snapshot) or snapshot.profile_id != profile_id:
            return
        try:
            await self.automatic_single_override_creation(snapshot, mod_id)
        except Exception:
            logger.exception("Override creation for %s failed", mod_id)

    async def automatic_override_creation(self, snapshot: GameSnapshot) -> bool:
        if not snapshot.staging_path or not self.is_jip_enabled(snapshot):
            return False
        created = await asyncio.to_thread(
            overrides.create_override_files, snapshot.staging_path
        )
        if created:
            if supports(self.host, "set_deployment_necessary"):
                self.host.set_deployment_necessary(config.GAME_ID, True)
            self._notify_redeploy()
        return created

    async def automatic_single_override_creation(
        self, snapshot: GameSnapshot, mod_id: str
    ) -> bool:
        if not snapshot.staging_path or not self.is_jip_enabled(snapshot):
            return False
        return await asyncio.to_thread(
            overrides.create_single_override_files, snapshot.staging_path / mod_id
        )

    # -- GECK ---------------------------------------------------------------

    def geck_config_path(self, snapshot: GameSnapshot) -> Path:
        documents = (
            snapshot.documents_path
            or self.settings.documents
            or config.default_documents_folder()
        )
        return documents / "My Games" / "FalloutNV" / config.GECK_CONFIG_NAME

    async def ensure_geck_config(self, snapshot: GameSnapshot) -> bool:
        """Write the default GECKCustom.ini if there is none. True when written."""
        path = self.geck_config_path(snapshot)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.stat()
            return False
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Unexpected error accessing %s: %s", path, e)
            self._notify_error("Failed to access GECK config file")
            return False

        try:
            with open(path, "x", encoding="utf-8", newline="") as f:
                f.write(config.GECK_CONFIG_CONTENT)
        except FileExistsError:
            return False
        except OSError as e:
            logger.error("Error writing %s: %s", path, e)
            self._notify_error("Failed to write GECK config file")
            return False
        logger.info("Created default %s", path)
        return True

    # -- notifications ------------------------------------------------------

    def _notify_error(self, message: str) -> None:
        self.host.send_notification(Notification(
            id=None, type="error", message=message, display_ms=5000,
        ))

    def _notify_redeploy(self) -> None:
        def more() -> None:
            self.host.show_dialog("info", "Redeployment required", _REDEPLOY_TEXT, [
                DialogButton("Deploy", self._deploy),
                DialogButton("Close"),
                DialogButton(
                    "Ignore",
                    lambda: self.host.suppress_notification(REDEPLOY_NOTIFICATION_ID),
                ),
            ])

        self.host.send_notification(Notification(
            id=REDEPLOY_NOTIFICATION_ID,
            type="warning",
            message="Redeployment required",
            allow_suppress=True,
            actions=[NotificationAction("More", more)],
        ))

    async def _deploy(self) -> Any:
        if not supports(self.host, "emit_and_await"):
            logger.warning("Host can't deploy mods on request")
            return None
        try:
            return await self.host.emit_and_await("deploy-mods")
        except Exception as e:
            logger.warning("Error deploying mods: %s", e)
            return None


def init(host: Host, store: RegistryStore | None = None, settings: Settings | None = None) -> SanityChecker:
    """Extension entry point: register the tests and lifecycle handlers."""
    checker = SanityChecker(host, store, settings)
    checker.build_runner().register(host)
    host.on(config.GAMEMODE_ACTIVATED, checker.on_gamemode_activated)
    host.on(config.MOD_ENABLED, checker.on_mod_enabled)
    return checker
