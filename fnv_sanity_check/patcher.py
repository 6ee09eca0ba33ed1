"""4GB patch: download, install, deploy and run the patcher through the host."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import cast

from packaging.version import InvalidVersion, Version

from fnv_sanity_check import config
from fnv_sanity_check.findings import Notification
from fnv_sanity_check.host import PATCH_PIPELINE, GameSnapshot, Host, ModFile, PatchHost, supports

logger = logging.getLogger(__name__)

MAIN_FILE_CATEGORY = 1
_PROMPT = "any key"
_LOG_PREFIX = "[4GB Patch Installer]"


class PatchInstallError(Exception):
    pass


def patch_mod_id(store: str | None) -> int:
    return config.PATCH_4GB_MOD_ID_EPIC if store == "epic" else config.PATCH_4GB_MOD_ID


def manual_download_url(mod_id: int) -> str:
    return config.NEXUS_MOD_PAGE.format(mod_id=mod_id) + "?tab=files"


def _version_key(file: ModFile) -> Version:
    try:
        return Version(file.version)
    except InvalidVersion:
        return Version("0")


def newest_main_file(files: list[ModFile]) -> ModFile | None:
    main = [f for f in files if f.category_id == MAIN_FILE_CATEGORY]
    if not main:
        return None
    return max(main, key=_version_key)


def find_patcher_executable(install_path: Path) -> Path | None:
    try:
        names = {p.name for p in install_path.iterdir()}
    except OSError as e:
        logger.error("Could not list %s: %s", install_path, e)
        return None
    for exe in config.PATCH_4GB_EXECUTABLES:
        if exe in names:
            return install_path / exe
    return None


async def download_and_install_4gb_patch(
    host: Host, snapshot: GameSnapshot, installer_timeout: float | None = None
) -> None:
    if not snapshot.discovery_path:
        logger.error("Could not find game path for 4GB patch download")
        return
    mod_id = patch_mod_id(snapshot.store)
    fallback_url = manual_download_url(mod_id)

    if not supports(host, *PATCH_PIPELINE):
        logger.error("Host does not support automatic 4GB patch download")
        host.open_url(fallback_url)
        return
    pipeline = cast(PatchHost, host)

    try:
        if supports(pipeline, "ensure_logged_in"):
            await pipeline.ensure_logged_in()
        files = await pipeline.get_mod_files(config.GAME_ID, mod_id)
        file = newest_main_file(files)
        if file is None:
            raise PatchInstallError("No 4GB patch main file found")

        nxm_url = f"nxm://{config.GAME_ID}/mods/{mod_id}/files/{file.file_id}"
        download_id = pipeline.find_download(config.GAME_ID, mod_id, file.file_id)
        if download_id is None:
            download_id = await pipeline.start_download(
                nxm_url, {"game": config.GAME_ID, "name": "4GB Patch"}
            )

        existing = pipeline.get_mod(config.GAME_ID, mod_id)
        if (
            existing is not None
            and existing.state == "installed"
            and existing.attributes.get("fileId") == file.file_id
        ):
            installed_id = existing.id
        else:
            installed_id = await pipeline.start_install(download_id)

        profile_id = pipeline.last_active_profile(config.GAME_ID) or snapshot.profile_id
        await pipeline.set_mods_enabled(profile_id, [installed_id], True)
        await pipeline.emit_and_await("deploy-single-mod", config.GAME_ID, installed_id)
    except Exception as e:
        logger.error("Failed to download patch: %s", e)
        pipeline.open_url(fallback_url)
        return

    await run_patch_installer(pipeline, snapshot, installed_id, installer_timeout)


async def run_patch_installer(
    host: PatchHost,
    snapshot: GameSnapshot,
    mod_id: str,
    timeout: float | None = None,
) -> bool:
    install_path = host.mod_install_path(config.GAME_ID, mod_id)
    if not install_path:
        logger.error("Could not find installation path for 4GB patch mod %s", mod_id)
        _install_failed(host, snapshot)
        return False
    patcher = find_patcher_executable(Path(install_path))
    if patcher is None:
        logger.error("Could not find 4GB patch executable")
        _install_failed(host, snapshot)
        return False

    try:
        await asyncio.wait_for(_run_installer(patcher, snapshot.discovery_path), timeout)
    except (OSError, PatchInstallError, asyncio.TimeoutError) as e:
        logger.error("Failed to run 4GB patch installer: %s", str(e) or "timed out")
        _install_failed(host)
        return False

    host.send_notification(Notification(
        id=None, type="success",
        message="4GB patch installed successfully", display_ms=3000,
    ))
    return True


def _install_failed(host: Host, snapshot: GameSnapshot | None = None) -> None:
    host.send_notification(Notification(
        id=None, type="error",
        message="Failed to install 4GB patch", display_ms=5000,
    ))
    # Without an installer on disk the user has to run it by hand
    if snapshot is not None:
        host.open_url(manual_download_url(patch_mod_id(snapshot.store)))


async def _pump_stdout(proc: asyncio.subprocess.Process) -> None:
    assert proc.stdout is not None and proc.stdin is not None
    # Prompts usually come without a trailing newline, so read chunks
    while chunk := await proc.stdout.read(4096):
        lines = [l.strip() for l in chunk.decode(errors="replace").splitlines()]
        lines = [l for l in lines if l]
        for line in lines:
            logger.info("%s %s", _LOG_PREFIX, line)
        if any(_PROMPT in l.lower() for l in lines):
            try:
                proc.stdin.write(b"\n")
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.debug("Installer closed its input before the keypress: %s", e)


async def _pump_stderr(proc: asyncio.subprocess.Process) -> None:
    assert proc.stderr is not None
    async for raw in proc.stderr:
        line = raw.decode(errors="replace").strip()
        if line:
            logger.warning("%s %s", _LOG_PREFIX, line)


async def _run_installer(patcher: Path, cwd: Path | None) -> None:
    proc = await asyncio.create_subprocess_exec(
        str(patcher),
        cwd=str(cwd) if cwd else None,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        await asyncio.gather(_pump_stdout(proc), _pump_stderr(proc))
        code = await proc.wait()
    finally:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
    if code != 0:
        raise PatchInstallError(f"4GB patch installer exited with code {code}")
