"""Shared fakes for the host and the registry."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import pytest

from fnv_sanity_check import config
from fnv_sanity_check.config import Settings
from fnv_sanity_check.findings import DialogButton, Notification
from fnv_sanity_check.host import GameSnapshot, ModFile, ModInfo


class FakeStore:
    def __init__(self, values: dict[tuple[str, str], Any] | None = None) -> None:
        self.values: dict[tuple[str, str], Any] = dict(values or {})
        self.writes: list[tuple[str, str, Any]] = []
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()

    def read_value(self, hive: str, key: str, name: str) -> Any:
        if name in self.fail_reads:
            raise PermissionError(f"access denied: {name}")
        try:
            return self.values[(key, name)]
        except KeyError:
            raise FileNotFoundError(name) from None

    def _write(self, key: str, name: str, value: Any) -> None:
        if name in self.fail_writes:
            raise PermissionError(f"access denied: {name}")
        self.values[(key, name)] = value
        self.writes.append((key, name, value))

    def write_dword(self, hive: str, key: str, name: str, value: int) -> None:
        self._write(key, name, value)

    def write_binary(self, hive: str, key: str, name: str, value: bytes) -> None:
        self._write(key, name, value)


class FakeHost:
    """Host without a download pipeline."""

    def __init__(self, snapshot: GameSnapshot) -> None:
        self._snapshot = snapshot
        self.tests: dict[str, tuple[str, Any]] = {}
        self.handlers: dict[str, list[Any]] = {}
        self.notifications: list[Notification] = []
        self.dialogs: list[tuple[str, str, str, list[DialogButton]]] = []
        self.suppressed: list[str] = []
        self.opened: list[str] = []
        self.mods: dict[int | str, ModInfo] = {}
        self.enabled: set[tuple[str, str]] = set()

    def register_test(self, name: str, event: str, probe: Any) -> None:
        self.tests[name] = (event, probe)

    def on(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def snapshot(self) -> GameSnapshot:
        return self._snapshot

    def get_mod(self, game_id: str, mod_id: int | str) -> ModInfo | None:
        return self.mods.get(mod_id)

    def is_mod_enabled(self, profile_id: str, mod_id: str) -> bool:
        return (profile_id, mod_id) in self.enabled

    def send_notification(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def show_dialog(
        self, kind: str, title: str, body: str, buttons: Sequence[DialogButton]
    ) -> None:
        self.dialogs.append((kind, title, body, list(buttons)))

    def suppress_notification(self, notification_id: str) -> None:
        self.suppressed.append(notification_id)

    def open_url(self, url: str) -> None:
        self.opened.append(url)


class PipelineHost(FakeHost):
    """FakeHost with the download/install/deploy pipeline."""

    def __init__(self, snapshot: GameSnapshot, files: list[ModFile]) -> None:
        super().__init__(snapshot)
        self.files = files
        self.calls: list[tuple[Any, ...]] = []
        self.install_path: Path | None = None
        self.fail_on: str | None = None
        self.deployment_necessary = False

    def _record(self, *call: Any) -> None:
        if self.fail_on == call[0]:
            raise RuntimeError(f"{call[0]} failed")
        self.calls.append(call)

    async def ensure_logged_in(self) -> None:
        self._record("ensure_logged_in")

    async def get_mod_files(self, game_id: str, mod_id: int) -> list[ModFile]:
        self._record("get_mod_files", game_id, mod_id)
        return self.files

    def find_download(self, game_id: str, mod_id: int, file_id: int) -> str | None:
        return None

    async def start_download(self, url: str, info: dict[str, Any]) -> str:
        self._record("start_download", url)
        return "dl-1"

    async def start_install(self, download_id: str) -> str:
        self._record("start_install", download_id)
        return "mod-1"

    async def set_mods_enabled(
        self, profile_id: str, mod_ids: Sequence[str], enabled: bool
    ) -> None:
        self._record("set_mods_enabled", profile_id, list(mod_ids), enabled)

    async def emit_and_await(self, event: str, *args: Any) -> Any:
        self._record("emit_and_await", event, *args)

    def mod_install_path(self, game_id: str, mod_id: str) -> Path | None:
        return self.install_path

    def last_active_profile(self, game_id: str) -> str | None:
        return "profile-1"

    def set_deployment_necessary(self, game_id: str, necessary: bool) -> None:
        self.deployment_necessary = necessary


@pytest.fixture
def game_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "Fallout New Vegas"
    (folder / config.DATA_FOLDER).mkdir(parents=True)
    return folder


@pytest.fixture
def snapshot(game_dir: Path, tmp_path: Path) -> GameSnapshot:
    staging = tmp_path / "staging"
    staging.mkdir()
    return GameSnapshot(
        game_id=config.GAME_ID,
        discovery_path=game_dir,
        store="steam",
        staging_path=staging,
        profile_id="profile-1",
        documents_path=tmp_path / "Documents",
    )


@pytest.fixture
def host(snapshot: GameSnapshot) -> FakeHost:
    return FakeHost(snapshot)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def settings() -> Settings:
    return Settings()
