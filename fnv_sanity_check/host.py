"""
Contracts between the sanity checks and the mod manager hosting them.

A host must implement `Host`. The download/install/deploy pipeline is
optional: remediation code asks `supports()` at call time and degrades to
opening a web page when a capability is missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from fnv_sanity_check.findings import DialogButton, Finding, Notification

Probe = Callable[["GameSnapshot"], Awaitable[Optional[Finding]]]
EventHandler = Callable[..., Any]


@dataclass(frozen=True)
class GameSnapshot:
    """Host state captured once per triggering event."""
    game_id: str | None
    discovery_path: Path | None = None
    store: str | None = None  # 'steam', 'gog', 'epic', ...
    staging_path: Path | None = None
    profile_id: str | None = None
    documents_path: Path | None = None


@dataclass(frozen=True)
class ModFile:
    file_id: int
    version: str
    category_id: int
    name: str = ""


@dataclass(frozen=True)
class ModInfo:
    id: str
    state: str  # 'installed', 'downloaded', ...
    installation_path: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


class Host(Protocol):
    def register_test(self, name: str, event: str, probe: Probe) -> None: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def snapshot(self) -> GameSnapshot: ...

    def get_mod(self, game_id: str, mod_id: int | str) -> ModInfo | None: ...

    def is_mod_enabled(self, profile_id: str, mod_id: str) -> bool: ...

    def send_notification(self, notification: Notification) -> None: ...

    def show_dialog(
        self, kind: str, title: str, body: str, buttons: Sequence[DialogButton]
    ) -> None: ...

    def suppress_notification(self, notification_id: str) -> None: ...

    def open_url(self, url: str) -> None: ...


class DownloadPipeline(Protocol):
    async def ensure_logged_in(self) -> None: ...

    async def get_mod_files(self, game_id: str, mod_id: int) -> list[ModFile]: ...

    def find_download(self, game_id: str, mod_id: int, file_id: int) -> str | None: ...

    async def start_download(self, url: str, info: dict[str, Any]) -> str: ...

    async def start_install(self, download_id: str) -> str: ...

    async def set_mods_enabled(
        self, profile_id: str, mod_ids: Sequence[str], enabled: bool
    ) -> None: ...

    async def emit_and_await(self, event: str, *args: Any) -> Any: ...

    def mod_install_path(self, game_id: str, mod_id: str) -> Path | None: ...

    def last_active_profile(self, game_id: str) -> str | None: ...

    def set_deployment_necessary(self, game_id: str, necessary: bool) -> None: ...


class PatchHost(Host, DownloadPipeline, Protocol):
    """A host that can fetch, install and deploy the 4GB patch on its own."""


PATCH_PIPELINE = (
    "get_mod_files",
    "find_download",
    "start_download",
    "start_install",
    "set_mods_enabled",
    "emit_and_await",
    "mod_install_path",
    "last_active_profile",
)


def supports(host: object, *capabilities: str) -> bool:
    """True when the host exposes every named capability as a callable."""
    return all(callable(getattr(host, name, None)) for name in capabilities)
