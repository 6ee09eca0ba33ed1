"""Standalone window hosting the New Vegas sanity checks."""

from __future__ import annotations

import asyncio
import inspect
import logging
import queue
import re
import threading
import webbrowser
from pathlib import Path
from tkinter import filedialog
from typing import Any, Sequence

import customtkinter as ctk
import pyperclip

from fnv_sanity_check import config, steam
from fnv_sanity_check.checker import SanityChecker, init
from fnv_sanity_check.config import Settings, configure_logging
from fnv_sanity_check.findings import DialogButton, Finding, Notification
from fnv_sanity_check.host import EventHandler, GameSnapshot, ModInfo, Probe

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Catppuccin Mocha palette
# ---------------------------------------------------------------------------
COLORS = {
    "bg": "#1e1e2e",
    "bg_alt": "#181825",
    "surface": "#313244",
    "surface_alt": "#45475a",
    "fg": "#cdd6f4",
    "fg_muted": "#a6adc8",
    "accent": "#cba6f7",  # Mauve
    "accent_hover": "#b490e3",
    "green": "#a6e3a1",
    "yellow": "#f9e2af",
    "red": "#f38ba8",
    "blue": "#89b4fa",
}

STATUS_COLORS = {
    "ok": COLORS["green"],
    "success": COLORS["green"],
    "warning": COLORS["yellow"],
    "error": COLORS["red"],
    "info": COLORS["blue"],
}

STATUS_ICONS = {"ok": "OK", "success": "OK", "warning": "!", "error": "X", "info": "i"}

_SENTINEL = object()


def bbcode_to_text(markup: str) -> str:
    """Flatten the BBCode used in finding descriptions for a plain label."""
    text = markup.replace("<br/>", "\n")
    text = re.sub(r"\[url=([^\]]+)\](.*?)\[/url\]", r"\2 (\1)", text)
    text = text.replace("[*]", "\n  - ")
    text = re.sub(r"\[/?(b|i|list|br)\]", "", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


class StandaloneHost:
    """
    Host implementation without a mod manager behind it: no profiles, no
    staging folder and no download pipeline. UI traffic goes through `events`
    so worker threads never touch widgets.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.game_folder: Path | None = settings.game_folder
        self.store: str | None = None
        self.tests: dict[str, tuple[str, Probe]] = {}
        self.handlers: dict[str, list[EventHandler]] = {}
        self.suppressed: set[str] = set()
        self.events: queue.Queue = queue.Queue()

    def register_test(self, name: str, event: str, probe: Probe) -> None:
        self.tests[name] = (event, probe)

    def on(self, event: str, handler: EventHandler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def snapshot(self) -> GameSnapshot:
        return GameSnapshot(
            game_id=config.GAME_ID,
            discovery_path=self.game_folder,
            store=self.store,
            documents_path=self.settings.documents,
        )

    def get_mod(self, game_id: str, mod_id: int | str) -> ModInfo | None:
        return None

    def is_mod_enabled(self, profile_id: str, mod_id: str) -> bool:
        return False

    def send_notification(self, notification: Notification) -> None:
        if notification.id and notification.id in self.suppressed:
            return
        self.events.put(("notification", notification))

    def show_dialog(
        self, kind: str, title: str, body: str, buttons: Sequence[DialogButton]
    ) -> None:
        self.events.put(("dialog", (kind, title, body, list(buttons))))

    def suppress_notification(self, notification_id: str) -> None:
        self.suppressed.add(notification_id)

    def open_url(self, url: str) -> None:
        logger.info("Opening %s", url)
        webbrowser.open(url)

    async def emit(self, event: str, *args: Any) -> None:
        for handler in self.handlers.get(event, []):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    async def run_tests(self, event: str) -> list[tuple[str, Finding | None]]:
        snapshot = self.snapshot()
        names = [name for name, (ev, _) in self.tests.items() if ev == event]
        results = await asyncio.gather(*(self.tests[n][1](snapshot) for n in names))
        return list(zip(names, results))


def invoke(action: Any) -> None:
    """Run a button action; awaitables run to completion on a worker thread."""
    if action is None:
        return
    result = action()
    if inspect.isawaitable(result):
        async def _await() -> None:
            await result
        threading.Thread(target=asyncio.run, args=(_await(),), daemon=True).start()


# ---------------------------------------------------------------------------
# Themed dialogs
# ---------------------------------------------------------------------------


def _show_dialog(
    parent: ctk.CTk, title: str, message: str, buttons: Sequence[tuple[str, Any]]
) -> Any:
    result: dict[str, Any] = {}

    dialog = ctk.CTkToplevel(parent)
    dialog.title(title)
    dialog.resizable(False, False)
    dialog.configure(fg_color=COLORS["bg"])

    w, h = 520, 240
    parent.update_idletasks()
    px = parent.winfo_rootx() + (parent.winfo_width() // 2) - (w // 2)
    py = parent.winfo_rooty() + (parent.winfo_height() // 2) - (h // 2)
    dialog.geometry(f"{w}x{h}+{px}+{py}")
    dialog.grab_set()

    ctk.CTkLabel(
        dialog,
        text=message,
        font=("Segoe UI", 12),
        wraplength=480,
        justify="left",
        text_color=COLORS["fg"],
    ).pack(padx=20, pady=(20, 12), anchor="w")

    btn_row = ctk.CTkFrame(dialog, fg_color="transparent")
    btn_row.pack(pady=(0, 16))

    for i, (label, value) in enumerate(buttons):
        def _choose(v=value):
            result["v"] = v
            dialog.destroy()

        primary = i == 0
        ctk.CTkButton(
            btn_row,
            text=label,
            width=100,
            command=_choose,
            fg_color=COLORS["accent"] if primary else COLORS["surface"],
            hover_color=COLORS["accent_hover"] if primary else COLORS["surface_alt"],
            text_color=COLORS["bg"] if primary else COLORS["fg"],
            font=("Segoe UI", 12, "bold") if primary else ("Segoe UI", 12),
        ).pack(side="left", padx=6)

    dialog.wait_window()
    return result.get("v")


def _ask_yes_no(parent: ctk.CTk, title: str, message: str) -> bool:
    return bool(_show_dialog(parent, title, message, [("Yes", True), ("No", False)]))


# ---------------------------------------------------------------------------
# Main app
# ---------------------------------------------------------------------------


class SanityCheckApp:
    def __init__(self, settings: Settings | None = None) -> None:
        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")

        self.settings = settings or Settings.from_env()
        self.host = StandaloneHost(self.settings)
        self.checker: SanityChecker = init(self.host, settings=self.settings)

        self.root = ctk.CTk()
        self.root.title("New Vegas Sanity Check")
        self.root.geometry("740x660")
        self.root.resizable(True, True)
        self.root.configure(fg_color=COLORS["bg"])

        self._check_thread: threading.Thread | None = None
        self._result_queue: queue.Queue = queue.Queue()
        self._cards: dict[str, ctk.CTkFrame] = {}
        self._report: dict[str, Finding] = {}

        self._build_ui()
        self._locate_game()
        self.root.after(100, self._poll_host_events)

    def _build_ui(self) -> None:
        main = ctk.CTkFrame(self.root, fg_color=COLORS["bg"])
        main.pack(fill="both", expand=True, padx=20, pady=20)

        header = ctk.CTkFrame(main, fg_color="transparent")
        header.pack(fill="x", pady=(0, 12))

        ctk.CTkLabel(
            header,
            text="New Vegas Sanity Check",
            font=("Segoe UI", 18, "bold"),
            text_color=COLORS["fg"],
        ).pack(side="left")

        self._refresh_btn = ctk.CTkButton(
            header,
            text="Refresh",
            command=self._run_checks,
            width=90,
            fg_color=COLORS["surface"],
            hover_color=COLORS["surface_alt"],
            text_color=COLORS["fg"],
        )
        self._refresh_btn.pack(side="right", padx=(8, 0))

        ctk.CTkButton(
            header,
            text="Copy report",
            command=self._copy_report,
            width=110,
            fg_color=COLORS["surface"],
            hover_color=COLORS["surface_alt"],
            text_color=COLORS["fg"],
        ).pack(side="right")

        folder_row = ctk.CTkFrame(main, fg_color="transparent")
        folder_row.pack(fill="x", pady=(0, 8))

        ctk.CTkButton(
            folder_row,
            text="Set Game Folder",
            command=self._pick_game_folder,
            width=140,
            fg_color=COLORS["surface"],
            hover_color=COLORS["accent"],
            text_color=COLORS["fg"],
        ).pack(side="left", padx=(0, 10))

        self._game_folder_label = ctk.CTkLabel(
            folder_row,
            text="Scanning...",
            font=("Segoe UI", 11),
            text_color=COLORS["fg_muted"],
            anchor="w",
        )
        self._game_folder_label.pack(side="left", fill="x", expand=True)

        self._progress = ctk.CTkProgressBar(
            main,
            mode="indeterminate",
            height=4,
            fg_color=COLORS["surface"],
            progress_color=COLORS["accent"],
        )
        self._progress.pack(fill="x", pady=(0, 6))
        self._progress.pack_forget()

        self.results_frame = ctk.CTkScrollableFrame(
            main,
            corner_radius=8,
            fg_color=COLORS["bg_alt"],
            scrollbar_button_color=COLORS["surface"],
            scrollbar_button_hover_color=COLORS["accent"],
        )
        self.results_frame.pack(fill="both", expand=True, pady=(0, 10))

        ctk.CTkButton(
            main,
            text="Close",
            command=self.root.destroy,
            width=100,
            fg_color=COLORS["surface"],
            hover_color=COLORS["red"],
            text_color=COLORS["fg"],
        ).pack(pady=(5, 0))

    # -------------------------------------------------------------------------

    def _locate_game(self) -> None:
        folder = self.host.game_folder
        if folder is None:
            folder = steam.find_game_folder()
            if folder is not None:
                self.host.store = "steam"

        if folder:
            self._set_game_folder(folder)
        else:
            self._game_folder_label.configure(
                text="Not found automatically", text_color=COLORS["yellow"]
            )
            if _ask_yes_no(
                self.root,
                "Game Not Found",
                f"{config.GAME_NAME} could not be found automatically.\n"
                "Would you like to locate the game folder manually?",
            ):
                self._pick_game_folder()
                return
        self._run_checks()

    def _set_game_folder(self, folder: Path) -> None:
        self.host.game_folder = folder
        self._game_folder_label.configure(text=str(folder), text_color=COLORS["fg"])

    def _pick_game_folder(self) -> None:
        folder = filedialog.askdirectory(
            title=f"Select {config.GAME_NAME} installation folder",
            parent=self.root,
        )
        if folder:
            self.host.store = None
            self._set_game_folder(Path(folder))
            self._run_checks()

    # -------------------------------------------------------------------------

    def _run_checks(self) -> None:
        self._check_thread = None
        while not self._result_queue.empty():
            try:
                self._result_queue.get_nowait()
            except queue.Empty:
                break

        for widget in self.results_frame.winfo_children():
            widget.destroy()
        self._cards.clear()
        self._report.clear()

        self._progress.pack(fill="x", pady=(0, 6))
        self._progress.start()
        self._refresh_btn.configure(state="disabled")

        thread = threading.Thread(
            target=self._check_worker,
            args=(self._result_queue,),
            daemon=True,
        )
        self._check_thread = thread
        thread.start()
        self.root.after(50, lambda: self._poll_results(thread))

    def _check_worker(self, q: queue.Queue) -> None:
        async def run() -> None:
            await self.host.emit(config.GAMEMODE_ACTIVATED, config.GAME_ID)
            for name, finding in await self.host.run_tests(config.GAMEMODE_ACTIVATED):
                q.put((name, finding))

        try:
            asyncio.run(run())
        except Exception:
            logger.exception("Running checks failed")
        q.put(_SENTINEL)

    def _poll_results(self, thread: threading.Thread) -> None:
        if thread is not self._check_thread:
            return
        try:
            while True:
                item = self._result_queue.get_nowait()
                if item is _SENTINEL:
                    self._progress.stop()
                    self._progress.pack_forget()
                    self._refresh_btn.configure(state="normal")
                    if not self._report:
                        self._create_ok_widget()
                    return
                name, finding = item
                if finding is not None and name not in self.host.suppressed:
                    self._report[name] = finding
                    self._create_result_widget(name, finding)
        except queue.Empty:
            pass
        self.root.after(50, lambda: self._poll_results(thread))

    def _poll_host_events(self) -> None:
        try:
            while True:
                kind, payload = self.host.events.get_nowait()
                if kind == "notification":
                    self._show_notification(payload)
                elif kind == "dialog":
                    _, title, body, buttons = payload
                    choice = _show_dialog(
                        self.root, title, bbcode_to_text(body),
                        [(b.label, b.action) for b in buttons],
                    )
                    invoke(choice)
                elif kind == "recheck":
                    name, resolved = payload
                    self._on_rechecked(name, resolved)
        except queue.Empty:
            pass
        self.root.after(100, self._poll_host_events)

    # -------------------------------------------------------------------------

    def _apply_fix(self, name: str, finding: Finding) -> None:
        async def fix_and_recheck() -> None:
            if finding.automatic_fix is not None:
                await finding.automatic_fix()
            resolved = await finding.on_recheck() if finding.on_recheck else True
            self.host.events.put(("recheck", (name, resolved)))

        def worker() -> None:
            try:
                asyncio.run(fix_and_recheck())
            except Exception:
                logger.exception("Fix for %s failed", name)

        threading.Thread(target=worker, daemon=True).start()

    def _recheck(self, name: str, finding: Finding) -> None:
        if finding.on_recheck is None:
            return
        recheck = finding.on_recheck

        def worker() -> None:
            try:
                resolved = asyncio.run(recheck())
            except Exception:
                logger.exception("Recheck for %s failed", name)
                return
            self.host.events.put(("recheck", (name, resolved)))

        threading.Thread(target=worker, daemon=True).start()

    def _ignore(self, name: str) -> None:
        self.host.suppress_notification(name)
        self._drop_card(name)

    def _on_rechecked(self, name: str, resolved: bool) -> None:
        if resolved:
            self._drop_card(name)
            self._show_notification(Notification(
                id=None, type="success", message="Issue resolved", display_ms=3000,
            ))

    def _drop_card(self, name: str) -> None:
        card = self._cards.pop(name, None)
        self._report.pop(name, None)
        if card is not None:
            card.destroy()

    def _copy_report(self) -> None:
        lines = [f"{config.GAME_NAME} sanity check", f"Game folder: {self.host.game_folder}"]
        for name, finding in self._report.items():
            lines.append(f"[{finding.severity.value}] {finding.description.short} ({name})")
        if not self._report:
            lines.append("No issues found")
        try:
            pyperclip.copy("\n".join(lines))
        except pyperclip.PyperclipException as e:
            logger.warning("Could not copy report: %s", e)

    # -------------------------------------------------------------------------

    def _show_notification(self, notification: Notification) -> None:
        color = STATUS_COLORS.get(notification.type, COLORS["blue"])
        toast = ctk.CTkFrame(self.results_frame, corner_radius=8, fg_color=COLORS["surface"])
        toast.pack(fill="x", padx=4, pady=4)
        row = ctk.CTkFrame(toast, fg_color="transparent")
        row.pack(fill="x", padx=12, pady=8)
        ctk.CTkLabel(
            row,
            text=notification.message,
            font=("Segoe UI", 12, "bold"),
            text_color=color,
        ).pack(side="left")
        for action in notification.actions:
            ctk.CTkButton(
                row,
                text=action.title,
                width=70,
                command=lambda a=action.action: invoke(a),
                fg_color=COLORS["surface_alt"],
                hover_color=COLORS["accent"],
                text_color=COLORS["fg"],
            ).pack(side="right", padx=(6, 0))
        if notification.display_ms:
            self.root.after(notification.display_ms, toast.destroy)

    def _create_ok_widget(self) -> None:
        card = ctk.CTkFrame(self.results_frame, corner_radius=8, fg_color=COLORS["surface"])
        card.pack(fill="x", padx=4, pady=4)
        ctk.CTkLabel(
            card,
            text="No issues found",
            font=("Segoe UI", 12, "bold"),
            text_color=COLORS["green"],
        ).pack(anchor="w", padx=12, pady=10)

    def _create_result_widget(self, name: str, finding: Finding) -> None:
        severity = finding.severity.value
        color = STATUS_COLORS.get(severity, COLORS["blue"])
        icon = STATUS_ICONS.get(severity, "i")

        card = ctk.CTkFrame(
            self.results_frame,
            corner_radius=8,
            fg_color=COLORS["surface"],
        )
        card.pack(fill="x", padx=4, pady=4)
        self._cards[name] = card

        hdr = ctk.CTkFrame(card, fg_color="transparent")
        hdr.pack(fill="x", padx=12, pady=(10, 4))

        ctk.CTkLabel(
            hdr,
            text=f" {icon} ",
            font=("Segoe UI", 10, "bold"),
            fg_color=color,
            corner_radius=4,
            text_color=COLORS["bg"],
        ).pack(side="left", padx=(0, 8))

        ctk.CTkLabel(
            hdr,
            text=finding.description.short,
            font=("Segoe UI", 12, "bold"),
            text_color=color,
        ).pack(side="left")

        ctk.CTkLabel(
            card,
            text=bbcode_to_text(finding.description.long),
            font=("Segoe UI", 11),
            wraplength=660,
            justify="left",
            text_color=COLORS["fg"],
        ).pack(anchor="w", padx=12, pady=(0, 6))

        buttons = ctk.CTkFrame(card, fg_color="transparent")
        buttons.pack(fill="x", padx=12, pady=(0, 10))

        if finding.fix_available:
            ctk.CTkButton(
                buttons,
                text="Fix",
                width=80,
                command=lambda: self._apply_fix(name, finding),
                fg_color=COLORS["accent"],
                hover_color=COLORS["accent_hover"],
                text_color=COLORS["bg"],
            ).pack(side="left", padx=(0, 6))
        if finding.on_recheck is not None:
            ctk.CTkButton(
                buttons,
                text="Recheck",
                width=80,
                command=lambda: self._recheck(name, finding),
                fg_color=COLORS["surface_alt"],
                hover_color=COLORS["accent"],
                text_color=COLORS["fg"],
            ).pack(side="left", padx=(0, 6))
        ctk.CTkButton(
            buttons,
            text="Ignore",
            width=80,
            command=lambda: self._ignore(name),
            fg_color=COLORS["bg_alt"],
            hover_color=COLORS["surface_alt"],
            text_color=COLORS["fg_muted"],
        ).pack(side="left")

    def run(self) -> None:
        self.root.mainloop()


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings)
    app = SanityCheckApp(settings)
    app.run()


if __name__ == "__main__":
    main()
