# -*- coding: utf-8 -*-
"""Textual UI for NousGuard.

This file contains ONLY the UI: screens, modals, and the App wrapper.
Unlocking the key vault is the one-time presence check at startup; after
that the journal screens talk to the repository from ``AppServices``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen, Screen
from textual.widgets import (
    Button,
    Footer,
    Header,
    Input,
    Label,
    ListItem,
    ListView,
    Static,
    TabPane,
    TabbedContent,
    TextArea,
)

from nousguard.bootstrap import AppInitializer, AppServices, open_vault
from nousguard.config import load_config
from nousguard.errors import DecryptionFailed, InitializationFailed, NousGuardError
from nousguard.logic import JournalEntry

THEME_CSS_PATH = str(Path(__file__).with_name("theme.css"))


class EntryItem(ListItem):
    """List row bound to one journal entry."""

    def __init__(self, entry: JournalEntry) -> None:
        stamp = entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M")
        super().__init__(Label(f"{stamp}  {entry.title}", markup=False))
        self.entry = entry


# ---------------------------------------------------------------------------
# Modals
# ---------------------------------------------------------------------------

class EntryModal(ModalScreen[bool]):
    """View/edit one entry. Dismisses with True if the journal changed."""

    AUTO_DISMISS = False
    BINDINGS = [Binding("escape", "close", "Close")]

    def __init__(self, entry_id: int) -> None:
        super().__init__()
        self.entry_id = entry_id

    def compose(self) -> ComposeResult:
        yield Container(
            Static("ENTRY", classes="title"),
            Static("", id="meta", classes="hint"),
            Input(placeholder="title", id="etitle"),
            TextArea(id="econtent"),
            Horizontal(
                Button("Save", id="save", classes="-primary"),
                Button("Delete", id="delete"),
                Button("Close", id="close"),
            ),
            id="modal-card",
        )

    async def on_mount(self) -> None:
        try:
            entry = await self.app.services.repository.get_entry(self.entry_id)
        except DecryptionFailed:
            self.app.notify("Cannot decrypt this entry.", severity="error")
            self.dismiss(False)
            return
        if entry is None:
            self.app.notify("Entry not found", severity="warning")
            self.dismiss(True)
            return
        self.query_one("#meta", Static).update(f"Last saved: {entry.timestamp.astimezone():%Y-%m-%d %H:%M}")
        self.query_one("#etitle", Input).value = entry.title
        self.query_one("#econtent", TextArea).text = entry.content

    def action_close(self) -> None:
        self.dismiss(False)

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        bid = event.button.id or ""
        repo = self.app.services.repository
        if bid == "save":
            title = self.query_one("#etitle", Input).value.strip()
            content = self.query_one("#econtent", TextArea).text
            if not title or not content.strip():
                self.app.notify("Title and content required")
                return
            try:
                await repo.update_entry(self.entry_id, title, content)
            except (NousGuardError, ValueError) as exc:
                self.app.notify(str(exc), severity="error")
                return
            self.app.notify("Entry updated")
            self.dismiss(True)
        elif bid == "delete":
            await repo.delete_entry(self.entry_id)
            self.app.notify("Entry deleted")
            self.dismiss(True)
        elif bid == "close":
            self.dismiss(False)


# ---------------------------------------------------------------------------
# Screens
# ---------------------------------------------------------------------------

class UnlockScreen(Screen):
    """Passphrase prompt. Unlocks the key vault and opens the journal.

    ESC from here quits the app.
    """

    BINDINGS = [Binding("escape", "app.quit", "Quit")]

    def compose(self) -> ComposeResult:
        yield Header()
        yield Container(
            Static("UNLOCK JOURNAL", classes="title"),
            Static("The first unlock creates the key vault with this passphrase.", classes="hint"),
            Input(placeholder="passphrase", password=True, id="passphrase"),
            Horizontal(Button("Unlock", id="unlock", classes="-primary"), Button("Exit", id="exit")),
            Static("", id="status", classes="hint"),
            id="modal-card",
        )
        yield Footer()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        await self._unlock()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        bid = event.button.id or ""
        if bid == "unlock":
            await self._unlock()
        elif bid == "exit":
            self.app.exit()

    async def _unlock(self) -> None:
        field = self.query_one("#passphrase", Input)
        passphrase = field.value
        if not passphrase:
            self.app.notify("Passphrase required")
            return
        status = self.query_one("#status", Static)
        status.update("Unlocking...")

        cfg = self.app.journal_config
        initializer = AppInitializer(cfg, open_vault(cfg, passphrase))
        try:
            services = await initializer.services()
        except InitializationFailed as exc:
            status.update("")
            cause = exc.__cause__
            detail = str(cause.__cause__ or cause) if cause else str(exc)
            self.app.notify(f"{exc}: {detail}", severity="error", timeout=8)
            field.value = ""
            return

        field.value = ""
        status.update("")
        self.app.services = services
        await self.app.switch_screen(JournalScreen())


class JournalScreen(Screen):
    """Unlocked home: Browse / New Entry tabs."""

    BINDINGS = [Binding("escape", "app.quit", "Quit"), Binding("ctrl+r", "refresh", "Refresh")]

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="modal-card"):
            with TabbedContent():
                with TabPane("Browse"):
                    self.list_view = ListView()
                    yield self.list_view
                    yield Button("Refresh", id="refresh")
                with TabPane("New Entry"):
                    self.title_in = Input(placeholder="title")
                    self.content_in = TextArea()
                    yield self.title_in
                    yield self.content_in
                    yield Button("Save Entry", id="save_entry", classes="-primary")
        yield Footer()

    async def on_mount(self) -> None:
        await self.refresh_list()

    async def refresh_list(self) -> None:
        await self.list_view.clear()
        entries = await self.app.services.repository.list_entries()
        if not entries:
            await self.list_view.append(ListItem(Label("No entries yet.")))
            return
        for entry in entries:
            await self.list_view.append(EntryItem(entry))

    async def action_refresh(self) -> None:
        await self.refresh_list()

    async def _after_modal(self, changed: Optional[bool]) -> None:
        if changed:
            await self.refresh_list()

    async def on_list_view_selected(self, message: ListView.Selected) -> None:
        item = message.item
        if not isinstance(item, EntryItem):
            return
        if item.entry.decrypt_failed:
            self.app.notify("Cannot decrypt this entry.", severity="error")
            return
        await self.app.push_screen(EntryModal(item.entry.id), self._after_modal)

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        bid = event.button.id or ""
        if bid == "save_entry":
            title = self.title_in.value.strip()
            content = self.content_in.text
            if not title or not content.strip():
                self.app.notify("Title and content required")
                return
            try:
                await self.app.services.repository.add_entry(title, content)
            except NousGuardError as exc:
                self.app.notify(str(exc), severity="error")
                return
            self.title_in.value = ""
            self.content_in.text = ""
            await self.refresh_list()
            self.app.notify("Entry saved")
        elif bid == "refresh":
            await self.refresh_list()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

class NousGuardApp(App):
    """Textual App wrapper. Loads CSS and config, then asks for the passphrase."""

    TITLE = "NOUSGUARD"
    CSS_PATH = THEME_CSS_PATH
    services: Optional[AppServices] = None

    def __init__(self, config: Optional[Dict[str, object]] = None) -> None:
        super().__init__()
        self.journal_config = config if config is not None else load_config()

    async def on_mount(self) -> None:
        await self.push_screen(UnlockScreen())
