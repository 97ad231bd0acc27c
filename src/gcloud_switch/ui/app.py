"""full-screen profile switcher."""
import logging
from typing import Optional

from rich.markup import escape
from rich.table import Table
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Static

from ..domain.errors import PersistenceError
from ..engine.pending import ActionRunner
from ..engine.state import (
    ACCOUNT_FIELDS,
    PROJECT_FIELDS,
    AddProfile,
    ConfirmDelete,
    Edit,
    InteractionStateMachine,
)
from ..profiles.models import AuthState, ColumnScope, CredentialKind, Profile

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.2

GLYPHS = {
    AuthState.VALID: "[#9ece6a]✓[/]",
    AuthState.EXPIRED: "[#f7768e]✗[/]",
    AuthState.UNKNOWN: "[#e0af68]?[/]",
}
CHECKING_GLYPH = "[dim]…[/dim]"

HELP = {
    "normal": [
        ("↑↓", "select"), ("←→", "column"), ("space", "activate"),
        ("enter", "activate+quit"), ("r", "re-auth"), ("a", "add"), ("e", "edit"),
        ("d", "delete"), ("s", "sync mode"), ("q", "quit"),
    ],
    "edit": [
        ("tab", "account/project"), ("↓", "suggestions"), ("enter", "save"), ("esc", "cancel"),
    ],
    "add": [("enter", "next"), ("esc", "cancel")],
    "confirm": [("y", "delete"), ("any key", "cancel")],
}


class ProfileTable(Static):
    """profile rows with per-leg credential status."""

    DEFAULT_CSS = """
    ProfileTable {
        height: auto;
        padding: 0 1;
    }
    """


class SuggestionList(Static):
    DEFAULT_CSS = """
    SuggestionList {
        height: auto;
        max-height: 10;
        margin: 0 2;
        border: round $accent;
        display: none;
    }
    """


class HelpBar(Static):
    DEFAULT_CSS = """
    HelpBar {
        height: 1;
        dock: bottom;
        padding: 0 1;
    }
    """


class StatusBar(Static):
    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        dock: bottom;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """


class SwitcherApp(App):
    """renders the state machine and feeds it keys, results and drained actions."""

    TITLE = "gcloud-switch"

    # keep tab away from focus navigation
    BINDINGS = [
        Binding("tab", "edit_tab", show=False, priority=True),
    ]

    def __init__(self, machine: InteractionStateMachine, runner: ActionRunner):
        super().__init__()
        self.machine = machine
        self.runner = runner

    def compose(self) -> ComposeResult:
        yield Static("[bold]gcloud-switch[/bold]", id="title")
        yield ProfileTable(id="profiles")
        yield SuggestionList(id="suggestions")
        yield StatusBar(id="status")
        yield HelpBar(id="help")

    def on_mount(self) -> None:
        self.machine.start()
        self.set_interval(POLL_INTERVAL, self._poll_auth)
        self._render_state()

    def _poll_auth(self) -> None:
        if self.machine.poll_auth():
            self._render_state()

    def action_edit_tab(self) -> None:
        self._dispatch("tab", None)

    def on_key(self, event: events.Key) -> None:
        character = event.character if event.is_printable else None
        self._dispatch(event.key, character)
        event.stop()
        event.prevent_default()

    def _dispatch(self, key: str, character: Optional[str]) -> None:
        try:
            self.machine.handle_key(key, character)
            if self.machine.queue.pending is not None:
                self._drain()
        except PersistenceError as e:
            logger.error(str(e))
            self.exit(result=f"Error: {e}", return_code=1)
            return

        if self.machine.should_quit:
            self.exit(result=self.machine.status)
            return
        self._render_state()

    def _drain(self) -> None:
        """run the queued action with the terminal handed back to the shell."""
        outcome = self.machine.queue.drain(self.runner, release_terminal=self.suspend)
        if outcome is not None:
            self.machine.complete(outcome)
        self.refresh(layout=True)

    # -- rendering -----------------------------------------------------------

    def _leg_cell(self, name: str, profile: Profile, kind: CredentialKind) -> Text:
        machine = self.machine
        account = profile.account_for(kind)
        project = profile.project_for(kind)
        state = machine.leg_state(profile, kind)
        if state is None:
            glyph = CHECKING_GLYPH if machine.is_checking(account) else GLYPHS[AuthState.UNKNOWN]
        else:
            glyph = GLYPHS[state]

        edit = machine.mode if isinstance(machine.mode, Edit) else None
        if edit and edit.target == name and edit.kind == kind:
            values = profile.content()
            values.update(edit.staged)
            account = values[ACCOUNT_FIELDS[kind]]
            project = values[PROJECT_FIELDS[kind]]
            shown = edit.buffer[:edit.cursor] + "│" + edit.buffer[edit.cursor:]
            if edit.field == ACCOUNT_FIELDS[kind]:
                account = f"[reverse]{escape(shown)}[/reverse]"
                project = escape(project)
            else:
                project = f"[reverse]{escape(shown)}[/reverse]"
                account = escape(account)
            return Text.from_markup(f"{glyph} {account} [dim]/[/dim] {project}")
        return Text.from_markup(f"{glyph} {escape(account)} [dim]/[/dim] {escape(project)}")

    def _build_table(self) -> Table:
        machine = self.machine
        scope = machine.scope
        user_on = scope in (ColumnScope.BOTH, ColumnScope.USER)
        adc_on = scope in (ColumnScope.BOTH, ColumnScope.ADC)

        table = Table(expand=True, show_edge=False)
        table.add_column("", width=1)
        table.add_column("Profile", style="cyan", no_wrap=True)
        table.add_column("User", header_style="bold reverse" if user_on else "dim")
        table.add_column("ADC", header_style="bold reverse" if adc_on else "dim")

        for index, name in enumerate(machine.names):
            profile = machine.profiles.profiles[name]
            marker = "[#9ece6a]●[/]" if name == machine.profiles.active_profile else ""
            style = "on #283457" if index == machine.selected else ""
            table.add_row(
                Text.from_markup(marker),
                escape(name),
                self._leg_cell(name, profile, CredentialKind.USER),
                self._leg_cell(name, profile, CredentialKind.ADC),
                style=style,
            )
        if not machine.names:
            table.add_row("", "[dim]No profiles. Press a to add one.[/dim]", "", "")
        return table

    def _render_state(self) -> None:
        machine = self.machine
        self.query_one("#profiles", ProfileTable).update(self._build_table())

        suggestions = self.query_one("#suggestions", SuggestionList)
        edit = machine.mode if isinstance(machine.mode, Edit) else None
        if edit and edit.dropdown_open:
            lines = []
            for index, candidate in enumerate(edit.suggestions):
                text = escape(candidate)
                lines.append(f"[reverse]{text}[/reverse]" if index == edit.highlight else text)
            suggestions.update("\n".join(lines))
            suggestions.display = True
        else:
            suggestions.display = False

        if isinstance(machine.mode, Edit):
            help_key = "edit"
        elif isinstance(machine.mode, AddProfile):
            help_key = "add"
        elif isinstance(machine.mode, ConfirmDelete):
            help_key = "confirm"
        else:
            help_key = "normal"
        self.query_one("#help", HelpBar).update(
            "  ".join(f"[bold]{k}[/bold] {escape(d)}" for k, d in HELP[help_key])
        )

        parts = [f"sync: {machine.profiles.sync_mode.value}", f"column: {machine.scope.value}"]
        prompt = machine.prompt()
        if isinstance(machine.mode, AddProfile):
            parts.append(f"[bold]{escape(prompt)}[/bold] {escape(machine.mode.buffer)}│")
        elif prompt:
            parts.append(f"[bold #e0af68]{escape(prompt)}[/]")
        elif machine.status:
            parts.append(escape(machine.status))
        self.query_one("#status", StatusBar).update(" | ".join(parts))
