"""progress output for commands that wait on git or the token endpoint."""

import sys
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
)

from ..profiles.models import AuthState, AuthStatus

STATE_STYLES = {
    AuthState.VALID: "green",
    AuthState.EXPIRED: "red",
    AuthState.UNKNOWN: "yellow",
}


class ProgressManager:
    """spinners for sync and a per-account bar for credential checks."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        # no live output in ci or when piped
        self._enabled = sys.stdout.isatty() and not sys.stdout.closed

    @contextmanager
    def spinner(self, description: str) -> Iterator[None]:
        """indeterminate spinner around a git operation."""
        if not self._enabled:
            self.console.print(f"{description}...")
            yield
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
        ) as progress:
            progress.add_task(description, total=None)
            yield

    @contextmanager
    def credential_checks(self, total: int) -> Iterator[Callable[[AuthStatus], None]]:
        """
        track credential checks as their results come in.

        args:
            total: number of accounts being checked

        yields:
            callback taking each AuthStatus as it arrives
        """
        if not self._enabled:
            self.console.print(f"Checking {total} account(s)...")

            def report(status: AuthStatus) -> None:
                self.console.print(f"  {status.account}: {status.state.value}")

            yield report
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            task_id = progress.add_task("Checking credentials", total=total)

            def report(status: AuthStatus) -> None:
                style = STATE_STYLES[status.state]
                progress.update(
                    task_id,
                    advance=1,
                    description=f"{status.account} [{style}]{status.state.value}[/{style}]",
                )

            yield report
