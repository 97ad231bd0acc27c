import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..config import CONFIG_DIR, LOG_FILE, get_validation_timeout
from ..domain.errors import GcloudSwitchError
from ..engine.pending import ActionRunner, DeferredActionQueue
from ..engine.scheduler import ValidationScheduler
from ..engine.state import InteractionStateMachine
from ..gcloud.cli import ActivationExecutor, GcloudCLI
from ..gcloud.credentials import CredentialOracle
from ..profiles import ProfileManager, ProfileError
from ..profiles.models import AuthState, ColumnScope
from ..ui.progress import ProgressManager
from .sync_commands import app as sync_app

app = typer.Typer()
console = Console()

app.add_typer(sync_app, name="sync", help="Sync profile data through a git remote")

STATE_LABELS = {
    AuthState.VALID: "[green]valid[/green]",
    AuthState.EXPIRED: "[red]expired[/red]",
    AuthState.UNKNOWN: "[yellow]unknown[/yellow]",
}


def setup_logging(verbose: bool = False) -> None:
    """log to the log file always, and to the console when verbose."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    handlers = [logging.FileHandler(LOG_FILE)]
    handlers[0].setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    if verbose:
        handlers.append(RichHandler(console=Console(stderr=True), show_path=False))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=handlers, force=True)


def get_profile_manager() -> ProfileManager:
    """get profile manager instance wired to gcloud."""
    gcloud = GcloudCLI()
    manager = ProfileManager(CONFIG_DIR, gcloud=gcloud)
    manager.executor = ActivationExecutor(manager.store, gcloud)
    return manager


def fail(message: str, label: str = "Error") -> None:
    console.print(f"[red]{label}:[/red] {message}")
    raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to the console"),
):
    """switch between gcloud user and ADC profiles. without a command, opens the interactive UI."""
    # the full-screen UI owns the terminal, so it only ever logs to file
    setup_logging(verbose and ctx.invoked_subcommand is not None)
    if ctx.invoked_subcommand is None:
        run_tui()


def run_tui() -> None:
    from ..ui.app import SwitcherApp

    manager = get_profile_manager()
    try:
        added, removed = manager.reconcile()
        profiles = manager.store.load()
    except (GcloudSwitchError, ProfileError) as e:
        fail(str(e))
    for warning in manager.store.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    oracle = CredentialOracle()
    scheduler = ValidationScheduler(oracle, timeout=get_validation_timeout())
    machine = InteractionStateMachine(
        profiles,
        manager.store,
        executor=manager.executor,
        scheduler=scheduler,
        queue=DeferredActionQueue(),
        known_accounts=oracle.known_accounts,
    )
    if added or removed:
        machine.status = f"Synced with gcloud: {len(added)} added, {len(removed)} removed."

    tui = SwitcherApp(machine, ActionRunner(manager.executor))
    result = tui.run()
    if result:
        console.print(result)
    if tui.return_code:
        raise typer.Exit(tui.return_code)


@app.command("add")
def add_profile(
    name: str,
    account: str = typer.Option(..., "--account", help="User account email"),
    project: str = typer.Option(..., "--project", help="User project"),
    adc_account: Optional[str] = typer.Option(None, "--adc-account", help="ADC account (defaults to --account)"),
    adc_quota_project: Optional[str] = typer.Option(
        None, "--adc-quota-project", help="ADC quota project (defaults to --project)"
    ),
):
    """add a new profile."""
    manager = get_profile_manager()
    try:
        manager.create_profile(name, account, project, adc_account, adc_quota_project)
    except ProfileError as e:
        fail(str(e))
    except GcloudSwitchError as e:
        fail(str(e))
    console.print(f"[green]✓[/green] Profile '{name}' added")


@app.command("list")
def list_profiles(
    check: bool = typer.Option(False, "--check", help="Check whether stored credentials still work"),
):
    """list all profiles."""
    manager = get_profile_manager()
    try:
        data = manager.list_profiles()
    except GcloudSwitchError as e:
        fail(str(e))

    if not data.profiles:
        console.print("[yellow]No profiles found.[/yellow]")
        console.print("\nCreate one with: [cyan]gcloud-switch add <name>[/cyan] or press [cyan]a[/cyan] in the UI")
        return

    states = {}
    if check:
        scheduler = ValidationScheduler(CredentialOracle(), timeout=get_validation_timeout())
        accounts = scheduler.schedule(data.accounts())
        with ProgressManager(console).credential_checks(len(accounts)) as report:
            while scheduler.in_flight:
                for status in scheduler.poll(timeout=0.25):
                    states[status.account] = status.state
                    report(status)

    table = Table(title="Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("User", style="white")
    table.add_column("ADC", style="white")
    table.add_column("Status", style="green")

    for name, profile in data.profiles.items():
        user = f"{profile.user_account} / {profile.user_project}"
        adc = f"{profile.adc_account} / {profile.adc_quota_project}"
        if check:
            user += f"  {STATE_LABELS[states.get(profile.user_account, AuthState.EXPIRED)]}"
            adc += f"  {STATE_LABELS[states.get(profile.adc_account, AuthState.EXPIRED)]}"
        status = "active" if name == data.active_profile else ""
        table.add_row(name, user, adc, status)

    console.print(table)


@app.command("switch")
def switch_profile(
    name: str,
    scope: ColumnScope = typer.Option(ColumnScope.BOTH, "--scope", help="Which credentials to activate"),
):
    """switch to a different profile."""
    manager = get_profile_manager()
    try:
        message = manager.switch_profile(name, scope)
    except GcloudSwitchError as e:
        fail(str(e))
    console.print(f"[green]✓[/green] {message}")


@app.command("remove")
def remove_profile(
    name: str,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """remove a profile."""
    if not yes:
        typer.confirm(f"Delete profile '{name}'?", abort=True)
    manager = get_profile_manager()
    try:
        manager.remove_profile(name)
    except GcloudSwitchError as e:
        fail(str(e))
    console.print(f"[green]✓[/green] Profile '{name}' removed")


@app.command("import")
def import_configurations():
    """import existing gcloud configurations as profiles."""
    manager = get_profile_manager()
    try:
        imported = manager.import_configurations()
        active = manager.get_active_profile() if imported else None
    except GcloudSwitchError as e:
        fail(str(e))

    if not imported:
        console.print("No new gcloud configurations found to import.")
        return
    for name in imported:
        console.print(f"[green]✓[/green] Imported '{name}'")
    if active:
        console.print(f"Active profile set to '{active}'.")


if __name__ == "__main__":
    app()
