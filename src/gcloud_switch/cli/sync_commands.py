import typer
from rich.console import Console
from rich.prompt import Prompt

from ..config import CONFIG_DIR, DEFAULT_BRANCH, get_sync_branch, get_sync_remote, set_sync_remote
from ..domain.errors import GcloudSwitchError, PullRequiredError, SyncNotConfiguredError
from ..profiles.models import Profile
from ..profiles.store import ProfileStore
from ..sync.merge import MergeChoice
from ..sync.service import SyncService
from ..sync.transport import GitTransport
from ..ui.progress import ProgressManager

app = typer.Typer()
console = Console()


def get_sync_service() -> SyncService:
    """get sync service for the configured remote."""
    remote = get_sync_remote()
    if not remote:
        raise SyncNotConfiguredError()
    transport = GitTransport(CONFIG_DIR / "sync", remote, get_sync_branch())
    return SyncService(ProfileStore(CONFIG_DIR), transport)


def _describe(profile: Profile) -> str:
    return (
        f"{profile.user_account} / {profile.user_project} "
        f"(adc: {profile.adc_account} / {profile.adc_quota_project})"
    )


@app.command("init")
def init(
    remote_url: str,
    branch: str = typer.Option(DEFAULT_BRANCH, "--branch", help="Branch to push and pull"),
):
    """set the git remote and clone it."""
    set_sync_remote(remote_url, branch)
    console.print("Sync config saved. Run 'gcloud-switch sync push' to push, or 'sync pull' to pull.")

    service = get_sync_service()
    try:
        with ProgressManager(console).spinner("Cloning remote"):
            service.transport.ensure_cloned()
    except GcloudSwitchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"Remote cloned to [cyan]{service.transport.repo_path}[/cyan].")


@app.command("push")
def push():
    """push local profiles to the remote."""
    try:
        service = get_sync_service()
        with ProgressManager(console).spinner("Pushing profiles"):
            service.push()
    except PullRequiredError as e:
        console.print(f"[yellow]Push refused:[/yellow] {e}")
        raise typer.Exit(1)
    except GcloudSwitchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Pushed profiles to remote")


@app.command("pull")
def pull():
    """pull profiles from the remote and merge them (newer wins per profile)."""
    try:
        service = get_sync_service()
        with ProgressManager(console).spinner("Fetching remote profiles"):
            result = service.pull()
    except GcloudSwitchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    choices = {}
    for conflict in result.conflicts:
        console.print(f"\n[bold]Profile '{conflict.profile_name}' changed on both sides.[/bold]")
        console.print(f"  Local:  {_describe(conflict.local_version)}")
        console.print(f"  Remote: {_describe(conflict.remote_version)}")
        answer = Prompt.ask("Keep (L)ocal or (R)emote?", choices=["l", "r"], default="l")
        choices[conflict.profile_name] = MergeChoice.REMOTE if answer == "r" else MergeChoice.LOCAL

    try:
        merged = service.apply(result, choices)
    except GcloudSwitchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(
        f"[green]✓[/green] Pulled and merged {len(merged.profiles)} profile(s)"
        + (f", {len(choices)} conflict(s) resolved" if choices else "")
    )
