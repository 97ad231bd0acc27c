import logging

from rich.console import Console

from ..domain.errors import ExternalFailure

console = Console()
logger = logging.getLogger(__name__)


class AuthenticationError(ExternalFailure):
    """raised when authentication fails or is cancelled."""
    pass


def reauthenticate_user(gcloud, account: str) -> None:
    """
    run `gcloud auth login` for an account.

    args:
        gcloud: GcloudCLI used to run the command
        account: account to log in as

    raises:
        AuthenticationError: if the login flow fails or is cancelled
    """
    console.print(f"[blue]Re-authenticating[/blue] [cyan]{account}[/cyan]")
    console.print("[dim]Complete the sign-in in your browser[/dim]")
    try:
        gcloud.run_interactive("auth", "login", f"--account={account}")
    except ExternalFailure as e:
        raise AuthenticationError(f"Login for {account} failed: {e}", e.command) from e
    console.print(f"[green]✓[/green] Authenticated as [cyan]{account}[/cyan]")


def reauthenticate_adc(gcloud, store, profile_name: str, quota_project: str) -> None:
    """
    run `gcloud auth application-default login` and capture the result.

    the new ADC file is copied into the profile's stored blob so it can be
    activated again later without logging in.

    raises:
        AuthenticationError: if the login flow fails or produced no ADC file
    """
    console.print(f"[blue]Re-authenticating ADC[/blue] for [cyan]{profile_name}[/cyan]")
    try:
        gcloud.run_interactive("auth", "application-default", "login", "--quiet")
    except ExternalFailure as e:
        raise AuthenticationError(f"ADC login failed: {e}", e.command) from e

    if quota_project:
        try:
            gcloud.run("auth", "application-default", "set-quota-project", quota_project)
        except ExternalFailure as e:
            # the login itself succeeded; a missing quota project is recoverable
            logger.warning(f"could not set quota project {quota_project}: {e}")
            console.print(f"[yellow]Warning:[/yellow] could not set quota project: {e}")

    if not gcloud.adc_file.exists():
        raise AuthenticationError(f"No ADC file found at {gcloud.adc_file} after login")
    store.save_adc(profile_name, gcloud.adc_file.read_bytes())
    console.print(f"[green]✓[/green] ADC stored for [cyan]{profile_name}[/cyan]")
