import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import get_gcloud_config_dir
from ..domain.errors import ExternalFailure
from ..profiles.auth import reauthenticate_adc, reauthenticate_user
from ..profiles.models import ColumnScope, CredentialKind, Profile

logger = logging.getLogger(__name__)

ADC_FILE = "application_default_credentials.json"


class GcloudCLI:
    """thin wrapper around the gcloud binary."""

    def __init__(self, binary: str = "gcloud", config_dir: Optional[Path] = None):
        self.binary = binary
        self.config_dir = config_dir or get_gcloud_config_dir()

    @property
    def adc_file(self) -> Path:
        return self.config_dir / ADC_FILE

    def run(self, *args: str, check: bool = True) -> str:
        """
        run a non-interactive gcloud command and return its stdout.

        raises:
            ExternalFailure: if gcloud is missing or exits non-zero and check is set
        """
        command = [self.binary, *args]
        logger.debug(f"running {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise ExternalFailure(f"Failed to run {self.binary}: {e}", command) from e

        if check and result.returncode != 0:
            stderr = result.stderr.strip().splitlines()
            detail = stderr[-1] if stderr else f"exit status {result.returncode}"
            raise ExternalFailure(f"{' '.join(args[:3])} failed: {detail}", command)
        return result.stdout

    def run_interactive(self, *args: str) -> None:
        """
        run a gcloud command attached to the terminal (browser login flows).

        the caller must have released the terminal first.
        """
        command = [self.binary, *args]
        logger.debug(f"running interactively {' '.join(command)}")
        try:
            returncode = subprocess.call(command)
        except OSError as e:
            raise ExternalFailure(f"Failed to run {self.binary}: {e}", command) from e
        if returncode != 0:
            raise ExternalFailure(
                f"{' '.join(args[:3])} failed with status {returncode}", command
            )

    def read_active_configuration(self) -> Optional[str]:
        """gcloud's currently active configuration name."""
        path = self.config_dir / "active_config"
        if not path.exists():
            return None
        name = path.read_text().strip()
        return name or None

    def discover_configurations(self) -> List[Tuple[str, str, str]]:
        """
        list existing gcloud configurations.

        returns:
            (name, account, project) for every configuration that has an account
        """
        configurations_dir = self.config_dir / "configurations"
        if not configurations_dir.is_dir():
            return []

        results = []
        for entry in sorted(configurations_dir.iterdir()):
            if not entry.name.startswith("config_") or not entry.is_file():
                continue
            name = entry.name[len("config_"):]
            account = project = ""
            try:
                lines = entry.read_text().splitlines()
            except OSError as e:
                logger.warning(f"could not read {entry}: {e}")
                continue
            for line in lines:
                line = line.strip()
                if line.startswith("account = "):
                    account = line[len("account = "):].strip()
                elif line.startswith("project = "):
                    project = line[len("project = "):].strip()
            if account:
                results.append((name, account, project))
        return results


class ActivationExecutor:
    """performs the external state changes that make a profile effective."""

    def __init__(self, store, gcloud: Optional[GcloudCLI] = None):
        self.store = store
        self.gcloud = gcloud or GcloudCLI()

    def create_configuration(self, name: str, profile: Profile) -> None:
        """create a gcloud configuration without activating it."""
        # already-exists is fine
        self.gcloud.run("config", "configurations", "create", name, "--no-activate", check=False)
        if profile.user_account:
            self.gcloud.run(
                "config", "set", "account", profile.user_account, f"--configuration={name}"
            )
        if profile.user_project:
            self.gcloud.run(
                "config", "set", "project", profile.user_project, f"--configuration={name}"
            )

    def delete_configuration(self, name: str) -> None:
        self.gcloud.run("config", "configurations", "delete", name, "--quiet")

    def activate_user(self, name: str, profile: Profile) -> None:
        self.gcloud.run("config", "configurations", "create", name, "--no-activate", check=False)
        self.gcloud.run("config", "configurations", "activate", name)
        if profile.user_account:
            self.gcloud.run("config", "set", "account", profile.user_account)
        if profile.user_project:
            self.gcloud.run("config", "set", "project", profile.user_project)

    def activate_adc(self, name: str) -> None:
        """
        copy the stored ADC blob into place.

        gcloud has no command for switching ADC, so the file is copied verbatim.
        """
        source = self.store.adc_path(name)
        if not source.exists():
            raise ExternalFailure(
                f"No ADC credentials stored for profile '{name}'. Re-authenticate (r) first."
            )
        try:
            self.gcloud.adc_file.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, self.gcloud.adc_file)
        except OSError as e:
            raise ExternalFailure(f"Failed to copy ADC for '{name}': {e}") from e

    def activate(self, name: str, profile: Profile, scope: ColumnScope) -> str:
        """
        make the profile effective for the given scope.

        returns:
            human readable description of what was activated
        """
        if scope == ColumnScope.USER:
            self.activate_user(name, profile)
            return f"Activated user config for '{name}'."
        if scope == ColumnScope.ADC:
            self.activate_adc(name)
            return f"Activated ADC for '{name}'."

        self.activate_user(name, profile)
        # the ADC leg is skipped until a blob has been captured
        if self.store.has_adc(name):
            self.activate_adc(name)
        return f"Activated profile '{name}'."

    def reauthenticate(self, name: str, profile: Profile, kind: CredentialKind) -> None:
        """run the interactive login for one leg of a profile."""
        if kind == CredentialKind.USER:
            reauthenticate_user(self.gcloud, profile.user_account)
        else:
            reauthenticate_adc(self.gcloud, self.store, name, profile.adc_quota_project)
