import logging
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console

from ..domain.errors import ExternalFailure, NotFoundError
from .models import ColumnScope, Profile, ProfileSet, SyncMode
from .store import ProfileStore

console = Console()
logger = logging.getLogger(__name__)


class ProfileError(Exception):
    """raised when profile operations fail."""
    pass


class ProfileManager:
    """scripted profile operations shared by the CLI and UI startup."""

    def __init__(self, config_dir: Path, executor=None, gcloud=None):
        self.config_dir = config_dir
        self.store = ProfileStore(config_dir)
        self.executor = executor
        self.gcloud = gcloud

    def create_profile(
        self,
        name: str,
        account: str,
        project: str,
        adc_account: Optional[str] = None,
        adc_quota_project: Optional[str] = None,
    ) -> Profile:
        """
        create a new profile.

        args:
            name: unique profile name
            account: user account email
            project: user project
            adc_account: ADC account, defaults to account
            adc_quota_project: ADC quota project, defaults to project

        returns:
            created profile

        raises:
            ProfileError: if the name is empty, taken, or a field is missing
            ExternalFailure: if the gcloud configuration cannot be created
        """
        if not name or not name.strip():
            raise ProfileError("Profile name cannot be empty")
        if not account or not project:
            raise ProfileError("Account and project are required")

        data = self.store.load()
        if name in data.profiles:
            raise ProfileError(f"Profile '{name}' already exists")

        profile = Profile(
            user_account=account,
            user_project=project,
            adc_account=adc_account or account,
            adc_quota_project=adc_quota_project or project,
        )
        profile.touch()

        # create the gcloud configuration first so the profile is never orphaned
        if self.executor and data.sync_mode != SyncMode.OFF:
            self.executor.create_configuration(name, profile)

        data.profiles[name] = profile
        self.store.save(data)
        return profile

    def remove_profile(self, name: str) -> None:
        """
        remove a profile and its stored ADC.

        in strict sync mode the gcloud configuration goes too, best effort.

        raises:
            NotFoundError: if the profile does not exist
        """
        data = self.store.load()
        if name not in data.profiles:
            raise NotFoundError(f"Profile '{name}' not found")

        del data.profiles[name]
        if data.active_profile == name:
            data.active_profile = None
        self.store.save(data)
        self._remove_adc(name)

        if self.executor and data.sync_mode == SyncMode.STRICT:
            try:
                self.executor.delete_configuration(name)
            except ExternalFailure as e:
                logger.warning(f"could not delete gcloud configuration '{name}': {e}")
                console.print(f"[yellow]Warning:[/yellow] gcloud configuration kept: {e}")

    def list_profiles(self) -> ProfileSet:
        return self.store.load()

    def get_active_profile(self) -> Optional[str]:
        """get active profile name, returns None if none is active."""
        return self.store.load().active_profile

    def switch_profile(self, name: str, scope: ColumnScope = ColumnScope.BOTH) -> str:
        """
        activate a profile without the interactive UI.

        raises:
            NotFoundError: if the profile does not exist
            ExternalFailure: if activation fails
        """
        data = self.store.load()
        if name not in data.profiles:
            available = ", ".join(data.profiles.keys()) or "none"
            raise NotFoundError(
                f"Profile '{name}' not found.\n"
                f"Available profiles: {available}"
            )

        message = self.executor.activate(name, data.profiles[name], scope)
        data.active_profile = name
        self.store.save_state(data)
        return message

    def _profile_from_config(self, name: str, account: str, project: str) -> Optional[Profile]:
        """profile for a discovered configuration, None if it has no project set."""
        if not project:
            logger.warning(f"skipping gcloud configuration '{name}': no project set")
            return None
        profile = Profile(user_account=account, user_project=project)
        profile.touch()
        return profile

    def _remove_adc(self, name: str) -> None:
        try:
            self.store.remove_adc(name)
        except OSError as e:
            logger.warning(f"could not remove stored ADC for '{name}': {e}")
            console.print(f"[yellow]Warning:[/yellow] stored ADC for '{name}' kept: {e}")

    def import_configurations(self) -> List[str]:
        """
        add every gcloud configuration that has no profile yet.

        returns:
            names of imported profiles
        """
        data = self.store.load()
        imported = []
        for name, account, project in self.gcloud.discover_configurations():
            if name in data.profiles:
                continue
            profile = self._profile_from_config(name, account, project)
            if profile:
                data.profiles[name] = profile
                imported.append(name)

        if imported:
            active = self.gcloud.read_active_configuration()
            if active in data.profiles:
                data.active_profile = active
            self.store.save(data)
        return imported

    def reconcile(self) -> Tuple[List[str], List[str]]:
        """
        align profiles with gcloud configurations according to the sync mode.

        an empty profile set imports everything. add-only mode adds new
        configurations, strict mode also drops profiles whose configuration is
        gone. gcloud's active configuration is always adopted.

        returns:
            (added, removed) profile names
        """
        data = self.store.load()
        if not data.profiles:
            return self.import_configurations(), []

        added, removed = [], []
        changed = False
        if data.sync_mode != SyncMode.OFF:
            configurations = self.gcloud.discover_configurations()
            present = {name for name, _, _ in configurations}
            for name, account, project in configurations:
                if name in data.profiles:
                    continue
                profile = self._profile_from_config(name, account, project)
                if profile:
                    data.profiles[name] = profile
                    added.append(name)
            if data.sync_mode == SyncMode.STRICT:
                for name in [n for n in data.profiles if n not in present]:
                    del data.profiles[name]
                    if data.active_profile == name:
                        data.active_profile = None
                    self._remove_adc(name)
                    removed.append(name)
            changed = bool(added or removed)

        active = self.gcloud.read_active_configuration()
        if active in data.profiles and data.active_profile != active:
            data.active_profile = active
            changed = True

        if changed:
            self.store.save(data)
        return added, removed
