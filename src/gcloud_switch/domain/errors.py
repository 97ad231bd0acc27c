from typing import List, Optional


class GcloudSwitchError(Exception):
    """base class for exceptions in gcloud-switch."""
    pass


class NotFoundError(GcloudSwitchError):
    """raised when a profile or stored file does not exist."""
    pass


class InvalidDataError(GcloudSwitchError):
    """raised when stored data cannot be decoded."""
    pass


class PersistenceError(GcloudSwitchError):
    """raised when the profile collection cannot be written."""
    pass


class ExternalFailure(GcloudSwitchError):
    """raised when gcloud, git or the credential store fails."""
    def __init__(self, message: str, command: Optional[List[str]] = None):
        self.command = command
        super().__init__(message)


class SyncNotConfiguredError(GcloudSwitchError):
    """raised when sync is used before `sync init`."""
    def __init__(self):
        super().__init__(
            "Sync not configured. Run 'gcloud-switch sync init <remote_url>' first."
        )


class PullRequiredError(GcloudSwitchError):
    """raised when the remote advanced since the last synchronized revision."""
    def __init__(self, known: Optional[str], remote: Optional[str]):
        self.known = known
        self.remote = remote
        super().__init__(
            "Remote has changes not yet merged locally. "
            "Run 'gcloud-switch sync pull' before pushing."
        )
