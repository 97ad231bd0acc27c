import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..domain.errors import ExternalFailure, InvalidDataError
from ..profiles.models import ProfileSet
from ..profiles.store import dump_profiles, parse_profiles

logger = logging.getLogger(__name__)

SYNC_FILE = "profiles.json"


@dataclass
class RemoteSnapshot:
    profiles: ProfileSet
    # commit the snapshot was read from, None while the remote branch is empty
    revision: Optional[str]


class GitTransport:
    """
    moves profile data to and from a git remote.

    only the profile mapping travels; credentials and session state never
    leave the machine. the user's own git auth (ssh or credential helper) is used.
    """

    def __init__(self, repo_path: Path, remote_url: str, branch: str = "main"):
        self.repo_path = repo_path
        self.remote_url = remote_url
        self.branch = branch

    @property
    def remote_ref(self) -> str:
        return f"origin/{self.branch}"

    def _git(self, *args: str, cwd: Optional[Path] = None) -> str:
        command = ["git", *args]
        logger.debug(f"running {' '.join(command)}")
        try:
            return subprocess.check_output(
                command,
                cwd=cwd or self.repo_path,
                text=True,
                stderr=subprocess.PIPE,
            )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
            raise ExternalFailure(f"git {args[0]} failed: {detail}", command) from e
        except OSError as e:
            raise ExternalFailure(f"Failed to run git: {e}", command) from e

    def ensure_cloned(self) -> None:
        """clone the remote, or init an empty repo pointing at it if it has no branch yet."""
        if (self.repo_path / ".git").exists():
            return
        parent = self.repo_path.parent
        parent.mkdir(parents=True, exist_ok=True)
        attempts: List[List[str]] = [
            ["clone", "--branch", self.branch, self.remote_url, str(self.repo_path)],
            ["clone", self.remote_url, str(self.repo_path)],
        ]
        for args in attempts:
            try:
                self._git(*args, cwd=parent)
                return
            except ExternalFailure as e:
                logger.debug(f"clone attempt failed: {e}")

        # empty remote: the first push creates the branch
        self.repo_path.mkdir(parents=True, exist_ok=True)
        self._git("init")
        self._git("remote", "add", "origin", self.remote_url)

    def _remote_revision(self) -> Optional[str]:
        try:
            return self._git("rev-parse", "--verify", self.remote_ref).strip()
        except ExternalFailure:
            return None

    def fetch_remote(self) -> RemoteSnapshot:
        """
        fetch the remote branch and read its profile data.

        raises:
            ExternalFailure: if git fails
            InvalidDataError: if the remote file is not valid JSON
        """
        self.ensure_cloned()
        try:
            self._git("fetch", "origin", self.branch)
        except ExternalFailure as e:
            # a remote without the branch yet is an empty remote
            if self._remote_revision() is not None:
                raise
            logger.debug(f"fetch found nothing: {e}")

        revision = self._remote_revision()
        if revision is None:
            return RemoteSnapshot(ProfileSet.empty(), None)
        try:
            content = self._git("show", f"{self.remote_ref}:{SYNC_FILE}")
        except ExternalFailure:
            return RemoteSnapshot(ProfileSet.empty(), revision)

        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise InvalidDataError(f"Remote {SYNC_FILE} is not valid JSON: {e}") from e
        profiles = parse_profiles(raw.get("profiles", {}) if isinstance(raw, dict) else {})
        return RemoteSnapshot(ProfileSet(profiles=profiles), revision)

    def publish(self, data: ProfileSet) -> str:
        """
        commit the profile data and push it.

        returns:
            the pushed revision
        """
        self.ensure_cloned()
        if self._remote_revision() is not None:
            # start from the remote tip so the push is a fast-forward
            self._git("checkout", "-B", self.branch, self.remote_ref)
        else:
            self._git("checkout", "-B", self.branch)
        (self.repo_path / SYNC_FILE).write_text(dump_profiles(data.profiles))
        self._git("add", SYNC_FILE)
        if self._git("status", "--porcelain", "--", SYNC_FILE).strip():
            self._git("commit", "-m", "gcloud-switch sync")
        self._git("push", "-u", "origin", self.branch)
        return self._git("rev-parse", "HEAD").strip()
