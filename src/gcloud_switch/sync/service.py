import json
import logging
from pathlib import Path
from typing import Dict, Optional

from ..domain.errors import PullRequiredError
from ..profiles.store import write_atomic
from .merge import MergeChoice, MergeResult, merge_profiles

logger = logging.getLogger(__name__)


class SyncService:
    """pull/merge and push of profile data through a transport."""

    def __init__(self, store, transport, state_file: Optional[Path] = None):
        self.store = store
        self.transport = transport
        self.state_file = state_file or store.base_dir / "sync-state.json"
        self._pulled_revision: Optional[str] = None

    def last_synced_revision(self) -> Optional[str]:
        if not self.state_file.exists():
            return None
        try:
            data = json.loads(self.state_file.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"ignoring unreadable {self.state_file}: {e}")
            return None
        return data.get("revision") if isinstance(data, dict) else None

    def _record(self, revision: Optional[str]) -> None:
        write_atomic(self.state_file, json.dumps({"revision": revision}, indent=2) + "\n")

    def pull(self) -> MergeResult:
        """
        fetch the remote copy and merge it with the local one.

        nothing is saved yet; conflicts in the result need a decision before apply().
        """
        snapshot = self.transport.fetch_remote()
        self._pulled_revision = snapshot.revision
        local = self.store.load()
        result = merge_profiles(local, snapshot.profiles)
        logger.info(
            f"merged {len(result.merged.profiles)} profile(s), {len(result.conflicts)} conflict(s)"
        )
        return result

    def apply(self, result: MergeResult, choices: Optional[Dict[str, MergeChoice]] = None):
        """
        resolve conflicts, save the merged set and remember the pulled revision.

        returns:
            the saved ProfileSet
        """
        merged = result.resolve(choices or {})
        if merged.active_profile not in merged.profiles:
            merged.active_profile = None
        self.store.save(merged)
        self._record(self._pulled_revision)
        return merged

    def push(self) -> str:
        """
        publish local profiles.

        raises:
            PullRequiredError: if the remote moved since the last pull or push
        """
        snapshot = self.transport.fetch_remote()
        known = self.last_synced_revision()
        if snapshot.revision is not None and snapshot.revision != known and snapshot.profiles.profiles:
            raise PullRequiredError(known, snapshot.revision)

        revision = self.transport.publish(self.store.load())
        self._record(revision)
        return revision
