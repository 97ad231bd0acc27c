"""timestamp-based reconciliation of two profile collections."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..profiles.models import Profile, ProfileSet


class MergeChoice(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class MergeConflict:
    """a profile changed on both sides with no determinable newer version."""
    profile_name: str
    local_version: Profile
    remote_version: Profile


@dataclass
class MergeResult:
    merged: ProfileSet
    conflicts: List[MergeConflict] = field(default_factory=list)
    # every name in the union, local order first, for re-inserting resolved entries
    order: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.conflicts

    def resolve(self, choices: Dict[str, MergeChoice]) -> ProfileSet:
        """
        build the final set from explicit per-conflict choices.

        raises:
            ValueError: if any conflict has no choice
        """
        missing = [c.profile_name for c in self.conflicts if c.profile_name not in choices]
        if missing:
            raise ValueError(f"No resolution chosen for: {', '.join(missing)}")

        chosen = {}
        for conflict in self.conflicts:
            if choices[conflict.profile_name] == MergeChoice.REMOTE:
                chosen[conflict.profile_name] = conflict.remote_version
            else:
                chosen[conflict.profile_name] = conflict.local_version

        profiles = {}
        for name in self.order:
            if name in chosen:
                profiles[name] = chosen[name].model_copy()
            elif name in self.merged.profiles:
                profiles[name] = self.merged.profiles[name]
        return self.merged.model_copy(update={"profiles": profiles})


def _newer(local: Profile, remote: Profile) -> Optional[Profile]:
    """the strictly newer side, None when undecidable. a missing timestamp is oldest."""
    if local.updated_at == remote.updated_at:
        return None
    if local.updated_at is None:
        return remote
    if remote.updated_at is None:
        return local
    return remote if remote.updated_at > local.updated_at else local


def merge_profiles(local: ProfileSet, remote: ProfileSet) -> MergeResult:
    """
    reconcile local and remote by profile name.

    neither input is modified. session fields (active profile, column scope,
    sync mode) come from local; only profile data takes part in the merge.
    """
    order = list(local.profiles)
    order.extend(name for name in remote.profiles if name not in local.profiles)

    profiles = {}
    conflicts = []
    for name in order:
        mine = local.profiles.get(name)
        theirs = remote.profiles.get(name)
        if theirs is None:
            profiles[name] = mine.model_copy()
        elif mine is None:
            profiles[name] = theirs.model_copy()
        elif mine.same_content(theirs):
            profiles[name] = mine.model_copy()
        else:
            winner = _newer(mine, theirs)
            if winner is None:
                conflicts.append(MergeConflict(name, mine.model_copy(), theirs.model_copy()))
            else:
                profiles[name] = winner.model_copy()

    merged = local.model_copy(update={"profiles": profiles})
    return MergeResult(merged=merged, conflicts=conflicts, order=order)
