import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..domain.errors import InvalidDataError, PersistenceError
from .models import Profile, ProfileSet, SessionState

logger = logging.getLogger(__name__)


def write_atomic(path: Path, content: str) -> None:
    """
    replace a file's contents without ever leaving a partial file behind.

    raises:
        PersistenceError: if the directory or file cannot be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        logger.error(f"failed to write {path}: {e}")
        raise PersistenceError(f"Failed to write {path}: {e}") from e


def parse_profiles(raw: Dict[str, Any], warnings: Optional[List[str]] = None) -> Dict[str, Profile]:
    """validate a name -> profile mapping, skipping malformed entries."""
    profiles = {}
    for name, entry in raw.items():
        try:
            profiles[name] = Profile.model_validate(entry)
        except ValidationError as e:
            message = f"skipping invalid profile '{name}': {e.error_count()} error(s)"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
    return profiles


def profiles_payload(profiles: Dict[str, Profile]) -> Dict[str, Any]:
    return {"profiles": {name: p.model_dump(exclude_none=True) for name, p in profiles.items()}}


def dump_profiles(profiles: Dict[str, Profile]) -> str:
    return json.dumps(profiles_payload(profiles), indent=2) + "\n"


class ProfileStore:
    """handles profile and session persistence to JSON."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        self.profiles_file = base_dir / "profiles.json"
        self.state_file = base_dir / "state.json"
        self.adc_dir = base_dir / "adc"
        self.warnings: List[str] = []
        # keys of profiles.json and state.json this version doesn't know about
        self._extra: Dict[str, Any] = {}
        self._state_extra: Dict[str, Any] = {}

    def _read_json(self, path: Path) -> Optional[dict]:
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidDataError(f"{path} is not valid JSON: {e}") from e
        except OSError as e:
            raise InvalidDataError(f"Failed to read {path}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidDataError(f"{path} does not contain a JSON object")
        return data

    def load(self) -> ProfileSet:
        """
        load profiles and session state.

        missing files give an empty set. a malformed profile entry is skipped
        and recorded in `warnings`; an unreadable file raises InvalidDataError
        so that a later save cannot overwrite it with nothing.
        """
        self.warnings = []
        raw = self._read_json(self.profiles_file) or {}
        raw_profiles = raw.pop("profiles", {}) or {}
        if not isinstance(raw_profiles, dict):
            raise InvalidDataError(f"{self.profiles_file}: 'profiles' must be a mapping")
        self._extra = raw
        profiles = parse_profiles(raw_profiles, self.warnings)

        state = self.load_state()
        active = state.active_profile if state.active_profile in profiles else None
        return ProfileSet(
            profiles=profiles,
            active_profile=active,
            column_scope=state.column_scope,
            sync_mode=state.sync_mode,
        )

    def load_state(self) -> SessionState:
        raw = self._read_json(self.state_file)
        if raw is None:
            return SessionState()
        self._state_extra = {k: v for k, v in raw.items() if k not in SessionState.model_fields}
        try:
            return SessionState.model_validate(raw)
        except ValidationError as e:
            message = f"ignoring invalid session state: {e.error_count()} error(s)"
            logger.warning(message)
            self.warnings.append(message)
            return SessionState()

    def save(self, data: ProfileSet) -> None:
        """save profiles and session state."""
        content = dict(self._extra)
        content.update(profiles_payload(data.profiles))
        write_atomic(self.profiles_file, json.dumps(content, indent=2) + "\n")
        self.save_state(data)

    def save_state(self, data: ProfileSet) -> None:
        """persist only the session part (active profile, column scope, sync mode)."""
        state = SessionState(
            active_profile=data.active_profile,
            column_scope=data.column_scope,
            sync_mode=data.sync_mode,
        )
        content = dict(self._state_extra)
        content.update(state.model_dump(mode="json"))
        write_atomic(self.state_file, json.dumps(content, indent=2) + "\n")

    def adc_path(self, name: str) -> Path:
        return self.adc_dir / f"{name}.json"

    def has_adc(self, name: str) -> bool:
        return self.adc_path(name).exists()

    def save_adc(self, name: str, content: bytes) -> None:
        """store a profile's ADC blob verbatim."""
        path = self.adc_path(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            path.chmod(0o600)
        except OSError as e:
            raise PersistenceError(f"Failed to store ADC for '{name}': {e}") from e

    def remove_adc(self, name: str) -> None:
        path = self.adc_path(name)
        if path.exists():
            path.unlink()
