"""test suite for profile persistence."""
import json
import os
import pytest
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gcloud_switch.domain.errors import InvalidDataError, PersistenceError
from gcloud_switch.profiles.models import ColumnScope, Profile, ProfileSet, SyncMode
from gcloud_switch.profiles.store import ProfileStore, write_atomic


@pytest.fixture
def store(tmp_path):
    return ProfileStore(tmp_path)


class TestProfileStore:
    def test_missing_files_give_empty_set(self, store):
        data = store.load()
        assert data.profiles == {}
        assert data.active_profile is None
        assert data.sync_mode == SyncMode.STRICT

    def test_round_trip(self, store):
        data = ProfileSet(
            profiles={
                "work": Profile(user_account="a@x.com", user_project="p", updated_at=42),
                "home": Profile(user_account="b@x.com", user_project="q"),
            },
            active_profile="work",
            column_scope=ColumnScope.ADC,
            sync_mode=SyncMode.OFF,
        )
        store.save(data)
        loaded = store.load()
        assert loaded.profiles == data.profiles
        assert list(loaded.profiles) == ["work", "home"]
        assert loaded.active_profile == "work"
        assert loaded.column_scope == ColumnScope.ADC
        assert loaded.sync_mode == SyncMode.OFF

    def test_missing_timestamp_not_written(self, store):
        store.save(ProfileSet(profiles={"p": Profile(user_account="a@x.com", user_project="p")}))
        raw = json.loads(store.profiles_file.read_text())
        assert "updated_at" not in raw["profiles"]["p"]

    def test_unknown_fields_preserved(self, store):
        store.profiles_file.write_text(json.dumps({
            "version": 3,
            "profiles": {
                "p": {"user_account": "a@x.com", "user_project": "p", "color": "blue"},
            },
        }))
        data = store.load()
        store.save(data)
        raw = json.loads(store.profiles_file.read_text())
        assert raw["version"] == 3
        assert raw["profiles"]["p"]["color"] == "blue"

    def test_invalid_entry_skipped_with_warning(self, store):
        store.profiles_file.write_text(json.dumps({
            "profiles": {
                "good": {"user_account": "a@x.com", "user_project": "p"},
                "bad": {"user_project": "p"},
            },
        }))
        data = store.load()
        assert list(data.profiles) == ["good"]
        assert len(store.warnings) == 1
        assert "bad" in store.warnings[0]

    def test_unknown_state_keys_preserved(self, store):
        store.state_file.write_text(json.dumps({"sync_mode": "add", "future_key": 1}))
        data = store.load()
        data.column_scope = ColumnScope.USER
        store.save_state(data)
        raw = json.loads(store.state_file.read_text())
        assert raw["future_key"] == 1
        assert raw["column_scope"] == "user"
        assert raw["sync_mode"] == "add"

    def test_empty_identity_fields_skipped(self, store):
        store.profiles_file.write_text(json.dumps({
            "profiles": {
                "blank": {"user_account": "", "user_project": ""},
                "good": {"user_account": "a@x.com", "user_project": "p"},
            },
        }))
        data = store.load()
        assert list(data.profiles) == ["good"]
        assert len(store.warnings) == 1
        assert "blank" in store.warnings[0]

    def test_corrupt_file_raises(self, store):
        store.profiles_file.write_text("{not json")
        with pytest.raises(InvalidDataError):
            store.load()

    def test_dangling_active_profile_dropped(self, store):
        store.save(ProfileSet(
            profiles={"p": Profile(user_account="a@x.com", user_project="p")},
            active_profile="p",
        ))
        store.save(ProfileSet(profiles={}, active_profile="p"))
        assert store.load().active_profile is None

    def test_adc_blob(self, store):
        store.save_adc("p", b'{"type": "authorized_user"}')
        assert store.has_adc("p")
        assert store.adc_path("p").read_bytes() == b'{"type": "authorized_user"}'
        assert oct(store.adc_path("p").stat().st_mode & 0o777) == "0o600"
        store.remove_adc("p")
        assert not store.has_adc("p")
        store.remove_adc("p")


class TestWriteAtomic:
    def test_failed_write_keeps_old_file(self, tmp_path):
        target = tmp_path / "profiles.json"
        target.write_text("old")
        with patch("gcloud_switch.profiles.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError):
                write_atomic(target, "new")
        assert target.read_text() == "old"
        assert os.listdir(tmp_path) == ["profiles.json"]

    def test_creates_parent_directory(self, tmp_path):
        target = tmp_path / "nested" / "state.json"
        write_atomic(target, "{}")
        assert target.read_text() == "{}"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
