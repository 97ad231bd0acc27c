"""test suite for scripted profile operations."""
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gcloud_switch.domain.errors import ExternalFailure, NotFoundError
from gcloud_switch.profiles import ProfileError, ProfileManager
from gcloud_switch.profiles.models import ColumnScope, Profile, ProfileSet, SyncMode


@pytest.fixture
def gcloud():
    gcloud = MagicMock()
    gcloud.discover_configurations.return_value = [
        ("work", "me@work.com", "work-proj"),
        ("home", "me@home.com", "home-proj"),
    ]
    gcloud.read_active_configuration.return_value = "home"
    return gcloud


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.activate.return_value = "Activated profile 'work'."
    return executor


@pytest.fixture
def manager(tmp_path, executor, gcloud):
    return ProfileManager(tmp_path, executor=executor, gcloud=gcloud)


def seed(manager, sync_mode=SyncMode.STRICT, **profiles):
    manager.store.save(ProfileSet(profiles=profiles, sync_mode=sync_mode))


class TestCreateProfile:
    def test_create_with_defaults(self, manager, executor):
        profile = manager.create_profile("work", "me@work.com", "work-proj")
        assert profile.adc_account == "me@work.com"
        assert profile.adc_quota_project == "work-proj"
        assert profile.updated_at is not None
        assert "work" in manager.list_profiles().profiles
        executor.create_configuration.assert_called_once_with("work", profile)

    def test_duplicate_name(self, manager):
        manager.create_profile("work", "me@work.com", "work-proj")
        with pytest.raises(ProfileError, match="already exists"):
            manager.create_profile("work", "x@y.com", "p")

    def test_empty_name(self, manager):
        with pytest.raises(ProfileError):
            manager.create_profile("  ", "me@work.com", "work-proj")

    def test_configuration_failure_saves_nothing(self, manager, executor):
        executor.create_configuration.side_effect = ExternalFailure("gcloud missing")
        with pytest.raises(ExternalFailure):
            manager.create_profile("work", "me@work.com", "work-proj")
        assert manager.list_profiles().profiles == {}

    def test_sync_off_skips_configuration(self, manager, executor):
        seed(manager, sync_mode=SyncMode.OFF)
        manager.create_profile("work", "me@work.com", "work-proj")
        executor.create_configuration.assert_not_called()


class TestRemoveAndSwitch:
    def test_remove(self, manager, executor):
        seed(manager, work=Profile(user_account="a@x.com", user_project="p"))
        manager.store.save_adc("work", b"{}")
        manager.remove_profile("work")
        assert manager.list_profiles().profiles == {}
        assert not manager.store.has_adc("work")
        executor.delete_configuration.assert_called_once_with("work")

    def test_remove_survives_adc_cleanup_failure(self, manager):
        seed(manager, work=Profile(user_account="a@x.com", user_project="p"))
        manager.store.remove_adc = MagicMock(side_effect=PermissionError("read-only"))
        manager.remove_profile("work")
        assert manager.list_profiles().profiles == {}

    def test_remove_missing(self, manager):
        with pytest.raises(NotFoundError):
            manager.remove_profile("ghost")

    def test_remove_survives_gcloud_failure(self, manager, executor):
        seed(manager, work=Profile(user_account="a@x.com", user_project="p"))
        executor.delete_configuration.side_effect = ExternalFailure("nope")
        manager.remove_profile("work")
        assert manager.list_profiles().profiles == {}

    def test_switch(self, manager, executor):
        seed(manager, work=Profile(user_account="a@x.com", user_project="p"))
        assert manager.switch_profile("work", ColumnScope.USER) == "Activated profile 'work'."
        assert executor.activate.call_args.args[2] == ColumnScope.USER
        assert manager.get_active_profile() == "work"

    def test_switch_missing(self, manager):
        with pytest.raises(NotFoundError, match="Available profiles: none"):
            manager.switch_profile("ghost")


class TestReconcile:
    def test_empty_set_imports_everything(self, manager):
        added, removed = manager.reconcile()
        assert added == ["work", "home"]
        assert removed == []
        data = manager.list_profiles()
        assert data.profiles["work"].user_project == "work-proj"
        assert data.active_profile == "home"

    def test_import_skips_existing(self, manager):
        seed(manager, work=Profile(user_account="mine@x.com", user_project="p"))
        assert manager.import_configurations() == ["home"]
        assert manager.list_profiles().profiles["work"].user_account == "mine@x.com"

    def test_configuration_without_project_not_imported(self, manager, gcloud):
        gcloud.discover_configurations.return_value = [
            ("work", "me@work.com", "work-proj"),
            ("bare", "me@bare.com", ""),
        ]
        assert manager.import_configurations() == ["work"]
        assert "bare" not in manager.list_profiles().profiles

    def test_strict_keeps_profile_of_configuration_without_project(self, manager, gcloud):
        gcloud.discover_configurations.return_value = [("bare", "me@bare.com", "")]
        seed(manager, bare=Profile(user_account="me@bare.com", user_project="chosen"))
        assert manager.reconcile() == ([], [])
        assert manager.list_profiles().profiles["bare"].user_project == "chosen"

    def test_strict_removes_vanished(self, manager, gcloud):
        seed(
            manager,
            work=Profile(user_account="a@x.com", user_project="p"),
            old=Profile(user_account="b@x.com", user_project="q"),
        )
        added, removed = manager.reconcile()
        assert added == ["home"]
        assert removed == ["old"]

    def test_add_only_keeps_vanished(self, manager):
        seed(manager, sync_mode=SyncMode.ADD_ONLY, old=Profile(user_account="b@x.com", user_project="q"))
        added, removed = manager.reconcile()
        assert removed == []
        assert set(manager.list_profiles().profiles) == {"old", "work", "home"}

    def test_off_only_adopts_active(self, manager, gcloud):
        seed(manager, sync_mode=SyncMode.OFF, home=Profile(user_account="b@x.com", user_project="q"))
        assert manager.reconcile() == ([], [])
        gcloud.discover_configurations.assert_not_called()
        assert manager.get_active_profile() == "home"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
