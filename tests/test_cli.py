"""test suite for the command line entry point."""
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gcloud_switch.cli.main import app
from gcloud_switch.domain.errors import ExternalFailure
from gcloud_switch.profiles import ProfileManager
from gcloud_switch.profiles.models import ColumnScope, Profile, ProfileSet

runner = CliRunner()


@pytest.fixture
def manager(tmp_path):
    gcloud = MagicMock()
    gcloud.discover_configurations.return_value = [("legacy", "old@x.com", "old-proj")]
    gcloud.read_active_configuration.return_value = None
    executor = MagicMock()
    executor.activate.return_value = "Activated user config for 'work'."
    manager = ProfileManager(tmp_path, executor=executor, gcloud=gcloud)
    manager.store.save(ProfileSet(
        profiles={"work": Profile(user_account="me@work.com", user_project="work-proj")},
    ))
    return manager


@pytest.fixture(autouse=True)
def wired(manager):
    with patch("gcloud_switch.cli.main.get_profile_manager", return_value=manager), \
            patch("gcloud_switch.cli.main.setup_logging"):
        yield


class TestCommands:
    def test_list(self):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "work" in result.output
        assert "me@work.com" in result.output

    def test_add(self, manager):
        result = runner.invoke(app, ["add", "home", "--account", "me@home.com", "--project", "home-proj"])
        assert result.exit_code == 0
        assert manager.store.load().profiles["home"].adc_account == "me@home.com"

    def test_add_duplicate(self):
        result = runner.invoke(app, ["add", "work", "--account", "a@x.com", "--project", "p"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_switch(self, manager):
        result = runner.invoke(app, ["switch", "work", "--scope", "user"])
        assert result.exit_code == 0
        assert "Activated user config" in result.output
        assert manager.executor.activate.call_args.args[2] == ColumnScope.USER
        assert manager.get_active_profile() == "work"

    def test_switch_failure(self, manager):
        manager.executor.activate.side_effect = ExternalFailure("gcloud not found")
        result = runner.invoke(app, ["switch", "work"])
        assert result.exit_code == 1
        assert "gcloud not found" in result.output

    def test_remove_with_yes(self, manager):
        result = runner.invoke(app, ["remove", "work", "--yes"])
        assert result.exit_code == 0
        assert manager.store.load().profiles == {}

    def test_remove_declined(self, manager):
        result = runner.invoke(app, ["remove", "work"], input="n\n")
        assert result.exit_code != 0
        assert "work" in manager.store.load().profiles

    def test_remove_missing(self):
        result = runner.invoke(app, ["remove", "ghost", "--yes"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_import(self, manager):
        result = runner.invoke(app, ["import"])
        assert result.exit_code == 0
        assert "Imported 'legacy'" in result.output
        assert set(manager.store.load().profiles) == {"work", "legacy"}

    def test_sync_without_remote(self, tmp_path):
        with patch("gcloud_switch.cli.sync_commands.get_sync_remote", return_value=None):
            result = runner.invoke(app, ["sync", "push"])
        assert result.exit_code == 1
        assert "not configured" in result.output.lower()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
