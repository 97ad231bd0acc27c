"""test suite for the deferred action queue and runner."""
import pytest
import sys
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gcloud_switch.domain.errors import ExternalFailure
from gcloud_switch.engine.pending import (
    Activate,
    ActionOutcome,
    ActionRunner,
    DeferredActionQueue,
    ReAuthenticate,
)
from gcloud_switch.profiles.models import ColumnScope, CredentialKind, Profile


@pytest.fixture
def profile():
    return Profile(
        user_account="me@x.com",
        user_project="proj",
        adc_account="svc@x.com",
        adc_quota_project="quota",
    )


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.activate.return_value = "Activated profile 'p'."
    return executor


class RecordingRunner:
    def __init__(self, fail=False):
        self.fail = fail
        self.ran = []

    def run(self, action):
        self.ran.append(action)
        if self.fail:
            raise ExternalFailure("boom")
        return ActionOutcome(action, True, "ok")


class TestDeferredActionQueue:
    def test_single_slot(self, profile):
        queue = DeferredActionQueue()
        assert queue.push(Activate("p", profile, ColumnScope.BOTH))
        assert not queue.push(Activate("q", profile, ColumnScope.BOTH))
        assert queue.pending.profile_name == "p"
        assert queue.busy

    def test_drain_empty(self):
        assert DeferredActionQueue().drain(RecordingRunner()) is None

    def test_drain_runs_and_clears(self, profile):
        queue = DeferredActionQueue()
        queue.push(Activate("p", profile, ColumnScope.BOTH))
        runner = RecordingRunner()
        outcome = queue.drain(runner)
        assert outcome.ok
        assert len(runner.ran) == 1
        assert queue.pending is None
        assert not queue.busy

    def test_failure_still_consumes_slot(self, profile):
        queue = DeferredActionQueue()
        queue.push(Activate("p", profile, ColumnScope.BOTH))
        with pytest.raises(ExternalFailure):
            queue.drain(RecordingRunner(fail=True))
        assert queue.pending is None
        assert not queue.executing
        assert queue.push(Activate("q", profile, ColumnScope.BOTH))

    def test_terminal_released_around_action(self, profile):
        events = []

        @contextmanager
        def release():
            events.append("suspend")
            yield
            events.append("resume")

        class Runner:
            def run(self, action):
                events.append("run")
                return ActionOutcome(action, True, "ok")

        queue = DeferredActionQueue()
        queue.push(Activate("p", profile, ColumnScope.BOTH))
        queue.drain(Runner(), release_terminal=release)
        assert events == ["suspend", "run", "resume"]

    def test_busy_while_executing(self, profile):
        queue = DeferredActionQueue()
        queue.push(Activate("p", profile, ColumnScope.BOTH))
        seen = []

        class Runner:
            def run(self, action):
                seen.append((queue.executing, queue.push(action)))
                return ActionOutcome(action, True, "ok")

        queue.drain(Runner())
        assert seen == [(True, False)]


class TestActionRunner:
    def test_activate(self, executor, profile):
        outcome = ActionRunner(executor).run(Activate("p", profile, ColumnScope.USER, exit_after=True))
        executor.activate.assert_called_once_with("p", profile, ColumnScope.USER)
        assert outcome.ok
        assert outcome.activated
        assert outcome.exit_requested
        assert outcome.message == "Activated profile 'p'."

    def test_activation_failure(self, executor, profile):
        executor.activate.side_effect = ExternalFailure("no such configuration")
        outcome = ActionRunner(executor).run(Activate("p", profile, ColumnScope.BOTH, exit_after=True))
        assert not outcome.ok
        assert not outcome.exit_requested
        assert outcome.message == "Activation failed: no such configuration"

    def test_reauth_then_activate(self, executor, profile):
        action = ReAuthenticate(
            "p", profile, ColumnScope.BOTH,
            (CredentialKind.USER, CredentialKind.ADC), then_activate=True,
        )
        outcome = ActionRunner(executor).run(action)
        assert [c.args[2] for c in executor.reauthenticate.call_args_list] == [
            CredentialKind.USER,
            CredentialKind.ADC,
        ]
        assert outcome.activated
        assert outcome.reauthenticated == ["me@x.com", "svc@x.com"]

    def test_reauth_only(self, executor, profile):
        action = ReAuthenticate("p", profile, ColumnScope.ADC, (CredentialKind.ADC,))
        outcome = ActionRunner(executor).run(action)
        executor.activate.assert_not_called()
        executor.activate_user.assert_not_called()
        assert not outcome.activated
        assert outcome.ok
        assert outcome.message == "ADC re-authenticated for 'p'."

    def test_user_reauth_reactivates_configuration(self, executor, profile):
        action = ReAuthenticate("p", profile, ColumnScope.USER, (CredentialKind.USER,))
        outcome = ActionRunner(executor).run(action)
        executor.activate_user.assert_called_once_with("p", profile)
        executor.activate.assert_not_called()
        assert outcome.ok
        assert outcome.activated
        assert not outcome.exit_requested
        assert outcome.message == "USER re-authenticated for 'p'."

    def test_user_reauth_activation_failure(self, executor, profile):
        executor.activate_user.side_effect = ExternalFailure("configuration locked")
        action = ReAuthenticate("p", profile, ColumnScope.USER, (CredentialKind.USER,))
        outcome = ActionRunner(executor).run(action)
        assert not outcome.ok
        assert outcome.reauthenticated == ["me@x.com"]
        assert outcome.message == "Activation failed: configuration locked"

    def test_reauth_failure_skips_activation(self, executor, profile):
        executor.reauthenticate.side_effect = ExternalFailure("login aborted")
        action = ReAuthenticate("p", profile, ColumnScope.USER, (CredentialKind.USER,), then_activate=True)
        outcome = ActionRunner(executor).run(action)
        executor.activate.assert_not_called()
        assert not outcome.ok
        assert outcome.message == "Re-auth failed: login aborted"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
