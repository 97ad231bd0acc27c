"""actions that need the terminal to themselves."""
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Callable, ContextManager, List, Optional, Tuple, Union

from ..domain.errors import ExternalFailure
from ..profiles.models import ColumnScope, CredentialKind, Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Activate:
    profile_name: str
    profile: Profile
    scope: ColumnScope
    exit_after: bool = False


@dataclass(frozen=True)
class ReAuthenticate:
    profile_name: str
    profile: Profile
    scope: ColumnScope
    kinds: Tuple[CredentialKind, ...]
    # activation that follows a successful login
    then_activate: bool = False
    exit_after: bool = False


PendingAction = Union[Activate, ReAuthenticate]


@dataclass
class ActionOutcome:
    action: PendingAction
    ok: bool
    message: str
    activated: bool = False
    reauthenticated: List[str] = field(default_factory=list)

    @property
    def exit_requested(self) -> bool:
        return self.ok and self.action.exit_after


class ActionRunner:
    """executes a pending action against the activation executor."""

    def __init__(self, executor):
        self.executor = executor

    def run(self, action: PendingAction) -> ActionOutcome:
        name = action.profile_name
        reauthenticated = []

        if isinstance(action, ReAuthenticate):
            for kind in action.kinds:
                try:
                    self.executor.reauthenticate(name, action.profile, kind)
                except ExternalFailure as e:
                    logger.warning(f"re-authentication of '{name}' ({kind.value}) failed: {e}")
                    return ActionOutcome(action, False, f"Re-auth failed: {e}", False, reauthenticated)
                reauthenticated.append(action.profile.account_for(kind))
            if not action.then_activate:
                # a fresh user login points gcloud back at this profile's configuration
                activated = CredentialKind.USER in action.kinds
                if activated:
                    try:
                        self.executor.activate_user(name, action.profile)
                    except ExternalFailure as e:
                        logger.warning(f"activation of '{name}' after re-auth failed: {e}")
                        return ActionOutcome(
                            action, False, f"Activation failed: {e}", False, reauthenticated
                        )
                legs = "/".join(kind.value.upper() for kind in action.kinds)
                return ActionOutcome(
                    action, True, f"{legs} re-authenticated for '{name}'.", activated, reauthenticated
                )

        try:
            message = self.executor.activate(name, action.profile, action.scope)
        except ExternalFailure as e:
            logger.warning(f"activation of '{name}' failed: {e}")
            return ActionOutcome(action, False, f"Activation failed: {e}", False, reauthenticated)
        return ActionOutcome(action, True, message, True, reauthenticated)


class DeferredActionQueue:
    """
    single-slot hand-off between input handling and the outer loop.

    the state machine pushes; the outer loop drains between frames, releasing
    the terminal for the duration of the action.
    """

    def __init__(self):
        self._pending: Optional[PendingAction] = None
        self._executing = False

    @property
    def pending(self) -> Optional[PendingAction]:
        return self._pending

    @property
    def executing(self) -> bool:
        return self._executing

    @property
    def busy(self) -> bool:
        return self._pending is not None or self._executing

    def push(self, action: PendingAction) -> bool:
        """
        queue an action.

        returns:
            False if another action is still pending or running
        """
        if self.busy:
            return False
        self._pending = action
        return True

    def drain(
        self,
        runner: ActionRunner,
        release_terminal: Callable[[], ContextManager] = nullcontext,
    ) -> Optional[ActionOutcome]:
        """
        run the pending action, if any, with the terminal released.

        the slot is cleared before running, so success and failure both consume it.
        """
        action = self._pending
        if action is None:
            return None
        self._pending = None
        self._executing = True
        try:
            with release_terminal():
                return runner.run(action)
        finally:
            self._executing = False
