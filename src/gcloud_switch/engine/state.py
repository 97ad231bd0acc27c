import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..domain.errors import ExternalFailure, PersistenceError
from ..profiles.models import (
    AuthState,
    AuthStatus,
    ColumnScope,
    CredentialKind,
    Profile,
    ProfileSet,
    SyncMode,
)
from .pending import Activate, ActionOutcome, DeferredActionQueue, ReAuthenticate

logger = logging.getLogger(__name__)

SCOPE_ORDER = [ColumnScope.BOTH, ColumnScope.USER, ColumnScope.ADC]

ACCOUNT_FIELDS = {CredentialKind.USER: "user_account", CredentialKind.ADC: "adc_account"}
PROJECT_FIELDS = {CredentialKind.USER: "user_project", CredentialKind.ADC: "adc_quota_project"}

# (field, prompt, field whose value is offered as default)
ADD_STEPS: List[Tuple[str, str, Optional[str]]] = [
    ("name", "Profile name", None),
    ("user_account", "User account (email)", None),
    ("user_project", "User project", None),
    ("adc_account", "ADC account", "user_account"),
    ("adc_quota_project", "ADC quota project", "user_project"),
]


@dataclass
class Normal:
    pass


@dataclass
class Edit:
    target: str
    kind: CredentialKind
    field: str
    buffer: str
    cursor: int
    suggestions: List[str] = field(default_factory=list)
    highlight: int = 0
    dropdown_open: bool = False
    # values typed into the other field of the same column
    staged: Dict[str, str] = field(default_factory=dict)


@dataclass
class AddProfile:
    step: int = 0
    collected: Dict[str, str] = field(default_factory=dict)
    buffer: str = ""

    @property
    def field(self) -> str:
        return ADD_STEPS[self.step][0]

    @property
    def default(self) -> str:
        source = ADD_STEPS[self.step][2]
        return self.collected.get(source, "") if source else ""


@dataclass
class ConfirmDelete:
    target: str


Mode = Union[Normal, Edit, AddProfile, ConfirmDelete]


class InteractionStateMachine:
    """
    owns the UI-visible state and applies every input event to it.

    the only side effects taken directly are persistence and best-effort
    gcloud configuration bookkeeping; anything needing the terminal goes to
    the deferred action queue.
    """

    def __init__(
        self,
        profiles: ProfileSet,
        store,
        executor=None,
        scheduler=None,
        queue: Optional[DeferredActionQueue] = None,
        known_accounts: Callable[[], Iterable[str]] = list,
    ):
        self.profiles = profiles
        self.store = store
        self.executor = executor
        self.scheduler = scheduler
        self.queue = queue or DeferredActionQueue()
        self.known_accounts = known_accounts
        self.auth: Dict[str, AuthStatus] = {}
        self.mode: Mode = Normal()
        self.status: Optional[str] = None
        self.should_quit = False
        self.selected = 0
        names = profiles.names()
        if profiles.active_profile in names:
            self.selected = names.index(profiles.active_profile)

    # -- queries -------------------------------------------------------------

    @property
    def names(self) -> List[str]:
        return self.profiles.names()

    @property
    def scope(self) -> ColumnScope:
        return self.profiles.column_scope

    @property
    def selected_name(self) -> Optional[str]:
        names = self.names
        return names[self.selected] if names else None

    @property
    def selected_profile(self) -> Optional[Profile]:
        name = self.selected_name
        return self.profiles.profiles[name] if name else None

    def leg_state(self, profile: Profile, kind: CredentialKind) -> Optional[AuthState]:
        """state of one leg, None while no result has arrived."""
        status = self.auth.get(profile.account_for(kind))
        return status.state if status else None

    def is_checking(self, account: str) -> bool:
        return bool(self.scheduler and self.scheduler.is_checking(account))

    def prompt(self) -> Optional[str]:
        if isinstance(self.mode, AddProfile):
            label = ADD_STEPS[self.mode.step][1]
            default = self.mode.default
            return f"{label} [{default}]:" if default else f"{label}:"
        if isinstance(self.mode, ConfirmDelete):
            return f"Delete profile '{self.mode.target}'? (y/n)"
        return None

    # -- background results --------------------------------------------------

    def start(self) -> None:
        """kick off validity checks for every account in the set."""
        if self.scheduler:
            self.scheduler.schedule(self.profiles.accounts())

    def apply_auth(self, statuses: Iterable[AuthStatus]) -> bool:
        changed = False
        for status in statuses:
            self.auth[status.account] = status
            changed = True
        return changed

    def poll_auth(self) -> bool:
        if not self.scheduler:
            return False
        return self.apply_auth(self.scheduler.poll())

    def complete(self, outcome: ActionOutcome) -> None:
        """fold a drained action's result back into the state."""
        self.status = outcome.message
        if outcome.reauthenticated:
            for account in outcome.reauthenticated:
                self.auth.pop(account, None)
            if self.scheduler:
                self.scheduler.refresh(outcome.reauthenticated)
        if outcome.activated:
            self.profiles.active_profile = outcome.action.profile_name
            self.store.save_state(self.profiles)
        if outcome.exit_requested:
            self.should_quit = True

    # -- input ---------------------------------------------------------------

    def handle_key(self, key: str, character: Optional[str] = None) -> bool:
        """
        apply one key press.

        args:
            key: key name ("up", "enter", "a", ...)
            character: printable character for the key, if any

        returns:
            False if the key was ignored
        """
        if self.queue.busy:
            # the terminal belongs to a deferred action
            return False
        if character is None and len(key) == 1:
            character = key
        if key == "space":
            character = " "

        if isinstance(self.mode, Normal):
            return self._normal_key(key)
        if isinstance(self.mode, Edit):
            return self._edit_key(self.mode, key, character)
        if isinstance(self.mode, AddProfile):
            return self._add_key(self.mode, key, character)
        return self._confirm_key(self.mode, key, character)

    def _normal_key(self, key: str) -> bool:
        count = len(self.names)
        if key in ("q", "escape"):
            self.should_quit = True
        elif key == "up":
            self.selected = max(self.selected - 1, 0)
        elif key == "down":
            self.selected = min(self.selected + 1, max(count - 1, 0))
        elif key in ("left", "right"):
            index = SCOPE_ORDER.index(self.scope)
            index = index - 1 if key == "left" else index + 1
            self.profiles.column_scope = SCOPE_ORDER[max(0, min(index, len(SCOPE_ORDER) - 1))]
            self.store.save_state(self.profiles)
        elif key == "s":
            self.profiles.sync_mode = self.profiles.sync_mode.next()
            self.store.save_state(self.profiles)
            self.status = f"Sync mode: {self.profiles.sync_mode.value}"
        elif key in ("a", "n"):
            self.mode = AddProfile()
            self.status = None
        elif not count:
            return False
        elif key in ("space", "enter"):
            self._request_activation(exit_after=key == "enter")
        elif key == "r":
            self._request_reauth()
        elif key == "e":
            self._begin_edit()
        elif key == "d":
            self.mode = ConfirmDelete(target=self.selected_name)
        else:
            return False
        return True

    # -- activation ----------------------------------------------------------

    def _scope_kinds(self) -> Tuple[CredentialKind, ...]:
        if self.scope == ColumnScope.USER:
            return (CredentialKind.USER,)
        if self.scope == ColumnScope.ADC:
            return (CredentialKind.ADC,)
        return (CredentialKind.USER, CredentialKind.ADC)

    def _request_activation(self, exit_after: bool) -> None:
        name, profile = self.selected_name, self.selected_profile
        stale = tuple(
            kind for kind in self._scope_kinds()
            if self.leg_state(profile, kind) != AuthState.VALID
        )
        if stale:
            action = ReAuthenticate(
                name, profile.model_copy(), self.scope, stale, then_activate=True, exit_after=exit_after
            )
        else:
            action = Activate(name, profile.model_copy(), self.scope, exit_after=exit_after)
        self._push(action)

    def _request_reauth(self) -> None:
        action = ReAuthenticate(
            self.selected_name, self.selected_profile.model_copy(), self.scope, self._scope_kinds()
        )
        self._push(action)

    def _push(self, action) -> None:
        if not self.queue.push(action):
            self.status = "Another action is still running."

    # -- edit ----------------------------------------------------------------

    def _begin_edit(self) -> None:
        kind = CredentialKind.ADC if self.scope == ColumnScope.ADC else CredentialKind.USER
        field_name = ACCOUNT_FIELDS[kind]
        value = getattr(self.selected_profile, field_name)
        self.mode = Edit(
            target=self.selected_name, kind=kind, field=field_name, buffer=value, cursor=len(value)
        )
        self.status = None

    def _candidates(self, edit: Edit) -> List[str]:
        fields = ACCOUNT_FIELDS if edit.field in ACCOUNT_FIELDS.values() else PROJECT_FIELDS
        seen = set()
        for profile in self.profiles.profiles.values():
            for name in fields.values():
                value = getattr(profile, name)
                if value:
                    seen.add(value)
        if fields is ACCOUNT_FIELDS:
            seen.update(a for a in self.known_accounts() if a)
        return sorted(seen)

    def _filter(self, edit: Edit) -> List[str]:
        prefix = edit.buffer.lower()
        return [c for c in self._candidates(edit) if c.lower().startswith(prefix)]

    def _refilter(self, edit: Edit) -> None:
        if not edit.dropdown_open:
            return
        edit.suggestions = self._filter(edit)
        if not edit.suggestions:
            edit.dropdown_open = False
            edit.highlight = 0
        else:
            edit.highlight = min(edit.highlight, len(edit.suggestions) - 1)

    def _edit_key(self, edit: Edit, key: str, character: Optional[str]) -> bool:
        if edit.dropdown_open:
            if key == "down":
                edit.highlight = min(edit.highlight + 1, len(edit.suggestions) - 1)
                return True
            if key == "up":
                edit.highlight = max(edit.highlight - 1, 0)
                return True
            if key == "enter":
                edit.buffer = edit.suggestions[edit.highlight]
                edit.cursor = len(edit.buffer)
                edit.dropdown_open = False
                return True
            if key == "escape":
                edit.dropdown_open = False
                return True

        if key == "escape":
            self.mode = Normal()
            self.status = "Edit cancelled."
        elif key == "enter":
            self._commit_edit(edit)
        elif key == "down":
            edit.suggestions = self._filter(edit)
            if edit.suggestions:
                edit.dropdown_open = True
                edit.highlight = 0
            else:
                self.status = "No suggestions."
        elif key == "tab":
            edit.staged[edit.field] = edit.buffer
            pair = (ACCOUNT_FIELDS[edit.kind], PROJECT_FIELDS[edit.kind])
            edit.field = pair[1] if edit.field == pair[0] else pair[0]
            profile = self.profiles.profiles[edit.target]
            edit.buffer = edit.staged.get(edit.field, getattr(profile, edit.field))
            edit.cursor = len(edit.buffer)
            edit.dropdown_open = False
        elif key == "left":
            edit.cursor = max(edit.cursor - 1, 0)
        elif key == "right":
            edit.cursor = min(edit.cursor + 1, len(edit.buffer))
        elif key == "home":
            edit.cursor = 0
        elif key == "end":
            edit.cursor = len(edit.buffer)
        elif key == "backspace":
            if edit.cursor > 0:
                edit.buffer = edit.buffer[:edit.cursor - 1] + edit.buffer[edit.cursor:]
                edit.cursor -= 1
                self._refilter(edit)
        elif key == "delete":
            edit.buffer = edit.buffer[:edit.cursor] + edit.buffer[edit.cursor + 1:]
            self._refilter(edit)
        elif character and character.isprintable():
            edit.buffer = edit.buffer[:edit.cursor] + character + edit.buffer[edit.cursor:]
            edit.cursor += len(character)
            self._refilter(edit)
        else:
            return False
        return True

    def _commit_edit(self, edit: Edit) -> None:
        values = dict(edit.staged)
        values[edit.field] = edit.buffer
        values = {k: v.strip() for k, v in values.items()}
        empty = [k for k, v in values.items() if not v]
        if empty:
            self.status = f"{empty[0].replace('_', ' ')} cannot be empty."
            return

        current = self.profiles.profiles[edit.target]
        if all(getattr(current, k) == v for k, v in values.items()):
            self.mode = Normal()
            self.status = "No changes."
            return

        updated = current.model_copy(update=values)
        updated.touch()
        self._replace(edit.target, updated)
        self.mode = Normal()
        self.status = f"Profile '{edit.target}' updated."
        if self.scheduler:
            self.scheduler.schedule(self.profiles.accounts())

    def _replace(self, name: str, profile: Optional[Profile]) -> None:
        """swap one entry (None removes it) and persist, undoing the swap if the write fails."""
        before = dict(self.profiles.profiles)
        active_before = self.profiles.active_profile
        if profile is None:
            del self.profiles.profiles[name]
            if self.profiles.active_profile == name:
                self.profiles.active_profile = None
        else:
            self.profiles.profiles[name] = profile
        try:
            self.store.save(self.profiles)
        except PersistenceError:
            self.profiles.profiles = before
            self.profiles.active_profile = active_before
            raise

    # -- add -----------------------------------------------------------------

    def _add_key(self, add: AddProfile, key: str, character: Optional[str]) -> bool:
        if key == "escape":
            self.mode = Normal()
            self.status = "Add cancelled."
        elif key == "enter":
            self._advance_add(add)
        elif key == "backspace":
            add.buffer = add.buffer[:-1]
        elif character and character.isprintable():
            add.buffer += character
        else:
            return False
        return True

    def _advance_add(self, add: AddProfile) -> None:
        value = add.buffer.strip() or add.default
        label = ADD_STEPS[add.step][1]
        if not value:
            self.status = f"{label} cannot be empty."
            return
        if add.field == "name" and value in self.profiles.profiles:
            self.status = f"Profile '{value}' already exists."
            return

        add.collected[add.field] = value
        add.buffer = ""
        self.status = None
        if add.step + 1 < len(ADD_STEPS):
            add.step += 1
            return

        name = add.collected.pop("name")
        profile = Profile(**add.collected)
        profile.touch()
        self._replace(name, profile)
        self.mode = Normal()
        self.selected = self.names.index(name)
        self.status = f"Profile '{name}' added."
        if self.scheduler:
            self.scheduler.schedule(self.profiles.accounts())
        if self.executor and self.profiles.sync_mode != SyncMode.OFF:
            try:
                self.executor.create_configuration(name, profile)
            except ExternalFailure as e:
                logger.warning(f"could not create gcloud configuration '{name}': {e}")
                self.status += f" (gcloud configuration not created: {e})"

    # -- delete --------------------------------------------------------------

    def _confirm_key(self, confirm: ConfirmDelete, key: str, character: Optional[str]) -> bool:
        self.mode = Normal()
        if character not in ("y", "Y"):
            self.status = "Delete cancelled."
            return True

        name = confirm.target
        self._replace(name, None)
        self.selected = min(self.selected, max(len(self.names) - 1, 0))
        self.status = f"Deleted profile '{name}'."
        try:
            self.store.remove_adc(name)
        except OSError as e:
            logger.warning(f"could not remove stored ADC for '{name}': {e}")
        if self.executor and self.profiles.sync_mode == SyncMode.STRICT:
            try:
                self.executor.delete_configuration(name)
            except ExternalFailure as e:
                logger.warning(f"could not delete gcloud configuration '{name}': {e}")
                self.status += f" (gcloud configuration kept: {e})"
        return True
