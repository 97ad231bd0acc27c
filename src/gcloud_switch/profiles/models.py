"""data models for profile management."""
import time
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ColumnScope(str, Enum):
    """which half of a profile an operation targets."""
    BOTH = "both"
    USER = "user"
    ADC = "adc"


class SyncMode(str, Enum):
    """how profiles follow gcloud configurations."""
    STRICT = "strict"
    ADD_ONLY = "add"
    OFF = "off"

    def next(self) -> "SyncMode":
        order = [SyncMode.STRICT, SyncMode.ADD_ONLY, SyncMode.OFF]
        return order[(order.index(self) + 1) % len(order)]


class AuthState(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


class CredentialKind(str, Enum):
    USER = "user"
    ADC = "adc"


IDENTITY_FIELDS = ("user_account", "user_project", "adc_account", "adc_quota_project")


def now_timestamp() -> int:
    return int(time.time())


class Profile(BaseModel):
    """a user identity paired with an application-default identity."""
    # unknown keys written by newer versions survive a load/save cycle
    model_config = ConfigDict(extra="allow")

    user_account: str = Field(min_length=1)
    user_project: str = Field(min_length=1)
    adc_account: str = ""
    adc_quota_project: str = ""
    updated_at: Optional[int] = None  # unix seconds

    def model_post_init(self, __context) -> None:
        if not self.adc_account:
            self.adc_account = self.user_account
        if not self.adc_quota_project:
            self.adc_quota_project = self.user_project

    def content(self) -> dict:
        """everything except sync bookkeeping."""
        return self.model_dump(exclude={"updated_at"})

    def same_content(self, other: "Profile") -> bool:
        return self.content() == other.content()

    def touch(self) -> None:
        self.updated_at = now_timestamp()

    def account_for(self, kind: CredentialKind) -> str:
        return self.user_account if kind == CredentialKind.USER else self.adc_account

    def project_for(self, kind: CredentialKind) -> str:
        return self.user_project if kind == CredentialKind.USER else self.adc_quota_project


class ProfileSet(BaseModel):
    """complete profile collection plus session state."""
    profiles: Dict[str, Profile] = Field(default_factory=dict)
    active_profile: Optional[str] = None
    column_scope: ColumnScope = ColumnScope.BOTH
    sync_mode: SyncMode = SyncMode.STRICT

    @classmethod
    def empty(cls) -> "ProfileSet":
        """create empty profile set."""
        return cls()

    def names(self):
        return list(self.profiles.keys())

    def accounts(self) -> set:
        """every distinct account referenced by any profile."""
        found = set()
        for profile in self.profiles.values():
            for account in (profile.user_account, profile.adc_account):
                if account:
                    found.add(account)
        return found


class SessionState(BaseModel):
    """contents of state.json."""
    model_config = ConfigDict(extra="allow")

    active_profile: Optional[str] = None
    column_scope: ColumnScope = ColumnScope.BOTH
    sync_mode: SyncMode = SyncMode.STRICT


class AuthStatus(BaseModel):
    """validity of one account's stored credential. never persisted."""
    model_config = ConfigDict(frozen=True)

    account: str
    state: AuthState
    checked_at: datetime

    @property
    def usable(self) -> bool:
        return self.state == AuthState.VALID
