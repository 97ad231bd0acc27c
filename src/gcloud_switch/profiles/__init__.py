"""profile management for gcloud identities."""
from .manager import ProfileManager, ProfileError
from .store import ProfileStore
from .models import Profile, ProfileSet, AuthStatus, AuthState, ColumnScope, SyncMode
from .auth import reauthenticate_user, reauthenticate_adc, AuthenticationError

__all__ = [
    "ProfileManager",
    "ProfileError",
    "ProfileStore",
    "Profile",
    "ProfileSet",
    "AuthStatus",
    "AuthState",
    "ColumnScope",
    "SyncMode",
    "reauthenticate_user",
    "reauthenticate_adc",
    "AuthenticationError",
]
