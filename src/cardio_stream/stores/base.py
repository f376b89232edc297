"""
Store Interfaces
================

External persistence the analysis pipeline reads from and writes to.

Implementations raise PersistenceError for every storage failure; callers
decide whether to fall back to cached data.
"""

from typing import List, Protocol

from cardio_stream.models.session import ECGSession, UserProfile


class SessionStore(Protocol):
    """Completed ECG recordings."""

    def load_recent_sessions(self, user_id: str, limit: int) -> List[ECGSession]:
        """Most recent sessions first, at most ``limit`` of them."""
        ...

    def save_session(self, session: ECGSession) -> None:
        ...


class UserProfileStore(Protocol):
    """Wearer demographics."""

    def load_user_profile(self, user_id: str) -> UserProfile:
        """Stored profile, or a profile of defaults when none exists."""
        ...

    def save_user_profile(self, profile: UserProfile) -> None:
        ...
