"""
In-Memory Stores
================

Process-local stores for tests and for running without a data directory.
"""

from typing import Dict, List

from cardio_stream.models.session import ECGSession, UserProfile


class InMemorySessionStore:
    """Sessions kept in a per-user list."""

    def __init__(self) -> None:
        self._sessions: Dict[str, List[ECGSession]] = {}

    def load_recent_sessions(self, user_id: str, limit: int) -> List[ECGSession]:
        sessions = sorted(
            self._sessions.get(user_id, []),
            key=lambda s: s.timestamp,
            reverse=True,
        )
        return sessions[:limit]

    def save_session(self, session: ECGSession) -> None:
        self._sessions.setdefault(session.user_id, []).append(session.model_copy(deep=True))

    def __len__(self) -> int:
        return sum(len(sessions) for sessions in self._sessions.values())


class InMemoryUserProfileStore:
    """User profiles keyed by user id."""

    def __init__(self) -> None:
        self._profiles: Dict[str, UserProfile] = {}

    def load_user_profile(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else UserProfile(user_id=user_id)

    def save_user_profile(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile.model_copy(deep=True)
