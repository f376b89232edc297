"""
JSON File Stores
================

File-backed session and user profile stores.

Layout:
    <root>/sessions/<user_id>/<user_id>_<timestamp>_<suffix>.json
                                                 one ECGSession per file
    <root>/profiles/<user_id>.json               one UserProfile per user

Records are pydantic JSON dumps. Unreadable or invalid files raise
PersistenceError rather than being skipped, so a corrupted history is
never mistaken for a short one.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import List

from pydantic import ValidationError

from cardio_stream.errors import PersistenceError
from cardio_stream.models.session import ECGSession, UserProfile


logger = logging.getLogger(__name__)


_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def _safe_name(value: str) -> str:
    name = _UNSAFE.sub("_", value).strip(".")
    if not name:
        raise PersistenceError(f"Invalid record name: {value!r}")
    return name


class JsonSessionStore:
    """
    Sessions stored as one JSON file each.

    Example:
        store = JsonSessionStore("./data")
        store.save_session(session)
        recent = store.load_recent_sessions("local-user", limit=100)
    """

    def __init__(self, root: str) -> None:
        self.root = Path(root) / "sessions"

    def load_recent_sessions(self, user_id: str, limit: int) -> List[ECGSession]:
        directory = self.root / _safe_name(user_id)
        if not directory.exists():
            return []

        sessions: List[ECGSession] = []
        try:
            for path in directory.glob("*.json"):
                sessions.append(ECGSession.model_validate_json(path.read_text(encoding="utf-8")))
        except (OSError, ValidationError) as e:
            raise PersistenceError(f"Failed to load sessions for {user_id}: {e}") from e

        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        return sessions[:limit]

    def save_session(self, session: ECGSession) -> None:
        user = _safe_name(session.user_id)
        directory = self.root / user
        stamp = session.timestamp.strftime("%Y%m%dT%H%M%S%f")
        # Random suffix keeps sessions with equal timestamps apart
        path = directory / f"{user}_{stamp}_{uuid.uuid4().hex[:8]}.json"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_text(session.model_dump_json(), encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to save session to {path}: {e}") from e
        logger.info(f"Saved session {session.session_name or path.stem} ({len(session.samples)} samples)")


class JsonUserProfileStore:
    """User profiles stored as one JSON file per user."""

    def __init__(self, root: str) -> None:
        self.root = Path(root) / "profiles"

    def load_user_profile(self, user_id: str) -> UserProfile:
        path = self.root / f"{_safe_name(user_id)}.json"
        if not path.exists():
            return UserProfile(user_id=user_id)
        try:
            return UserProfile.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise PersistenceError(f"Failed to load profile for {user_id}: {e}") from e

    def save_user_profile(self, profile: UserProfile) -> None:
        path = self.root / f"{_safe_name(profile.user_id)}.json"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_text(profile.model_dump_json(), encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to save profile to {path}: {e}") from e
