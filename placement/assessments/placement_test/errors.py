"""
Placement Test Errors

Error taxonomy raised by the timed assessment engine. Every error is raised
synchronously to the caller and never retried by the engine itself.
"""

import datetime
from typing import Optional

from placement.common.exceptions import BaseError, NotFoundError, DuplicateError


class AssessmentError(BaseError):
    """Base exception class for assessment-related errors."""
    pass


class SessionNotFoundError(NotFoundError, AssessmentError):
    """The session id does not resolve to a stored session."""

    def __init__(self, session_id: str):
        super().__init__("Session", session_id)
        self.session_id = session_id


class LevelNotFoundError(NotFoundError, AssessmentError):
    """The level number is not part of the level catalog."""

    def __init__(self, level: int):
        super().__init__("Level", level)
        self.level = level


class InvalidSessionStateError(AssessmentError):
    """An operation was attempted on a session that is no longer in progress."""

    def __init__(self, session_id: str, status: str, action: str):
        super().__init__(
            f"Cannot {action} session {session_id}: action only allowed for in-progress "
            f"sessions (status is {status})"
        )
        self.session_id = session_id
        self.status = status
        self.action = action


class SessionExpiredError(AssessmentError):
    """The time limit of the session has passed; the session is now expired."""

    def __init__(self, session_id: str, expires_at: Optional[datetime.datetime] = None):
        when = f" at {expires_at.isoformat()}" if expires_at else ""
        super().__init__(f"Session {session_id} has expired{when}")
        self.session_id = session_id
        self.expires_at = expires_at


class SessionAlreadyActiveError(DuplicateError, AssessmentError):
    """A user already has an in-progress session for the level."""

    def __init__(self, user_id: str, level: int, session_id: Optional[str] = None):
        super().__init__("active session", f"{user_id}/level-{level}")
        self.user_id = user_id
        self.level = level
        self.session_id = session_id


class LevelLockedError(AssessmentError):
    """The progression rule does not unlock the level for the user yet."""

    def __init__(self, user_id: str, level: int, required_level: int):
        super().__init__(
            f"Level {level} is locked for user {user_id}: level {required_level} must be passed first"
        )
        self.user_id = user_id
        self.level = level
        self.required_level = required_level


class SessionAccessError(AssessmentError):
    """The session belongs to a different user."""

    def __init__(self, session_id: str, user_id: str):
        super().__init__(f"User {user_id} is not allowed to access session {session_id}")
        self.session_id = session_id
        self.user_id = user_id
