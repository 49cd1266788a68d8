"""
Placement Test Queries

Read model over the placement test repository: session details, the active
session lookup, the unlock rule and per-level statistics.
"""

from typing import Callable, List, Optional
import datetime

from placement.common.logger import app_logger
from placement.common.utils import utcnow
from placement.assessments.placement_test.errors import (
    InvalidSessionStateError,
    SessionNotFoundError
)
from placement.assessments.placement_test.levels import LevelCatalog
from placement.assessments.placement_test.models import (
    AssessmentSession,
    LevelAttempt,
    LevelStats,
    SessionDetails,
    SessionStatus,
    UserTestProgress
)
from placement.assessments.placement_test.repository import PlacementTestRepository

logger = app_logger.getChild("placement_test.queries")


class PlacementTestQueries:
    """
    Query layer used by the service and the HTTP controller.

    Reads never raise on an unknown user: progress and statistics fall back
    to their empty values.
    """

    def __init__(
        self,
        repository: PlacementTestRepository,
        catalog: LevelCatalog,
        clock: Callable[[], datetime.datetime] = utcnow
    ):
        self.repository = repository
        self.catalog = catalog
        self.clock = clock

    async def get_session_with_details(self, session_id: str) -> SessionDetails:
        """
        Assemble a session with its answers, assigned questions and level.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        question_ids = await self.repository.get_session_question_ids(session_id)
        questions = await self.repository.get_questions(question_ids)
        level_info = self.catalog.get(session.level) if session.level in self.catalog else None
        return SessionDetails(session=session, questions=questions, level_info=level_info)

    async def get_active_session(self, user_id: str, level: Optional[int] = None) -> Optional[AssessmentSession]:
        """
        Return the user's in-progress session, optionally for one level.

        A session found past its expiry is moved to EXPIRED and persisted,
        then skipped.
        """
        now = self.clock()
        sessions = await self.repository.list_sessions(
            user_id=user_id, level=level, status=SessionStatus.IN_PROGRESS
        )
        for session in sessions:
            if session.observe_expiry(now):
                await self._persist_expiry(session)
                continue
            return session
        return None

    async def _persist_expiry(self, session: AssessmentSession) -> None:
        try:
            await self.repository.update_session(session.id, {"status": SessionStatus.EXPIRED})
            logger.info(f"Session {session.id} of user {session.user_id} expired")
        except InvalidSessionStateError:
            # Another request already moved the session out of IN_PROGRESS
            logger.debug(f"Session {session.id} already left in-progress state")

    async def get_user_progress(self, user_id: str) -> UserTestProgress:
        """Progress cursor of a user, a fresh cursor if none is stored."""
        progress = await self.repository.get_progress(user_id)
        return progress or UserTestProgress(user_id=user_id)

    async def can_take_level(self, user_id: str, level: int) -> bool:
        """Level 1 is always open; level n needs level n-1 passed."""
        if level not in self.catalog:
            return False
        progress = await self.get_user_progress(user_id)
        return progress.is_unlocked(level)

    async def get_level_stats(self, user_id: str, level: int) -> LevelStats:
        attempts = await self.repository.list_attempts(user_id, level)
        return LevelStats.from_attempts(attempts)

    async def get_level_history(self, user_id: str, level: int) -> List[LevelAttempt]:
        """Attempts at one level, newest first."""
        return await self.repository.list_attempts(user_id, level)

    async def get_user_history(self, user_id: str) -> List[LevelAttempt]:
        """All attempts of a user, newest first."""
        return await self.repository.list_attempts(user_id)
