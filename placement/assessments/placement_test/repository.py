"""
Placement Test Repository

This module defines the storage port required by the placement test
engine. Implementations live in memory_repository (development and tests)
and sql_repository (SQLAlchemy).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from placement.assessments.placement_test.models import (
    AssessmentSession,
    LevelAttempt,
    Question,
    SessionStatus,
    UserTestProgress
)


class PlacementTestRepository(ABC):
    """
    Abstract repository for placement test sessions and their history.

    Sessions returned by get_session carry their recorded answers. Every
    write is committed before the call returns.
    """

    @abstractmethod
    async def create_session(self, session: AssessmentSession, question_ids: List[str]) -> AssessmentSession:
        """
        Persist a new in-progress session with its assigned questions.

        Args:
            session: Freshly created session aggregate
            question_ids: Ordered ids of the questions assigned to the session

        Returns:
            The stored session

        Raises:
            SessionAlreadyActiveError: If the user already has an in-progress
                session for the same level
            DatabaseError: If the session could not be stored
        """
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[AssessmentSession]:
        """
        Retrieve a session together with its answers.

        Returns:
            The session if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_session(
        self,
        session_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[SessionStatus] = SessionStatus.IN_PROGRESS
    ) -> AssessmentSession:
        """
        Write terminal-state fields back to a session.

        The update only applies while the stored status equals
        expected_status, so two concurrent transitions of the same session
        cannot both succeed.

        Args:
            session_id: Session to update
            patch: Field values to write (status, score, passed, ...)
            expected_status: Required current status, None to skip the check

        Returns:
            The updated session

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidSessionStateError: If the stored status does not match
        """
        pass

    @abstractmethod
    async def list_sessions(
        self,
        user_id: Optional[str] = None,
        level: Optional[int] = None,
        status: Optional[SessionStatus] = None
    ) -> List[AssessmentSession]:
        """List sessions matching the filters, newest first."""
        pass

    @abstractmethod
    async def get_session_question_ids(self, session_id: str) -> List[str]:
        """Ids of the questions assigned to a session, in assignment order."""
        pass

    @abstractmethod
    async def upsert_answer(self, session_id: str, question_id: str, answer: str) -> None:
        """
        Store the answer to one question, replacing any previous answer.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        pass

    @abstractmethod
    async def save_questions(self, questions: List[Question]) -> None:
        """Insert or replace questions by id."""
        pass

    @abstractmethod
    async def get_questions(self, question_ids: List[str]) -> List[Question]:
        """Questions for the given ids, in the order requested; unknown ids are skipped."""
        pass

    @abstractmethod
    async def get_questions_for_level(self, level: int, limit: Optional[int] = None) -> List[Question]:
        """Questions of a level ordered by sort_order."""
        pass

    @abstractmethod
    async def list_attempts(self, user_id: str, level: Optional[int] = None) -> List[LevelAttempt]:
        """Attempts of a user, newest first, optionally for one level."""
        pass

    @abstractmethod
    async def get_progress(self, user_id: str) -> Optional[UserTestProgress]:
        pass

    @abstractmethod
    async def record_completion(
        self,
        session: AssessmentSession,
        top_level: int
    ) -> Tuple[LevelAttempt, UserTestProgress]:
        """
        Persist a completed session together with its attempt and progress.

        The session's terminal fields, the new LevelAttempt and the updated
        progress cursor are written in one unit: either all of them are
        stored or none is. The attempt number and the progress counters are
        computed from the stored history inside that unit, so concurrent
        completions by the same user never lose an update.

        Args:
            session: Session aggregate already moved to COMPLETED
            top_level: Highest level of the catalog, caps current_level

        Returns:
            The stored attempt and the user's updated progress

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidSessionStateError: If the stored session is no longer
                in progress
            DatabaseError: If the completion could not be stored
        """
        pass
