"""
Placement Test Service

Application layer of the timed assessment engine. The service loads session
state from the repository, lets the AssessmentSession aggregate decide each
transition, and writes the outcome back together with the attempt history
and the user's progress cursor.
"""

import datetime
from typing import Any, Callable, Dict, List, Optional

from placement.config import Settings, settings as default_settings
from placement.common.logger import app_logger, LoggerAdapter, log_execution_time
from placement.common.exceptions import ValidationError
from placement.common.utils import utcnow
from placement.assessments.placement_test.errors import (
    InvalidSessionStateError,
    LevelLockedError,
    SessionAccessError,
    SessionAlreadyActiveError,
    SessionExpiredError,
    SessionNotFoundError
)
from placement.assessments.placement_test.levels import Level, LevelCatalog
from placement.assessments.placement_test.models import (
    AssessmentSession,
    LevelStatus,
    SessionDetails,
    SessionStatus,
    TransitionResult
)
from placement.assessments.placement_test.queries import PlacementTestQueries
from placement.assessments.placement_test.question_bank import load_question_bank, seed_question_bank
from placement.assessments.placement_test.repository import PlacementTestRepository

logger = app_logger.getChild("placement_test.service")

# Level card affordances per display status: (action_label, button_variant)
LEVEL_ACTIONS = {
    LevelStatus.PASSED: ("Try Again", "outline"),
    LevelStatus.AVAILABLE: ("Start Test", "primary"),
    LevelStatus.LOCKED: ("Locked", "disabled"),
}


class PlacementTestService:
    """
    Service orchestrating placement test sessions.

    Every public operation returns plain serialized data; domain failures are
    raised as AssessmentError subclasses and never retried here.
    """

    def __init__(
        self,
        repository: PlacementTestRepository,
        catalog: Optional[LevelCatalog] = None,
        clock: Callable[[], datetime.datetime] = utcnow
    ):
        """
        Initialize the service.

        Args:
            repository: Storage for sessions, answers, attempts and progress
            catalog: Level configuration, defaults to the standard 12 levels
            clock: Source of the current UTC time
        """
        self.repository = repository
        self.catalog = catalog or LevelCatalog.default()
        self.clock = clock
        self.queries = PlacementTestQueries(repository, self.catalog, clock)
        self.log = LoggerAdapter(logger)

    async def seed_questions(self, path: Optional[str] = None) -> int:
        """Load the question bank file into the repository."""
        return await seed_question_bank(self.repository, load_question_bank(path))

    def _check_owner(self, session: AssessmentSession, user_id: Optional[str]) -> None:
        if user_id is not None and session.user_id != user_id:
            self.log.with_context(session_id=session.id, user_id=user_id).warning(
                "Rejected access to a session owned by another user"
            )
            raise SessionAccessError(session.id, user_id)

    async def _load_session(self, session_id: str, user_id: Optional[str]) -> AssessmentSession:
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        self._check_owner(session, user_id)
        return session

    async def _record_expiry(self, session: AssessmentSession) -> None:
        """Persist an EXPIRED transition observed by the aggregate."""
        try:
            await self.repository.update_session(session.id, {"status": SessionStatus.EXPIRED})
        except InvalidSessionStateError:
            logger.debug(f"Session {session.id} already left in-progress state")
            return
        self.log.with_context(session_id=session.id, user_id=session.user_id).info(
            f"Session expired at {session.expires_at.isoformat()}"
        )

    async def _raise_for(self, session: AssessmentSession, result: TransitionResult, action: str) -> None:
        if result is TransitionResult.EXPIRED:
            await self._record_expiry(session)
            raise SessionExpiredError(session.id, session.expires_at)
        if result is TransitionResult.INVALID_STATE:
            self.log.with_context(session_id=session.id, user_id=session.user_id).warning(
                f"Rejected {action}: session is {session.status.value}"
            )
            raise InvalidSessionStateError(session.id, session.status.value, action)

    async def start_session(self, user_id: str, level: int) -> Dict[str, Any]:
        """
        Start a timed session at a level.

        Args:
            user_id: User starting the test
            level: Level number to attempt

        Returns:
            Serialized session with its public questions and level info

        Raises:
            LevelNotFoundError: If the level is not configured
            LevelLockedError: If the previous level has not been passed
            SessionAlreadyActiveError: If an unexpired session is in progress
        """
        level_info = self.catalog.get(level)
        progress = await self.queries.get_user_progress(user_id)
        if not progress.is_unlocked(level):
            self.log.with_context(user_id=user_id, level=level).warning("Rejected start of a locked level")
            raise LevelLockedError(user_id, level, level_info.prerequisite_level)

        # Expires a stale session so it no longer blocks the new one
        active = await self.queries.get_active_session(user_id, level)
        if active is not None:
            raise SessionAlreadyActiveError(user_id, level, active.id)

        questions = await self.repository.get_questions_for_level(level, limit=level_info.question_count)
        if not questions:
            logger.warning(f"Level {level} has no questions in the question bank")

        session = AssessmentSession.create(
            None, user_id, level, level_info.duration_minutes, now=self.clock()
        )
        stored = await self.repository.create_session(session, [q.id for q in questions])
        self.log.with_context(session_id=stored.id, user_id=user_id, level=level).info(
            f"Session started with {len(questions)} questions, expires at {stored.expires_at.isoformat()}"
        )
        return SessionDetails(stored, questions, level_info).to_dict()

    async def submit_answer(
        self,
        session_id: str,
        question_id: str,
        answer: str,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Record the answer to one question of an in-progress session.

        Resubmitting the same question replaces the earlier answer.

        Raises:
            ValidationError: If question_id is empty
            SessionNotFoundError: If the session does not exist
            SessionAccessError: If user_id does not own the session
            InvalidSessionStateError: If the session is completed or expired
            SessionExpiredError: If the time limit has passed
        """
        if not question_id:
            raise ValidationError("question_id is required", {"question_id": "must not be empty"})
        session = await self._load_session(session_id, user_id)
        result = session.try_answer(question_id, answer, now=self.clock())
        await self._raise_for(session, result, "answer")

        await self.repository.upsert_answer(session_id, question_id, answer)
        self.log.with_context(session_id=session_id, user_id=session.user_id).debug(
            f"Answer recorded for question {question_id}"
        )
        return session.to_dict()

    @log_execution_time(logger)
    async def complete_session(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Score a session, record the attempt and update the user's progress.

        The completed session, its attempt and the progress cursor are
        stored together; a storage failure leaves the session in progress.

        Returns:
            Dictionary with session_id, score, passed, max_score,
            earned_points and time_spent_seconds

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionAccessError: If user_id does not own the session
            InvalidSessionStateError: If the session is not in progress
            SessionExpiredError: If the time limit has passed
        """
        details = await self.queries.get_session_with_details(session_id)
        session = details.session
        self._check_owner(session, user_id)
        level_info = self.catalog.get(session.level)

        result = session.try_complete(details.questions, level_info.passing_percentage, now=self.clock())
        await self._raise_for(session, result, "complete")

        attempt, progress = await self.repository.record_completion(session, self.catalog.top_level)

        self.log.with_context(session_id=session_id, user_id=session.user_id, level=session.level).info(
            f"Attempt {attempt.attempt_number} completed with score {session.score:.1f} "
            f"({'passed' if session.passed else 'failed'}); "
            f"current level is now {progress.current_level}"
        )
        return {
            "session_id": session.id,
            "score": session.score,
            "passed": session.passed,
            "max_score": session.max_score,
            "earned_points": session.earned_points,
            "time_spent_seconds": session.time_spent_seconds,
        }

    async def get_session(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a session with its questions and level info.

        Reference answers are only included once the session has ended.
        """
        details = await self.queries.get_session_with_details(session_id)
        self._check_owner(details.session, user_id)
        if details.session.observe_expiry(self.clock()):
            await self._record_expiry(details.session)
        return details.to_dict(include_solutions=details.session.status.is_terminal)

    async def get_session_results(self, session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a completed session with per-question correctness.

        Raises:
            InvalidSessionStateError: If the session has not been completed
        """
        details = await self.queries.get_session_with_details(session_id)
        session = details.session
        self._check_owner(session, user_id)
        if session.status is not SessionStatus.COMPLETED:
            raise InvalidSessionStateError(session_id, session.status.value, "view results of")

        results = []
        for question in details.questions:
            answer = session.answers.get(question.id)
            is_correct = question.is_correct(answer)
            results.append({
                "question_id": question.id,
                "answer": answer,
                "correct_answer": question.correct_answer,
                "is_correct": is_correct,
                "points": question.points,
                "points_earned": question.points if is_correct else 0,
            })

        data = details.to_dict(include_solutions=True)
        data["results"] = results
        return data

    async def get_active_session(self, user_id: str, level: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Get the user's unexpired in-progress session, if any."""
        session = await self.queries.get_active_session(user_id, level)
        if session is None:
            return None
        details = await self.queries.get_session_with_details(session.id)
        return details.to_dict()

    async def can_take_level(self, user_id: str, level: int) -> bool:
        return await self.queries.can_take_level(user_id, level)

    def get_level_catalog(self) -> List[Dict[str, Any]]:
        """All configured levels in ascending order."""
        return [level.to_dict() for level in self.catalog]

    def _level_status(self, level: Level, highest_passed_level: int) -> LevelStatus:
        if level.level <= highest_passed_level:
            return LevelStatus.PASSED
        if level.level <= highest_passed_level + 1:
            return LevelStatus.AVAILABLE
        return LevelStatus.LOCKED

    async def get_levels_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Build the level selection list for a user.

        Each entry carries the level configuration, its status for the user
        and the precomputed card affordances (is_locked, action_label,
        button_variant).
        """
        progress = await self.queries.get_user_progress(user_id)
        attempts = await self.repository.list_attempts(user_id)

        levels = []
        for level in self.catalog:
            status = self._level_status(level, progress.highest_passed_level)
            action_label, button_variant = LEVEL_ACTIONS[status]
            level_scores = [a.score for a in attempts if a.level == level.level]
            entry = level.to_dict()
            entry.update({
                "status": status.value,
                "is_locked": status is LevelStatus.LOCKED,
                "action_label": action_label,
                "button_variant": button_variant,
                "attempts": len(level_scores),
                "best_score": max(level_scores) if level_scores else None,
            })
            levels.append(entry)
        return levels

    async def get_user_progress(self, user_id: str) -> Dict[str, Any]:
        progress = await self.queries.get_user_progress(user_id)
        return progress.to_dict()

    async def get_level_stats(self, user_id: str, level: int) -> Dict[str, Any]:
        """Statistics of a user at one level; the level must exist."""
        self.catalog.get(level)
        stats = await self.queries.get_level_stats(user_id, level)
        return stats.to_dict()

    async def get_history(self, user_id: str, level: Optional[int] = None) -> List[Dict[str, Any]]:
        """Attempt history, newest first."""
        if level is None:
            attempts = await self.queries.get_user_history(user_id)
        else:
            attempts = await self.queries.get_level_history(user_id, level)
        return [attempt.to_dict() for attempt in attempts]

    async def expire_stale_sessions(self, now: Optional[datetime.datetime] = None) -> int:
        """
        Move every overdue in-progress session to EXPIRED.

        Returns:
            Number of sessions expired by this sweep
        """
        now = now or self.clock()
        expired = 0
        for session in await self.repository.list_sessions(status=SessionStatus.IN_PROGRESS):
            if not session.observe_expiry(now):
                continue
            try:
                await self.repository.update_session(session.id, {"status": SessionStatus.EXPIRED})
            except InvalidSessionStateError:
                continue
            expired += 1
        if expired:
            logger.info(f"Expired {expired} stale placement test sessions")
        return expired


def create_placement_test_repository(config: Optional[Settings] = None) -> PlacementTestRepository:
    """Create the repository selected by STORAGE_BACKEND."""
    config = config or default_settings
    if config.STORAGE_BACKEND == "sql":
        from placement.assessments.placement_test.sql_repository import SqlPlacementTestRepository
        return SqlPlacementTestRepository()

    from placement.assessments.placement_test.memory_repository import MemoryPlacementTestRepository
    return MemoryPlacementTestRepository()


def create_placement_test_service(
    config: Optional[Settings] = None,
    repository: Optional[PlacementTestRepository] = None
) -> PlacementTestService:
    """Create and configure the placement test service."""
    config = config or default_settings
    catalog = LevelCatalog.default(
        total_levels=config.TOTAL_LEVELS,
        question_count=config.QUESTIONS_PER_LEVEL,
        passing_percentage=config.PASSING_PERCENTAGE
    )
    service = PlacementTestService(
        repository=repository or create_placement_test_repository(config),
        catalog=catalog
    )
    logger.info(
        f"PlacementTestService initialized with {len(catalog)} levels "
        f"({config.STORAGE_BACKEND} storage, pass at {config.PASSING_PERCENTAGE}%)"
    )
    return service
