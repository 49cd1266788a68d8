"""
In-memory Placement Test Repository

Dictionary-backed implementation of PlacementTestRepository used for local
development and tests. All state is lost when the process exits.
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional, Tuple

from placement.common.logger import app_logger
from placement.assessments.placement_test.errors import (
    InvalidSessionStateError,
    SessionAlreadyActiveError,
    SessionNotFoundError
)
from placement.assessments.placement_test.models import (
    AssessmentSession,
    LevelAttempt,
    Question,
    SessionStatus,
    UserTestProgress
)
from placement.assessments.placement_test.repository import PlacementTestRepository

logger = app_logger.getChild("placement_test.memory_repository")


class MemoryPlacementTestRepository(PlacementTestRepository):
    """
    Placement test repository that keeps everything in dictionaries.

    Objects are copied on the way in and out so callers never share state
    with the store. A single asyncio.Lock serializes writes, which makes the
    one-active-session check and the status compare-and-set atomic.
    """

    def __init__(self):
        self._sessions: Dict[str, AssessmentSession] = {}
        self._session_questions: Dict[str, List[str]] = {}
        self._answers: Dict[str, Dict[str, str]] = {}
        self._questions: Dict[str, Question] = {}
        self._attempts: List[LevelAttempt] = []
        self._progress: Dict[str, UserTestProgress] = {}
        self._lock = asyncio.Lock()

    def _snapshot(self, session: AssessmentSession) -> AssessmentSession:
        result = copy.deepcopy(session)
        result.answers = dict(self._answers.get(session.id, {}))
        return result

    def _find_active(self, user_id: str, level: int) -> Optional[AssessmentSession]:
        for session in self._sessions.values():
            if (session.user_id == user_id and session.level == level
                    and session.status is SessionStatus.IN_PROGRESS):
                return session
        return None

    async def create_session(self, session: AssessmentSession, question_ids: List[str]) -> AssessmentSession:
        async with self._lock:
            active = self._find_active(session.user_id, session.level)
            if active is not None:
                logger.warning(
                    f"Rejected session for user {session.user_id} at level {session.level}: "
                    f"session {active.id} is still in progress"
                )
                raise SessionAlreadyActiveError(session.user_id, session.level, active.id)

            stored = copy.deepcopy(session)
            stored.answers = {}
            self._sessions[session.id] = stored
            self._session_questions[session.id] = list(question_ids)
            self._answers[session.id] = {}
            logger.debug(f"Stored session {session.id} with {len(question_ids)} questions")
            return self._snapshot(stored)

    async def get_session(self, session_id: str) -> Optional[AssessmentSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return self._snapshot(session)

    async def update_session(
        self,
        session_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[SessionStatus] = SessionStatus.IN_PROGRESS
    ) -> AssessmentSession:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if expected_status is not None and session.status is not expected_status:
                raise InvalidSessionStateError(session_id, session.status.value, "update")

            for key, value in patch.items():
                if key in ("id", "user_id", "level", "answers"):
                    continue
                if key == "status" and isinstance(value, str):
                    value = SessionStatus(value)
                setattr(session, key, value)
            return self._snapshot(session)

    async def list_sessions(
        self,
        user_id: Optional[str] = None,
        level: Optional[int] = None,
        status: Optional[SessionStatus] = None
    ) -> List[AssessmentSession]:
        sessions = [
            s for s in self._sessions.values()
            if (user_id is None or s.user_id == user_id)
            and (level is None or s.level == level)
            and (status is None or s.status is status)
        ]
        sessions.sort(key=lambda s: s.started_at, reverse=True)
        return [self._snapshot(s) for s in sessions]

    async def get_session_question_ids(self, session_id: str) -> List[str]:
        return list(self._session_questions.get(session_id, []))

    async def upsert_answer(self, session_id: str, question_id: str, answer: str) -> None:
        async with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            self._answers[session_id][question_id] = answer

    async def save_questions(self, questions: List[Question]) -> None:
        async with self._lock:
            for question in questions:
                self._questions[question.id] = copy.deepcopy(question)

    async def get_questions(self, question_ids: List[str]) -> List[Question]:
        return [
            copy.deepcopy(self._questions[qid])
            for qid in question_ids
            if qid in self._questions
        ]

    async def get_questions_for_level(self, level: int, limit: Optional[int] = None) -> List[Question]:
        questions = sorted(
            (q for q in self._questions.values() if q.level == level),
            key=lambda q: (q.sort_order, q.id)
        )
        if limit is not None:
            questions = questions[:limit]
        return [copy.deepcopy(q) for q in questions]

    async def list_attempts(self, user_id: str, level: Optional[int] = None) -> List[LevelAttempt]:
        attempts = [
            a for a in self._attempts
            if a.user_id == user_id and (level is None or a.level == level)
        ]
        attempts.sort(key=self._attempt_order, reverse=True)
        return [copy.deepcopy(a) for a in attempts]

    @staticmethod
    def _attempt_order(attempt: LevelAttempt) -> Tuple:
        return attempt.attempted_at, attempt.attempt_number

    async def get_progress(self, user_id: str) -> Optional[UserTestProgress]:
        progress = self._progress.get(user_id)
        return copy.deepcopy(progress) if progress else None

    async def record_completion(
        self,
        session: AssessmentSession,
        top_level: int
    ) -> Tuple[LevelAttempt, UserTestProgress]:
        async with self._lock:
            stored = self._sessions.get(session.id)
            if stored is None:
                raise SessionNotFoundError(session.id)
            if stored.status is not SessionStatus.IN_PROGRESS:
                raise InvalidSessionStateError(session.id, stored.status.value, "complete")

            # Build every change on copies; the store is only touched once all succeed
            completed = copy.deepcopy(stored)
            for key, value in session.terminal_fields().items():
                setattr(completed, key, value)

            previous = sum(
                1 for a in self._attempts
                if a.user_id == session.user_id and a.level == session.level
            )
            attempt = LevelAttempt.from_session(self._snapshot(completed), previous + 1)

            progress = copy.deepcopy(self._progress.get(session.user_id)) or UserTestProgress(
                user_id=session.user_id, created_at=attempt.attempted_at
            )
            progress.record_attempt(attempt, top_level)

            self._sessions[session.id] = completed
            self._attempts.append(attempt)
            self._progress[session.user_id] = progress
            logger.debug(f"Recorded attempt {attempt.attempt_number} of session {session.id}")
            return copy.deepcopy(attempt), copy.deepcopy(progress)
