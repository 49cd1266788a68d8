"""
SQLAlchemy Placement Test Repository

Async ORM implementation of PlacementTestRepository. Each public method runs
in its own transaction; database failures surface as DatabaseError.
"""

from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from placement.common.exceptions import DatabaseError
from placement.common.logger import app_logger
from placement.common.utils import utcnow
from placement.database.init_db import get_session_factory
from placement.assessments.placement_test.database_models import (
    PlacementAnswerModel,
    PlacementLevelAttemptModel,
    PlacementQuestionModel,
    PlacementSessionModel,
    PlacementUserProgressModel
)
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

logger = app_logger.getChild("placement_test.sql_repository")

# Session columns a patch may write
_UPDATABLE_FIELDS = {
    "status", "score", "passed", "completed_at", "earned_points",
    "max_score", "time_spent_seconds"
}


def _session_from_model(model: PlacementSessionModel) -> AssessmentSession:
    return AssessmentSession(
        id=model.id,
        user_id=model.user_id,
        level=model.level,
        status=model.status,
        answers={a.question_id: a.answer for a in model.answers},
        started_at=model.started_at,
        expires_at=model.expires_at,
        score=model.score,
        passed=model.passed,
        completed_at=model.completed_at,
        earned_points=model.earned_points,
        max_score=model.max_score,
        time_spent_seconds=model.time_spent_seconds,
    )


def _question_from_model(model: PlacementQuestionModel) -> Question:
    return Question(
        id=model.id,
        level=model.level,
        type=model.type,
        content=model.content,
        points=model.points,
        correct_answer=model.correct_answer,
        options=list(model.options or []),
        rubric=model.rubric,
        category=model.category,
        difficulty=model.difficulty,
        sort_order=model.sort_order,
    )


def _attempt_from_model(model: PlacementLevelAttemptModel) -> LevelAttempt:
    return LevelAttempt.from_dict(model.to_dict())


def _progress_from_model(model: PlacementUserProgressModel) -> UserTestProgress:
    return UserTestProgress.from_dict(model.to_dict())


class SqlPlacementTestRepository(PlacementTestRepository):
    """
    Placement test repository backed by the SQLAlchemy async engine.

    The one-active-session rule is enforced by a partial unique index on
    placement_test_session; status transitions use a conditional UPDATE.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        """
        Initialize the repository.

        Args:
            session_factory: Async session factory, defaults to the one
                created by initialize_database()
        """
        self._session_factory = session_factory

    @property
    def session_factory(self) -> Callable[[], AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    @asynccontextmanager
    async def _session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error in placement test repository: {str(e)}")
            raise DatabaseError(str(e), e)
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def _get_session_model(self, db: AsyncSession, session_id: str) -> Optional[PlacementSessionModel]:
        result = await db.execute(
            select(PlacementSessionModel).where(PlacementSessionModel.id == session_id)
        )
        return result.scalars().first()

    async def create_session(self, session: AssessmentSession, question_ids: List[str]) -> AssessmentSession:
        async with self._session_scope() as db:
            result = await db.execute(
                select(PlacementSessionModel.id).where(
                    PlacementSessionModel.user_id == session.user_id,
                    PlacementSessionModel.level == session.level,
                    PlacementSessionModel.status == SessionStatus.IN_PROGRESS.value
                )
            )
            active_id = result.scalars().first()
            if active_id is not None:
                logger.warning(
                    f"Rejected session for user {session.user_id} at level {session.level}: "
                    f"session {active_id} is still in progress"
                )
                raise SessionAlreadyActiveError(session.user_id, session.level, active_id)

            db.add(PlacementSessionModel(
                id=session.id,
                user_id=session.user_id,
                level=session.level,
                status=session.status.value,
                question_ids=list(question_ids),
                started_at=session.started_at,
                expires_at=session.expires_at,
            ))
            try:
                await db.flush()
            except IntegrityError:
                # A concurrent start won the partial unique index
                raise SessionAlreadyActiveError(session.user_id, session.level)

        logger.debug(f"Stored session {session.id} with {len(question_ids)} questions")
        return await self.get_session(session.id)

    async def get_session(self, session_id: str) -> Optional[AssessmentSession]:
        async with self._session_scope() as db:
            model = await self._get_session_model(db, session_id)
            return _session_from_model(model) if model else None

    async def _conditional_update(
        self,
        db: AsyncSession,
        session_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[SessionStatus],
        action: str
    ) -> None:
        values = {}
        for key, value in patch.items():
            if key not in _UPDATABLE_FIELDS:
                continue
            if isinstance(value, SessionStatus):
                value = value.value
            values[key] = value

        statement = update(PlacementSessionModel).where(PlacementSessionModel.id == session_id)
        if expected_status is not None:
            statement = statement.where(PlacementSessionModel.status == expected_status.value)
        result = await db.execute(statement.values(**values).execution_options(synchronize_session=False))

        if result.rowcount == 0:
            model = await self._get_session_model(db, session_id)
            if model is None:
                raise SessionNotFoundError(session_id)
            raise InvalidSessionStateError(session_id, model.status, action)

    async def update_session(
        self,
        session_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[SessionStatus] = SessionStatus.IN_PROGRESS
    ) -> AssessmentSession:
        async with self._session_scope() as db:
            await self._conditional_update(db, session_id, patch, expected_status, "update")
        return await self.get_session(session_id)

    async def list_sessions(
        self,
        user_id: Optional[str] = None,
        level: Optional[int] = None,
        status: Optional[SessionStatus] = None
    ) -> List[AssessmentSession]:
        query = select(PlacementSessionModel)
        if user_id is not None:
            query = query.where(PlacementSessionModel.user_id == user_id)
        if level is not None:
            query = query.where(PlacementSessionModel.level == level)
        if status is not None:
            query = query.where(PlacementSessionModel.status == status.value)
        query = query.order_by(PlacementSessionModel.started_at.desc())

        async with self._session_scope() as db:
            result = await db.execute(query)
            return [_session_from_model(m) for m in result.scalars().all()]

    async def get_session_question_ids(self, session_id: str) -> List[str]:
        async with self._session_scope() as db:
            result = await db.execute(
                select(PlacementSessionModel.question_ids).where(PlacementSessionModel.id == session_id)
            )
            question_ids = result.scalars().first()
            return list(question_ids or [])

    async def upsert_answer(self, session_id: str, question_id: str, answer: str) -> None:
        async with self._session_scope() as db:
            if await self._get_session_model(db, session_id) is None:
                raise SessionNotFoundError(session_id)

            result = await db.execute(
                select(PlacementAnswerModel).where(
                    PlacementAnswerModel.session_id == session_id,
                    PlacementAnswerModel.question_id == question_id
                )
            )
            existing = result.scalars().first()
            if existing is not None:
                existing.answer = answer
                existing.answered_at = utcnow()
            else:
                db.add(PlacementAnswerModel(
                    session_id=session_id,
                    question_id=question_id,
                    answer=answer,
                    answered_at=utcnow(),
                ))

    async def save_questions(self, questions: List[Question]) -> None:
        async with self._session_scope() as db:
            for question in questions:
                await db.merge(PlacementQuestionModel(
                    id=question.id,
                    level=question.level,
                    type=question.type.value,
                    content=question.content,
                    options=list(question.options),
                    correct_answer=question.correct_answer,
                    rubric=question.rubric,
                    points=question.points,
                    category=question.category,
                    difficulty=question.difficulty,
                    sort_order=question.sort_order,
                ))

    async def get_questions(self, question_ids: List[str]) -> List[Question]:
        if not question_ids:
            return []
        async with self._session_scope() as db:
            result = await db.execute(
                select(PlacementQuestionModel).where(PlacementQuestionModel.id.in_(question_ids))
            )
            by_id = {m.id: _question_from_model(m) for m in result.scalars().all()}
        return [by_id[qid] for qid in question_ids if qid in by_id]

    async def get_questions_for_level(self, level: int, limit: Optional[int] = None) -> List[Question]:
        query = (
            select(PlacementQuestionModel)
            .where(PlacementQuestionModel.level == level)
            .order_by(PlacementQuestionModel.sort_order, PlacementQuestionModel.id)
        )
        if limit is not None:
            query = query.limit(limit)
        async with self._session_scope() as db:
            result = await db.execute(query)
            return [_question_from_model(m) for m in result.scalars().all()]

    async def list_attempts(self, user_id: str, level: Optional[int] = None) -> List[LevelAttempt]:
        query = select(PlacementLevelAttemptModel).where(PlacementLevelAttemptModel.user_id == user_id)
        if level is not None:
            query = query.where(PlacementLevelAttemptModel.level == level)
        query = query.order_by(
            PlacementLevelAttemptModel.attempted_at.desc(),
            PlacementLevelAttemptModel.attempt_number.desc()
        )
        async with self._session_scope() as db:
            result = await db.execute(query)
            return [_attempt_from_model(m) for m in result.scalars().all()]

    async def get_progress(self, user_id: str) -> Optional[UserTestProgress]:
        async with self._session_scope() as db:
            model = await db.get(PlacementUserProgressModel, user_id)
            return _progress_from_model(model) if model else None

    async def record_completion(
        self,
        session: AssessmentSession,
        top_level: int
    ) -> Tuple[LevelAttempt, UserTestProgress]:
        async with self._session_scope() as db:
            # Status write first: concurrent completions queue on the write lock before any read
            await self._conditional_update(
                db, session.id, session.terminal_fields(), SessionStatus.IN_PROGRESS, "complete"
            )

            result = await db.execute(
                select(func.count(PlacementLevelAttemptModel.id)).where(
                    PlacementLevelAttemptModel.user_id == session.user_id,
                    PlacementLevelAttemptModel.level == session.level
                )
            )
            attempt = LevelAttempt.from_session(session, result.scalar_one() + 1)
            db.add(PlacementLevelAttemptModel.from_domain(attempt, LevelAttempt.__serializable_fields__))

            result = await db.execute(
                select(PlacementUserProgressModel)
                .where(PlacementUserProgressModel.user_id == session.user_id)
                .with_for_update()
            )
            model = result.scalars().first()
            if model is not None:
                progress = _progress_from_model(model)
            else:
                progress = UserTestProgress(user_id=session.user_id, created_at=attempt.attempted_at)
            progress.record_attempt(attempt, top_level)
            await db.merge(PlacementUserProgressModel.from_domain(progress, UserTestProgress.__serializable_fields__))

        logger.debug(f"Recorded attempt {attempt.attempt_number} of session {session.id}")
        return attempt, progress
