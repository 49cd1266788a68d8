"""
Contract tests run against both repository implementations.

The SQL repository runs on an in-memory aiosqlite database so the partial
unique index and the conditional status update are exercised for real.
Concurrency tests use a file-backed database, where every session gets its
own connection and transactions really interleave.
"""

import asyncio
import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from placement.common.exceptions import DatabaseError
from placement.database.base import Base
from placement.assessments.placement_test.database_models import PlacementLevelAttemptModel
from placement.assessments.placement_test.errors import (
    InvalidSessionStateError,
    SessionAlreadyActiveError,
    SessionNotFoundError
)
from placement.assessments.placement_test.memory_repository import MemoryPlacementTestRepository
from placement.assessments.placement_test.models import (
    AssessmentSession,
    SessionStatus,
    UserTestProgress
)
from placement.assessments.placement_test.sql_repository import SqlPlacementTestRepository
from placement.tests.conftest import START_TIME, make_questions


def new_session(session_id: str, user_id: str = "user-1", level: int = 1, offset_minutes: int = 0):
    started = START_TIME + datetime.timedelta(minutes=offset_minutes)
    return AssessmentSession.create(session_id, user_id, level, 5, now=started)


def completed(session: AssessmentSession, correct: int = 8) -> AssessmentSession:
    """Answer `correct` of ten questions right and complete two minutes after the start."""
    questions = make_questions(session.level)
    for question in questions[:correct]:
        session.answer_question(question.id, "True", now=session.started_at)
    session.complete(questions, now=session.started_at + datetime.timedelta(minutes=2))
    return session


async def start(repository, session_id: str, user_id: str = "user-1", level: int = 1, offset_minutes: int = 0):
    session = new_session(session_id, user_id, level, offset_minutes)
    await repository.create_session(session, [])
    return session


@pytest_asyncio.fixture(params=["memory", "sql"])
async def repository(request):
    if request.param == "memory":
        yield MemoryPlacementTestRepository()
        return

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SqlPlacementTestRepository(factory)
    await engine.dispose()


class TestSessionStorage:

    @pytest.mark.asyncio
    async def test_create_and_get(self, repository):
        await repository.create_session(new_session("s-1"), ["q-lv1-1", "q-lv1-2"])

        stored = await repository.get_session("s-1")

        assert stored.user_id == "user-1"
        assert stored.status is SessionStatus.IN_PROGRESS
        assert stored.expires_at == START_TIME + datetime.timedelta(minutes=5)
        assert stored.answers == {}
        assert await repository.get_session_question_ids("s-1") == ["q-lv1-1", "q-lv1-2"]

    @pytest.mark.asyncio
    async def test_missing_session(self, repository):
        assert await repository.get_session("nope") is None
        assert await repository.get_session_question_ids("nope") == []

    @pytest.mark.asyncio
    async def test_one_active_session_per_user_and_level(self, repository):
        await repository.create_session(new_session("s-1"), [])

        with pytest.raises(SessionAlreadyActiveError):
            await repository.create_session(new_session("s-2"), [])

        # Other levels and other users are unaffected
        await repository.create_session(new_session("s-3", level=2), [])
        await repository.create_session(new_session("s-4", user_id="user-2"), [])

    @pytest.mark.asyncio
    async def test_new_session_allowed_after_previous_ends(self, repository):
        await repository.create_session(new_session("s-1"), [])
        await repository.update_session("s-1", {"status": SessionStatus.EXPIRED})

        await repository.create_session(new_session("s-2", offset_minutes=10), [])

        assert (await repository.get_session("s-2")).status is SessionStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_update_writes_terminal_fields(self, repository):
        await repository.create_session(new_session("s-1"), [])
        completed_at = START_TIME + datetime.timedelta(minutes=3)

        updated = await repository.update_session("s-1", {
            "status": SessionStatus.COMPLETED,
            "score": 80.0,
            "passed": True,
            "completed_at": completed_at,
            "earned_points": 80,
            "max_score": 100,
            "time_spent_seconds": 180,
        })

        assert updated.status is SessionStatus.COMPLETED
        assert updated.score == 80
        assert updated.passed is True
        assert updated.completed_at == completed_at

    @pytest.mark.asyncio
    async def test_update_is_conditional_on_status(self, repository):
        await repository.create_session(new_session("s-1"), [])
        await repository.update_session("s-1", {"status": SessionStatus.COMPLETED, "score": 90.0})

        with pytest.raises(InvalidSessionStateError):
            await repository.update_session("s-1", {"status": SessionStatus.EXPIRED})

        assert (await repository.get_session("s-1")).status is SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_update_missing_session(self, repository):
        with pytest.raises(SessionNotFoundError):
            await repository.update_session("nope", {"status": SessionStatus.EXPIRED})

    @pytest.mark.asyncio
    async def test_list_sessions_newest_first(self, repository):
        await repository.create_session(new_session("s-old", level=1), [])
        await repository.create_session(new_session("s-new", level=2, offset_minutes=30), [])
        await repository.create_session(new_session("s-other", user_id="user-2"), [])
        await repository.update_session("s-old", {"status": SessionStatus.EXPIRED})

        mine = await repository.list_sessions(user_id="user-1")
        active = await repository.list_sessions(user_id="user-1", status=SessionStatus.IN_PROGRESS)
        level_two = await repository.list_sessions(level=2)

        assert [s.id for s in mine] == ["s-new", "s-old"]
        assert [s.id for s in active] == ["s-new"]
        assert [s.id for s in level_two] == ["s-new"]


class TestAnswerStorage:

    @pytest.mark.asyncio
    async def test_upsert_replaces_answer(self, repository):
        await repository.create_session(new_session("s-1"), [])

        await repository.upsert_answer("s-1", "q-lv1-1", "True")
        await repository.upsert_answer("s-1", "q-lv1-1", "False")
        await repository.upsert_answer("s-1", "q-lv1-2", "True")

        assert (await repository.get_session("s-1")).answers == {"q-lv1-1": "False", "q-lv1-2": "True"}

    @pytest.mark.asyncio
    async def test_answer_for_missing_session(self, repository):
        with pytest.raises(SessionNotFoundError):
            await repository.upsert_answer("nope", "q-lv1-1", "True")


class TestQuestionStorage:

    @pytest.mark.asyncio
    async def test_questions_for_level_follow_sort_order(self, repository):
        await repository.save_questions(list(reversed(make_questions(1, 4))) + make_questions(2, 2))

        level_one = await repository.get_questions_for_level(1)
        limited = await repository.get_questions_for_level(1, limit=2)

        assert [q.id for q in level_one] == ["q-lv1-1", "q-lv1-2", "q-lv1-3", "q-lv1-4"]
        assert [q.id for q in limited] == ["q-lv1-1", "q-lv1-2"]

    @pytest.mark.asyncio
    async def test_get_questions_keeps_requested_order(self, repository):
        await repository.save_questions(make_questions(1, 3))

        questions = await repository.get_questions(["q-lv1-3", "missing", "q-lv1-1"])

        assert [q.id for q in questions] == ["q-lv1-3", "q-lv1-1"]
        assert questions[0].correct_answer == "True"
        assert questions[0].options == ["True", "False"]

    @pytest.mark.asyncio
    async def test_save_replaces_by_id(self, repository):
        question = make_questions(1, 1)[0]
        await repository.save_questions([question])
        question.content = "Edited"
        await repository.save_questions([question])

        stored = await repository.get_questions([question.id])

        assert stored[0].content == "Edited"
        assert len(await repository.get_questions_for_level(1)) == 1


class TestCompletionStorage:

    @pytest.mark.asyncio
    async def test_completion_writes_session_attempt_and_progress(self, repository):
        session = completed(await start(repository, "s-1"))

        attempt, progress = await repository.record_completion(session, top_level=12)

        stored = await repository.get_session("s-1")
        assert stored.status is SessionStatus.COMPLETED
        assert stored.score == 80
        assert stored.passed is True
        assert stored.time_spent_seconds == 120
        assert attempt.attempt_number == 1
        assert attempt.percentage == 80
        assert progress.total_attempts == 1
        assert progress.highest_passed_level == 1
        assert progress.current_level == 2
        assert progress.created_at == session.completed_at
        assert [a.session_id for a in await repository.list_attempts("user-1")] == ["s-1"]
        assert (await repository.get_progress("user-1")).total_passed == 1

    @pytest.mark.asyncio
    async def test_attempts_are_numbered_per_level_and_listed_newest_first(self, repository):
        for session_id, level, offset, correct in [
            ("s-1", 1, 0, 5), ("s-2", 1, 10, 9), ("s-3", 2, 20, 4)
        ]:
            session = completed(await start(repository, session_id, level=level, offset_minutes=offset), correct)
            await repository.record_completion(session, top_level=12)

        all_attempts = await repository.list_attempts("user-1")
        level_one = await repository.list_attempts("user-1", level=1)
        progress = await repository.get_progress("user-1")

        assert [a.session_id for a in all_attempts] == ["s-3", "s-2", "s-1"]
        assert [(a.session_id, a.attempt_number) for a in level_one] == [("s-2", 2), ("s-1", 1)]
        assert all_attempts[0].attempt_number == 1
        assert progress.total_attempts == 3
        assert progress.total_passed == 1
        assert progress.total_failed == 2
        assert progress.average_score == pytest.approx(60)
        assert await repository.list_attempts("user-2") == []
        assert await repository.get_progress("user-2") is None

    @pytest.mark.asyncio
    async def test_completion_requires_in_progress_session(self, repository):
        session = completed(await start(repository, "s-1"))
        await repository.record_completion(session, top_level=12)

        with pytest.raises(InvalidSessionStateError):
            await repository.record_completion(session, top_level=12)
        with pytest.raises(SessionNotFoundError):
            await repository.record_completion(completed(new_session("nope")), top_level=12)

        assert len(await repository.list_attempts("user-1")) == 1
        assert (await repository.get_progress("user-1")).total_attempts == 1

    @pytest.mark.asyncio
    async def test_failed_completion_leaves_nothing_behind(self, repository, monkeypatch):
        session = completed(await start(repository, "s-1"))

        def fail_progress_write(self, attempt, top_level):
            raise DatabaseError("progress write failed")

        monkeypatch.setattr(UserTestProgress, "record_attempt", fail_progress_write)
        with pytest.raises(DatabaseError):
            await repository.record_completion(session, top_level=12)
        monkeypatch.undo()

        assert (await repository.get_session("s-1")).status is SessionStatus.IN_PROGRESS
        assert await repository.list_attempts("user-1") == []
        assert await repository.get_progress("user-1") is None

        attempt, _ = await repository.record_completion(session, top_level=12)
        assert attempt.attempt_number == 1


@pytest.mark.asyncio
async def test_sql_completion_rolls_back_on_attempt_insert_failure(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'placement.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    repository = SqlPlacementTestRepository(factory)

    session = completed(await start(repository, "s-1"))
    # A stray row already holds the attempt id the completion will insert
    async with factory() as db:
        db.add(PlacementLevelAttemptModel(
            id="la-s-1", user_id="user-2", level=1, session_id="s-0", attempt_number=1,
            score=0.0, earned_points=0, max_score=100, percentage=0, passed=False,
            time_spent_seconds=0, attempted_at=START_TIME
        ))
        await db.commit()

    try:
        with pytest.raises(DatabaseError):
            await repository.record_completion(session, top_level=12)

        assert (await repository.get_session("s-1")).status is SessionStatus.IN_PROGRESS
        assert await repository.list_attempts("user-1") == []
        assert await repository.get_progress("user-1") is None
    finally:
        await engine.dispose()


@pytest_asyncio.fixture(params=["memory", "sqlite-file"])
async def shared_repository(request, tmp_path):
    """Repository whose concurrent calls run on separate connections."""
    if request.param == "memory":
        yield MemoryPlacementTestRepository()
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'placement.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlPlacementTestRepository(sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_completions_keep_every_update(shared_repository):
    first = completed(await start(shared_repository, "s-1", level=1), correct=3)
    second = completed(await start(shared_repository, "s-2", level=2), correct=4)

    await asyncio.gather(
        shared_repository.record_completion(first, top_level=12),
        shared_repository.record_completion(second, top_level=12),
    )

    progress = await shared_repository.get_progress("user-1")
    attempts = await shared_repository.list_attempts("user-1")
    assert progress.total_attempts == 2
    assert progress.total_failed == 2
    assert progress.average_score == pytest.approx(35)
    assert sorted((a.level, a.attempt_number) for a in attempts) == [(1, 1), (2, 1)]
