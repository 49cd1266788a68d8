"""
Tests for the placement test service.

Time is driven by a FrozenClock injected into the service, so expiry is
tested without sleeping.
"""

import pytest
import pytest_asyncio

from placement.config import Settings
from placement.common.exceptions import DatabaseError, ValidationError
from placement.assessments.placement_test.errors import (
    InvalidSessionStateError,
    LevelLockedError,
    LevelNotFoundError,
    SessionAccessError,
    SessionAlreadyActiveError,
    SessionExpiredError,
    SessionNotFoundError
)
from placement.assessments.placement_test.levels import LevelCatalog
from placement.assessments.placement_test.memory_repository import MemoryPlacementTestRepository
from placement.assessments.placement_test.models import SessionStatus, UserTestProgress
from placement.assessments.placement_test.service import (
    PlacementTestService,
    create_placement_test_service
)
from placement.tests.conftest import make_question_bank

USER = "user-1"


@pytest_asyncio.fixture
async def service(clock):
    repository = MemoryPlacementTestRepository()
    await repository.save_questions(make_question_bank())
    return PlacementTestService(repository, LevelCatalog.default(), clock=clock)


async def take_test(service, level: int, correct: int, user_id: str = USER) -> dict:
    """Start a level, answer `correct` questions right and the rest wrong, then complete."""
    session = await service.start_session(user_id, level)
    for i, question in enumerate(session["questions"]):
        answer = "True" if i < correct else "False"
        await service.submit_answer(session["id"], question["id"], answer, user_id)
    return await service.complete_session(session["id"], user_id)


async def pass_levels_below(service, level: int, user_id: str = USER) -> None:
    """Unlock a level by passing every level before it with full marks."""
    for previous in range(1, level):
        await take_test(service, previous, correct=10, user_id=user_id)


class TestStartSession:

    @pytest.mark.asyncio
    async def test_start_assigns_questions_and_time_limit(self, service, clock):
        session = await service.start_session(USER, 1)

        assert session["status"] == "in_progress"
        assert session["user_id"] == USER
        assert session["level"] == 1
        assert session["expires_at"] == "2026-01-05T09:05:00"
        assert len(session["questions"]) == 10
        assert session["level_info"]["duration_minutes"] == 5

    @pytest.mark.asyncio
    async def test_questions_are_served_without_answers(self, service):
        session = await service.start_session(USER, 1)

        for question in session["questions"]:
            assert "correct_answer" not in question
            assert "rubric" not in question

    @pytest.mark.asyncio
    async def test_duration_comes_from_catalog(self, service, clock):
        await pass_levels_below(service, 10)

        session = await service.start_session(USER, 10)

        assert session["expires_at"] == "2026-01-05T10:00:00"

    @pytest.mark.asyncio
    async def test_unknown_level(self, service):
        with pytest.raises(LevelNotFoundError):
            await service.start_session(USER, 13)

    @pytest.mark.asyncio
    async def test_locked_level(self, service):
        with pytest.raises(LevelLockedError) as exc_info:
            await service.start_session(USER, 2)
        assert exc_info.value.required_level == 1

    @pytest.mark.asyncio
    async def test_second_start_is_rejected_while_active(self, service):
        first = await service.start_session(USER, 1)

        with pytest.raises(SessionAlreadyActiveError) as exc_info:
            await service.start_session(USER, 1)

        assert exc_info.value.session_id == first["id"]

    @pytest.mark.asyncio
    async def test_stale_session_does_not_block_new_start(self, service, clock):
        first = await service.start_session(USER, 1)
        clock.advance(minutes=6)

        second = await service.start_session(USER, 1)

        assert second["id"] != first["id"]
        stale = await service.repository.get_session(first["id"])
        assert stale.status is SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_bundled_bank_serves_full_top_level(self, clock):
        # A zero threshold lets every earlier level pass on the bundled bank
        service = PlacementTestService(
            MemoryPlacementTestRepository(), LevelCatalog.default(passing_percentage=0), clock=clock
        )
        await service.seed_questions()
        await pass_levels_below(service, 12)

        session = await service.start_session(USER, 12)

        assert session["level_info"]["question_count"] == 10
        assert len(session["questions"]) == session["level_info"]["question_count"]


class TestAnswerAndComplete:

    @pytest.mark.asyncio
    async def test_pass_at_seventy_percent(self, service):
        result = await take_test(service, 1, correct=7)

        assert result["score"] == 70
        assert result["passed"] is True
        assert result["earned_points"] == 70
        assert result["max_score"] == 100

        progress = await service.get_user_progress(USER)
        assert progress["highest_passed_level"] == 1
        assert progress["current_level"] == 2
        assert progress["total_passed"] == 1

    @pytest.mark.asyncio
    async def test_fail_at_sixty_percent(self, service):
        result = await take_test(service, 1, correct=6)

        assert result["score"] == 60
        assert result["passed"] is False

        progress = await service.get_user_progress(USER)
        assert progress["highest_passed_level"] == 0
        assert progress["current_level"] == 1
        assert progress["total_failed"] == 1
        with pytest.raises(LevelLockedError):
            await service.start_session(USER, 2)

    @pytest.mark.asyncio
    async def test_completion_is_persisted(self, service, clock):
        session = await service.start_session(USER, 1)
        clock.advance(minutes=2)

        result = await service.complete_session(session["id"], USER)

        stored = await service.repository.get_session(session["id"])
        assert stored.status is SessionStatus.COMPLETED
        assert stored.score == 0
        assert stored.passed is False
        assert stored.time_spent_seconds == 120
        assert result["time_spent_seconds"] == 120

    @pytest.mark.asyncio
    async def test_answer_after_time_limit(self, service, clock):
        session = await service.start_session(USER, 1)
        question_id = session["questions"][0]["id"]
        clock.advance(minutes=6)

        with pytest.raises(SessionExpiredError):
            await service.submit_answer(session["id"], question_id, "True", USER)

        stored = await service.repository.get_session(session["id"])
        assert stored.status is SessionStatus.EXPIRED
        assert stored.answers == {}
        assert await service.get_active_session(USER) is None

        with pytest.raises(InvalidSessionStateError):
            await service.submit_answer(session["id"], question_id, "True", USER)

    @pytest.mark.asyncio
    async def test_complete_after_time_limit(self, service, clock):
        session = await service.start_session(USER, 1)
        clock.advance(minutes=10)

        with pytest.raises(SessionExpiredError):
            await service.complete_session(session["id"], USER)

        assert (await service.repository.get_session(session["id"])).status is SessionStatus.EXPIRED
        assert await service.get_history(USER) == []

    @pytest.mark.asyncio
    async def test_second_complete_is_rejected(self, service):
        session = await service.start_session(USER, 1)
        await service.complete_session(session["id"], USER)

        with pytest.raises(InvalidSessionStateError):
            await service.complete_session(session["id"], USER)

        assert len(await service.get_history(USER)) == 1

    @pytest.mark.asyncio
    async def test_failed_completion_can_be_retried(self, service, monkeypatch):
        session = await service.start_session(USER, 1)
        for question in session["questions"]:
            await service.submit_answer(session["id"], question["id"], "True", USER)

        def fail_progress_write(self, attempt, top_level):
            raise DatabaseError("progress write failed")

        monkeypatch.setattr(UserTestProgress, "record_attempt", fail_progress_write)
        with pytest.raises(DatabaseError):
            await service.complete_session(session["id"], USER)

        stored = await service.repository.get_session(session["id"])
        assert stored.status is SessionStatus.IN_PROGRESS
        assert await service.get_history(USER) == []
        assert (await service.get_user_progress(USER))["total_attempts"] == 0

        monkeypatch.undo()
        result = await service.complete_session(session["id"], USER)

        assert result["passed"] is True
        history = await service.get_history(USER)
        assert [h["attempt_number"] for h in history] == [1]
        assert (await service.get_user_progress(USER))["total_attempts"] == 1

    @pytest.mark.asyncio
    async def test_resubmitted_answer_wins(self, service):
        session = await service.start_session(USER, 1)
        question_id = session["questions"][0]["id"]

        await service.submit_answer(session["id"], question_id, "False", USER)
        await service.submit_answer(session["id"], question_id, "True", USER)
        result = await service.complete_session(session["id"], USER)

        assert result["score"] == 10

    @pytest.mark.asyncio
    async def test_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            await service.submit_answer("missing", "q", "a", USER)
        with pytest.raises(SessionNotFoundError):
            await service.complete_session("missing", USER)

    @pytest.mark.asyncio
    async def test_empty_question_id(self, service):
        session = await service.start_session(USER, 1)
        with pytest.raises(ValidationError):
            await service.submit_answer(session["id"], "", "True", USER)

    @pytest.mark.asyncio
    async def test_other_users_cannot_touch_session(self, service):
        session = await service.start_session(USER, 1)

        with pytest.raises(SessionAccessError):
            await service.submit_answer(session["id"], "q-lv1-1", "True", "intruder")
        with pytest.raises(SessionAccessError):
            await service.complete_session(session["id"], "intruder")
        with pytest.raises(SessionAccessError):
            await service.get_session(session["id"], "intruder")

    @pytest.mark.asyncio
    async def test_configured_threshold_is_used(self, clock):
        repository = MemoryPlacementTestRepository()
        await repository.save_questions(make_question_bank())
        service = create_placement_test_service(Settings(PASSING_PERCENTAGE=60), repository=repository)
        service.clock = clock
        service.queries.clock = clock

        result = await take_test(service, 1, correct=6)

        assert result["passed"] is True


class TestReads:

    @pytest.mark.asyncio
    async def test_levels_for_user(self, service):
        await take_test(service, 1, correct=10)
        await take_test(service, 2, correct=8)

        levels = await service.get_levels_for_user(USER)

        assert len(levels) == 12
        by_level = {entry["level"]: entry for entry in levels}
        assert by_level[1]["status"] == "passed"
        assert by_level[1]["action_label"] == "Try Again"
        assert by_level[1]["button_variant"] == "outline"
        assert by_level[2]["status"] == "passed"
        assert by_level[2]["best_score"] == 80
        assert by_level[3]["status"] == "available"
        assert by_level[3]["action_label"] == "Start Test"
        assert by_level[3]["button_variant"] == "primary"
        assert by_level[3]["is_locked"] is False
        assert by_level[4]["status"] == "locked"
        assert by_level[4]["is_locked"] is True
        assert all(by_level[n]["is_locked"] for n in range(4, 13))

    @pytest.mark.asyncio
    async def test_new_user_sees_only_level_one(self, service):
        levels = await service.get_levels_for_user("newcomer")

        assert [entry["status"] for entry in levels[:2]] == ["available", "locked"]
        assert await service.can_take_level("newcomer", 1)
        assert not await service.can_take_level("newcomer", 2)
        assert not await service.can_take_level("newcomer", 99)

    @pytest.mark.asyncio
    async def test_level_stats_and_history(self, service, clock):
        await take_test(service, 1, correct=5)
        clock.advance(minutes=10)
        await take_test(service, 1, correct=9)

        stats = await service.get_level_stats(USER, 1)
        history = await service.get_history(USER, level=1)

        assert stats == {"attempts": 2, "best_score": 90, "passed": True, "average_time": 0}
        assert [h["attempt_number"] for h in history] == [2, 1]
        assert history[0]["percentage"] == 90

    @pytest.mark.asyncio
    async def test_level_stats_for_unknown_level(self, service):
        with pytest.raises(LevelNotFoundError):
            await service.get_level_stats(USER, 42)

    @pytest.mark.asyncio
    async def test_session_results(self, service):
        session = await service.start_session(USER, 1)
        first, second = session["questions"][:2]
        await service.submit_answer(session["id"], first["id"], "True", USER)
        await service.submit_answer(session["id"], second["id"], "False", USER)

        with pytest.raises(InvalidSessionStateError):
            await service.get_session_results(session["id"], USER)

        await service.complete_session(session["id"], USER)
        results = await service.get_session_results(session["id"], USER)

        by_question = {r["question_id"]: r for r in results["results"]}
        assert by_question[first["id"]]["is_correct"] is True
        assert by_question[first["id"]]["points_earned"] == 10
        assert by_question[second["id"]]["is_correct"] is False
        assert results["questions"][0]["correct_answer"] == "True"
        assert results["score"] == 10

    @pytest.mark.asyncio
    async def test_active_session(self, service):
        assert await service.get_active_session(USER) is None

        session = await service.start_session(USER, 1)
        active = await service.get_active_session(USER)

        assert active["id"] == session["id"]
        assert len(active["questions"]) == 10

    @pytest.mark.asyncio
    async def test_level_catalog(self, service):
        catalog = service.get_level_catalog()
        assert [entry["level"] for entry in catalog] == list(range(1, 13))
        assert catalog[0]["duration_label"] == "5 min"

    @pytest.mark.asyncio
    async def test_expire_stale_sessions(self, service, clock):
        await service.start_session(USER, 1)
        await service.start_session("user-2", 1)
        clock.advance(minutes=3)
        await service.start_session("user-3", 1)
        clock.advance(minutes=3)

        assert await service.expire_stale_sessions() == 2
        assert await service.expire_stale_sessions() == 0
        assert await service.get_active_session("user-3") is not None
