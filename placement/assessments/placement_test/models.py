"""
Placement Test Models

This module defines the domain model of the timed assessment engine:
questions, the session aggregate with its state machine and scoring,
and the derived attempt/progress records.
"""

import enum
import uuid
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from placement.common.serialization import SerializableMixin
from placement.common.utils import utcnow, safe_divide
from placement.assessments.placement_test.errors import (
    InvalidSessionStateError,
    SessionExpiredError
)
from placement.assessments.placement_test.levels import DEFAULT_PASSING_PERCENTAGE


class SessionStatus(enum.Enum):
    """Status of a placement test session."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.IN_PROGRESS


class QuestionType(enum.Enum):
    """Question formats used across the level tiers."""
    TRUE_FALSE = "true-false"
    MULTIPLE_CHOICE = "multiple-choice"
    SHORT_ANSWER = "short-answer"
    ESSAY = "essay"


class LevelStatus(enum.Enum):
    """Display status of a level for one user."""
    LOCKED = "locked"
    AVAILABLE = "available"
    PASSED = "passed"


class TransitionResult(enum.Enum):
    """
    Outcome of an observe-and-transition operation on a session.

    EXPIRED means the operation discovered the time limit had passed and
    moved the session to EXPIRED as part of the same call.
    """
    OK = "ok"
    EXPIRED = "expired"
    INVALID_STATE = "invalid_state"


@dataclass
class Question(SerializableMixin):
    """
    A question in the level question bank.

    Attributes:
        id: Unique question identifier
        level: Level the question belongs to
        type: Question format
        content: Question text
        points: Points awarded for a correct answer
        correct_answer: Reference answer; matched exactly when scoring
        options: Answer options for true/false and multiple choice
        rubric: Grading rubric for essay questions
        category: Topic category
        difficulty: easy, medium or hard
        sort_order: Position of the question within its level
    """

    __serializable_fields__ = [
        "id", "level", "type", "content", "points", "correct_answer",
        "options", "rubric", "category", "difficulty", "sort_order"
    ]
    __optional_fields__ = [
        "correct_answer", "options", "rubric", "category", "difficulty", "sort_order"
    ]

    id: str
    level: int
    type: QuestionType
    content: str
    points: int
    correct_answer: Optional[str] = None
    options: List[str] = field(default_factory=list)
    rubric: Optional[str] = None
    category: Optional[str] = None
    difficulty: str = "medium"
    sort_order: int = 0

    def __post_init__(self):
        if not self.id:
            raise ValueError("Question id is required")
        if isinstance(self.type, str):
            try:
                self.type = QuestionType(self.type)
            except ValueError:
                raise ValueError(f"Invalid question type: {self.type}")
        if self.points < 0:
            raise ValueError(f"Question points must not be negative: {self.points}")
        if self.options is None:
            self.options = []

    def is_correct(self, answer: Optional[str]) -> bool:
        """Exact string match against the reference answer."""
        return answer is not None and self.correct_answer is not None and answer == self.correct_answer

    def to_public_dict(self) -> Dict[str, Any]:
        """Question as shown to a test taker, without answer or rubric."""
        data = self.to_dict()
        data.pop("correct_answer", None)
        data.pop("rubric", None)
        return data


def calculate_score(answers: Dict[str, str], questions: Iterable[Question]) -> float:
    """
    Score a set of answers against the assigned questions.

    Only the listed questions count; answers to any other question id are
    ignored. Returns a percentage between 0 and 100, or 0 when the
    questions carry no points.
    """
    earned, total = points_breakdown(answers, questions)
    return safe_divide(earned * 100, total, 0.0)


def points_breakdown(answers: Dict[str, str], questions: Iterable[Question]) -> Tuple[int, int]:
    """Return (earned_points, total_points) for the assigned questions."""
    earned = 0
    total = 0
    for question in questions:
        total += question.points
        if question.is_correct(answers.get(question.id)):
            earned += question.points
    return earned, total


@dataclass
class AssessmentSession(SerializableMixin):
    """
    Aggregate governing one user's timed attempt at one level.

    The session starts IN_PROGRESS and moves exactly once to COMPLETED or
    EXPIRED. Expiry is lazy: it is detected and recorded the next time the
    session is answered or completed after expires_at, never by a timer.
    Score and passed are set at the COMPLETED transition only.
    """

    __serializable_fields__ = [
        "id", "user_id", "level", "status", "answers", "started_at", "expires_at",
        "score", "passed", "completed_at", "earned_points", "max_score",
        "time_spent_seconds"
    ]
    __optional_fields__ = [
        "status", "answers", "score", "passed", "completed_at", "earned_points",
        "max_score", "time_spent_seconds"
    ]

    id: str
    user_id: str
    level: int
    started_at: datetime.datetime
    expires_at: datetime.datetime
    status: SessionStatus = SessionStatus.IN_PROGRESS
    answers: Dict[str, str] = field(default_factory=dict)
    score: Optional[float] = None
    passed: Optional[bool] = None
    completed_at: Optional[datetime.datetime] = None
    earned_points: Optional[int] = None
    max_score: Optional[int] = None
    time_spent_seconds: Optional[int] = None

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("User ID is required")
        if isinstance(self.status, str):
            try:
                self.status = SessionStatus(self.status)
            except ValueError:
                raise ValueError(f"Invalid session status: {self.status}")
        if self.expires_at < self.started_at:
            raise ValueError("Session cannot expire before it starts")
        if self.answers is None:
            self.answers = {}

    @classmethod
    def create(
        cls,
        id: Optional[str],
        user_id: str,
        level: int,
        duration_minutes: int,
        now: Optional[datetime.datetime] = None
    ) -> 'AssessmentSession':
        """
        Start a new in-progress session.

        Args:
            id: Session identifier, generated when empty
            user_id: Owner of the session
            level: Level being attempted
            duration_minutes: Time limit; fixes expires_at for the session's lifetime
            now: Start time, defaults to the current UTC time

        Returns:
            New session with an empty answer map
        """
        started_at = now or utcnow()
        return cls(
            id=id or str(uuid.uuid4()),
            user_id=user_id,
            level=level,
            status=SessionStatus.IN_PROGRESS,
            answers={},
            started_at=started_at,
            expires_at=started_at + datetime.timedelta(minutes=duration_minutes),
        )

    @classmethod
    def reconstitute(cls, data: Dict[str, Any]) -> 'AssessmentSession':
        """Rebuild a session from persisted state without creation side effects."""
        return cls.from_dict(data)

    def is_expired(self, now: Optional[datetime.datetime] = None) -> bool:
        """Whether the time limit has passed at the given instant."""
        return (now or utcnow()) > self.expires_at

    def observe_expiry(self, now: Optional[datetime.datetime] = None) -> bool:
        """
        Move an overdue in-progress session to EXPIRED.

        Returns:
            True if this call performed the transition
        """
        if self.status is SessionStatus.IN_PROGRESS and self.is_expired(now):
            self.status = SessionStatus.EXPIRED
            return True
        return False

    def try_answer(
        self,
        question_id: str,
        answer: str,
        now: Optional[datetime.datetime] = None
    ) -> TransitionResult:
        """
        Record an answer, reporting the outcome instead of raising.

        The answer map is upserted (last write wins). Question ids are not
        checked against the assigned questions; unknown ids are stored but
        never scored.
        """
        if self.status is not SessionStatus.IN_PROGRESS:
            return TransitionResult.INVALID_STATE
        if self.observe_expiry(now):
            return TransitionResult.EXPIRED
        self.answers[question_id] = answer
        return TransitionResult.OK

    def answer_question(
        self,
        question_id: str,
        answer: str,
        now: Optional[datetime.datetime] = None
    ) -> None:
        """
        Record an answer.

        Raises:
            InvalidSessionStateError: If the session is not in progress
            SessionExpiredError: If the time limit passed; the session is
                EXPIRED when this is raised
        """
        self._raise_for(self.try_answer(question_id, answer, now), "answer")

    def try_complete(
        self,
        questions: List[Question],
        passing_percentage: float = DEFAULT_PASSING_PERCENTAGE,
        now: Optional[datetime.datetime] = None
    ) -> TransitionResult:
        """
        Score the session and move it to COMPLETED, reporting the outcome.

        Unanswered questions score as incorrect.
        """
        if self.status is not SessionStatus.IN_PROGRESS:
            return TransitionResult.INVALID_STATE
        if self.observe_expiry(now):
            return TransitionResult.EXPIRED

        completed_at = now or utcnow()
        self.earned_points, self.max_score = points_breakdown(self.answers, questions)
        self.score = self.calculate_score(questions)
        self.passed = self.score >= passing_percentage
        self.completed_at = completed_at
        self.time_spent_seconds = max(0, int((completed_at - self.started_at).total_seconds()))
        self.status = SessionStatus.COMPLETED
        return TransitionResult.OK

    def complete(
        self,
        questions: List[Question],
        passing_percentage: float = DEFAULT_PASSING_PERCENTAGE,
        now: Optional[datetime.datetime] = None
    ) -> None:
        """
        Score the session and move it to COMPLETED.

        Raises:
            InvalidSessionStateError: If the session is not in progress,
                including a second call on a completed session
            SessionExpiredError: If the time limit passed; the session is
                EXPIRED when this is raised
        """
        self._raise_for(self.try_complete(questions, passing_percentage, now), "complete")

    def calculate_score(self, questions: Iterable[Question]) -> float:
        """Percentage score of the current answers; has no side effects."""
        return calculate_score(self.answers, questions)

    def _raise_for(self, result: TransitionResult, action: str) -> None:
        if result is TransitionResult.INVALID_STATE:
            raise InvalidSessionStateError(self.id, self.status.value, action)
        if result is TransitionResult.EXPIRED:
            raise SessionExpiredError(self.id, self.expires_at)

    def terminal_fields(self) -> Dict[str, Any]:
        """Fields written back to storage after a state transition."""
        return {
            "status": self.status,
            "score": self.score,
            "passed": self.passed,
            "completed_at": self.completed_at,
            "earned_points": self.earned_points,
            "max_score": self.max_score,
            "time_spent_seconds": self.time_spent_seconds,
        }


@dataclass
class LevelAttempt(SerializableMixin):
    """Append-only history row written when a session is completed."""

    __serializable_fields__ = [
        "id", "user_id", "level", "session_id", "attempt_number", "score",
        "earned_points", "max_score", "percentage", "passed",
        "time_spent_seconds", "attempted_at"
    ]

    id: str
    user_id: str
    level: int
    session_id: str
    attempt_number: int
    score: float
    earned_points: int
    max_score: int
    percentage: int
    passed: bool
    time_spent_seconds: int
    attempted_at: datetime.datetime

    @classmethod
    def from_session(cls, session: AssessmentSession, attempt_number: int) -> 'LevelAttempt':
        """Summarize a completed session."""
        if session.status is not SessionStatus.COMPLETED:
            raise InvalidSessionStateError(session.id, session.status.value, "record attempt for")
        return cls(
            id=f"la-{session.id}",
            user_id=session.user_id,
            level=session.level,
            session_id=session.id,
            attempt_number=attempt_number,
            score=session.score,
            earned_points=session.earned_points or 0,
            max_score=session.max_score or 0,
            percentage=int(round(session.score)),
            passed=bool(session.passed),
            time_spent_seconds=session.time_spent_seconds or 0,
            attempted_at=session.completed_at,
        )


@dataclass
class UserTestProgress(SerializableMixin):
    """
    Per-user progression cursor.

    current_level is the next level to attempt; highest_passed_level gates
    which levels are unlocked.
    """

    __serializable_fields__ = [
        "user_id", "current_level", "highest_passed_level", "total_attempts",
        "total_passed", "total_failed", "average_score", "last_attempt_at",
        "created_at", "updated_at"
    ]
    __optional_fields__ = [
        "current_level", "highest_passed_level", "total_attempts", "total_passed",
        "total_failed", "average_score", "last_attempt_at", "created_at", "updated_at"
    ]

    user_id: str
    current_level: int = 1
    highest_passed_level: int = 0
    total_attempts: int = 0
    total_passed: int = 0
    total_failed: int = 0
    average_score: Optional[float] = None
    last_attempt_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def record_attempt(self, attempt: LevelAttempt, top_level: int) -> None:
        """
        Fold a completed attempt into the cursor.

        Args:
            attempt: The attempt just recorded
            top_level: Highest level of the catalog; current_level never passes it
        """
        previous_total = self.total_attempts
        self.total_attempts += 1
        self.average_score = (
            ((self.average_score or 0.0) * previous_total + attempt.score) / self.total_attempts
        )

        if attempt.passed:
            self.total_passed += 1
            self.highest_passed_level = max(self.highest_passed_level, attempt.level)
            if attempt.level >= self.current_level:
                self.current_level = min(attempt.level + 1, top_level)
        else:
            self.total_failed += 1

        self.last_attempt_at = attempt.attempted_at
        self.updated_at = attempt.attempted_at

    def is_unlocked(self, level: int) -> bool:
        """Sequential unlocking: level 1 always, otherwise the previous level must be passed."""
        return level == 1 or level - 1 <= self.highest_passed_level

    def has_passed(self, level: int) -> bool:
        return 1 <= level <= self.highest_passed_level


@dataclass
class LevelStats(SerializableMixin):
    """Historical statistics of one user at one level."""

    __serializable_fields__ = ["attempts", "best_score", "passed", "average_time"]

    attempts: int = 0
    best_score: Optional[float] = None
    passed: bool = False
    average_time: Optional[float] = None

    @classmethod
    def from_attempts(cls, attempts: List[LevelAttempt]) -> 'LevelStats':
        if not attempts:
            return cls()
        return cls(
            attempts=len(attempts),
            best_score=max(a.score for a in attempts),
            passed=any(a.passed for a in attempts),
            average_time=sum(a.time_spent_seconds for a in attempts) / len(attempts),
        )


@dataclass
class SessionDetails:
    """A session assembled with its assigned questions and level metadata."""
    session: AssessmentSession
    questions: List[Question]
    level_info: Any = None

    def to_dict(self, include_solutions: bool = False) -> Dict[str, Any]:
        data = self.session.to_dict()
        if include_solutions:
            data["questions"] = [q.to_dict() for q in self.questions]
        else:
            data["questions"] = [q.to_public_dict() for q in self.questions]
        if self.level_info is not None:
            data["level_info"] = self.level_info.to_dict()
        return data
