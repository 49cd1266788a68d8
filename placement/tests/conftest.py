"""
Shared fixtures for the placement test suite.
"""

import datetime
from typing import List

import pytest

from placement.assessments.placement_test.levels import LevelCatalog
from placement.assessments.placement_test.models import Question

START_TIME = datetime.datetime(2026, 1, 5, 9, 0, 0)


class FrozenClock:
    """Controllable time source injected in place of utcnow."""

    def __init__(self, now: datetime.datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> datetime.datetime:
        self.now = self.now + datetime.timedelta(**kwargs)
        return self.now


def make_questions(level: int = 1, count: int = 10, points: int = 10) -> List[Question]:
    """Build true/false questions whose reference answer is always "True"."""
    return [
        Question(
            id=f"q-lv{level}-{i}",
            level=level,
            type="true-false",
            content=f"Statement {i} of level {level}",
            points=points,
            correct_answer="True",
            options=["True", "False"],
            sort_order=i,
        )
        for i in range(1, count + 1)
    ]


def make_question_bank(levels: int = 12, count: int = 10) -> List[Question]:
    questions = []
    for level in range(1, levels + 1):
        questions.extend(make_questions(level, count))
    return questions


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def catalog():
    return LevelCatalog.default()


@pytest.fixture
def questions():
    return make_questions()
