"""
Placement Test Assessment Module

Timed, level-gated placement tests: users attempt levels 1-12 in order,
each session runs against a fixed time limit and is scored once when the
user completes it.
"""

from placement.assessments.placement_test.errors import (
    AssessmentError,
    InvalidSessionStateError,
    LevelLockedError,
    LevelNotFoundError,
    SessionAccessError,
    SessionAlreadyActiveError,
    SessionExpiredError,
    SessionNotFoundError
)
from placement.assessments.placement_test.levels import Level, LevelCatalog
from placement.assessments.placement_test.models import (
    AssessmentSession,
    LevelAttempt,
    LevelStats,
    LevelStatus,
    Question,
    QuestionType,
    SessionStatus,
    TransitionResult,
    UserTestProgress
)
from placement.assessments.placement_test.repository import PlacementTestRepository
from placement.assessments.placement_test.memory_repository import MemoryPlacementTestRepository
from placement.assessments.placement_test.queries import PlacementTestQueries
from placement.assessments.placement_test.service import (
    PlacementTestService,
    create_placement_test_service
)
from placement.assessments.placement_test.controller import router

__all__ = [
    'AssessmentError',
    'InvalidSessionStateError',
    'LevelLockedError',
    'LevelNotFoundError',
    'SessionAccessError',
    'SessionAlreadyActiveError',
    'SessionExpiredError',
    'SessionNotFoundError',
    'Level',
    'LevelCatalog',
    'AssessmentSession',
    'LevelAttempt',
    'LevelStats',
    'LevelStatus',
    'Question',
    'QuestionType',
    'SessionStatus',
    'TransitionResult',
    'UserTestProgress',
    'PlacementTestRepository',
    'MemoryPlacementTestRepository',
    'PlacementTestQueries',
    'PlacementTestService',
    'create_placement_test_service',
    'router'
]
