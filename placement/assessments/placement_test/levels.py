"""
Level Catalog

Static configuration of the placement test ladder. Levels are grouped into
four tiers that share a duration and question-type mix:

    Lv1-3    basic         5 min   True/False + Multiple Choice
    Lv4-6    intermediate  15 min  Multiple Choice + Short Answer
    Lv7-9    advanced      30 min  Short Answer + Essay
    Lv10-12  expert        60 min  Essay
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from placement.common.serialization import SerializableMixin
from placement.common.utils import format_duration
from placement.assessments.placement_test.errors import LevelNotFoundError

TOTAL_LEVELS = 12
QUESTIONS_PER_LEVEL = 10
DEFAULT_PASSING_PERCENTAGE = 70.0


@dataclass(frozen=True)
class LevelTier:
    """Shared configuration for a band of consecutive levels."""
    name: str
    max_level: int
    duration_minutes: int
    question_type_mix: str
    description: str


LEVEL_TIERS = (
    LevelTier("basic", 3, 5, "True/False + Multiple Choice", "Basic Concepts Test"),
    LevelTier("intermediate", 6, 15, "Multiple Choice + Short Answer", "Intermediate Application Test"),
    LevelTier("advanced", 9, 30, "Short Answer + Essay", "Advanced Skills Test"),
    LevelTier("expert", TOTAL_LEVELS, 60, "Essay", "Expert Level Test"),
)

LEVEL_TITLES = {
    1: ("AI Fundamentals", "Introduction to AI concepts and basic terminology"),
    2: ("Prompt Foundations", "Core concepts of effective prompt writing"),
    3: ("Prompt Techniques", "Essential prompting techniques and parameters"),
    4: ("Applied Prompting", "Practical applications and advanced techniques"),
    5: ("AI Technologies", "Technical concepts behind modern AI systems"),
    6: ("AI Systems Design", "Building and integrating AI systems"),
    7: ("Professional Applications", "Enterprise-level AI implementation"),
    8: ("Advanced AI Systems", "Complex AI architectures and optimization"),
    9: ("AI Architecture", "Scalable AI systems and orchestration"),
    10: ("AI Strategy", "Strategic AI implementation and governance"),
    11: ("AI Leadership", "Leading AI initiatives and transformation"),
    12: ("AI Mastery", "Expert-level AI governance and future vision"),
}


def get_level_tier(level: int) -> LevelTier:
    """Return the tier a level number belongs to."""
    for tier in LEVEL_TIERS:
        if level <= tier.max_level:
            return tier
    # Levels past the last configured band share the top tier
    return LEVEL_TIERS[-1]


def get_level_duration(level: int) -> int:
    """Return the time limit in minutes for a level."""
    return get_level_tier(level).duration_minutes


@dataclass(frozen=True)
class Level(SerializableMixin):
    """
    Immutable configuration for one level of the ladder.

    Attributes:
        level: Level number, starting at 1
        duration_minutes: Time limit of a session at this level
        question_count: Number of questions a session is assigned
        question_type_mix: Display text of the question types used
        passing_percentage: Minimum score (0-100) needed to pass
        prerequisite_level: Level that must be passed first, None for level 1
        tier: Name of the tier the level belongs to
        title: Short display title
        description: One-line description
    """

    __serializable_fields__ = [
        "level", "duration_minutes", "question_count", "question_type_mix",
        "passing_percentage", "prerequisite_level", "tier", "title", "description"
    ]
    __optional_fields__ = ["prerequisite_level", "tier", "title", "description"]

    level: int
    duration_minutes: int
    question_count: int
    question_type_mix: str
    passing_percentage: float
    prerequisite_level: Optional[int] = None
    tier: str = ""
    title: str = ""
    description: str = ""

    @property
    def duration_label(self) -> str:
        """Human-readable time limit."""
        return format_duration(self.duration_minutes)

    def to_dict(self):
        result = super().to_dict()
        result["duration_label"] = self.duration_label
        return result


def build_level(
    level: int,
    question_count: int = QUESTIONS_PER_LEVEL,
    passing_percentage: float = DEFAULT_PASSING_PERCENTAGE
) -> Level:
    """Build the catalog entry for a single level number."""
    tier = get_level_tier(level)
    title, description = LEVEL_TITLES.get(level, (f"Level {level}", tier.description))
    return Level(
        level=level,
        duration_minutes=tier.duration_minutes,
        question_count=question_count,
        question_type_mix=tier.question_type_mix,
        passing_percentage=passing_percentage,
        prerequisite_level=level - 1 if level > 1 else None,
        tier=tier.name,
        title=title,
        description=description,
    )


class LevelCatalog:
    """
    Lookup of the configured levels, ordered by level number.

    The catalog is the single source of truth for durations and the pass
    threshold used when a session is scored.
    """

    def __init__(self, levels: List[Level]):
        if not levels:
            raise ValueError("Level catalog requires at least one level")
        self._levels: Dict[int, Level] = {lvl.level: lvl for lvl in sorted(levels, key=lambda l: l.level)}

    @classmethod
    def default(
        cls,
        total_levels: int = TOTAL_LEVELS,
        question_count: int = QUESTIONS_PER_LEVEL,
        passing_percentage: float = DEFAULT_PASSING_PERCENTAGE
    ) -> 'LevelCatalog':
        """Build the standard ladder of consecutive levels starting at 1."""
        return cls([
            build_level(level, question_count, passing_percentage)
            for level in range(1, total_levels + 1)
        ])

    def get(self, level: int) -> Level:
        """
        Get the configuration of a level.

        Raises:
            LevelNotFoundError: If the level is not configured
        """
        try:
            return self._levels[level]
        except KeyError:
            raise LevelNotFoundError(level)

    def all(self) -> List[Level]:
        """All levels in ascending order."""
        return list(self._levels.values())

    @property
    def top_level(self) -> int:
        """Highest configured level number."""
        return max(self._levels)

    def __contains__(self, level: object) -> bool:
        return level in self._levels

    def __iter__(self) -> Iterator[Level]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._levels)
