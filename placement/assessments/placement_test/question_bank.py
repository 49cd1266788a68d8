"""
Question Bank

Loads the placement test questions from a YAML file and seeds them into a
repository. The bundled bank lives next to this module in data/.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from placement.common.exceptions import ConfigurationError
from placement.common.logger import app_logger
from placement.assessments.placement_test.models import Question

logger = app_logger.getChild("placement_test.question_bank")

DEFAULT_QUESTION_BANK_PATH = Path(__file__).parent / "data" / "question_bank.yaml"


def _read_bank_file(path: Path) -> List[Dict[str, Any]]:
    """Read the raw question entries from a YAML or JSON file."""
    if not path.exists():
        raise ConfigurationError(f"Question bank not found: {path}", "QUESTION_BANK_PATH")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() in ['.yaml', '.yml']:
                raw = yaml.safe_load(f)
            elif path.suffix.lower() == '.json':
                raw = json.load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported question bank format: {path.suffix}", "QUESTION_BANK_PATH"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Malformed question bank {path}: {e}", "QUESTION_BANK_PATH")

    if isinstance(raw, dict):
        raw = raw.get("questions", [])
    if not isinstance(raw, list):
        raise ConfigurationError(f"Question bank {path} must contain a list of questions")
    return raw


def load_question_bank(path: Optional[Union[str, Path]] = None) -> List[Question]:
    """
    Load questions from a question bank file.

    Within each level, questions get a sort_order matching their position
    in the file unless the entry sets one explicitly.

    Args:
        path: YAML or JSON file, defaults to the bundled bank

    Returns:
        Questions ordered by level and sort_order

    Raises:
        ConfigurationError: If the file is missing or an entry is invalid
    """
    bank_path = Path(path) if path else DEFAULT_QUESTION_BANK_PATH
    entries = _read_bank_file(bank_path)

    questions = []
    positions: Dict[int, int] = {}
    seen_ids = set()
    for index, entry in enumerate(entries):
        try:
            level = int(entry["level"])
            positions[level] = positions.get(level, 0) + 1
            data = dict(entry)
            data.setdefault("sort_order", positions[level])
            question = Question.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid question #{index + 1} in {bank_path}: {e}")

        if question.id in seen_ids:
            raise ConfigurationError(f"Duplicate question id {question.id} in {bank_path}")
        seen_ids.add(question.id)
        questions.append(question)

    questions.sort(key=lambda q: (q.level, q.sort_order))
    logger.info(f"Loaded {len(questions)} questions from {bank_path.name}")
    return questions


async def seed_question_bank(repository, questions: Optional[List[Question]] = None) -> int:
    """
    Store the question bank in a repository.

    Seeding is idempotent: existing questions are replaced by id.

    Args:
        repository: PlacementTestRepository to seed
        questions: Questions to store, defaults to the bundled bank

    Returns:
        Number of questions stored
    """
    if questions is None:
        questions = load_question_bank()
    await repository.save_questions(questions)
    logger.info(f"Seeded {len(questions)} placement test questions")
    return len(questions)
