# essay_defense/services/question_selector.py
"""
Question Selector

Draws the per-submission defense questions from the question bank.
The result is stored on the submission and never re-drawn.
"""

import random
from typing import Mapping, Sequence

from sqlalchemy.orm import Session

from essay_defense.models.question import CATEGORIES, CONTENT, PROCESS, Question
from essay_defense.schemas.submission import SelectedQuestions

_system_random = random.SystemRandom()


def _sample(pool: Sequence[str], count: int, rng: random.Random) -> list[str]:
    # shuffle a copy (Fisher-Yates) and take a prefix; the bank is never mutated
    shuffled = list(pool)
    rng.shuffle(shuffled)
    return shuffled[: max(0, min(count, len(shuffled)))]


def select_questions(
    bank: Mapping[str, Sequence[str]],
    content_count: int,
    process_count: int,
    rng: random.Random | None = None,
) -> SelectedQuestions:
    """
    Pick `content_count` content and `process_count` process questions
    uniformly at random, without replacement.

    Each category is capped at the size of its pool. Pass `rng` to make
    the draw reproducible.
    """
    rng = rng or _system_random
    return SelectedQuestions(
        content=_sample(bank.get(CONTENT, ()), content_count, rng),
        process=_sample(bank.get(PROCESS, ()), process_count, rng),
    )


def load_question_bank(db: Session) -> dict[str, list[str]]:
    """Active questions grouped by category, in insertion order."""
    bank: dict[str, list[str]] = {category: [] for category in CATEGORIES}
    rows = (
        db.query(Question)
        .filter(Question.active.is_(True))
        .order_by(Question.id.asc())
        .all()
    )
    for row in rows:
        bank.setdefault(row.category, []).append(row.question_text)
    return bank
