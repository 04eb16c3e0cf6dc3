import random
from collections import Counter
from itertools import permutations

from essay_defense.models.question import Question
from essay_defense.services.question_selector import load_question_bank, select_questions

BANK = {
    "content": ["c1", "c2", "c3", "c4", "c5"],
    "process": ["p1", "p2", "p3"],
}


class TestSelectQuestions:
    def test_counts_and_no_duplicates(self):
        selected = select_questions(BANK, 3, 2, rng=random.Random(1))
        assert len(selected.content) == 3
        assert len(selected.process) == 2
        assert len(set(selected.content)) == 3
        assert set(selected.content) <= set(BANK["content"])
        assert set(selected.process) <= set(BANK["process"])

    def test_capped_at_pool_size(self):
        selected = select_questions(BANK, 10, 10, rng=random.Random(2))
        assert sorted(selected.content) == sorted(BANK["content"])
        assert sorted(selected.process) == sorted(BANK["process"])

    def test_missing_category_and_zero_count(self):
        selected = select_questions({"content": ["c1"]}, 0, 3)
        assert selected.content == []
        assert selected.process == []

    def test_bank_is_not_mutated(self):
        bank = {k: list(v) for k, v in BANK.items()}
        select_questions(bank, 3, 3, rng=random.Random(3))
        assert bank == BANK

    def test_same_seed_is_reproducible(self):
        a = select_questions(BANK, 2, 2, rng=random.Random(42))
        b = select_questions(BANK, 2, 2, rng=random.Random(42))
        assert a == b

    def test_orderings_are_roughly_uniform(self):
        """All 6 orderings of a 3-question pool should show up with similar frequency."""
        rng = random.Random(1234)
        pool = {"content": ["a", "b", "c"], "process": []}
        trials = 6000
        counts = Counter(
            tuple(select_questions(pool, 3, 0, rng=rng).content) for _ in range(trials)
        )
        assert set(counts) == set(permutations("abc"))
        expected = trials / 6
        for n in counts.values():
            assert abs(n - expected) < expected * 0.15


class TestLoadQuestionBank:
    def test_groups_active_questions(self, db_session):
        db_session.add_all(
            [
                Question(category="content", question_text="What is your thesis?"),
                Question(category="process", question_text="How did you research this?"),
                Question(category="content", question_text="Old question", active=False),
            ]
        )
        db_session.commit()

        bank = load_question_bank(db_session)
        assert bank["content"] == ["What is your thesis?"]
        assert bank["process"] == ["How did you research this?"]
