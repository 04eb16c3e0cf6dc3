import logging

from essay_defense.models.prompt_template import PromptTemplate
from essay_defense.schemas.submission import SelectedQuestions
from essay_defense.services.prompt_composer import (
    DEFAULT_PERSONALITY,
    compose_prompt,
    render_first_message,
    resolve_template,
)

SELECTED = SelectedQuestions(
    content=["What is your main claim?", "Which source mattered most?"],
    process=["How did you outline the essay?"],
)
ESSAY = "Rivers shape cities.\n\nThey {always} have."


class TestComposePrompt:
    def test_sections_in_order(self):
        prompt = compose_prompt("Jane Doe", ESSAY, SELECTED, "PERSONA for {student_name}", "FLOW rules")

        persona = prompt.index("PERSONA for Jane Doe")
        flow = prompt.index("FLOW rules")
        essay = prompt.index(ESSAY)
        questions = prompt.index("1. What is your main claim?")
        assert persona < flow < essay < questions

    def test_questions_numbered_content_first(self):
        prompt = compose_prompt("Jane", ESSAY, SELECTED, "p", "f")
        assert "1. What is your main claim?\n2. Which source mattered most?\n3. How did you outline the essay?" in prompt

    def test_essay_verbatim_with_braces(self):
        prompt = compose_prompt("Jane", ESSAY, SELECTED, "p", "f")
        assert ESSAY in prompt

    def test_is_deterministic(self):
        args = ("Jane Doe", ESSAY, SELECTED, DEFAULT_PERSONALITY, "flow")
        assert compose_prompt(*args) == compose_prompt(*args)


class TestFirstMessage:
    def test_name_substituted(self):
        assert render_first_message("Hi {student_name}, ready?", "Sam") == "Hi Sam, ready?"

    def test_other_braces_left_alone(self):
        assert render_first_message("{greeting} {student_name}", "Sam") == "{greeting} Sam"


class TestResolveTemplate:
    def test_stored_template_wins(self, db_session):
        db_session.add(PromptTemplate(name="personality", body="Custom persona"))
        db_session.commit()

        body, used_fallback = resolve_template(db_session, "personality")
        assert body == "Custom persona"
        assert used_fallback is False

    def test_missing_template_falls_back_with_warning(self, db_session, caplog):
        with caplog.at_level(logging.WARNING):
            body, used_fallback = resolve_template(db_session, "personality")
        assert body == DEFAULT_PERSONALITY
        assert used_fallback is True
        assert "personality" in caplog.text

    def test_blank_template_counts_as_missing(self, db_session):
        db_session.add(PromptTemplate(name="flow", body="   "))
        db_session.commit()
        _, used_fallback = resolve_template(db_session, "flow")
        assert used_fallback is True
