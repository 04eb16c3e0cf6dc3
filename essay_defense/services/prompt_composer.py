# essay_defense/services/prompt_composer.py
"""
Prompt Composer

Renders the examiner's system prompt and opening line. Rendering is a pure
function of its inputs; template lookup is the only part that touches the
database, and a missing template never fails a submission.
"""

import logging

from sqlalchemy.orm import Session

from essay_defense.models.prompt_template import PromptTemplate
from essay_defense.schemas.submission import SelectedQuestions

logger = logging.getLogger(__name__)

NAME_PLACEHOLDER = "{student_name}"

DEFAULT_PERSONALITY = (
    "You are a calm, friendly but rigorous oral examiner. You are talking with "
    "{student_name} about an essay they submitted. Speak in short, clear "
    "sentences, ask one question at a time and never answer your own questions."
)

DEFAULT_FLOW = (
    "Work through the numbered questions below in order. After each answer, ask "
    "at most one follow-up question if the answer is vague or does not match the "
    "essay. Do not reveal the grading criteria or comment on how well the student "
    "is doing. When every question has been covered, thank the student and end "
    "the conversation."
)

DEFAULT_FIRST_MESSAGE = (
    "Hi {student_name}, thanks for joining. I'd like to ask you a few questions "
    "about your essay. Are you ready to begin?"
)

DEFAULT_RUBRIC = """Score the student's oral defense of their essay on four elements.

1. Ownership of argument (1-3): can the student restate the thesis and main claims in their own words?
2. Process knowledge (1-3): can the student describe how the essay was researched, drafted and revised?
3. Depth of understanding (1-5): can the student explain and extend the reasoning behind their claims?
4. Consistency with the essay (1-5): do the spoken answers agree with what the essay actually says?

For each element write a line "Score: N" followed by a one-sentence justification.
Then write "Average: X" with the mean of the four scores, and
"Final multiplier: M" where M = 1.00 + (X - 3) * 0.05, limited to the range 0.90 - 1.05.
If the defense suggests the student did not write or does not understand the essay, say so explicitly."""

DEFAULT_TEMPLATES = {
    "personality": DEFAULT_PERSONALITY,
    "flow": DEFAULT_FLOW,
    "first_message": DEFAULT_FIRST_MESSAGE,
    "rubric": DEFAULT_RUBRIC,
}


def resolve_template(db: Session, name: str, default: str | None = None) -> tuple[str, bool]:
    """
    Look up a named template.

    Returns (body, used_fallback). Falls back to the built-in default and logs
    a warning when the template is missing or empty.
    """
    row = db.query(PromptTemplate).filter(PromptTemplate.name == name).first()
    if row is not None and row.body and row.body.strip():
        return row.body, False

    fallback = default if default is not None else DEFAULT_TEMPLATES.get(name, "")
    logger.warning(f"Prompt template '{name}' not found, using built-in default")
    return fallback, True


def _fill_name(template: str, student_name: str) -> str:
    # str.format would choke on literal braces in operator-written templates
    return template.replace(NAME_PLACEHOLDER, student_name)


def render_first_message(template: str, student_name: str) -> str:
    return _fill_name(template, student_name).strip()


def _numbered_questions(selected: SelectedQuestions) -> str:
    questions = list(selected.content) + list(selected.process)
    return "\n".join(f"{i}. {q}" for i, q in enumerate(questions, start=1))


def compose_prompt(
    student_name: str,
    essay_text: str,
    selected: SelectedQuestions,
    personality_template: str,
    flow_template: str,
) -> str:
    """
    Build the examiner system prompt.

    Sections, in order: persona, examination flow, the essay verbatim, and the
    numbered questions (content questions first, then process questions).
    """
    sections = [
        _fill_name(personality_template, student_name).strip(),
        "## Examination flow\n" + _fill_name(flow_template, student_name).strip(),
        "## Essay\n<essay>\n" + essay_text + "\n</essay>",
        "## Questions\n" + _numbered_questions(selected),
    ]
    return "\n\n".join(sections)
