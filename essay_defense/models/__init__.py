# Importing the models registers their tables on Base.metadata
from essay_defense.models.question import Question  # noqa
from essay_defense.models.prompt_template import PromptTemplate  # noqa
from essay_defense.models.submission import Submission, SubmissionStatus  # noqa
from essay_defense.models.unmatched_transcript import UnmatchedTranscript  # noqa
