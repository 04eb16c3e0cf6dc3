# essay_defense/core/exceptions.py
"""
Error taxonomy for the defense pipeline.

Services raise these; the API layer maps them to HTTP responses.
Grading-text parse failures have no exception here: the parser falls
back to a neutral multiplier instead of raising.
"""


class DefenseError(Exception):
    pass


class ValidationError(DefenseError):
    pass


class EssayTooLongError(ValidationError):
    def __init__(self, limit: int, actual: int):
        self.limit = limit
        self.actual = actual
        super().__init__(
            f"essay is {actual} characters, the limit is {limit}"
        )


class MissingFieldError(ValidationError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} is required")


class AuthenticationError(DefenseError):
    pass


class SubmissionNotFoundError(DefenseError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"submission {session_id} not found")


class CorrelationFailure(DefenseError):
    pass


class ExternalServiceError(DefenseError):
    def __init__(self, service: str, detail: str):
        self.service = service
        self.detail = detail
        super().__init__(f"{service}: {detail}")


class GradingError(DefenseError):
    pass


class InvalidTransitionError(DefenseError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"cannot move submission from {current} to {target}")
