"""
Plan generation failures surfaced to the plan service.

Everything else (stale cache entries, inactive brands without a replacement,
empty non-mandatory steps) degrades in place and is only logged.
"""


class PlanGenerationError(Exception):
    """Base class for failures that abort a plan generation."""


class MissingProfileError(PlanGenerationError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No skin profile found for user {user_id}")


class EmptyCatalogForRequiredStepError(PlanGenerationError):
    """A mandatory step (cleanser or SPF) has no product after every fallback tier."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"No product available for mandatory step '{step}'")
