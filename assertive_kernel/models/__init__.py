"""ORM models for the assertive kernel."""

from assertive_kernel.models.learner import (
    LearnerStateModel,
    LedgerEntryModel,
    ProblemAttemptModel,
)

__all__ = [
    "LearnerStateModel",
    "LedgerEntryModel",
    "ProblemAttemptModel",
]
