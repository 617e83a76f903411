"""Services - imperative shell around the assertive kernel domain."""

from assertive_kernel.services.learner_store import InMemoryLearnerStore, LearnerStore
from assertive_kernel.services.practice_service import PracticeService
from assertive_kernel.services.progress_service import ProgressService
from assertive_kernel.services.simulation_service import SimulationService
from assertive_kernel.services.sql_learner_store import SqlLearnerStore

__all__ = [
    "InMemoryLearnerStore",
    "LearnerStore",
    "PracticeService",
    "ProgressService",
    "SimulationService",
    "SqlLearnerStore",
]
