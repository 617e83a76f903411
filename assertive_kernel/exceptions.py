"""
Typed Exception Hierarchy for the Assertive Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every learner-facing failure (unknown action, prerequisite not met, a second
pending transaction) must reach the caller as a structured result with a
machine-readable code. Parsing message strings is fragile, so domain code
raises typed exceptions and the service layer converts them:

    try:
        pending = start_pending_transaction(...)
    except PrerequisiteNotMetError as e:
        return {"success": False, "error": e.code, "reason": e.reason}

Rules:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AssertiveError (base)
    |
    +-- CatalogError
    |   +-- CatalogValidationError
    |   +-- UnknownClassificationError
    |   +-- NoTemplatesAvailableError
    |
    +-- SimulationError
    |   +-- UnknownActionError
    |   +-- DuplicatePendingTransactionError
    |   +-- NoPendingTransactionError
    |   +-- PrerequisiteNotMetError
    |
    +-- JournalEntryError
    |   +-- InvalidJournalEntryInputError
    |
    +-- ProgressError
    |   +-- InvalidAttemptError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- SerializationError
        +-- UnsupportedSchemaVersionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Catalog         | CATALOG_INVALID               | YAML catalog fails integrity checks
                | UNKNOWN_CLASSIFICATION        | Classification key not in rule library
                | NO_TEMPLATES_AVAILABLE        | No template unlocked at requested level
----------------|-------------------------------|---------------------------------------
Simulation      | UNKNOWN_ACTION                | Action key not in action catalog
                | DUPLICATE_PENDING_TRANSACTION | Learner already awaits classification
                | NO_PENDING_TRANSACTION        | Nothing to classify or cancel
                | PREREQUISITE_NOT_MET          | Level/cash/inventory/equipment check
----------------|-------------------------------|---------------------------------------
Journal entry   | INVALID_JOURNAL_ENTRY_INPUT   | Non-numeric amount in a student entry
----------------|-------------------------------|---------------------------------------
Progress        | INVALID_ATTEMPT               | Unknown problem type, status or level
----------------|-------------------------------|---------------------------------------
Concurrency     | CONCURRENT_MODIFICATION       | Learner record changed under us
----------------|-------------------------------|---------------------------------------
Serialization   | UNSUPPORTED_SCHEMA_VERSION    | Stored payload from unknown codec version

===============================================================================
"""


class AssertiveError(Exception):
    """
    Base exception for all assertive kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ASSERTIVE_ERROR"


# Catalog-related exceptions


class CatalogError(AssertiveError):
    """Base exception for catalog errors."""

    code: str = "CATALOG_ERROR"


class CatalogValidationError(CatalogError):
    """The loaded catalog failed one or more integrity checks."""

    code: str = "CATALOG_INVALID"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            f"Catalog validation failed with {len(self.errors)} error(s): "
            + "; ".join(self.errors)
        )


class UnknownClassificationError(CatalogError):
    """Classification key does not exist in the rule library."""

    code: str = "UNKNOWN_CLASSIFICATION"

    def __init__(self, classification: str):
        self.classification = classification
        super().__init__(f"Unknown classification: {classification}")


class NoTemplatesAvailableError(CatalogError):
    """No transaction template is unlocked at the requested level."""

    code: str = "NO_TEMPLATES_AVAILABLE"

    def __init__(self, level: int):
        self.level = level
        super().__init__(f"No transaction templates available at level {level}")


# Simulation-related exceptions


class SimulationError(AssertiveError):
    """Base exception for simulation state machine errors."""

    code: str = "SIMULATION_ERROR"


class UnknownActionError(SimulationError):
    """Action key does not exist in the action catalog."""

    code: str = "UNKNOWN_ACTION"

    def __init__(self, action_key: str):
        self.action_key = action_key
        super().__init__(f"Unknown action: {action_key}")


class DuplicatePendingTransactionError(SimulationError):
    """Learner already has a transaction awaiting classification."""

    code: str = "DUPLICATE_PENDING_TRANSACTION"

    def __init__(self, learner_id: str, action_type: str):
        self.learner_id = learner_id
        self.action_type = action_type
        super().__init__(
            f"Learner {learner_id} already has a pending {action_type} "
            "transaction; classify or cancel it first"
        )


class NoPendingTransactionError(SimulationError):
    """Learner has no transaction awaiting classification."""

    code: str = "NO_PENDING_TRANSACTION"

    def __init__(self, learner_id: str):
        self.learner_id = learner_id
        super().__init__(f"No pending transaction for learner {learner_id}")


class PrerequisiteNotMetError(SimulationError):
    """
    An action's prerequisite failed.

    ``reason`` is the learner-facing explanation, e.g.
    "Need 10 Blank T-Shirts (have 5)".
    """

    code: str = "PREREQUISITE_NOT_MET"

    def __init__(self, action_key: str, reason: str):
        self.action_key = action_key
        self.reason = reason
        super().__init__(reason)


# Journal-entry exceptions


class JournalEntryError(AssertiveError):
    """Base exception for journal-entry construction errors."""

    code: str = "JOURNAL_ENTRY_ERROR"


class InvalidJournalEntryInputError(JournalEntryError):
    """Student journal entry carries an amount that is not a number."""

    code: str = "INVALID_JOURNAL_ENTRY_INPUT"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r} is not a number")


# Progress-related exceptions


class ProgressError(AssertiveError):
    """Base exception for progress tracking errors."""

    code: str = "PROGRESS_ERROR"


class InvalidAttemptError(ProgressError):
    """A recorded attempt carries a value outside its allowed set."""

    code: str = "INVALID_ATTEMPT"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid attempt {field}: {value!r}")


# Concurrency-related exceptions


class ConcurrencyError(AssertiveError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Learner record was modified by another operation."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"record was modified by another operation ({attempts} attempt(s))"
        )


# Serialization exceptions


class SerializationError(AssertiveError):
    """Base exception for storage codec errors."""

    code: str = "SERIALIZATION_ERROR"


class UnsupportedSchemaVersionError(SerializationError):
    """Stored payload was written by an unknown codec version."""

    code: str = "UNSUPPORTED_SCHEMA_VERSION"

    def __init__(self, record_type: str, schema_version: object):
        self.record_type = record_type
        self.schema_version = schema_version
        super().__init__(
            f"Unsupported schema version {schema_version} for {record_type}"
        )
