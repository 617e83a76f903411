"""
Module: assertive_kernel.domain.classification
Responsibility: Match a learner's assertion set against the rule library:
    exact match first, weighted nearest match otherwise, with learner-facing
    feedback and hints.
Architecture position: Kernel > Domain.  Pure function of its inputs and the
    static catalog; safe to call concurrently.

Invariants enforced:
    - Distance is never negative and is zero only for an exact match.
    - Malformed input never raises: unknown assertion codes are simply
      penalized as unrequired.
    - Several exact matches resolve to the rule with the most parameter
      constraints.

Failure modes:
    - UnknownClassificationError when ``correct_classification`` names a
      rule that does not exist.
    - An empty rule library yields an ``indeterminate`` verdict.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from assertive_kernel.domain.catalog import Catalog, ClassificationRule, ParameterConstraint
from assertive_kernel.domain.linkage import link_assertions, render_journal_entry
from assertive_kernel.logging_config import get_logger

logger = get_logger("domain.classification")

MISSING_WEIGHT = 1.0
PROHIBITED_WEIGHT = 2.0
UNREQUIRED_WEIGHT = 0.5
PARAMETER_MISMATCH_WEIGHT = 1.5

AssertionSet = dict[str, dict[str, Any]]


class FeedbackStatus(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class ParameterMismatch:
    code: str
    parameter: str
    expected: ParameterConstraint
    actual: Any


@dataclass(frozen=True)
class RuleDistance:
    """Distance of a submission from one rule, with its breakdown."""

    rule_key: str
    distance: float
    missing: tuple[str, ...] = ()
    prohibited_present: tuple[str, ...] = ()
    unrequired_present: tuple[str, ...] = ()
    parameter_mismatches: tuple[ParameterMismatch, ...] = ()
    required_present: int = 0

    @property
    def mismatched_assertions(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(m.code for m in self.parameter_mismatches))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.rule_key,
            "distance": self.distance,
            "missing": list(self.missing),
            "prohibited": list(self.prohibited_present),
            "unrequired": list(self.unrequired_present),
            "parameter_mismatches": [
                {
                    "assertion": m.code,
                    "parameter": m.parameter,
                    "expected": list(m.expected) if isinstance(m.expected, tuple) else m.expected,
                    "actual": m.actual,
                }
                for m in self.parameter_mismatches
            ],
        }


@dataclass(frozen=True)
class Feedback:
    status: FeedbackStatus
    message: str
    hints: tuple[str, ...] = ()
    classification: Mapping[str, Any] | None = None
    assertion_linkages: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "hints": list(self.hints),
            "classification": dict(self.classification) if self.classification else None,
            "assertion_linkages": {k: dict(v) for k, v in self.assertion_linkages.items()},
        }


@dataclass(frozen=True)
class ClassificationResult:
    exact_matches: tuple[str, ...]
    nearest_match: RuleDistance | None
    feedback: Feedback

    @property
    def exact_match(self) -> str | None:
        return self.exact_matches[0] if self.exact_matches else None

    @property
    def is_correct(self) -> bool:
        return self.feedback.status == FeedbackStatus.CORRECT

    def to_dict(self) -> dict[str, Any]:
        return {
            "exact_match": self.exact_match,
            "exact_matches": list(self.exact_matches),
            "nearest_match": self.nearest_match.to_dict() if self.nearest_match else None,
            "feedback": self.feedback.to_dict(),
        }


# =========================================================================
# Normalization and scoring
# =========================================================================


def normalize_assertions(assertions: Any) -> AssertionSet:
    """
    Coerce learner input into ``{code: {param: value}}``.

    A bare iterable of codes becomes codes with empty parameters; anything
    unusable becomes an empty set.
    """
    if assertions is None:
        return {}
    if isinstance(assertions, Mapping):
        return {
            str(code): dict(params) if isinstance(params, Mapping) else {}
            for code, params in assertions.items()
        }
    if isinstance(assertions, str):
        return {assertions: {}}
    if isinstance(assertions, Iterable):
        return {str(code): {} for code in assertions}
    return {}


def _value_matches(actual: Any, constraint: ParameterConstraint) -> bool:
    if actual is None:
        return False
    allowed = constraint if isinstance(constraint, tuple) else (constraint,)
    return str(actual) in allowed


def parameter_mismatches(
    rule: ClassificationRule, assertions: AssertionSet, codes: Iterable[str],
) -> tuple[ParameterMismatch, ...]:
    mismatches: list[ParameterMismatch] = []
    for code in codes:
        required = rule.required_parameters.get(code)
        if not required:
            continue
        params = assertions.get(code, {})
        for name, constraint in required.items():
            actual = params.get(name)
            if not _value_matches(actual, constraint):
                mismatches.append(ParameterMismatch(code, name, constraint, actual))
    return tuple(mismatches)


def is_exact_match(rule: ClassificationRule, assertions: AssertionSet) -> bool:
    present = set(assertions)
    if not set(rule.required) <= present:
        return False
    if present & set(rule.prohibited):
        return False
    if not present <= rule.allowed:
        return False
    return not parameter_mismatches(rule, assertions, rule.required_parameters)


def compute_distance(rule: ClassificationRule, assertions: AssertionSet) -> RuleDistance:
    present = set(assertions)
    missing = tuple(code for code in rule.required if code not in present)
    prohibited = tuple(code for code in rule.prohibited if code in present)
    unrequired = tuple(
        code for code in assertions if code not in rule.allowed and code not in rule.prohibited
    )
    required_present = [code for code in rule.required if code in present]
    mismatches = parameter_mismatches(rule, assertions, required_present)
    mismatched_codes = len({m.code for m in mismatches})

    distance = (
        MISSING_WEIGHT * len(missing)
        + PROHIBITED_WEIGHT * len(prohibited)
        + UNREQUIRED_WEIGHT * len(unrequired)
        + PARAMETER_MISMATCH_WEIGHT * mismatched_codes
    )
    return RuleDistance(
        rule_key=rule.key,
        distance=distance,
        missing=missing,
        prohibited_present=prohibited,
        unrequired_present=unrequired,
        parameter_mismatches=mismatches,
        required_present=len(required_present),
    )


def find_exact_matches(catalog: Catalog, assertions: AssertionSet) -> list[ClassificationRule]:
    """Exactly matching rules, most specific first (catalog order breaks ties)."""
    matches = [rule for rule in catalog.rules if is_exact_match(rule, assertions)]
    return sorted(matches, key=lambda r: -r.constraint_count)


def rank_rules(catalog: Catalog, assertions: AssertionSet) -> list[RuleDistance]:
    """
    Every rule's distance, nearest first.

    Ties: more required assertions already present, then lower level, then
    more prohibitions, then catalog order.
    """
    scored = [(rule, compute_distance(rule, assertions)) for rule in catalog.rules]
    scored.sort(
        key=lambda pair: (
            pair[1].distance,
            -pair[1].required_present,
            pair[0].level,
            -len(pair[0].prohibited),
        )
    )
    return [distance for _, distance in scored]


# =========================================================================
# Feedback
# =========================================================================


def _labels(catalog: Catalog, codes: Iterable[str]) -> str:
    return ", ".join(catalog.code_label(code) for code in codes)


def _narrative_hint(catalog: Catalog, target: RuleDistance) -> str | None:
    for code in target.missing + target.prohibited_present + target.unrequired_present:
        definition = catalog.assertions_by_code.get(code)
        if definition and definition.domain in catalog.domain_hints:
            return catalog.domain_hints[definition.domain]
    return None


def build_hints(catalog: Catalog, target: RuleDistance) -> list[str]:
    """Narrative hint plus field-level hints for reaching ``target``."""
    hints: list[str] = []
    narrative = _narrative_hint(catalog, target)
    if narrative:
        hints.append(narrative)
    if target.missing:
        hints.append(f"Missing assertions: {_labels(catalog, target.missing)}")
    if target.prohibited_present:
        hints.append(f"Incorrect assertions: {_labels(catalog, target.prohibited_present)}")
    if target.unrequired_present:
        hints.append(f"Not needed for this transaction: {_labels(catalog, target.unrequired_present)}")

    by_code: dict[str, list[ParameterMismatch]] = {}
    for mismatch in target.parameter_mismatches:
        by_code.setdefault(mismatch.code, []).append(mismatch)
    for code, mismatches in by_code.items():
        specs = ", ".join(
            f"{catalog.parameter_label(code, m.parameter)} = {catalog.value_label(m.expected)}"
            for m in mismatches
        )
        hints.append(f"For {catalog.code_label(code)}, you need to specify: {specs}")
    return hints


def describe_rule(
    catalog: Catalog, rule: ClassificationRule, assertions: AssertionSet,
) -> dict[str, Any]:
    """Learner-facing view of a rule with its journal entry annotated."""
    return {
        "key": rule.key,
        "description": rule.description,
        "level": rule.level,
        "notes": rule.notes,
        "examples": list(rule.examples),
        "journal_entry": render_journal_entry(catalog, rule, assertions),
    }


def classify(
    assertions: Any,
    correct_classification: str | None = None,
    *,
    catalog: Catalog,
) -> ClassificationResult:
    """
    Classify a learner's assertion set.

    Preconditions:
        - ``catalog`` has passed validation.
    Postconditions:
        - With an exact match: ``feedback.status`` is ``correct`` unless
          ``correct_classification`` names a different rule.
        - Without one: ``nearest_match`` is set and the status is
          ``incorrect``; hints target ``correct_classification`` when given,
          otherwise the nearest rule.
    Raises:
        UnknownClassificationError: if ``correct_classification`` is unknown.
    """
    normalized = normalize_assertions(assertions)
    correct_rule = catalog.rule(correct_classification) if correct_classification else None
    linkages = {code: link.to_dict() for code, link in link_assertions(catalog, normalized).items()}

    if not catalog.rules:
        return ClassificationResult(
            exact_matches=(),
            nearest_match=None,
            feedback=Feedback(
                status=FeedbackStatus.INDETERMINATE,
                message="Unable to classify with current assertions. Try reviewing the transaction.",
                assertion_linkages=linkages,
            ),
        )

    exact = find_exact_matches(catalog, normalized)
    if exact:
        matched = exact[0]
        logger.debug(
            "classification_exact_match",
            extra={
                "rule_key": matched.key,
                "assertion_count": len(normalized),
                "expected": correct_classification,
            },
        )
        if correct_rule is None or correct_rule.key == matched.key:
            feedback = Feedback(
                status=FeedbackStatus.CORRECT,
                message=f"Correct! This is: {matched.description}",
                classification=describe_rule(catalog, matched, normalized),
                assertion_linkages=linkages,
            )
        else:
            hints = [
                f"Your assertions describe: {matched.description}",
                f"But this transaction is: {correct_rule.description}",
                "Check what the entity is providing vs. receiving.",
            ]
            hints.extend(build_hints(catalog, compute_distance(correct_rule, normalized)))
            feedback = Feedback(
                status=FeedbackStatus.INCORRECT,
                message=(
                    f"Your assertions describe: {matched.description} But that's not "
                    "what this transaction is. Re-read the narrative."
                ),
                hints=tuple(hints),
                classification=describe_rule(catalog, matched, normalized),
                assertion_linkages=linkages,
            )
        return ClassificationResult(
            exact_matches=tuple(r.key for r in exact),
            nearest_match=None,
            feedback=feedback,
        )

    nearest = rank_rules(catalog, normalized)[0]
    target = nearest
    if correct_rule is not None and correct_rule.key != nearest.rule_key:
        target = compute_distance(correct_rule, normalized)
    nearest_rule = catalog.rule(nearest.rule_key)

    logger.debug(
        "classification_nearest_match",
        extra={
            "rule_key": nearest.rule_key,
            "distance": nearest.distance,
            "assertion_count": len(normalized),
            "expected": correct_classification,
        },
    )
    return ClassificationResult(
        exact_matches=(),
        nearest_match=nearest,
        feedback=Feedback(
            status=FeedbackStatus.INCORRECT,
            message=f"Your assertions are closest to: {nearest_rule.description}",
            hints=tuple(build_hints(catalog, target)),
            assertion_linkages=linkages,
        ),
    )
