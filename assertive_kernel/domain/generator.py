"""
Module: assertive_kernel.domain.generator
Responsibility: Instantiate transaction templates into practice problems
    (forward, reverse, construct) and into simulation transactions.
Architecture position: Kernel > Domain.  Pure apart from the injected
    ``random.Random``; callers that omit it get a fresh generator per call.

Invariants enforced:
    - Variable arrays sharing a length are drawn with one shared index, so
      correlated values (quantity, amount, item) stay consistent.
    - Variable references inside ``required_assertions`` are substituted
      recursively, including inside nested parameter maps.
"""

from __future__ import annotations

import random
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from assertive_kernel.domain.catalog import Catalog, TransactionTemplate
from assertive_kernel.domain.journal import format_amount
from assertive_kernel.domain.linkage import render_journal_entry
from assertive_kernel.exceptions import NoTemplatesAvailableError
from assertive_kernel.logging_config import get_logger

logger = get_logger("domain.generator")

_TOKEN = re.compile(r"\{([A-Za-z0-9_-]+)\}")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ProblemMode(str, Enum):
    FORWARD = "forward"
    REVERSE = "reverse"
    CONSTRUCT = "construct"


# =========================================================================
# Binding and rendering
# =========================================================================


def bind_variables(
    variables: Mapping[str, tuple[Any, ...]], rng: random.Random,
) -> dict[str, Any]:
    """Draw one index per distinct array length and apply it to every array of that length."""
    indices: dict[int, int] = {}
    for length in sorted({len(values) for values in variables.values() if values}):
        indices[length] = rng.randrange(length)
    return {
        name: values[indices[len(values)]]
        for name, values in variables.items()
        if values
    }


def format_long_date(value: date | str) -> str:
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return f"{value:%B} {value.day}, {value.year}"


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, date):
        return format_long_date(value)
    if isinstance(value, str) and _ISO_DATE.match(value):
        return format_long_date(value)
    if isinstance(value, (int, Decimal)):
        return format_amount(value)
    return str(value)


def render_narrative(narrative: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{name}`` tokens; unknown tokens are left in place."""

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return _render_value(variables[name])

    return _TOKEN.sub(substitute, narrative)


def resolve_references(value: Any, variables: Mapping[str, Any]) -> Any:
    """Substitute ``"$name"`` references with bound values, recursively."""
    if isinstance(value, str) and value.startswith("$") and value[1:] in variables:
        return variables[value[1:]]
    if isinstance(value, Mapping):
        return {key: resolve_references(nested, variables) for key, nested in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_references(nested, variables) for nested in value]
    return value


@dataclass(frozen=True)
class BoundTransaction:
    """A template with its variables drawn and its assertions resolved."""

    template_key: str
    correct_classification: str
    variables: Mapping[str, Any]
    narrative: str
    correct_assertions: Mapping[str, Mapping[str, Any]]


def instantiate_template(
    template: TransactionTemplate,
    rng: random.Random,
    overrides: Mapping[str, Any] | None = None,
) -> BoundTransaction:
    variables = bind_variables(template.variables, rng)
    if overrides:
        variables.update(overrides)
    return BoundTransaction(
        template_key=template.key,
        correct_classification=template.correct_classification,
        variables=variables,
        narrative=render_narrative(template.narrative, variables),
        correct_assertions=resolve_references(template.required_assertions, variables),
    )


def rebind(
    template: TransactionTemplate, variables: Mapping[str, Any],
) -> BoundTransaction:
    """Re-render a template against an explicit variable set."""
    return BoundTransaction(
        template_key=template.key,
        correct_classification=template.correct_classification,
        variables=dict(variables),
        narrative=render_narrative(template.narrative, variables),
        correct_assertions=resolve_references(template.required_assertions, variables),
    )


# =========================================================================
# Practice problems
# =========================================================================


@dataclass(frozen=True)
class Problem:
    problem_id: str
    mode: ProblemMode
    level: int
    template_key: str
    narrative: str
    variables: Mapping[str, Any]
    correct_classification: str
    correct_assertions: Mapping[str, Mapping[str, Any]]
    show_assertions: bool = False
    journal_entry: tuple[Mapping[str, str], ...] = ()
    context: Mapping[str, Any] = field(default_factory=dict)
    classification_description: str | None = None
    correct_journal_entry: tuple[Mapping[str, str], ...] = ()
    correct_amount: Any = None
    available_accounts: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.problem_id,
            "problem_type": self.mode.value,
            "level": self.level,
            "template": self.template_key,
            "narrative": self.narrative,
            "variables": dict(self.variables),
            "correct_classification": self.correct_classification,
            "correct_assertions": dict(self.correct_assertions),
            "show_assertions": self.show_assertions,
        }
        if self.mode == ProblemMode.REVERSE:
            result["journal_entry"] = [dict(leg) for leg in self.journal_entry]
            result["context"] = dict(self.context)
            result["classification_description"] = self.classification_description
        if self.mode == ProblemMode.CONSTRUCT:
            result["correct_journal_entry"] = [dict(leg) for leg in self.correct_journal_entry]
            result["correct_amount"] = self.correct_amount
            result["available_accounts"] = list(self.available_accounts)
        return result


def generate_problem(
    catalog: Catalog,
    level: int,
    mode: ProblemMode | str = ProblemMode.FORWARD,
    show_assertions: bool = False,
    rng: random.Random | None = None,
) -> Problem:
    """
    Generate a random problem from templates unlocked at ``level``.

    Args:
        catalog: The domain catalog.
        level: Learner level; templates with ``level <= level`` are eligible.
        mode: forward (narrative to assertions), reverse (journal entry to
            assertions) or construct (narrative to journal entry).
        show_assertions: Whether the client should display the correct
            assertions alongside the problem.
        rng: Random source; a fresh ``random.Random()`` when omitted.

    Raises:
        NoTemplatesAvailableError: if nothing is unlocked at ``level``.
        ValueError: if ``mode`` is not a known problem mode.
    """
    mode = ProblemMode(mode)
    rng = rng or random.Random()
    candidates = catalog.templates_up_to(level)
    if not candidates:
        raise NoTemplatesAvailableError(level)

    template = rng.choice(candidates)
    bound = instantiate_template(template, rng)
    rule = catalog.rule(bound.correct_classification)
    amount = bound.variables.get(template.amount_variable)
    problem_id = str(uuid4())

    logger.debug(
        "problem_generated",
        extra={
            "problem_id": problem_id,
            "template_key": template.key,
            "problem_type": mode.value,
            "level": level,
        },
    )

    legs = tuple(render_journal_entry(catalog, rule, bound.correct_assertions, amount))
    base = dict(
        problem_id=problem_id,
        mode=mode,
        level=level,
        template_key=template.key,
        narrative=bound.narrative,
        variables=bound.variables,
        correct_classification=bound.correct_classification,
        correct_assertions=bound.correct_assertions,
        show_assertions=show_assertions,
    )

    if mode == ProblemMode.REVERSE:
        counterparty = (
            bound.variables.get(template.counterparty_variable)
            if template.counterparty_variable
            else None
        )
        context: dict[str, Any] = {"counterparty": counterparty}
        if "date" in bound.variables:
            context["date"] = format_long_date(bound.variables["date"])
        return Problem(
            **base,
            journal_entry=legs,
            context=context,
            classification_description=rule.description,
        )

    if mode == ProblemMode.CONSTRUCT:
        return Problem(
            **base,
            correct_journal_entry=legs,
            correct_amount=amount,
            available_accounts=catalog.accounts_up_to(level),
        )

    return Problem(**base)
