"""
Module: assertive_kernel.domain.journal
Responsibility: The textual journal-leg convention ("<Account> $<amount>")
    and validation of a learner-constructed journal entry.
Architecture position: Kernel > Domain.  Pure functions, zero I/O.

Invariants enforced:
    - Every leg written to a ledger entry is produced by ``format_leg`` and
      can be read back by ``parse_leg``; statement derivation depends on it.
    - ``validate_journal_entry`` checks debit, credit and amount in that
      order and stops at the first mismatch.

Failure modes:
    - InvalidJournalEntryInputError from ``parse_amount`` on non-numeric
      input.  ``validate_journal_entry`` converts it into a verdict.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from assertive_kernel.domain.catalog import AccountType, Catalog
from assertive_kernel.exceptions import InvalidJournalEntryInputError

LEG_PATTERN = re.compile(r"^(?P<account>.*?)\s*\$\s*(?P<amount>-?[\d,]+(?:\.\d+)?)\s*$")

_CURRENCY_NOISE = re.compile(r"[\s$,]")


# =========================================================================
# Leg formatting
# =========================================================================


def format_amount(amount: Decimal | int) -> str:
    """Render an amount with thousands separators ("1,250" or "1,250.50")."""
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return f"{int(value):,}"
    return f"{value.quantize(Decimal('0.01')):,}"


def format_leg(account: str, amount: Decimal | int | None) -> str:
    if amount is None:
        return account
    return f"{account} ${format_amount(amount)}"


def parse_leg(text: str) -> tuple[str, Decimal | None]:
    """
    Split a leg into account name and amount.

    Returns ``(text, None)`` when the leg carries no dollar amount.
    """
    match = LEG_PATTERN.match(text.strip())
    if match is None:
        return text.strip(), None
    return match.group("account").strip(), Decimal(match.group("amount").replace(",", ""))


def strip_amount(text: str) -> str:
    return parse_leg(text)[0]


def parse_amount(value: Any, field_name: str = "amount") -> Decimal:
    """
    Parse a learner-entered amount, ignoring "$", "," and whitespace.

    Raises:
        InvalidJournalEntryInputError: if the value is not a number.
    """
    if isinstance(value, bool):
        raise InvalidJournalEntryInputError(field_name, value)
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if not isinstance(value, str):
        raise InvalidJournalEntryInputError(field_name, value)
    cleaned = _CURRENCY_NOISE.sub("", value)
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        raise InvalidJournalEntryInputError(field_name, value) from None
    if not parsed.is_finite():
        raise InvalidJournalEntryInputError(field_name, value)
    return parsed


# =========================================================================
# Journal-entry validation
# =========================================================================


@dataclass(frozen=True)
class JournalEntryVerdict:
    correct: bool
    message: str
    field: str | None = None
    hints: tuple[str, ...] = ()
    error: str | None = None
    classification: Mapping[str, str] | None = None

    @property
    def status(self) -> str:
        return "correct" if self.correct else "incorrect"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "correct": self.correct,
            "status": self.status,
            "feedback": self.message,
            "field": self.field,
            "hints": list(self.hints),
        }
        if self.error is not None:
            result["error"] = self.error
        if self.classification is not None:
            result["classification"] = dict(self.classification)
        return result


_DEBIT_EFFECT = {
    AccountType.ASSET: "would increase this asset",
    AccountType.CONTRA_ASSET: "would decrease this contra-asset",
    AccountType.LIABILITY: "would decrease this liability",
    AccountType.EQUITY: "would decrease equity",
    AccountType.REVENUE: "would decrease revenue",
    AccountType.EXPENSE: "would increase this expense",
}

_CREDIT_EFFECT = {
    AccountType.ASSET: "would decrease this asset",
    AccountType.CONTRA_ASSET: "would increase this contra-asset",
    AccountType.LIABILITY: "would increase this liability",
    AccountType.EQUITY: "would increase equity",
    AccountType.REVENUE: "would increase revenue",
    AccountType.EXPENSE: "would decrease this expense",
}

_UNIT_PHRASES = {
    "physical-unit": "a physical asset",
    "monetary-unit": "money (cash)",
    "ownership-unit": "an ownership interest",
}


def _account_type(catalog: Catalog, account: str) -> AccountType | None:
    definition = catalog.accounts_by_name.get(account)
    return definition.type if definition else None


def _side_phrase(catalog: Catalog, account: str, side: str) -> str:
    account_type = _account_type(catalog, account)
    table = _DEBIT_EFFECT if side == "debit" else _CREDIT_EFFECT
    verb = "Debiting" if side == "debit" else "Crediting"
    effect = table.get(account_type) if account_type else None
    return f"{verb} {account} {effect}." if effect else f"{verb} {account}."


def _unit_phrase(catalog: Catalog, params: Mapping[str, Any]) -> str:
    phrase = _UNIT_PHRASES.get(str(params.get("unit")), "something")
    item = params.get("physical-item")
    if item is not None and params.get("unit") == "physical-unit":
        phrase += f" ({catalog.value_label(item)})"
    return phrase


def debit_hints(
    catalog: Catalog, student_account: str, assertions: Mapping[str, Mapping[str, Any]],
) -> list[str]:
    hints = [f"You selected {student_account}. {_side_phrase(catalog, student_account, 'debit')}"]
    if "receives" in assertions:
        hints.append(
            "But the assertions show the entity receives "
            f"{_unit_phrase(catalog, assertions['receives'])}. "
            "What account represents what's being received?"
        )
    if "fulfills" in assertions:
        hints.append(
            "The assertions show this settles an earlier obligation. "
            "What account held that balance?"
        )
    if (
        _account_type(catalog, student_account) in (AccountType.REVENUE, AccountType.EXPENSE)
        and "receives" in assertions
        and "provides" in assertions
        and "reports" not in assertions
    ):
        hints.append(
            "This is an exchange transaction (providing one thing for another), "
            "not a revenue or expense transaction."
        )
    return hints


def credit_hints(
    catalog: Catalog, student_account: str, assertions: Mapping[str, Mapping[str, Any]],
) -> list[str]:
    hints = [f"You selected {student_account}. {_side_phrase(catalog, student_account, 'credit')}"]
    if "provides" in assertions:
        hints.append(
            "But the assertions show the entity provides "
            f"{_unit_phrase(catalog, assertions['provides'])}. "
            "What account represents what's being given up?"
        )
    if "requires" in assertions:
        action = assertions["requires"].get("action")
        target = f" to {action}" if action else ""
        hints.append(
            f"The assertions show this creates a future obligation{target}. "
            "What account represents owing something?"
        )
    if (
        _account_type(catalog, student_account) == AccountType.REVENUE
        and "reports" not in assertions
    ):
        hints.append(
            "Revenue is credited when earning income, but check the assertions: "
            "is this an income-generating transaction?"
        )
    return hints


def validate_journal_entry(
    student_entry: Mapping[str, Any],
    correct_legs: Sequence[Mapping[str, str]],
    correct_assertions: Mapping[str, Mapping[str, Any]],
    *,
    catalog: Catalog,
    correct_amount: Any = None,
) -> JournalEntryVerdict:
    """
    Validate a learner-constructed single-leg journal entry.

    Args:
        student_entry: ``{"debit": account, "credit": account, "amount": value}``.
            ``"debit-account"``/``"credit-account"`` keys are accepted too.
        correct_legs: The canonical legs, with or without embedded amounts.
        correct_assertions: The resolved correct assertion set, used for hints.
        catalog: Account table for normal-balance explanations.
        correct_amount: Expected amount; when omitted the first correct leg's
            embedded amount is used, and if neither exists the amount is not
            checked.

    Returns:
        A verdict.  Non-numeric amounts produce ``error=INVALID_JOURNAL_ENTRY_INPUT``.
    """
    if not correct_legs:
        return JournalEntryVerdict(correct=False, message="No journal entry to compare against.")

    leg = correct_legs[0]
    if not (
        isinstance(leg, Mapping)
        and isinstance(leg.get("debit"), str)
        and isinstance(leg.get("credit"), str)
    ):
        return JournalEntryVerdict(
            correct=False,
            message="The correct journal entry must name a debit and a credit account.",
            error=InvalidJournalEntryInputError.code,
        )
    correct_debit, debit_amount = parse_leg(leg["debit"])
    correct_credit, _ = parse_leg(leg["credit"])
    student_debit = str(student_entry.get("debit", student_entry.get("debit-account", ""))).strip()
    student_credit = str(student_entry.get("credit", student_entry.get("credit-account", ""))).strip()

    if student_debit != correct_debit:
        return JournalEntryVerdict(
            correct=False,
            field="debit",
            message=(
                f'Debit account incorrect. You selected "{student_debit}", but this '
                "transaction affects a different account on the debit side."
            ),
            hints=tuple(debit_hints(catalog, student_debit, correct_assertions)),
        )

    if student_credit != correct_credit:
        return JournalEntryVerdict(
            correct=False,
            field="credit",
            message=(
                f'Credit account incorrect. You selected "{student_credit}", but this '
                "transaction affects a different account on the credit side."
            ),
            hints=tuple(credit_hints(catalog, student_credit, correct_assertions)),
        )

    raw_amount = student_entry.get("amount")
    expected = correct_amount if correct_amount is not None else debit_amount
    if raw_amount not in (None, "") and expected is not None:
        try:
            student_amount = parse_amount(raw_amount)
            expected_amount = parse_amount(expected, "correct_amount")
        except InvalidJournalEntryInputError as exc:
            return JournalEntryVerdict(
                correct=False,
                field="amount",
                message=str(exc),
                hints=("Enter the amount as a number, for example 1,250.",),
                error=exc.code,
            )
        if student_amount != expected_amount:
            return JournalEntryVerdict(
                correct=False,
                field="amount",
                message=(
                    f"Amount is incorrect. You entered ${format_amount(student_amount)}, "
                    "but the transaction amount is different."
                ),
                hints=("Check the narrative for the transaction amount.",),
            )

    return JournalEntryVerdict(
        correct=True,
        message="Correct! Your journal entry accurately records this transaction.",
        classification={"debit": leg["debit"], "credit": leg["credit"]},
    )
