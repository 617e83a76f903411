"""
Module: assertive_kernel.domain.linkage
Responsibility: Explain which account each assertion touches, and render a
    rule's canonical journal-entry legs (resolving derived legs and
    annotating the dollar amount).
Architecture position: Kernel > Domain.  Pure functions over the catalog.

Invariants enforced:
    - Goods-to-account mappings come only from the PhysicalItem catalog.
    - Linkage is explanatory; it never influences scoring.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from assertive_kernel.domain.catalog import (
    Catalog,
    ClassificationRule,
    ItemCategory,
    JournalLeg,
    NormalBalance,
)
from assertive_kernel.domain.journal import format_leg

QUANTITY_SEARCH_ORDER = ("expects", "requires", "receives", "provides")

# (assertion code, unit) -> (account, effect)
_UNIT_ACCOUNTS: dict[tuple[str, str], tuple[str, str]] = {
    ("receives", "monetary-unit"): ("Cash", "debit"),
    ("provides", "monetary-unit"): ("Cash", "credit"),
    ("provides", "ownership-unit"): ("Owner's Capital", "credit"),
}

# (assertion code, action, unit) -> (account, effect)
_FORWARD_ACCOUNTS: dict[tuple[str, str, str], tuple[str, str]] = {
    ("requires", "provides", "monetary-unit"): ("Accounts Payable", "credit"),
    ("requires", "provides", "physical-unit"): ("Deferred Revenue (Liability)", "credit"),
    ("expects", "receives", "monetary-unit"): ("Accounts Receivable", "debit"),
    ("expects", "receives", "physical-unit"): ("Prepaid Expense (Asset)", "debit"),
}

_SETTLEMENT_ACCOUNTS: dict[str, tuple[str, str]] = {
    "requires": ("Accounts Payable", "debit"),
    "expects": ("Accounts Receivable", "credit"),
}

_REPORT_ACCOUNTS: dict[str, tuple[str, str]] = {
    "revenue": ("Sales Revenue", "credit"),
    "expense": ("Expense", "debit"),
    "distribution": ("Owner's Drawing", "debit"),
}


@dataclass(frozen=True)
class AssertionLinkage:
    code: str
    account: str | None
    effect: str | None
    explanation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "effect": self.effect,
            "explanation": self.explanation,
        }


def _item_account(catalog: Catalog, params: Mapping[str, Any]) -> str | None:
    key = params.get("physical-item")
    item = catalog.item(str(key)) if key is not None else None
    return item.account if item else None


def _resolve(
    catalog: Catalog, code: str, params: Mapping[str, Any],
) -> tuple[str, str] | None:
    unit = str(params.get("unit", ""))

    if code in ("receives", "provides"):
        if unit == "physical-unit":
            account = _item_account(catalog, params)
            if account:
                return account, "debit" if code == "receives" else "credit"
            return None
        return _UNIT_ACCOUNTS.get((code, unit))

    if code in ("requires", "expects"):
        return _FORWARD_ACCOUNTS.get((code, str(params.get("action", "")), unit))

    if code == "fulfills":
        return _SETTLEMENT_ACCOUNTS.get(str(params.get("obligation", "")))

    if code == "reports":
        return _REPORT_ACCOUNTS.get(str(params.get("category", "")))

    if code == "creates":
        account = _item_account(catalog, params)
        return (account, "debit") if account else None

    if code == "consumes":
        key = params.get("physical-item")
        item = catalog.item(str(key)) if key is not None else None
        if item is None:
            return None
        if item.category == ItemCategory.EQUIPMENT:
            return "Accumulated Depreciation", "credit"
        return item.account, "credit"

    return None


def link_assertion(catalog: Catalog, code: str, params: Mapping[str, Any]) -> AssertionLinkage:
    resolved = _resolve(catalog, code, params)
    label = catalog.code_label(code)
    if resolved is None:
        definition = catalog.assertions_by_code.get(code)
        explanation = definition.description if definition else f"{label} is not a known assertion."
        return AssertionLinkage(code=code, account=None, effect=None, explanation=explanation)
    account, effect = resolved
    change = "increases" if effect == "debit" else "decreases"
    definition = catalog.accounts_by_name.get(account)
    if definition is not None and definition.normal == NormalBalance.CREDIT:
        change = "decreases" if effect == "debit" else "increases"
    return AssertionLinkage(
        code=code,
        account=account,
        effect=effect,
        explanation=f"{label} ({effect} {account}): {account} {change}.",
    )


def link_assertions(
    catalog: Catalog, assertions: Mapping[str, Mapping[str, Any]],
) -> dict[str, AssertionLinkage]:
    """Resolve the account and debit/credit effect implied by each assertion."""
    return {code: link_assertion(catalog, code, params) for code, params in assertions.items()}


# =========================================================================
# Journal-entry rendering
# =========================================================================


def find_quantity(assertions: Mapping[str, Mapping[str, Any]]) -> Decimal | None:
    """First numeric ``quantity`` in expects, requires, receives, provides order."""
    for code in QUANTITY_SEARCH_ORDER:
        params = assertions.get(code)
        if not params or params.get("quantity") in (None, ""):
            continue
        try:
            quantity = Decimal(str(params["quantity"]).replace(",", "").lstrip("$"))
        except InvalidOperation:
            continue
        if quantity.is_finite():
            return quantity
    return None


def _derived_account(
    catalog: Catalog,
    rule: ClassificationRule,
    source: str,
    assertions: Mapping[str, Mapping[str, Any]],
) -> str:
    account = _item_account(catalog, assertions.get(source) or {})
    if account:
        return account
    # Fall back to the allowed items when they all share one account.
    allowed = rule.required_parameters.get(source, {}).get("physical-item", ())
    if isinstance(allowed, str):
        allowed = (allowed,)
    accounts = {catalog.items_by_key[key].account for key in allowed if key in catalog.items_by_key}
    if len(accounts) == 1:
        return accounts.pop()
    return "Inventory"


def resolve_legs(
    catalog: Catalog,
    rule: ClassificationRule,
    assertions: Mapping[str, Mapping[str, Any]],
) -> tuple[JournalLeg, ...]:
    """Canonical legs of ``rule``; derived legs are filled from ``assertions``."""
    derived = rule.derived_legs
    if derived is None:
        return rule.journal_entry
    debit = derived.debit or _derived_account(catalog, rule, derived.debit_from or "", assertions)
    credit = derived.credit or _derived_account(catalog, rule, derived.credit_from or "", assertions)
    return (JournalLeg(debit=debit, credit=credit),)


def render_journal_entry(
    catalog: Catalog,
    rule: ClassificationRule,
    assertions: Mapping[str, Mapping[str, Any]],
    amount: Decimal | int | None = None,
) -> list[dict[str, str]]:
    """
    Legs as ``{"debit": "<Account> $<amount>", "credit": ...}`` dicts.

    When ``amount`` is omitted the first quantity found in the assertions
    is used; with no quantity at all the legs carry bare account names.
    """
    if amount is None:
        amount = find_quantity(assertions)
    return [
        {"debit": format_leg(leg.debit, amount), "credit": format_leg(leg.credit, amount)}
        for leg in resolve_legs(catalog, rule, assertions)
    ]
