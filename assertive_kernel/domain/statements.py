"""
Pure financial statement derivation from the simulation ledger.

These functions fold a learner's ledger entries into a balance sheet and
an income statement. ZERO I/O apart from logging. ZERO side effects.

Derivation:
1. Parse "<Account> $<amount>" out of every debit and credit leg
2. Accumulate per-account balances, debit-positive (debit +, credit -)
3. Convert each balance to its account's normal side and drop zeros
4. Bucket by the account table: assets, contra-assets, liabilities,
   equity; revenues and expenses
5. Net income for the period is carried into total equity
6. Verify assets - contra-assets == liabilities + equity

All monetary values are Decimal. All outputs are frozen dataclasses.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from enum import Enum

from assertive_kernel.domain.business_state import LedgerEntry
from assertive_kernel.domain.catalog import AccountType, Catalog, NormalBalance
from assertive_kernel.domain.journal import parse_leg
from assertive_kernel.logging_config import get_logger

logger = get_logger("domain.statements")

_ZERO = Decimal("0")


@dataclasses.dataclass(frozen=True)
class StatementLine:
    account: str
    balance: Decimal


@dataclasses.dataclass(frozen=True)
class BalanceSheet:
    assets: tuple[StatementLine, ...]
    contra_assets: tuple[StatementLine, ...]
    liabilities: tuple[StatementLine, ...]
    equity: tuple[StatementLine, ...]
    total_assets: Decimal
    total_contra_assets: Decimal
    net_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    total_liabilities_and_equity: Decimal
    is_balanced: bool


@dataclasses.dataclass(frozen=True)
class IncomeStatement:
    revenues: tuple[StatementLine, ...]
    expenses: tuple[StatementLine, ...]
    total_revenue: Decimal
    total_expenses: Decimal
    net_income: Decimal


@dataclasses.dataclass(frozen=True)
class FinancialStatements:
    balance_sheet: BalanceSheet
    income_statement: IncomeStatement
    transaction_count: int
    as_of_date: date | None

    def to_dict(self) -> dict:
        return render_to_dict(self)


# =========================================================================
# Balances
# =========================================================================


def accumulate_balances(
    entries: Iterable[LedgerEntry],
    opening_balances: Mapping[str, Decimal] | None = None,
) -> dict[str, Decimal]:
    """
    Debit-positive balance per account.

    ``opening_balances`` are debit-positive too (a credit opening balance is
    negative). Legs whose amount cannot be parsed are logged and skipped.
    """
    balances: dict[str, Decimal] = dict(opening_balances or {})
    for entry in entries:
        for leg in entry.journal_entry:
            for side, sign in (("debit", 1), ("credit", -1)):
                text = leg.get(side)
                if not text:
                    continue
                account, amount = parse_leg(text)
                if amount is None:
                    logger.warning(
                        "unparseable_leg",
                        extra={"entry_id": entry.id, "side": side, "leg": text},
                    )
                    continue
                balances[account] = balances.get(account, _ZERO) + sign * amount
    return balances


def compute_natural_balance(raw: Decimal, normal: NormalBalance) -> Decimal:
    """
    Balance adjusted for the account's normal side.

    DEBIT-normal: balance = raw; CREDIT-normal: balance = -raw.
    Result is positive when the account has its expected direction.
    """
    if normal == NormalBalance.DEBIT:
        return raw
    return -raw


def _sum(lines: Iterable[StatementLine]) -> Decimal:
    return sum((line.balance for line in lines), _ZERO)


# =========================================================================
# Statements
# =========================================================================


def build_financial_statements(
    catalog: Catalog,
    entries: Iterable[LedgerEntry],
    opening_balances: Mapping[str, Decimal] | None = None,
) -> FinancialStatements:
    """
    Build both statements from the full ledger.

    Preconditions:
        Every leg follows the "<Account> $<amount>" convention.

    Postconditions:
        Lines appear in account-table order; zero balances are omitted.
        Accounts missing from the account table are logged
        (``unclassified_account``) and left out of every bucket.
    """
    ordered = sorted(entries, key=lambda e: e.date)
    raw = accumulate_balances(ordered, opening_balances)

    for account in sorted(set(raw) - set(catalog.accounts_by_name)):
        logger.warning("unclassified_account", extra={"account": account, "balance": raw[account]})

    buckets: dict[AccountType, list[StatementLine]] = {t: [] for t in AccountType}
    equity_credit_total = _ZERO
    for definition in catalog.accounts:
        if definition.name not in raw:
            continue
        if definition.type == AccountType.EQUITY:
            # Debit-normal equity (drawings) reduces the credit-side total.
            equity_credit_total -= raw[definition.name]
        balance = compute_natural_balance(raw[definition.name], definition.normal)
        if balance == _ZERO:
            continue
        buckets[definition.type].append(StatementLine(definition.name, balance))

    total_revenue = _sum(buckets[AccountType.REVENUE])
    total_expenses = _sum(buckets[AccountType.EXPENSE])
    net_income = total_revenue - total_expenses

    total_assets = _sum(buckets[AccountType.ASSET])
    total_contra = _sum(buckets[AccountType.CONTRA_ASSET])
    total_liabilities = _sum(buckets[AccountType.LIABILITY])
    total_equity = equity_credit_total + net_income
    net_assets = total_assets - total_contra
    total_l_and_e = total_liabilities + total_equity

    balance_sheet = BalanceSheet(
        assets=tuple(buckets[AccountType.ASSET]),
        contra_assets=tuple(buckets[AccountType.CONTRA_ASSET]),
        liabilities=tuple(buckets[AccountType.LIABILITY]),
        equity=tuple(buckets[AccountType.EQUITY]),
        total_assets=total_assets,
        total_contra_assets=total_contra,
        net_assets=net_assets,
        total_liabilities=total_liabilities,
        total_equity=total_equity,
        total_liabilities_and_equity=total_l_and_e,
        is_balanced=(net_assets == total_l_and_e),
    )
    income_statement = IncomeStatement(
        revenues=tuple(buckets[AccountType.REVENUE]),
        expenses=tuple(buckets[AccountType.EXPENSE]),
        total_revenue=total_revenue,
        total_expenses=total_expenses,
        net_income=net_income,
    )
    return FinancialStatements(
        balance_sheet=balance_sheet,
        income_statement=income_statement,
        transaction_count=len(ordered),
        as_of_date=ordered[-1].date if ordered else None,
    )


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert a statement dataclass to a plain dict for JSON serialization.

    Handles:
    - Decimal -> str (preserving precision)
    - date -> ISO format string
    - Enum -> .value
    - Nested frozen dataclasses -> nested dicts
    - Tuples -> lists
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, Mapping):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    return obj
