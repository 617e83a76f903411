"""
Pure function unit tests for statements.py.

NO database, NO I/O. Every statement is built from synthetic ledger entries.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from assertive_kernel.domain.business_state import LedgerEntry
from assertive_kernel.domain.catalog import NormalBalance
from assertive_kernel.domain.statements import (
    accumulate_balances,
    build_financial_statements,
    compute_natural_balance,
    render_to_dict,
)

# =========================================================================
# Fixtures / helpers
# =========================================================================

OPENING = {"Cash": Decimal("10000"), "Owner's Capital": Decimal("-10000")}


def _entry(on: date, debit: str, credit: str, action: str = "test-action") -> LedgerEntry:
    return LedgerEntry(
        id=str(uuid4()),
        date=on,
        period=1,
        action_type=action,
        narrative="",
        variables={},
        assertions={},
        journal_entry=({"debit": debit, "credit": credit},),
        template_key=action,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def _lines(lines) -> dict[str, Decimal]:
    return {line.account: line.balance for line in lines}


@pytest.fixture
def full_ledger():
    """Equipment purchase, cash sale, depreciation and an owner withdrawal."""
    return [
        _entry(date(2026, 1, 9), "Owner's Drawing $200", "Cash $200"),
        _entry(date(2026, 1, 2), "Equipment (Fixed Asset) $3,000", "Cash $3,000"),
        _entry(date(2026, 1, 5), "Cash $500", "Sales Revenue $500"),
        _entry(date(2026, 1, 7), "Depreciation Expense $83", "Accumulated Depreciation $83"),
    ]


# =========================================================================
# Balances
# =========================================================================


class TestBalances:
    def test_debit_positive_accumulation(self):
        balances = accumulate_balances(
            [_entry(date(2026, 1, 2), "Raw Materials Inventory $500", "Cash $500")],
            OPENING,
        )

        assert balances == {
            "Cash": Decimal("9500"),
            "Owner's Capital": Decimal("-10000"),
            "Raw Materials Inventory": Decimal("500"),
        }

    def test_unparseable_leg_is_logged_and_skipped(self, captured_logs):
        balances = accumulate_balances([_entry(date(2026, 1, 2), "Cash", "Sales Revenue $10")])

        assert balances == {"Sales Revenue": Decimal("-10")}
        assert any(r["message"] == "unparseable_leg" for r in captured_logs())

    @pytest.mark.parametrize(
        "raw, normal, expected",
        [
            (Decimal("100"), NormalBalance.DEBIT, Decimal("100")),
            (Decimal("-100"), NormalBalance.CREDIT, Decimal("100")),
            (Decimal("40"), NormalBalance.CREDIT, Decimal("-40")),
        ],
    )
    def test_natural_balance(self, raw, normal, expected):
        assert compute_natural_balance(raw, normal) == expected


# =========================================================================
# Statements
# =========================================================================


class TestFinancialStatements:
    def test_opening_position(self, catalog):
        statements = build_financial_statements(catalog, [], OPENING)
        sheet = statements.balance_sheet

        assert _lines(sheet.assets) == {"Cash": Decimal("10000")}
        assert _lines(sheet.equity) == {"Owner's Capital": Decimal("10000")}
        assert sheet.is_balanced
        assert statements.transaction_count == 0
        assert statements.as_of_date is None

    def test_equipment_purchase_keeps_sheet_balanced(self, catalog):
        statements = build_financial_statements(
            catalog,
            [_entry(date(2026, 1, 2), "Equipment (Fixed Asset) $3,000", "Cash $3,000")],
            OPENING,
        )
        sheet = statements.balance_sheet

        assert _lines(sheet.assets) == {
            "Cash": Decimal("7000"),
            "Equipment (Fixed Asset)": Decimal("3000"),
        }
        assert sheet.total_assets == Decimal("10000")
        assert sheet.is_balanced
        assert statements.income_statement.net_income == 0

    def test_full_ledger(self, catalog, full_ledger):
        statements = build_financial_statements(catalog, full_ledger, OPENING)
        sheet = statements.balance_sheet
        income = statements.income_statement

        assert [line.account for line in sheet.assets] == ["Cash", "Equipment (Fixed Asset)"]
        assert _lines(sheet.assets)["Cash"] == Decimal("7300")
        assert _lines(sheet.contra_assets) == {"Accumulated Depreciation": Decimal("83")}
        assert sheet.net_assets == Decimal("10217")

        assert _lines(income.revenues) == {"Sales Revenue": Decimal("500")}
        assert _lines(income.expenses) == {"Depreciation Expense": Decimal("83")}
        assert income.net_income == Decimal("417")

        assert _lines(sheet.equity) == {
            "Owner's Capital": Decimal("10000"),
            "Owner's Drawing": Decimal("200"),
        }
        # capital - drawings + net income
        assert sheet.total_equity == Decimal("10217")
        assert sheet.total_liabilities == 0
        assert sheet.is_balanced

        assert statements.transaction_count == 4
        assert statements.as_of_date == date(2026, 1, 9)

    def test_credit_purchase_creates_liability(self, catalog):
        statements = build_financial_statements(
            catalog,
            [_entry(date(2026, 1, 2), "Raw Materials Inventory $1,000", "Accounts Payable $1,000")],
            OPENING,
        )
        sheet = statements.balance_sheet

        assert _lines(sheet.liabilities) == {"Accounts Payable": Decimal("1000")}
        assert sheet.total_liabilities_and_equity == Decimal("11000")
        assert sheet.is_balanced

    def test_zero_balances_omitted(self, catalog):
        statements = build_financial_statements(
            catalog,
            [
                _entry(date(2026, 1, 2), "Raw Materials Inventory $250", "Accounts Payable $250"),
                _entry(date(2026, 1, 3), "Accounts Payable $250", "Cash $250"),
            ],
            OPENING,
        )

        assert "Accounts Payable" not in _lines(statements.balance_sheet.liabilities)

    def test_unknown_account_is_logged(self, catalog, captured_logs):
        statements = build_financial_statements(
            catalog,
            [_entry(date(2026, 1, 2), "Mystery Account $50", "Cash $50")],
            OPENING,
        )

        records = [r for r in captured_logs() if r["message"] == "unclassified_account"]
        assert records and records[0]["account"] == "Mystery Account"
        assert "Mystery Account" not in _lines(statements.balance_sheet.assets)
        assert not statements.balance_sheet.is_balanced


class TestRenderToDict:
    def test_decimals_and_dates_become_strings(self, catalog, full_ledger):
        data = build_financial_statements(catalog, full_ledger, OPENING).to_dict()

        assert data["as_of_date"] == "2026-01-09"
        assert data["balance_sheet"]["is_balanced"] is True
        assert data["income_statement"]["net_income"] == "417"
        assert data["balance_sheet"]["assets"][0] == {"account": "Cash", "balance": "7300"}

    def test_plain_values_pass_through(self):
        assert render_to_dict({"a": (Decimal("1.50"), None)}) == {"a": ["1.50", None]}
