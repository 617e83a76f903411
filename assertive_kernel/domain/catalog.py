"""
Module: assertive_kernel.domain.catalog
Responsibility: Immutable domain catalog (physical items, assertion
    definitions, classification rules, transaction templates, simulation
    actions, account-classification table) plus the indices derived from it.
Architecture position: Kernel > Domain.  Pure data, zero I/O.  Built once by
    ``assertive_config.loader`` and shared by every engine call.

Invariants enforced:
    - PhysicalItem is the single source of truth for every account mapping
      that involves goods.
    - All indices are precomputed in ``Catalog.__post_init__``; nothing is
      filtered or grouped per request.

Failure modes:
    - UnknownClassificationError from ``Catalog.rule()``.
    - UnknownActionError from ``Catalog.action()``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from assertive_kernel.exceptions import UnknownActionError, UnknownClassificationError


class ItemCategory(str, Enum):
    RAW_MATERIAL = "raw-material"
    EQUIPMENT = "equipment"
    FINISHED_GOOD = "finished-good"


class AccountType(str, Enum):
    ASSET = "asset"
    CONTRA_ASSET = "contra-asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class Statement(str, Enum):
    BALANCE_SHEET = "balance-sheet"
    INCOME_STATEMENT = "income-statement"


class ParameterType(str, Enum):
    DROPDOWN = "dropdown"
    NUMBER = "number"
    TEXT = "text"
    DATE = "date"
    MAP = "map"


class EffectKind(str, Enum):
    """Closed set of business-state transforms an action may apply."""

    SUBTRACT_CASH = "subtract-cash"
    ADD_CASH = "add-cash"
    ADD_INVENTORY = "add-inventory"
    CONSUME_RECIPE = "consume-recipe"
    ADD_FINISHED_GOODS = "add-finished-goods"
    SUBTRACT_FINISHED_GOODS = "subtract-finished-goods"
    ADD_EQUIPMENT = "add-equipment"
    ADD_PAYABLE = "add-payable"
    SETTLE_PAYABLE = "settle-payable"
    ADD_RECEIVABLE = "add-receivable"
    SETTLE_RECEIVABLE = "settle-receivable"


class VariableStrategy(str, Enum):
    """Simulation-specific overrides applied after template binding."""

    INVENTORY_PURCHASE = "inventory-purchase"
    EQUIPMENT_PURCHASE = "equipment-purchase"
    SALE = "sale"
    SETTLE_PAYABLE = "settle-payable"
    SETTLE_RECEIVABLE = "settle-receivable"
    PRODUCTION = "production"
    DEPRECIATION = "depreciation"
    OWNER_WITHDRAWAL = "owner-withdrawal"


# =========================================================================
# Items and assertions
# =========================================================================


@dataclass(frozen=True)
class PhysicalItem:
    """A tradeable good and the account it maps to when received or given."""

    key: str
    label: str
    account: str
    account_type: AccountType
    level: int
    category: ItemCategory
    purchase_cost: Decimal | None = None
    sale_price: Decimal | None = None


@dataclass(frozen=True)
class ParameterOption:
    value: str
    label: str


@dataclass(frozen=True)
class ParameterDefinition:
    """
    One named parameter of an assertion.

    When ``derived_from_items`` is set the dropdown options are not stored
    here; they come from the PhysicalItem catalog (optionally restricted to
    ``item_categories``) at request time, scoped to the learner's level.
    """

    name: str
    label: str
    type: ParameterType
    optional: bool = False
    options: tuple[ParameterOption, ...] = ()
    derived_from_items: bool = False
    item_categories: tuple[ItemCategory, ...] = ()


@dataclass(frozen=True)
class AssertionDefinition:
    code: str
    label: str
    domain: str
    level: int
    description: str
    parameters: tuple[ParameterDefinition, ...] = ()

    def parameter(self, name: str) -> ParameterDefinition | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None


# =========================================================================
# Rules
# =========================================================================


@dataclass(frozen=True)
class JournalLeg:
    debit: str
    credit: str

    def to_dict(self) -> dict[str, str]:
        return {"debit": self.debit, "credit": self.credit}


@dataclass(frozen=True)
class DerivedLegs:
    """
    Legs computed from assertion parameters.

    ``debit_from``/``credit_from`` name an assertion whose ``physical-item``
    parameter selects the account through the PhysicalItem catalog; the
    plain ``debit``/``credit`` fields give a fixed account for the other side.
    """

    debit: str | None = None
    credit: str | None = None
    debit_from: str | None = None
    credit_from: str | None = None


ParameterConstraint = str | tuple[str, ...]


@dataclass(frozen=True)
class ClassificationRule:
    """
    A canonical transaction pattern.

    ``required_parameters`` maps an assertion code to ``{param: constraint}``
    where a constraint is either a single value or a tuple of allowed values.
    """

    key: str
    description: str
    level: int
    required: tuple[str, ...]
    prohibited: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()
    required_parameters: Mapping[str, Mapping[str, ParameterConstraint]] = field(
        default_factory=dict
    )
    journal_entry: tuple[JournalLeg, ...] = ()
    derived_legs: DerivedLegs | None = None
    notes: str = ""
    examples: tuple[str, ...] = ()

    @property
    def is_derived(self) -> bool:
        return self.derived_legs is not None

    @property
    def allowed(self) -> frozenset[str]:
        return frozenset(self.required) | frozenset(self.optional)

    @property
    def constraint_count(self) -> int:
        return sum(len(params) for params in self.required_parameters.values())


# =========================================================================
# Templates and actions
# =========================================================================


@dataclass(frozen=True)
class TransactionTemplate:
    """
    Narrative generator for one classification.

    Variable arrays that share a length are paired: one index is drawn per
    distinct length and applied to every array of that length.
    """

    key: str
    level: int
    narrative: str
    variables: Mapping[str, tuple[Any, ...]]
    required_assertions: Mapping[str, Mapping[str, Any]]
    correct_classification: str
    counterparty_variable: str | None = None
    amount_variable: str = "amount"


@dataclass(frozen=True)
class Prerequisites:
    min_cash: Decimal | None = None
    min_inventory: Mapping[str, int] = field(default_factory=dict)
    min_finished_goods: int | None = None
    equipment: tuple[str, ...] = ()
    any_equipment: bool = False
    has_payable: bool = False
    has_receivable: bool = False


@dataclass(frozen=True)
class ActionDefinition:
    key: str
    label: str
    description: str
    level: int
    template_key: str
    prerequisites: Prerequisites = field(default_factory=Prerequisites)
    effects: tuple[EffectKind, ...] = ()
    variable_strategy: VariableStrategy | None = None


# =========================================================================
# Accounts and simulation settings
# =========================================================================


@dataclass(frozen=True)
class AccountDefinition:
    name: str
    statement: Statement
    type: AccountType
    normal: NormalBalance
    level: int = 0


@dataclass(frozen=True)
class ProductionRecipe:
    inputs: Mapping[str, int]
    output_item: str
    output_quantity: int


@dataclass(frozen=True)
class SimulationSettings:
    starting_cash: Decimal
    moves_per_period: int
    start_date: date
    recipe: ProductionRecipe
    min_advance_days: int = 1
    max_advance_days: int = 5
    days_per_month: int = 28
    depreciation_months: int = 36
    vendors: tuple[str, ...] = ()
    customers: tuple[str, ...] = ()
    max_commit_attempts: int = 5
    correct_to_unlock: int = 5


# =========================================================================
# Catalog
# =========================================================================


@dataclass(frozen=True)
class Catalog:
    """
    The complete static catalog with precomputed lookup indices.

    Contract:
        Constructed once per process (see ``assertive_config.get_catalog``)
        and treated as read-only; safe to share across threads.
    """

    items: tuple[PhysicalItem, ...]
    assertions: tuple[AssertionDefinition, ...]
    rules: tuple[ClassificationRule, ...]
    templates: tuple[TransactionTemplate, ...]
    actions: tuple[ActionDefinition, ...]
    accounts: tuple[AccountDefinition, ...]
    settings: SimulationSettings
    domain_hints: Mapping[str, str] = field(default_factory=dict)
    checksum: str = ""

    items_by_key: dict[str, PhysicalItem] = field(init=False, repr=False, compare=False)
    items_by_category: dict[ItemCategory, tuple[PhysicalItem, ...]] = field(
        init=False, repr=False, compare=False
    )
    assertions_by_code: dict[str, AssertionDefinition] = field(
        init=False, repr=False, compare=False
    )
    rules_by_key: dict[str, ClassificationRule] = field(
        init=False, repr=False, compare=False
    )
    templates_by_key: dict[str, TransactionTemplate] = field(
        init=False, repr=False, compare=False
    )
    actions_by_key: dict[str, ActionDefinition] = field(
        init=False, repr=False, compare=False
    )
    accounts_by_name: dict[str, AccountDefinition] = field(
        init=False, repr=False, compare=False
    )
    value_labels: dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_category: dict[ItemCategory, list[PhysicalItem]] = {c: [] for c in ItemCategory}
        for item in self.items:
            by_category[item.category].append(item)

        value_labels: dict[str, str] = {}
        for assertion in self.assertions:
            value_labels.setdefault(assertion.code, assertion.label)
            for param in assertion.parameters:
                for option in param.options:
                    value_labels.setdefault(option.value, option.label)
        for item in self.items:
            value_labels[item.key] = item.label

        object.__setattr__(self, "items_by_key", {i.key: i for i in self.items})
        object.__setattr__(
            self, "items_by_category", {c: tuple(v) for c, v in by_category.items()}
        )
        object.__setattr__(
            self, "assertions_by_code", {a.code: a for a in self.assertions}
        )
        object.__setattr__(self, "rules_by_key", {r.key: r for r in self.rules})
        object.__setattr__(self, "templates_by_key", {t.key: t for t in self.templates})
        object.__setattr__(self, "actions_by_key", {a.key: a for a in self.actions})
        object.__setattr__(self, "accounts_by_name", {a.name: a for a in self.accounts})
        object.__setattr__(self, "value_labels", value_labels)

    # -- lookups ----------------------------------------------------------

    def rule(self, key: str) -> ClassificationRule:
        try:
            return self.rules_by_key[key]
        except KeyError:
            raise UnknownClassificationError(key) from None

    def action(self, key: str) -> ActionDefinition:
        try:
            return self.actions_by_key[key]
        except KeyError:
            raise UnknownActionError(key) from None

    def template(self, key: str) -> TransactionTemplate:
        return self.templates_by_key[key]

    def item(self, key: str) -> PhysicalItem | None:
        return self.items_by_key.get(key)

    def item_keys(self, category: ItemCategory) -> tuple[str, ...]:
        return tuple(item.key for item in self.items_by_category[category])

    def templates_up_to(self, level: int) -> tuple[TransactionTemplate, ...]:
        return tuple(t for t in self.templates if t.level <= level)

    def accounts_up_to(self, level: int) -> tuple[str, ...]:
        return tuple(a.name for a in self.accounts if a.level <= level)

    def assertions_up_to(self, level: int) -> tuple[AssertionDefinition, ...]:
        return tuple(a for a in self.assertions if a.level <= level)

    def parameter_options(
        self, code: str, param_name: str, level: int,
    ) -> tuple[ParameterOption, ...]:
        """Dropdown options for one assertion parameter at a learner level."""
        assertion = self.assertions_by_code.get(code)
        param = assertion.parameter(param_name) if assertion else None
        if param is None:
            return ()
        if not param.derived_from_items:
            return param.options
        categories = param.item_categories or tuple(ItemCategory)
        return tuple(
            ParameterOption(value=item.key, label=item.label)
            for category in categories
            for item in self.items_by_category[category]
            if item.level <= level
        )

    # -- formatting -------------------------------------------------------

    def code_label(self, code: str) -> str:
        assertion = self.assertions_by_code.get(code)
        return assertion.label if assertion else code

    def parameter_label(self, code: str, param_name: str) -> str:
        assertion = self.assertions_by_code.get(code)
        param = assertion.parameter(param_name) if assertion else None
        return param.label if param else param_name

    def value_label(self, value: Any) -> str:
        if isinstance(value, tuple):
            return "one of " + ", ".join(self.value_label(v) for v in value)
        return self.value_labels.get(str(value), str(value))
