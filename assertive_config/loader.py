"""
Catalog Loader (``assertive_config.loader``).

Responsibility
--------------
Loads the YAML catalog fragments under ``assertive_config/catalog/`` and
parses them into the frozen dataclasses of
``assertive_kernel.domain.catalog``.  The single public entry point for
runtime use is ``assertive_config.get_catalog()``.

Architecture position
---------------------
**Config layer**.  The loader depends on the kernel's catalog types; the
kernel never imports from ``assertive_config``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Membership constraints written as ``{category: <item-category>}`` are
  expanded here, once, into a tuple of item keys.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  fragments for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
* Referential integrity failures  -> ``CatalogValidationError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from assertive_config.validator import validate_catalog
from assertive_kernel.domain.catalog import (
    AccountDefinition,
    AccountType,
    ActionDefinition,
    AssertionDefinition,
    Catalog,
    ClassificationRule,
    DerivedLegs,
    EffectKind,
    ItemCategory,
    JournalLeg,
    NormalBalance,
    ParameterDefinition,
    ParameterOption,
    ParameterType,
    PhysicalItem,
    Prerequisites,
    ProductionRecipe,
    SimulationSettings,
    Statement,
    TransactionTemplate,
    VariableStrategy,
)
from assertive_kernel.exceptions import CatalogValidationError
from assertive_kernel.logging_config import get_logger

logger = get_logger("config.loader")

FRAGMENT_FILES = (
    "items.yaml",
    "assertions.yaml",
    "rules.yaml",
    "templates.yaml",
    "actions.yaml",
    "accounts.yaml",
    "simulation.yaml",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def _decimal_or_none(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def _plain(value: Any) -> Any:
    """Normalize YAML scalars so template data round-trips through JSON."""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


# =========================================================================
# Fragment parsers
# =========================================================================


def parse_item(data: dict[str, Any]) -> PhysicalItem:
    return PhysicalItem(
        key=data["key"],
        label=data["label"],
        account=data["account"],
        account_type=AccountType(data["account_type"]),
        level=int(data["level"]),
        category=ItemCategory(data["category"]),
        purchase_cost=_decimal_or_none(data.get("purchase_cost")),
        sale_price=_decimal_or_none(data.get("sale_price")),
    )


def parse_parameter(data: dict[str, Any]) -> ParameterDefinition:
    return ParameterDefinition(
        name=data["name"],
        label=data["label"],
        type=ParameterType(data["type"]),
        optional=bool(data.get("optional", False)),
        options=tuple(
            ParameterOption(value=str(o["value"]), label=o["label"])
            for o in data.get("options", ())
        ),
        derived_from_items=bool(data.get("derived_from_items", False)),
        item_categories=tuple(
            ItemCategory(c) for c in data.get("item_categories", ())
        ),
    )


def parse_assertion(data: dict[str, Any]) -> AssertionDefinition:
    return AssertionDefinition(
        code=data["code"],
        label=data["label"],
        domain=data["domain"],
        level=int(data["level"]),
        description=data.get("description", ""),
        parameters=tuple(parse_parameter(p) for p in data.get("parameters", ())),
    )


def _expand_constraint(value: Any, items: tuple[PhysicalItem, ...]) -> str | tuple[str, ...]:
    if isinstance(value, dict):
        category = ItemCategory(value["category"])
        return tuple(item.key for item in items if item.category == category)
    if isinstance(value, list):
        return tuple(str(v) for v in value)
    return str(value)


def parse_rule(
    data: dict[str, Any],
    items: tuple[PhysicalItem, ...],
    defaults: dict[str, Any],
) -> ClassificationRule:
    """
    Parse a ``ClassificationRule`` from a dict.

    ``defaults["optional"]`` is merged into every rule's optional set,
    minus any code the rule itself requires or prohibits.
    """
    required = tuple(data["required"])
    prohibited = tuple(data.get("prohibited", ()))
    optional = list(data.get("optional", ()))
    for code in defaults.get("optional", ()):
        if code not in optional and code not in required and code not in prohibited:
            optional.append(code)

    required_parameters = {
        code: {name: _expand_constraint(value, items) for name, value in params.items()}
        for code, params in (data.get("required_parameters") or {}).items()
    }

    derived = data.get("derived")
    return ClassificationRule(
        key=data["key"],
        description=data["description"],
        level=int(data["level"]),
        required=required,
        prohibited=prohibited,
        optional=tuple(optional),
        required_parameters=required_parameters,
        journal_entry=tuple(
            JournalLeg(debit=leg["debit"], credit=leg["credit"])
            for leg in data.get("journal_entry", ())
        ),
        derived_legs=DerivedLegs(**derived) if derived else None,
        notes=data.get("notes", ""),
        examples=tuple(data.get("examples", ())),
    )


def parse_template(data: dict[str, Any]) -> TransactionTemplate:
    return TransactionTemplate(
        key=data["key"],
        level=int(data["level"]),
        narrative=data["narrative"],
        variables={
            name: tuple(_plain(values)) for name, values in data.get("variables", {}).items()
        },
        required_assertions={
            code: _plain(params or {})
            for code, params in data["required_assertions"].items()
        },
        correct_classification=data["correct_classification"],
        counterparty_variable=data.get("counterparty_variable"),
        amount_variable=data.get("amount_variable", "amount"),
    )


def parse_action(data: dict[str, Any]) -> ActionDefinition:
    prereq = data.get("prerequisites") or {}
    strategy = data.get("variable_strategy")
    known_effects = {kind.value for kind in EffectKind}
    unknown = [e for e in data.get("effects", ()) if e not in known_effects]
    if unknown:
        raise CatalogValidationError(
            [f"Action '{data['key']}': unknown effect kind '{e}'" for e in unknown]
        )
    return ActionDefinition(
        key=data["key"],
        label=data["label"],
        description=data.get("description", ""),
        level=int(data["level"]),
        template_key=data["template"],
        prerequisites=Prerequisites(
            min_cash=_decimal_or_none(prereq.get("min_cash")),
            min_inventory={k: int(v) for k, v in (prereq.get("min_inventory") or {}).items()},
            min_finished_goods=prereq.get("min_finished_goods"),
            equipment=tuple(prereq.get("equipment", ())),
            any_equipment=bool(prereq.get("any_equipment", False)),
            has_payable=bool(prereq.get("has_payable", False)),
            has_receivable=bool(prereq.get("has_receivable", False)),
        ),
        effects=tuple(EffectKind(e) for e in data.get("effects", ())),
        variable_strategy=VariableStrategy(strategy) if strategy else None,
    )


def parse_account(data: dict[str, Any]) -> AccountDefinition:
    return AccountDefinition(
        name=data["name"],
        statement=Statement(data["statement"]),
        type=AccountType(data["type"]),
        normal=NormalBalance(data["normal"]),
        level=int(data.get("level", 0)),
    )


def parse_settings(data: dict[str, Any]) -> SimulationSettings:
    recipe = data["production_recipe"]
    return SimulationSettings(
        starting_cash=Decimal(str(data["starting_cash"])),
        moves_per_period=int(data["moves_per_period"]),
        start_date=parse_date(data["start_date"]),
        recipe=ProductionRecipe(
            inputs={k: int(v) for k, v in recipe["inputs"].items()},
            output_item=recipe["output_item"],
            output_quantity=int(recipe["output_quantity"]),
        ),
        min_advance_days=int(data.get("min_advance_days", 1)),
        max_advance_days=int(data.get("max_advance_days", 5)),
        days_per_month=int(data.get("days_per_month", 28)),
        depreciation_months=int(data.get("depreciation_months", 36)),
        vendors=tuple(data.get("vendors", ())),
        customers=tuple(data.get("customers", ())),
        max_commit_attempts=int(data.get("max_commit_attempts", 5)),
        correct_to_unlock=int(data.get("correct_to_unlock", 5)),
    )


# =========================================================================
# Assembly
# =========================================================================


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of the raw fragments."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def build_catalog(fragments: dict[str, dict[str, Any]], checksum: str = "") -> Catalog:
    """
    Build and validate a ``Catalog`` from already-parsed YAML fragments.

    ``fragments`` is keyed by fragment file name (``"items.yaml"`` ...).

    Raises:
        KeyError: if a required key is missing.
        CatalogValidationError: if referential integrity checks fail.
    """
    items = tuple(parse_item(d) for d in fragments["items.yaml"].get("items", ()))
    assertion_data = fragments["assertions.yaml"]
    rule_data = fragments["rules.yaml"]

    catalog = Catalog(
        items=items,
        assertions=tuple(parse_assertion(d) for d in assertion_data.get("assertions", ())),
        rules=tuple(
            parse_rule(d, items, rule_data.get("defaults") or {})
            for d in rule_data.get("rules") or ()
        ),
        templates=tuple(
            parse_template(d) for d in fragments["templates.yaml"].get("templates", ())
        ),
        actions=tuple(parse_action(d) for d in fragments["actions.yaml"].get("actions", ())),
        accounts=tuple(
            parse_account(d) for d in fragments["accounts.yaml"].get("accounts", ())
        ),
        settings=parse_settings(fragments["simulation.yaml"]["simulation"]),
        domain_hints=dict(assertion_data.get("domain_hints") or {}),
        checksum=checksum,
    )

    errors = validate_catalog(catalog)
    if errors:
        logger.error(
            "catalog_validation_failed",
            extra={"error_count": len(errors), "errors": errors},
        )
        raise CatalogValidationError(errors)
    return catalog


def load_catalog(directory: Path) -> Catalog:
    """
    Load every catalog fragment from ``directory`` and build a ``Catalog``.

    Postconditions:
        - The returned catalog has passed ``validate_catalog``.
        - A ``catalog_loaded`` log entry records the checksum and counts.
    """
    fragments = {name: load_yaml_file(directory / name) for name in FRAGMENT_FILES}
    checksum = compute_checksum(fragments)
    catalog = build_catalog(fragments, checksum=checksum)
    logger.info(
        "catalog_loaded",
        extra={
            "directory": str(directory),
            "checksum": checksum,
            "item_count": len(catalog.items),
            "rule_count": len(catalog.rules),
            "template_count": len(catalog.templates),
            "action_count": len(catalog.actions),
        },
    )
    return catalog
