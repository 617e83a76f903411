"""
Catalog validator -- referential integrity checks run at load time.

Every check appends a message instead of raising, so one load reports
all problems at once.  The loader turns a non-empty result into
``CatalogValidationError``.
"""

from __future__ import annotations

from assertive_kernel.domain.catalog import Catalog


def _iter_variable_refs(value):
    if isinstance(value, str) and value.startswith("$"):
        yield value[1:]
    elif isinstance(value, dict):
        for nested in value.values():
            yield from _iter_variable_refs(nested)
    elif isinstance(value, (list, tuple)):
        for nested in value:
            yield from _iter_variable_refs(nested)


def validate_rules(catalog: Catalog) -> list[str]:
    errors: list[str] = []
    if not catalog.rules:
        errors.append("rule library is empty")
    codes = set(catalog.assertions_by_code)
    seen: set[str] = set()
    for rule in catalog.rules:
        if rule.key in seen:
            errors.append(f"rule {rule.key}: duplicate key")
        seen.add(rule.key)

        for group in ("required", "prohibited", "optional"):
            for code in getattr(rule, group):
                if code not in codes:
                    errors.append(f"rule {rule.key}: unknown {group} assertion {code}")
        overlap = set(rule.required) & set(rule.prohibited)
        if overlap:
            errors.append(f"rule {rule.key}: required and prohibited overlap {sorted(overlap)}")

        for code, params in rule.required_parameters.items():
            if code not in rule.required:
                errors.append(
                    f"rule {rule.key}: required_parameters names {code}, "
                    "which is not a required assertion"
                )
            for name, constraint in params.items():
                if isinstance(constraint, tuple) and not constraint:
                    errors.append(f"rule {rule.key}: {code}.{name} allows no values")

        if rule.derived_legs is None and not rule.journal_entry:
            errors.append(f"rule {rule.key}: no journal entry legs")
        for leg in rule.journal_entry:
            for account in (leg.debit, leg.credit):
                if account not in catalog.accounts_by_name:
                    errors.append(f"rule {rule.key}: unknown account {account}")
        if rule.derived_legs is not None:
            derived = rule.derived_legs
            if (derived.debit is None) == (derived.debit_from is None):
                errors.append(f"rule {rule.key}: derived legs need exactly one debit source")
            if (derived.credit is None) == (derived.credit_from is None):
                errors.append(f"rule {rule.key}: derived legs need exactly one credit source")
    return errors


def validate_items(catalog: Catalog) -> list[str]:
    errors: list[str] = []
    for item in catalog.items:
        if item.account not in catalog.accounts_by_name:
            errors.append(f"item {item.key}: unknown account {item.account}")
    recipe = catalog.settings.recipe
    for key in list(recipe.inputs) + [recipe.output_item]:
        if key not in catalog.items_by_key:
            errors.append(f"production recipe: unknown item {key}")
    if catalog.settings.correct_to_unlock < 1:
        errors.append("simulation: correct_to_unlock must be at least 1")
    return errors


def validate_templates(catalog: Catalog) -> list[str]:
    errors: list[str] = []
    for template in catalog.templates:
        if template.correct_classification not in catalog.rules_by_key:
            errors.append(
                f"template {template.key}: unknown classification "
                f"{template.correct_classification}"
            )
        for name, values in template.variables.items():
            if not values:
                errors.append(f"template {template.key}: variable {name} has no values")
        for ref in _iter_variable_refs(dict(template.required_assertions)):
            if ref not in template.variables:
                errors.append(f"template {template.key}: undefined variable ${ref}")
        for code in template.required_assertions:
            if code not in catalog.assertions_by_code:
                errors.append(f"template {template.key}: unknown assertion {code}")
    return errors


def validate_actions(catalog: Catalog) -> list[str]:
    errors: list[str] = []
    for action in catalog.actions:
        if action.template_key not in catalog.templates_by_key:
            errors.append(f"action {action.key}: unknown template {action.template_key}")
        prereq = action.prerequisites
        for key in list(prereq.min_inventory) + list(prereq.equipment):
            if key not in catalog.items_by_key:
                errors.append(f"action {action.key}: unknown item {key}")
    return errors


def validate_catalog(catalog: Catalog) -> list[str]:
    """Run every integrity check; an empty list means the catalog is usable."""
    return (
        validate_rules(catalog)
        + validate_items(catalog)
        + validate_templates(catalog)
        + validate_actions(catalog)
    )
