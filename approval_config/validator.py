"""
Policy validator (``approval_config.validator``).

Responsibility
--------------
Checks a ``ThresholdPolicyDefinition`` before it is compiled, so that a
bad policy fails at load time rather than as an unchainable request at
runtime.

Invariants enforced
-------------------
* Every role, category and overlay name is known to the kernel.
* Every category has a rule.
* Each monetary category that requires approval has an unbounded role,
  so no positive amount is unchainable.
* Within a category, ceilings never decrease as role level increases.
* Fixed chains belong to non-monetary categories only, and a
  non-monetary category that requires approval has a non-empty one.
* A monetary overlay role has a ceiling in its category.

Failure modes
-------------
* ``PolicyValidationResult.errors`` non-empty  -> policy MUST NOT be
  compiled.
* Warnings do not block compilation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from approval_config.schema import ThresholdPolicyDefinition, ceiling_value
from approval_kernel.domain.org import Role
from approval_kernel.domain.thresholds import EntityCategory


@dataclass
class PolicyValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


_ROLE_NAMES = {role.value for role in Role}
_CATEGORY_NAMES = {category.value for category in EntityCategory}


def validate_policy(definition: ThresholdPolicyDefinition) -> PolicyValidationResult:
    """Validate a parsed policy definition."""
    result = PolicyValidationResult()

    if definition.global_scope_role not in _ROLE_NAMES:
        result.add_error(f"unknown global_scope_role: {definition.global_scope_role}")

    monetary = {c.name for c in definition.categories if c.monetary}

    # category -> [(role, ceiling)]
    tables: dict[str, list[tuple[Role, Decimal]]] = {}
    seen_roles: set[str] = set()
    for role_def in definition.roles:
        if role_def.name in seen_roles:
            result.add_error(f"role {role_def.name} defined twice")
        seen_roles.add(role_def.name)
        if role_def.name not in _ROLE_NAMES:
            result.add_error(f"unknown role: {role_def.name}")
            continue
        role = Role(role_def.name)
        for category, raw in role_def.ceilings:
            if category not in _CATEGORY_NAMES:
                result.add_error(f"role {role.value}: unknown category {category}")
                continue
            try:
                ceiling = ceiling_value(raw)
            except InvalidOperation:
                result.add_error(f"role {role.value}: invalid ceiling {raw!r} for {category}")
                continue
            if ceiling.is_nan() or ceiling <= 0:
                result.add_error(
                    f"role {role.value}: ceiling for {category} must be positive, got {raw}"
                )
                continue
            if category not in monetary:
                result.add_warning(
                    f"role {role.value}: ceiling for non-monetary category {category} is ignored"
                )
            tables.setdefault(category, []).append((role, ceiling))

    defined = {c.name for c in definition.categories}
    for missing in sorted(_CATEGORY_NAMES - defined):
        result.add_error(f"no rule defined for category {missing}")

    for category in definition.categories:
        if category.name not in _CATEGORY_NAMES:
            result.add_error(f"unknown category: {category.name}")
            continue

        for name in category.fixed_chain:
            if name not in _ROLE_NAMES:
                result.add_error(f"category {category.name}: unknown role {name} in fixed_chain")

        if category.monetary:
            if category.fixed_chain:
                result.add_error(
                    f"category {category.name}: fixed_chain is only allowed on non-monetary categories"
                )
            table = tables.get(category.name, [])
            if category.requires_approval and not any(
                not ceiling.is_finite() for _, ceiling in table
            ):
                result.add_error(
                    f"category {category.name}: no unbounded role, large amounts would be unchainable"
                )
            if sum(1 for _, ceiling in table if not ceiling.is_finite()) > 1:
                result.add_warning(f"category {category.name}: more than one unbounded role")
            _check_monotonic(category.name, table, result)
        elif category.requires_approval and not category.fixed_chain:
            result.add_error(
                f"category {category.name}: non-monetary category needs a fixed_chain"
            )

        if category.minimum_role is not None:
            if category.minimum_role not in _ROLE_NAMES:
                result.add_error(
                    f"category {category.name}: unknown minimum_role {category.minimum_role}"
                )
            elif category.monetary and not any(
                role.value == category.minimum_role
                for role, _ in tables.get(category.name, [])
            ):
                result.add_error(
                    f"category {category.name}: minimum_role {category.minimum_role} "
                    "has no ceiling for this category"
                )

    return result


def _check_monotonic(
    category: str,
    table: list[tuple[Role, Decimal]],
    result: PolicyValidationResult,
) -> None:
    ordered = sorted(table, key=lambda entry: entry[0].level)
    for (lower, lower_ceiling), (higher, higher_ceiling) in zip(ordered, ordered[1:]):
        if higher.level > lower.level and higher_ceiling < lower_ceiling:
            result.add_error(
                f"category {category}: {higher.value} ceiling {higher_ceiling} "
                f"is below {lower.value} ceiling {lower_ceiling}"
            )
