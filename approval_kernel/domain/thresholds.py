"""
Threshold policy (``approval_kernel.domain.thresholds``).

Responsibility
--------------
The monetary authority table: for every entity category, the ceiling each
role may approve, plus the per-category rules that shape a chain (monetary
or fixed, minimum-role overlay, whether approval is required at all).

Architecture position
---------------------
**Kernel domain layer** -- pure, deterministic, frozen.  Compiled from YAML
by ``approval_config.compiler``; the kernel never reads configuration files
itself.

Invariants enforced
-------------------
* ``threshold_for`` returns ``None`` when a role has no authority for a
  category.  ``None`` is "cannot approve", never zero.
* The reserved top role carries ``UNBOUNDED`` (``Decimal("Infinity")``)
  and can approve any amount.
* Every ``EntityCategory`` has exactly one ``CategoryRule``; a policy
  missing one fails at construction.
* ``version`` and ``policy_hash`` identify the policy snapshot recorded on
  each workflow at creation time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Mapping

from approval_kernel.domain.org import Role
from approval_kernel.exceptions import PolicyValidationError

UNBOUNDED = Decimal("Infinity")


class EntityCategory(str, Enum):
    """Closed set of approvable business objects."""

    EXPENSE = "expense"
    TASK = "task"
    SAFE_TRANSACTION = "safe_transaction"
    PAYROLL_RUN = "payroll_run"


@dataclass(frozen=True)
class CategoryRule:
    """How chains are shaped for one entity category.

    ``fixed_chain`` applies to non-monetary categories only.
    ``minimum_role`` is the overlay: a role that must appear in the chain
    regardless of amount unless a role of equal or higher level already does.
    """

    category: EntityCategory
    monetary: bool = True
    requires_approval: bool = True
    fixed_chain: tuple[Role, ...] = ()
    minimum_role: Role | None = None


@dataclass(frozen=True)
class ThresholdPolicy:
    """Role ceilings per category plus the category rules.

    ``ceilings[category][role]`` is the inclusive maximum ``role`` may approve.
    Roles absent from a category's mapping have no authority there.
    """

    ceilings: Mapping[EntityCategory, Mapping[Role, Decimal]]
    rules: Mapping[EntityCategory, CategoryRule]
    global_scope_role: Role = Role.ADMIN
    version: int = 1
    policy_hash: str | None = None
    _ladders: dict[EntityCategory, tuple[Role, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        missing = [c.value for c in EntityCategory if c not in self.rules]
        if missing:
            raise PolicyValidationError(
                [f"no rule defined for category {name}" for name in missing]
            )
        for category in EntityCategory:
            table = self.ceilings.get(category, {})
            ladder = sorted(table, key=lambda role: (table[role], role.level))
            self._ladders[category] = tuple(ladder)

    def rule_for(self, category: EntityCategory) -> CategoryRule:
        return self.rules[category]

    def is_monetary(self, category: EntityCategory) -> bool:
        return self.rules[category].monetary

    def threshold_for(self, role: Role, category: EntityCategory) -> Decimal | None:
        """Ceiling for ``role`` on ``category``, or None if it has no authority."""
        return self.ceilings.get(category, {}).get(role)

    def roles_by_ascending_ceiling(
        self, category: EntityCategory,
    ) -> tuple[Role, ...]:
        """Roles with authority over ``category``, cheapest first.

        Equal ceilings are ordered by role level.
        """
        return self._ladders[category]

    def covers(self, role: Role, category: EntityCategory, amount: Decimal) -> bool:
        """True if ``role`` may approve ``amount`` (inclusive boundary)."""
        ceiling = self.threshold_for(role, category)
        return ceiling is not None and amount <= ceiling
