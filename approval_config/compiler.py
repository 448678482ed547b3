"""
Policy compiler (``approval_config.compiler``).

Turns a validated ``ThresholdPolicyDefinition`` into the kernel's frozen
``ThresholdPolicy``.  The source checksum becomes the policy hash recorded
on every workflow created under it.
"""

from __future__ import annotations

from decimal import Decimal

from approval_config.schema import ThresholdPolicyDefinition, ceiling_value
from approval_kernel.domain.org import Role
from approval_kernel.domain.thresholds import (
    CategoryRule,
    EntityCategory,
    ThresholdPolicy,
)


def compile_policy(definition: ThresholdPolicyDefinition) -> ThresholdPolicy:
    """
    Compile a definition.  Callers validate first.

    Raises:
        ValueError: on unknown role or category names.
        PolicyValidationError: if a category has no rule.
    """
    ceilings: dict[EntityCategory, dict[Role, Decimal]] = {}
    for role_def in definition.roles:
        role = Role(role_def.name)
        for category, raw in role_def.ceilings:
            ceilings.setdefault(EntityCategory(category), {})[role] = ceiling_value(raw)

    rules = {
        EntityCategory(c.name): CategoryRule(
            category=EntityCategory(c.name),
            monetary=c.monetary,
            requires_approval=c.requires_approval,
            fixed_chain=tuple(Role(name) for name in c.fixed_chain),
            minimum_role=Role(c.minimum_role) if c.minimum_role else None,
        )
        for c in definition.categories
    }

    return ThresholdPolicy(
        ceilings=ceilings,
        rules=rules,
        global_scope_role=Role(definition.global_scope_role),
        version=definition.version,
        policy_hash=definition.checksum,
    )
