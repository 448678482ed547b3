"""
Chain construction (``approval_kernel.domain.chain``).

Given a category, an optional amount and the originating org unit, decide
which roles must approve and in what order.

Rules
-----
* Unknown org unit: ``OrgUnitNotFoundError``.
* Category that requires no approval: empty chain.
* Non-monetary category: its fixed chain, no threshold lookup.
* Monetary category: the FIRST role on the ascending ceiling ladder whose
  ceiling is >= amount (minimal sufficient approver, inclusive boundary).
  The category's ``minimum_role`` overlay is then appended unless a role
  of equal or higher level is already present.
* Monetary category with no covering role: ``UnchainableRequestError``.
  A monetary request never yields an empty chain.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from approval_kernel.domain.org import OrgHierarchy, Role
from approval_kernel.domain.thresholds import (
    UNBOUNDED,
    EntityCategory,
    ThresholdPolicy,
)
from approval_kernel.exceptions import (
    InvalidAmountError,
    OrgUnitNotFoundError,
    UnchainableRequestError,
)


@dataclass(frozen=True)
class ChainLink:
    """One position in a chain.

    ``threshold`` is the role's ceiling at build time, or None for
    unbounded and non-monetary links.
    """

    role: Role
    threshold: Decimal | None = None


def _snapshot(ceiling: Decimal | None) -> Decimal | None:
    if ceiling is None or ceiling == UNBOUNDED:
        return None
    return ceiling


def validate_amount(
    policy: ThresholdPolicy,
    category: EntityCategory,
    amount: Decimal | int | None,
) -> Decimal | None:
    """Return ``amount`` as a Decimal, or raise InvalidAmountError.

    Integers are widened to Decimal. Floats, booleans and other types are
    refused for every category. A monetary category also needs a finite,
    positive amount.
    """
    if isinstance(amount, int) and not isinstance(amount, bool):
        amount = Decimal(amount)
    elif amount is not None and not isinstance(amount, Decimal):
        raise InvalidAmountError(category.value, amount)

    if not policy.is_monetary(category):
        return amount
    if amount is None or not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(category.value, amount)
    return amount


class ChainBuilder:
    """Builds approval chains from a threshold policy and an org hierarchy."""

    def __init__(self, policy: ThresholdPolicy, hierarchy: OrgHierarchy):
        self._policy = policy
        self._hierarchy = hierarchy

    @property
    def policy(self) -> ThresholdPolicy:
        return self._policy

    def build(
        self,
        category: EntityCategory,
        amount: Decimal | None,
        org_unit_id: UUID,
    ) -> tuple[ChainLink, ...]:
        if not self._hierarchy.contains(org_unit_id):
            raise OrgUnitNotFoundError(str(org_unit_id))

        rule = self._policy.rule_for(category)
        if not rule.requires_approval:
            return ()

        if not rule.monetary:
            return tuple(ChainLink(role) for role in rule.fixed_chain)

        validate_amount(self._policy, category, amount)

        links: list[ChainLink] = []
        for role in self._policy.roles_by_ascending_ceiling(category):
            ceiling = self._policy.threshold_for(role, category)
            if ceiling is not None and amount <= ceiling:
                links.append(ChainLink(role, _snapshot(ceiling)))
                break
        if not links:
            raise UnchainableRequestError(category.value, amount)

        overlay = rule.minimum_role
        if overlay is not None and all(
            link.role.level < overlay.level for link in links
        ):
            links.append(
                ChainLink(
                    overlay,
                    _snapshot(self._policy.threshold_for(overlay, category)),
                )
            )

        return tuple(links)
