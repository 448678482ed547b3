"""
Threshold policy source schema.

The human-authored, reviewable artifact.  YAML is parsed into these types
by the loader, checked by the validator, and compiled into the kernel's
``ThresholdPolicy`` by the compiler.

Key distinction:
  ThresholdPolicyDefinition = source artifact (strings, as authored)
  ThresholdPolicy           = runtime artifact (enums, Decimals, frozen)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

UNBOUNDED_MARKER = "unbounded"


@dataclass(frozen=True)
class RoleDef:
    """One role's ceilings, keyed by category name.

    Values are decimal strings or ``UNBOUNDED_MARKER``.
    """

    name: str
    ceilings: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class CategoryDef:
    """Chain-shaping rules for one entity category."""

    name: str
    monetary: bool = True
    requires_approval: bool = True
    fixed_chain: tuple[str, ...] = ()
    minimum_role: str | None = None


@dataclass(frozen=True)
class ThresholdPolicyDefinition:
    """A complete, versioned threshold policy as authored."""

    policy_id: str
    version: int
    global_scope_role: str
    roles: tuple[RoleDef, ...] = ()
    categories: tuple[CategoryDef, ...] = ()
    checksum: str = ""


def ceiling_value(raw: str) -> Decimal:
    """
    Decimal ceiling for an authored value.

    Raises:
        decimal.InvalidOperation: if ``raw`` is neither a number nor
            ``UNBOUNDED_MARKER``.
    """
    if raw == UNBOUNDED_MARKER:
        return Decimal("Infinity")
    return Decimal(raw)
