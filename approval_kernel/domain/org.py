"""
Organizational hierarchy (``approval_kernel.domain.org``).

Responsibility
--------------
Org units form a read-mostly forest (PMO > AREA > PROJECT > ZONE).  A user's
*scope* is the set of units they may see and act within: the subtree of
their primary unit, unioned with the subtree of every additional
assignment.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and pure lookups.  ZERO I/O.
The hierarchy is built from plain ``OrgUnit`` values by
``selectors.org_selector`` (from the database) or directly by tests.

Invariants enforced
-------------------
* Parent pointers never form a cycle.  A cycle is detected when the
  hierarchy is constructed and raises ``OrgHierarchyCycleError``.
* Descendant collection is iterative with an explicit visited set, and
  memoized per hierarchy instance.
* Unknown org unit ids resolve to an EMPTY scope.  Empty scope means
  "no access", never "all access".
* The global-scope role receives every known org unit directly; the
  forest may have several disjoint roots, so this is not a root walk.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from approval_kernel.exceptions import OrgHierarchyCycleError


class OrgUnitType(str, Enum):
    """Hierarchy levels, outermost first."""

    PMO = "pmo"
    AREA = "area"
    PROJECT = "project"
    ZONE = "zone"


class Role(str, Enum):
    """Organizational roles.  Totally ordered by ``level``."""

    VIEWER = "viewer"
    CASHIER = "cashier"
    SITE_ENGINEER = "site_engineer"
    ZONE_MANAGER = "zone_manager"
    PROJECT_MANAGER = "project_manager"
    AREA_MANAGER = "area_manager"
    PMO = "pmo"
    ADMIN = "admin"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]


ROLE_LEVELS: dict[Role, int] = {
    Role.VIEWER: 0,
    Role.CASHIER: 0,
    Role.SITE_ENGINEER: 0,
    Role.ZONE_MANAGER: 1,
    Role.PROJECT_MANAGER: 2,
    Role.AREA_MANAGER: 3,
    Role.PMO: 4,
    Role.ADMIN: 5,
}


@dataclass(frozen=True)
class OrgUnit:
    """A node in the org forest.  ``parent_id`` is None for a root."""

    id: UUID
    type: OrgUnitType
    parent_id: UUID | None = None
    name: str = ""


@dataclass(frozen=True)
class User:
    """A user as the approval engine sees them."""

    id: UUID
    role: Role
    org_unit_id: UUID | None = None
    additional_org_unit_ids: tuple[UUID, ...] = field(default_factory=tuple)
    name: str = ""


class OrgHierarchy:
    """
    Scope resolution over an immutable snapshot of the org forest.

    Contract:
        Constructed once per request/session from the current org units.
        Never mutated afterwards; the descendant cache is therefore safe.

    Raises:
        OrgHierarchyCycleError: If any parent chain loops back on itself.
    """

    def __init__(
        self,
        units: Iterable[OrgUnit],
        global_scope_role: Role = Role.ADMIN,
    ):
        self._units: dict[UUID, OrgUnit] = {unit.id: unit for unit in units}
        self._global_scope_role = global_scope_role
        self._children: dict[UUID, list[UUID]] = {uid: [] for uid in self._units}
        for unit in self._units.values():
            # A parent outside the snapshot makes the unit a root.
            if unit.parent_id is not None and unit.parent_id in self._units:
                self._children[unit.parent_id].append(unit.id)
        self._descendants_cache: dict[UUID, frozenset[UUID]] = {}
        self._assert_acyclic()

    def _assert_acyclic(self) -> None:
        """Walk every parent chain once; a unit seen twice on one walk is a cycle."""
        cleared: set[UUID] = set()
        for start in self._units:
            path: list[UUID] = []
            on_path: set[UUID] = set()
            current: UUID | None = start
            while current is not None and current in self._units and current not in cleared:
                if current in on_path:
                    loop = path[path.index(current):] + [current]
                    raise OrgHierarchyCycleError(
                        str(current), [str(uid) for uid in loop]
                    )
                on_path.add(current)
                path.append(current)
                current = self._units[current].parent_id
            cleared.update(path)

    @property
    def global_scope_role(self) -> Role:
        return self._global_scope_role

    def contains(self, org_unit_id: UUID) -> bool:
        return org_unit_id in self._units

    def get(self, org_unit_id: UUID) -> OrgUnit | None:
        return self._units.get(org_unit_id)

    def all_unit_ids(self) -> frozenset[UUID]:
        return frozenset(self._units)

    def descendants_of(self, org_unit_id: UUID) -> frozenset[UUID]:
        """
        The unit itself plus every unit below it.

        Unknown ids return an empty set.
        """
        if org_unit_id not in self._units:
            return frozenset()
        cached = self._descendants_cache.get(org_unit_id)
        if cached is not None:
            return cached

        visited: set[UUID] = set()
        stack = [org_unit_id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self._children[current])

        result = frozenset(visited)
        self._descendants_cache[org_unit_id] = result
        return result

    def scope_of(self, user: User) -> frozenset[UUID]:
        """
        Every org unit ``user`` may act within.

        The global-scope role short-circuits to all units.  A user with no
        primary unit has an empty scope, even with additional assignments.
        """
        if user.role == self._global_scope_role:
            return self.all_unit_ids()
        if user.org_unit_id is None:
            return frozenset()

        scope: set[UUID] = set(self.descendants_of(user.org_unit_id))
        for extra_id in user.additional_org_unit_ids:
            scope.update(self.descendants_of(extra_id))
        return frozenset(scope)
