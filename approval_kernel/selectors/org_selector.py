"""
Module: approval_kernel.selectors.org_selector
Responsibility: Read the org forest and users out of the database as domain
    values.  Implements the ``UserDirectory`` port for the state machine.
Architecture position: Kernel > Selectors.  Read-only.
"""

from uuid import UUID

from sqlalchemy import select

from approval_kernel.domain.org import OrgHierarchy, OrgUnit, Role, User
from approval_kernel.models.org import OrgUnitModel, UserModel
from approval_kernel.selectors.base import BaseSelector


class OrgSelector(BaseSelector[OrgUnitModel]):
    """Org units and users as frozen domain values."""

    def org_units(self) -> list[OrgUnit]:
        return self._dtos(select(OrgUnitModel))

    def hierarchy(self, global_scope_role: Role = Role.ADMIN) -> OrgHierarchy:
        """
        Snapshot of the current org forest.

        Raises:
            OrgHierarchyCycleError: If the stored parent links form a cycle.
        """
        return OrgHierarchy(self.org_units(), global_scope_role=global_scope_role)

    def get_user(self, user_id: UUID) -> User | None:
        model = self.session.get(UserModel, user_id)
        return model.to_dto() if model is not None else None

    def users_with_role(self, role: Role) -> list[User]:
        return self._dtos(
            select(UserModel).where(UserModel.role == role.value).order_by(UserModel.email)
        )
