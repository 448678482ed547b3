"""
Module: approval_kernel.models.org
Responsibility: ORM persistence for org units, users and additional org
    assignments.  Owned by an external org-management collaborator; the
    approval engine only reads these tables (via OrgSelector).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One assignment row per (user, org unit).
    - Role and unit type values restricted by check constraints.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from approval_kernel.domain.org import OrgUnit, User


class OrgUnitModel(Base):
    """A node of the org forest (PMO, AREA, PROJECT or ZONE)."""

    __tablename__ = "org_units"

    __table_args__ = (
        CheckConstraint(
            "type IN ('pmo', 'area', 'project', 'zone')",
            name="ck_org_units_valid_type",
        ),
        Index("ix_org_units_parent", "parent_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("org_units.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<OrgUnit {self.name} ({self.type})>"

    def to_dto(self) -> OrgUnit:
        from approval_kernel.domain.org import OrgUnit, OrgUnitType

        return OrgUnit(
            id=self.id,
            type=OrgUnitType(self.type),
            parent_id=self.parent_id,
            name=self.name,
        )


class UserModel(Base):
    """A user with exactly one role and an optional primary org unit."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('viewer', 'cashier', 'site_engineer', 'zone_manager', "
            "'project_manager', 'area_manager', 'pmo', 'admin')",
            name="ck_users_valid_role",
        ),
        Index("ix_users_org_unit", "org_unit_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    org_unit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("org_units.id"), nullable=True,
    )

    assignments: Mapped[list["UserOrgAssignmentModel"]] = relationship(
        "UserOrgAssignmentModel",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"

    def to_dto(self) -> User:
        from approval_kernel.domain.org import Role, User

        return User(
            id=self.id,
            role=Role(self.role),
            org_unit_id=self.org_unit_id,
            additional_org_unit_ids=tuple(a.org_unit_id for a in self.assignments),
            name=self.name,
        )


class UserOrgAssignmentModel(Base):
    """Grants a user scope over another unit's subtree."""

    __tablename__ = "user_org_assignments"

    __table_args__ = (
        UniqueConstraint(
            "user_id", "org_unit_id",
            name="uq_user_org_assignments_user_unit",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    org_unit_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("org_units.id"), nullable=False,
    )

    user: Mapped["UserModel"] = relationship(
        "UserModel", back_populates="assignments",
    )
