"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approval workflows and their steps.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status values limited by check constraints.
    - UNIQUE(workflow_id, order): step order is unique per workflow.
    - ``version`` is the compare-and-swap token; every transition bumps it.
    - Decided steps are immutable: the ORM listener raises
      ImmutabilityViolationError on any UPDATE of a step whose stored
      status is no longer pending, and on any step DELETE.

Failure modes:
    - IntegrityError on duplicate step order.
    - ImmutabilityViolationError on decided-step UPDATE, or any step DELETE.

Audit relevance:
    Together with AuditEvent rows these tables are the approval history
    returned by history_for().
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.exceptions import ImmutabilityViolationError
from approval_kernel.utils.hashing import to_json_compatible

if TYPE_CHECKING:
    from approval_kernel.domain.approval import ApprovalStep, ApprovalWorkflow


class ApprovalWorkflowModel(Base):
    """Persistent approval workflow.

    Guarantees:
        - steps are loaded eagerly and ordered by ``order``.
        - policy_version and policy_hash are the chain snapshot's origin.
        - seq records insertion order; it breaks created_at ties in listings.
    """

    __tablename__ = "approval_workflows"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approval_workflows_valid_status",
        ),
        # pending_for(): role + status, org unit filtered in SQL
        Index(
            "ix_approval_workflows_pending",
            "status", "current_approver_role", "org_unit_id",
        ),
        # history_for()
        Index(
            "ix_approval_workflows_entity",
            "entity_type", "entity_id", "created_at",
        ),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requested_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    org_unit_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("org_units.id"), nullable=False,
    )
    amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    current_approver_role: Mapped[str | None] = mapped_column(
        String(50), nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    workflow_metadata: Mapped[dict | None] = mapped_column(
        "metadata", JSON, nullable=True,
    )
    policy_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    policy_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    steps: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="workflow",
        order_by="ApprovalStepModel.order",
        lazy="selectin",
        cascade="save-update, merge",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalWorkflow {self.id} {self.entity_type}/{self.entity_id} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> ApprovalWorkflow:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalWorkflow as ApprovalWorkflowDTO,
            WorkflowStatus,
        )
        from approval_kernel.domain.org import Role
        from approval_kernel.domain.thresholds import EntityCategory

        return ApprovalWorkflowDTO(
            id=self.id,
            entity_type=EntityCategory(self.entity_type),
            entity_id=self.entity_id,
            requested_by=self.requested_by,
            org_unit_id=self.org_unit_id,
            amount=self.amount,
            status=WorkflowStatus(self.status),
            current_approver_role=(
                Role(self.current_approver_role)
                if self.current_approver_role is not None
                else None
            ),
            steps=tuple(s.to_dto() for s in self.steps),
            created_at=self.created_at,
            completed_at=self.completed_at,
            metadata=dict(self.workflow_metadata or {}),
            version=self.version,
            policy_version=self.policy_version,
            policy_hash=self.policy_hash,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalWorkflow) -> ApprovalWorkflowModel:
        """Create ORM model (and its steps) from domain DTO."""
        return cls(
            id=dto.id,
            entity_type=dto.entity_type.value,
            entity_id=dto.entity_id,
            requested_by=dto.requested_by,
            org_unit_id=dto.org_unit_id,
            amount=dto.amount,
            status=dto.status.value,
            current_approver_role=(
                dto.current_approver_role.value
                if dto.current_approver_role is not None
                else None
            ),
            version=dto.version,
            workflow_metadata=to_json_compatible(dict(dto.metadata)) if dto.metadata else None,
            policy_version=dto.policy_version,
            policy_hash=dto.policy_hash,
            created_at=dto.created_at,
            completed_at=dto.completed_at,
            steps=[ApprovalStepModel.from_dto(s) for s in dto.steps],
        )


class ApprovalStepModel(Base):
    """Persistent approval step.  Write-once after its decision."""

    __tablename__ = "approval_steps"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'skipped')",
            name="ck_approval_steps_valid_status",
        ),
        CheckConstraint('"order" >= 1', name="ck_approval_steps_order_positive"),
        UniqueConstraint(
            "workflow_id", "order",
            name="uq_approval_steps_workflow_order",
        ),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_workflows.id"), nullable=False,
    )
    order: Mapped[int] = mapped_column("order", Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    required_threshold: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True,
    )
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)

    workflow: Mapped["ApprovalWorkflowModel"] = relationship(
        "ApprovalWorkflowModel", back_populates="steps",
    )

    def __repr__(self) -> str:
        return f"<ApprovalStep {self.workflow_id}#{self.order} {self.role} {self.status}>"

    def to_dto(self) -> ApprovalStep:
        from approval_kernel.domain.approval import (
            ApprovalStep as ApprovalStepDTO,
            StepStatus,
        )
        from approval_kernel.domain.org import Role

        return ApprovalStepDTO(
            id=self.id,
            order=self.order,
            role=Role(self.role),
            status=StepStatus(self.status),
            required_threshold=self.required_threshold,
            approved_by=self.approved_by,
            decided_at=self.decided_at,
            remark=self.remark,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalStep) -> ApprovalStepModel:
        return cls(
            id=dto.id,
            order=dto.order,
            role=dto.role.value,
            status=dto.status.value,
            required_threshold=dto.required_threshold,
            approved_by=dto.approved_by,
            decided_at=dto.decided_at,
            remark=dto.remark,
        )


# =============================================================================
# ORM-Level Immutability for Decided Steps
# =============================================================================


@event.listens_for(ApprovalStepModel, "before_update")
def prevent_decided_step_update(mapper, connection, target):
    """Only a step still stored as pending may be written."""
    state = inspect(target)
    if not any(attr.history.has_changes() for attr in state.attrs):
        return
    status_history = state.attrs.status.history
    stored_status = (
        status_history.deleted[0] if status_history.deleted else target.status
    )
    if stored_status != "pending":
        raise ImmutabilityViolationError(
            entity_type="ApprovalStep",
            entity_id=str(target.id),
            reason=f"Step already decided ({stored_status}) -- cannot modify",
        )


@event.listens_for(ApprovalStepModel, "before_delete")
def prevent_step_delete(mapper, connection, target):
    """Steps are never removed from a workflow."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalStep",
        entity_id=str(target.id),
        reason="Approval steps are fixed at creation -- cannot delete",
    )
