"""
Approval workflow domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for a single approval workflow and its ordered steps,
and the pure transition functions that move a workflow forward.  The
imperative shell (``services.approval_service.ApprovalStateMachine``)
loads, authorizes, persists and notifies; everything that decides *what
the next state is* lives here.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Lifecycle: ``WORKFLOW_TRANSITIONS`` is the only set of valid status
  moves.  PENDING goes to APPROVED or REJECTED; both are terminal.
* PENDING iff ``current_approver_role`` is set and at least one step is
  PENDING.  Terminal iff ``completed_at`` is set and the role is None.
* The active step is always the smallest-order PENDING step.
* Step ``order`` is dense and 1-based; steps are fixed at creation.
* A decided step never changes again.
* Rejection is always terminal, whatever the remaining chain length.
* Every transition bumps ``version`` by one (compare-and-swap token).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID, uuid4

from approval_kernel.domain.chain import ChainLink
from approval_kernel.domain.org import Role
from approval_kernel.domain.thresholds import EntityCategory
from approval_kernel.exceptions import (
    NoActiveStepError,
    WorkflowAlreadyProcessedError,
)


# =========================================================================
# Status lifecycle
# =========================================================================


class WorkflowStatus(str, Enum):
    """Approval workflow lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


WORKFLOW_TRANSITIONS: dict[WorkflowStatus, frozenset[WorkflowStatus]] = {
    WorkflowStatus.PENDING: frozenset({
        WorkflowStatus.APPROVED,
        WorkflowStatus.REJECTED,
    }),
    WorkflowStatus.APPROVED: frozenset(),
    WorkflowStatus.REJECTED: frozenset(),
}

TERMINAL_WORKFLOW_STATUSES: frozenset[WorkflowStatus] = frozenset({
    WorkflowStatus.APPROVED,
    WorkflowStatus.REJECTED,
})


class StepStatus(str, Enum):
    """Approval step states.  SKIPPED is reserved and never produced."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class Decision(str, Enum):
    """What an approver can do with the active step."""

    APPROVE = "approve"
    REJECT = "reject"


# =========================================================================
# Aggregate
# =========================================================================


@dataclass(frozen=True)
class ApprovalStep:
    """One position in a workflow's chain."""

    order: int
    role: Role
    status: StepStatus = StepStatus.PENDING
    required_threshold: Decimal | None = None
    approved_by: UUID | None = None
    decided_at: datetime | None = None
    remark: str | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_decided(self) -> bool:
        return self.status in (StepStatus.APPROVED, StepStatus.REJECTED)


@dataclass(frozen=True)
class ApprovalWorkflow:
    """Immutable snapshot of a workflow and its steps, ordered by ``order``."""

    id: UUID
    entity_type: EntityCategory
    entity_id: UUID
    requested_by: UUID
    org_unit_id: UUID
    amount: Decimal | None
    status: WorkflowStatus
    current_approver_role: Role | None
    steps: tuple[ApprovalStep, ...]
    created_at: datetime | None = None
    completed_at: datetime | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    version: int = 1
    policy_version: int | None = None
    policy_hash: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES

    @property
    def chain(self) -> tuple[ChainLink, ...]:
        return tuple(ChainLink(s.role, s.required_threshold) for s in self.steps)

    @property
    def active_step(self) -> ApprovalStep | None:
        return find_active_step(self)


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of applying one decision.

    ``next_step`` is the step that became active, or None when the decision
    finished the workflow.
    """

    before: ApprovalWorkflow
    workflow: ApprovalWorkflow
    decision: Decision
    decided_step: ApprovalStep
    next_step: ApprovalStep | None = None

    @property
    def completed(self) -> bool:
        return self.workflow.is_terminal


# =========================================================================
# Pure transitions
# =========================================================================


def find_active_step(workflow: ApprovalWorkflow) -> ApprovalStep | None:
    """The smallest-order PENDING step, or None."""
    pending = [s for s in workflow.steps if s.status == StepStatus.PENDING]
    if not pending:
        return None
    return min(pending, key=lambda s: s.order)


def start_workflow(
    *,
    entity_type: EntityCategory,
    entity_id: UUID,
    requested_by: UUID,
    org_unit_id: UUID,
    amount: Decimal | None,
    chain: tuple[ChainLink, ...],
    created_at: datetime,
    metadata: Mapping[str, Any] | None = None,
    policy_version: int | None = None,
    policy_hash: str | None = None,
    workflow_id: UUID | None = None,
) -> ApprovalWorkflow:
    """A new PENDING workflow with one PENDING step per chain link.

    Raises:
        ValueError: If ``chain`` is empty.  Callers decide what an empty
            chain means before getting here.
    """
    if not chain:
        raise ValueError("Cannot start an approval workflow with an empty chain")

    steps = tuple(
        ApprovalStep(order=index, role=link.role, required_threshold=link.threshold)
        for index, link in enumerate(chain, start=1)
    )
    return ApprovalWorkflow(
        id=workflow_id or uuid4(),
        entity_type=entity_type,
        entity_id=entity_id,
        requested_by=requested_by,
        org_unit_id=org_unit_id,
        amount=amount,
        status=WorkflowStatus.PENDING,
        current_approver_role=steps[0].role,
        steps=steps,
        created_at=created_at,
        metadata=dict(metadata or {}),
        policy_version=policy_version,
        policy_hash=policy_hash,
    )


def apply_decision(
    workflow: ApprovalWorkflow,
    *,
    actor_id: UUID,
    decision: Decision,
    decided_at: datetime,
    remark: str | None = None,
) -> TransitionOutcome:
    """Apply ``decision`` to the active step and return the next snapshot.

    Authorization is NOT checked here; callers run the guard first.

    Raises:
        WorkflowAlreadyProcessedError: Workflow is not PENDING.
        NoActiveStepError: Workflow is PENDING but has no PENDING step.
    """
    if workflow.status != WorkflowStatus.PENDING:
        raise WorkflowAlreadyProcessedError(str(workflow.id), workflow.status.value)

    current = find_active_step(workflow)
    if current is None:
        raise NoActiveStepError(str(workflow.id))

    step_status = (
        StepStatus.APPROVED if decision == Decision.APPROVE else StepStatus.REJECTED
    )
    decided = replace(
        current,
        status=step_status,
        approved_by=actor_id,
        decided_at=decided_at,
        remark=remark,
    )
    steps = tuple(decided if s.order == current.order else s for s in workflow.steps)

    next_step: ApprovalStep | None = None
    if decision == Decision.APPROVE:
        later = [
            s for s in steps
            if s.order > current.order and s.status == StepStatus.PENDING
        ]
        if later:
            next_step = min(later, key=lambda s: s.order)

    if next_step is not None:
        updated = replace(
            workflow,
            steps=steps,
            current_approver_role=next_step.role,
            version=workflow.version + 1,
        )
    else:
        new_status = (
            WorkflowStatus.APPROVED
            if decision == Decision.APPROVE
            else WorkflowStatus.REJECTED
        )
        updated = replace(
            workflow,
            steps=steps,
            status=new_status,
            current_approver_role=None,
            completed_at=decided_at,
            version=workflow.version + 1,
        )

    return TransitionOutcome(
        before=workflow,
        workflow=updated,
        decision=decision,
        decided_step=decided,
        next_step=next_step,
    )
