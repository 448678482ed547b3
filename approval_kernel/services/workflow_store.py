"""
Workflow stores -- persistence behind the ``WorkflowStore`` port.

Responsibility:
    Load and save workflow aggregates (workflow row plus its steps) for the
    ApprovalStateMachine.  Two implementations:

    * ``SqlAlchemyWorkflowStore`` -- the production store.  Reads for a
      decision take a row lock (``SELECT ... FOR UPDATE``) and writes are a
      conditional UPDATE on (status = pending, version = read version).
    * ``InMemoryWorkflowStore`` -- a lock-guarded dict for tests and
      single-process tools.  Same compare-and-swap contract.

Architecture position:
    Kernel > Services -- imperative shell.  Never commits; the caller owns
    the transaction (SQL) or there is none (memory).

Invariants enforced:
    - A workflow and all its steps are persisted together.
    - compare_and_swap writes nothing unless the stored workflow is still
      PENDING at the expected version.  Exactly one of two racing writers
      can succeed.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import ApprovalWorkflow, WorkflowStatus
from approval_kernel.domain.org import Role
from approval_kernel.domain.thresholds import EntityCategory
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval import ApprovalStepModel, ApprovalWorkflowModel
from approval_kernel.services.sequence_service import SequenceService

logger = get_logger("services.workflow_store")


class SqlAlchemyWorkflowStore:
    """
    WorkflowStore over the approval_workflows / approval_steps tables.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session):
        self._session = session
        self._sequence = SequenceService(session)

    def _select_workflow(self, workflow_id: UUID):
        return (
            select(ApprovalWorkflowModel)
            .where(ApprovalWorkflowModel.id == workflow_id)
            .execution_options(populate_existing=True)
        )

    def add(self, workflow: ApprovalWorkflow) -> None:
        model = ApprovalWorkflowModel.from_dto(workflow)
        model.seq = self._sequence.next_value(SequenceService.APPROVAL_WORKFLOW)
        self._session.add(model)
        self._session.flush()

    def get(self, workflow_id: UUID) -> ApprovalWorkflow | None:
        model = self._session.execute(
            self._select_workflow(workflow_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def get_for_update(self, workflow_id: UUID) -> ApprovalWorkflow | None:
        model = self._session.execute(
            self._select_workflow(workflow_id).with_for_update()
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def compare_and_swap(
        self, updated: ApprovalWorkflow, expected_version: int,
    ) -> bool:
        result = self._session.execute(
            update(ApprovalWorkflowModel)
            .where(
                ApprovalWorkflowModel.id == updated.id,
                ApprovalWorkflowModel.status == WorkflowStatus.PENDING.value,
                ApprovalWorkflowModel.version == expected_version,
            )
            .values(
                status=updated.status.value,
                current_approver_role=(
                    updated.current_approver_role.value
                    if updated.current_approver_role is not None
                    else None
                ),
                version=updated.version,
                completed_at=updated.completed_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "workflow_cas_lost",
                extra={
                    "workflow_id": str(updated.id),
                    "expected_version": expected_version,
                },
            )
            return False

        stored_steps = {
            step.order: step
            for step in self._session.execute(
                select(ApprovalStepModel)
                .where(ApprovalStepModel.workflow_id == updated.id)
                .execution_options(populate_existing=True)
            ).scalars()
        }
        for step in updated.steps:
            stored = stored_steps[step.order]
            if step.is_decided and stored.status == "pending":
                stored.status = step.status.value
                stored.approved_by = step.approved_by
                stored.decided_at = step.decided_at
                stored.remark = step.remark
        self._session.flush()
        return True

    def pending_for(
        self, role: Role, scope_org_unit_ids: Iterable[UUID],
    ) -> list[ApprovalWorkflow]:
        scope = list(scope_org_unit_ids)
        if not scope:
            return []
        models = self._session.execute(
            select(ApprovalWorkflowModel)
            .where(
                ApprovalWorkflowModel.status == WorkflowStatus.PENDING.value,
                ApprovalWorkflowModel.current_approver_role == role.value,
                ApprovalWorkflowModel.org_unit_id.in_(scope),
            )
            .order_by(ApprovalWorkflowModel.created_at.desc(), ApprovalWorkflowModel.seq.desc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def history_for(
        self, entity_type: EntityCategory, entity_id: UUID,
    ) -> list[ApprovalWorkflow]:
        models = self._session.execute(
            select(ApprovalWorkflowModel)
            .where(
                ApprovalWorkflowModel.entity_type == entity_type.value,
                ApprovalWorkflowModel.entity_id == entity_id,
            )
            .order_by(ApprovalWorkflowModel.created_at.desc(), ApprovalWorkflowModel.seq.desc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [m.to_dto() for m in models]


class InMemoryWorkflowStore:
    """
    WorkflowStore backed by a dict guarded by one lock.

    Workflows are immutable snapshots, so handing them out needs no copy.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._workflows: dict[UUID, ApprovalWorkflow] = {}

    def add(self, workflow: ApprovalWorkflow) -> None:
        with self._lock:
            if workflow.id in self._workflows:
                raise ValueError(f"Workflow {workflow.id} already stored")
            self._workflows[workflow.id] = workflow

    def get(self, workflow_id: UUID) -> ApprovalWorkflow | None:
        with self._lock:
            return self._workflows.get(workflow_id)

    def get_for_update(self, workflow_id: UUID) -> ApprovalWorkflow | None:
        # No row lock; compare_and_swap is the arbiter.
        return self.get(workflow_id)

    def compare_and_swap(
        self, updated: ApprovalWorkflow, expected_version: int,
    ) -> bool:
        with self._lock:
            current = self._workflows.get(updated.id)
            if (
                current is None
                or current.status != WorkflowStatus.PENDING
                or current.version != expected_version
            ):
                return False
            self._workflows[updated.id] = updated
            return True

    def _newest_first(self, workflows: list[ApprovalWorkflow]) -> list[ApprovalWorkflow]:
        # Stable sort over reversed insertion order: later inserts win ties.
        return sorted(reversed(workflows), key=lambda w: w.created_at, reverse=True)

    def pending_for(
        self, role: Role, scope_org_unit_ids: Iterable[UUID],
    ) -> list[ApprovalWorkflow]:
        scope = frozenset(scope_org_unit_ids)
        if not scope:
            return []
        with self._lock:
            matches = [
                w for w in self._workflows.values()
                if w.status == WorkflowStatus.PENDING
                and w.current_approver_role == role
                and w.org_unit_id in scope
            ]
        return self._newest_first(matches)

    def history_for(
        self, entity_type: EntityCategory, entity_id: UUID,
    ) -> list[ApprovalWorkflow]:
        with self._lock:
            matches = [
                w for w in self._workflows.values()
                if w.entity_type == entity_type and w.entity_id == entity_id
            ]
        return self._newest_first(matches)
