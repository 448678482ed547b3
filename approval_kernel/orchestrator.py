"""
ApprovalOrchestrator -- DI container and external surface of the engine.

Contract:
    Wires the threshold policy, the org hierarchy (read from the database),
    the workflow store, the guard, the auditor and the ports into one
    ApprovalStateMachine, and exposes the four caller-facing operations
    with plain result records.

Architecture: approval_kernel (top-level).  The policy is passed in; load
    it with ``approval_config.get_active_policy()``.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Audit trail: AuditorService is always wired for SQL sessions.
    - Does NOT commit.  Wrap calls in ``db.engine.session_scope()``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from approval_kernel.domain.approval import ApprovalWorkflow, Decision, WorkflowStatus
from approval_kernel.domain.authorization import AuthorizationGuard
from approval_kernel.domain.chain import ChainBuilder
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.org import Role
from approval_kernel.domain.ports import (
    EntityStatusPort,
    LoggingNotificationPort,
    NotificationPort,
    NullEntityStatusPort,
)
from approval_kernel.domain.thresholds import EntityCategory, ThresholdPolicy
from approval_kernel.logging_config import get_logger
from approval_kernel.selectors.org_selector import OrgSelector
from approval_kernel.services.approval_service import ApprovalStateMachine
from approval_kernel.services.auditor_service import AuditorService
from approval_kernel.services.workflow_store import SqlAlchemyWorkflowStore

logger = get_logger("orchestrator")


@dataclass(frozen=True)
class CreateApprovalResult:
    """``required`` False means no workflow was created."""

    required: bool
    workflow_id: UUID | None = None
    first_approver: Role | None = None


@dataclass(frozen=True)
class DecisionOutcome:
    """``next_approver`` is set only while the workflow stays PENDING."""

    status: WorkflowStatus
    next_approver: Role | None = None


class ApprovalOrchestrator:
    """Caller-facing facade over ApprovalStateMachine.

    Non-goals:
        - Does NOT manage session lifecycle -- caller controls commits.
    """

    def __init__(self, machine: ApprovalStateMachine) -> None:
        self._machine = machine

    @property
    def machine(self) -> ApprovalStateMachine:
        return self._machine

    @classmethod
    def from_session(
        cls,
        session: Session,
        policy: ThresholdPolicy,
        clock: Clock | None = None,
        entity_status: EntityStatusPort | None = None,
        notifications: NotificationPort | None = None,
    ) -> ApprovalOrchestrator:
        """Create a fully wired orchestrator for one session.

        The org hierarchy is snapshotted from the database here.

        Raises:
            OrgHierarchyCycleError: If the stored org units form a cycle.
        """
        effective_clock = clock or SystemClock()
        selector = OrgSelector(session)
        hierarchy = selector.hierarchy(global_scope_role=policy.global_scope_role)

        machine = ApprovalStateMachine(
            store=SqlAlchemyWorkflowStore(session),
            chain_builder=ChainBuilder(policy, hierarchy),
            guard=AuthorizationGuard(policy, hierarchy),
            hierarchy=hierarchy,
            users=selector,
            entity_status=entity_status or NullEntityStatusPort(),
            notifications=notifications or LoggingNotificationPort(),
            auditor=AuditorService(session, clock=effective_clock),
            clock=effective_clock,
        )
        logger.debug(
            "approval_orchestrator_created",
            extra={
                "policy_version": policy.version,
                "org_units": len(hierarchy.all_unit_ids()),
            },
        )
        return cls(machine)

    def create_approval(
        self,
        category: EntityCategory,
        entity_id: UUID,
        requested_by: UUID,
        org_unit_id: UUID,
        amount: Decimal | int | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> CreateApprovalResult:
        result = self._machine.create(
            category, entity_id, requested_by, org_unit_id, amount, metadata,
        )
        if not result.required:
            return CreateApprovalResult(required=False)
        return CreateApprovalResult(
            required=True,
            workflow_id=result.workflow.id,
            first_approver=result.first_approver,
        )

    def decide(
        self,
        workflow_id: UUID,
        acting_user_id: UUID,
        decision: Decision,
        remark: str | None = None,
    ) -> DecisionOutcome:
        workflow = self._machine.decide(workflow_id, acting_user_id, decision, remark)
        return DecisionOutcome(
            status=workflow.status,
            next_approver=workflow.current_approver_role,
        )

    def pending_for(
        self, role: Role, scope_org_unit_ids: Iterable[UUID],
    ) -> list[ApprovalWorkflow]:
        return self._machine.pending_for(role, scope_org_unit_ids)

    def pending_for_user(self, user_id: UUID) -> list[ApprovalWorkflow]:
        return self._machine.pending_for_user(user_id)

    def history_for(
        self, entity_type: EntityCategory, entity_id: UUID,
    ) -> list[ApprovalWorkflow]:
        return self._machine.history_for(entity_type, entity_id)
