"""
approval_kernel.services.approval_service -- Approval workflow lifecycle.

Responsibility:
    The imperative shell around the pure transitions in
    ``domain.approval``: builds the chain and persists a new workflow,
    authorizes and applies decisions, audits every change, then runs the
    entity-status and notification side effects.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - create() persists the workflow and all of its steps together, or
      nothing at all when the chain is empty.
    - decide() re-reads the workflow under lock, checks preconditions in
      a fixed order, and writes with a compare-and-swap on
      (status = pending, version).  A losing writer gets
      WorkflowAlreadyProcessedError and changes nothing.
    - Side effects run only after the transition is flushed.  Their
      failures are logged and never undo the transition.

Failure modes (decide, in check order):
    1. WorkflowNotFoundError
    2. WorkflowAlreadyProcessedError
    3. UserNotFoundError, NoActiveStepError, RoleMismatchError,
       OutOfScopeError
    4. ThresholdExceededError (APPROVE only)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Mapping
from uuid import UUID

from approval_kernel.domain.approval import (
    ApprovalWorkflow,
    Decision,
    TransitionOutcome,
    WorkflowStatus,
    apply_decision,
    start_workflow,
)
from approval_kernel.domain.authorization import AuthorizationGuard
from approval_kernel.domain.chain import ChainBuilder, validate_amount
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.org import OrgHierarchy, Role
from approval_kernel.domain.ports import (
    EntityStatusPort,
    Notification,
    NotificationKind,
    NotificationPort,
    UserDirectory,
    WorkflowStore,
)
from approval_kernel.domain.thresholds import EntityCategory
from approval_kernel.exceptions import (
    ConfigurationError,
    NoActiveStepError,
    ThresholdExceededError,
    UnauthorizedError,
    UserNotFoundError,
    WorkflowAlreadyProcessedError,
    WorkflowNotFoundError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.auditor_service import AuditorService
from approval_kernel.utils.hashing import to_json_compatible

logger = get_logger("services.approval")


@dataclass(frozen=True)
class CreateResult:
    """Outcome of ``ApprovalStateMachine.create``.

    ``required`` is False when the category needs no approval; no workflow
    exists in that case.
    """

    required: bool
    workflow: ApprovalWorkflow | None = None

    @property
    def first_approver(self) -> Role | None:
        if self.workflow is None:
            return None
        return self.workflow.current_approver_role


NOT_REQUIRED = CreateResult(required=False)


class ApprovalStateMachine:
    """Creates workflows and applies decisions to them."""

    def __init__(
        self,
        store: WorkflowStore,
        chain_builder: ChainBuilder,
        guard: AuthorizationGuard,
        hierarchy: OrgHierarchy,
        users: UserDirectory,
        entity_status: EntityStatusPort,
        notifications: NotificationPort,
        auditor: AuditorService | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._chain_builder = chain_builder
        self._guard = guard
        self._hierarchy = hierarchy
        self._users = users
        self._entity_status = entity_status
        self._notifications = notifications
        self._auditor = auditor
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        category: EntityCategory,
        entity_id: UUID,
        requested_by: UUID,
        org_unit_id: UUID,
        amount: Decimal | int | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> CreateResult:
        """
        Build the chain and persist a new PENDING workflow.

        Raises:
            InvalidAmountError: Monetary category without a positive amount,
                or an amount that is not a Decimal or int.
            OrgUnitNotFoundError: ``org_unit_id`` is not in the hierarchy.
            UnchainableRequestError: No role covers the amount.
        """
        with LogContext.bind(
            entity_id=str(entity_id),
            actor_id=str(requested_by),
            org_unit_id=str(org_unit_id),
        ):
            policy = self._chain_builder.policy
            amount = validate_amount(policy, category, amount)

            try:
                chain = self._chain_builder.build(category, amount, org_unit_id)
            except ConfigurationError as exc:
                logger.error(
                    "approval_chain_unresolvable",
                    extra={"category": category.value, "error_code": exc.code},
                    exc_info=True,
                )
                raise

            if not chain:
                logger.info(
                    "approval_not_required",
                    extra={"category": category.value},
                )
                return NOT_REQUIRED

            workflow = start_workflow(
                entity_type=category,
                entity_id=entity_id,
                requested_by=requested_by,
                org_unit_id=org_unit_id,
                amount=amount,
                chain=chain,
                created_at=self._clock.now(),
                metadata=to_json_compatible(dict(metadata)) if metadata else None,
                policy_version=policy.version,
                policy_hash=policy.policy_hash,
            )
            self._store.add(workflow)
            if self._auditor is not None:
                self._auditor.record_workflow_created(workflow)

            logger.info(
                "approval_workflow_created",
                extra={
                    "workflow_id": str(workflow.id),
                    "category": category.value,
                    "amount": str(amount) if amount is not None else None,
                    "chain": [link.role.value for link in chain],
                },
            )

            self._notify(
                Notification(
                    kind=NotificationKind.APPROVAL_REQUIRED,
                    workflow_id=workflow.id,
                    entity_type=category,
                    entity_id=entity_id,
                    org_unit_id=org_unit_id,
                    recipient_role=chain[0].role,
                )
            )
            return CreateResult(required=True, workflow=workflow)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        workflow_id: UUID,
        acting_user_id: UUID,
        decision: Decision,
        remark: str | None = None,
    ) -> ApprovalWorkflow:
        """Authorize and apply one decision to the active step."""
        with LogContext.bind(workflow_id=str(workflow_id), actor_id=str(acting_user_id)):
            workflow = self._store.get_for_update(workflow_id)
            if workflow is None:
                raise WorkflowNotFoundError(str(workflow_id))
            if workflow.status != WorkflowStatus.PENDING:
                raise WorkflowAlreadyProcessedError(
                    str(workflow_id), workflow.status.value,
                )

            user = self._users.get_user(acting_user_id)
            if user is None:
                raise UserNotFoundError(str(acting_user_id))

            if workflow.active_step is None:
                logger.error("approval_workflow_without_active_step")
                raise NoActiveStepError(str(workflow_id))

            try:
                self._guard.check(
                    user, workflow, decision, self._hierarchy.scope_of(user),
                )
            except (UnauthorizedError, ThresholdExceededError) as exc:
                logger.warning(
                    "approval_decision_denied",
                    extra={"decision": decision.value, "error_code": exc.code},
                )
                raise

            outcome = apply_decision(
                workflow,
                actor_id=user.id,
                decision=decision,
                decided_at=self._clock.now(),
                remark=remark,
            )
            if not self._store.compare_and_swap(outcome.workflow, workflow.version):
                current = self._store.get(workflow_id)
                raise WorkflowAlreadyProcessedError(
                    str(workflow_id),
                    current.status.value if current is not None else "unknown",
                )

            if self._auditor is not None:
                self._auditor.record_decision(outcome)

            logger.info(
                "approval_decision_applied",
                extra={
                    "decision": decision.value,
                    "step_order": outcome.decided_step.order,
                    "status": outcome.workflow.status.value,
                    "next_role": (
                        outcome.next_step.role.value
                        if outcome.next_step is not None
                        else None
                    ),
                },
            )

            self._after_decision(outcome)
            return outcome.workflow

    def _after_decision(self, outcome: TransitionOutcome) -> None:
        workflow = outcome.workflow
        approver_id = outcome.decided_step.approved_by

        if workflow.status == WorkflowStatus.PENDING:
            self._notify(
                Notification(
                    kind=NotificationKind.APPROVAL_REQUIRED,
                    workflow_id=workflow.id,
                    entity_type=workflow.entity_type,
                    entity_id=workflow.entity_id,
                    org_unit_id=workflow.org_unit_id,
                    recipient_role=outcome.next_step.role,
                )
            )
            return

        if workflow.status == WorkflowStatus.APPROVED:
            hook, kind = self._entity_status.on_approved, NotificationKind.APPROVED
        else:
            hook, kind = self._entity_status.on_rejected, NotificationKind.REJECTED

        self._run_side_effect(
            "entity_status_port_failed",
            lambda: hook(workflow.entity_type, workflow.entity_id, approver_id),
        )
        self._notify(
            Notification(
                kind=kind,
                workflow_id=workflow.id,
                entity_type=workflow.entity_type,
                entity_id=workflow.entity_id,
                org_unit_id=workflow.org_unit_id,
                recipient_user_id=workflow.requested_by,
                remark=outcome.decided_step.remark,
            )
        )

    def _notify(self, notification: Notification) -> None:
        self._run_side_effect(
            "notification_port_failed",
            lambda: self._notifications.notify(notification),
        )

    def _run_side_effect(self, failure_event: str, call: Callable[[], None]) -> None:
        # Ports are best-effort; the transition is already flushed.
        try:
            call()
        except Exception:
            logger.exception(failure_event)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, workflow_id: UUID) -> ApprovalWorkflow:
        workflow = self._store.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return workflow

    def pending_for(
        self, role: Role, scope_org_unit_ids: Iterable[UUID],
    ) -> list[ApprovalWorkflow]:
        """PENDING workflows awaiting ``role`` inside the scope, newest first.

        Workflows created at the same instant come back in reverse order
        of submission.  An empty scope yields nothing.
        """
        return self._store.pending_for(role, scope_org_unit_ids)

    def pending_for_user(self, user_id: UUID) -> list[ApprovalWorkflow]:
        """Workflows the given user could act on right now."""
        user = self._users.get_user(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return self._store.pending_for(user.role, self._hierarchy.scope_of(user))

    def history_for(
        self, entity_type: EntityCategory, entity_id: UUID,
    ) -> list[ApprovalWorkflow]:
        """Every workflow ever created for the entity, newest first."""
        return self._store.history_for(entity_type, entity_id)
