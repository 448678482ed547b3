"""
Authorization guard (``approval_kernel.domain.authorization``).

Decides whether an actor may act on a workflow's active step.  Three
independent conditions, checked in this order:

1. Role match: the actor's role equals ``current_approver_role``.
2. Scope: the workflow's org unit lies in the actor's scope.
3. Threshold (APPROVE on amount-bearing workflows only): the ceiling
   recorded on the active step when the chain was built covers the
   amount.  A step recorded without a ceiling belongs to the unbounded
   role.

Role match and scope are both mandatory; neither implies the other.
REJECT never needs spending authority.

A later policy change never reaches back into an in-flight workflow: the
step ceiling is what counts.  The live policy is consulted only to refuse
a role that has lost all authority over the category.
"""

from __future__ import annotations

from uuid import UUID

from approval_kernel.domain.approval import ApprovalWorkflow, Decision
from approval_kernel.domain.org import OrgHierarchy, User
from approval_kernel.domain.thresholds import ThresholdPolicy
from approval_kernel.exceptions import (
    NoActiveStepError,
    OutOfScopeError,
    RoleMismatchError,
    ThresholdExceededError,
    UnauthorizedError,
)


class AuthorizationGuard:
    """Checks an actor against the active step of a workflow."""

    def __init__(self, policy: ThresholdPolicy, hierarchy: OrgHierarchy):
        self._policy = policy
        self._hierarchy = hierarchy

    def is_amount_bearing(self, workflow: ApprovalWorkflow) -> bool:
        return (
            self._policy.is_monetary(workflow.entity_type)
            and workflow.amount is not None
        )

    def check(
        self,
        user: User,
        workflow: ApprovalWorkflow,
        decision: Decision,
        scope: frozenset[UUID] | None = None,
    ) -> None:
        """
        Raise the first failed condition, or return None.

        Args:
            scope: Pre-computed scope of ``user``.  Resolved from the
                hierarchy when omitted.

        Raises:
            RoleMismatchError: Actor role is not the awaited role.
            OutOfScopeError: Workflow org unit is outside the actor's scope.
            ThresholdExceededError: APPROVE above the ceiling recorded on
                the active step, or by a role with no authority left.
            NoActiveStepError: APPROVE on a workflow with no pending step.
        """
        required = workflow.current_approver_role
        if required is None or user.role != required:
            raise RoleMismatchError(
                str(workflow.id),
                required.value if required is not None else "none",
                user.role.value,
            )

        if scope is None:
            scope = self._hierarchy.scope_of(user)
        if workflow.org_unit_id not in scope:
            raise OutOfScopeError(
                str(workflow.id), str(workflow.org_unit_id), str(user.id),
            )

        if decision == Decision.APPROVE and self.is_amount_bearing(workflow):
            self._check_ceiling(user, workflow)

    def _check_ceiling(self, user: User, workflow: ApprovalWorkflow) -> None:
        if self._policy.threshold_for(user.role, workflow.entity_type) is None:
            raise ThresholdExceededError(
                str(workflow.id), user.role.value, workflow.amount, None,
            )

        step = workflow.active_step
        if step is None:
            raise NoActiveStepError(str(workflow.id))
        ceiling = step.required_threshold
        if ceiling is not None and workflow.amount > ceiling:
            raise ThresholdExceededError(
                str(workflow.id), user.role.value, workflow.amount, ceiling,
            )

    def can_act(
        self,
        user: User,
        workflow: ApprovalWorkflow,
        decision: Decision,
        scope: frozenset[UUID] | None = None,
    ) -> bool:
        try:
            self.check(user, workflow, decision, scope)
        except (UnauthorizedError, ThresholdExceededError):
            return False
        return True
