"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval decisions are surfaced verbatim to the person who attempted
them.  Callers need to know *why* a decision was refused (wrong role,
out of scope, amount above the role's ceiling, already processed) without
parsing message strings, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (workflow id, required role,
     required threshold) and render it via ``to_dict()``

Example:
    try:
        machine.decide(workflow_id, user_id, Decision.APPROVE)
    except ThresholdExceededError as e:
        return {"error": e.code, "ceiling": str(e.ceiling)}
    except UnauthorizedError as e:
        return {"error": e.code, **e.to_dict()}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- NotFoundError
    |   +-- WorkflowNotFoundError
    |   +-- OrgUnitNotFoundError
    |   +-- UserNotFoundError
    |
    +-- InvalidStateError
    |   +-- WorkflowAlreadyProcessedError
    |   +-- InvalidAmountError
    |   +-- NoActiveStepError
    |
    +-- UnauthorizedError
    |   +-- RoleMismatchError
    |   +-- OutOfScopeError
    |
    +-- ThresholdExceededError
    |
    +-- ConfigurationError
    |   +-- UnchainableRequestError
    |   +-- OrgHierarchyCycleError
    |   +-- MissingEntityHandlerError
    |   +-- PolicyValidationError
    |
    +-- ImmutabilityViolationError
    |
    +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
NotFound        | WORKFLOW_NOT_FOUND          | decide() on an unknown workflow id
                | ORG_UNIT_NOT_FOUND          | chain requested for an unknown org unit
                | USER_NOT_FOUND              | acting user id does not exist
----------------|-----------------------------|-----------------------------------------
InvalidState    | WORKFLOW_ALREADY_PROCESSED  | decide() on a non-PENDING workflow, or
                |                             | lost a compare-and-swap race
                | INVALID_AMOUNT              | monetary category without a positive amount
                | NO_ACTIVE_STEP              | PENDING workflow with no PENDING step
----------------|-----------------------------|-----------------------------------------
Unauthorized    | ROLE_MISMATCH               | actor role != active step role
                | OUT_OF_SCOPE                | workflow org unit outside actor scope
----------------|-----------------------------|-----------------------------------------
Threshold       | THRESHOLD_EXCEEDED          | APPROVE above the actor role's ceiling
----------------|-----------------------------|-----------------------------------------
Configuration   | UNCHAINABLE_REQUEST         | no role can cover a monetary amount
                | ORG_HIERARCHY_CYCLE         | parent chain loops back on itself
                | MISSING_ENTITY_HANDLER      | entity category without a status handler
                | POLICY_VALIDATION_FAILED    | threshold policy config is invalid
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | modifying a decided step
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | audit hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

NotFound / InvalidState / Unauthorized / ThresholdExceeded are expected,
user-facing outcomes: render them, never retry them.

Configuration errors are data-integrity problems: log loudly, surface a
generic failure.  Retrying does not help.

===============================================================================
"""

from decimal import Decimal
from typing import Any


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured rendering: code, message and every public attribute."""
        data: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            data[key] = str(value) if isinstance(value, Decimal) else value
        return data


# Not-found exceptions


class NotFoundError(ApprovalKernelError):
    """Base exception for missing workflows, org units and users."""

    code: str = "NOT_FOUND"


class WorkflowNotFoundError(NotFoundError):
    """Workflow with given ID was not found."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Approval workflow not found: {workflow_id}")


class OrgUnitNotFoundError(NotFoundError):
    """Org unit with given ID does not exist in the hierarchy."""

    code: str = "ORG_UNIT_NOT_FOUND"

    def __init__(self, org_unit_id: str):
        self.org_unit_id = org_unit_id
        super().__init__(f"Organizational unit not found: {org_unit_id}")


class UserNotFoundError(NotFoundError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Invalid-state exceptions


class InvalidStateError(ApprovalKernelError):
    """Base exception for operations the current state does not allow."""

    code: str = "INVALID_STATE"


class WorkflowAlreadyProcessedError(InvalidStateError):
    """
    The workflow is no longer PENDING, or its active step moved on.

    Raised both when decide() finds a terminal workflow and when a
    concurrent writer committed first (lost compare-and-swap).
    """

    code: str = "WORKFLOW_ALREADY_PROCESSED"

    def __init__(self, workflow_id: str, status: str):
        self.workflow_id = workflow_id
        self.status = status
        super().__init__(
            f"Approval workflow {workflow_id} already processed (status={status})"
        )


class InvalidAmountError(InvalidStateError):
    """A monetary category was submitted without a positive amount."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, entity_type: str, amount: object):
        self.entity_type = entity_type
        self.amount = amount
        super().__init__(
            f"Category {entity_type} requires a positive amount, got {amount}"
        )


class NoActiveStepError(InvalidStateError):
    """A PENDING workflow has no PENDING step left."""

    code: str = "NO_ACTIVE_STEP"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"No pending approval step found for workflow {workflow_id}")


# Authorization exceptions


class UnauthorizedError(ApprovalKernelError):
    """Base exception for actors not entitled to act on the active step."""

    code: str = "UNAUTHORIZED"


class RoleMismatchError(UnauthorizedError):
    """Actor's role is not the role required by the active step."""

    code: str = "ROLE_MISMATCH"

    def __init__(self, workflow_id: str, required_role: str, actor_role: str):
        self.workflow_id = workflow_id
        self.required_role = required_role
        self.actor_role = actor_role
        super().__init__(
            f"Workflow {workflow_id} awaits {required_role}, "
            f"actor has role {actor_role}"
        )


class OutOfScopeError(UnauthorizedError):
    """Actor has the right role but the workflow's org unit is outside their scope."""

    code: str = "OUT_OF_SCOPE"

    def __init__(self, workflow_id: str, org_unit_id: str, actor_id: str):
        self.workflow_id = workflow_id
        self.org_unit_id = org_unit_id
        self.actor_id = actor_id
        super().__init__(
            f"Org unit {org_unit_id} of workflow {workflow_id} "
            f"is outside the scope of user {actor_id}"
        )


class ThresholdExceededError(ApprovalKernelError):
    """Actor is the correct approver but the amount exceeds the role's ceiling."""

    code: str = "THRESHOLD_EXCEEDED"

    def __init__(
        self,
        workflow_id: str,
        role: str,
        amount: Decimal,
        ceiling: Decimal | None,
    ):
        self.workflow_id = workflow_id
        self.role = role
        self.amount = amount
        self.ceiling = ceiling
        limit = "no approval authority" if ceiling is None else f"ceiling {ceiling}"
        super().__init__(
            f"Role {role} cannot approve {amount} on workflow {workflow_id} ({limit})"
        )


# Configuration exceptions


class ConfigurationError(ApprovalKernelError):
    """
    Base exception for data-integrity / configuration problems.

    Never a user-facing outcome; retrying will not help.
    """

    code: str = "CONFIGURATION_ERROR"


class UnchainableRequestError(ConfigurationError):
    """No role's ceiling covers the amount for a monetary category."""

    code: str = "UNCHAINABLE_REQUEST"

    def __init__(self, entity_type: str, amount: Decimal | None):
        self.entity_type = entity_type
        self.amount = amount
        super().__init__(
            f"No approver role can cover {amount} for category {entity_type}"
        )


class OrgHierarchyCycleError(ConfigurationError):
    """The org-unit parent chain loops back on itself."""

    code: str = "ORG_HIERARCHY_CYCLE"

    def __init__(self, org_unit_id: str, path: list[str]):
        self.org_unit_id = org_unit_id
        self.path = path
        super().__init__(
            f"Cycle detected in org hierarchy at {org_unit_id}: {' -> '.join(path)}"
        )


class MissingEntityHandlerError(ConfigurationError):
    """An entity category has no status handler registered."""

    code: str = "MISSING_ENTITY_HANDLER"

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"No entity status handler registered for: {', '.join(missing)}"
        )


class PolicyValidationError(ConfigurationError):
    """The threshold policy configuration failed validation."""

    code: str = "POLICY_VALIDATION_FAILED"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            f"Threshold policy validation failed: {len(errors)} error(s): "
            + "; ".join(errors)
        )


# Immutability exceptions


class ImmutabilityViolationError(ApprovalKernelError):
    """Attempted to modify or delete a decided approval step."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditChainBrokenError(ApprovalKernelError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
