"""
Pure domain layer.

Value objects and pure logic with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.approval import (
    ApprovalStep,
    ApprovalWorkflow,
    Decision,
    StepStatus,
    TransitionOutcome,
    WorkflowStatus,
    apply_decision,
    find_active_step,
    start_workflow,
)
from approval_kernel.domain.authorization import AuthorizationGuard
from approval_kernel.domain.chain import ChainBuilder, ChainLink
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.org import OrgHierarchy, OrgUnit, OrgUnitType, Role, User
from approval_kernel.domain.ports import (
    EntityStatusDispatcher,
    EntityStatusPort,
    LoggingNotificationPort,
    Notification,
    NotificationKind,
    NotificationPort,
    UserDirectory,
    WorkflowStore,
)
from approval_kernel.domain.thresholds import (
    UNBOUNDED,
    CategoryRule,
    EntityCategory,
    ThresholdPolicy,
)

__all__ = [
    "ApprovalStep",
    "ApprovalWorkflow",
    "AuthorizationGuard",
    "CategoryRule",
    "ChainBuilder",
    "ChainLink",
    "Clock",
    "Decision",
    "DeterministicClock",
    "EntityCategory",
    "EntityStatusDispatcher",
    "EntityStatusPort",
    "LoggingNotificationPort",
    "Notification",
    "NotificationKind",
    "NotificationPort",
    "OrgHierarchy",
    "OrgUnit",
    "OrgUnitType",
    "Role",
    "StepStatus",
    "SystemClock",
    "ThresholdPolicy",
    "TransitionOutcome",
    "UNBOUNDED",
    "User",
    "UserDirectory",
    "WorkflowStatus",
    "WorkflowStore",
    "apply_decision",
    "find_active_step",
    "start_workflow",
]
