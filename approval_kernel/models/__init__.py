"""ORM models for the approval kernel."""

from approval_kernel.models.approval import ApprovalStepModel, ApprovalWorkflowModel
from approval_kernel.models.audit_event import AuditAction, AuditEvent
from approval_kernel.models.org import OrgUnitModel, UserModel, UserOrgAssignmentModel
from approval_kernel.models.sequence import SequenceCounter

__all__ = [
    "ApprovalStepModel",
    "ApprovalWorkflowModel",
    "AuditAction",
    "AuditEvent",
    "OrgUnitModel",
    "SequenceCounter",
    "UserModel",
    "UserOrgAssignmentModel",
]
