"""Services for the approval kernel (write side)."""

from approval_kernel.services.approval_service import (
    NOT_REQUIRED,
    ApprovalStateMachine,
    CreateResult,
)
from approval_kernel.services.auditor_service import AuditorService, AuditTrace
from approval_kernel.services.sequence_service import SequenceService
from approval_kernel.services.workflow_store import (
    InMemoryWorkflowStore,
    SqlAlchemyWorkflowStore,
)

__all__ = [
    "NOT_REQUIRED",
    "ApprovalStateMachine",
    "AuditTrace",
    "AuditorService",
    "CreateResult",
    "InMemoryWorkflowStore",
    "SequenceService",
    "SqlAlchemyWorkflowStore",
]
