"""
Collaborator ports (``approval_kernel.domain.ports``).

Responsibility
--------------
The capabilities the approval engine consumes but does not implement:

* ``EntityStatusPort`` -- flips the approvable business object once its
  workflow is terminal.
* ``NotificationPort`` -- receives "notify X" events.  Delivery is not
  this package's concern.
* ``UserDirectory`` -- resolves acting user ids to ``User`` values.
* ``WorkflowStore`` -- persistence for workflow aggregates, injected into
  the state machine.  See ``services.workflow_store`` for implementations.

Entity dispatch is closed: ``EntityStatusDispatcher`` maps every
``EntityCategory`` to exactly one handler and refuses to be built with a
category missing, so adding a category forces every dispatcher
construction site to be updated.

Port calls are best-effort side effects.  The state machine invokes them
only after the transition is flushed, and their failures never undo it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Protocol
from uuid import UUID

from approval_kernel.domain.approval import ApprovalWorkflow
from approval_kernel.domain.org import Role, User
from approval_kernel.domain.thresholds import EntityCategory
from approval_kernel.exceptions import MissingEntityHandlerError
from approval_kernel.logging_config import get_logger

logger = get_logger("domain.ports")


# =========================================================================
# Entity status
# =========================================================================


class EntityStatusPort(Protocol):
    """Updates the business object behind a workflow."""

    def on_approved(
        self, entity_type: EntityCategory, entity_id: UUID, approver_id: UUID,
    ) -> None:
        ...

    def on_rejected(
        self, entity_type: EntityCategory, entity_id: UUID, approver_id: UUID,
    ) -> None:
        ...


class EntityStatusHandler(Protocol):
    """Per-category handler used by ``EntityStatusDispatcher``."""

    def on_approved(self, entity_id: UUID, approver_id: UUID) -> None:
        ...

    def on_rejected(self, entity_id: UUID, approver_id: UUID) -> None:
        ...


class EntityStatusDispatcher:
    """
    ``EntityStatusPort`` that routes to one handler per category.

    Raises:
        MissingEntityHandlerError: At construction, if any category
            has no handler.
    """

    def __init__(self, handlers: Mapping[EntityCategory, EntityStatusHandler]):
        missing = [c.value for c in EntityCategory if c not in handlers]
        if missing:
            raise MissingEntityHandlerError(missing)
        self._handlers = dict(handlers)

    def on_approved(
        self, entity_type: EntityCategory, entity_id: UUID, approver_id: UUID,
    ) -> None:
        self._handlers[entity_type].on_approved(entity_id, approver_id)

    def on_rejected(
        self, entity_type: EntityCategory, entity_id: UUID, approver_id: UUID,
    ) -> None:
        self._handlers[entity_type].on_rejected(entity_id, approver_id)


class NullEntityStatusPort:
    """Entity status port that does nothing.  For callers that poll history."""

    def on_approved(
        self, entity_type: EntityCategory, entity_id: UUID, approver_id: UUID,
    ) -> None:
        return None

    def on_rejected(
        self, entity_type: EntityCategory, entity_id: UUID, approver_id: UUID,
    ) -> None:
        return None


# =========================================================================
# Notifications
# =========================================================================


class NotificationKind(str, Enum):
    APPROVAL_REQUIRED = "approval_required"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Notification:
    """A "notify X" event.

    Exactly one of ``recipient_role`` (everyone holding the role within
    ``org_unit_id``'s scope) or ``recipient_user_id`` is set.
    """

    kind: NotificationKind
    workflow_id: UUID
    entity_type: EntityCategory
    entity_id: UUID
    org_unit_id: UUID
    recipient_role: Role | None = None
    recipient_user_id: UUID | None = None
    remark: str | None = None

    def __post_init__(self) -> None:
        if (self.recipient_role is None) == (self.recipient_user_id is None):
            raise ValueError(
                "Notification needs exactly one of recipient_role or recipient_user_id"
            )


class NotificationPort(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotificationPort:
    """Default notification port: one structured log line per event."""

    def notify(self, notification: Notification) -> None:
        logger.info(
            "approval_notification",
            extra={
                "kind": notification.kind.value,
                "workflow_id": str(notification.workflow_id),
                "entity_type": notification.entity_type.value,
                "entity_id": str(notification.entity_id),
                "org_unit_id": str(notification.org_unit_id),
                "recipient_role": (
                    notification.recipient_role.value
                    if notification.recipient_role is not None
                    else None
                ),
                "recipient_user_id": (
                    str(notification.recipient_user_id)
                    if notification.recipient_user_id is not None
                    else None
                ),
            },
        )


# =========================================================================
# User directory
# =========================================================================


class UserDirectory(Protocol):
    """Resolves acting user ids.  ``selectors.org_selector`` is the SQL one."""

    def get_user(self, user_id: UUID) -> User | None:
        ...


# =========================================================================
# Workflow store
# =========================================================================


class WorkflowStore(Protocol):
    """
    Persistence for workflow aggregates.

    Contract:
        - ``add`` persists a workflow and all its steps as one unit.
        - ``get_for_update`` reads the workflow under a row lock where the
          backend supports one.
        - ``compare_and_swap`` writes ``updated`` only if the stored row is
          still PENDING at ``expected_version``; returns False otherwise and
          writes nothing.
        - Listing methods return most recent first.
    """

    def add(self, workflow: ApprovalWorkflow) -> None:
        ...

    def get(self, workflow_id: UUID) -> ApprovalWorkflow | None:
        ...

    def get_for_update(self, workflow_id: UUID) -> ApprovalWorkflow | None:
        ...

    def compare_and_swap(
        self, updated: ApprovalWorkflow, expected_version: int,
    ) -> bool:
        ...

    def pending_for(
        self, role: Role, scope_org_unit_ids: Iterable[UUID],
    ) -> list[ApprovalWorkflow]:
        ...

    def history_for(
        self, entity_type: EntityCategory, entity_id: UUID,
    ) -> list[ApprovalWorkflow]:
        ...
