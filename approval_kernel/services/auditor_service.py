"""
AuditorService -- tamper-evident audit trail for approval workflows.

Responsibility:
    Creates immutable, hash-chained audit events for every workflow
    creation and every decision.  Provides chain validation for tamper
    detection and per-workflow trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by ApprovalStateMachine.

Invariants enforced:
    - Sequence monotonicity via SequenceService.
    - Chain integrity: each event's hash covers its predecessor's hash.
    - Append-only: AuditEvent rows are protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError: recomputed hash or predecessor link mismatch.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.approval import (
    ApprovalWorkflow,
    StepStatus,
    TransitionOutcome,
    WorkflowStatus,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import AuditChainBrokenError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.audit_event import AuditAction, AuditEvent
from approval_kernel.services.sequence_service import SequenceService
from approval_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")

WORKFLOW_ENTITY = "ApprovalWorkflow"


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in sequence order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)


def _money(value) -> str | None:
    return None if value is None else str(value)


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _chain_tip(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _append(
        self,
        workflow: ApprovalWorkflow,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any],
    ) -> AuditEvent:
        """Append one event for ``workflow`` to the end of the hash chain."""
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._chain_tip()
        payload_hash = hash_payload(payload)

        audit_event = AuditEvent(
            seq=seq,
            entity_type=WORKFLOW_ENTITY,
            entity_id=workflow.id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_audit_event(
                WORKFLOW_ENTITY, str(workflow.id), action.value, payload_hash, prev_hash,
            ),
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={"workflow_id": str(workflow.id), "action": action.value, "seq": seq},
        )
        return audit_event

    # Domain-specific recording methods

    def record_workflow_created(self, workflow: ApprovalWorkflow) -> AuditEvent:
        """Record a new workflow with its full chain snapshot."""
        return self._append(
            workflow,
            action=AuditAction.WORKFLOW_CREATED,
            actor_id=workflow.requested_by,
            payload={
                "entity_type": workflow.entity_type.value,
                "entity_id": str(workflow.entity_id),
                "org_unit_id": str(workflow.org_unit_id),
                "amount": _money(workflow.amount),
                "chain": [
                    {
                        "order": step.order,
                        "role": step.role.value,
                        "threshold": _money(step.required_threshold),
                    }
                    for step in workflow.steps
                ],
                "policy_version": workflow.policy_version,
                "policy_hash": workflow.policy_hash,
            },
        )

    def record_decision(self, outcome: TransitionOutcome) -> list[AuditEvent]:
        """
        Record a decision: one step event, plus a workflow event when the
        decision made the workflow terminal.
        """
        step = outcome.decided_step
        workflow = outcome.workflow
        step_action = (
            AuditAction.STEP_APPROVED
            if step.status == StepStatus.APPROVED
            else AuditAction.STEP_REJECTED
        )
        events = [
            self._append(
                workflow,
                action=step_action,
                actor_id=step.approved_by,
                payload={
                    "order": step.order,
                    "role": step.role.value,
                    "remark": step.remark,
                    "version": workflow.version,
                    "next_role": (
                        outcome.next_step.role.value
                        if outcome.next_step is not None
                        else None
                    ),
                },
            )
        ]
        if outcome.completed:
            final_action = (
                AuditAction.WORKFLOW_APPROVED
                if workflow.status == WorkflowStatus.APPROVED
                else AuditAction.WORKFLOW_REJECTED
            )
            events.append(
                self._append(
                    workflow,
                    action=final_action,
                    actor_id=step.approved_by,
                    payload={
                        "entity_type": workflow.entity_type.value,
                        "entity_id": str(workflow.entity_id),
                        "completed_at": workflow.completed_at.isoformat(),
                    },
                )
            )
        return events

    # Validation and queries

    def _broken(self, event: AuditEvent, expected: str, actual: str, reason: str):
        logger.critical(
            "audit_chain_broken",
            extra={"seq": event.seq, "audit_event_id": str(event.id), "reason": reason},
        )
        return AuditChainBrokenError(str(event.id), expected, actual)

    def validate_chain(self) -> bool:
        """
        Re-derive every hash from the stored rows, oldest first.

        Catches an edited payload, an edited or forged hash, and a deleted
        or reordered event (its successor's ``prev_hash`` no longer
        matches).

        Raises:
            AuditChainBrokenError: At the first event that does not verify.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars()

        expected_prev: str | None = None
        for event in events:
            if event.prev_hash != expected_prev:
                raise self._broken(
                    event, expected_prev or "None", event.prev_hash or "None", "link",
                )

            payload_hash = hash_payload(event.payload or {})
            if payload_hash != event.payload_hash:
                raise self._broken(event, event.payload_hash, payload_hash, "payload")

            recomputed = hash_audit_event(
                event.entity_type, str(event.entity_id), event.action,
                event.payload_hash, event.prev_hash,
            )
            if recomputed != event.hash:
                raise self._broken(event, recomputed, event.hash, "hash")

            expected_prev = event.hash

        return True

    def get_trace(self, entity_id: UUID, entity_type: str = WORKFLOW_ENTITY) -> AuditTrace:
        """All audit events for an entity, in sequence order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=AuditAction(event.action),
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
