"""
Tests for the approval ORM models.

Covers DTO round-tripping, the UNIQUE(workflow_id, order) constraint and
the listeners that make decided steps write-once.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from approval_kernel.domain.approval import Decision, StepStatus, apply_decision, start_workflow
from approval_kernel.domain.chain import ChainLink
from approval_kernel.domain.org import Role
from approval_kernel.domain.thresholds import EntityCategory
from approval_kernel.exceptions import ImmutabilityViolationError
from approval_kernel.models.approval import ApprovalStepModel, ApprovalWorkflowModel
from approval_kernel.services.workflow_store import SqlAlchemyWorkflowStore


@pytest.fixture
def store(seeded_db, db_session):
    return SqlAlchemyWorkflowStore(db_session)


@pytest.fixture
def stored_workflow(store, clock, staff, org):
    wf = start_workflow(
        entity_type=EntityCategory.PAYROLL_RUN,
        entity_id=uuid4(),
        requested_by=staff.engineer.id,
        org_unit_id=org.zone_a1,
        amount=Decimal("800.50"),
        chain=(
            ChainLink(Role.ZONE_MANAGER, Decimal("1000")),
            ChainLink(Role.PROJECT_MANAGER, Decimal("5000")),
        ),
        created_at=clock.now(),
        metadata={"period": "2025-02"},
        policy_version=1,
        policy_hash="a" * 64,
    )
    store.add(wf)
    return wf


def _step(db_session, workflow_id, order):
    return db_session.execute(
        select(ApprovalStepModel).where(
            ApprovalStepModel.workflow_id == workflow_id,
            ApprovalStepModel.order == order,
        )
    ).scalar_one()


class TestRoundTrip:
    def test_workflow_survives_storage(self, store, stored_workflow):
        loaded = store.get(stored_workflow.id)

        assert loaded.id == stored_workflow.id
        assert loaded.entity_type == EntityCategory.PAYROLL_RUN
        assert loaded.amount == Decimal("800.50")
        assert loaded.metadata == {"period": "2025-02"}
        assert loaded.policy_hash == "a" * 64
        assert loaded.current_approver_role == Role.ZONE_MANAGER
        assert [s.id for s in loaded.steps] == [s.id for s in stored_workflow.steps]
        assert [s.required_threshold for s in loaded.steps] == [
            Decimal("1000"),
            Decimal("5000"),
        ]

    def test_rich_metadata_values_stored_as_json(self, store, clock, staff, org):
        site = uuid4()
        wf = start_workflow(
            entity_type=EntityCategory.EXPENSE,
            entity_id=uuid4(),
            requested_by=staff.engineer.id,
            org_unit_id=org.zone_a1,
            amount=Decimal("500"),
            chain=(ChainLink(Role.ZONE_MANAGER, Decimal("1000")),),
            created_at=clock.now(),
            metadata={"budget_line": Decimal("12.50"), "site": site, "role": Role.PMO},
        )
        store.add(wf)

        assert store.get(wf.id).metadata == {
            "budget_line": "12.5",
            "site": str(site),
            "role": "pmo",
        }

    def test_steps_load_in_order(self, db_session, stored_workflow):
        model = db_session.get(ApprovalWorkflowModel, stored_workflow.id)
        assert [s.order for s in model.steps] == [1, 2]

    def test_metadata_column_name(self, db_session, stored_workflow):
        assert "metadata" in ApprovalWorkflowModel.__table__.c
        model = db_session.get(ApprovalWorkflowModel, stored_workflow.id)
        assert model.workflow_metadata == {"period": "2025-02"}


class TestStepConstraints:
    def test_duplicate_order_rejected(self, db_session, stored_workflow):
        db_session.add(
            ApprovalStepModel(
                workflow_id=stored_workflow.id,
                order=1,
                role=Role.PMO.value,
                status="pending",
            )
        )
        with pytest.raises(IntegrityError):
            db_session.flush()

    def test_pending_step_can_be_decided(self, store, db_session, stored_workflow, clock, staff):
        outcome = apply_decision(
            stored_workflow, actor_id=staff.zone_a1.id,
            decision=Decision.APPROVE, decided_at=clock.now(),
        )
        assert store.compare_and_swap(outcome.workflow, expected_version=1)

        step = _step(db_session, stored_workflow.id, 1)
        assert step.status == StepStatus.APPROVED.value
        assert step.approved_by == staff.zone_a1.id

    def test_decided_step_is_immutable(self, store, db_session, stored_workflow, clock, staff):
        outcome = apply_decision(
            stored_workflow, actor_id=staff.zone_a1.id,
            decision=Decision.APPROVE, decided_at=clock.now(),
        )
        store.compare_and_swap(outcome.workflow, expected_version=1)

        step = _step(db_session, stored_workflow.id, 1)
        step.remark = "rewritten later"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()
        assert exc_info.value.entity_type == "ApprovalStep"

    def test_decided_status_cannot_be_reverted(
        self, store, db_session, stored_workflow, clock, staff,
    ):
        outcome = apply_decision(
            stored_workflow, actor_id=staff.zone_a1.id,
            decision=Decision.REJECT, decided_at=clock.now(),
        )
        store.compare_and_swap(outcome.workflow, expected_version=1)

        step = _step(db_session, stored_workflow.id, 1)
        step.status = "pending"
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()

    def test_step_delete_refused(self, db_session, stored_workflow):
        step = _step(db_session, stored_workflow.id, 2)
        db_session.delete(step)
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()


class TestStoreContract:
    def test_compare_and_swap_wrong_version(self, store, stored_workflow, clock, staff):
        outcome = apply_decision(
            stored_workflow, actor_id=staff.zone_a1.id,
            decision=Decision.APPROVE, decided_at=clock.now(),
        )
        assert store.compare_and_swap(outcome.workflow, expected_version=7) is False
        assert store.get(stored_workflow.id).version == 1

    def test_compare_and_swap_on_terminal(self, store, stored_workflow, clock, staff):
        rejected = apply_decision(
            stored_workflow, actor_id=staff.zone_a1.id,
            decision=Decision.REJECT, decided_at=clock.now(),
        )
        assert store.compare_and_swap(rejected.workflow, expected_version=1)

        approved = apply_decision(
            stored_workflow, actor_id=staff.zone_a1.id,
            decision=Decision.APPROVE, decided_at=clock.now(),
        )
        assert store.compare_and_swap(approved.workflow, expected_version=2) is False

    def test_pending_for_empty_scope(self, store, stored_workflow):
        assert store.pending_for(Role.ZONE_MANAGER, []) == []

    def test_pending_for_matches_role_and_scope(self, store, stored_workflow, org):
        assert [w.id for w in store.pending_for(Role.ZONE_MANAGER, [org.zone_a1])] == [
            stored_workflow.id,
        ]
        assert store.pending_for(Role.ZONE_MANAGER, [org.zone_a2]) == []
        assert store.pending_for(Role.PROJECT_MANAGER, [org.zone_a1]) == []
