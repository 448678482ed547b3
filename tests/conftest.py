"""
Pytest fixtures for the approval kernel test suite.

Provides:
- Structured logging configuration and captured JSON log records
- A deterministic clock and the bundled threshold policy
- A standard org forest (PMO > AREA > PROJECT > ZONE) and role holders
- An in-memory ApprovalStateMachine with recording ports
- A file-backed SQLite database seeded with the same org forest, and an
  ApprovalOrchestrator over it

SQLite stands in for PostgreSQL here.  It has no SELECT ... FOR UPDATE, so
the SQL race tests exercise the compare-and-swap path directly.
"""

import json
import logging
from dataclasses import dataclass
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from approval_config import get_active_policy
from approval_kernel.db.base import Base
from approval_kernel.domain.authorization import AuthorizationGuard
from approval_kernel.domain.chain import ChainBuilder
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.org import OrgHierarchy, OrgUnit, OrgUnitType, Role, User
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.models.org import OrgUnitModel, UserModel, UserOrgAssignmentModel
from approval_kernel.orchestrator import ApprovalOrchestrator
from approval_kernel.services.approval_service import ApprovalStateMachine
from approval_kernel.services.workflow_store import InMemoryWorkflowStore


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, machine):
            machine.create(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_workflow_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Org forest and users
# =============================================================================


@dataclass(frozen=True)
class OrgTree:
    """Ids of the standard org forest.

    pmo
    +-- area_north
    |   +-- project_a
    |   |   +-- zone_a1
    |   |   +-- zone_a2
    |   +-- project_b
    |       +-- zone_b1
    +-- area_south
        +-- project_c
            +-- zone_c1
    """

    pmo: UUID
    area_north: UUID
    area_south: UUID
    project_a: UUID
    project_b: UUID
    project_c: UUID
    zone_a1: UUID
    zone_a2: UUID
    zone_b1: UUID
    zone_c1: UUID

    def units(self) -> list[OrgUnit]:
        return [
            OrgUnit(self.pmo, OrgUnitType.PMO, None, "PMO"),
            OrgUnit(self.area_north, OrgUnitType.AREA, self.pmo, "North"),
            OrgUnit(self.area_south, OrgUnitType.AREA, self.pmo, "South"),
            OrgUnit(self.project_a, OrgUnitType.PROJECT, self.area_north, "Tower A"),
            OrgUnit(self.project_b, OrgUnitType.PROJECT, self.area_north, "Bridge B"),
            OrgUnit(self.project_c, OrgUnitType.PROJECT, self.area_south, "Depot C"),
            OrgUnit(self.zone_a1, OrgUnitType.ZONE, self.project_a, "A1"),
            OrgUnit(self.zone_a2, OrgUnitType.ZONE, self.project_a, "A2"),
            OrgUnit(self.zone_b1, OrgUnitType.ZONE, self.project_b, "B1"),
            OrgUnit(self.zone_c1, OrgUnitType.ZONE, self.project_c, "C1"),
        ]


@dataclass(frozen=True)
class Staff:
    """Role holders placed in the standard org forest."""

    engineer: User
    zone_a1: User
    zone_b1: User
    pm_a: User
    pm_b: User
    area_north: User
    area_south: User
    pmo: User
    admin: User

    def all(self) -> list[User]:
        return [
            self.engineer, self.zone_a1, self.zone_b1, self.pm_a, self.pm_b,
            self.area_north, self.area_south, self.pmo, self.admin,
        ]


@pytest.fixture
def org() -> OrgTree:
    return OrgTree(*(uuid4() for _ in range(10)))


@pytest.fixture
def staff(org) -> Staff:
    return Staff(
        engineer=User(uuid4(), Role.SITE_ENGINEER, org.zone_a1, name="Site Engineer"),
        zone_a1=User(uuid4(), Role.ZONE_MANAGER, org.zone_a1, name="Zone A1 Manager"),
        zone_b1=User(uuid4(), Role.ZONE_MANAGER, org.zone_b1, name="Zone B1 Manager"),
        pm_a=User(uuid4(), Role.PROJECT_MANAGER, org.project_a, name="PM Tower A"),
        pm_b=User(uuid4(), Role.PROJECT_MANAGER, org.project_b, name="PM Bridge B"),
        area_north=User(uuid4(), Role.AREA_MANAGER, org.area_north, name="Area North"),
        area_south=User(uuid4(), Role.AREA_MANAGER, org.area_south, name="Area South"),
        pmo=User(uuid4(), Role.PMO, org.pmo, name="PMO Director"),
        admin=User(uuid4(), Role.ADMIN, None, name="Administrator"),
    )


@pytest.fixture
def hierarchy(org) -> OrgHierarchy:
    return OrgHierarchy(org.units())


# =============================================================================
# Ports
# =============================================================================


class StaticUserDirectory:
    """UserDirectory over a fixed list of users."""

    def __init__(self, users):
        self._users = {u.id: u for u in users}

    def get_user(self, user_id):
        return self._users.get(user_id)


class RecordingEntityStatusPort:
    def __init__(self):
        self.approved: list[tuple] = []
        self.rejected: list[tuple] = []

    def on_approved(self, entity_type, entity_id, approver_id):
        self.approved.append((entity_type, entity_id, approver_id))

    def on_rejected(self, entity_type, entity_id, approver_id):
        self.rejected.append((entity_type, entity_id, approver_id))


class RecordingNotificationPort:
    def __init__(self):
        self.sent = []

    def notify(self, notification):
        self.sent.append(notification)


class ExplodingPort:
    """Both port shapes, failing on every call."""

    def on_approved(self, entity_type, entity_id, approver_id):
        raise RuntimeError("entity service unavailable")

    def on_rejected(self, entity_type, entity_id, approver_id):
        raise RuntimeError("entity service unavailable")

    def notify(self, notification):
        raise ConnectionError("mail relay down")


@pytest.fixture
def entity_port() -> RecordingEntityStatusPort:
    return RecordingEntityStatusPort()


@pytest.fixture
def notifier() -> RecordingNotificationPort:
    return RecordingNotificationPort()


@pytest.fixture
def exploding_port() -> ExplodingPort:
    return ExplodingPort()


@pytest.fixture
def user_directory(staff) -> StaticUserDirectory:
    return StaticUserDirectory(staff.all())


# =============================================================================
# Engine wiring (in-memory store)
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture(scope="session")
def policy():
    return get_active_policy()


@pytest.fixture
def chain_builder(policy, hierarchy) -> ChainBuilder:
    return ChainBuilder(policy, hierarchy)


@pytest.fixture
def guard(policy, hierarchy) -> AuthorizationGuard:
    return AuthorizationGuard(policy, hierarchy)


@pytest.fixture
def memory_store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def machine(
    memory_store, chain_builder, guard, hierarchy, user_directory,
    entity_port, notifier, clock,
) -> ApprovalStateMachine:
    return ApprovalStateMachine(
        store=memory_store,
        chain_builder=chain_builder,
        guard=guard,
        hierarchy=hierarchy,
        users=user_directory,
        entity_status=entity_port,
        notifications=notifier,
        clock=clock,
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'approvals.db'}")
    import approval_kernel.models  # noqa: F401  -- registers all tables
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def seeded_db(session_factory, org, staff):
    """Persist the standard org forest and staff, committed."""
    session = session_factory()
    try:
        for unit in org.units():
            session.add(
                OrgUnitModel(
                    id=unit.id,
                    name=unit.name,
                    type=unit.type.value,
                    parent_id=unit.parent_id,
                )
            )
        session.flush()
        for user in staff.all():
            session.add(
                UserModel(
                    id=user.id,
                    name=user.name,
                    email=f"{user.id.hex[:12]}@example.test",
                    role=user.role.value,
                    org_unit_id=user.org_unit_id,
                )
            )
        session.commit()
    finally:
        session.close()
    return org


@pytest.fixture
def add_assignment(session_factory):
    """Grant an existing user scope over another unit, committed."""

    def _add(user_id: UUID, org_unit_id: UUID) -> None:
        session = session_factory()
        try:
            session.add(UserOrgAssignmentModel(user_id=user_id, org_unit_id=org_unit_id))
            session.commit()
        finally:
            session.close()

    return _add


@pytest.fixture
def orchestrator(seeded_db, db_session, policy, clock, entity_port, notifier):
    return ApprovalOrchestrator.from_session(
        db_session,
        policy,
        clock=clock,
        entity_status=entity_port,
        notifications=notifier,
    )
