#!/usr/bin/env python3
"""
Seed a database with a demo construction org tree and walk a few
approval workflows through it.

Drops all tables, recreates them, creates PMO -> areas -> projects ->
zones with one user per role, then submits four requests and decides
each one with the approvers its chain names.

Usage:
    python3 scripts/seed_demo.py
    python3 scripts/seed_demo.py --db-url postgresql://u:p@localhost/approvals
    python3 scripts/seed_demo.py --policy my_policy.yaml
"""

import argparse
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

DEFAULT_DB_URL = "sqlite:///approvals_demo.db"


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Seed a demo approval database.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db-url",
        type=str,
        default=DEFAULT_DB_URL,
        help=f"SQLAlchemy database URL (default: {DEFAULT_DB_URL})",
    )
    parser.add_argument(
        "--policy",
        type=Path,
        default=None,
        help="Approval policy YAML (default: bundled default policy)",
    )
    args = parser.parse_args()

    from approval_config import get_active_policy
    from approval_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from approval_kernel.domain.approval import Decision
    from approval_kernel.domain.clock import DeterministicClock
    from approval_kernel.domain.org import OrgUnitType, Role
    from approval_kernel.domain.thresholds import EntityCategory
    from approval_kernel.logging_config import configure_logging
    from approval_kernel.models.org import OrgUnitModel, UserModel
    from approval_kernel.orchestrator import ApprovalOrchestrator
    from approval_kernel.services.auditor_service import AuditorService

    db_url = args.db_url
    configure_logging(level=logging.WARNING)

    # -----------------------------------------------------------------
    # 1. Connect + reset
    # -----------------------------------------------------------------
    print()
    print(f"  [1/4] Connecting to {db_url}...")
    try:
        init_engine_from_url(db_url)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print("  [2/4] Dropping old tables and recreating schema...")
    drop_tables()
    create_tables()

    policy = get_active_policy(args.policy)
    clock = DeterministicClock(datetime(2025, 6, 15, 9, 0, 0, tzinfo=timezone.utc))

    # -----------------------------------------------------------------
    # 2. Org tree and staff
    # -----------------------------------------------------------------
    print("  [3/4] Creating org tree (1 PMO, 2 areas, 3 projects, 4 zones)...")

    tree = [
        ("pmo", "Head Office PMO", OrgUnitType.PMO, None),
        ("north", "North Area", OrgUnitType.AREA, "pmo"),
        ("south", "South Area", OrgUnitType.AREA, "pmo"),
        ("riverside", "Riverside Towers", OrgUnitType.PROJECT, "north"),
        ("harbour", "Harbour Bridge", OrgUnitType.PROJECT, "north"),
        ("hillcrest", "Hillcrest Mall", OrgUnitType.PROJECT, "south"),
        ("rs_block_a", "Riverside Block A", OrgUnitType.ZONE, "riverside"),
        ("rs_block_b", "Riverside Block B", OrgUnitType.ZONE, "riverside"),
        ("hb_deck", "Harbour Deck", OrgUnitType.ZONE, "harbour"),
        ("hc_podium", "Hillcrest Podium", OrgUnitType.ZONE, "hillcrest"),
    ]
    staff_specs = [
        ("engineer", "Site Engineer", Role.SITE_ENGINEER, "rs_block_a"),
        ("zone_mgr", "Zone Manager", Role.ZONE_MANAGER, "rs_block_a"),
        ("project_mgr", "Project Manager", Role.PROJECT_MANAGER, "riverside"),
        ("area_mgr", "Area Manager", Role.AREA_MANAGER, "north"),
        ("pmo", "PMO Director", Role.PMO, "pmo"),
        ("admin", "Administrator", Role.ADMIN, None),
    ]

    with session_scope() as session:
        units: dict[str, OrgUnitModel] = {}
        for key, name, unit_type, parent_key in tree:
            unit = OrgUnitModel(
                id=uuid4(),
                name=name,
                type=unit_type.value,
                parent_id=units[parent_key].id if parent_key else None,
            )
            session.add(unit)
            session.flush()
            units[key] = unit

        users: dict[str, UserModel] = {}
        for key, name, role, unit_key in staff_specs:
            user = UserModel(
                id=uuid4(),
                name=name,
                email=f"{key}@demo.example",
                role=role.value,
                org_unit_id=units[unit_key].id if unit_key else None,
            )
            session.add(user)
            users[key] = user
        session.flush()

        # -------------------------------------------------------------
        # 3. Workflows
        # -------------------------------------------------------------
        print("  [4/4] Submitting and deciding demo approvals...")
        orchestrator = ApprovalOrchestrator.from_session(session, policy, clock=clock)
        zone_id = units["rs_block_a"].id
        engineer = users["engineer"].id

        def submit(category, amount, memo):
            clock.advance(60)
            result = orchestrator.create_approval(
                category, uuid4(), engineer, zone_id, amount, {"memo": memo},
            )
            print(
                f"        {category.value:<17} {amount:>10} -> "
                f"first approver {result.first_approver.value}"
            )
            return result.workflow_id

        def decide(workflow_id, user_key, decision):
            clock.advance(60)
            outcome = orchestrator.decide(
                workflow_id, users[user_key].id, decision,
                remark=f"{decision.value} by {users[user_key].name}",
            )
            nxt = outcome.next_approver.value if outcome.next_approver else "-"
            print(f"          {user_key:<12} {decision.value:<8} -> {outcome.status.value} (next: {nxt})")

        cement = submit(EntityCategory.EXPENSE, Decimal("850.00"), "Cement delivery")
        decide(cement, "zone_mgr", Decision.APPROVE)

        crane = submit(EntityCategory.SAFE_TRANSACTION, Decimal("15000.00"), "Crane hire deposit")
        decide(crane, "area_mgr", Decision.APPROVE)

        payroll = submit(EntityCategory.PAYROLL_RUN, Decimal("900.00"), "Weekly labour payroll")
        decide(payroll, "zone_mgr", Decision.APPROVE)
        decide(payroll, "project_mgr", Decision.APPROVE)

        tower = submit(EntityCategory.EXPENSE, Decimal("48000.00"), "Tower crane purchase")
        decide(tower, "pmo", Decision.REJECT)

        AuditorService(session, clock=clock).validate_chain()

    print()
    print("  Done. Audit chain verified.")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
