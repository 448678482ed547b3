"""Tests for SequenceService counter allocation."""

from approval_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_unused_sequence_has_no_value(self, db_session):
        assert SequenceService(db_session).current_value("never_used") is None

    def test_first_value_is_one_then_increments(self, db_session):
        seq = SequenceService(db_session)
        assert [seq.next_value("audit_event") for _ in range(3)] == [1, 2, 3]
        assert seq.current_value("audit_event") == 3

    def test_names_are_independent(self, db_session):
        seq = SequenceService(db_session)
        seq.next_value("a")
        seq.next_value("a")
        assert seq.next_value("b") == 1

    def test_committed_values_survive_new_session(self, session_factory):
        with session_factory() as first:
            SequenceService(first).next_value("audit_event")
            first.commit()
        with session_factory() as second:
            assert SequenceService(second).next_value("audit_event") == 2

    def test_rolled_back_value_is_reused(self, session_factory):
        with session_factory() as first:
            SequenceService(first).next_value("audit_event")
            first.commit()
            SequenceService(first).next_value("audit_event")
            first.rollback()
        with session_factory() as second:
            assert SequenceService(second).next_value("audit_event") == 2
