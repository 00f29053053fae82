"""
Tests for the compliance ledger.

1. Missing record reads as 0 violations, active
2. Counter increments and entries append
3. Suspension at the threshold, exactly once, mirrored to the profile
4. Stored offending text is truncated
5. Administrative unsuspend / clear keep the audit trail
6. A failed write leaves nothing behind
"""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from quote_engine import config
from quote_engine.models.db_models import (
    AccountStatus,
    ComplianceActionDB,
    ComplianceActionType,
    UserDB,
)
from quote_engine.services.compliance import ComplianceLedger, truncate_blocked_text


def record(ledger, user, text="call me on 07911123456", location="quote_comment"):
    return ledger.record_violation(
        user_id=user.id,
        location=location,
        violation_types=["phone"],
        blocked_text=text,
    )


# =============================================================================
# TEST: READS
# =============================================================================

class TestStatus:

    def test_no_record_means_active(self, db_session, customer):
        status = ComplianceLedger(db_session).status(customer.id)
        assert status.suspended is False
        assert status.violation_count == 0
        assert status.account_status == "active"

    def test_unknown_user_reads_as_active(self, db_session):
        assert ComplianceLedger(db_session).status("no-such-user").violation_count == 0


# =============================================================================
# TEST: ESCALATION
# =============================================================================

class TestEscalation:

    def test_first_two_violations_stay_active(self, db_session, customer):
        ledger = ComplianceLedger(db_session, suspension_threshold=3)

        first = record(ledger, customer)
        second = record(ledger, customer)

        assert (first.violation_count, first.suspended) == (1, False)
        assert (second.violation_count, second.suspended) == (2, False)
        assert ledger.status(customer.id).account_status == "active"

    def test_third_violation_suspends(self, db_session, customer):
        ledger = ComplianceLedger(db_session, suspension_threshold=3)
        record(ledger, customer)
        record(ledger, customer)

        third = record(ledger, customer)

        assert third.violation_count == 3
        assert third.suspended is True
        assert third.newly_suspended is True

        status = ledger.status(customer.id)
        assert status.suspended is True
        assert status.suspended_reason == config.SUSPENSION_REASON
        assert status.suspended_at is not None

    def test_suspension_mirrored_to_profile(self, db_session, customer):
        ledger = ComplianceLedger(db_session, suspension_threshold=3)
        for _ in range(3):
            record(ledger, customer)

        profile = db_session.get(UserDB, customer.id)
        db_session.refresh(profile)
        assert profile.account_status == AccountStatus.SUSPENDED
        assert profile.suspended_reason == config.PROFILE_SUSPENSION_REASON

    def test_suspension_happens_once(self, db_session, customer):
        """Counts above the threshold keep the account suspended without re-suspending."""
        ledger = ComplianceLedger(db_session, suspension_threshold=3)
        outcomes = [record(ledger, customer) for _ in range(5)]

        assert [o.violation_count for o in outcomes] == [1, 2, 3, 4, 5]
        assert [o.newly_suspended for o in outcomes] == [False, False, True, False, False]

        suspensions = (
            db_session.query(ComplianceActionDB)
            .filter(ComplianceActionDB.user_id == customer.id,
                    ComplianceActionDB.action == ComplianceActionType.SUSPENDED)
            .count()
        )
        assert suspensions == 1

    def test_threshold_is_configurable(self, db_session, agent):
        ledger = ComplianceLedger(db_session, suspension_threshold=2)
        record(ledger, agent)
        assert record(ledger, agent).newly_suspended is True

    def test_explicit_threshold_is_kept(self, db_session):
        assert ComplianceLedger(db_session, suspension_threshold=0).suspension_threshold == 0
        assert ComplianceLedger(db_session).suspension_threshold == config.VIOLATION_SUSPENSION_THRESHOLD

    def test_entries_logged_oldest_first(self, db_session, customer):
        ledger = ComplianceLedger(db_session)
        record(ledger, customer, location="quote_request_form")
        record(ledger, customer, location="quote_comment")

        history = ledger.violation_history(customer.id)

        assert [h["location"] for h in history] == ["quote_request_form", "quote_comment"]
        assert history[0]["violation_types"] == ["phone"]
        assert history[0]["timestamp"] is not None


# =============================================================================
# TEST: TRUNCATION
# =============================================================================

class TestTruncation:

    def test_truncate_helper(self):
        assert truncate_blocked_text("abcdef", limit=3) == "abc"
        assert truncate_blocked_text(None) == ""

    def test_default_limit(self):
        assert len(truncate_blocked_text("x" * 500)) == config.VIOLATION_TEXT_MAX_LENGTH

    def test_blocked_text_stored_truncated(self, db_session, customer):
        ledger = ComplianceLedger(db_session, text_max_length=100)
        long_text = "call me on 07911123456 " + "please " * 50

        record(ledger, customer, text=long_text)

        stored = ledger.violation_history(customer.id)[0]["blocked_text"]
        assert stored == long_text[:100]

    def test_long_limit_is_stored_in_full(self, db_session, customer):
        ledger = ComplianceLedger(db_session, text_max_length=1000)
        long_text = "call me on 07911123456 " + "please " * 120

        record(ledger, customer, text=long_text)

        stored = ledger.violation_history(customer.id)[0]["blocked_text"]
        assert len(long_text) > 500
        assert stored == long_text

    def test_zero_limit_keeps_no_text(self, db_session, customer):
        ledger = ComplianceLedger(db_session, text_max_length=0)

        record(ledger, customer)

        assert ledger.text_max_length == 0
        assert ledger.violation_history(customer.id)[0]["blocked_text"] == ""


# =============================================================================
# TEST: ADMINISTRATIVE
# =============================================================================

class TestAdministrativeOverrides:

    def test_unsuspend_keeps_count_and_log(self, db_session, customer, admin):
        ledger = ComplianceLedger(db_session, suspension_threshold=3)
        for _ in range(3):
            record(ledger, customer)

        status = ledger.unsuspend(customer.id, admin.id, notes="Appeal accepted")

        assert status.suspended is False
        assert status.violation_count == 3
        assert len(ledger.violation_history(customer.id)) == 3

        profile = db_session.get(UserDB, customer.id)
        assert profile.account_status == AccountStatus.ACTIVE
        assert profile.unsuspended_by == admin.id

        actions = [a["action"] for a in ledger.action_history(customer.id)]
        assert actions == ["suspended", "unsuspended"]

    def test_violation_after_unsuspend_suspends_again(self, db_session, customer, admin):
        """Count is still at the threshold, so the next violation re-suspends."""
        ledger = ComplianceLedger(db_session, suspension_threshold=3)
        for _ in range(3):
            record(ledger, customer)
        ledger.unsuspend(customer.id, admin.id)

        outcome = record(ledger, customer)

        assert outcome.violation_count == 4
        assert outcome.newly_suspended is True

    def test_clear_resets_count_but_keeps_entries(self, db_session, customer, admin):
        ledger = ComplianceLedger(db_session, suspension_threshold=3)
        for _ in range(3):
            record(ledger, customer)

        status = ledger.clear_violations(customer.id, admin.id, notes="Cleared after review")

        assert status.violation_count == 0
        assert status.suspended is False
        assert len(ledger.violation_history(customer.id)) == 3
        assert ledger.action_history(customer.id)[-1]["violation_count"] == 3

        # Back to the start of the ladder
        assert record(ledger, customer).violation_count == 1

    def test_overrides_without_record_are_noops(self, db_session, customer, admin):
        ledger = ComplianceLedger(db_session)
        assert ledger.unsuspend(customer.id, admin.id).violation_count == 0
        assert ledger.clear_violations(customer.id, admin.id).suspended is False
        assert ledger.action_history(customer.id) == []

    def test_suspended_users_listing(self, db_session, customer, agent):
        ledger = ComplianceLedger(db_session, suspension_threshold=1)
        record(ledger, customer)

        suspended = ledger.suspended_users()

        assert [s["user_id"] for s in suspended] == [customer.id]


# =============================================================================
# TEST: FAILURES
# =============================================================================

class TestWriteFailure:

    def test_failed_commit_rolls_back(self, db_session, customer):
        ledger = ComplianceLedger(db_session)

        with patch.object(db_session, "commit", side_effect=SQLAlchemyError("disk full")):
            with pytest.raises(SQLAlchemyError):
                record(ledger, customer)

        assert ledger.status(customer.id).violation_count == 0
        assert ledger.violation_history(customer.id) == []
