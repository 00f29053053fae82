"""
Compliance Ledger

Per-user record of contact-policy violations and account status.

Core Principles:
1. The ledger records violations. It never decides whether an action is
   blocked; callers have already refused the action before writing here.
2. Violation count only grows, except through an administrative clear.
3. Suspension is sticky. Only an administrative unsuspend lifts it.
4. The compliance record is the single source of truth. The profile's
   account_status is a mirror written in the same transaction.
5. Violation entries and compliance actions are append-only.
"""
import logging
from uuid import uuid4
from datetime import datetime
from typing import Dict, List, Optional, Any, Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ... import config
from ...models.db_models import (
    UserDB,
    ComplianceRecordDB,
    ViolationEntryDB,
    ComplianceActionDB,
    AccountStatus,
    ComplianceActionType,
)
from ...models.domain import ComplianceStatus, ViolationOutcome

logger = logging.getLogger(__name__)


def truncate_blocked_text(text: Optional[str], limit: Optional[int] = None) -> str:
    """Keep only a fixed prefix of offending text."""
    limit = config.VIOLATION_TEXT_MAX_LENGTH if limit is None else limit
    if not text:
        return ""
    return text[:limit]


class ComplianceLedger:
    """
    Read and write access to compliance records.

    status() is the hot-path read used by every mutating operation.
    record_violation() is the only hot-path write.
    unsuspend() and clear_violations() are administrative.
    """

    def __init__(
        self,
        db: Session,
        suspension_threshold: Optional[int] = None,
        text_max_length: Optional[int] = None,
    ):
        self.db = db
        self.suspension_threshold = (
            config.VIOLATION_SUSPENSION_THRESHOLD if suspension_threshold is None else suspension_threshold
        )
        self.text_max_length = config.VIOLATION_TEXT_MAX_LENGTH if text_max_length is None else text_max_length

    # =========================================================================
    # READS
    # =========================================================================

    def status(self, user_id: str) -> ComplianceStatus:
        """
        Current status of a user. A missing record means 0 violations, active.
        """
        record = self.db.get(ComplianceRecordDB, user_id)
        if record is None:
            return ComplianceStatus(suspended=False, violation_count=0)

        return ComplianceStatus(
            suspended=record.account_status == AccountStatus.SUSPENDED,
            violation_count=record.violation_count or 0,
            account_status=record.account_status.value,
            suspended_at=record.suspended_at,
            suspended_reason=record.suspended_reason,
        )

    def violation_history(self, user_id: str) -> List[Dict[str, Any]]:
        """Violation entries, oldest first. For administrative review."""
        entries = (
            self.db.query(ViolationEntryDB)
            .filter(ViolationEntryDB.user_id == user_id)
            .order_by(ViolationEntryDB.created_at, ViolationEntryDB.id)
            .all()
        )
        return [
            {
                "id": e.id,
                "timestamp": e.created_at.isoformat() if e.created_at else None,
                "location": e.location,
                "violation_types": e.violation_types or [],
                "blocked_text": e.blocked_text,
            }
            for e in entries
        ]

    def action_history(self, user_id: str) -> List[Dict[str, Any]]:
        """Suspension / unsuspension / clear audit trail, oldest first."""
        actions = (
            self.db.query(ComplianceActionDB)
            .filter(ComplianceActionDB.user_id == user_id)
            .order_by(ComplianceActionDB.created_at, ComplianceActionDB.id)
            .all()
        )
        return [
            {
                "id": a.id,
                "action": a.action.value,
                "actor_id": a.actor_id,
                "notes": a.notes,
                "violation_count": a.violation_count,
                "timestamp": a.created_at.isoformat() if a.created_at else None,
            }
            for a in actions
        ]

    def suspended_users(self) -> List[Dict[str, Any]]:
        records = (
            self.db.query(ComplianceRecordDB)
            .filter(ComplianceRecordDB.account_status == AccountStatus.SUSPENDED)
            .order_by(ComplianceRecordDB.suspended_at.desc())
            .all()
        )
        return [
            {
                "user_id": r.user_id,
                "violation_count": r.violation_count,
                "suspended_at": r.suspended_at.isoformat() if r.suspended_at else None,
                "suspended_reason": r.suspended_reason,
            }
            for r in records
        ]

    # =========================================================================
    # HOT PATH WRITE
    # =========================================================================

    def record_violation(
        self,
        user_id: str,
        location: str,
        violation_types: Iterable[str],
        blocked_text: Optional[str] = None,
    ) -> ViolationOutcome:
        """
        Atomically increment the counter and append a log entry.

        Reaching the suspension threshold (or any count above it, to tolerate
        replays and races) suspends the account and mirrors the suspension
        onto the profile in the same transaction.

        The caller must already have refused the action this violation was
        raised for. Failures here propagate to the caller, which treats
        them as non-blocking.
        """
        now = datetime.utcnow()
        types = [getattr(t, "value", t) for t in violation_types]

        try:
            self._ensure_record(user_id, now)

            # Increment in SQL so concurrent violations cannot lose an update
            self.db.execute(
                update(ComplianceRecordDB)
                .where(ComplianceRecordDB.user_id == user_id)
                .values(
                    violation_count=ComplianceRecordDB.violation_count + 1,
                    last_violation_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )

            self.db.add(ViolationEntryDB(
                id=str(uuid4()),
                user_id=user_id,
                location=location,
                violation_types=types,
                blocked_text=truncate_blocked_text(blocked_text, self.text_max_length),
                created_at=now,
            ))
            self.db.flush()

            record = self.db.get(ComplianceRecordDB, user_id)
            self.db.refresh(record)

            newly_suspended = False
            if (
                record.violation_count >= self.suspension_threshold
                and record.account_status != AccountStatus.SUSPENDED
            ):
                self._suspend(record, now)
                newly_suspended = True

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if newly_suspended:
            logger.warning(
                f"User {user_id} suspended after {record.violation_count} contact-policy violations"
            )
        else:
            logger.info(
                f"Violation {record.violation_count} recorded for user {user_id} at {location}: {types}"
            )

        return ViolationOutcome(
            violation_count=record.violation_count,
            suspended=record.account_status == AccountStatus.SUSPENDED,
            newly_suspended=newly_suspended,
        )

    # =========================================================================
    # ADMINISTRATIVE
    # =========================================================================

    def unsuspend(self, user_id: str, admin_id: str, notes: str = "") -> ComplianceStatus:
        """
        Lift a suspension. The violation count and entry log are kept.
        """
        record = self.db.get(ComplianceRecordDB, user_id)
        if record is None:
            return self.status(user_id)

        now = datetime.utcnow()
        record.account_status = AccountStatus.ACTIVE
        record.unsuspended_at = now
        record.unsuspended_by = admin_id
        record.unsuspension_notes = notes
        record.updated_at = now

        self._mirror_profile(user_id, AccountStatus.ACTIVE, now, admin_id=admin_id)
        self._log_action(user_id, ComplianceActionType.UNSUSPENDED, admin_id, notes, record.violation_count, now)
        self.db.commit()

        logger.info(f"User {user_id} unsuspended by admin {admin_id}")
        return self.status(user_id)

    def clear_violations(self, user_id: str, admin_id: str, notes: str = "") -> ComplianceStatus:
        """
        Reset the violation count to 0 and reactivate the account.
        Existing violation entries stay in the log.
        """
        record = self.db.get(ComplianceRecordDB, user_id)
        if record is None:
            return self.status(user_id)

        now = datetime.utcnow()
        count_before = record.violation_count
        record.violation_count = 0
        record.account_status = AccountStatus.ACTIVE
        record.violations_cleared_at = now
        record.cleared_by = admin_id
        record.updated_at = now

        self._mirror_profile(user_id, AccountStatus.ACTIVE, now, admin_id=admin_id)
        self._log_action(user_id, ComplianceActionType.VIOLATIONS_CLEARED, admin_id, notes, count_before, now)
        self.db.commit()

        logger.info(f"Violations cleared for user {user_id} by admin {admin_id} (was {count_before})")
        return self.status(user_id)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _ensure_record(self, user_id: str, now: datetime) -> None:
        """Create the record lazily on first violation."""
        if self.db.get(ComplianceRecordDB, user_id) is not None:
            return

        try:
            self.db.add(ComplianceRecordDB(
                user_id=user_id,
                violation_count=0,
                account_status=AccountStatus.ACTIVE,
                first_violation_at=now,
                created_at=now,
                updated_at=now,
            ))
            self.db.flush()
        except IntegrityError:
            # Another writer created it first; nothing else is pending yet
            self.db.rollback()

    def _suspend(self, record: ComplianceRecordDB, now: datetime) -> None:
        record.account_status = AccountStatus.SUSPENDED
        record.suspended_at = now
        record.suspended_reason = config.SUSPENSION_REASON
        record.suspended_by_system = True
        record.updated_at = now

        self._mirror_profile(record.user_id, AccountStatus.SUSPENDED, now)
        self._log_action(
            record.user_id,
            ComplianceActionType.SUSPENDED,
            None,
            config.SUSPENSION_REASON,
            record.violation_count,
            now,
        )

    def _mirror_profile(
        self,
        user_id: str,
        account_status: AccountStatus,
        now: datetime,
        admin_id: Optional[str] = None,
    ) -> None:
        """Denormalised copy on the profile; never written anywhere else."""
        user = self.db.get(UserDB, user_id)
        if user is None:
            logger.warning(f"No profile for user {user_id}; suspension mirror skipped")
            return

        user.account_status = account_status
        if account_status == AccountStatus.SUSPENDED:
            user.suspended_at = now
            user.suspended_reason = config.PROFILE_SUSPENSION_REASON
        else:
            user.unsuspended_at = now
            user.unsuspended_by = admin_id
        user.updated_at = now

    def _log_action(
        self,
        user_id: str,
        action: ComplianceActionType,
        actor_id: Optional[str],
        notes: Optional[str],
        violation_count: int,
        now: datetime,
    ) -> None:
        self.db.add(ComplianceActionDB(
            id=str(uuid4()),
            user_id=user_id,
            action=action,
            actor_id=actor_id,
            notes=notes,
            violation_count=violation_count,
            created_at=now,
        ))
