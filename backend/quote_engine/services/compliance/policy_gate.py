"""
Policy Gate

Guards every mutating action in negotiations and discussion threads.

Order of checks:
1. Suspension - a suspended user is refused before any scan runs.
2. Content scan - free text is scanned locally; a match refuses the action
   immediately, then the violation is recorded best-effort.

The refusal never depends on the ledger write. If recording fails the
action is still refused and the failure is only logged.
"""
import logging
from typing import Mapping, Optional

from ...errors import AccountSuspendedError, ContactInfoViolationError
from ...models.domain import ComplianceStatus, ViolationOutcome
from ..policy import ContactInfoScanner, TextScanner, short_warning, summarize_categories, violation_warning
from .ledger import ComplianceLedger

logger = logging.getLogger(__name__)


class PolicyGate:
    """Suspension check plus contact-info screening for one acting user."""

    def __init__(self, ledger: ComplianceLedger, scanner: Optional[TextScanner] = None):
        self.ledger = ledger
        self.scanner = scanner or ContactInfoScanner()

    def ensure_active(self, user_id: str) -> ComplianceStatus:
        """First guard of every mutating operation."""
        status = self.ledger.status(user_id)
        if status.suspended:
            logger.info(f"Refused action for suspended user {user_id}")
            raise AccountSuspendedError(user_id)
        return status

    def screen(
        self,
        user_id: str,
        location: str,
        fields: Mapping[str, Optional[str]],
        status: Optional[ComplianceStatus] = None,
        clear_draft: bool = False,
    ) -> None:
        """
        Scan each field independently. Returns None when every field is clean.

        Raises ContactInfoViolationError when any field matches. The decision
        is made from the local scan alone.
        """
        per_field = {}
        for name, value in fields.items():
            result = self.scanner.scan(value)
            if result.matched:
                per_field[name] = result

        if not per_field:
            return None

        # Blocked from here on, whatever happens to the ledger write
        findings = []
        categories = []
        for result in per_field.values():
            for finding in result.findings:
                findings.append(finding.to_dict())
                if finding.category not in categories:
                    categories.append(finding.category)

        message = summarize_categories(categories)
        categories = [c.value for c in categories]
        blocked_text = "\n".join(fields[name] or "" for name in per_field)

        logger.warning(
            f"Contact info blocked for user {user_id} at {location}: "
            f"fields={list(per_field)} categories={categories}"
        )

        count_before = status.violation_count if status is not None else None
        outcome = self._record(user_id, location, categories, blocked_text)

        if outcome is not None:
            violation_count = outcome.violation_count
            suspended = outcome.suspended
            count_before = outcome.violation_count - 1
        else:
            if count_before is None:
                count_before = self._last_known_count(user_id)
            violation_count = count_before
            suspended = False

        raise ContactInfoViolationError(
            message=_capitalize(message),
            warning=violation_warning(count_before, self.ledger.suspension_threshold),
            findings=findings,
            violation_count=violation_count,
            suspended=suspended,
            fields=list(per_field),
            clear_draft=clear_draft,
        )

    def short_warning_for(self, user_id: str) -> str:
        return short_warning(self.ledger.status(user_id).violation_count, self.ledger.suspension_threshold)

    def _record(self, user_id, location, categories, blocked_text) -> Optional[ViolationOutcome]:
        try:
            return self.ledger.record_violation(
                user_id=user_id,
                location=location,
                violation_types=categories,
                blocked_text=blocked_text,
            )
        except Exception:
            logger.exception(f"Failed to record violation for user {user_id} at {location}")
            return None

    def _last_known_count(self, user_id: str) -> int:
        try:
            return self.ledger.status(user_id).violation_count
        except Exception:
            logger.exception(f"Failed to read compliance status for user {user_id}")
            return 0


def _capitalize(message: str) -> str:
    return message[:1].upper() + message[1:] if message else message
