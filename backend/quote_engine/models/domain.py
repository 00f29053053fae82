"""
Quote Engine - Domain Value Objects

Immutable results passed between the detector, the compliance ledger and
the negotiation services. None of these touch the database.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any


# =============================================================================
# OFFER SLOT
# =============================================================================

@dataclass(frozen=True)
class AgentOffer:
    """Agent's custom quote."""
    amount: str


@dataclass(frozen=True)
class CustomerOffer:
    """Customer's counter-offer with optional reasoning."""
    amount: str
    reasoning: Optional[str] = None


# =============================================================================
# CONTENT POLICY
# =============================================================================

class ViolationCategory(str, Enum):
    PHONE = "phone"
    EMAIL = "email"
    ADDRESS = "address"
    SOCIAL = "social"
    GENERIC = "generic"


# Display names used in summary messages
CATEGORY_LABELS = {
    ViolationCategory.PHONE: "phone number",
    ViolationCategory.EMAIL: "email address",
    ViolationCategory.ADDRESS: "address",
    ViolationCategory.SOCIAL: "social media",
    ViolationCategory.GENERIC: "direct contact request",
}


@dataclass(frozen=True)
class Finding:
    """A single detector hit."""
    category: ViolationCategory
    snippet: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "category": self.category.value,
            "snippet": self.snippet,
            "description": self.description,
        }


@dataclass(frozen=True)
class ScanResult:
    """Outcome of scanning one piece of text."""
    matched: bool
    findings: List[Finding] = field(default_factory=list)
    message: str = ""

    @property
    def categories(self) -> List[ViolationCategory]:
        """Distinct categories in first-seen order."""
        seen: List[ViolationCategory] = []
        for finding in self.findings:
            if finding.category not in seen:
                seen.append(finding.category)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "findings": [f.to_dict() for f in self.findings],
            "categories": [c.value for c in self.categories],
            "message": self.message,
        }


# =============================================================================
# COMPLIANCE
# =============================================================================

@dataclass(frozen=True)
class ComplianceStatus:
    """Read model of a user's compliance record."""
    suspended: bool
    violation_count: int
    account_status: str = "active"
    suspended_at: Optional[datetime] = None
    suspended_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suspended": self.suspended,
            "violation_count": self.violation_count,
            "account_status": self.account_status,
            "suspended_at": self.suspended_at.isoformat() if self.suspended_at else None,
            "suspended_reason": self.suspended_reason,
        }


@dataclass(frozen=True)
class ViolationOutcome:
    """Result of appending one violation to the ledger."""
    violation_count: int
    suspended: bool
    newly_suspended: bool = False


# =============================================================================
# NEGOTIATION
# =============================================================================

@dataclass
class TransitionResult:
    """
    Outcome of a negotiation operation.

    changed is False when the call was a benign race (e.g. a second accept)
    and the record was left as it was.
    """
    quote: Any
    changed: bool
    message: str
    events: List[Any] = field(default_factory=list)
