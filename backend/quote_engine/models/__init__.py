"""Quote Engine - Data Models"""
from .domain import (
    AgentOffer, CustomerOffer,
    ViolationCategory, CATEGORY_LABELS, Finding, ScanResult,
    ComplianceStatus, ViolationOutcome, TransitionResult,
)

__all__ = [
    "AgentOffer", "CustomerOffer",
    "ViolationCategory", "CATEGORY_LABELS", "Finding", "ScanResult",
    "ComplianceStatus", "ViolationOutcome", "TransitionResult",
]
