"""
Compliance Services

Violation ledger with escalating suspension, and the gate that every
mutating action passes through.
"""

from .ledger import ComplianceLedger, truncate_blocked_text
from .policy_gate import PolicyGate

__all__ = [
    'ComplianceLedger',
    'truncate_blocked_text',
    'PolicyGate',
]
