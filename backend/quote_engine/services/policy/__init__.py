"""
Content Policy Services

Stateless detection of contact details in free text.
"""

from .contact_detector import (
    TextScanner,
    PatternRule,
    ContactInfoScanner,
    DEFAULT_RULES,
    scan,
    scan_fields,
    summarize_categories,
)
from .messages import violation_warning, short_warning

__all__ = [
    'TextScanner',
    'PatternRule',
    'ContactInfoScanner',
    'DEFAULT_RULES',
    'scan',
    'scan_fields',
    'summarize_categories',
    'violation_warning',
    'short_warning',
]
