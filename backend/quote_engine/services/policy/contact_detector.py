"""
Quote Engine - Contact Information Detector

Scans free text for phone numbers, email addresses, postal addresses,
social media handles and requests to move off the platform.

ROLE: Deterrent, not a security boundary.
- Pure: no state, no I/O, safe to call on every keystroke
- Best-effort: determined users can evade it (false negatives expected)
- Tolerant: postcode-shaped or street-shaped text in an unrelated context
  is reported anyway (false positives accepted)
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from ...models.domain import CATEGORY_LABELS, Finding, ScanResult, ViolationCategory


class TextScanner(Protocol):
    """Strategy interface consumed by the policy gate."""

    def scan(self, text: Optional[str]) -> ScanResult:
        ...


@dataclass(frozen=True)
class PatternRule:
    """
    One detection rule.

    report_match: report each matched substring as its own finding.
    Otherwise a single finding with the first match is reported.
    """
    category: ViolationCategory
    pattern: re.Pattern
    description: str
    report_match: bool = True


_NUMBER_WORD = r"(?:zero|one|two|three|four|five|six|seven|eight|nine|oh)"

_STREET_SUFFIX = (
    r"(?:Street|St|Road|Rd|Avenue|Ave|Lane|Ln|Drive|Dr|Close|Cl|Way|Court|Ct|Place|Pl)"
)


# =============================================================================
# RULE TABLES
# =============================================================================

PHONE_RULES = [
    # 07912345678
    PatternRule(ViolationCategory.PHONE, re.compile(r"\b0\d{10}\b"), "Phone number detected"),
    # 0791 234 5678, 0791-234-5678
    PatternRule(ViolationCategory.PHONE, re.compile(r"\b0\d{3}[\s-]?\d{3}[\s-]?\d{4}\b"), "Phone number detected"),
    PatternRule(ViolationCategory.PHONE, re.compile(r"\b0\d{4}[\s-]?\d{6}\b"), "Phone number detected"),
    # +44 7912345678, +447912345678, 00447912345678
    PatternRule(ViolationCategory.PHONE, re.compile(r"\+44[\s-]?7\d{9}\b"), "Phone number detected"),
    PatternRule(ViolationCategory.PHONE, re.compile(r"\+44[\s-]?\d{10}\b"), "Phone number detected"),
    PatternRule(ViolationCategory.PHONE, re.compile(r"\b0044[\s-]?\d{10}\b"), "Phone number detected"),
    # (0791) 234 5678
    PatternRule(ViolationCategory.PHONE, re.compile(r"\(\d{4}\)[\s-]?\d{3}[\s-]?\d{4}\b"), "Phone number detected"),
    # Landlines: 020 1234 5678, 0161 123 4567
    PatternRule(ViolationCategory.PHONE, re.compile(r"\b0[1-9]\d{1,2}[\s-]?\d{3,4}[\s-]?\d{4}\b"), "Phone number detected"),
    # "zero seven nine ..."
    PatternRule(
        ViolationCategory.PHONE,
        re.compile(rf"\b{_NUMBER_WORD}(?:[\s-]?{_NUMBER_WORD}){{2,}}\b", re.IGNORECASE),
        "Written phone number detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.PHONE,
        re.compile(r"\b(?:call|ring|phone|text|message|mobile|number)\s+(?:me|on|at|is)\b", re.IGNORECASE),
        "Request for phone contact detected",
        report_match=False,
    ),
]

EMAIL_RULES = [
    PatternRule(
        ViolationCategory.EMAIL,
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        "Email address detected",
    ),
    # "john at gmail dot com", "user[at]domain[dot]com"
    PatternRule(
        ViolationCategory.EMAIL,
        re.compile(
            r"[\w.-]+\s*(?:\bat\b|\[at\]|\(at\))\s*[\w-]+\s*(?:\bdot\b|\[dot\]|\(dot\)|\.)\s*(?:com|co\.uk|co\s+uk|org|net)\b",
            re.IGNORECASE,
        ),
        "Obfuscated email address detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.EMAIL,
        re.compile(r"\b(?:email|e-mail|mail|contact)\s+(?:me|at|is)\b", re.IGNORECASE),
        "Request for email contact detected",
        report_match=False,
    ),
]

ADDRESS_RULES = [
    # UK postcodes: SW1A 1AA, M1 1AA
    PatternRule(
        ViolationCategory.ADDRESS,
        re.compile(r"\b[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}\b", re.IGNORECASE),
        "Postcode detected",
    ),
    # "123 Main Street", "45 High Road"
    PatternRule(
        ViolationCategory.ADDRESS,
        re.compile(rf"\b\d{{1,5}}\s+[A-Za-z]{{2,}}(?:\s+[A-Za-z]+){{0,3}}\s+{_STREET_SUFFIX}\b", re.IGNORECASE),
        "Street address detected",
    ),
    PatternRule(
        ViolationCategory.ADDRESS,
        re.compile(r"\b(?:I live at|my address is|come to|meet me at)\s+\d", re.IGNORECASE),
        "Address reference detected",
        report_match=False,
    ),
]

SOCIAL_RULES = [
    PatternRule(
        ViolationCategory.SOCIAL,
        re.compile(r"whats\s?app|\bwa\s+me\b|message me on wa\b", re.IGNORECASE),
        "WhatsApp reference detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.SOCIAL,
        re.compile(r"facebook|\bfb\.com\b|find me on fb\b", re.IGNORECASE),
        "Facebook reference detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.SOCIAL,
        re.compile(r"instagram|\binsta\b|\big:", re.IGNORECASE),
        "Instagram reference detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.SOCIAL,
        re.compile(r"twitter|\btweet\b|\bx\.com\b|(?<![\w.@])@\w+", re.IGNORECASE),
        "Twitter/X reference detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.SOCIAL,
        re.compile(r"linkedin|linked in|connect with me on", re.IGNORECASE),
        "LinkedIn reference detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.SOCIAL,
        re.compile(r"snapchat|\bsnap me\b|add me on snap", re.IGNORECASE),
        "Snapchat reference detected",
        report_match=False,
    ),
    PatternRule(
        ViolationCategory.SOCIAL,
        re.compile(r"tik\s?tok", re.IGNORECASE),
        "TikTok reference detected",
        report_match=False,
    ),
]

GENERIC_RULES = [
    PatternRule(
        ViolationCategory.GENERIC,
        re.compile(
            r"contact me directly|reach me at|get in touch outside|\bbypass\b|off[\s-]platform|outside the app",
            re.IGNORECASE,
        ),
        "Request for off-platform contact detected",
        report_match=False,
    ),
]

DEFAULT_RULES = PHONE_RULES + EMAIL_RULES + ADDRESS_RULES + SOCIAL_RULES + GENERIC_RULES


# =============================================================================
# SCANNER
# =============================================================================

def summarize_categories(categories: Iterable[ViolationCategory]) -> str:
    """
    "phone number detected", "phone number and email address detected",
    "phone number, email address, and address detected".
    """
    names = []
    for category in categories:
        label = CATEGORY_LABELS.get(category, "contact information")
        if label not in names:
            names.append(label)

    if not names:
        return ""
    if len(names) == 1:
        return f"{names[0]} detected"
    if len(names) == 2:
        return f"{names[0]} and {names[1]} detected"
    return f"{', '.join(names[:-1])}, and {names[-1]} detected"


class ContactInfoScanner:
    """
    Default TextScanner. Every rule runs independently and findings
    accumulate, so one input can trigger several categories.
    """

    def __init__(self, rules: Optional[List[PatternRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def scan(self, text: Optional[str]) -> ScanResult:
        if not text or not isinstance(text, str):
            return ScanResult(matched=False)

        findings: List[Finding] = []
        seen: set = set()

        for rule in self.rules:
            for snippet in self._matches(rule, text):
                key = (rule.category, snippet.lower())
                if key in seen:
                    continue
                seen.add(key)
                findings.append(Finding(category=rule.category, snippet=snippet, description=rule.description))

        if not findings:
            return ScanResult(matched=False)

        categories = []
        for finding in findings:
            if finding.category not in categories:
                categories.append(finding.category)

        return ScanResult(matched=True, findings=findings, message=summarize_categories(categories))

    def scan_fields(self, fields: Mapping[str, Optional[str]]) -> Tuple[Dict[str, ScanResult], ScanResult]:
        """
        Scan several named fields independently.

        Returns (per-field results for the fields that matched, merged result).
        """
        per_field: Dict[str, ScanResult] = {}
        merged: List[Finding] = []

        for name, value in fields.items():
            result = self.scan(value)
            if result.matched:
                per_field[name] = result
                merged.extend(f for f in result.findings if f not in merged)

        if not merged:
            return per_field, ScanResult(matched=False)

        categories = []
        for finding in merged:
            if finding.category not in categories:
                categories.append(finding.category)
        return per_field, ScanResult(matched=True, findings=merged, message=summarize_categories(categories))

    @staticmethod
    def _matches(rule: PatternRule, text: str) -> List[str]:
        if rule.report_match:
            return [m.group(0).strip() for m in rule.pattern.finditer(text)]
        match = rule.pattern.search(text)
        return [match.group(0).strip()] if match else []


_default_scanner = ContactInfoScanner()


def scan(text: Optional[str]) -> ScanResult:
    """Scan text with the default rule set."""
    return _default_scanner.scan(text)


def scan_fields(fields: Mapping[str, Optional[str]]) -> Tuple[Dict[str, ScanResult], ScanResult]:
    return _default_scanner.scan_fields(fields)
