"""
Tests for the contact information detector.

Each category is exercised in isolation, then combined:
1. Phone - national, international, spelled-out, call phrases
2. Email - plain, obfuscated, "email me" phrases
3. Address - postcode, street address, "meet me at" phrases
4. Social - per-platform keywords and bare @handles
5. Generic - requests to move off the platform
6. Clean business text is never flagged
7. Summary message wording
"""
import re

import pytest

from quote_engine.models.domain import ViolationCategory
from quote_engine.services.policy import (
    ContactInfoScanner,
    PatternRule,
    scan,
    scan_fields,
    summarize_categories,
    short_warning,
    violation_warning,
)


def categories_of(text):
    return set(scan(text).categories)


# =============================================================================
# TEST: PHONE
# =============================================================================

class TestPhoneDetection:

    @pytest.mark.parametrize("text", [
        "call me on 07911123456",
        "my mobile is 0791 112 3456",
        "ring 0791-112-3456 after six",
        "+447911123456",
        "try 0044 7911123456",
        "office line 020 7946 0958",
    ])
    def test_numeric_phone_numbers(self, text):
        result = scan(text)
        assert result.matched is True
        assert ViolationCategory.PHONE in result.categories

    def test_spelled_out_digits(self):
        """Three or more number words in a row."""
        result = scan("zero seven nine one one one")
        assert result.matched is True
        assert result.findings[0].description == "Written phone number detected"

    def test_two_number_words_are_not_enough(self):
        assert scan("I need one or two shelves").matched is False

    def test_call_phrase_without_digits(self):
        assert ViolationCategory.PHONE in categories_of("Just call me when you arrive")

    def test_duplicate_snippets_collapsed(self):
        """Several phone rules match the same digits; one finding survives."""
        result = scan("07911123456")
        snippets = [f.snippet for f in result.findings if f.category == ViolationCategory.PHONE]
        assert snippets == ["07911123456"]

    def test_each_distinct_number_reported(self):
        result = scan("07911123456 or 07700900123")
        snippets = {f.snippet for f in result.findings}
        assert {"07911123456", "07700900123"} <= snippets


# =============================================================================
# TEST: EMAIL
# =============================================================================

class TestEmailDetection:

    def test_plain_email(self):
        result = scan("send it to john.smith@example.com")
        assert ViolationCategory.EMAIL in result.categories
        assert any(f.snippet == "john.smith@example.com" for f in result.findings)

    @pytest.mark.parametrize("text", [
        "john at gmail dot com",
        "john[at]gmail[dot]com",
        "john (at) gmail (dot) co.uk",
    ])
    def test_obfuscated_email(self, text):
        result = scan(text)
        assert ViolationCategory.EMAIL in result.categories
        assert any(f.description == "Obfuscated email address detected" for f in result.findings)

    def test_email_me_phrase(self):
        assert ViolationCategory.EMAIL in categories_of("Email me the details tonight")


# =============================================================================
# TEST: ADDRESS
# =============================================================================

class TestAddressDetection:

    @pytest.mark.parametrize("postcode", ["SW1A 1AA", "M1 1AE", "B33 8TH", "cr26xh"])
    def test_uk_postcodes(self, postcode):
        assert ViolationCategory.ADDRESS in categories_of(f"I'm in {postcode}")

    def test_street_address(self):
        result = scan("The house is 42 Baker Street")
        assert ViolationCategory.ADDRESS in result.categories
        assert any(f.snippet == "42 Baker Street" for f in result.findings)

    def test_meet_me_at_followed_by_digit(self):
        assert ViolationCategory.ADDRESS in categories_of("meet me at 7 outside")


# =============================================================================
# TEST: SOCIAL / GENERIC
# =============================================================================

class TestSocialAndGenericDetection:

    @pytest.mark.parametrize("text", [
        "add me on WhatsApp",
        "find me on facebook",
        "my insta has photos",
        "follow @handyandy",
        "connect with me on LinkedIn",
        "snap me later",
        "I post my work on TikTok",
    ])
    def test_social_platforms(self, text):
        assert ViolationCategory.SOCIAL in categories_of(text)

    def test_email_address_is_not_a_social_handle(self):
        cats = categories_of("bob@example.com")
        assert ViolationCategory.EMAIL in cats
        assert ViolationCategory.SOCIAL not in cats

    @pytest.mark.parametrize("text", [
        "we could bypass the fees",
        "let's sort this off-platform",
        "happy to talk outside the app",
    ])
    def test_off_platform_requests(self, text):
        assert ViolationCategory.GENERIC in categories_of(text)


# =============================================================================
# TEST: CLEAN TEXT
# =============================================================================

class TestCleanText:

    @pytest.mark.parametrize("text", [
        "Please fix the leaking tap under the sink",
        "Fix leaking tap",
        "Tap in kitchen drips constantly",
        "£200 fixed",
        "£150, I can supply materials",
        "Happy to start next Tuesday morning",
    ])
    def test_business_text_not_flagged(self, text):
        result = scan(text)
        assert result.matched is False
        assert result.findings == []
        assert result.message == ""

    @pytest.mark.parametrize("value", [None, "", 42])
    def test_empty_or_non_string_is_clean(self, value):
        assert scan(value).matched is False


# =============================================================================
# TEST: COMBINED RESULTS
# =============================================================================

class TestCombinedResults:

    def test_categories_accumulate(self):
        result = scan("call me on 07911123456 or email bob@example.com")
        assert result.categories[:2] == [ViolationCategory.PHONE, ViolationCategory.EMAIL]
        assert result.message == "phone number and email address detected"

    def test_oxford_comma_for_three(self):
        result = scan("07911123456, bob@example.com, SW1A 1AA")
        assert result.message == "phone number, email address, and address detected"

    def test_summary_single(self):
        assert summarize_categories([ViolationCategory.SOCIAL]) == "social media detected"

    def test_summary_ignores_repeats(self):
        cats = [ViolationCategory.PHONE, ViolationCategory.PHONE]
        assert summarize_categories(cats) == "phone number detected"

    def test_to_dict_shape(self):
        data = scan("07911123456").to_dict()
        assert data["matched"] is True
        assert data["categories"] == ["phone"]
        assert data["findings"][0]["category"] == "phone"

    def test_scan_fields_reports_each_field(self):
        per_field, merged = scan_fields({
            "title": "Fix leaking tap",
            "description": "call 07911123456",
            "budget_note": "reach me at bob@example.com",
        })
        assert set(per_field) == {"description", "budget_note"}
        assert merged.matched is True
        assert ViolationCategory.PHONE in merged.categories
        assert ViolationCategory.EMAIL in merged.categories


# =============================================================================
# TEST: INJECTABLE RULES
# =============================================================================

class TestCustomRules:

    def test_custom_rule_set_replaces_defaults(self):
        scanner = ContactInfoScanner(rules=[
            PatternRule(ViolationCategory.SOCIAL, re.compile(r"telegram", re.IGNORECASE), "Telegram reference detected"),
        ])
        assert scanner.scan("ping me on Telegram").matched is True
        assert scanner.scan("07911123456").matched is False

    def test_first_match_only_when_not_reporting_each(self):
        scanner = ContactInfoScanner(rules=[
            PatternRule(ViolationCategory.GENERIC, re.compile(r"bypass"), "Bypass", report_match=False),
        ])
        result = scanner.scan("bypass this, bypass that")
        assert len(result.findings) == 1


# =============================================================================
# TEST: WARNING TEXTS
# =============================================================================

class TestWarningTexts:

    def test_graded_long_warnings(self):
        assert violation_warning(0, 3).startswith("Contact Information Detected")
        assert "One more violation" in violation_warning(1, 3)
        assert violation_warning(2, 3).startswith("FINAL WARNING")
        assert violation_warning(3, 3).startswith("Account Suspended")

    def test_graded_short_warnings(self):
        assert short_warning(0, 3) == "Contact info not allowed before booking. Please remove it."
        assert short_warning(1, 3) == "Warning 2/3: One more violation will suspend your account."
        assert short_warning(2, 3).startswith("Account suspended. Contact ")
        assert short_warning(5, 3) == "Account suspended."

    def test_threshold_is_respected(self):
        assert "3 more violations" in violation_warning(1, 5)

    def test_zero_threshold_is_not_replaced_by_default(self):
        assert violation_warning(0, 0).startswith("Account Suspended")
        assert short_warning(0, 0) == "Account suspended."
