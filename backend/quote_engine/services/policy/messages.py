"""
User-facing warning texts graded by how many violations a user already has.
"""
from ... import config


def _remaining(violation_count: int, threshold: int) -> int:
    """Violations left before suspension, counting the one being reported."""
    return threshold - (violation_count + 1)


def violation_warning(violation_count: int, threshold: int = None) -> str:
    """Long-form warning shown after a blocked attempt.

    violation_count is the count BEFORE the attempt being reported.
    """
    threshold = config.VIOLATION_SUSPENSION_THRESHOLD if threshold is None else threshold
    support = config.SUPPORT_EMAIL
    remaining = _remaining(violation_count, threshold)

    if violation_count >= threshold:
        return (
            "Account Suspended\n\n"
            "Your account has been suspended for policy violations.\n\n"
            f"Contact {support} to appeal."
        )
    if remaining <= 0:
        return (
            "FINAL WARNING - Account Suspended\n\n"
            "You have repeatedly attempted to share contact information.\n\n"
            "Your account has been SUSPENDED for repeatedly attempting to bypass platform policies.\n\n"
            f"Please contact {support} to appeal this decision."
        )
    if violation_count <= 0:
        return (
            "Contact Information Detected\n\n"
            "For your safety and to maintain platform integrity, sharing contact "
            "details before booking is not allowed.\n\n"
            "Please wait until the job is active to exchange personal information."
        )
    if remaining == 1:
        return (
            "Violation Warning\n\n"
            "This is another attempt to share contact information.\n\n"
            "One more violation will result in account suspension.\n\n"
            "Please use the platform's communication tools until the job is confirmed."
        )
    return (
        "Violation Warning\n\n"
        "This is another attempt to share contact information.\n\n"
        f"{remaining} more violations will result in account suspension."
    )


def short_warning(violation_count: int, threshold: int = None) -> str:
    """One-line variant for inline form feedback."""
    threshold = config.VIOLATION_SUSPENSION_THRESHOLD if threshold is None else threshold
    remaining = _remaining(violation_count, threshold)

    if violation_count >= threshold:
        return "Account suspended."
    if remaining <= 0:
        return f"Account suspended. Contact {config.SUPPORT_EMAIL}"
    if violation_count <= 0:
        return "Contact info not allowed before booking. Please remove it."
    if remaining == 1:
        return f"Warning {violation_count + 1}/{threshold}: One more violation will suspend your account."
    return f"Warning {violation_count + 1}/{threshold}: {remaining} more violations will suspend your account."
