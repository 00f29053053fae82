"""
Quote Engine - Service Errors

Raised by the service layer, translated to HTTP responses by the routers.
Each error carries a user-facing message.
"""
from typing import Any, Dict, List, Optional

from . import config


def suspension_message() -> str:
    return (
        "Account suspended for policy violations. "
        f"Contact {config.SUPPORT_EMAIL} to appeal."
    )


class NegotiationError(Exception):
    """Base class for expected, user-facing refusals."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message}


class AccountSuspendedError(NegotiationError):
    """Acting user is suspended. Raised before any policy scan runs."""

    status_code = 403

    def __init__(self, user_id: str, message: Optional[str] = None):
        super().__init__(message or suspension_message())
        self.user_id = user_id


class ContactInfoViolationError(NegotiationError):
    """Free text contained contact details; the action was refused."""

    status_code = 422

    def __init__(
        self,
        message: str,
        warning: str,
        findings: List[Dict[str, str]],
        violation_count: int,
        suspended: bool,
        fields: Optional[List[str]] = None,
        clear_draft: bool = False,
    ):
        super().__init__(message)
        self.warning = warning
        self.findings = findings
        self.violation_count = violation_count
        self.suspended = suspended
        self.fields = fields or []
        self.clear_draft = clear_draft

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "warning": self.warning,
            "findings": self.findings,
            "fields": self.fields,
            "violation_count": self.violation_count,
            "suspended": self.suspended,
            "clear_draft": self.clear_draft,
        })
        return data


class QuoteRequestNotFoundError(NegotiationError):
    status_code = 404

    def __init__(self, quote_request_id: str):
        super().__init__("Quote request not found")
        self.quote_request_id = quote_request_id


class NotAPartyError(NegotiationError):
    """User is not named on the record, or acted in the wrong role."""

    status_code = 403

    def __init__(self, message: str = "You are not allowed to act on this quote request"):
        super().__init__(message)


class QuoteUnavailableError(NegotiationError):
    """Record is closed for this kind of action."""

    status_code = 409

    def __init__(self, message: str = "This quote request is no longer available"):
        super().__init__(message)


class InvalidTransitionError(NegotiationError):
    status_code = 409


class StorageUnavailableError(NegotiationError):
    """The store rejected or lost the write. Nothing is assumed committed."""

    status_code = 503

    def __init__(self, message: str = "Something went wrong saving your change. Please refresh and try again."):
        super().__init__(message)
