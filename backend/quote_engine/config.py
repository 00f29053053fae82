"""
Quote Engine - Runtime Configuration

Product policy values and collaborator endpoints, read from the environment.
The suspension threshold and the stored-text length are policy choices
awaiting product confirmation; keep them configurable.
"""
import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


# =============================================================================
# COMPLIANCE POLICY
# =============================================================================

# Violation count at which an account is suspended
VIOLATION_SUSPENSION_THRESHOLD = _int_env("VIOLATION_SUSPENSION_THRESHOLD", 3)

# Stored offending text is cut to this many characters
VIOLATION_TEXT_MAX_LENGTH = _int_env("VIOLATION_TEXT_MAX_LENGTH", 100)

SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@patchworktrades.com")

SUSPENSION_REASON = "Multiple attempts to share contact information before job confirmation"
PROFILE_SUSPENSION_REASON = "Policy violations - contact info sharing"


# =============================================================================
# NOTIFICATIONS
# =============================================================================

SITE_URL = os.getenv("SITE_URL", "https://patchworktrades.com").rstrip("/")

# When unset, notifications are only logged
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")

NOTIFICATION_TIMEOUT_SECONDS = _float_env("NOTIFICATION_TIMEOUT_SECONDS", 10.0)


# =============================================================================
# SERVICE
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",")
    if origin.strip()
]
