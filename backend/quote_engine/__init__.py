"""Quote Engine - negotiation state machine and contact-policy enforcement."""

__version__ = "1.0.0"
