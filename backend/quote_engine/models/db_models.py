"""
Quote Engine - SQLAlchemy ORM Models
Persistent storage for quote negotiations, discussion threads and compliance
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum, Boolean
from sqlalchemy.orm import relationship
from ..database import Base
from .domain import AgentOffer, CustomerOffer


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    """Roles supplied by the identity provider."""
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"


class AuthorRole(str, Enum):
    """Author of a discussion message."""
    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"


class AccountStatus(str, Enum):
    """Compliance status of an account. Suspension is sticky."""
    ACTIVE = "active"
    SUSPENDED = "suspended"


class QuoteStatus(str, Enum):
    """States in the quote negotiation state machine."""
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    PAYMENT_PENDING = "payment_pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    DISMISSED_BY_CUSTOMER = "dismissed_by_customer"
    DISMISSED_BY_AGENT = "dismissed_by_agent"  # Agent view only, never stored as status
    ARCHIVED = "archived"


class OfferParty(str, Enum):
    """Which side holds the active offer slot."""
    AGENT = "agent"
    CUSTOMER = "customer"


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    FLEXIBLE = "flexible"


class ComplianceActionType(str, Enum):
    """Audit trail entries for account status changes."""
    SUSPENDED = "suspended"
    UNSUSPENDED = "unsuspended"
    VIOLATIONS_CLEARED = "violations_cleared"


# =============================================================================
# USERS
# =============================================================================

class UserDB(Base):
    """
    User profile as seen by the negotiation core.

    account_status / suspended_* are a denormalised mirror of the compliance
    record. Only the compliance ledger writes them.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID from identity provider
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.CUSTOMER)

    # Agent's standing rate, informational only
    hourly_rate = Column(Integer, nullable=True)

    # Mirror of compliance_records.account_status
    account_status = Column(SQLEnum(AccountStatus), nullable=False, default=AccountStatus.ACTIVE)
    suspended_at = Column(DateTime, nullable=True)
    suspended_reason = Column(String(255), nullable=True)
    unsuspended_at = Column(DateTime, nullable=True)
    unsuspended_by = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# QUOTE NEGOTIATION
# =============================================================================

class QuoteRequestDB(Base):
    """
    One customer's ask to one agent for one job.

    The two offer slots are stored as a single variant (offer_party +
    offer_amount + offer_reasoning) so both sides can never hold an active
    offer at the same time.
    """
    __tablename__ = "quote_requests"

    id = Column(String(36), primary_key=True)  # UUID
    customer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Free text, each field scanned independently
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    budget_note = Column(Text, nullable=True)
    additional_notes = Column(Text, nullable=True)

    urgency = Column(SQLEnum(Urgency), default=Urgency.NORMAL)
    preferred_dates = Column(JSON, nullable=True, default=list)
    media_refs = Column(JSON, nullable=True, default=list)  # Not scanned

    # Snapshot of the agent's standing rate at request time
    base_rate = Column(Integer, nullable=True)

    # Active offer slot
    offer_party = Column(SQLEnum(OfferParty), nullable=True)
    offer_amount = Column(String(255), nullable=True)
    offer_reasoning = Column(Text, nullable=True)

    # State machine
    status = Column(SQLEnum(QuoteStatus), nullable=False, default=QuoteStatus.PENDING, index=True)
    final_agreed_price = Column(String(255), nullable=True)
    payment_required = Column(Boolean, default=False)

    # Agent-local dismissal; customer still sees the record
    dismissed_by_agent = Column(Boolean, default=False)
    agent_dismissed_at = Column(DateTime, nullable=True)

    dismissal_reason = Column(Text, nullable=True)
    dismissed_at = Column(DateTime, nullable=True)
    dismissed_by = Column(String(36), nullable=True)

    # Audit timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    accepted_at = Column(DateTime, nullable=True)
    accepted_by = Column(String(36), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(36), nullable=True)
    payment_completed_at = Column(DateTime, nullable=True)
    payment_failed_at = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=True)

    # Stored for an external expiry job; nothing here enforces it
    expires_at = Column(DateTime, nullable=True)

    # Relationships
    customer = relationship("UserDB", foreign_keys=[customer_id])
    agent = relationship("UserDB", foreign_keys=[agent_id])
    messages = relationship("DiscussionMessageDB", back_populates="quote_request", cascade="all, delete-orphan")

    @property
    def active_offer(self):
        """None, AgentOffer or CustomerOffer."""
        if self.offer_party == OfferParty.AGENT:
            return AgentOffer(amount=self.offer_amount)
        if self.offer_party == OfferParty.CUSTOMER:
            return CustomerOffer(amount=self.offer_amount, reasoning=self.offer_reasoning)
        return None

    @active_offer.setter
    def active_offer(self, offer):
        # Every write replaces the whole slot, clearing the other side
        if offer is None:
            self.offer_party = None
            self.offer_amount = None
            self.offer_reasoning = None
        elif isinstance(offer, AgentOffer):
            self.offer_party = OfferParty.AGENT
            self.offer_amount = offer.amount
            self.offer_reasoning = None
        elif isinstance(offer, CustomerOffer):
            self.offer_party = OfferParty.CUSTOMER
            self.offer_amount = offer.amount
            self.offer_reasoning = offer.reasoning
        else:
            raise TypeError(f"Unsupported offer type: {type(offer).__name__}")

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.customer_id, self.agent_id)


class DiscussionMessageDB(Base):
    """
    Append-only comment on a quote request.
    Ordered by the server-assigned created_at at read time.
    """
    __tablename__ = "discussion_messages"

    id = Column(String(36), primary_key=True)  # UUID
    quote_request_id = Column(String(36), ForeignKey("quote_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), nullable=False)
    author_role = Column(SQLEnum(AuthorRole), nullable=False)
    author_name = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    event_type = Column(String(50), nullable=True)  # Set on system audit comments

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    quote_request = relationship("QuoteRequestDB", back_populates="messages")


# =============================================================================
# COMPLIANCE LEDGER
# =============================================================================

class ComplianceRecordDB(Base):
    """
    Per-user violation counter and account status.
    Created lazily on first violation; absence means 0 violations, active.
    """
    __tablename__ = "compliance_records"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    violation_count = Column(Integer, nullable=False, default=0)
    account_status = Column(SQLEnum(AccountStatus), nullable=False, default=AccountStatus.ACTIVE)

    first_violation_at = Column(DateTime, nullable=True)
    last_violation_at = Column(DateTime, nullable=True)

    suspended_at = Column(DateTime, nullable=True)
    suspended_reason = Column(String(255), nullable=True)
    suspended_by_system = Column(Boolean, default=False)

    unsuspended_at = Column(DateTime, nullable=True)
    unsuspended_by = Column(String(36), nullable=True)
    unsuspension_notes = Column(Text, nullable=True)

    violations_cleared_at = Column(DateTime, nullable=True)
    cleared_by = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    violations = relationship(
        "ViolationEntryDB",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="ViolationEntryDB.created_at",
    )


class ViolationEntryDB(Base):
    """
    Immutable log entry for one blocked attempt.
    Offending text is truncated before it is stored.
    """
    __tablename__ = "violation_entries"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("compliance_records.user_id", ondelete="CASCADE"), nullable=False, index=True)

    location = Column(String(100), nullable=False)  # e.g. quote_request_form, quote_comment
    violation_types = Column(JSON, nullable=False)  # ["phone", "email", ...]
    blocked_text = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    record = relationship("ComplianceRecordDB", back_populates="violations")


class ComplianceActionDB(Base):
    """Append-only audit trail of suspensions and administrative overrides."""
    __tablename__ = "compliance_actions"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(SQLEnum(ComplianceActionType), nullable=False)
    actor_id = Column(String(36), nullable=True)  # None when the system acted
    notes = Column(Text, nullable=True)
    violation_count = Column(Integer, nullable=False, default=0)  # Count at time of action

    created_at = Column(DateTime, default=datetime.utcnow)
