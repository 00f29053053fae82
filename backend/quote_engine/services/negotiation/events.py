"""
Negotiation Domain Events

Side effects (audit comments, notifications) are driven by events emitted
after a transition has been committed. Handlers run independently; a failing
handler is logged and never undoes the transition that produced the event.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class NegotiationEventType(str, Enum):
    REQUEST_CREATED = "request_created"
    QUOTE_PROPOSED = "quote_proposed"
    COUNTER_OFFERED = "counter_offered"
    QUOTE_ACCEPTED = "quote_accepted"
    OFFER_REJECTED = "offer_rejected"
    REQUEST_REJECTED = "request_rejected"
    DISMISSED_BY_AGENT = "dismissed_by_agent"
    DISMISSED_BY_CUSTOMER = "dismissed_by_customer"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    ARCHIVED = "archived"
    MESSAGE_POSTED = "message_posted"


@dataclass(frozen=True)
class PartySnapshot:
    """Contact details of one side, captured when the event is built."""
    user_id: str
    name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class NegotiationEvent:
    event_type: NegotiationEventType
    quote_request_id: str
    job_title: str
    actor_id: str
    actor_role: str  # customer | agent | system | admin
    customer: PartySnapshot
    agent: PartySnapshot
    details: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def actor_name(self) -> str:
        if self.actor_role == "customer":
            return self.customer.name
        if self.actor_role == "agent":
            return self.agent.name
        return "System"


def build_event(
    event_type: NegotiationEventType,
    quote,
    actor_id: str,
    actor_role: str,
    **details: Any,
) -> NegotiationEvent:
    """Snapshot a committed quote request into an event."""
    customer = quote.customer
    agent = quote.agent
    return NegotiationEvent(
        event_type=event_type,
        quote_request_id=quote.id,
        job_title=quote.title,
        actor_id=actor_id,
        actor_role=actor_role,
        customer=PartySnapshot(
            user_id=quote.customer_id,
            name=(customer.display_name if customer else None) or (customer.email if customer else "Customer"),
            email=customer.email if customer else None,
        ),
        agent=PartySnapshot(
            user_id=quote.agent_id,
            name=(agent.display_name if agent else None) or (agent.email if agent else "Agent"),
            email=agent.email if agent else None,
        ),
        details=details,
    )


class EventHandler(Protocol):
    def handle(self, event: NegotiationEvent) -> None:
        ...


class EventDispatcher:
    """Fans committed events out to every registered handler."""

    def __init__(self, handlers: Optional[Iterable[EventHandler]] = None):
        self.handlers: List[EventHandler] = list(handlers or [])

    def register(self, handler: EventHandler) -> None:
        self.handlers.append(handler)

    def dispatch(self, events: Iterable[NegotiationEvent]) -> int:
        """
        Deliver events in order. Returns the number of handler failures.
        """
        failures = 0
        for event in events:
            for handler in self.handlers:
                try:
                    handler.handle(event)
                except Exception:
                    failures += 1
                    logger.exception(
                        f"{type(handler).__name__} failed for {event.event_type.value} "
                        f"on quote request {event.quote_request_id}"
                    )
        return failures
