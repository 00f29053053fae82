"""
Quote negotiation: state machine, service, discussion thread and events.
"""
from .state_machine import (
    STATE_CONFIG,
    STANDARD_RATE,
    NEGOTIABLE_STATES,
    OPEN_STATES,
    CLOSED_STATES,
    QuoteStateMachine,
    final_agreed_price,
)
from .events import (
    NegotiationEventType,
    NegotiationEvent,
    PartySnapshot,
    EventDispatcher,
    build_event,
)
from .quote_service import QuoteNegotiationService, serialize_quote, view_status
from .discussion import DiscussionThreadService, serialize_message

__all__ = [
    'STATE_CONFIG',
    'STANDARD_RATE',
    'NEGOTIABLE_STATES',
    'OPEN_STATES',
    'CLOSED_STATES',
    'QuoteStateMachine',
    'final_agreed_price',
    'NegotiationEventType',
    'NegotiationEvent',
    'PartySnapshot',
    'EventDispatcher',
    'build_event',
    'QuoteNegotiationService',
    'serialize_quote',
    'view_status',
    'DiscussionThreadService',
    'serialize_message',
]
