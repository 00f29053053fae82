"""
Quote Negotiation State Machine

Explicit states for one customer -> agent quote request.
The active offer is a single slot, so agent and customer offers can never
both be live.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from ...models.db_models import QuoteStatus, QuoteRequestDB
from ...models.domain import AgentOffer, CustomerOffer


STANDARD_RATE = "Standard Rate"


# =============================================================================
# STATE CONFIGURATION
# =============================================================================
#
# AUTHORITY MODEL:
# entry_authority names who can move a record INTO the state:
# - CUSTOMER / AGENT / EITHER_PARTY: one of the parties named on the record
# - SYSTEM: external signal (payment processor, expiry batch)
# - ADMIN: platform operator
#
# DISMISSED_BY_AGENT is never stored as the record's status. It is the
# status an agent sees once they have hidden the record; the customer keeps
# seeing the real status.
#
# =============================================================================

STATE_CONFIG = {
    QuoteStatus.PENDING: {
        "description": "Awaiting a proposal from the agent",
        "allowed_transitions": [
            QuoteStatus.NEGOTIATING,
            QuoteStatus.PAYMENT_PENDING,
            QuoteStatus.REJECTED,
            QuoteStatus.DISMISSED_BY_CUSTOMER,
            QuoteStatus.ARCHIVED,
        ],
        "terminal": False,
        "entry_authority": "CUSTOMER",  # Created by customer, or offer rejected
    },
    QuoteStatus.NEGOTIATING: {
        "description": "An offer is on the table",
        "allowed_transitions": [
            QuoteStatus.NEGOTIATING,
            QuoteStatus.PENDING,
            QuoteStatus.PAYMENT_PENDING,
            QuoteStatus.REJECTED,
            QuoteStatus.DISMISSED_BY_CUSTOMER,
            QuoteStatus.ARCHIVED,
        ],
        "terminal": False,
        "entry_authority": "EITHER_PARTY",
    },
    QuoteStatus.PAYMENT_PENDING: {
        "description": "Price agreed, waiting for the customer's payment",
        "allowed_transitions": [
            QuoteStatus.COMPLETED,
            QuoteStatus.NEGOTIATING,  # Payment failed with an offer on the table
            QuoteStatus.PENDING,  # Payment failed at standing rate
            QuoteStatus.DISMISSED_BY_CUSTOMER,
            QuoteStatus.ARCHIVED,
        ],
        "terminal": False,
        "entry_authority": "EITHER_PARTY",
    },
    QuoteStatus.COMPLETED: {
        "description": "Paid; the job continues outside the negotiation",
        "allowed_transitions": [QuoteStatus.ARCHIVED],
        "terminal": True,
        "entry_authority": "SYSTEM",
    },
    QuoteStatus.REJECTED: {
        "description": "Agent declined the job",
        "allowed_transitions": [QuoteStatus.ARCHIVED],
        "terminal": True,
        "entry_authority": "AGENT",
    },
    QuoteStatus.DISMISSED_BY_CUSTOMER: {
        "description": "Customer withdrew; removed from both views",
        "allowed_transitions": [QuoteStatus.ARCHIVED],
        "terminal": True,
        "entry_authority": "CUSTOMER",
    },
    QuoteStatus.DISMISSED_BY_AGENT: {
        "description": "Hidden from the agent's list only",
        "allowed_transitions": [],
        "terminal": False,
        "entry_authority": "AGENT",
    },
    QuoteStatus.ARCHIVED: {
        "description": "Archived by the platform",
        "allowed_transitions": [],
        "terminal": True,
        "entry_authority": "ADMIN",
    },
}

# States in which either party may still negotiate
NEGOTIABLE_STATES = (QuoteStatus.PENDING, QuoteStatus.NEGOTIATING)

# States in which the record is still live for both parties
OPEN_STATES = (QuoteStatus.PENDING, QuoteStatus.NEGOTIATING, QuoteStatus.PAYMENT_PENDING)

# Hidden from both parties' active lists
CLOSED_STATES = (
    QuoteStatus.COMPLETED,
    QuoteStatus.REJECTED,
    QuoteStatus.DISMISSED_BY_CUSTOMER,
    QuoteStatus.ARCHIVED,
)


def final_agreed_price(quote: QuoteRequestDB) -> str:
    """
    Price priority: customer counter-offer > agent quote > agent's
    standing rate > placeholder.
    """
    offer = quote.active_offer
    if isinstance(offer, CustomerOffer) and offer.amount:
        return offer.amount
    if isinstance(offer, AgentOffer) and offer.amount:
        return offer.amount
    if quote.base_rate:
        return f"£{quote.base_rate}/hour"
    return STANDARD_RATE


# =============================================================================
# STATE MACHINE
# =============================================================================

class QuoteStateMachine:
    """
    Validates and applies status changes on a quote request.

    Core Principles:
    - Every status change goes through transition()
    - Setting one offer slot clears the other
    - Accepting freezes the final price; later accepts never overwrite it

    Guards on who may act (suspension, party, content policy) live in the
    service; this class only knows about states and the offer slot.
    """

    def get_state_config(self, state: QuoteStatus) -> Dict[str, Any]:
        """Get configuration for a state."""
        return STATE_CONFIG.get(state, {})

    def can_transition(
        self,
        from_state: QuoteStatus,
        to_state: QuoteStatus
    ) -> Tuple[bool, str]:
        """
        Check if a state transition is allowed.

        Returns (allowed, reason)
        """
        config = self.get_state_config(from_state)
        if to_state in config.get("allowed_transitions", []):
            return True, "Transition allowed"

        return False, f"Cannot transition from {from_state.value} to {to_state.value}"

    def transition(
        self,
        quote: QuoteRequestDB,
        to_state: QuoteStatus,
        now: Optional[datetime] = None,
    ) -> Tuple[bool, str]:
        """
        Apply a status change.

        Returns (success, message)
        """
        allowed, reason = self.can_transition(quote.status, to_state)
        if not allowed:
            return False, reason

        quote.status = to_state
        quote.updated_at = now or datetime.utcnow()
        return True, f"Transitioned to {to_state.value}"

    def is_terminal_state(self, state: QuoteStatus) -> bool:
        return bool(self.get_state_config(state).get("terminal", False))

    def get_next_states(self, state: QuoteStatus) -> List[QuoteStatus]:
        return self.get_state_config(state).get("allowed_transitions", [])

    # =========================================================================
    # OFFER SLOT
    # =========================================================================

    def set_agent_offer(self, quote: QuoteRequestDB, amount: str) -> Tuple[bool, str]:
        if quote.status not in NEGOTIABLE_STATES:
            return False, f"Cannot propose a quote while {quote.status.value}"

        ok, message = self.transition(quote, QuoteStatus.NEGOTIATING)
        if ok:
            quote.active_offer = AgentOffer(amount=amount)
        return ok, message

    def set_customer_offer(
        self,
        quote: QuoteRequestDB,
        amount: str,
        reasoning: Optional[str] = None,
    ) -> Tuple[bool, str]:
        if quote.status != QuoteStatus.NEGOTIATING:
            return False, "A counter-offer can only answer an agent's quote"

        ok, message = self.transition(quote, QuoteStatus.NEGOTIATING)
        if ok:
            quote.active_offer = CustomerOffer(amount=amount, reasoning=reasoning or None)
        return ok, message

    def clear_offers(self, quote: QuoteRequestDB) -> Tuple[bool, str]:
        """Customer turned the offer down; wait for a fresh proposal."""
        ok, message = self.transition(quote, QuoteStatus.PENDING)
        if ok:
            quote.active_offer = None
        return ok, message

    def acceptance_values(
        self,
        quote: QuoteRequestDB,
        accepted_by: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Column values for moving a negotiable record to payment_pending.

        Applied by the caller as a conditional update so that a second
        accept never overwrites the price frozen by the first.
        """
        now = now or datetime.utcnow()
        return {
            "status": QuoteStatus.PAYMENT_PENDING,
            "final_agreed_price": final_agreed_price(quote),
            "payment_required": True,
            "accepted_at": now,
            "accepted_by": accepted_by,
            "updated_at": now,
        }
