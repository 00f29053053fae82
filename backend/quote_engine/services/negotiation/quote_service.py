"""
Quote Negotiation Service

Orchestrates one quote request from creation to payment.

AUTHORITY MODEL:
- CUSTOMER: create, counter_offer, reject_offer, dismiss_by_customer, accept (agent quote)
- AGENT: propose_quote, reject_request, dismiss_by_agent, accept (counter or standing rate)
- SYSTEM: record_payment_outcome (external payment signal)
- ADMIN: archive

Guard order for every mutating operation:
1. Acting user is not suspended (before anything else, even for clean text)
2. Acting user is the party named on the record for this operation
3. Record is in a state that allows the operation
4. Free text passes the content policy (violation is recorded best-effort)

Only after all four pass is anything written. Side effects (audit comments,
notifications) are dispatched as events after the commit.
"""
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import (
    InvalidTransitionError,
    NegotiationError,
    NotAPartyError,
    QuoteRequestNotFoundError,
    QuoteUnavailableError,
    StorageUnavailableError,
)
from ...models.db_models import QuoteRequestDB, QuoteStatus, UserDB, UserRole, Urgency, OfferParty
from ...models.domain import AgentOffer, CustomerOffer, TransitionResult
from ..compliance import PolicyGate
from .events import EventDispatcher, NegotiationEvent, NegotiationEventType, build_event
from .state_machine import QuoteStateMachine, CLOSED_STATES, NEGOTIABLE_STATES, OPEN_STATES

logger = logging.getLogger(__name__)


# Where a blocked attempt came from, as stored on the violation entry
LOCATION_REQUEST_FORM = "quote_request_form"
LOCATION_CUSTOM_QUOTE = "custom_quote"
LOCATION_CUSTOMER_COUNTER = "customer_counter"

NO_DISMISSAL_REASON = "No reason provided"


# =============================================================================
# VIEW HELPERS
# =============================================================================

def view_status(quote: QuoteRequestDB, viewer_id: Optional[str]) -> QuoteStatus:
    """Status as seen by one party. Agent dismissal is local to the agent."""
    if (
        viewer_id is not None
        and viewer_id == quote.agent_id
        and quote.dismissed_by_agent
        and quote.status not in CLOSED_STATES
    ):
        return QuoteStatus.DISMISSED_BY_AGENT
    return quote.status


def serialize_quote(quote: QuoteRequestDB, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    offer = quote.active_offer
    return {
        "id": quote.id,
        "customer_id": quote.customer_id,
        "agent_id": quote.agent_id,
        "customer_name": quote.customer.display_name if quote.customer else None,
        "agent_name": quote.agent.display_name if quote.agent else None,
        "title": quote.title,
        "description": quote.description,
        "budget_note": quote.budget_note,
        "additional_notes": quote.additional_notes,
        "urgency": quote.urgency.value if quote.urgency else None,
        "preferred_dates": quote.preferred_dates or [],
        "media_refs": quote.media_refs or [],
        "base_rate": quote.base_rate,
        "status": view_status(quote, viewer_id).value,
        "active_offer": {
            "party": quote.offer_party.value,
            "amount": offer.amount,
            "reasoning": offer.reasoning if isinstance(offer, CustomerOffer) else None,
        } if offer is not None else None,
        "agent_offer_active": isinstance(offer, AgentOffer),
        "customer_offer_active": isinstance(offer, CustomerOffer),
        "final_agreed_price": quote.final_agreed_price,
        "payment_required": bool(quote.payment_required),
        "dismissal_reason": quote.dismissal_reason,
        "created_at": quote.created_at.isoformat() if quote.created_at else None,
        "updated_at": quote.updated_at.isoformat() if quote.updated_at else None,
        "accepted_at": quote.accepted_at.isoformat() if quote.accepted_at else None,
        "expires_at": quote.expires_at.isoformat() if quote.expires_at else None,
    }


# =============================================================================
# QUOTE NEGOTIATION SERVICE
# =============================================================================

class QuoteNegotiationService:
    """
    Main service for quote negotiation.

    Every mutating method returns a TransitionResult. changed=False means
    the request was a benign race (double accept, dismiss twice, accept on
    a record that already closed) and the current record is returned as-is.
    """

    def __init__(
        self,
        db_session: Session,
        gate: PolicyGate,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.db = db_session
        self.gate = gate
        self.dispatcher = dispatcher or EventDispatcher()
        self.state_machine = QuoteStateMachine()

    # =========================================================================
    # CREATION
    # =========================================================================

    def create(
        self,
        customer: UserDB,
        agent_id: str,
        title: str,
        description: str,
        budget_note: Optional[str] = None,
        additional_notes: Optional[str] = None,
        urgency: Urgency = Urgency.NORMAL,
        preferred_dates: Optional[List[str]] = None,
        media_refs: Optional[List[str]] = None,
        expires_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Create a pending request. A policy failure persists nothing.
        """
        status = self.gate.ensure_active(customer.id)

        if customer.role != UserRole.CUSTOMER:
            raise NotAPartyError("Only customers can request quotes")

        agent = self.db.get(UserDB, agent_id)
        if agent is None or agent.role != UserRole.AGENT:
            raise NegotiationError("That service provider could not be found")
        if agent.id == customer.id:
            raise NegotiationError("You cannot request a quote from yourself")

        if not (title or "").strip() or not (description or "").strip():
            raise NegotiationError("Please fill in the job title and description")

        self.gate.screen(
            customer.id,
            LOCATION_REQUEST_FORM,
            {
                "title": title,
                "description": description,
                "budget_note": budget_note,
                "additional_notes": additional_notes,
            },
            status=status,
        )

        now = datetime.utcnow()
        quote = QuoteRequestDB(
            id=str(uuid4()),
            customer_id=customer.id,
            agent_id=agent.id,
            title=title.strip(),
            description=description.strip(),
            budget_note=(budget_note or "").strip() or None,
            additional_notes=(additional_notes or "").strip() or None,
            urgency=urgency or Urgency.NORMAL,
            preferred_dates=list(preferred_dates or []),
            media_refs=list(media_refs or []),
            base_rate=agent.hourly_rate,
            status=QuoteStatus.PENDING,
            payment_required=False,
            dismissed_by_agent=False,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )
        self.db.add(quote)
        self._commit("create", quote.id)
        self.db.refresh(quote)

        logger.info(f"Quote request {quote.id} created by customer {customer.id} for agent {agent.id}")
        return self._finish(
            quote,
            "Quote request sent",
            [build_event(NegotiationEventType.REQUEST_CREATED, quote, customer.id, "customer")],
        )

    # =========================================================================
    # OFFERS
    # =========================================================================

    def propose_quote(self, agent: UserDB, quote_request_id: str, amount: str) -> TransitionResult:
        """Agent sets the active offer; any customer counter is cleared."""
        status = self.gate.ensure_active(agent.id)
        quote = self._load(quote_request_id)
        self._require_agent(quote, agent)
        self._require_not_dismissed(quote)

        amount = (amount or "").strip()
        if not amount:
            raise NegotiationError("Please enter a quote")
        if quote.status not in NEGOTIABLE_STATES:
            raise InvalidTransitionError(f"Cannot propose a quote while the request is {quote.status.value}")

        self.gate.screen(agent.id, LOCATION_CUSTOM_QUOTE, {"amount": amount}, status=status)

        ok, message = self.state_machine.set_agent_offer(quote, amount)
        if not ok:
            raise InvalidTransitionError(message)
        self._commit("propose_quote", quote.id)
        self.db.refresh(quote)

        logger.info(f"Agent {agent.id} proposed {amount!r} on quote request {quote.id}")
        return self._finish(
            quote,
            "Quote sent to customer",
            [build_event(NegotiationEventType.QUOTE_PROPOSED, quote, agent.id, "agent", amount=amount)],
        )

    def counter_offer(
        self,
        customer: UserDB,
        quote_request_id: str,
        amount: str,
        reasoning: Optional[str] = None,
    ) -> TransitionResult:
        """
        Customer answers the agent's quote. Offer text and reasoning are
        scanned together; either one failing blocks the counter.
        """
        status = self.gate.ensure_active(customer.id)
        quote = self._load(quote_request_id)
        self._require_customer(quote, customer)

        amount = (amount or "").strip()
        reasoning = (reasoning or "").strip() or None
        if not amount:
            raise NegotiationError("Please enter your counter-offer")
        if quote.status != QuoteStatus.NEGOTIATING:
            raise InvalidTransitionError("There is no quote to counter yet")

        self.gate.screen(
            customer.id,
            LOCATION_CUSTOMER_COUNTER,
            {"amount": amount, "reasoning": reasoning},
            status=status,
        )

        ok, message = self.state_machine.set_customer_offer(quote, amount, reasoning)
        if not ok:
            raise InvalidTransitionError(message)
        self._commit("counter_offer", quote.id)
        self.db.refresh(quote)

        logger.info(f"Customer {customer.id} countered {amount!r} on quote request {quote.id}")
        return self._finish(
            quote,
            "Counter-offer sent",
            [build_event(
                NegotiationEventType.COUNTER_OFFERED, quote, customer.id, "customer",
                amount=amount, reasoning=reasoning,
            )],
        )

    # =========================================================================
    # ACCEPTANCE
    # =========================================================================

    def accept(self, user: UserDB, quote_request_id: str) -> TransitionResult:
        """
        Accept the other side's active offer. With no offer on the table only
        the agent can accept, at their standing rate. An agent who dismissed
        the request can no longer act on it.

        Idempotent: a second accept, from either side, returns the record
        unchanged and never overwrites the frozen final price.
        """
        self.gate.ensure_active(user.id)
        quote = self._load(quote_request_id)
        role = self._party_role(quote, user)
        if role == "agent":
            self._require_not_dismissed(quote)

        if quote.status in (QuoteStatus.PAYMENT_PENDING, QuoteStatus.COMPLETED):
            return self._unchanged(quote, "Quote already accepted")
        if quote.status not in NEGOTIABLE_STATES:
            return self._unchanged(quote, "This quote request is no longer available")

        offer = quote.active_offer
        # Only the agent can accept at their standing rate
        if offer is None and role == "customer":
            raise InvalidTransitionError("There is no quote to accept yet")
        if (
            (role == "agent" and isinstance(offer, AgentOffer))
            or (role == "customer" and isinstance(offer, CustomerOffer))
        ):
            raise InvalidTransitionError("You cannot accept your own offer")

        values = self.state_machine.acceptance_values(quote, accepted_by=user.id)

        # Compare-and-set on status: the first accept wins
        try:
            result = self.db.execute(
                update(QuoteRequestDB)
                .where(
                    QuoteRequestDB.id == quote.id,
                    QuoteRequestDB.status.in_(NEGOTIABLE_STATES),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to accept quote request {quote.id}")
            raise StorageUnavailableError()

        if result.rowcount == 0:
            self.db.rollback()
            self.db.refresh(quote)
            logger.info(f"Accept on quote request {quote.id} lost the race; now {quote.status.value}")
            return self._unchanged(quote, "Quote already accepted")

        self._commit("accept", quote.id)
        self.db.refresh(quote)

        logger.info(
            f"Quote request {quote.id} accepted by {role} {user.id} at {quote.final_agreed_price!r}"
        )
        return self._finish(
            quote,
            "Quote accepted - awaiting payment",
            [build_event(
                NegotiationEventType.QUOTE_ACCEPTED, quote, user.id, role,
                final_agreed_price=quote.final_agreed_price,
                offer_party=quote.offer_party.value if quote.offer_party else None,
            )],
        )

    # =========================================================================
    # REJECTION / DISMISSAL
    # =========================================================================

    def reject_offer(self, customer: UserDB, quote_request_id: str) -> TransitionResult:
        """Customer turns down the agent's quote; both slots are cleared."""
        self.gate.ensure_active(customer.id)
        quote = self._load(quote_request_id)
        self._require_customer(quote, customer)

        if quote.status != QuoteStatus.NEGOTIATING or quote.offer_party != OfferParty.AGENT:
            raise InvalidTransitionError("There is no quote from the agent to reject")

        ok, message = self.state_machine.clear_offers(quote)
        if not ok:
            raise InvalidTransitionError(message)
        self._commit("reject_offer", quote.id)
        self.db.refresh(quote)

        logger.info(f"Customer {customer.id} rejected the quote on {quote.id}")
        return self._finish(
            quote,
            "Quote rejected - the agent can send a new one",
            [build_event(NegotiationEventType.OFFER_REJECTED, quote, customer.id, "customer")],
        )

    def reject_request(self, agent: UserDB, quote_request_id: str) -> TransitionResult:
        """Agent declines the whole job. Terminal for both parties."""
        self.gate.ensure_active(agent.id)
        quote = self._load(quote_request_id)
        self._require_agent(quote, agent)
        self._require_not_dismissed(quote)

        if quote.status == QuoteStatus.REJECTED:
            return self._unchanged(quote, "Quote request already rejected")
        if quote.status not in NEGOTIABLE_STATES:
            raise InvalidTransitionError(f"Cannot reject a request that is {quote.status.value}")

        now = datetime.utcnow()
        ok, message = self.state_machine.transition(quote, QuoteStatus.REJECTED, now)
        if not ok:
            raise InvalidTransitionError(message)
        quote.active_offer = None
        quote.rejected_at = now
        quote.rejected_by = agent.id
        self._commit("reject_request", quote.id)
        self.db.refresh(quote)

        logger.info(f"Agent {agent.id} rejected quote request {quote.id}")
        return self._finish(
            quote,
            "Quote request rejected and customer notified",
            [build_event(NegotiationEventType.REQUEST_REJECTED, quote, agent.id, "agent")],
        )

    def dismiss_by_agent(self, agent: UserDB, quote_request_id: str) -> TransitionResult:
        """Hide the record from the agent only. The customer is not told."""
        self.gate.ensure_active(agent.id)
        quote = self._load(quote_request_id)
        self._require_agent(quote, agent)

        if quote.dismissed_by_agent:
            return self._unchanged(quote, "Already dismissed")
        if quote.status not in OPEN_STATES:
            return self._unchanged(quote, "This quote request is no longer available")

        now = datetime.utcnow()
        quote.dismissed_by_agent = True
        quote.agent_dismissed_at = now
        quote.updated_at = now
        self._commit("dismiss_by_agent", quote.id)
        self.db.refresh(quote)

        logger.info(f"Agent {agent.id} dismissed quote request {quote.id}")
        return self._finish(
            quote,
            "Quote request dismissed from your list",
            [build_event(NegotiationEventType.DISMISSED_BY_AGENT, quote, agent.id, "agent")],
        )

    def dismiss_by_customer(
        self,
        customer: UserDB,
        quote_request_id: str,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """
        Withdraw the request. Removed from both parties' lists.
        The reason is stored for platform review and is not policy-gated.
        """
        self.gate.ensure_active(customer.id)
        quote = self._load(quote_request_id)
        self._require_customer(quote, customer)

        if quote.status == QuoteStatus.DISMISSED_BY_CUSTOMER:
            return self._unchanged(quote, "Already dismissed")
        if quote.status not in OPEN_STATES:
            return self._unchanged(quote, "This quote request is no longer available")

        now = datetime.utcnow()
        reason = (reason or "").strip()
        ok, message = self.state_machine.transition(quote, QuoteStatus.DISMISSED_BY_CUSTOMER, now)
        if not ok:
            raise InvalidTransitionError(message)
        quote.dismissal_reason = reason or NO_DISMISSAL_REASON
        quote.dismissed_at = now
        quote.dismissed_by = customer.id
        self._commit("dismiss_by_customer", quote.id)
        self.db.refresh(quote)

        logger.info(f"Customer {customer.id} dismissed quote request {quote.id}")
        return self._finish(
            quote,
            "Quote request removed from both lists",
            [build_event(
                NegotiationEventType.DISMISSED_BY_CUSTOMER, quote, customer.id, "customer",
                reason=reason or None,
            )],
        )

    # =========================================================================
    # SYSTEM / ADMIN
    # =========================================================================

    def record_payment_outcome(
        self,
        quote_request_id: str,
        succeeded: bool,
        payment_reference: Optional[str] = None,
    ) -> TransitionResult:
        """
        External payment signal.

        Success: payment_pending -> completed.
        Failure: back to negotiating if an offer is still on the table,
        otherwise pending; the frozen price is released.
        """
        quote = self._load(quote_request_id)

        if succeeded and quote.status == QuoteStatus.COMPLETED:
            return self._unchanged(quote, "Payment already recorded")
        if quote.status != QuoteStatus.PAYMENT_PENDING:
            logger.warning(
                f"Ignoring payment outcome for quote request {quote.id} in state {quote.status.value}"
            )
            return self._unchanged(quote, f"Quote request is {quote.status.value}")

        now = datetime.utcnow()
        if succeeded:
            target = QuoteStatus.COMPLETED
            event_type = NegotiationEventType.PAYMENT_COMPLETED
        else:
            target = QuoteStatus.NEGOTIATING if quote.active_offer is not None else QuoteStatus.PENDING
            event_type = NegotiationEventType.PAYMENT_FAILED

        agreed_price = quote.final_agreed_price
        ok, message = self.state_machine.transition(quote, target, now)
        if not ok:
            raise InvalidTransitionError(message)

        if succeeded:
            quote.payment_required = False
            quote.payment_completed_at = now
        else:
            quote.final_agreed_price = None
            quote.payment_required = False
            quote.accepted_at = None
            quote.accepted_by = None
            quote.payment_failed_at = now
        self._commit("record_payment_outcome", quote.id)
        self.db.refresh(quote)

        logger.info(
            f"Payment {'completed' if succeeded else 'failed'} for quote request {quote.id} "
            f"(ref={payment_reference}); now {quote.status.value}"
        )
        return self._finish(
            quote,
            "Payment recorded" if succeeded else "Payment failed - negotiation reopened",
            [build_event(
                event_type, quote, "system", "system",
                amount=agreed_price, payment_reference=payment_reference,
            )],
        )

    def archive(self, admin: UserDB, quote_request_id: str) -> TransitionResult:
        if admin.role != UserRole.ADMIN:
            raise NotAPartyError("Only administrators can archive quote requests")

        quote = self._load(quote_request_id)
        if quote.status == QuoteStatus.ARCHIVED:
            return self._unchanged(quote, "Already archived")

        now = datetime.utcnow()
        ok, message = self.state_machine.transition(quote, QuoteStatus.ARCHIVED, now)
        if not ok:
            raise InvalidTransitionError(message)
        quote.archived_at = now
        self._commit("archive", quote.id)
        self.db.refresh(quote)

        logger.info(f"Quote request {quote.id} archived by admin {admin.id}")
        return self._finish(
            quote,
            "Quote request archived",
            [build_event(NegotiationEventType.ARCHIVED, quote, admin.id, "admin")],
        )

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, user: UserDB, quote_request_id: str) -> QuoteRequestDB:
        """
        Authoritative re-read. Suspended users keep read access.
        """
        quote = self._load(quote_request_id)
        if user.role != UserRole.ADMIN and not quote.is_party(user.id):
            raise NotAPartyError()
        return quote

    def list_for_user(self, user: UserDB) -> List[QuoteRequestDB]:
        """
        Active list for one user.

        Completed, rejected, customer-dismissed and archived records are
        hidden from both sides; agents also lose what they dismissed.
        """
        query = self.db.query(QuoteRequestDB).filter(QuoteRequestDB.status.notin_(CLOSED_STATES))

        if user.role == UserRole.CUSTOMER:
            query = query.filter(QuoteRequestDB.customer_id == user.id)
        elif user.role == UserRole.AGENT:
            query = query.filter(
                QuoteRequestDB.agent_id == user.id,
                QuoteRequestDB.dismissed_by_agent.is_(False),
            )

        return query.order_by(QuoteRequestDB.created_at.desc(), QuoteRequestDB.id).all()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _load(self, quote_request_id: str) -> QuoteRequestDB:
        quote = self.db.get(QuoteRequestDB, quote_request_id)
        if quote is None:
            raise QuoteRequestNotFoundError(quote_request_id)
        return quote

    def _party_role(self, quote: QuoteRequestDB, user: UserDB) -> str:
        if user.id == quote.customer_id:
            return "customer"
        if user.id == quote.agent_id:
            return "agent"
        raise NotAPartyError()

    def _require_customer(self, quote: QuoteRequestDB, user: UserDB) -> None:
        if user.id != quote.customer_id:
            raise NotAPartyError("Only the customer on this request can do that")

    def _require_agent(self, quote: QuoteRequestDB, user: UserDB) -> None:
        if user.id != quote.agent_id:
            raise NotAPartyError("Only the agent on this request can do that")

    def _require_not_dismissed(self, quote: QuoteRequestDB) -> None:
        """A dismissed request is gone from the agent's side."""
        if quote.dismissed_by_agent:
            raise QuoteUnavailableError()

    def _commit(self, action: str, quote_request_id: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to commit {action} on quote request {quote_request_id}")
            raise StorageUnavailableError()

    def _unchanged(self, quote: QuoteRequestDB, message: str) -> TransitionResult:
        return TransitionResult(quote=quote, changed=False, message=message)

    def _finish(
        self,
        quote: QuoteRequestDB,
        message: str,
        events: Iterable[NegotiationEvent],
    ) -> TransitionResult:
        """Dispatch after commit. Handler failures never undo the transition."""
        events = list(events)
        self.dispatcher.dispatch(events)
        return TransitionResult(quote=quote, changed=True, message=message, events=events)
