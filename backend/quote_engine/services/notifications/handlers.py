"""
Negotiation Event Handlers

SystemCommentHandler  - audit trail in the shared discussion thread
NotificationHandler   - tells the other party what happened

Both run after the transition has been committed.
"""
import logging
from typing import Optional

from ... import config
from ..negotiation.discussion import DiscussionThreadService
from ..negotiation.events import NegotiationEvent, NegotiationEventType, PartySnapshot
from .notifier import Notification, Notifier

logger = logging.getLogger(__name__)


# =============================================================================
# AUDIT COMMENTS
# =============================================================================

def system_comment_text(event: NegotiationEvent) -> Optional[str]:
    """
    Audit line for the shared thread, or None when the event stays out of it.
    Agent dismissals are private to the agent.
    """
    details = event.details
    t = NegotiationEventType

    if event.event_type == t.REQUEST_CREATED:
        return f"Quote request sent to {event.agent.name}"
    if event.event_type == t.QUOTE_PROPOSED:
        return f"Custom quote proposed: {details.get('amount')}"
    if event.event_type == t.COUNTER_OFFERED:
        text = f"Customer counter-offer: {details.get('amount')}"
        if details.get("reasoning"):
            text += f"\nReason: {details['reasoning']}"
        return text
    if event.event_type == t.QUOTE_ACCEPTED:
        who = "Customer" if event.actor_role == "customer" else event.agent.name
        return f"{who} accepted the quote at {details.get('final_agreed_price')} - awaiting payment"
    if event.event_type == t.OFFER_REJECTED:
        return "Customer rejected the custom quote - available for new response"
    if event.event_type == t.REQUEST_REJECTED:
        return f"Quote request rejected by {event.agent.name}"
    if event.event_type == t.DISMISSED_BY_CUSTOMER:
        text = "Quote request dismissed by customer - removed from both sides"
        if details.get("reason"):
            text += f"\nReason: {details['reason']}"
        return text
    if event.event_type == t.PAYMENT_COMPLETED:
        return f"Payment completed successfully! Job moved to Active Jobs. Amount: {details.get('amount')}"
    if event.event_type == t.PAYMENT_FAILED:
        return "Payment did not complete - quote reopened for negotiation"
    if event.event_type == t.ARCHIVED:
        return "Quote request archived by the platform"

    # DISMISSED_BY_AGENT, MESSAGE_POSTED
    return None


class SystemCommentHandler:

    def __init__(self, thread: DiscussionThreadService):
        self.thread = thread

    def handle(self, event: NegotiationEvent) -> None:
        body = system_comment_text(event)
        if body is None:
            return
        self.thread.append_system_message(
            quote_request_id=event.quote_request_id,
            body=body,
            actor_id=event.actor_id,
            event_type=event.event_type.value,
        )


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationHandler:
    """
    Builds one notification per event for the party who did not act.
    Agent dismissals and archiving notify nobody.
    """

    def __init__(self, notifier: Notifier, site_url: Optional[str] = None):
        self.notifier = notifier
        self.site_url = (site_url or config.SITE_URL).rstrip("/")

    def handle(self, event: NegotiationEvent) -> None:
        notification = self.build(event)
        if notification is None:
            return
        self.notifier.notify(notification)
        logger.info(
            f"Notified {notification.recipient_email} of {event.event_type.value} "
            f"on quote request {event.quote_request_id}"
        )

    def build(self, event: NegotiationEvent) -> Optional[Notification]:
        t = NegotiationEventType
        details = event.details
        title = event.job_title
        customer = event.customer
        agent = event.agent
        quotes_link = self._link("/quote-requests")

        if event.event_type == t.REQUEST_CREATED:
            return self._to(agent, customer, (
                f'{customer.name} has sent you a quote request for "{title}". Please review and respond.'
            ), quotes_link)

        if event.event_type == t.QUOTE_PROPOSED:
            return self._to(customer, agent, (
                f'{agent.name} has sent you a custom quote for "{title}": {details.get("amount")}. '
                f"Please review and respond."
            ), quotes_link)

        if event.event_type == t.COUNTER_OFFERED:
            reason = f'. Reason: {details["reasoning"]}' if details.get("reasoning") else ""
            return self._to(agent, customer, (
                f'{customer.name} has made a counter-offer for "{title}": {details.get("amount")}{reason}. '
                f"Please review and respond."
            ), quotes_link)

        if event.event_type == t.QUOTE_ACCEPTED:
            price = details.get("final_agreed_price")
            if event.actor_role == "agent":
                if details.get("offer_party") == "customer":
                    accepted = f'{agent.name} has accepted your counter-offer of {price} for "{title}".'
                else:
                    accepted = (
                        f'{agent.name} has accepted your quote request for "{title}" '
                        f"at their standard rate of {price}."
                    )
                return self._to(customer, agent, (
                    f"{accepted} Please complete payment to confirm the job."
                ), self._link(f"/payment-checkout?quoteId={event.quote_request_id}"))
            return self._to(agent, customer, (
                f'{customer.name} has accepted your quote of {price} for "{title}". '
                f"The job will be confirmed once payment is complete."
            ), quotes_link)

        if event.event_type == t.OFFER_REJECTED:
            return self._to(agent, customer, (
                f'{customer.name} has declined your quote for "{title}". You can send a new quote.'
            ), quotes_link)

        if event.event_type == t.REQUEST_REJECTED:
            return self._to(customer, agent, (
                f'{agent.name} is unable to take on your job "{title}" at this time. '
                f"You can search for other tradesmen or adjust your requirements."
            ), self._link("/browse"))

        if event.event_type == t.PAYMENT_COMPLETED:
            return self._to(agent, customer, (
                f'Great news! {customer.name} has completed payment for "{title}". '
                f"The job is now active and ready to start."
            ), self._link("/active-jobs"))

        if event.event_type == t.PAYMENT_FAILED:
            return self._to(customer, agent, (
                f'Your payment for "{title}" did not go through. '
                f"The quote is open again so you can try once more."
            ), quotes_link)

        if event.event_type == t.MESSAGE_POSTED:
            if event.actor_role == "customer":
                recipient, sender = agent, customer
            else:
                recipient, sender = customer, agent
            return self._to(recipient, sender, (
                f'New comment on job "{title}": {details.get("body")}'
            ), quotes_link)

        return None

    def _to(self, recipient: PartySnapshot, sender: PartySnapshot, text: str, link: str) -> Optional[Notification]:
        if not recipient.email:
            logger.debug(f"No email on file for user {recipient.user_id}; notification skipped")
            return None
        return Notification(
            recipient_email=recipient.email,
            recipient_name=recipient.name,
            sender_name=sender.name,
            text=text,
            action_link=link,
        )

    def _link(self, path: str) -> str:
        return f"{self.site_url}{path}"
