"""
Discussion Thread

Append-only comments on a quote request, visible to both parties and the
platform. Posting is policy-gated exactly like a negotiation transition.
"""
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import NegotiationError, NotAPartyError, QuoteRequestNotFoundError, QuoteUnavailableError, StorageUnavailableError
from ...models.db_models import AuthorRole, DiscussionMessageDB, QuoteRequestDB, QuoteStatus, UserDB, UserRole
from ..compliance import PolicyGate
from .events import EventDispatcher, NegotiationEventType, build_event

logger = logging.getLogger(__name__)


LOCATION_COMMENT = "quote_comment"

SYSTEM_AUTHOR_NAME = "System"

# Commenting on these is genuinely illegal, not a race
THREAD_CLOSED_STATES = (
    QuoteStatus.ARCHIVED,
    QuoteStatus.REJECTED,
    QuoteStatus.DISMISSED_BY_CUSTOMER,
)


def serialize_message(message: DiscussionMessageDB) -> Dict[str, Any]:
    return {
        "id": message.id,
        "quote_request_id": message.quote_request_id,
        "author_id": message.author_id,
        "author_role": message.author_role.value,
        "author_name": message.author_name,
        "body": message.body,
        "event_type": message.event_type,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


class DiscussionThreadService:

    def __init__(
        self,
        db_session: Session,
        gate: PolicyGate,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.db = db_session
        self.gate = gate
        self.dispatcher = dispatcher or EventDispatcher()

    def post_message(self, author: UserDB, quote_request_id: str, text: str) -> DiscussionMessageDB:
        """
        Suspension check, party check, open-thread check, then policy scan.

        A dirty scan raises ContactInfoViolationError with clear_draft set so
        the client discards the typed comment.
        """
        status = self.gate.ensure_active(author.id)

        quote = self.db.get(QuoteRequestDB, quote_request_id)
        if quote is None:
            raise QuoteRequestNotFoundError(quote_request_id)
        if not quote.is_party(author.id):
            raise NotAPartyError("Only the customer and agent on this request can comment")
        if quote.status in THREAD_CLOSED_STATES:
            raise QuoteUnavailableError()

        body = (text or "").strip()
        if not body:
            raise NegotiationError("Comment cannot be empty")

        self.gate.screen(author.id, LOCATION_COMMENT, {"comment": body}, status=status, clear_draft=True)

        role = AuthorRole.CUSTOMER if author.id == quote.customer_id else AuthorRole.AGENT
        message = DiscussionMessageDB(
            id=str(uuid4()),
            quote_request_id=quote.id,
            author_id=author.id,
            author_role=role,
            author_name=author.display_name,
            body=body,
            created_at=datetime.utcnow(),
        )
        self.db.add(message)
        self._commit(quote.id)
        self.db.refresh(message)

        logger.info(f"Comment {message.id} posted by {role.value} {author.id} on quote request {quote.id}")
        self.dispatcher.dispatch([
            build_event(NegotiationEventType.MESSAGE_POSTED, quote, author.id, role.value, body=body),
        ])
        return message

    def list_messages(self, viewer: UserDB, quote_request_id: str) -> List[DiscussionMessageDB]:
        """Ordered by server timestamp. Suspended users keep read access."""
        quote = self.db.get(QuoteRequestDB, quote_request_id)
        if quote is None:
            raise QuoteRequestNotFoundError(quote_request_id)
        if viewer.role != UserRole.ADMIN and not quote.is_party(viewer.id):
            raise NotAPartyError()

        return (
            self.db.query(DiscussionMessageDB)
            .filter(DiscussionMessageDB.quote_request_id == quote_request_id)
            .order_by(DiscussionMessageDB.created_at, DiscussionMessageDB.id)
            .all()
        )

    def append_system_message(
        self,
        quote_request_id: str,
        body: str,
        actor_id: str,
        event_type: Optional[str] = None,
    ) -> DiscussionMessageDB:
        """Audit comment written by the platform. Not policy-gated."""
        message = DiscussionMessageDB(
            id=str(uuid4()),
            quote_request_id=quote_request_id,
            author_id=actor_id,
            author_role=AuthorRole.SYSTEM,
            author_name=SYSTEM_AUTHOR_NAME,
            body=body,
            event_type=event_type,
            created_at=datetime.utcnow(),
        )
        self.db.add(message)
        self._commit(quote_request_id)
        return message

    def _commit(self, quote_request_id: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to save comment on quote request {quote_request_id}")
            raise StorageUnavailableError()
