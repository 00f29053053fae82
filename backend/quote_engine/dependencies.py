"""
Quote Engine - Service Wiring

Per-request construction of the policy gate, discussion thread and
negotiation service, sharing one database session and one dispatcher.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from .database import get_db
from .services.compliance import ComplianceLedger, PolicyGate
from .services.negotiation import DiscussionThreadService, EventDispatcher, QuoteNegotiationService
from .services.notifications import Notifier, NotificationHandler, SystemCommentHandler, build_notifier


@lru_cache()
def get_notifier() -> Notifier:
    return build_notifier()


def get_ledger(db: Session = Depends(get_db)) -> ComplianceLedger:
    return ComplianceLedger(db)


def get_policy_gate(ledger: ComplianceLedger = Depends(get_ledger)) -> PolicyGate:
    return PolicyGate(ledger)


def get_thread_service(
    db: Session = Depends(get_db),
    gate: PolicyGate = Depends(get_policy_gate),
    notifier: Notifier = Depends(get_notifier),
) -> DiscussionThreadService:
    dispatcher = EventDispatcher()
    thread = DiscussionThreadService(db, gate, dispatcher)
    dispatcher.register(SystemCommentHandler(thread))
    dispatcher.register(NotificationHandler(notifier))
    return thread


def get_quote_service(
    db: Session = Depends(get_db),
    thread: DiscussionThreadService = Depends(get_thread_service),
) -> QuoteNegotiationService:
    return QuoteNegotiationService(db, thread.gate, thread.dispatcher)
