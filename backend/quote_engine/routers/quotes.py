"""
Quote Request API Routes

Negotiation between one customer and one agent, plus the discussion
thread attached to each request. Every response carries the authoritative
record so clients never act on stale local state.
"""
from datetime import datetime
from typing import Optional, List
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth import get_current_user, require_admin
from ..dependencies import get_quote_service, get_thread_service
from ..models.db_models import UserDB, Urgency
from ..models.domain import TransitionResult
from ..services.negotiation import (
    DiscussionThreadService,
    QuoteNegotiationService,
    serialize_message,
    serialize_quote,
)
from .errors import http_errors


router = APIRouter(prefix="/quotes", tags=["quotes"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CreateQuoteRequest(BaseModel):
    """Customer's job request to one agent."""
    agent_id: str = Field(..., description="Agent the request is addressed to")
    title: str = Field(..., description="Job title")
    description: str = Field(..., description="What needs doing")
    budget_note: Optional[str] = Field(None, description="Free-text budget guidance")
    additional_notes: Optional[str] = Field(None, description="Anything else the agent should know")
    urgency: Urgency = Field(default=Urgency.NORMAL)
    preferred_dates: List[str] = Field(default_factory=list)
    media_refs: List[str] = Field(default_factory=list, description="References to uploaded photos")
    expires_at: Optional[datetime] = Field(None, description="Stored for the expiry job; not enforced here")


class ProposeQuoteRequest(BaseModel):
    amount: str = Field(..., description="Agent's quote, e.g. '£200 fixed'")


class CounterOfferRequest(BaseModel):
    amount: str = Field(..., description="Customer's counter-offer")
    reasoning: Optional[str] = Field(None, description="Why the customer is countering")


class DismissRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Customer's reason for withdrawing")


class PostMessageRequest(BaseModel):
    text: str = Field(..., description="Comment body")


def _transition_response(result: TransitionResult, viewer: UserDB) -> dict:
    return {
        "changed": result.changed,
        "message": result.message,
        "quote": serialize_quote(result.quote, viewer.id),
    }


# =============================================================================
# NEGOTIATION
# =============================================================================

@router.post("", response_model=dict)
async def create_quote_request(
    request: CreateQuoteRequest,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    """
    Create a quote request.

    Refused entirely (nothing persisted) when the customer is suspended or
    any free-text field contains contact details.
    """
    with http_errors():
        result = service.create(
            customer=current_user,
            agent_id=request.agent_id,
            title=request.title,
            description=request.description,
            budget_note=request.budget_note,
            additional_notes=request.additional_notes,
            urgency=request.urgency,
            preferred_dates=request.preferred_dates,
            media_refs=request.media_refs,
            expires_at=request.expires_at,
        )
    return _transition_response(result, current_user)


@router.get("", response_model=List[dict])
async def list_quote_requests(
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    """Active quote requests for the current user."""
    with http_errors():
        quotes = service.list_for_user(current_user)
    return [serialize_quote(q, current_user.id) for q in quotes]


@router.get("/{quote_request_id}", response_model=dict)
async def get_quote_request(
    quote_request_id: str,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    with http_errors():
        quote = service.get(current_user, quote_request_id)
    return serialize_quote(quote, current_user.id)


@router.post("/{quote_request_id}/propose", response_model=dict)
async def propose_quote(
    quote_request_id: str,
    request: ProposeQuoteRequest,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    """Agent sends a custom quote. Clears any customer counter-offer."""
    with http_errors():
        result = service.propose_quote(current_user, quote_request_id, request.amount)
    return _transition_response(result, current_user)


@router.post("/{quote_request_id}/counter", response_model=dict)
async def counter_offer(
    quote_request_id: str,
    request: CounterOfferRequest,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    """Customer counters the agent's quote. Clears the agent's quote."""
    with http_errors():
        result = service.counter_offer(current_user, quote_request_id, request.amount, request.reasoning)
    return _transition_response(result, current_user)


@router.post("/{quote_request_id}/accept", response_model=dict)
async def accept_quote(
    quote_request_id: str,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    """
    Accept the active offer. Safe to retry: a repeated accept returns the
    record unchanged with the price fixed by the first.
    """
    with http_errors():
        result = service.accept(current_user, quote_request_id)
    return _transition_response(result, current_user)


@router.post("/{quote_request_id}/reject-offer", response_model=dict)
async def reject_offer(
    quote_request_id: str,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    with http_errors():
        result = service.reject_offer(current_user, quote_request_id)
    return _transition_response(result, current_user)


@router.post("/{quote_request_id}/reject", response_model=dict)
async def reject_request(
    quote_request_id: str,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    """Agent declines the job. The customer is told to look elsewhere."""
    with http_errors():
        result = service.reject_request(current_user, quote_request_id)
    return _transition_response(result, current_user)


@router.post("/{quote_request_id}/dismiss", response_model=dict)
async def dismiss_quote_request(
    quote_request_id: str,
    request: Optional[DismissRequest] = None,
    current_user: UserDB = Depends(get_current_user),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    """
    Agent: hide from own list only.
    Customer: withdraw, removing it from both lists.
    """
    with http_errors():
        quote = service.get(current_user, quote_request_id)
        if current_user.id == quote.agent_id:
            result = service.dismiss_by_agent(current_user, quote_request_id)
        else:
            reason = request.reason if request else None
            result = service.dismiss_by_customer(current_user, quote_request_id, reason)
    return _transition_response(result, current_user)


@router.post("/{quote_request_id}/archive", response_model=dict)
async def archive_quote_request(
    quote_request_id: str,
    admin: UserDB = Depends(require_admin),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    with http_errors():
        result = service.archive(admin, quote_request_id)
    return _transition_response(result, admin)


# =============================================================================
# DISCUSSION THREAD
# =============================================================================

@router.get("/{quote_request_id}/messages", response_model=List[dict])
async def list_messages(
    quote_request_id: str,
    current_user: UserDB = Depends(get_current_user),
    thread: DiscussionThreadService = Depends(get_thread_service),
):
    with http_errors():
        messages = thread.list_messages(current_user, quote_request_id)
    return [serialize_message(m) for m in messages]


@router.post("/{quote_request_id}/messages", response_model=dict)
async def post_message(
    quote_request_id: str,
    request: PostMessageRequest,
    current_user: UserDB = Depends(get_current_user),
    thread: DiscussionThreadService = Depends(get_thread_service),
):
    """
    Post a comment. A policy violation returns 422 with clear_draft=true.
    """
    with http_errors():
        message = thread.post_message(current_user, quote_request_id, request.text)
    return serialize_message(message)
