"""
Payment Outcome Route

Entry point for the external payment processor's "paid" / "failed" signal.
The processor's webhook relay calls this with a platform (admin) token.
"""
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..auth import require_admin
from ..dependencies import get_quote_service
from ..models.db_models import UserDB
from ..services.negotiation import QuoteNegotiationService, serialize_quote
from .errors import http_errors


router = APIRouter(prefix="/payments", tags=["payments"])


class PaymentOutcomeRequest(BaseModel):
    quote_request_id: str = Field(..., description="Quote request the payment was for")
    succeeded: bool = Field(..., description="True when the payment cleared")
    payment_reference: Optional[str] = Field(None, description="Processor's payment id")


@router.post("/outcome", response_model=dict)
async def record_payment_outcome(
    request: PaymentOutcomeRequest,
    admin: UserDB = Depends(require_admin),
    service: QuoteNegotiationService = Depends(get_quote_service),
):
    with http_errors():
        result = service.record_payment_outcome(
            request.quote_request_id,
            succeeded=request.succeeded,
            payment_reference=request.payment_reference,
        )
    return {
        "changed": result.changed,
        "message": result.message,
        "quote": serialize_quote(result.quote),
    }
