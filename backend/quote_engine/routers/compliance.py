"""
Compliance API Routes

Users read their own compliance status; the live scan endpoint gives
as-you-type feedback without recording anything.
"""
from typing import Optional, Dict
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..auth import get_current_user
from ..dependencies import get_policy_gate
from ..models.db_models import UserDB
from ..services.compliance import PolicyGate
from ..services.policy import scan, scan_fields


router = APIRouter(tags=["compliance"])


class ScanRequest(BaseModel):
    """Either a single text or a set of named fields."""
    text: Optional[str] = Field(None, description="Text to check")
    fields: Optional[Dict[str, Optional[str]]] = Field(None, description="Named fields, checked independently")


@router.get("/compliance/me", response_model=dict)
async def get_my_compliance_status(
    current_user: UserDB = Depends(get_current_user),
    gate: PolicyGate = Depends(get_policy_gate),
):
    """
    Own status only. Used by clients to disable controls for suspended users.
    """
    status = gate.ledger.status(current_user.id)
    data = status.to_dict()
    data["warning"] = gate.short_warning_for(current_user.id)
    data["suspension_threshold"] = gate.ledger.suspension_threshold
    return data


@router.post("/policy/scan", response_model=dict)
async def scan_text(
    request: ScanRequest,
    current_user: UserDB = Depends(get_current_user),
):
    """
    Check text for contact details. Pure: nothing is recorded, safe to call
    on every keystroke.
    """
    if request.fields is not None:
        per_field, merged = scan_fields(request.fields)
        data = merged.to_dict()
        data["fields"] = {name: result.to_dict() for name, result in per_field.items()}
        return data

    if request.text is None:
        raise HTTPException(status_code=400, detail="Provide text or fields to scan")

    return scan(request.text).to_dict()
