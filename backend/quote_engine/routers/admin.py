"""
Quote Engine - Admin Router
Compliance review and overrides. Reachable by platform administrators only.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..dependencies import get_ledger
from ..models.db_models import UserDB
from ..services.compliance import ComplianceLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/compliance", tags=["admin"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class OverrideRequest(BaseModel):
    """Reason recorded on the compliance audit trail."""
    notes: Optional[str] = Field("", description="Why the override was made")


def _require_user(db: Session, user_id: str) -> UserDB:
    user = db.get(UserDB, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/suspended", response_model=List[dict])
async def list_suspended_users(
    admin: UserDB = Depends(require_admin),
    ledger: ComplianceLedger = Depends(get_ledger),
):
    return ledger.suspended_users()


@router.get("/{user_id}", response_model=dict)
async def get_user_compliance(
    user_id: str,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
    ledger: ComplianceLedger = Depends(get_ledger),
):
    user = _require_user(db, user_id)
    data = ledger.status(user_id).to_dict()
    data.update({
        "user_id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "actions": ledger.action_history(user_id),
    })
    return data


@router.get("/{user_id}/violations", response_model=List[dict])
async def get_user_violations(
    user_id: str,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
    ledger: ComplianceLedger = Depends(get_ledger),
):
    """Violation log, oldest first, with truncated offending text."""
    _require_user(db, user_id)
    return ledger.violation_history(user_id)


@router.post("/{user_id}/unsuspend", response_model=dict)
async def unsuspend_user(
    user_id: str,
    request: Optional[OverrideRequest] = None,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
    ledger: ComplianceLedger = Depends(get_ledger),
):
    _require_user(db, user_id)
    notes = request.notes if request else ""
    logger.info(f"Admin {admin.id} unsuspending user {user_id}")
    return ledger.unsuspend(user_id, admin.id, notes or "").to_dict()


@router.post("/{user_id}/clear", response_model=dict)
async def clear_user_violations(
    user_id: str,
    request: Optional[OverrideRequest] = None,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
    ledger: ComplianceLedger = Depends(get_ledger),
):
    """Reset the count to 0 and reactivate. The violation log is kept."""
    _require_user(db, user_id)
    notes = request.notes if request else ""
    logger.info(f"Admin {admin.id} clearing violations for user {user_id}")
    return ledger.clear_violations(user_id, admin.id, notes or "").to_dict()
