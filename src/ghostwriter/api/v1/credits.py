"""Credits API v1 endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ghostwriter.api.deps import get_credit_service, require_service_key
from ghostwriter.ledger.credits import ACTION_COSTS, CreditService

router = APIRouter(
    prefix="/credits",
    tags=["credits"],
    dependencies=[Depends(require_service_key)],
)


# ==================== MODELS ====================


class CreditsResponse(BaseModel):
    """Current balance."""
    email: str
    credits: int


class SpendRequest(BaseModel):
    """Request to spend credits."""
    email: str
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=100)
    metadata: dict[str, Any] | None = None


class ChargeRequest(BaseModel):
    """Request to charge a studio action at its configured cost."""
    email: str
    action: str


class ChargeResponse(BaseModel):
    action: str
    charged: int
    credits: int


class LedgerEntryResponse(BaseModel):
    id: int
    delta: int
    reason: str
    metadata: dict[str, Any] | None = None
    created_at: str


class ReconcileResponse(BaseModel):
    """Profile balance compared with a full ledger replay."""
    email: str
    profile_balance: int
    ledger_balance: int
    drift: int
    entries: int


# ==================== ENDPOINTS ====================


@router.get("", response_model=CreditsResponse)
def get_credits(
    email: str = Query(...),
    credits: CreditService = Depends(get_credit_service),
):
    """Get the balance, applying the monthly reset when due."""
    return CreditsResponse(email=email.strip().lower(), credits=credits.get_credits(email))


@router.post("/spend", response_model=CreditsResponse)
def spend_credits(
    body: SpendRequest,
    credits: CreditService = Depends(get_credit_service),
):
    """Spend credits. The balance is clamped at zero."""
    balance = credits.spend(body.email, body.amount, body.reason, body.metadata)
    return CreditsResponse(email=body.email.strip().lower(), credits=balance)


@router.post("/charge", response_model=ChargeResponse)
def charge_action(
    body: ChargeRequest,
    credits: CreditService = Depends(get_credit_service),
):
    """Charge an action only if the balance covers it.

    Responds 402 when the balance is too low.
    """
    return credits.charge_action(body.email, body.action)


@router.get("/costs")
def get_action_costs():
    """Credit cost of each studio action."""
    return ACTION_COSTS


@router.get("/ledger", response_model=list[LedgerEntryResponse])
def get_ledger(
    email: str = Query(...),
    limit: int = Query(default=50, ge=1, le=500),
    credits: CreditService = Depends(get_credit_service),
):
    """Ledger entries, newest first."""
    return credits.get_ledger(email, limit=limit)


@router.get("/reconcile", response_model=ReconcileResponse)
def reconcile(
    email: str = Query(...),
    credits: CreditService = Depends(get_credit_service),
):
    return credits.reconcile(email)
