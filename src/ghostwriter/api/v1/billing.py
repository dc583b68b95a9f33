"""Billing API v1 endpoints.

Payment adapters call ``/billing/checkout-credits`` once a checkout has been
confirmed by the provider; replays of the same event are answered without
granting credits again.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ghostwriter.api.deps import get_billing_service, require_service_key
from ghostwriter.billing.service import CHECKOUT_COMPLETED, BillingService

router = APIRouter(
    prefix="/billing",
    tags=["billing"],
    dependencies=[Depends(require_service_key)],
)


class CheckoutCreditsRequest(BaseModel):
    """Confirmed checkout to apply."""
    event_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    user_email: str
    credits: int = Field(..., gt=0)
    item: str = "Credit Package"
    amount_cents: int = Field(..., ge=0)
    event_type: str = CHECKOUT_COMPLETED


class CheckoutCreditsResponse(BaseModel):
    applied: bool
    credits: int | None = None
    reason: str | None = None


class TransactionResponse(BaseModel):
    id: int
    date: str
    item: str
    amount: float
    credits: int
    status: str


@router.post("/checkout-credits", response_model=CheckoutCreditsResponse, response_model_exclude_none=True)
def apply_checkout_credits(
    body: CheckoutCreditsRequest,
    billing: BillingService = Depends(get_billing_service),
):
    """Grant purchased credits once per payment event."""
    return billing.apply_checkout_credits(
        event_id=body.event_id,
        session_id=body.session_id,
        user_email=body.user_email,
        credits=body.credits,
        item=body.item,
        amount_cents=body.amount_cents,
        event_type=body.event_type,
    )


@router.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    email: str = Query(...),
    billing: BillingService = Depends(get_billing_service),
):
    """Purchase history, newest first."""
    return billing.list_transactions(email)
