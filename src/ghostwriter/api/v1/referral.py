"""Referral API v1 endpoints."""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from ghostwriter.api.deps import get_referral_service, require_service_key
from ghostwriter.api.rate_limit import limiter
from ghostwriter.referral.service import ReferralService

router = APIRouter(
    prefix="/referral",
    tags=["referral"],
    dependencies=[Depends(require_service_key)],
)


# ==================== MODELS ====================


class ReferralCodeResponse(BaseModel):
    """Response with user's referral code."""
    code: str


class ClaimCodeRequest(BaseModel):
    """Request to claim an inviter's code."""
    email: str
    code: str


class ClaimCodeResponse(BaseModel):
    status: str


class ReferralSummaryResponse(BaseModel):
    """Response with referral statistics."""
    code: str | None = None
    invited_count: int
    rewarded_count: int
    earned_credits: int


# ==================== ENDPOINTS ====================


@router.get("/code", response_model=ReferralCodeResponse)
def get_referral_code(
    email: str = Query(...),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Get the user's referral code.

    Creates a new code if user doesn't have one.
    """
    return ReferralCodeResponse(code=referrals.get_or_create_code(email))


@router.post("/claim", response_model=ClaimCodeResponse)
@limiter.limit("30/minute")
def claim_referral_code(
    request: Request,
    body: ClaimCodeRequest,
    referrals: ReferralService = Depends(get_referral_service),
):
    """Attach the user to an inviter. Rewards follow the first saved song."""
    return referrals.claim_code(body.email, body.code)


@router.get("/summary", response_model=ReferralSummaryResponse)
def get_referral_summary(
    email: str = Query(...),
    referrals: ReferralService = Depends(get_referral_service),
):
    return referrals.get_summary(email)
