"""Invite code API v1 endpoints."""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from ghostwriter.api.deps import get_invite_service, require_service_key
from ghostwriter.api.rate_limit import limiter
from ghostwriter.invites.service import InviteService

router = APIRouter(
    prefix="/invites",
    tags=["invites"],
    dependencies=[Depends(require_service_key)],
)


# ==================== MODELS ====================


class ValidateInviteRequest(BaseModel):
    code: str


class ValidateInviteResponse(BaseModel):
    valid: bool
    tier: str | None = None


class CreateInviteRequest(BaseModel):
    """Owner request to create an invite code."""
    owner_email: str
    code: str = Field(..., min_length=1, max_length=50)
    tier: str
    max_uses: int = Field(default=0, ge=0)


class DeactivateInviteRequest(BaseModel):
    owner_email: str
    code: str


class InviteResponse(BaseModel):
    code: str
    tier: str
    max_uses: int
    current_uses: int
    active: bool
    created_at: str


# ==================== ENDPOINTS ====================


@router.post("/validate", response_model=ValidateInviteResponse)
@limiter.limit("20/minute")
def validate_invite(
    request: Request,
    body: ValidateInviteRequest,
    invites: InviteService = Depends(get_invite_service),
):
    """Validate an invite code. A valid check counts as one use."""
    return invites.validate_code(body.code)


@router.get("", response_model=list[InviteResponse])
def list_invites(
    owner_email: str = Query(...),
    invites: InviteService = Depends(get_invite_service),
):
    """All invite codes. Empty for anyone but the owner."""
    return invites.list_codes(owner_email)


@router.get("/active", response_model=InviteResponse | None)
def get_active_invite(
    owner_email: str = Query(...),
    invites: InviteService = Depends(get_invite_service),
):
    """Current community code."""
    return invites.get_active_code(owner_email)


@router.post("", response_model=InviteResponse)
def create_invite(
    body: CreateInviteRequest,
    invites: InviteService = Depends(get_invite_service),
):
    """Create an invite code (owner only)."""
    return invites.create_code(body.owner_email, body.code, body.tier, body.max_uses)


@router.post("/deactivate")
def deactivate_invite(
    body: DeactivateInviteRequest,
    invites: InviteService = Depends(get_invite_service),
):
    """Deactivate an invite code (owner only)."""
    return {"deactivated": invites.deactivate_code(body.owner_email, body.code)}
