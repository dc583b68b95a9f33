"""Profile API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field

from ghostwriter.accounts.service import AccountService
from ghostwriter.api.deps import get_account_service, require_service_key

router = APIRouter(
    prefix="/profile",
    tags=["profile"],
    dependencies=[Depends(require_service_key)],
)


# ==================== MODELS ====================


class ProfileResponse(BaseModel):
    """Serialized profile."""
    id: int
    email: str
    credits: int
    tier: str
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    preferred_vibe: str | None = None
    preferred_art_style: str | None = None
    last_reset_date: str | None = None


class ProfileUpdateRequest(BaseModel):
    """Profile fields to overwrite. Omitted fields stay unchanged."""
    email: EmailStr
    display_name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = None
    bio: str | None = None
    preferred_vibe: str | None = Field(default=None, max_length=255)
    preferred_art_style: str | None = Field(default=None, max_length=255)
    credits: int | None = Field(default=None, ge=0)
    tier: str | None = None
    last_reset_date: datetime | None = None


# ==================== ENDPOINTS ====================


@router.get("", response_model=ProfileResponse)
def get_profile(
    email: str = Query(...),
    accounts: AccountService = Depends(get_account_service),
):
    """Get a profile, creating it on first touch."""
    return accounts.get_profile(email)


@router.put("", response_model=ProfileResponse)
def update_profile(
    body: ProfileUpdateRequest,
    accounts: AccountService = Depends(get_account_service),
):
    """Update display fields, or explicitly override credits and tier."""
    fields = body.model_dump(exclude={"email", "credits", "tier", "last_reset_date"}, exclude_none=True)
    return accounts.upsert_profile(
        body.email,
        credits=body.credits,
        last_reset_date=body.last_reset_date,
        tier=body.tier,
        **fields,
    )


@router.delete("")
def delete_profile(
    email: str = Query(...),
    accounts: AccountService = Depends(get_account_service),
):
    """Delete the account and all of its data."""
    deleted = accounts.delete_account(email)
    return {"deleted": deleted}
