"""Shared FastAPI dependencies: service key check and service accessors."""

import secrets

from fastapi import Header, HTTPException, status

from ghostwriter.accounts.service import AccountService, account_service
from ghostwriter.billing.service import BillingService, billing_service
from ghostwriter.invites.service import InviteService, invite_service
from ghostwriter.ledger.credits import CreditService, credit_service
from ghostwriter.logging_config import get_logger
from ghostwriter.referral.service import ReferralService, referral_service
from ghostwriter.settings import settings
from ghostwriter.songs.service import SongService, song_service

logger = get_logger(__name__)


async def require_service_key(
    x_service_key: str | None = Header(default=None, alias="X-Service-Key"),
) -> None:
    """Reject callers without the shared service key.

    Raises:
        HTTPException: 503 if no key is configured, 401 on a wrong key
    """
    expected = settings.service_api_key
    if not expected:
        logger.error("service_key_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service key not configured",
        )

    if not x_service_key or not secrets.compare_digest(x_service_key, expected):
        logger.warning("service_key_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service key",
        )


def get_account_service() -> AccountService:
    return account_service


def get_credit_service() -> CreditService:
    return credit_service


def get_billing_service() -> BillingService:
    return billing_service


def get_referral_service() -> ReferralService:
    return referral_service


def get_song_service() -> SongService:
    return song_service


def get_invite_service() -> InviteService:
    return invite_service
