"""Referral service for referral codes and the qualify-and-reward transition."""

import secrets
from typing import Any

from sqlalchemy import update

from ghostwriter.accounts.service import ensure_user_and_profile
from ghostwriter.ledger.credits import increment_balance
from ghostwriter.ledger.log import record_entry
from ghostwriter.logging_config import get_logger
from ghostwriter.settings import settings
from ghostwriter.storage.db import Database, db
from ghostwriter.storage.models import Profile, Referral, ReferralCode, ReferralStatus, utcnow

logger = get_logger(__name__)


def _generate_unique_code(length: int = 8) -> str:
    """Generate a readable referral code.

    Uses uppercase letters and digits, avoiding confusing characters.
    Format: ABC12XYZ (8 chars by default)
    """
    # Exclude confusing characters: 0, O, I, l, 1
    alphabet = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str | None) -> str:
    """Trim and uppercase a referral code."""
    return (code or "").strip().upper()


def qualify_and_reward(session, referred_user_id: int) -> bool:
    """Reward a pending referral once its invitee performs a qualifying action.

    Runs inside the caller's transaction. The pending -> rewarded flip is a
    conditional UPDATE, so only one caller ever grants the rewards.

    Args:
        session: Open session of the qualifying action
        referred_user_id: User who just qualified

    Returns:
        True if this call granted the rewards
    """
    referral = session.query(Referral).filter(
        Referral.referred_user_id == referred_user_id
    ).first()
    if not referral or referral.status == ReferralStatus.REWARDED.value:
        return False

    referrer_profile = session.query(Profile).filter(Profile.user_id == referral.referrer_user_id).first()
    referred_profile = session.query(Profile).filter(Profile.user_id == referred_user_id).first()
    if not referrer_profile or not referred_profile:
        return False

    now = utcnow()
    session.flush()
    flipped = session.execute(
        update(Referral)
        .where(
            Referral.id == referral.id,
            Referral.status == ReferralStatus.PENDING.value,
        )
        .values(status=ReferralStatus.REWARDED.value, qualified_at=now, rewarded_at=now)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        return False
    session.refresh(referral)

    inviter_credits = settings.referral_inviter_credits
    invitee_credits = settings.referral_invitee_credits

    increment_balance(session, referrer_profile, inviter_credits)
    increment_balance(session, referred_profile, invitee_credits)
    record_entry(
        session,
        user_id=referral.referrer_user_id,
        delta=inviter_credits,
        reason="referral_inviter_reward",
        metadata={"referral_id": referral.id},
    )
    record_entry(
        session,
        user_id=referred_user_id,
        delta=invitee_credits,
        reason="referral_invitee_reward",
        metadata={"referral_id": referral.id},
    )

    logger.info(
        "referral_rewarded",
        referral_id=referral.id,
        referrer_id=referral.referrer_user_id,
        referred_id=referred_user_id,
        inviter_credits=inviter_credits,
        invitee_credits=invitee_credits,
    )
    return True


class ReferralService:
    """Service for managing referral codes and referral claims."""

    def __init__(self, database: Database | None = None):
        """Initialize referral service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def get_or_create_code(self, email: str) -> str:
        """Get existing referral code or create new one for user.

        Args:
            email: User email

        Returns:
            Referral code
        """
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)

            existing = session.query(ReferralCode).filter(
                ReferralCode.user_id == user.id
            ).first()
            if existing:
                return existing.code

            code = _generate_unique_code()
            attempts = 0
            while attempts < 10:
                taken = session.query(ReferralCode.id).filter(
                    ReferralCode.code == code
                ).first()
                if not taken:
                    break
                code = _generate_unique_code()
                attempts += 1

            session.add(ReferralCode(user_id=user.id, code=code))

            self.logger.info("referral_code_created", user_id=user.id, code=code)
            return code

    def claim_code(self, email: str, code: str) -> dict[str, Any]:
        """Attach the caller to a referrer as a pending referral.

        A user can be referred once; claiming again returns the existing
        status unchanged.

        Args:
            email: Email of the invited user
            code: Referral code being claimed

        Returns:
            Dict with the referral status

        Raises:
            ValueError: If the code is unknown, inactive or the caller's own
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValueError("Invalid referral code")

        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)

            found = session.query(ReferralCode).filter(
                ReferralCode.code == normalized
            ).first()
            if not found or not found.is_active:
                raise ValueError("Invalid referral code")
            if found.user_id == user.id:
                raise ValueError("Cannot use your own code")

            existing = session.query(Referral).filter(
                Referral.referred_user_id == user.id
            ).first()
            if existing:
                return {"status": existing.status}

            session.add(Referral(
                referrer_user_id=found.user_id,
                referred_user_id=user.id,
                code=normalized,
                status=ReferralStatus.PENDING.value,
            ))

            self.logger.info(
                "referral_claimed",
                referrer_id=found.user_id,
                referred_id=user.id,
                code=normalized,
            )
            return {"status": ReferralStatus.PENDING.value}

    def get_summary(self, email: str) -> dict[str, Any]:
        """Get referral statistics for a user.

        Args:
            email: User email

        Returns:
            Dict with code, invited_count, rewarded_count, earned_credits
        """
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)

            code = session.query(ReferralCode).filter(
                ReferralCode.user_id == user.id
            ).first()
            invited = session.query(Referral).filter(
                Referral.referrer_user_id == user.id
            ).all()
            rewarded = [r for r in invited if r.status == ReferralStatus.REWARDED.value]

            return {
                "code": code.code if code else None,
                "invited_count": len(invited),
                "rewarded_count": len(rewarded),
                "earned_credits": len(rewarded) * settings.referral_inviter_credits,
            }


# Singleton instance
referral_service = ReferralService()
