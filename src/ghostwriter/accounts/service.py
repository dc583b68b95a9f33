"""User, profile and membership allowlist management."""

import csv
from datetime import datetime
from pathlib import Path
from typing import Any

from ghostwriter.ledger.log import record_entry
from ghostwriter.logging_config import get_logger
from ghostwriter.settings import settings
from ghostwriter.storage.db import Database, db
from ghostwriter.storage.models import (
    TIER_RANK,
    CommunityMember,
    CreditLedgerEntry,
    MembershipTier,
    Profile,
    Referral,
    ReferralCode,
    SavedSong,
    Transaction,
    User,
    utcnow,
)

logger = get_logger(__name__)

# Profile fields callers may overwrite directly
DISPLAY_FIELDS = (
    "display_name",
    "avatar_url",
    "bio",
    "preferred_vibe",
    "preferred_art_style",
)


def normalize_email(email: str | None) -> str:
    """Lowercase and trim an email address.

    Raises:
        ValueError: If the result is not an email address
    """
    normalized = (email or "").strip().lower()
    if not normalized or "@" not in normalized:
        raise ValueError("A valid email is required")
    return normalized


def monthly_allotment(tier: str) -> int:
    """Credits granted per calendar month for a tier."""
    if tier == MembershipTier.SKOOL.value:
        return settings.skool_monthly_credits
    return settings.public_monthly_credits


def is_community_member(session, email: str) -> bool:
    """Check the membership allowlist for an already-normalized email."""
    return session.query(CommunityMember.id).filter(
        CommunityMember.email == email
    ).first() is not None


def upgrade_tier(session, profile: Profile, tier: str, source: str) -> bool:
    """Move a profile to a higher tier and lift credits to the tier floor.

    Lower or equal tiers are ignored, so the tier only ever rises.

    Returns:
        True if the tier changed
    """
    if TIER_RANK[tier] <= TIER_RANK.get(profile.tier, 0):
        return False

    previous_tier = profile.tier
    floor = monthly_allotment(tier)
    raised_by = max(0, floor - profile.credits)

    profile.tier = tier
    profile.credits += raised_by
    record_entry(
        session,
        user_id=profile.user_id,
        delta=raised_by,
        reason="tier_upgrade",
        metadata={"from": previous_tier, "to": tier, "source": source},
    )

    logger.info(
        "tier_upgraded",
        user_id=profile.user_id,
        tier=tier,
        source=source,
        credits=profile.credits,
    )
    return True


def ensure_user_and_profile(session, email: str) -> tuple[User, Profile]:
    """Resolve or lazily create the user and profile for an email.

    Allowlisted emails are corrected to the skool tier on every call.

    Args:
        session: Open session of the calling operation
        email: Raw email address

    Returns:
        Tuple of (user, profile)
    """
    normalized = normalize_email(email)
    member = is_community_member(session, normalized)

    user = session.query(User).filter(User.email == normalized).first()
    if not user:
        user = User(email=normalized)
        session.add(user)
        session.flush()
        logger.info("user_created", user_id=user.id, email=normalized)

    profile = session.query(Profile).filter(Profile.user_id == user.id).first()
    if not profile:
        tier = MembershipTier.SKOOL.value if member else MembershipTier.PUBLIC.value
        opening = monthly_allotment(tier)
        profile = Profile(
            user_id=user.id,
            credits=opening,
            tier=tier,
            last_reset_date=utcnow(),
        )
        session.add(profile)
        session.flush()
        record_entry(session, user.id, opening, "signup_grant", {"tier": tier})
        logger.info("profile_created", user_id=user.id, tier=tier, credits=opening)
    elif member:
        upgrade_tier(session, profile, MembershipTier.SKOOL.value, source="membership_allowlist")

    return user, profile


def profile_to_dict(user: User, profile: Profile) -> dict[str, Any]:
    """Serialize a profile for API responses."""
    return {
        "id": user.id,
        "email": user.email,
        "credits": profile.credits,
        "tier": profile.tier,
        "display_name": profile.display_name,
        "avatar_url": profile.avatar_url,
        "bio": profile.bio,
        "preferred_vibe": profile.preferred_vibe,
        "preferred_art_style": profile.preferred_art_style,
        "last_reset_date": profile.last_reset_date.isoformat() if profile.last_reset_date else None,
    }


def parse_member_csv(path: Path) -> list[dict[str, Any]]:
    """Read a community export into member rows.

    Accepts the header variants the community platform has used over time.
    """
    rows = []
    with open(path, newline="", encoding="utf-8") as csvfile:
        for raw in csv.DictReader(csvfile):
            rows.append({
                "email": (raw.get("Email") or raw.get("Answer1") or raw.get("email") or "").strip().lower(),
                "first_name": (raw.get("FirstName") or raw.get("firstName") or "").strip() or None,
                "last_name": (raw.get("LastName") or raw.get("lastName") or "").strip() or None,
                "joined_at": (
                    raw.get("JoinedAt") or raw.get("Joined at") or raw.get("created_at") or ""
                ).strip() or None,
            })
    return rows


class AccountService:
    """Service for profiles, account lifecycle and the membership allowlist."""

    def __init__(self, database: Database | None = None):
        """Initialize account service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def get_or_create_profile(self, email: str) -> Profile:
        """Get the profile for an email, creating user and profile on first touch.

        Args:
            email: User email (normalized here)

        Returns:
            Profile record
        """
        with self.db.session() as session:
            _, profile = ensure_user_and_profile(session, email)
            return profile

    def get_profile(self, email: str) -> dict[str, Any]:
        """Get a serialized profile, creating it on first touch."""
        with self.db.session() as session:
            user, profile = ensure_user_and_profile(session, email)
            return profile_to_dict(user, profile)

    def upsert_profile(
        self,
        email: str,
        credits: int | None = None,
        last_reset_date: datetime | None = None,
        tier: str | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        """Update display fields and, optionally, credits or tier.

        Args:
            email: User email
            credits: Explicit balance override (logged as manual_adjustment)
            last_reset_date: Explicit monthly reset marker
            tier: Target tier; only upgrades are accepted
            **fields: Display fields (display_name, avatar_url, bio, ...)

        Returns:
            Serialized profile

        Raises:
            ValueError: On unknown fields, negative credits or a tier downgrade
        """
        unknown = set(fields) - set(DISPLAY_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        if credits is not None and credits < 0:
            raise ValueError("credits must be >= 0")
        if tier is not None and tier not in TIER_RANK:
            raise ValueError(f"Invalid tier: {tier}")

        with self.db.session() as session:
            user, profile = ensure_user_and_profile(session, email)

            if tier is not None and TIER_RANK[tier] < TIER_RANK[profile.tier]:
                raise ValueError(f"Tier downgrade from {profile.tier} to {tier} is not permitted")

            for name, value in fields.items():
                if value is not None:
                    setattr(profile, name, value)

            if tier is not None:
                upgrade_tier(session, profile, tier, source="profile_update")

            if credits is not None and credits != profile.credits:
                delta = credits - profile.credits
                profile.credits = credits
                record_entry(session, user.id, delta, "manual_adjustment")
                self.logger.info(
                    "credits_adjusted",
                    user_id=user.id,
                    delta=delta,
                    new_balance=credits,
                )

            if last_reset_date is not None:
                profile.last_reset_date = last_reset_date

            session.flush()
            return profile_to_dict(user, profile)

    def delete_account(self, email: str) -> bool:
        """Delete a user and everything they own.

        Processed payment events are kept so replayed events still dedupe.

        Returns:
            True if an account was deleted
        """
        normalized = normalize_email(email)

        with self.db.session() as session:
            user = session.query(User).filter(User.email == normalized).first()
            if not user:
                return False

            user_id = user.id
            session.query(SavedSong).filter(SavedSong.user_id == user_id).delete()
            session.query(Transaction).filter(Transaction.user_id == user_id).delete()
            session.query(CreditLedgerEntry).filter(CreditLedgerEntry.user_id == user_id).delete()
            session.query(Referral).filter(
                (Referral.referrer_user_id == user_id) | (Referral.referred_user_id == user_id)
            ).delete(synchronize_session=False)
            session.query(ReferralCode).filter(ReferralCode.user_id == user_id).delete()
            session.query(Profile).filter(Profile.user_id == user_id).delete()
            session.query(User).filter(User.id == user_id).delete()

        self.logger.info("account_deleted", user_id=user_id)
        return True

    def import_members(
        self,
        rows: list[dict[str, Any]],
        dry_run: bool = True,
        batch_size: int = 100,
    ) -> dict[str, Any]:
        """Upsert membership allowlist rows.

        Args:
            rows: Dicts with email, first_name, last_name, joined_at
            dry_run: Count changes without writing
            batch_size: Rows per transaction

        Returns:
            Totals for inserted, updated and skipped rows
        """
        totals = {"dry_run": dry_run, "rows": len(rows), "inserted": 0, "updated": 0, "skipped_no_email": 0}

        # Emails already counted, so dry runs match applied totals
        seen: set[str] = set()

        for start in range(0, len(rows), batch_size):
            batch = rows[start:start + batch_size]
            with self.db.session() as session:
                pending: dict[str, CommunityMember] = {}
                for row in batch:
                    email = (row.get("email") or "").strip().lower()
                    if not email or "@" not in email:
                        totals["skipped_no_email"] += 1
                        continue

                    member = pending.get(email) or session.query(CommunityMember).filter(
                        CommunityMember.email == email
                    ).first()

                    if email in seen or member:
                        totals["updated"] += 1
                    else:
                        totals["inserted"] += 1
                    seen.add(email)

                    if dry_run:
                        continue

                    if not member:
                        member = CommunityMember(email=email)
                        session.add(member)
                        pending[email] = member

                    member.first_name = row.get("first_name") or member.first_name
                    member.last_name = row.get("last_name") or member.last_name
                    member.joined_at = row.get("joined_at") or member.joined_at
        self.logger.info("members_imported", **totals)
        return totals

    def enforce_member_tiers(self, dry_run: bool = True) -> dict[str, Any]:
        """Upgrade every existing allowlisted profile that is not yet skool.

        Returns:
            Counts of checked and upgraded profiles
        """
        result = {"dry_run": dry_run, "checked": 0, "upgraded": 0}

        with self.db.session() as session:
            candidates = (
                session.query(Profile)
                .join(User, User.id == Profile.user_id)
                .join(CommunityMember, CommunityMember.email == User.email)
                .all()
            )

            for profile in candidates:
                result["checked"] += 1
                if profile.tier == MembershipTier.SKOOL.value:
                    continue
                result["upgraded"] += 1
                if not dry_run:
                    upgrade_tier(session, profile, MembershipTier.SKOOL.value, source="member_enforcement")
        self.logger.info("member_tiers_enforced", **result)
        return result


# Singleton instance
account_service = AccountService()
