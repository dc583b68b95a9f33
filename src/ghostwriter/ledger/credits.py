"""Credit balance operations: monthly reset, spending and reconciliation."""

from datetime import datetime
from typing import Any

from sqlalchemy import update

from ghostwriter.accounts.service import ensure_user_and_profile, monthly_allotment
from ghostwriter.ledger.log import SYSTEM_REASONS, record_entry, replay_balance
from ghostwriter.logging_config import get_logger
from ghostwriter.storage.db import Database, db
from ghostwriter.storage.models import CreditLedgerEntry, Profile, utcnow

logger = get_logger(__name__)

# Credit cost per studio action
ACTION_COSTS = {
    "generate_song": 4,
    "edit_song": 1,
    "generate_art": 8,
    "social_pack": 1,
    "create_avatar": 100,
}


class InsufficientCreditsError(Exception):
    """Raised when user has insufficient credits."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: required {required}, available {available}")


def spend_metadata(reason: str, metadata: dict[str, Any] | None) -> dict[str, Any]:
    """Validate a caller spend reason and copy its metadata.

    Raises:
        ValueError: If the reason is empty or reserved for ledger writers
    """
    if not reason or not reason.strip():
        raise ValueError("reason is required")
    if reason in SYSTEM_REASONS or reason.startswith("referral_"):
        raise ValueError(f"Reason {reason} is reserved")

    cleaned = dict(metadata or {})
    cleaned.pop("applied_delta", None)
    return cleaned


def month_key(moment: datetime | None) -> tuple[int, int]:
    """Calendar (year, month) of a naive UTC timestamp; None sorts as epoch."""
    if moment is None:
        return (1970, 1)
    return (moment.year, moment.month)


def apply_monthly_reset(session, profile: Profile, now: datetime | None = None) -> bool:
    """Replace the balance with the tier allotment once per calendar month.

    The write is a compare-and-set on the previous reset marker, so
    concurrent callers in the same month reset at most once.

    Returns:
        True if this call performed the reset
    """
    current = now or utcnow()
    previous = profile.last_reset_date
    if month_key(previous) == month_key(current):
        return False

    if previous is None:
        unchanged = Profile.last_reset_date.is_(None)
    else:
        unchanged = Profile.last_reset_date == previous

    allotment = monthly_allotment(profile.tier)
    session.flush()
    result = session.execute(
        update(Profile)
        .where(Profile.id == profile.id, unchanged)
        .values(credits=allotment, last_reset_date=current, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    session.refresh(profile)
    if result.rowcount != 1:
        return False

    record_entry(
        session,
        user_id=profile.user_id,
        delta=allotment,
        reason="monthly_reset",
        metadata={"period": f"{current.year:04d}-{current.month:02d}"},
    )
    logger.info(
        "monthly_credits_reset",
        user_id=profile.user_id,
        tier=profile.tier,
        credits=allotment,
    )
    return True


def increment_balance(session, profile: Profile, amount: int) -> int:
    """Add credits with an in-database increment and return the new balance."""
    session.flush()
    session.execute(
        update(Profile)
        .where(Profile.id == profile.id)
        .values(credits=Profile.credits + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    session.refresh(profile)
    return profile.credits


class CreditService:
    """Service for managing user credits.

    Operations:
    - Read balance (with monthly reset)
    - Spend credits (clamped, or conditional)
    - Ledger history and reconciliation
    """

    def __init__(self, database: Database | None = None):
        """Initialize credit service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def get_credits(self, email: str, now: datetime | None = None) -> int:
        """Get user's balance, resetting it first when a new month started.

        Args:
            email: User email
            now: Reference time (naive UTC), defaults to the current time

        Returns:
            Credit balance
        """
        with self.db.session() as session:
            _, profile = ensure_user_and_profile(session, email)
            apply_monthly_reset(session, profile, now=now)
            return profile.credits

    def has_enough_credits(self, email: str, cost: int = 1) -> bool:
        """Check if user has sufficient credits.

        Not atomic with a following spend; use spend_if_available for that.
        """
        return self.get_credits(email) >= cost

    def spend(
        self,
        email: str,
        amount: int,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Spend credits, clamping the balance at zero.

        Always succeeds for a positive amount. The ledger records the
        requested delta; when the clamp cut it short the effective change
        is kept in ``applied_delta``.

        Args:
            email: User email
            amount: Amount to spend (positive)
            reason: Reason tag (generate_song, generate_art, ...)
            metadata: Optional ledger metadata

        Returns:
            New balance

        Raises:
            ValueError: If amount is not positive or the reason is reserved
        """
        if amount <= 0:
            raise ValueError("Amount must be positive")
        entry_metadata = spend_metadata(reason, metadata)

        with self.db.session() as session:
            _, profile = ensure_user_and_profile(session, email)

            previous = profile.credits
            new_balance = max(0, previous - amount)
            profile.credits = new_balance

            if previous - amount < 0:
                entry_metadata["applied_delta"] = new_balance - previous
            record_entry(session, profile.user_id, -amount, reason, entry_metadata)

            self.logger.info(
                "credits_spent",
                user_id=profile.user_id,
                amount=amount,
                reason=reason,
                new_balance=new_balance,
            )
            return new_balance

    def spend_if_available(
        self,
        email: str,
        amount: int,
        reason: str,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> int:
        """Spend credits only if the balance covers the amount.

        The check and the debit are one conditional UPDATE, so two
        concurrent calls can never overdraw the balance.

        Returns:
            New balance

        Raises:
            ValueError: If amount is not positive or the reason is reserved
            InsufficientCreditsError: If not enough credits
        """
        if amount <= 0:
            raise ValueError("Amount must be positive")
        entry_metadata = spend_metadata(reason, metadata)

        with self.db.session() as session:
            _, profile = ensure_user_and_profile(session, email)
            apply_monthly_reset(session, profile, now=now)

            session.flush()
            result = session.execute(
                update(Profile)
                .where(Profile.id == profile.id, Profile.credits >= amount)
                .values(credits=Profile.credits - amount, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            session.refresh(profile)

            # Refusal still commits profile creation and any monthly reset
            if result.rowcount == 1:
                record_entry(session, profile.user_id, -amount, reason, entry_metadata)
                self.logger.info(
                    "credits_spent",
                    user_id=profile.user_id,
                    amount=amount,
                    reason=reason,
                    new_balance=profile.credits,
                )
                return profile.credits

            available = profile.credits

        self.logger.info("credits_insufficient", required=amount, available=available)
        raise InsufficientCreditsError(amount, available)

    def charge_action(self, email: str, action: str) -> dict[str, Any]:
        """Charge the configured cost of a studio action.

        Raises:
            ValueError: If the action is unknown
            InsufficientCreditsError: If not enough credits
        """
        cost = ACTION_COSTS.get(action)
        if cost is None:
            raise ValueError(f"Unknown action: {action}")

        balance = self.spend_if_available(email, cost, reason=action)
        return {"action": action, "charged": cost, "credits": balance}

    def get_ledger(self, email: str, limit: int = 50) -> list[dict[str, Any]]:
        """Get user's ledger entries, newest first."""
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)
            entries = (
                session.query(CreditLedgerEntry)
                .filter(CreditLedgerEntry.user_id == user.id)
                .order_by(CreditLedgerEntry.id.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": entry.id,
                    "delta": entry.delta,
                    "reason": entry.reason,
                    "metadata": entry.metadata_json,
                    "created_at": entry.created_at.isoformat(),
                }
                for entry in entries
            ]

    def reconcile(self, email: str) -> dict[str, Any]:
        """Compare the profile balance with a full ledger replay.

        Returns:
            Dict with ledger_balance, profile_balance, drift and entries
        """
        with self.db.session() as session:
            user, profile = ensure_user_and_profile(session, email)
            entries = (
                session.query(CreditLedgerEntry)
                .filter(CreditLedgerEntry.user_id == user.id)
                .order_by(CreditLedgerEntry.id.asc())
                .all()
            )
            ledger_balance = replay_balance(entries)
            drift = profile.credits - ledger_balance

            if drift:
                self.logger.warning(
                    "ledger_drift_detected",
                    user_id=user.id,
                    profile_balance=profile.credits,
                    ledger_balance=ledger_balance,
                )

            return {
                "email": user.email,
                "profile_balance": profile.credits,
                "ledger_balance": ledger_balance,
                "drift": drift,
                "entries": len(entries),
            }


# Singleton instance
credit_service = CreditService()
