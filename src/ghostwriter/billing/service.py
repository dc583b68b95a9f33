"""Idempotent application of completed payments to credit balances."""

from typing import Any

from sqlalchemy.exc import IntegrityError

from ghostwriter.accounts.service import ensure_user_and_profile
from ghostwriter.ledger.credits import increment_balance
from ghostwriter.ledger.log import record_entry
from ghostwriter.logging_config import get_logger
from ghostwriter.storage.db import Database, db
from ghostwriter.storage.models import ProcessedPaymentEvent, Transaction

CHECKOUT_COMPLETED = "checkout.session.completed"


class BillingService:
    """Service for payment grants and purchase history.

    Each payment event id is applied at most once. The processed-event row
    is written in the same transaction as the credit grant, and its unique
    index rejects a concurrent duplicate.
    """

    def __init__(self, database: Database | None = None):
        """Initialize billing service.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    def is_event_processed(self, event_id: str) -> bool:
        """Check if a payment event has already been applied.

        Args:
            event_id: The unique event ID from the payment provider

        Returns:
            True if already processed
        """
        with self.db.session() as session:
            existing = session.query(ProcessedPaymentEvent.id).filter(
                ProcessedPaymentEvent.event_id == event_id
            ).first()
            return existing is not None

    def _is_session_recorded(self, session_id: str) -> bool:
        with self.db.session() as session:
            return session.query(Transaction.id).filter(
                Transaction.session_id == session_id
            ).first() is not None

    def apply_checkout_credits(
        self,
        event_id: str,
        session_id: str,
        user_email: str,
        credits: int,
        item: str,
        amount_cents: int,
        event_type: str = CHECKOUT_COMPLETED,
    ) -> dict[str, Any]:
        """Grant purchased credits exactly once per payment event.

        Args:
            event_id: Payment provider event ID (idempotency key)
            session_id: Checkout session ID, stored on the transaction
            user_email: Purchaser email; the profile is created if missing
            credits: Credits to grant (positive)
            item: Product name shown in purchase history
            amount_cents: Amount paid in cents
            event_type: Provider event type

        Returns:
            ``{"applied": True, "credits": new_balance}`` or
            ``{"applied": False, "reason": "duplicate_event" | "duplicate_session"}``

        Raises:
            ValueError: On missing ids, non-positive credits or negative amount
        """
        event_id = (event_id or "").strip()
        session_id = (session_id or "").strip()
        if not event_id or not session_id:
            raise ValueError("event_id and session_id are required")
        if credits <= 0:
            raise ValueError("credits must be greater than 0")
        if amount_cents < 0:
            raise ValueError("amount_cents must be >= 0")

        if self.is_event_processed(event_id):
            self.logger.info("payment_event_duplicate", event_id=event_id)
            return {"applied": False, "reason": "duplicate_event"}

        stage = "event"
        try:
            with self.db.session() as session:
                session.add(ProcessedPaymentEvent(event_id=event_id, event_type=event_type))
                session.flush()

                # Same checkout reported under a different event id
                recorded = session.query(Transaction.id).filter(
                    Transaction.session_id == session_id
                ).first()
                if recorded:
                    self.logger.info(
                        "payment_session_duplicate",
                        event_id=event_id,
                        session_id=session_id,
                    )
                    return {"applied": False, "reason": "duplicate_session"}

                stage = "session"
                user, profile = ensure_user_and_profile(session, user_email)
                record_entry(
                    session,
                    user_id=user.id,
                    delta=credits,
                    reason="stripe_checkout",
                    metadata={
                        "session_id": session_id,
                        "amount_cents": amount_cents,
                        "event_id": event_id,
                    },
                )
                session.add(Transaction(
                    user_id=user.id,
                    session_id=session_id,
                    item=item or "Credit Package",
                    amount_cents=amount_cents,
                    credits_granted=credits,
                    status="completed",
                ))
                new_balance = increment_balance(session, profile, credits)
        except IntegrityError:
            # A duplicate only if the competing grant committed
            if stage == "event" and self.is_event_processed(event_id):
                reason = "duplicate_event"
            elif stage == "session" and self._is_session_recorded(session_id):
                reason = "duplicate_session"
            else:
                self.logger.error("payment_grant_failed", event_id=event_id, stage=stage)
                raise
            self.logger.info("payment_event_race_lost", event_id=event_id, reason=reason)
            return {"applied": False, "reason": reason}

        self.logger.info(
            "payment_credits_applied",
            event_id=event_id,
            session_id=session_id,
            user_id=user.id,
            credits_added=credits,
            new_balance=new_balance,
        )
        return {"applied": True, "credits": new_balance}

    def list_transactions(self, email: str) -> list[dict[str, Any]]:
        """Get user's purchase history, newest first."""
        with self.db.session() as session:
            user, _ = ensure_user_and_profile(session, email)
            rows = (
                session.query(Transaction)
                .filter(Transaction.user_id == user.id)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .all()
            )
            return [
                {
                    "id": row.id,
                    "date": row.created_at.isoformat(),
                    "item": row.item,
                    "amount": row.amount_cents / 100,
                    "credits": row.credits_granted,
                    "status": row.status,
                }
                for row in rows
            ]


# Singleton instance
billing_service = BillingService()
