"""Append-only credit ledger log."""

from typing import Any, Iterable

from sqlalchemy.orm import Session

from ghostwriter.storage.models import CreditLedgerEntry

# Reasons whose delta replaces the balance instead of adjusting it
REPLACING_REASONS = frozenset({"signup_grant", "monthly_reset"})

# Reasons written by the ledger itself, never accepted from spend callers
SYSTEM_REASONS = REPLACING_REASONS | frozenset({
    "tier_upgrade",
    "manual_adjustment",
    "stripe_checkout",
    "referral_inviter_reward",
    "referral_invitee_reward",
})


def record_entry(
    session: Session,
    user_id: int,
    delta: int,
    reason: str,
    metadata: dict[str, Any] | None = None,
) -> CreditLedgerEntry:
    """Append a ledger entry inside the caller's transaction.

    Args:
        session: Open session of the mutating operation
        user_id: Owner of the balance change
        delta: Signed credit delta
        reason: Reason tag (monthly_reset, generate_song, ...)
        metadata: Optional context stored as JSON

    Returns:
        The pending ledger entry
    """
    entry = CreditLedgerEntry(
        user_id=user_id,
        delta=int(delta),
        reason=reason,
        metadata_json=metadata or None,
    )
    session.add(entry)
    return entry


def replay_balance(entries: Iterable[CreditLedgerEntry]) -> int:
    """Rebuild a balance from ledger entries in insertion order.

    Mirrors the writers: signup grants and monthly resets set the balance,
    every other entry adds its applied delta and clamps at zero.
    """
    balance = 0
    for entry in entries:
        if entry.reason in REPLACING_REASONS:
            balance = entry.delta
            continue
        applied = entry.delta
        if entry.metadata_json and "applied_delta" in entry.metadata_json:
            applied = int(entry.metadata_json["applied_delta"])
        balance = max(0, balance + applied)
    return balance
