from datetime import datetime

import pytest

from ghostwriter.ledger.credits import (
    ACTION_COSTS,
    InsufficientCreditsError,
    apply_monthly_reset,
    month_key,
)
from ghostwriter.storage.models import CreditLedgerEntry, Profile

JAN = datetime(2026, 1, 15, 12, 0)
FEB_1 = datetime(2026, 2, 1, 0, 0, 1)
FEB_28 = datetime(2026, 2, 28, 23, 59)
MAR_1 = datetime(2026, 3, 1, 0, 0)


def ledger_reasons(database, reason):
    with database.session() as session:
        return session.query(CreditLedgerEntry).filter(CreditLedgerEntry.reason == reason).all()


def test_month_key():
    assert month_key(JAN) == (2026, 1)
    assert month_key(None) == (1970, 1)


@pytest.mark.parametrize("amount", [1, 4, 25, 26, 1000])
def test_spend_never_goes_negative(credits, amount):
    balance = credits.spend("a@x.com", amount, "generate_song")

    assert balance == max(0, 25 - amount)
    assert credits.get_credits("a@x.com") >= 0


def test_spend_rejects_non_positive_amount(credits):
    with pytest.raises(ValueError):
        credits.spend("a@x.com", 0, "generate_song")
    with pytest.raises(ValueError):
        credits.spend("a@x.com", -5, "generate_song")


def test_clamped_spend_logs_requested_delta(accounts, credits, database):
    accounts.upsert_profile("a@x.com", credits=3)

    balance = credits.spend("a@x.com", 4, "generate_song")

    assert balance == 0
    entry = ledger_reasons(database, "generate_song")[0]
    assert entry.delta == -4
    assert entry.metadata_json == {"applied_delta": -3}


def test_unclamped_spend_has_no_applied_delta(credits, database):
    credits.spend("a@x.com", 8, "generate_art", {"song_id": 7})

    entry = ledger_reasons(database, "generate_art")[0]
    assert entry.delta == -8
    assert entry.metadata_json == {"song_id": 7}


def test_monthly_reset_replaces_balance(accounts, credits, database):
    accounts.upsert_profile("a@x.com", credits=3, last_reset_date=JAN)

    assert credits.get_credits("a@x.com", now=FEB_1) == 25

    resets = ledger_reasons(database, "monthly_reset")
    assert len(resets) == 1
    assert resets[0].delta == 25
    assert resets[0].metadata_json == {"period": "2026-02"}


def test_monthly_reset_discards_unspent_balance(accounts, credits):
    accounts.upsert_profile("a@x.com", credits=90, last_reset_date=JAN)

    assert credits.get_credits("a@x.com", now=FEB_1) == 25


def test_monthly_reset_once_per_month(accounts, credits, database):
    accounts.upsert_profile("a@x.com", last_reset_date=JAN)

    credits.get_credits("a@x.com", now=FEB_1)
    credits.spend("a@x.com", 5, "generate_song")
    balance = credits.get_credits("a@x.com", now=FEB_28)

    assert balance == 20
    assert len(ledger_reasons(database, "monthly_reset")) == 1

    assert credits.get_credits("a@x.com", now=MAR_1) == 25
    assert len(ledger_reasons(database, "monthly_reset")) == 2


def test_skool_reset_uses_skool_allotment(accounts, credits, database):
    from ghostwriter.storage.models import CommunityMember

    with database.session() as session:
        session.add(CommunityMember(email="member@x.com"))
    accounts.upsert_profile("member@x.com", credits=0, last_reset_date=JAN)

    assert credits.get_credits("member@x.com", now=FEB_1) == 100


def test_reset_keeps_tier(accounts, credits, database):
    from ghostwriter.storage.models import CommunityMember

    with database.session() as session:
        session.add(CommunityMember(email="member@x.com"))
    accounts.upsert_profile("member@x.com", last_reset_date=JAN)
    with database.session() as session:
        session.query(CommunityMember).delete()

    credits.get_credits("member@x.com", now=FEB_1)

    with database.session() as session:
        assert session.query(Profile).one().tier == "skool"


def test_has_enough_credits(credits):
    assert credits.has_enough_credits("a@x.com", 25) is True
    assert credits.has_enough_credits("a@x.com", 26) is False


def test_spend_if_available_debits(credits, database):
    balance = credits.spend_if_available("a@x.com", 4, "generate_song")

    assert balance == 21
    assert ledger_reasons(database, "generate_song")[0].delta == -4


def test_spend_if_available_refuses_without_side_effects(accounts, credits, database):
    accounts.upsert_profile("a@x.com", credits=3)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        credits.spend_if_available("a@x.com", 4, "generate_song")

    assert exc_info.value.required == 4
    assert exc_info.value.available == 3
    assert credits.get_credits("a@x.com") == 3
    assert ledger_reasons(database, "generate_song") == []


def test_spend_if_available_refusal_keeps_new_profile(credits, database):
    with pytest.raises(InsufficientCreditsError):
        credits.spend_if_available("new@x.com", 100, "create_avatar")

    with database.session() as session:
        assert session.query(Profile).count() == 1


def test_spend_if_available_resets_first(accounts, credits):
    accounts.upsert_profile("a@x.com", credits=0, last_reset_date=JAN)

    assert credits.spend_if_available("a@x.com", 4, "generate_song", now=FEB_1) == 21


def test_spend_if_available_exact_balance(credits):
    assert credits.spend_if_available("a@x.com", 25, "generate_song") == 0
    with pytest.raises(InsufficientCreditsError):
        credits.spend_if_available("a@x.com", 1, "edit_song")


def test_charge_action(credits):
    result = credits.charge_action("a@x.com", "generate_art")

    assert result == {"action": "generate_art", "charged": ACTION_COSTS["generate_art"], "credits": 17}


def test_charge_unknown_action(credits):
    with pytest.raises(ValueError):
        credits.charge_action("a@x.com", "teleport")


def test_ledger_is_newest_first(credits):
    credits.spend("a@x.com", 1, "edit_song")
    credits.spend("a@x.com", 8, "generate_art")

    entries = credits.get_ledger("a@x.com")

    assert [e["reason"] for e in entries] == ["generate_art", "edit_song", "signup_grant"]
    assert credits.get_ledger("a@x.com", limit=1)[0]["reason"] == "generate_art"


def test_reconcile_matches_after_mixed_activity(accounts, credits, billing, database):
    accounts.upsert_profile("a@x.com", credits=3, last_reset_date=JAN)
    credits.spend("a@x.com", 4, "generate_song")
    billing.apply_checkout_credits("evt_r", "cs_r", "a@x.com", 250, "Pack", 999)
    credits.get_credits("a@x.com", now=FEB_1)
    credits.spend_if_available("a@x.com", 8, "generate_art")

    result = credits.reconcile("a@x.com")

    assert result["profile_balance"] == 17
    assert result["ledger_balance"] == 17
    assert result["drift"] == 0


def test_reconcile_reports_drift(credits, database):
    credits.get_credits("a@x.com")
    with database.session() as session:
        session.query(Profile).update({Profile.credits: 99})

    result = credits.reconcile("a@x.com")

    assert result["drift"] == 74


@pytest.mark.parametrize("reason", [
    "monthly_reset",
    "signup_grant",
    "tier_upgrade",
    "stripe_checkout",
    "referral_inviter_reward",
    "referral_bonus",
    " ",
])
def test_spend_rejects_ledger_reasons(credits, reason):
    with pytest.raises(ValueError):
        credits.spend("a@x.com", 4, reason)
    with pytest.raises(ValueError):
        credits.spend_if_available("a@x.com", 4, reason)

    result = credits.reconcile("a@x.com")
    assert result["profile_balance"] == 25
    assert result["drift"] == 0
    assert [e["reason"] for e in credits.get_ledger("a@x.com")] == ["signup_grant"]


def test_spend_drops_caller_applied_delta(credits, database):
    credits.spend("a@x.com", 4, "generate_song", {"applied_delta": 500, "song_id": 1})
    credits.spend_if_available("a@x.com", 8, "generate_art", {"applied_delta": 500})

    assert ledger_reasons(database, "generate_song")[0].metadata_json == {"song_id": 1}
    assert ledger_reasons(database, "generate_art")[0].metadata_json is None
    assert credits.reconcile("a@x.com")["drift"] == 0


def test_monthly_reset_skipped_when_marker_moved(accounts, database):
    accounts.upsert_profile("a@x.com", credits=3, last_reset_date=JAN)

    with database.session() as session:
        stale = session.query(Profile).one()
        # Another request resets the month after this one read the profile
        with database.session() as other:
            other.query(Profile).update({Profile.credits: 7, Profile.last_reset_date: FEB_1})

        assert apply_monthly_reset(session, stale, now=FEB_28) is False
        assert stale.credits == 7
        assert stale.last_reset_date == FEB_1

    assert ledger_reasons(database, "monthly_reset") == []
