import pytest

from ghostwriter.referral.service import qualify_and_reward
from ghostwriter.storage.models import CreditLedgerEntry, Referral, User


def test_code_is_stable(referrals):
    code = referrals.get_or_create_code("a@x.com")

    assert len(code) == 8
    assert code == referrals.get_or_create_code("a@x.com")
    assert set(code) <= set("ABCDEFGHJKMNPQRSTUVWXYZ23456789")


def test_claim_creates_pending(referrals):
    code = referrals.get_or_create_code("a@x.com")

    assert referrals.claim_code("b@x.com", f" {code.lower()} ") == {"status": "pending"}


def test_claim_unknown_code(referrals):
    with pytest.raises(ValueError, match="Invalid referral code"):
        referrals.claim_code("b@x.com", "NOPE1234")


def test_claim_own_code(referrals):
    code = referrals.get_or_create_code("a@x.com")

    with pytest.raises(ValueError, match="Cannot use your own code"):
        referrals.claim_code("a@x.com", code)


def test_second_claim_keeps_first_referrer(referrals, database):
    code_a = referrals.get_or_create_code("a@x.com")
    code_c = referrals.get_or_create_code("c@x.com")
    referrals.claim_code("b@x.com", code_a)

    assert referrals.claim_code("b@x.com", code_c) == {"status": "pending"}
    with database.session() as session:
        referral = session.query(Referral).one()
        assert referral.code == code_a


def test_first_song_rewards_both_once(referrals, songs, credits, database):
    code = referrals.get_or_create_code("a@x.com")
    referrals.claim_code("b@x.com", code)

    first = songs.save_song("b@x.com", "First", "lofi", "la la")
    second = songs.save_song("b@x.com", "Second", "lofi", "la la")

    assert first["referral_rewarded"] is True
    assert second["referral_rewarded"] is False
    assert credits.get_credits("a@x.com") == 65
    assert credits.get_credits("b@x.com") == 45
    with database.session() as session:
        referral = session.query(Referral).one()
        assert referral.status == "rewarded"
        assert referral.qualified_at is not None
        assert referral.rewarded_at is not None
        reasons = sorted(e.reason for e in session.query(CreditLedgerEntry).filter(
            CreditLedgerEntry.reason.like("referral_%")
        ))
        assert reasons == ["referral_invitee_reward", "referral_inviter_reward"]


def test_reward_repeated_saves(referrals, songs, credits):
    code = referrals.get_or_create_code("a@x.com")
    referrals.claim_code("b@x.com", code)

    for n in range(5):
        songs.save_song("b@x.com", f"Song {n}", "", "")

    assert credits.get_credits("a@x.com") == 65


def test_claim_after_reward_returns_rewarded(referrals, songs):
    code = referrals.get_or_create_code("a@x.com")
    referrals.claim_code("b@x.com", code)
    songs.save_song("b@x.com", "First", "", "")

    assert referrals.claim_code("b@x.com", code) == {"status": "rewarded"}


def test_song_without_referral_grants_nothing(songs, credits):
    result = songs.save_song("solo@x.com", "Alone", "", "")

    assert result["referral_rewarded"] is False
    assert credits.get_credits("solo@x.com") == 25


def test_rewards_survive_reconcile(referrals, songs, credits):
    code = referrals.get_or_create_code("a@x.com")
    referrals.claim_code("b@x.com", code)
    songs.save_song("b@x.com", "First", "", "")

    assert credits.reconcile("a@x.com")["drift"] == 0
    assert credits.reconcile("b@x.com")["drift"] == 0


def test_summary(referrals, songs):
    code = referrals.get_or_create_code("a@x.com")
    referrals.claim_code("b@x.com", code)
    referrals.claim_code("c@x.com", code)
    songs.save_song("b@x.com", "First", "", "")

    summary = referrals.get_summary("a@x.com")

    assert summary == {
        "code": code,
        "invited_count": 2,
        "rewarded_count": 1,
        "earned_credits": 40,
    }


def test_summary_without_code(referrals):
    assert referrals.get_summary("new@x.com")["code"] is None


def test_stale_pending_referral_rewards_nothing(referrals, credits, database):
    code = referrals.get_or_create_code("a@x.com")
    referrals.claim_code("b@x.com", code)

    with database.session() as session:
        referred = session.query(User).filter(User.email == "b@x.com").one()
        assert session.query(Referral).one().status == "pending"
        # Another save rewards the referral after this one read it
        with database.session() as other:
            other.query(Referral).update({Referral.status: "rewarded"})

        assert qualify_and_reward(session, referred.id) is False

    assert credits.get_credits("a@x.com") == 25
    assert credits.get_credits("b@x.com") == 25
    with database.session() as session:
        assert session.query(CreditLedgerEntry).filter(
            CreditLedgerEntry.reason.like("referral_%")
        ).count() == 0
