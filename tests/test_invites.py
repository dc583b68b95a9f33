import pytest

from ghostwriter.storage.models import InviteCode

OWNER_EMAIL = "owner@x.com"


def test_owner_creates_and_validates(invites):
    created = invites.create_code(OWNER_EMAIL, "vip2026", "skool", max_uses=2)

    assert created["code"] == "VIP2026"
    assert invites.validate_code("vip2026") == {"valid": True, "tier": "skool"}
    assert invites.validate_code("VIP2026") == {"valid": True, "tier": "skool"}
    assert invites.validate_code("VIP2026") == {"valid": False, "tier": None}


def test_unlimited_code(invites):
    invites.create_code(OWNER_EMAIL, "OPEN", "public", max_uses=0)

    for _ in range(10):
        assert invites.validate_code("OPEN")["valid"] is True


def test_unknown_code_is_invalid(invites):
    assert invites.validate_code("MISSING") == {"valid": False, "tier": None}


def test_non_owner_cannot_manage(invites):
    with pytest.raises(PermissionError):
        invites.create_code("someone@x.com", "HACK", "skool")
    with pytest.raises(PermissionError):
        invites.deactivate_code("someone@x.com", "HACK")

    assert invites.list_codes("someone@x.com") == []
    assert invites.get_active_code("someone@x.com") is None


def test_create_rejects_bad_input(invites):
    with pytest.raises(ValueError):
        invites.create_code(OWNER_EMAIL, "GOLD", "platinum")
    with pytest.raises(ValueError):
        invites.create_code(OWNER_EMAIL, "GOLD", "skool", max_uses=-1)

    invites.create_code(OWNER_EMAIL, "GOLD", "skool")
    with pytest.raises(ValueError):
        invites.create_code(OWNER_EMAIL, "gold", "skool")


def test_deactivate(invites):
    invites.create_code(OWNER_EMAIL, "TEMP", "skool")

    assert invites.deactivate_code(OWNER_EMAIL, "temp") is True
    assert invites.validate_code("TEMP")["valid"] is False
    assert invites.deactivate_code(OWNER_EMAIL, "NOPE") is False


def test_rotate_community_code(invites, database):
    first = invites.rotate_community_code()
    second = invites.rotate_community_code()

    assert first.startswith("BLACKAI") and len(first) == len("BLACKAI") + 4
    assert invites.validate_code(second) == {"valid": True, "tier": "skool"}
    assert invites.get_active_code(OWNER_EMAIL)["code"] == second
    with database.session() as session:
        active = session.query(InviteCode).filter(InviteCode.active.is_(True)).all()
        assert [i.code for i in active] == [second]


def test_list_codes_newest_first(invites):
    invites.create_code(OWNER_EMAIL, "A1", "public")
    invites.create_code(OWNER_EMAIL, "B2", "skool")

    assert [c["code"] for c in invites.list_codes(OWNER_EMAIL)] == ["B2", "A1"]
