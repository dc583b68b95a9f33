import pytest
from typer.testing import CliRunner

from ghostwriter import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_services(monkeypatch, database, accounts, credits, invites):
    monkeypatch.setattr(cli, "db", database)
    monkeypatch.setattr(cli, "account_service", accounts)
    monkeypatch.setattr(cli, "credit_service", credits)
    monkeypatch.setattr(cli, "invite_service", invites)


def test_init():
    result = runner.invoke(cli.app, ["init"])

    assert result.exit_code == 0
    assert "Database initialized" in result.output


def test_import_members_dry_run_then_apply(tmp_path, accounts):
    path = tmp_path / "members.csv"
    path.write_text("Email,FirstName\nmember@x.com,Mo\n,Nobody\n", encoding="utf-8")

    dry = runner.invoke(cli.app, ["import-members", str(path)])
    assert dry.exit_code == 0
    assert "DRY RUN" in dry.output
    assert accounts.get_profile("member@x.com")["tier"] == "public"

    applied = runner.invoke(cli.app, ["import-members", str(path), "--apply"])
    assert applied.exit_code == 0
    assert "Inserted: 1" in applied.output
    assert "Skipped (no email): 1" in applied.output


def test_enforce_tiers(accounts, database):
    from ghostwriter.storage.models import CommunityMember

    accounts.get_profile("member@x.com")
    with database.session() as session:
        session.add(CommunityMember(email="member@x.com"))

    result = runner.invoke(cli.app, ["enforce-tiers", "--apply"])

    assert result.exit_code == 0
    assert "Upgraded to skool: 1" in result.output


def test_rotate_invite_code(invites):
    result = runner.invoke(cli.app, ["rotate-invite-code"])

    assert result.exit_code == 0
    assert "BLACKAI" in result.output
    assert invites.get_active_code("owner@x.com") is not None


def test_ledger_and_reconcile(credits):
    credits.spend("a@x.com", 4, "generate_song")

    ledger = runner.invoke(cli.app, ["ledger", "a@x.com"])
    assert ledger.exit_code == 0
    assert "generate_song" in ledger.output

    reconcile = runner.invoke(cli.app, ["reconcile", "a@x.com"])
    assert reconcile.exit_code == 0
    assert "Balance matches ledger" in reconcile.output


def test_reconcile_exits_nonzero_on_drift(credits, database):
    from ghostwriter.storage.models import Profile

    credits.get_credits("a@x.com")
    with database.session() as session:
        session.query(Profile).update({Profile.credits: 1})

    result = runner.invoke(cli.app, ["reconcile", "a@x.com"])

    assert result.exit_code == 1
    assert "Drift" in result.output


def test_ledger_invalid_email():
    result = runner.invoke(cli.app, ["ledger", "not-an-email"])

    assert result.exit_code == 1


def test_serve_runs_api(monkeypatch):
    calls = []
    monkeypatch.setattr(cli.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))

    result = runner.invoke(cli.app, ["serve", "--port", "9100"])

    assert result.exit_code == 0
    assert calls == [(
        "ghostwriter.api.main:app",
        {"host": "127.0.0.1", "port": 9100, "reload": False, "log_config": None},
    )]
