"""Shared fixtures. Every test gets its own SQLite database."""

import os
import tempfile

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/ghostwriter-test.db")
os.environ["ENV"] = "test"
os.environ["SERVICE_API_KEY"] = "test-service-key"
os.environ["INVITE_OWNER_EMAIL"] = "owner@x.com"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from ghostwriter.accounts.service import AccountService
from ghostwriter.api import deps
from ghostwriter.api.main import app
from ghostwriter.billing.service import BillingService
from ghostwriter.invites.service import InviteService
from ghostwriter.ledger.credits import CreditService
from ghostwriter.referral.service import ReferralService
from ghostwriter.songs.service import SongService
from ghostwriter.storage.db import Database

SERVICE_KEY = "test-service-key"


@pytest.fixture
def database(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'test.db'}")
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def accounts(database):
    return AccountService(database)


@pytest.fixture
def credits(database):
    return CreditService(database)


@pytest.fixture
def billing(database):
    return BillingService(database)


@pytest.fixture
def referrals(database):
    return ReferralService(database)


@pytest.fixture
def songs(database):
    return SongService(database)


@pytest.fixture
def invites(database):
    return InviteService(database)


@pytest.fixture
def client(accounts, credits, billing, referrals, songs, invites):
    """API client wired to the per-test database."""
    app.dependency_overrides[deps.get_account_service] = lambda: accounts
    app.dependency_overrides[deps.get_credit_service] = lambda: credits
    app.dependency_overrides[deps.get_billing_service] = lambda: billing
    app.dependency_overrides[deps.get_referral_service] = lambda: referrals
    app.dependency_overrides[deps.get_song_service] = lambda: songs
    app.dependency_overrides[deps.get_invite_service] = lambda: invites
    yield TestClient(app, headers={"X-Service-Key": SERVICE_KEY})
    app.dependency_overrides.clear()
