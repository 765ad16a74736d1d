"""
Shared fixtures: a throwaway SQLite database per test, a recording
notification dispatcher and helpers to open funded wallets.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./scrapcore-test.db")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

import pytest

from scrapcore.core.constants import OwnerType
from scrapcore.core.db import Database
from scrapcore.integrations.notifications import NotificationDispatcher
from scrapcore.services import ledger
from scrapcore.services.ledger import AccountKey


class RecordingDispatcher(NotificationDispatcher):
    """Keeps every event instead of delivering it; optionally fails on each call."""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.events = []

    async def notify_eligible_collectors(self, order, *, forwarded=False):
        self.events.append(("eligible_collectors", order["id"], forwarded))
        if self.fail:
            raise RuntimeError("push service unavailable")

    async def notify_party(self, party_id, event_name, payload):
        self.events.append((event_name, party_id, payload["id"]))
        if self.fail:
            raise RuntimeError("push service unavailable")


@pytest.fixture
async def database(tmp_path):
    db = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'scrapcore.db'}",
        connect_args={"timeout": 30},
    )
    await db.open()
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
async def session(database):
    async with database.session() as s:
        yield s


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher():
    return RecordingDispatcher(fail=True)


@pytest.fixture
def open_wallet(database):
    """open_wallet(owner_type, owner_id, balance=0) -> AccountKey"""

    async def _open(owner_type, owner_id, balance=0):
        key = AccountKey(owner_type, owner_id)
        async with database.session() as s:
            await ledger.open_account(s, key, opening_balance=balance)
        return key

    return _open


@pytest.fixture
def requester_wallet(open_wallet):
    async def _open(owner_id, balance=0):
        return await open_wallet(OwnerType.REQUESTER, owner_id, balance)

    return _open


@pytest.fixture
def collector_wallet(open_wallet):
    async def _open(owner_id, balance=0):
        return await open_wallet(OwnerType.COLLECTOR, owner_id, balance)

    return _open
