"""
Coupon engine: validation rules, one-per-identity redemption and global caps
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from scrapcore.core.constants import CouponRole, CouponUsageType, OwnerType, TxCategory
from scrapcore.core.errors import (
    AlreadyRedeemedError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from scrapcore.models.coupon import CouponUsage
from scrapcore.services import coupons, ledger
from scrapcore.services.ledger import AccountKey


def _window(days_before=1, days_after=30):
    now = datetime.now(timezone.utc)
    return now - timedelta(days=days_before), now + timedelta(days=days_after)


@pytest.fixture
def make_coupon(database):
    async def _make(code, amount=50, role=CouponRole.ALL, usage_type=CouponUsageType.SINGLE_USE_PER_USER,
                    usage_limit=0, window=None):
        valid_from, valid_to = window or _window()
        async with database.session() as s:
            return await coupons.create_coupon(
                s,
                code=code,
                title=f"{code} promo",
                amount=amount,
                applicable_role=role,
                usage_type=usage_type,
                usage_limit=usage_limit,
                valid_from=valid_from,
                valid_to=valid_to,
            )

    return _make


class TestRedeem:
    async def test_welcome_coupon_once_per_identity(self, session, make_coupon, requester_wallet):
        await make_coupon("WELCOME50", amount=50)
        key = await requester_wallet("req-1", 0)

        result = await coupons.redeem(session, "WELCOME50", key)
        assert result["amount_credited"] == 50
        assert result["new_balance"] == 50
        assert result["transaction"].category == TxCategory.COUPON_CREDIT
        assert result["transaction"].coupon_code == "WELCOME50"

        with pytest.raises(AlreadyRedeemedError):
            await coupons.redeem(session, "WELCOME50", key)

        assert await ledger.get_balance(session, key) == 50
        usages = await session.execute(select(func.count()).select_from(CouponUsage))
        assert usages.scalar_one() == 1

    async def test_code_is_case_and_space_insensitive(self, session, make_coupon, requester_wallet):
        await make_coupon("festive100", amount=100)
        key = await requester_wallet("req-2", 0)

        result = await coupons.redeem(session, "  Festive100 ", key)

        assert result["coupon"].code == "FESTIVE100"
        assert await ledger.get_balance(session, key) == 100

    async def test_same_identity_racing_itself(self, database, make_coupon, requester_wallet):
        await make_coupon("ONCE", amount=25)
        key = await requester_wallet("req-3", 0)

        async def attempt():
            async with database.session() as s:
                try:
                    await coupons.redeem(s, "ONCE", key)
                    return "ok"
                except AlreadyRedeemedError:
                    return "dup"

        results = await asyncio.gather(*(attempt() for _ in range(4)))

        assert results.count("ok") == 1
        assert results.count("dup") == 3
        async with database.session() as s:
            assert await ledger.get_balance(s, key) == 25

    async def test_limited_cap_holds_under_concurrency(self, database, make_coupon, requester_wallet):
        coupon = await make_coupon("FIRST10", amount=20, usage_type=CouponUsageType.LIMITED, usage_limit=10)
        keys = [await requester_wallet(f"req-l{n}", 0) for n in range(15)]

        async def attempt(key):
            async with database.session() as s:
                try:
                    await coupons.redeem(s, "FIRST10", key)
                    return "ok"
                except ConflictError:
                    return "capped"

        results = await asyncio.gather(*(attempt(k) for k in keys))

        assert results.count("ok") == 10
        assert results.count("capped") == 5
        async with database.session() as s:
            stored = await coupons._get_by_id(s, coupon.id)
            assert stored.used_count == 10

    async def test_unlimited_can_repeat(self, session, make_coupon, collector_wallet):
        await make_coupon("FUEL", amount=30, usage_type=CouponUsageType.UNLIMITED)
        key = await collector_wallet("col-1", 0)

        await coupons.redeem(session, "FUEL", key)
        await coupons.redeem(session, "FUEL", key)

        assert await ledger.get_balance(session, key) == 60


class TestValidate:
    async def test_unknown_code(self, session, requester_wallet):
        key = await requester_wallet("req-1", 0)
        with pytest.raises(NotFoundError):
            await coupons.validate(session, "NOPE", key)

    async def test_role_restriction(self, session, make_coupon, requester_wallet):
        await make_coupon("PICKERS", role=CouponRole.COLLECTOR)
        key = await requester_wallet("req-1", 0)
        with pytest.raises(ValidationError):
            await coupons.validate(session, "PICKERS", key)

    async def test_validity_window(self, session, make_coupon, requester_wallet):
        past = _window(days_before=30, days_after=-1)
        future = _window(days_before=-2, days_after=10)
        await make_coupon("OLD", window=past)
        await make_coupon("SOON", window=future)
        key = await requester_wallet("req-1", 0)

        with pytest.raises(ValidationError):
            await coupons.validate(session, "OLD", key)
        with pytest.raises(ValidationError):
            await coupons.validate(session, "SOON", key)

    async def test_inactive_after_toggle(self, session, make_coupon, requester_wallet):
        coupon = await make_coupon("PAUSED")
        key = await requester_wallet("req-1", 0)

        toggled = await coupons.toggle_coupon(session, coupon.id)
        assert toggled.is_active is False

        with pytest.raises(ValidationError):
            await coupons.redeem(session, "PAUSED", key)
        assert await ledger.get_balance(session, key) == 0


class TestListAvailable:
    async def test_filters_used_role_and_exhausted(self, session, make_coupon, requester_wallet):
        await make_coupon("WELCOME50")
        await make_coupon("DAILY", usage_type=CouponUsageType.UNLIMITED)
        await make_coupon("PICKERS", role=CouponRole.COLLECTOR)
        await make_coupon("ONLYONE", usage_type=CouponUsageType.LIMITED, usage_limit=1)

        me = await requester_wallet("req-me", 0)
        other = await requester_wallet("req-other", 0)

        codes = {c.code for c in await coupons.list_available(session, me)}
        assert codes == {"WELCOME50", "DAILY", "ONLYONE"}

        await coupons.redeem(session, "WELCOME50", me)
        await coupons.redeem(session, "DAILY", me)
        await coupons.redeem(session, "ONLYONE", other)

        codes = {c.code for c in await coupons.list_available(session, me)}
        assert codes == {"DAILY"}


class TestAdmin:
    async def test_duplicate_code(self, make_coupon):
        await make_coupon("DUP")
        with pytest.raises(ConflictError):
            await make_coupon("dup")

    async def test_limited_needs_limit(self, make_coupon):
        with pytest.raises(ValidationError):
            await make_coupon("NOLIMIT", usage_type=CouponUsageType.LIMITED, usage_limit=0)

    async def test_delete_refused_once_used(self, session, make_coupon, requester_wallet):
        used = await make_coupon("USED")
        unused = await make_coupon("UNUSED")
        key = await requester_wallet("req-1", 0)
        await coupons.redeem(session, "USED", key)

        with pytest.raises(ConflictError):
            await coupons.delete_coupon(session, used.id)

        await coupons.delete_coupon(session, unused.id)
        remaining = {c.code for c in await coupons.list_coupons(session)}
        assert remaining == {"USED"}

    async def test_wallet_owner_type_maps_to_coupon_role(self):
        assert coupons.coupon_role_for(AccountKey(OwnerType.COLLECTOR, "c")) == CouponRole.COLLECTOR
        assert coupons.coupon_role_for(AccountKey(OwnerType.REQUESTER, "r")) == CouponRole.REQUESTER
