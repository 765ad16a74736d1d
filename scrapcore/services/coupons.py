# scrapcore/services/coupons.py
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scrapcore.core.constants import CouponRole, CouponUsageType, OwnerType, TxCategory
from scrapcore.core.db import atomic
from scrapcore.core.errors import (
    AlreadyRedeemedError,
    ConflictError,
    InternalError,
    NotFoundError,
    ScrapCoreError,
    ValidationError,
)
from scrapcore.models.coupon import Coupon, CouponUsage
from scrapcore.services import ledger
from scrapcore.services.ledger import AccountKey

logger = logging.getLogger(__name__)


def normalize_code(code: str | None) -> str:
    clean = (code or "").strip().upper()
    if not clean:
        raise ValidationError("Coupon code is required.")
    return clean


def as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def coupon_role_for(identity: AccountKey) -> str:
    if identity.owner_type == OwnerType.COLLECTOR:
        return CouponRole.COLLECTOR
    return CouponRole.REQUESTER


def _redemption_key(coupon: Coupon, identity: AccountKey) -> str | None:
    if coupon.usage_type in CouponUsageType.ONE_PER_IDENTITY:
        return f"{identity.owner_type}:{identity.owner_id}"
    return None


async def _get_by_code(db: AsyncSession, code: str) -> Coupon:
    res = await db.execute(
        select(Coupon).where(Coupon.code == normalize_code(code)).execution_options(populate_existing=True)
    )
    coupon = res.scalar_one_or_none()
    if coupon is None:
        raise NotFoundError("Invalid coupon code.")
    return coupon


async def _get_by_id(db: AsyncSession, coupon_id: int) -> Coupon:
    res = await db.execute(
        select(Coupon).where(Coupon.id == coupon_id).execution_options(populate_existing=True)
    )
    coupon = res.scalar_one_or_none()
    if coupon is None:
        raise NotFoundError("Coupon not found.")
    return coupon


async def _has_usage(db: AsyncSession, coupon: Coupon, identity: AccountKey) -> bool:
    res = await db.execute(
        select(CouponUsage.id)
        .where(
            CouponUsage.coupon_id == coupon.id,
            CouponUsage.owner_type == identity.owner_type,
            CouponUsage.owner_id == identity.owner_id,
        )
        .limit(1)
    )
    return res.scalar_one_or_none() is not None


async def validate(
    db: AsyncSession,
    code: str,
    identity: AccountKey,
    role: str | None = None,
    now: datetime | None = None,
) -> Coupon:
    """Raise unless `identity` may redeem `code` right now; return the coupon."""
    role = role or coupon_role_for(identity)
    now = as_utc(now or datetime.now(timezone.utc))

    coupon = await _get_by_code(db, code)

    if not coupon.is_active:
        raise ValidationError("Coupon is inactive.")
    if now < as_utc(coupon.valid_from):
        raise ValidationError("Coupon is not yet valid.")
    if now > as_utc(coupon.valid_to):
        raise ValidationError("Coupon has expired.")
    if coupon.applicable_role not in (CouponRole.ALL, role):
        raise ValidationError("This coupon is not applicable for your role.")
    if coupon.usage_type == CouponUsageType.LIMITED and coupon.used_count >= coupon.usage_limit:
        raise ConflictError("Coupon usage limit exceeded.")
    if coupon.usage_type in CouponUsageType.ONE_PER_IDENTITY and await _has_usage(db, coupon, identity):
        raise AlreadyRedeemedError("You have already redeemed this coupon.")

    return coupon


async def redeem(
    db: AsyncSession,
    code: str,
    identity: AccountKey,
    role: str | None = None,
) -> dict:
    """
    Credit the coupon amount to the identity's wallet.

    One unit: usage counter increment, COUPON_CREDIT ledger entry and the
    usage row. A concurrent duplicate trips the (coupon, redemption_key)
    unique constraint and the whole unit rolls back.
    """
    try:
        async with atomic(db):
            coupon = await validate(db, code, identity, role)

            stmt = (
                update(Coupon)
                .where(Coupon.id == coupon.id, Coupon.is_active.is_(True))
                .values(used_count=Coupon.used_count + 1)
                .execution_options(synchronize_session=False)
            )
            if coupon.usage_type == CouponUsageType.LIMITED:
                stmt = stmt.where(Coupon.used_count < Coupon.usage_limit)

            res = await db.execute(stmt)
            if res.rowcount != 1:
                raise ConflictError("Coupon usage limit exceeded.")

            entry = await ledger.post_credit(
                db,
                identity,
                int(coupon.amount),
                category=TxCategory.COUPON_CREDIT,
                coupon_code=coupon.code,
                description=f"Coupon Applied: {coupon.code}",
            )

            usage = CouponUsage(
                coupon_id=coupon.id,
                owner_type=identity.owner_type,
                owner_id=identity.owner_id,
                redemption_key=_redemption_key(coupon, identity),
                transaction_id=entry.id,
                amount=int(coupon.amount),
            )
            db.add(usage)
            await db.flush()

    except IntegrityError as e:
        logger.warning("Duplicate redemption of %s by %s", code, identity)
        raise AlreadyRedeemedError("You have already redeemed this coupon.") from e
    except ScrapCoreError:
        raise
    except SQLAlchemyError as e:
        logger.exception("Coupon redemption failed for %s", identity)
        raise InternalError("Failed to apply coupon.") from e

    logger.info("Coupon %s redeemed by %s amount=%s", coupon.code, identity, coupon.amount)

    return {
        "coupon": coupon,
        "usage": usage,
        "transaction": entry,
        "amount_credited": int(coupon.amount),
        "new_balance": int(entry.balance_after),
    }


async def list_available(
    db: AsyncSession,
    identity: AccountKey,
    role: str | None = None,
    now: datetime | None = None,
) -> list[Coupon]:
    role = role or coupon_role_for(identity)
    now = as_utc(now or datetime.now(timezone.utc))

    res = await db.execute(
        select(Coupon)
        .where(
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_to >= now,
            Coupon.applicable_role.in_([CouponRole.ALL, role]),
            or_(
                Coupon.usage_type != CouponUsageType.LIMITED,
                Coupon.used_count < Coupon.usage_limit,
            ),
        )
        .order_by(Coupon.valid_to.asc(), Coupon.id.asc())
    )
    coupons = list(res.scalars().all())
    if not coupons:
        return []

    # one lookup for all candidate coupons instead of one per coupon
    used_res = await db.execute(
        select(CouponUsage.coupon_id)
        .where(
            CouponUsage.coupon_id.in_([c.id for c in coupons]),
            CouponUsage.owner_type == identity.owner_type,
            CouponUsage.owner_id == identity.owner_id,
        )
        .distinct()
    )
    used_ids = {int(x) for x in used_res.scalars().all()}

    return [
        c
        for c in coupons
        if c.usage_type == CouponUsageType.UNLIMITED or c.id not in used_ids
    ]


# -------------------------
# Admin
# -------------------------
async def create_coupon(
    db: AsyncSession,
    *,
    code: str,
    title: str,
    amount: int,
    applicable_role: str,
    usage_type: str,
    usage_limit: int = 0,
    valid_from: datetime,
    valid_to: datetime,
    is_active: bool = True,
) -> Coupon:
    clean_code = normalize_code(code)

    if amount <= 0:
        raise ValidationError("Coupon amount must be positive.")
    if applicable_role not in (CouponRole.REQUESTER, CouponRole.COLLECTOR, CouponRole.ALL):
        raise ValidationError(f"Unknown applicable role: {applicable_role}")
    if usage_type not in CouponUsageType.ALL:
        raise ValidationError(f"Unknown usage type: {usage_type}")
    if usage_type == CouponUsageType.LIMITED and usage_limit < 1:
        raise ValidationError("LIMITED coupons need a usage limit of at least 1.")

    start, end = as_utc(valid_from), as_utc(valid_to)
    if end <= start:
        raise ValidationError("valid_to must be after valid_from.")

    existing = await db.execute(select(Coupon.id).where(Coupon.code == clean_code))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Coupon code already exists.")

    try:
        async with atomic(db):
            coupon = Coupon(
                code=clean_code,
                title=title,
                amount=int(amount),
                applicable_role=applicable_role,
                usage_type=usage_type,
                usage_limit=int(usage_limit or 0),
                used_count=0,
                valid_from=start,
                valid_to=end,
                is_active=is_active,
            )
            db.add(coupon)
            await db.flush()
    except IntegrityError as e:
        raise ConflictError("Coupon code already exists.") from e

    logger.info("Coupon %s created (%s, %s)", clean_code, usage_type, amount)
    return coupon


async def list_coupons(db: AsyncSession, *, limit: int = 200, offset: int = 0) -> list[Coupon]:
    res = await db.execute(
        select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()).limit(limit).offset(offset)
    )
    return list(res.scalars().all())


async def toggle_coupon(db: AsyncSession, coupon_id: int) -> Coupon:
    async with atomic(db):
        coupon = await _get_by_id(db, coupon_id)
        await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon.id)
            .values(is_active=~Coupon.is_active)
            .execution_options(synchronize_session=False)
        )
    return await _get_by_id(db, coupon_id)


async def delete_coupon(db: AsyncSession, coupon_id: int) -> None:
    async with atomic(db):
        coupon = await _get_by_id(db, coupon_id)

        used = await db.execute(
            select(func.count()).select_from(CouponUsage).where(CouponUsage.coupon_id == coupon.id)
        )
        if int(used.scalar_one()) > 0:
            raise ConflictError("Cannot delete coupon that has been used. Deactivate it instead.")

        await db.delete(coupon)

    logger.info("Coupon %s deleted", coupon.code)
