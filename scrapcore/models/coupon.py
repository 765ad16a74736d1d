# scrapcore/models/coupon.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scrapcore.core.db import Base, BigIntPK


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint(
            "applicable_role IN ('REQUESTER','COLLECTOR','ALL')",
            name="coupons_applicable_role_check",
        ),
        CheckConstraint(
            "usage_type IN ('SINGLE_USE_PER_USER','LIMITED','UNLIMITED')",
            name="coupons_usage_type_check",
        ),
        CheckConstraint("amount >= 0", name="coupons_amount_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # Stored upper-cased
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    applicable_role: Mapped[str] = mapped_column(String(16), nullable=False)
    usage_type: Mapped[str] = mapped_column(String(32), nullable=False)
    usage_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )


class CouponUsage(Base):
    __tablename__ = "coupon_usages"
    __table_args__ = (
        # redemption_key is NULL for UNLIMITED coupons, and NULLs never collide
        UniqueConstraint("coupon_id", "redemption_key", name="uq_coupon_usages_redemption"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    coupon_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("coupons.id", ondelete="RESTRICT"),
        nullable=False,
    )

    owner_type: Mapped[str] = mapped_column(String(16), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    redemption_key: Mapped[str | None] = mapped_column(String(96), nullable=True)

    transaction_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("wallet_transactions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )

    coupon = relationship("Coupon", lazy="selectin")
