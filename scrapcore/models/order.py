from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from sqlalchemy import BigInteger, Boolean, DateTime, Float, ForeignKey, Index, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scrapcore.core.db import Base, BigIntPK, JSONType
from scrapcore.models.order_item import OrderItem


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    requester_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # NULL exactly when assignment_status is unassigned
    collector_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Previous holder who re-published the order to the large tier
    forwarded_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    order_type: Mapped[str] = mapped_column(String(32), nullable=False, default="scrap_sell")
    quantity_type: Mapped[str] = mapped_column(String(8), nullable=False, default="small")

    total_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    service_fee: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    deal_type: Mapped[str] = mapped_column(String(16), nullable=False, default="Online")
    is_negotiated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Price agreed at pickup; becomes total_amount on completion
    final_price: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    assignment_status: Mapped[str | None] = mapped_column(String(16), nullable=True, default="unassigned")
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    pickup_address: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    # [lng, lat], derived from pickup_address at write time
    location: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    preferred_time: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pickup_slot: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    images: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    assignment_history: Mapped[List["OrderAssignment"]] = relationship(
        "OrderAssignment",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderAssignment.id",
    )

    targets: Mapped[List["OrderTarget"]] = relationship(
        "OrderTarget",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderTarget.id",
    )

    @property
    def targeted_collectors(self) -> list[str]:
        return [t.collector_id for t in self.targets]


Index("ix_orders_requester_created", Order.requester_id, Order.created_at.desc())
Index("ix_orders_collector_created", Order.collector_id, Order.created_at.desc())
Index("ix_orders_status", Order.status)
Index("ix_orders_forwarded_by", Order.forwarded_by)


class OrderAssignment(Base):
    """Append-only audit trail of who held an order and what they did with it."""

    __tablename__ = "order_assignments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    order_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    collector_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )

    order = relationship("Order", back_populates="assignment_history")


class OrderTarget(Base):
    """Collector an order was offered to directly instead of the open pool."""

    __tablename__ = "order_targets"
    __table_args__ = (UniqueConstraint("order_id", "collector_id", name="uq_order_targets_order_collector"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    order_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    collector_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    order = relationship("Order", back_populates="targets")
