from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from scrapcore.core.db import Base, BigIntPK, JSONType


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _new_tx_id() -> str:
    return uuid4().hex


class WalletAccount(Base):
    __tablename__ = "wallet_accounts"
    __table_args__ = (
        UniqueConstraint("owner_type", "owner_id", name="uq_wallet_accounts_owner"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # requester | collector; one abstraction for both kinds of party
    owner_type: Mapped[str] = mapped_column(String(16), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)

    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # Balance the account was opened with; reconciliation starts here
    opening_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

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


class WalletTransaction(Base):
    """Immutable ledger row. Corrections are new rows, never updates."""

    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # Groups the legs written by one atomic unit (transfer, settlement, ...)
    tx_id: Mapped[str] = mapped_column(String(32), nullable=False, default=_new_tx_id)

    account_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("wallet_accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    entry_type: Mapped[str] = mapped_column(String(8), nullable=False)  # DEBIT / CREDIT
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # signed
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="SUCCESS")

    order_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    external_payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    external_order_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes; attribute is meta
    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )


Index("ix_wallet_transactions_account_created", WalletTransaction.account_id, WalletTransaction.created_at.desc())
Index("ix_wallet_transactions_tx_id", WalletTransaction.tx_id)
Index("ix_wallet_transactions_order_id", WalletTransaction.order_id)


class WithdrawalRequest(Base):
    __tablename__ = "withdrawal_requests"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    account_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("wallet_accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    transaction_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("wallet_transactions.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    payout_details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        server_default=func.now(),
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
