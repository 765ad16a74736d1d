from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scrapcore.core.config import settings
from scrapcore.core.constants import (
    AccountStatus,
    DealType,
    EntryType,
    OrderType,
    OwnerType,
    PayoutMethod,
    TxCategory,
    TxStatus,
    WithdrawalStatus,
)
from scrapcore.core.db import atomic
from scrapcore.core.errors import (
    AccountNotFoundError,
    ConflictError,
    InsufficientFundsError,
    InternalError,
    ValidationError,
)
from scrapcore.models.order import Order
from scrapcore.models.wallet import WalletAccount, WalletTransaction, WithdrawalRequest
from scrapcore.services.commission import commission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountKey:
    owner_type: str
    owner_id: str

    def __post_init__(self) -> None:
        if self.owner_type not in OwnerType.ALL:
            raise ValidationError(f"Unknown account owner type: {self.owner_type}")
        if not self.owner_id:
            raise ValidationError("Account owner id is required.")

    def __str__(self) -> str:
        return f"{self.owner_type}:{self.owner_id}"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_tx_id() -> str:
    return uuid4().hex


# -------------------------
# Accounts
# -------------------------
async def find_account(db: AsyncSession, key: AccountKey) -> WalletAccount | None:
    res = await db.execute(
        select(WalletAccount)
        .where(
            WalletAccount.owner_type == key.owner_type,
            WalletAccount.owner_id == key.owner_id,
        )
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_account(db: AsyncSession, key: AccountKey) -> WalletAccount:
    account = await find_account(db, key)
    if account is None:
        raise AccountNotFoundError(f"Wallet account not found for {key}.")
    return account


async def open_account(
    db: AsyncSession,
    key: AccountKey,
    *,
    opening_balance: int = 0,
    currency: str | None = None,
) -> WalletAccount:
    async with atomic(db):
        account = WalletAccount(
            owner_type=key.owner_type,
            owner_id=key.owner_id,
            balance=int(opening_balance),
            opening_balance=int(opening_balance),
            currency=currency or settings.CURRENCY,
            status=AccountStatus.ACTIVE,
        )
        db.add(account)
        await db.flush()

    logger.info("Wallet opened for %s (opening balance %s)", key, opening_balance)
    return account


async def get_or_open_account(db: AsyncSession, key: AccountKey) -> WalletAccount:
    account = await find_account(db, key)
    if account is not None:
        return account

    try:
        return await open_account(db, key)
    except IntegrityError:
        # lost a race with another first-time request for the same owner
        return await get_account(db, key)


async def ensure_account(db: AsyncSession, key: AccountKey) -> WalletAccount:
    """Find or stage a new empty account inside the caller's unit; nothing is committed."""
    account = await find_account(db, key)
    if account is not None:
        return account

    account = WalletAccount(
        owner_type=key.owner_type,
        owner_id=key.owner_id,
        balance=0,
        opening_balance=0,
        currency=settings.CURRENCY,
        status=AccountStatus.ACTIVE,
    )
    db.add(account)
    await db.flush()
    return account


async def set_account_status(db: AsyncSession, key: AccountKey, status: str) -> WalletAccount:
    if status not in (AccountStatus.ACTIVE, AccountStatus.FROZEN):
        raise ValidationError(f"Unknown account status: {status}")

    async with atomic(db):
        account = await get_account(db, key)
        await db.execute(
            update(WalletAccount)
            .where(WalletAccount.id == account.id)
            .values(status=status, updated_at=_now_utc())
            .execution_options(synchronize_session=False)
        )
    return await get_account(db, key)


async def get_balance(db: AsyncSession, key: AccountKey) -> int:
    return int((await get_account(db, key)).balance)


async def validate_balance(db: AsyncSession, key: AccountKey, minimum: int) -> WalletAccount:
    """
    Read-only gate in front of operations that create a payment obligation.
    """
    account = await get_account(db, key)
    if account.balance < minimum:
        raise InsufficientFundsError(
            f"Insufficient wallet balance. Required: {minimum}, Available: {account.balance}, "
            f"Shortfall: {minimum - account.balance}",
            required=minimum,
            available=int(account.balance),
        )
    return account


# -------------------------
# Postings (no commit; the caller owns the atomic unit)
# -------------------------
async def _post(
    db: AsyncSession,
    key: AccountKey,
    delta: int,
    *,
    category: str,
    allow_negative: bool,
    tx_id: str | None,
    status: str,
    order_id: int | None,
    coupon_code: str | None,
    external_payment_id: str | None,
    external_order_id: str | None,
    description: str | None,
    meta: dict | None,
) -> WalletTransaction:
    account = await get_account(db, key)
    if account.status != AccountStatus.ACTIVE:
        raise ConflictError(f"Wallet for {key} is {account.status}.")

    stmt = (
        update(WalletAccount)
        .where(
            WalletAccount.id == account.id,
            WalletAccount.status == AccountStatus.ACTIVE,
        )
        .values(balance=WalletAccount.balance + delta, updated_at=_now_utc())
        .execution_options(synchronize_session=False)
    )
    if delta < 0 and not allow_negative:
        stmt = stmt.where(WalletAccount.balance >= -delta)

    res = await db.execute(stmt)
    if res.rowcount != 1:
        current = await get_account(db, key)
        if current.status != AccountStatus.ACTIVE:
            raise ConflictError(f"Wallet for {key} is {current.status}.")
        raise InsufficientFundsError(
            f"Insufficient wallet balance. Required: {-delta}, Available: {current.balance}",
            required=-delta,
            available=int(current.balance),
        )

    # Row is write-locked by the UPDATE above until the unit ends
    balance_after = int(
        (await db.execute(select(WalletAccount.balance).where(WalletAccount.id == account.id))).scalar_one()
    )

    entry = WalletTransaction(
        tx_id=tx_id or new_tx_id(),
        account_id=account.id,
        entry_type=EntryType.CREDIT if delta > 0 else EntryType.DEBIT,
        category=category,
        amount=delta,
        currency=account.currency,
        balance_before=balance_after - delta,
        balance_after=balance_after,
        status=status,
        order_id=order_id,
        coupon_code=coupon_code,
        external_payment_id=external_payment_id,
        external_order_id=external_order_id,
        description=description,
        meta=meta or {},
    )
    db.add(entry)
    await db.flush()
    return entry


def _positive(amount: int) -> int:
    try:
        value = int(amount)
    except (TypeError, ValueError):
        raise ValidationError("Amount must be an integer.")
    if value != amount or value <= 0:
        raise ValidationError("Amount must be a positive integer.")
    return value


async def post_debit(
    db: AsyncSession,
    key: AccountKey,
    amount: int,
    *,
    category: str,
    allow_negative: bool = False,
    tx_id: str | None = None,
    status: str = TxStatus.SUCCESS,
    order_id: int | None = None,
    coupon_code: str | None = None,
    external_payment_id: str | None = None,
    external_order_id: str | None = None,
    description: str | None = None,
    meta: dict | None = None,
) -> WalletTransaction:
    return await _post(
        db,
        key,
        -_positive(amount),
        category=category,
        allow_negative=allow_negative,
        tx_id=tx_id,
        status=status,
        order_id=order_id,
        coupon_code=coupon_code,
        external_payment_id=external_payment_id,
        external_order_id=external_order_id,
        description=description,
        meta=meta,
    )


async def post_credit(
    db: AsyncSession,
    key: AccountKey,
    amount: int,
    *,
    category: str,
    tx_id: str | None = None,
    status: str = TxStatus.SUCCESS,
    order_id: int | None = None,
    coupon_code: str | None = None,
    external_payment_id: str | None = None,
    external_order_id: str | None = None,
    description: str | None = None,
    meta: dict | None = None,
) -> WalletTransaction:
    return await _post(
        db,
        key,
        _positive(amount),
        category=category,
        allow_negative=True,
        tx_id=tx_id,
        status=status,
        order_id=order_id,
        coupon_code=coupon_code,
        external_payment_id=external_payment_id,
        external_order_id=external_order_id,
        description=description,
        meta=meta,
    )


# -------------------------
# Atomic primitives
# -------------------------
async def debit(
    db: AsyncSession,
    key: AccountKey,
    amount: int,
    reason: str | None = None,
    *,
    category: str = TxCategory.PAYMENT_SENT,
    allow_negative: bool = False,
    order_id: int | None = None,
) -> WalletTransaction:
    async with atomic(db):
        entry = await post_debit(
            db,
            key,
            amount,
            category=category,
            allow_negative=allow_negative,
            order_id=order_id,
            description=reason,
        )
    logger.info("Wallet debited: %s amount=%s category=%s", key, amount, category)
    return entry


async def credit(
    db: AsyncSession,
    key: AccountKey,
    amount: int,
    reason: str | None = None,
    *,
    category: str = TxCategory.PAYMENT_RECEIVED,
    order_id: int | None = None,
) -> WalletTransaction:
    async with atomic(db):
        entry = await post_credit(
            db,
            key,
            amount,
            category=category,
            order_id=order_id,
            description=reason,
        )
    logger.info("Wallet credited: %s amount=%s category=%s", key, amount, category)
    return entry


async def transfer(
    db: AsyncSession,
    from_key: AccountKey,
    to_key: AccountKey,
    amount: int,
    reason: str | None = None,
    *,
    debit_category: str = TxCategory.PAYMENT_SENT,
    credit_category: str = TxCategory.PAYMENT_RECEIVED,
    order_id: int | None = None,
) -> list[WalletTransaction]:
    """
    Debit one wallet and credit another in one unit; both legs share a tx_id.
    """
    if from_key == to_key:
        raise ValidationError("Cannot transfer to the same wallet.")

    tx_id = new_tx_id()
    async with atomic(db):
        out_entry = await post_debit(
            db,
            from_key,
            amount,
            category=debit_category,
            tx_id=tx_id,
            order_id=order_id,
            description=reason or f"Transfer to {to_key.owner_type}",
            meta={"to": str(to_key)},
        )
        in_entry = await post_credit(
            db,
            to_key,
            amount,
            category=credit_category,
            tx_id=tx_id,
            order_id=order_id,
            description=reason or f"Transfer from {from_key.owner_type}",
            meta={"from": str(from_key)},
        )

    logger.info("Wallet transfer: %s -> %s amount=%s", from_key, to_key, amount)
    return [out_entry, in_entry]


# -------------------------
# Settlement
# -------------------------
def settlement_parties(order: Order) -> tuple[AccountKey, AccountKey]:
    """(payer, payee) for an order. Collectors buy scrap; requesters buy services."""
    if not order.collector_id:
        raise ConflictError("Order has no collector to settle with.")

    requester = AccountKey(OwnerType.REQUESTER, order.requester_id)
    collector = AccountKey(OwnerType.COLLECTOR, order.collector_id)
    if order.order_type == OrderType.CLEANING_SERVICE:
        return requester, collector
    return collector, requester


async def settle_order(
    db: AsyncSession,
    order: Order,
    *,
    rate: float | None = None,
    minimum_fee: int | None = None,
    allow_negative: bool | None = None,
) -> list[WalletTransaction]:
    """
    Post the settlement legs of a completed order inside the caller's unit:
    payee credited the order amount, payer debited the order amount, payer
    debited the platform commission. Cash deals were paid in hand, so only
    the commission leg is posted. Nothing is committed here.
    """
    rate = settings.COMMISSION_RATE if rate is None else rate
    minimum_fee = settings.MIN_COMMISSION if minimum_fee is None else minimum_fee
    allow_negative = settings.ALLOW_NEGATIVE_SETTLEMENT if allow_negative is None else allow_negative

    amount = int(order.total_amount or 0)
    if amount < 0:
        raise ValidationError("Order amount cannot be negative.")
    fee = commission(amount, rate, minimum_fee)

    payer, payee = settlement_parties(order)
    cash = order.deal_type == DealType.CASH

    if not allow_negative:
        payer_account = await get_account(db, payer)
        required = fee if cash else amount + fee
        if payer_account.balance < required:
            raise InsufficientFundsError(
                f"Insufficient wallet balance to settle order {order.id}. "
                f"Required: {required}, Available: {payer_account.balance}",
                required=required,
                available=int(payer_account.balance),
            )

    tx_id = new_tx_id()
    entries: list[WalletTransaction] = []

    if amount > 0 and not cash:
        entries.append(
            await post_credit(
                db,
                payee,
                amount,
                category=TxCategory.PAYMENT_RECEIVED,
                tx_id=tx_id,
                order_id=order.id,
                description=f"Payment received for Order #{order.id}",
            )
        )
        entries.append(
            await post_debit(
                db,
                payer,
                amount,
                category=TxCategory.PAYMENT_SENT,
                allow_negative=allow_negative,
                tx_id=tx_id,
                order_id=order.id,
                description=f"Payment for Order #{order.id}",
            )
        )

    entries.append(
        await post_debit(
            db,
            payer,
            fee,
            category=TxCategory.COMMISSION,
            allow_negative=allow_negative,
            tx_id=tx_id,
            order_id=order.id,
            description=f"Platform fee ({rate:.2%}) for Order #{order.id}",
            meta={"rate": rate, "order_amount": amount, "deal_type": order.deal_type},
        )
    )

    logger.info(
        "Settlement posted for order %s: amount=%s deal=%s commission=%s payer=%s payee=%s",
        order.id,
        amount,
        order.deal_type,
        fee,
        payer,
        payee,
    )
    return entries


# -------------------------
# Gateway recharge
# -------------------------
async def find_by_external_payment(db: AsyncSession, external_payment_id: str) -> WalletTransaction | None:
    res = await db.execute(
        select(WalletTransaction).where(WalletTransaction.external_payment_id == external_payment_id)
    )
    return res.scalar_one_or_none()


async def credit_from_external_payment(
    db: AsyncSession,
    key: AccountKey,
    amount: int,
    external_payment_id: str,
    *,
    external_order_id: str | None = None,
) -> tuple[WalletTransaction, bool]:
    """
    Credit a verified gateway payment exactly once.

    Returns (transaction, created). A payment id seen before returns the
    original transaction with created=False and moves no money.
    """
    if not external_payment_id:
        raise ValidationError("External payment id is required.")

    account_id = (await get_account(db, key)).id

    existing = await find_by_external_payment(db, external_payment_id)
    if existing is not None:
        if existing.account_id != account_id:
            raise ConflictError("Payment was already credited to another wallet.")
        logger.info("Recharge %s already processed; returning original transaction", external_payment_id)
        return existing, False

    try:
        async with atomic(db):
            entry = await post_credit(
                db,
                key,
                amount,
                category=TxCategory.RECHARGE,
                external_payment_id=external_payment_id,
                external_order_id=external_order_id,
                description="Wallet recharge via Razorpay",
                meta={"provider": "RAZORPAY"},
            )
    except IntegrityError:
        # a concurrent verify of the same payment committed first
        existing = await find_by_external_payment(db, external_payment_id)
        if existing is None:
            raise InternalError("Recharge failed to commit.")
        if existing.account_id != account_id:
            raise ConflictError("Payment was already credited to another wallet.")
        return existing, False

    logger.info("Wallet recharged: %s amount=%s payment=%s", key, amount, external_payment_id)
    return entry, True


# -------------------------
# Withdrawals
# -------------------------
def _payout_method(payout_details: dict) -> str:
    if payout_details.get("upi_id"):
        return PayoutMethod.UPI
    if payout_details.get("account_number"):
        return PayoutMethod.BANK_TRANSFER
    raise ValidationError("Valid bank details or UPI ID required.")


async def request_withdrawal(
    db: AsyncSession,
    key: AccountKey,
    amount: int,
    payout_details: dict,
    *,
    minimum: int | None = None,
) -> tuple[WithdrawalRequest, WalletTransaction]:
    """
    Debit the wallet now (PENDING) and queue a payout request for fulfilment.
    The debit and the request are created together or not at all.
    """
    minimum = settings.MIN_WITHDRAWAL if minimum is None else minimum
    amount = _positive(amount)
    if amount < minimum:
        raise ValidationError(f"Minimum withdrawal amount is {minimum}.")

    details = dict(payout_details or {})
    details["method"] = _payout_method(details)

    request_id = f"WDR-{uuid4().hex[:16].upper()}"

    async with atomic(db):
        entry = await post_debit(
            db,
            key,
            amount,
            category=TxCategory.WITHDRAWAL,
            status=TxStatus.PENDING,
            description="Withdrawal request",
            meta={"request_id": request_id},
        )
        withdrawal = WithdrawalRequest(
            request_id=request_id,
            account_id=entry.account_id,
            transaction_id=entry.id,
            amount=amount,
            status=WithdrawalStatus.PENDING,
            payout_details=details,
        )
        db.add(withdrawal)
        await db.flush()

    logger.info("Withdrawal %s requested by %s amount=%s", request_id, key, amount)
    return withdrawal, entry


# -------------------------
# Reads
# -------------------------
async def list_transactions(
    db: AsyncSession,
    key: AccountKey,
    *,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    account = await get_account(db, key)

    total_res = await db.execute(
        select(func.count()).select_from(WalletTransaction).where(WalletTransaction.account_id == account.id)
    )
    total = int(total_res.scalar_one())

    res = await db.execute(
        select(WalletTransaction)
        .where(WalletTransaction.account_id == account.id)
        .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return {"items": list(res.scalars().all()), "limit": limit, "offset": offset, "total": total}


async def reconcile_account(db: AsyncSession, key: AccountKey) -> dict:
    """Compare the stored balance with opening balance + signed sum of the ledger."""
    account = await get_account(db, key)
    res = await db.execute(
        select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
            WalletTransaction.account_id == account.id,
            WalletTransaction.status != TxStatus.FAILED,
        )
    )
    ledger_sum = int(res.scalar_one())
    expected = int(account.opening_balance) + ledger_sum
    return {
        "balance": int(account.balance),
        "opening_balance": int(account.opening_balance),
        "ledger_sum": ledger_sum,
        "expected_balance": expected,
        "consistent": expected == int(account.balance),
    }
