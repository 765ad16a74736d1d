from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrapcore.core.actor import Actor
from scrapcore.core.config import settings
from scrapcore.core.db import get_db
from scrapcore.core.deps import get_dispatcher, get_gateway, require_party
from scrapcore.core.errors import ScrapCoreError
from scrapcore.integrations.notifications import NotificationDispatcher
from scrapcore.integrations.payment_gateway import PaymentGateway
from scrapcore.schemas.coupons import ApplyCouponIn, ApplyCouponOut, CouponOut
from scrapcore.schemas.wallet import (
    PayOrderIn,
    PayOrderOut,
    RechargeCreateIn,
    RechargeIntentOut,
    RechargeVerifyIn,
    RechargeVerifyOut,
    WalletProfileOut,
    WalletTransactionsListOut,
    WithdrawIn,
    WithdrawOut,
)
from scrapcore.services import coupons as coupon_service
from scrapcore.services import ledger
from scrapcore.services import orders as order_service
from scrapcore.services.ledger import AccountKey

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet", tags=["Wallet"])


def _key(actor: Actor) -> AccountKey:
    return AccountKey(actor.owner_type, actor.id)


@router.get("/profile", response_model=WalletProfileOut)
async def wallet_profile(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_party),
):
    key = _key(actor)
    account = await ledger.get_or_open_account(db, key)
    recent = await ledger.list_transactions(db, key, limit=10, offset=0)
    return WalletProfileOut(
        owner_type=account.owner_type,
        owner_id=account.owner_id,
        balance=account.balance,
        currency=account.currency,
        status=account.status,
        recent_transactions=recent["items"],
    )


@router.get("/transactions", response_model=WalletTransactionsListOut)
async def wallet_transactions(
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_party),
):
    key = _key(actor)
    await ledger.get_or_open_account(db, key)
    data = await ledger.list_transactions(db, key, limit=limit, offset=offset)
    return WalletTransactionsListOut(**data)


@router.post("/recharge/create", response_model=RechargeIntentOut)
async def create_recharge(
    body: RechargeCreateIn,
    gateway: PaymentGateway = Depends(get_gateway),
    actor: Actor = Depends(require_party),
):
    if body.amount < settings.MIN_RECHARGE:
        raise HTTPException(status_code=400, detail=f"Minimum recharge amount is {settings.MIN_RECHARGE}.")

    try:
        intent = await gateway.create_intent(
            body.amount,
            {"owner_type": actor.owner_type, "owner_id": actor.id, "purpose": "wallet_recharge"},
        )
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return RechargeIntentOut(**intent)


@router.post("/recharge/verify", response_model=RechargeVerifyOut)
async def verify_recharge(
    body: RechargeVerifyIn,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    actor: Actor = Depends(require_party),
):
    if not gateway.verify_signature(body.external_order_id, body.external_payment_id, body.signature):
        logger.warning("Rejected recharge with bad signature for %s:%s", actor.owner_type, actor.id)
        raise HTTPException(status_code=400, detail="Invalid payment signature.")

    key = _key(actor)
    try:
        await ledger.get_or_open_account(db, key)
        entry, created = await ledger.credit_from_external_payment(
            db,
            key,
            body.amount,
            body.external_payment_id,
            external_order_id=body.external_order_id,
        )
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return RechargeVerifyOut(
        transaction=entry,
        new_balance=entry.balance_after,
        already_processed=not created,
    )


@router.post("/pay-order", response_model=PayOrderOut)
async def pay_order(
    body: PayOrderIn,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(require_party),
):
    try:
        order = await order_service.pay_order(db, body.order_id, actor, body.amount, dispatcher)
        balance = await ledger.get_balance(db, _key(actor))
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return PayOrderOut(
        order_id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        total_amount=order.total_amount,
        new_balance=balance,
    )


@router.post("/withdraw", response_model=WithdrawOut)
async def withdraw(
    body: WithdrawIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_party),
):
    try:
        withdrawal, entry = await ledger.request_withdrawal(
            db,
            _key(actor),
            body.amount,
            body.payout_details.model_dump(exclude_none=True),
        )
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return WithdrawOut(withdrawal=withdrawal, new_balance=entry.balance_after)


@router.post("/apply-coupon", response_model=ApplyCouponOut)
async def apply_coupon(
    body: ApplyCouponIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_party),
):
    key = _key(actor)
    try:
        await ledger.get_or_open_account(db, key)
        result = await coupon_service.redeem(db, body.code, key)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return ApplyCouponOut(
        code=result["coupon"].code,
        amount_credited=result["amount_credited"],
        new_balance=result["new_balance"],
        transaction_id=result["transaction"].id,
    )


@router.get("/coupons", response_model=list[CouponOut])
async def available_coupons(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_party),
):
    return await coupon_service.list_available(db, _key(actor))
