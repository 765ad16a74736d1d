from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from scrapcore.core.actor import Actor
from scrapcore.core.db import get_db
from scrapcore.core.deps import (
    get_current_actor,
    get_dispatcher,
    require_collector,
    require_party,
    require_requester,
)
from scrapcore.core.errors import ScrapCoreError
from scrapcore.integrations.notifications import NotificationDispatcher
from scrapcore.schemas.orders import (
    OrderCancelIn,
    OrderCreateIn,
    OrderOut,
    OrdersListOut,
    OrderStatusIn,
    OrderUpdateIn,
)
from scrapcore.services import orders as order_service

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderOut, status_code=201)
async def create_order(
    body: OrderCreateIn,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(require_requester),
):
    try:
        return await order_service.create_order(
            db,
            body.model_dump(exclude_none=True),
            actor.id,
            dispatcher,
        )
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/available", response_model=list[OrderOut])
async def list_available_orders(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_collector),
):
    try:
        return await order_service.list_available(db, actor.tier)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/targeted", response_model=list[OrderOut])
async def list_targeted_orders(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_collector),
):
    return await order_service.list_targeted(db, actor.id)


@router.get("/my-orders", response_model=OrdersListOut)
async def list_my_orders(
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_requester),
):
    data = await order_service.list_requester_orders(db, actor.id, status=status, limit=limit, offset=offset)
    return OrdersListOut(**data)


@router.get("/my-assigned", response_model=OrdersListOut)
async def list_my_assigned(
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_collector),
):
    data = await order_service.list_assigned(db, actor.id, status=status, limit=limit, offset=offset)
    return OrdersListOut(**data)


@router.get("/my-forwarded", response_model=OrdersListOut)
async def list_my_forwarded(
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_collector),
):
    data = await order_service.list_forwarded(db, actor.id, status=status, limit=limit, offset=offset)
    return OrdersListOut(**data)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        return await order_service.get_order_for_actor(db, order_id, actor)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/{order_id}", response_model=OrderOut)
async def update_order(
    order_id: int,
    body: OrderUpdateIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_requester),
):
    try:
        return await order_service.update_order(
            db,
            order_id,
            actor.id,
            body.model_dump(exclude_none=True),
        )
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{order_id}/accept", response_model=OrderOut)
async def accept_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(require_collector),
):
    try:
        return await order_service.accept_order(db, order_id, actor.id, dispatcher)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{order_id}/forward", response_model=OrderOut)
async def forward_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(require_collector),
):
    try:
        return await order_service.forward_order(db, order_id, actor.id, dispatcher)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/{order_id}/status", response_model=OrderOut)
async def update_order_status(
    order_id: int,
    body: OrderStatusIn,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(require_party),
):
    try:
        return await order_service.update_status(
            db,
            order_id,
            actor,
            body.status,
            payment_status=body.payment_status,
            total_amount=body.total_amount,
            dispatcher=dispatcher,
            deal_type=body.deal_type,
            is_negotiated=body.is_negotiated,
            final_price=body.final_price,
        )
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{order_id}/cancel", response_model=OrderOut)
async def cancel_order(
    order_id: int,
    body: OrderCancelIn,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    actor: Actor = Depends(require_party),
):
    try:
        return await order_service.cancel_order(db, order_id, actor, body.reason, dispatcher)
    except ScrapCoreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
