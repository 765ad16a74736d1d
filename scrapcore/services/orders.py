# scrapcore/services/orders.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scrapcore.core.config import settings
from scrapcore.core.constants import (
    AssignmentStatus,
    AuditStatus,
    CollectorTier,
    DealType,
    OrderStatus,
    OrderType,
    OwnerType,
    PaymentStatus,
    QuantityType,
    Role,
    ScrapCategory,
)
from scrapcore.core.actor import Actor
from scrapcore.core.db import atomic
from scrapcore.core.errors import (
    AccountNotFoundError,
    AuthorizationError,
    ConflictError,
    InsufficientFundsError,
    InternalError,
    NotFoundError,
    ScrapCoreError,
    ValidationError,
)
from scrapcore.integrations.notifications import NotificationDispatcher
from scrapcore.models.order import Order, OrderAssignment, OrderTarget
from scrapcore.models.order_item import OrderItem
from scrapcore.services import ledger
from scrapcore.services.ledger import AccountKey
from scrapcore.services.outbox import Outbox

logger = logging.getLogger(__name__)

# Edges reachable through update_status; pending -> confirmed only happens by claim,
# and any non-terminal -> cancelled goes through cancel_order.
STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    OrderStatus.CONFIRMED: (OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED),
    OrderStatus.IN_PROGRESS: (OrderStatus.COMPLETED,),
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------
# Pure helpers
# -------------------------
def location_from_address(pickup_address: dict | None) -> list[float] | None:
    """[lng, lat] from pickup_address.coordinates, or None when incomplete."""
    if not pickup_address:
        return None
    coords = pickup_address.get("coordinates") or {}
    lat, lng = coords.get("lat"), coords.get("lng")
    if lat is None or lng is None:
        return None
    try:
        return [float(lng), float(lat)]
    except (TypeError, ValueError):
        raise ValidationError("Pickup coordinates must be numeric.")


def line_total(weight: float, rate: int) -> int:
    value = Decimal(str(weight)) * Decimal(int(rate))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_items(raw_items: list[dict] | None) -> tuple[list[OrderItem], float, int]:
    """Validated OrderItem rows plus (total_weight, total_amount)."""
    items: list[OrderItem] = []
    total_weight = 0.0
    total_amount = 0

    for raw in raw_items or []:
        category = raw.get("category")
        if category not in ScrapCategory.ALL:
            raise ValidationError(f"Unknown scrap category: {category}")

        weight = raw.get("weight")
        rate = raw.get("rate", 0)
        if weight is None or float(weight) <= 0:
            raise ValidationError("Item weight must be positive.")
        if rate is None or int(rate) < 0:
            raise ValidationError("Item rate cannot be negative.")

        total = line_total(float(weight), int(rate))
        items.append(OrderItem(category=category, weight=float(weight), rate=int(rate), total=total))
        total_weight += float(weight)
        total_amount += total

    return items, round(total_weight, 3), total_amount


def classify_quantity(total_weight: float, explicit: str | None = None) -> str:
    if explicit:
        if explicit not in QuantityType.ALL:
            raise ValidationError(f"Unknown quantity type: {explicit}")
        return explicit
    if total_weight >= settings.LARGE_ORDER_WEIGHT:
        return QuantityType.LARGE
    return QuantityType.SMALL


def _append_note(notes: str | None, line: str) -> str:
    return f"{notes or ''}\n{line}".strip()


def _target_ids(raw: list[str] | None) -> list[str]:
    """Distinct, non-blank collector ids in the order given."""
    ids: list[str] = []
    for cid in raw or []:
        cid = str(cid).strip()
        if cid and cid not in ids:
            ids.append(cid)
    return ids


def snapshot(order: Order) -> dict:
    """Plain, JSON-safe view of an order for notifications."""
    return {
        "id": order.id,
        "requester_id": order.requester_id,
        "collector_id": order.collector_id,
        "forwarded_by": order.forwarded_by,
        "order_type": order.order_type,
        "quantity_type": order.quantity_type,
        "total_weight": order.total_weight,
        "total_amount": order.total_amount,
        "status": order.status,
        "assignment_status": order.assignment_status,
        "payment_status": order.payment_status,
        "deal_type": order.deal_type,
        "location": order.location,
    }


def _held_by(collector_id: str | None):
    if collector_id is None:
        return Order.collector_id.is_(None)
    return Order.collector_id == collector_id


def _unclaimed():
    return (Order.status == OrderStatus.PENDING, Order.collector_id.is_(None))


def _in_pool():
    return or_(
        Order.assignment_status == AssignmentStatus.UNASSIGNED,
        Order.assignment_status.is_(None),
    )


def _targets(collector_id: str):
    return (
        select(OrderTarget.id)
        .where(OrderTarget.order_id == Order.id, OrderTarget.collector_id == collector_id)
        .exists()
    )


def _claimable_by(collector_id: str):
    """Unclaimed, offered to this collector, and not handed off by them."""
    return (
        *_unclaimed(),
        or_(
            _in_pool(),
            and_(Order.assignment_status == AssignmentStatus.TARGETED, _targets(collector_id)),
        ),
        or_(Order.forwarded_by.is_(None), Order.forwarded_by != collector_id),
    )


# -------------------------
# Reads
# -------------------------
async def get_order(db: AsyncSession, order_id: int) -> Order:
    res = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found.")
    return order


def _authorize(order: Order, actor: Actor) -> None:
    if actor.role == Role.REQUESTER and order.requester_id == actor.id:
        return
    if actor.role == Role.COLLECTOR and order.collector_id == actor.id:
        return
    raise AuthorizationError("Not authorized to update this order.")


async def _require_balance(db: AsyncSession, key: AccountKey, minimum: int) -> None:
    try:
        await ledger.validate_balance(db, key, minimum)
    except AccountNotFoundError:
        raise InsufficientFundsError(
            f"Insufficient wallet balance. Required: {minimum}, Available: 0, Shortfall: {minimum}",
            required=minimum,
            available=0,
        )


# -------------------------
# Create / edit
# -------------------------
async def create_order(
    db: AsyncSession,
    payload: dict,
    requester_id: str,
    dispatcher: NotificationDispatcher | None = None,
) -> Order:
    order_type = payload.get("order_type") or OrderType.SCRAP_SELL
    if order_type not in OrderType.ALL:
        raise ValidationError(f"Unknown order type: {order_type}")

    service_fee = payload.get("service_fee")
    if order_type == OrderType.CLEANING_SERVICE:
        if payload.get("items"):
            raise ValidationError("Service orders do not carry scrap items.")
        if service_fee is not None and int(service_fee) < 0:
            raise ValidationError("Service fee cannot be negative.")
        items, total_weight, total_amount = [], 0.0, int(service_fee or 0)
    else:
        if service_fee is not None:
            raise ValidationError("Service fee only applies to service orders.")
        items, total_weight, total_amount = build_items(payload.get("items"))

    quantity_type = classify_quantity(total_weight, payload.get("quantity_type"))
    targeted = _target_ids(payload.get("targeted_collectors"))

    if order_type == OrderType.CLEANING_SERVICE:
        await _require_balance(
            db,
            AccountKey(OwnerType.REQUESTER, requester_id),
            settings.MIN_SERVICE_BALANCE,
        )

    pickup_address = payload.get("pickup_address")
    outbox = Outbox(dispatcher)

    async with atomic(db):
        order = Order(
            requester_id=requester_id,
            order_type=order_type,
            quantity_type=quantity_type,
            total_weight=total_weight,
            total_amount=total_amount,
            service_fee=int(service_fee) if service_fee is not None else None,
            status=OrderStatus.PENDING,
            assignment_status=AssignmentStatus.TARGETED if targeted else AssignmentStatus.UNASSIGNED,
            payment_status=PaymentStatus.PENDING,
            notes=payload.get("notes") or "",
            pickup_address=pickup_address,
            location=location_from_address(pickup_address),
            preferred_time=payload.get("preferred_time"),
            pickup_slot=payload.get("pickup_slot"),
            images=list(payload.get("images") or []),
            items=items,
            assignment_history=[],
            targets=[OrderTarget(collector_id=cid) for cid in targeted],
        )
        db.add(order)
        await db.flush()
        if targeted:
            for cid in targeted:
                outbox.notify_party(cid, "order_targeted", snapshot(order))
        else:
            outbox.notify_eligible_collectors(snapshot(order))

    logger.info(
        "Order created: %s by requester %s (type=%s, quantity=%s, amount=%s, targets=%s)",
        order.id,
        requester_id,
        order_type,
        quantity_type,
        total_amount,
        len(targeted),
    )
    outbox.release()
    return await get_order(db, order.id)


async def update_order(
    db: AsyncSession,
    order_id: int,
    requester_id: str,
    payload: dict,
) -> Order:
    """Requester edit of a pending order; totals follow the new items."""
    order = await get_order(db, order_id)
    if order.requester_id != requester_id:
        raise AuthorizationError("Not authorized to update this order.")
    if order.status != OrderStatus.PENDING:
        raise ConflictError("Can only update pending orders.")

    values: dict = {}
    new_items: list[OrderItem] | None = None

    if payload.get("items") is not None:
        if order.order_type == OrderType.CLEANING_SERVICE:
            raise ValidationError("Service orders do not carry scrap items.")
        new_items, total_weight, total_amount = build_items(payload["items"])
        values.update(total_weight=total_weight, total_amount=total_amount)

    if payload.get("pickup_address") is not None:
        values["pickup_address"] = payload["pickup_address"]
        values["location"] = location_from_address(payload["pickup_address"])
    for field in ("preferred_time", "pickup_slot", "images"):
        if payload.get(field) is not None:
            values[field] = payload[field]
    if payload.get("notes") is not None:
        values["notes"] = payload["notes"]

    if not values:
        return order

    values["updated_at"] = _now_utc()

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order.id, *_unclaimed())
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise ConflictError("Order was claimed or changed; it can no longer be edited.")

        if new_items is not None:
            # delete-orphan cascade removes the old rows
            order.items = new_items
            await db.flush()

    logger.info("Order %s updated by requester %s", order_id, requester_id)
    return await get_order(db, order_id)


# -------------------------
# Claim / forward
# -------------------------
async def accept_order(
    db: AsyncSession,
    order_id: int,
    collector_id: str,
    dispatcher: NotificationDispatcher | None = None,
) -> Order:
    """
    Claim a pending order for `collector_id`.

    The claim is one predicated UPDATE; of any number of concurrent callers
    exactly one matches it. A repeat call by the holder returns the order.
    """
    await _require_balance(
        db,
        AccountKey(OwnerType.COLLECTOR, collector_id),
        settings.MIN_OPERATING_BALANCE,
    )

    now = _now_utc()
    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, *_claimable_by(collector_id))
            .values(
                collector_id=collector_id,
                assignment_status=AssignmentStatus.ACCEPTED,
                status=OrderStatus.CONFIRMED,
                assigned_at=now,
                accepted_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        claimed = res.rowcount == 1
        if claimed:
            db.add(
                OrderAssignment(
                    order_id=order_id,
                    collector_id=collector_id,
                    status=AuditStatus.ACCEPTED,
                )
            )
            await db.flush()

    order = await get_order(db, order_id)

    if not claimed:
        if order.collector_id == collector_id:
            return order
        if order.forwarded_by == collector_id:
            raise ConflictError("You forwarded this order; it cannot be claimed back.")
        logger.warning("Collector %s lost the claim on order %s", collector_id, order_id)
        raise ConflictError("Order is no longer available.")

    logger.info("Order %s accepted by collector %s", order_id, collector_id)

    outbox = Outbox(dispatcher)
    outbox.notify_party(order.requester_id, "order_accepted", snapshot(order))
    outbox.release()
    return order


async def forward_order(
    db: AsyncSession,
    order_id: int,
    collector_id: str,
    dispatcher: NotificationDispatcher | None = None,
) -> Order:
    order = await get_order(db, order_id)
    if order.collector_id != collector_id:
        raise AuthorizationError("You can only forward orders assigned to you.")
    if order.status in OrderStatus.TERMINAL:
        raise ConflictError("Cannot forward completed or cancelled orders.")

    now = _now_utc()
    notes = _append_note(order.notes, f"[System]: Forwarded by collector {collector_id} to large collectors.")

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.collector_id == collector_id,
                Order.status.not_in(OrderStatus.TERMINAL),
            )
            .values(
                quantity_type=QuantityType.LARGE,
                forwarded_by=collector_id,
                collector_id=None,
                assignment_status=AssignmentStatus.UNASSIGNED,
                status=OrderStatus.PENDING,
                assigned_at=None,
                accepted_at=None,
                notes=notes,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise ConflictError("Order changed while forwarding; reload and retry.")

        db.add(
            OrderAssignment(
                order_id=order_id,
                collector_id=collector_id,
                status=AuditStatus.FORWARDED,
            )
        )
        await db.flush()

    order = await get_order(db, order_id)
    logger.info("Order %s forwarded to the large tier by %s", order_id, collector_id)

    outbox = Outbox(dispatcher)
    outbox.notify_eligible_collectors(snapshot(order), forwarded=True)
    outbox.release()
    return order


# -------------------------
# Status / settlement
# -------------------------
async def _open_settlement_accounts(db: AsyncSession, order: Order) -> None:
    payer, payee = ledger.settlement_parties(order)
    await ledger.ensure_account(db, payer)
    await ledger.ensure_account(db, payee)


async def _complete(
    db: AsyncSession,
    order: Order,
    *,
    payment_status: str | None,
    total_amount: int | None,
    deal: dict | None = None,
) -> Order:
    """
    Terminal write, wallets for both parties and settlement legs as one unit.
    Any failure rolls all of it back and the order keeps its prior status.
    """
    order_id = order.id
    prior_status = order.status
    holder = order.collector_id
    amount = int(order.total_amount if total_amount is None else total_amount)

    now = _now_utc()
    try:
        async with atomic(db):
            res = await db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status == prior_status,
                    _held_by(holder),
                )
                .values(
                    status=OrderStatus.COMPLETED,
                    total_amount=amount,
                    payment_status=payment_status or PaymentStatus.COMPLETED,
                    completed_at=now,
                    updated_at=now,
                    **(deal or {}),
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                raise ConflictError("Order was modified concurrently; reload and retry.")

            locked = await get_order(db, order_id)
            await _open_settlement_accounts(db, locked)
            await ledger.settle_order(db, locked)

    except ScrapCoreError as e:
        logger.warning("Completion of order %s refused: %s", order_id, e)
        raise
    except SQLAlchemyError as e:
        logger.exception("Settlement of order %s failed", order_id)
        raise InternalError("Order settlement failed; nothing was changed.") from e

    logger.info("Order %s completed and settled (amount=%s)", order_id, amount)
    return await get_order(db, order_id)


async def update_status(
    db: AsyncSession,
    order_id: int,
    actor: Actor,
    new_status: str,
    payment_status: str | None = None,
    total_amount: int | None = None,
    dispatcher: NotificationDispatcher | None = None,
    *,
    deal_type: str | None = None,
    is_negotiated: bool | None = None,
    final_price: int | None = None,
) -> Order:
    """
    Move an order along its lifecycle. A negotiated final_price replaces the
    order amount; deal_type decides whether completion moves the amount
    between wallets (Online) or only charges the commission (Cash).
    """
    if new_status not in OrderStatus.ALL:
        raise ValidationError(f"Unknown order status: {new_status}")
    if payment_status is not None and payment_status not in PaymentStatus.ALL:
        raise ValidationError("Invalid payment status.")
    if total_amount is not None and int(total_amount) < 0:
        raise ValidationError("Order amount cannot be negative.")
    if deal_type is not None and deal_type not in DealType.ALL:
        raise ValidationError(f"Unknown deal type: {deal_type}")
    if final_price is not None and int(final_price) < 0:
        raise ValidationError("Final price cannot be negative.")

    deal: dict = {}
    if deal_type is not None:
        deal["deal_type"] = deal_type
    if is_negotiated is not None:
        deal["is_negotiated"] = bool(is_negotiated)
    if final_price is not None:
        deal["final_price"] = int(final_price)
        total_amount = int(final_price)

    order = await get_order(db, order_id)
    _authorize(order, actor)

    current = order.status
    if current in OrderStatus.TERMINAL:
        raise ConflictError(f"Order is already {current}.")

    if new_status == OrderStatus.CANCELLED:
        return await cancel_order(db, order_id, actor, None, dispatcher)

    if new_status != current and new_status not in STATUS_TRANSITIONS.get(current, ()):
        raise ValidationError(f"Invalid status transition: {current} -> {new_status}")

    if new_status == OrderStatus.COMPLETED:
        order = await _complete(
            db,
            order,
            payment_status=payment_status,
            total_amount=total_amount,
            deal=deal,
        )
        event = "order_completed"
    else:
        values: dict = {"status": new_status, "updated_at": _now_utc(), **deal}
        if payment_status is not None:
            values["payment_status"] = payment_status
        if total_amount is not None:
            values["total_amount"] = int(total_amount)

        async with atomic(db):
            res = await db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == current, _held_by(order.collector_id))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                raise ConflictError("Order was modified concurrently; reload and retry.")

        order = await get_order(db, order_id)
        event = "order_status_updated"

    logger.info("Order %s status %s -> %s by %s %s", order_id, current, new_status, actor.role, actor.id)

    outbox = Outbox(dispatcher)
    counterparty = order.collector_id if actor.role == Role.REQUESTER else order.requester_id
    outbox.notify_party(counterparty, event, snapshot(order))
    outbox.release()
    return order


async def cancel_order(
    db: AsyncSession,
    order_id: int,
    actor: Actor,
    reason: str | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> Order:
    order = await get_order(db, order_id)
    _authorize(order, actor)

    if order.status == OrderStatus.COMPLETED:
        raise ConflictError("Cannot cancel completed order.")
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Order is already cancelled.")

    prior_status = order.status
    prior_holder = order.collector_id
    notes = _append_note(order.notes, f"Cancellation reason: {reason}") if reason else order.notes

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == prior_status, _held_by(prior_holder))
            .values(
                status=OrderStatus.CANCELLED,
                assignment_status=AssignmentStatus.UNASSIGNED,
                collector_id=None,
                notes=notes,
                updated_at=_now_utc(),
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise ConflictError("Order was modified concurrently; reload and retry.")

        if prior_holder:
            db.add(
                OrderAssignment(
                    order_id=order_id,
                    collector_id=prior_holder,
                    status=AuditStatus.CANCELLED,
                )
            )
            await db.flush()

    order = await get_order(db, order_id)
    logger.info("Order %s cancelled by %s %s", order_id, actor.role, actor.id)

    outbox = Outbox(dispatcher)
    counterparty = prior_holder if actor.role == Role.REQUESTER else order.requester_id
    outbox.notify_party(counterparty, "order_cancelled", snapshot(order))
    outbox.release()
    return order


async def pay_order(
    db: AsyncSession,
    order_id: int,
    actor: Actor,
    amount: int,
    dispatcher: NotificationDispatcher | None = None,
) -> Order:
    """Paying party settles the order from its wallet with the agreed amount."""
    if amount is None or int(amount) <= 0:
        raise ValidationError("Invalid payment amount.")

    order = await get_order(db, order_id)

    if order.status == OrderStatus.COMPLETED or order.payment_status == PaymentStatus.COMPLETED:
        raise ConflictError("Order already paid/completed.")
    if order.status not in STATUS_TRANSITIONS:
        raise ConflictError(f"Order cannot be paid while {order.status}.")

    payer, _ = ledger.settlement_parties(order)
    if actor.owner_type != payer.owner_type or actor.id != payer.owner_id:
        raise AuthorizationError("You are not the payer for this order.")

    order = await _complete(
        db,
        order,
        payment_status=PaymentStatus.COMPLETED,
        total_amount=int(amount),
        deal={"deal_type": DealType.ONLINE},
    )

    outbox = Outbox(dispatcher)
    payee = order.requester_id if actor.role == Role.COLLECTOR else order.collector_id
    outbox.notify_party(payee, "order_paid", snapshot(order))
    outbox.release()
    return order


# -------------------------
# Listings
# -------------------------
async def list_available(
    db: AsyncSession,
    collector_tier: str,
    *,
    limit: int | None = None,
) -> list[Order]:
    """
    Open orders visible to a tier. Small: small and never forwarded.
    Large: large, or forwarded by a small collector.
    """
    if collector_tier not in CollectorTier.ALL:
        raise ValidationError(f"Unknown collector tier: {collector_tier}")

    q = select(Order).where(*_unclaimed(), _in_pool())
    if collector_tier == CollectorTier.LARGE:
        q = q.where(or_(Order.quantity_type == QuantityType.LARGE, Order.forwarded_by.is_not(None)))
    else:
        q = q.where(Order.quantity_type == QuantityType.SMALL, Order.forwarded_by.is_(None))

    res = await db.execute(
        q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit or settings.AVAILABLE_ORDERS_LIMIT)
    )
    return list(res.scalars().all())


async def list_targeted(db: AsyncSession, collector_id: str) -> list[Order]:
    """Open orders offered directly to `collector_id` instead of the pool."""
    res = await db.execute(
        select(Order)
        .where(
            *_unclaimed(),
            Order.assignment_status == AssignmentStatus.TARGETED,
            _targets(collector_id),
        )
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(res.scalars().all())


async def _list(db: AsyncSession, *conditions, status: str | None, limit: int, offset: int) -> dict:
    if status is not None:
        conditions = (*conditions, Order.status == status)

    total_res = await db.execute(select(func.count()).select_from(Order).where(*conditions))
    res = await db.execute(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return {
        "items": list(res.scalars().all()),
        "limit": limit,
        "offset": offset,
        "total": int(total_res.scalar_one()),
    }


async def list_assigned(
    db: AsyncSession,
    collector_id: str,
    *,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    return await _list(db, Order.collector_id == collector_id, status=status, limit=limit, offset=offset)


async def list_forwarded(
    db: AsyncSession,
    collector_id: str,
    *,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    return await _list(db, Order.forwarded_by == collector_id, status=status, limit=limit, offset=offset)


async def list_requester_orders(
    db: AsyncSession,
    requester_id: str,
    *,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    return await _list(db, Order.requester_id == requester_id, status=status, limit=limit, offset=offset)


async def get_order_for_actor(db: AsyncSession, order_id: int, actor: Actor) -> Order:
    order = await get_order(db, order_id)

    if actor.role == Role.ADMIN:
        return order
    if actor.role == Role.REQUESTER and order.requester_id == actor.id:
        return order
    if actor.role == Role.COLLECTOR:
        if actor.id in (order.collector_id, order.forwarded_by):
            return order
        if order.status == OrderStatus.PENDING and order.collector_id is None:
            if order.assignment_status != AssignmentStatus.TARGETED or actor.id in order.targeted_collectors:
                return order

    raise AuthorizationError("Not authorized to view this order.")
