# scrapcore/schemas/orders.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PickupAddress(BaseModel):
    model_config = ConfigDict(extra="allow")

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class PickupSlot(BaseModel):
    day_name: Optional[str] = None
    date: Optional[str] = None
    slot: Optional[str] = None
    timestamp: Optional[int] = None


class OrderItemIn(BaseModel):
    category: str
    weight: float = Field(..., gt=0)
    rate: int = Field(0, ge=0)  # per kg, minor units


class OrderCreateIn(BaseModel):
    order_type: str = "scrap_sell"
    quantity_type: Optional[str] = None

    items: List[OrderItemIn] = Field(default_factory=list)
    service_fee: Optional[int] = Field(default=None, ge=0)

    pickup_address: Optional[PickupAddress] = None
    preferred_time: Optional[str] = None
    pickup_slot: Optional[PickupSlot] = None
    images: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=2000)
    # Offer the order to these collectors only, bypassing the open pool
    targeted_collectors: List[str] = Field(default_factory=list, max_length=20)


class OrderUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: Optional[List[OrderItemIn]] = None
    pickup_address: Optional[PickupAddress] = None
    preferred_time: Optional[str] = None
    pickup_slot: Optional[PickupSlot] = None
    images: Optional[List[str]] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class OrderStatusIn(BaseModel):
    status: str
    payment_status: Optional[str] = None
    total_amount: Optional[int] = Field(default=None, ge=0)
    deal_type: Optional[str] = None
    is_negotiated: Optional[bool] = None
    final_price: Optional[int] = Field(default=None, ge=0)


class OrderCancelIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    weight: float
    rate: int
    total: int


class AssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    collector_id: str
    status: str
    created_at: datetime


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: str
    collector_id: Optional[str] = None
    forwarded_by: Optional[str] = None

    order_type: str
    quantity_type: str
    total_weight: float
    total_amount: int
    service_fee: Optional[int] = None

    deal_type: str = "Online"
    is_negotiated: bool = False
    final_price: Optional[int] = None

    status: str
    assignment_status: Optional[str] = None
    payment_status: str
    targeted_collectors: List[str] = Field(default_factory=list)

    notes: str = ""
    pickup_address: Optional[dict] = None
    location: Optional[List[float]] = None
    preferred_time: Optional[str] = None
    pickup_slot: Optional[dict] = None
    images: List[str] = Field(default_factory=list)

    items: List[OrderItemOut] = Field(default_factory=list)
    assignment_history: List[AssignmentOut] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class OrdersListOut(BaseModel):
    items: List[OrderOut] = Field(default_factory=list)
    limit: int
    offset: int
    total: int
