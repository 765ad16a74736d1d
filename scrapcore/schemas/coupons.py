# scrapcore/schemas/coupons.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ApplyCouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class ApplyCouponOut(BaseModel):
    code: str
    amount_credited: int
    new_balance: int
    transaction_id: int


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    title: str
    amount: int
    applicable_role: str
    usage_type: str
    valid_from: datetime
    valid_to: datetime


class AdminCouponCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    amount: int = Field(..., ge=1)
    applicable_role: str = "ALL"
    usage_type: str = "SINGLE_USE_PER_USER"
    usage_limit: int = Field(0, ge=0)
    valid_from: datetime
    valid_to: datetime
    is_active: bool = True


class AdminCouponResponse(CouponOut):
    usage_limit: int
    used_count: int
    is_active: bool
    created_at: datetime
