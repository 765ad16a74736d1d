from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WalletTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tx_id: str
    entry_type: str
    category: str
    amount: int  # signed
    currency: str
    balance_before: int
    balance_after: int
    status: str

    order_id: Optional[int] = None
    coupon_code: Optional[str] = None
    external_payment_id: Optional[str] = None
    external_order_id: Optional[str] = None
    description: Optional[str] = None
    meta: dict = Field(default_factory=dict)

    created_at: datetime


class WalletProfileOut(BaseModel):
    owner_type: str
    owner_id: str
    balance: int
    currency: str
    status: str
    recent_transactions: List[WalletTransactionOut] = Field(default_factory=list)


class WalletTransactionsListOut(BaseModel):
    items: List[WalletTransactionOut] = Field(default_factory=list)
    limit: int
    offset: int
    total: int


# -------------------------
# Recharge
# -------------------------
class RechargeCreateIn(BaseModel):
    amount: int = Field(..., ge=1)


class RechargeIntentOut(BaseModel):
    external_order_id: str
    amount: int
    currency: str
    key_id: str


class RechargeVerifyIn(BaseModel):
    external_order_id: str = Field(..., min_length=1)
    external_payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
    amount: int = Field(..., ge=1)


class RechargeVerifyOut(BaseModel):
    transaction: WalletTransactionOut
    new_balance: int
    already_processed: bool = False


# -------------------------
# Pay / withdraw
# -------------------------
class PayOrderIn(BaseModel):
    order_id: int
    amount: int = Field(..., ge=1)


class PayOrderOut(BaseModel):
    order_id: int
    status: str
    payment_status: str
    total_amount: int
    new_balance: int


class PayoutDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    bank_name: Optional[str] = None
    upi_id: Optional[str] = None


class WithdrawIn(BaseModel):
    amount: int = Field(..., ge=1)
    payout_details: PayoutDetails


class WithdrawalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: str
    amount: int
    status: str
    payout_details: dict
    created_at: datetime


class WithdrawOut(BaseModel):
    withdrawal: WithdrawalOut
    new_balance: int
