from __future__ import annotations


class Role:
    REQUESTER = "requester"
    COLLECTOR = "collector"
    ADMIN = "admin"


class CollectorTier:
    SMALL = "small"
    LARGE = "large"

    ALL = (SMALL, LARGE)


class OwnerType:
    REQUESTER = "requester"
    COLLECTOR = "collector"

    ALL = (REQUESTER, COLLECTOR)


class OrderType:
    SCRAP_SELL = "scrap_sell"
    CLEANING_SERVICE = "cleaning_service"

    ALL = (SCRAP_SELL, CLEANING_SERVICE)


class QuantityType:
    SMALL = "small"
    LARGE = "large"

    ALL = (SMALL, LARGE)


class OrderStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (PENDING, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED)
    TERMINAL = (COMPLETED, CANCELLED)


class AssignmentStatus:
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TARGETED = "targeted"

    ALL = (UNASSIGNED, ASSIGNED, ACCEPTED, REJECTED, TARGETED)


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

    ALL = (PENDING, COMPLETED, FAILED, REFUNDED)


class DealType:
    ONLINE = "Online"  # order amount moves wallet to wallet
    CASH = "Cash"  # order amount paid in hand; only the commission is posted

    ALL = (ONLINE, CASH)


class ScrapCategory:
    METAL = "metal"
    PLASTIC = "plastic"
    PAPER = "paper"
    ELECTRONIC = "electronic"
    GLASS = "glass"
    OTHER = "other"

    ALL = (METAL, PLASTIC, PAPER, ELECTRONIC, GLASS, OTHER)


class AuditStatus:
    ACCEPTED = "accepted"
    FORWARDED = "forwarded"
    CANCELLED = "cancelled"


class AccountStatus:
    ACTIVE = "active"
    FROZEN = "frozen"


class EntryType:
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class TxCategory:
    PAYMENT_SENT = "PAYMENT_SENT"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    COMMISSION = "COMMISSION"
    RECHARGE = "RECHARGE"
    WITHDRAWAL = "WITHDRAWAL"
    COUPON_CREDIT = "COUPON_CREDIT"
    REFUND = "REFUND"


class TxStatus:
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class WithdrawalStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSED = "PROCESSED"


class PayoutMethod:
    BANK_TRANSFER = "BANK_TRANSFER"
    UPI = "UPI"


class CouponRole:
    REQUESTER = "REQUESTER"
    COLLECTOR = "COLLECTOR"
    ALL = "ALL"


class CouponUsageType:
    SINGLE_USE_PER_USER = "SINGLE_USE_PER_USER"
    LIMITED = "LIMITED"
    UNLIMITED = "UNLIMITED"

    ALL = (SINGLE_USE_PER_USER, LIMITED, UNLIMITED)
    ONE_PER_IDENTITY = (SINGLE_USE_PER_USER, LIMITED)
