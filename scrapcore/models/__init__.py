# scrapcore/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from scrapcore.models.wallet import WalletAccount, WalletTransaction, WithdrawalRequest  # noqa: F401

from scrapcore.models.order_item import OrderItem  # noqa: F401
from scrapcore.models.order import Order, OrderAssignment, OrderTarget  # noqa: F401

from scrapcore.models.coupon import Coupon, CouponUsage  # noqa: F401
