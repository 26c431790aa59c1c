#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w Base.metadata

from shopcore.data.models.user import UserModel
from shopcore.data.models.product import ProductModel
from shopcore.data.models.variant import ProductVariantModel
from shopcore.data.models.coupon import CouponModel
from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel
from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_item import OrderItemModel
from shopcore.data.models.order_status_history import OrderStatusHistoryModel

__all__ = [
    "UserModel",
    "ProductModel",
    "ProductVariantModel",
    "CouponModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "OrderStatusHistoryModel",
]
