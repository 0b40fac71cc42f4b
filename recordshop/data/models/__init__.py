#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from recordshop.data.models.user import UserModel
from recordshop.data.models.cart import CartModel
from recordshop.data.models.cart_item import CartItemModel
from recordshop.data.models.order import OrderModel, OrderItemModel
from recordshop.data.models.seller_credential import SellerCredentialModel

__all__ = [
    "UserModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "SellerCredentialModel",
]
