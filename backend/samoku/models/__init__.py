from .auth import User, SessionToken
from .catalog import Store, Product
from .cart import CartItem
from .wishlist import WishlistItem
from .orders import Order, OrderLine
from .commissions import CommissionTransaction, Payout
from .notifications import Notification
from .inventory import InventoryAlert, InventoryLog
from .dropshipping import DropshippingProduct, DropshippingOrder, DropshippingSyncLog
from .reviews import ProductReview

__all__ = [
    'User', 'SessionToken',
    'Store', 'Product',
    'CartItem',
    'WishlistItem',
    'Order', 'OrderLine',
    'CommissionTransaction', 'Payout',
    'Notification',
    'InventoryAlert', 'InventoryLog',
    'DropshippingProduct', 'DropshippingOrder', 'DropshippingSyncLog',
    'ProductReview',
]
