from .clients import Restaurant, Client, ClientAddress
from .orders import Order, OrderItem, OrderItemOption, OrderTax, OrderCoupon, BillingDetails
from .menus import (
    Menu,
    MenuCategory,
    MenuItem,
    MenuItemSize,
    MenuOptionGroup,
    MenuOption,
    MenuItemOptionGroup,
    MenuSyncLease,
)
from .events import IngestionEvent

__all__ = [
    'Restaurant', 'Client', 'ClientAddress',
    'Order', 'OrderItem', 'OrderItemOption', 'OrderTax', 'OrderCoupon', 'BillingDetails',
    'Menu', 'MenuCategory', 'MenuItem', 'MenuItemSize',
    'MenuOptionGroup', 'MenuOption', 'MenuItemOptionGroup', 'MenuSyncLease',
    'IngestionEvent',
]
