from .catalog import Product, ProductSet, Attar, StockRecord, CATALOG_MODELS
from .parties import Party, PartyItemPrice, Transaction
from .orders import Order, OrderItem
from .settings import Setting

__all__ = [
    'Product', 'ProductSet', 'Attar', 'StockRecord', 'CATALOG_MODELS',
    'Party', 'PartyItemPrice', 'Transaction',
    'Order', 'OrderItem',
    'Setting',
]
