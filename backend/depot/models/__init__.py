from .catalog import Category, Product, ProductSupplier
from .partners import Supplier, Client, Driver
from .inventory import Lot, StockMovement, StockLoss
from .orders import Order, OrderItem, Payment
from .documents import DocumentSequence

__all__ = [
    'Category', 'Product', 'ProductSupplier',
    'Supplier', 'Client', 'Driver',
    'Lot', 'StockMovement', 'StockLoss',
    'Order', 'OrderItem', 'Payment',
    'DocumentSequence',
]
