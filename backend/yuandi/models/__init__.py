from .inventory import Product, InventoryMovement
from .orders import Order, OrderItem, Shipment, Refund
from .cashbook import CashbookTransaction
from .documents import DocumentSequence, EventLog

__all__ = [
    'Product', 'InventoryMovement',
    'Order', 'OrderItem', 'Shipment', 'Refund',
    'CashbookTransaction',
    'DocumentSequence', 'EventLog',
]
