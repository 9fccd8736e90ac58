from .auth import User
from .inventory import Product, StockMovement
from .customers import Customer, CustomerTransaction
from .registers import CashSession, CashMovement
from .sales import Sale, SaleItem
from .outbox import OutboxTask

__all__ = [
    'User',
    'Product', 'StockMovement',
    'Customer', 'CustomerTransaction',
    'CashSession', 'CashMovement',
    'Sale', 'SaleItem',
    'OutboxTask',
]
