from .auth import User, SessionToken, ROLES
from .catalog import Category, Supplier, Product
from .inventory import InventoryTransaction, TRANSACTION_TYPES
from .sales import Sale, SaleItem, PAYMENT_METHODS

__all__ = [
    'User', 'SessionToken', 'ROLES',
    'Category', 'Supplier', 'Product',
    'InventoryTransaction', 'TRANSACTION_TYPES',
    'Sale', 'SaleItem', 'PAYMENT_METHODS',
]
