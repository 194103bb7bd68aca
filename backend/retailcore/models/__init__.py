from .tenancy import User, Business, BusinessUser, Branch, BranchUser
from .catalog import Product, ProductPresentation, Supplier, BASE_VARIANT
from .sales import Sale, SaleItem
from .purchasing import Purchase, PurchaseItem
from .sessions import WorkSession

__all__ = [
    'User', 'Business', 'BusinessUser', 'Branch', 'BranchUser',
    'Product', 'ProductPresentation', 'Supplier', 'BASE_VARIANT',
    'Sale', 'SaleItem',
    'Purchase', 'PurchaseItem',
    'WorkSession',
]
