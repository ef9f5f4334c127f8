from .catalog import Category, Product
from .customers import Customer
from .sales import Sale, SaleItem, DocumentSequence
from .auth import User, SessionToken

__all__ = [
    'Category', 'Product',
    'Customer',
    'Sale', 'SaleItem', 'DocumentSequence',
    'User', 'SessionToken',
]
