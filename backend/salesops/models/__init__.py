from .organization import Branch, Area, User, AreaAssignment
from .catalog import ProductCategory, Product, BranchCategory
from .inventory import Stock, StockMovement
from .sales import SalesTransaction, SalesTransactionItem, Commission
from .visits import Visit
from .targets import Target
from .documents import DocumentSequence

__all__ = [
    'Branch', 'Area', 'User', 'AreaAssignment',
    'ProductCategory', 'Product', 'BranchCategory',
    'Stock', 'StockMovement',
    'SalesTransaction', 'SalesTransactionItem', 'Commission',
    'Visit',
    'Target',
    'DocumentSequence',
]
