from .tenancy import Branch
from .auth import User, RefreshToken
from .inventory import Product, ProductBranchStock
from .sales import Sale, SaleItem
from .documents import DocumentSequence
from .security import AuditRecord

__all__ = [
    'Branch',
    'User', 'RefreshToken',
    'Product', 'ProductBranchStock',
    'Sale', 'SaleItem',
    'DocumentSequence',
    'AuditRecord',
]
