from .catalog import Warehouse, User, Product, Location, Container
from .stock import Stock
from .documents import Document, DocumentLine, DocumentSequence
from .inventory import InventoryCount, InventoryCountLocation, InventoryLine
from .audit import AuditLog

__all__ = [
    'Warehouse', 'User', 'Product', 'Location', 'Container',
    'Stock',
    'Document', 'DocumentLine', 'DocumentSequence',
    'InventoryCount', 'InventoryCountLocation', 'InventoryLine',
    'AuditLog',
]
