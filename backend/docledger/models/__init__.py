from .document import Document
from .base import Actor, document_id, split_document_id, new_local_id
from .accounts import Account, Transaction, TransactionType
from .inventory import (
    Stock,
    StockAdjustment,
    StockMovement,
    StockReferenceType,
    Batch,
    BatchStatus,
    InventoryItem,
    InventoryItemCondition,
    InventoryItemStatus,
)
from .purchases import (
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    ReceivingItem,
    ReceivingRecord,
    OpeningStockEntry,
    OpeningStockItem,
    OpeningStockItemType,
)
from .catalog import Category, Product, Supplier
from .audit import AuditLogEntry

__all__ = [
    'Document',
    'Actor', 'document_id', 'split_document_id', 'new_local_id',
    'Account', 'Transaction', 'TransactionType',
    'Stock', 'StockAdjustment', 'StockMovement', 'StockReferenceType', 'Batch', 'BatchStatus',
    'InventoryItem', 'InventoryItemCondition', 'InventoryItemStatus',
    'PurchaseOrder', 'PurchaseOrderItem', 'PurchaseOrderStatus',
    'ReceivingItem', 'ReceivingRecord',
    'OpeningStockEntry', 'OpeningStockItem', 'OpeningStockItemType',
    'Category', 'Product', 'Supplier',
    'AuditLogEntry',
]
