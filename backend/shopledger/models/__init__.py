from .accounts import Account, Transaction
from .inventory import Product, InventoryItem, InventoryPurchaseRecord, InventorySaleRecord
from .parties import Supplier, SupplierHistoryEntry, Customer, CustomerHistoryEntry
from .purchases import Purchase, PurchaseLine
from .sales import Sale, SaleLine, SalePayment
from .auth import User, SessionToken

__all__ = [
    'Account', 'Transaction',
    'Product', 'InventoryItem', 'InventoryPurchaseRecord', 'InventorySaleRecord',
    'Supplier', 'SupplierHistoryEntry', 'Customer', 'CustomerHistoryEntry',
    'Purchase', 'PurchaseLine',
    'Sale', 'SaleLine', 'SalePayment',
    'User', 'SessionToken',
]
