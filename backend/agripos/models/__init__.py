from .accounts import Account
from .inventory import Product
from .sales import Transaction, TransactionItem
from .documents import DocumentSequence
from .eggs import CollectionRoute, EggCollection, route_farmers
from .payments import PaymentRecord
from .ledger import LedgerEntry
from .staff import Staff, StaffSession

__all__ = [
    'Account',
    'Product',
    'Transaction', 'TransactionItem',
    'DocumentSequence',
    'CollectionRoute', 'EggCollection', 'route_farmers',
    'PaymentRecord',
    'LedgerEntry',
    'Staff', 'StaffSession',
]
