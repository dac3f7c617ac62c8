from .actors import Actor, ActorRelationship
from .catalog import Product, Bundle, BundleItem
from .inventory import InventoryBalance, StockMovement
from .orders import PendingOrder, Transaction, DocumentSequence
from .incentives import RewardTier, CommissionTier
from .marketing import CustomerPurchase, Spend, Prospect
from .ledger import LedgerEvent

__all__ = [
    'Actor', 'ActorRelationship',
    'Product', 'Bundle', 'BundleItem',
    'InventoryBalance', 'StockMovement',
    'PendingOrder', 'Transaction', 'DocumentSequence',
    'RewardTier', 'CommissionTier',
    'CustomerPurchase', 'Spend', 'Prospect',
    'LedgerEvent',
]
