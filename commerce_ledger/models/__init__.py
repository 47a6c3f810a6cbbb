from .catalog import Product
from .inventory import StockMovement
from .accounts import UserAccount
from .tokens import TokenTransaction, TokenPurchaseRequest, OrderUnlock
from .settings import AppSetting

__all__ = [
    'Product', 'StockMovement',
    'UserAccount',
    'TokenTransaction', 'TokenPurchaseRequest', 'OrderUnlock',
    'AppSetting',
]
