from .orders import Order, OrderItem
from .notifications import Notification
from .merchants import Merchant, MerchantStatus, MerchantActivityLog, MerchantPerformanceLog
from .inventory import InventoryItem
from .payments import PaymentRequest, PaymentLog
from .users import User

__all__ = [
    'Order', 'OrderItem',
    'Notification',
    'Merchant', 'MerchantStatus', 'MerchantActivityLog', 'MerchantPerformanceLog',
    'InventoryItem',
    'PaymentRequest', 'PaymentLog',
    'User',
    'MODELS_BY_TABLE',
]

# Remote table name -> model, as addressed by the remote store boundary.
# users is reached only through the auth session, never the remote store.
MODELS_BY_TABLE = {
    model.__tablename__: model
    for model in (
        Order, OrderItem, Notification, Merchant, MerchantStatus,
        MerchantActivityLog, MerchantPerformanceLog, InventoryItem,
        PaymentRequest, PaymentLog,
    )
}
