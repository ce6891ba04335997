from .auth import User, UserRole, SessionToken
from .security import SecurityEvent
from .orders import VnOrder, VnOrderDocument, VnOrderHistory, OrderNumberSequence, DOCUMENT_TYPES

__all__ = [
    'User', 'UserRole', 'SessionToken', 'SecurityEvent',
    'VnOrder', 'VnOrderDocument', 'VnOrderHistory', 'OrderNumberSequence',
    'DOCUMENT_TYPES',
]
