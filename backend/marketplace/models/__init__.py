from .auth import User, SessionToken, ROLE_ADMIN, ROLE_SELLER, ROLE_CUSTOMER, VALID_ROLES
from .customers import Customer, CustomerPrice
from .catalog import Product
from .orders import Order, OrderItem, OrderPayment, CreditNote
from .transactions import Transaction, TransactionAllocation
from .messaging import Conversation, ConversationParticipant, Message, Notification

__all__ = [
    'User', 'SessionToken', 'ROLE_ADMIN', 'ROLE_SELLER', 'ROLE_CUSTOMER', 'VALID_ROLES',
    'Customer', 'CustomerPrice',
    'Product',
    'Order', 'OrderItem', 'OrderPayment', 'CreditNote',
    'Transaction', 'TransactionAllocation',
    'Conversation', 'ConversationParticipant', 'Message', 'Notification',
]
