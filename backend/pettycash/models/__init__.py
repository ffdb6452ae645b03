from .auth import User, SessionToken, OTP
from .expenses import Category, Transaction, DocumentSequence
from .funds import Balance, FundTransfer
from .clients import Client
from .activity import AuditLog, UserActivityLog, LoginActivity

__all__ = [
    'User', 'SessionToken', 'OTP',
    'Category', 'Transaction', 'DocumentSequence',
    'Balance', 'FundTransfer',
    'Client',
    'AuditLog', 'UserActivityLog', 'LoginActivity',
]
