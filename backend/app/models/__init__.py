from .branches import Branch
from .auth import User
from .denominations import Denomination
from .registers import Register, RegisterSession
from .sales import Sale, SalePayment, CashMovement
from .audit import AuditEvent
from .alerts import Alert

__all__ = [
    'Branch',
    'User',
    'Denomination',
    'Register', 'RegisterSession',
    'Sale', 'SalePayment', 'CashMovement',
    'AuditEvent',
    'Alert',
]
