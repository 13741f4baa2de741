from .parties import Customer, Agent, Vendor
from .documents import Invoice, Ticket, DocumentSequence
from .transactions import DepositTransaction, AgentTransaction, VendorTransaction
from .activity import ActivityLog

__all__ = [
    'Customer', 'Agent', 'Vendor',
    'Invoice', 'Ticket', 'DocumentSequence',
    'DepositTransaction', 'AgentTransaction', 'VendorTransaction',
    'ActivityLog',
]
