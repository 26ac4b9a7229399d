from .parties import User, AgentSetting, Customer
from .currency import ExchangeRate
from .invoices import Invoice, InvoiceLineItem, DocumentCounter
from .payments import Payment
from .accounting import JournalEntry, JournalLine
from .settlements import AgentSettlement, AgentSettlementItem
from .estimates import Estimate

__all__ = [
    'User', 'AgentSetting', 'Customer',
    'ExchangeRate',
    'Invoice', 'InvoiceLineItem', 'DocumentCounter',
    'Payment',
    'JournalEntry', 'JournalLine',
    'AgentSettlement', 'AgentSettlementItem',
    'Estimate',
]
