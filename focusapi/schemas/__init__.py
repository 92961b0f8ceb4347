from .ledger import Credit, Debit, LedgerOperation, LedgerResult, TransactionEntrySchema
from .rewards import CreditWindowRequest, CreditWindowResponse
from .unlock import SpendUnlockRequest, SpendUnlockResponse, UnlockSession
from .investment import InvestRequest, InvestResponse
