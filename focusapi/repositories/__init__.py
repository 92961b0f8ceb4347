# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .ledger_repository import LedgerRepository, LedgerUnit
from .processed_window_repository import ProcessedWindowRepository
from .investment_repository import InvestmentRepository, FundRepository

__all__ = [
    "BaseRepository",
    "LedgerRepository",
    "LedgerUnit",
    "ProcessedWindowRepository",
    "InvestmentRepository",
    "FundRepository",
]
