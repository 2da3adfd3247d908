"""Kernel services: stock ledger, order numbering and the transaction runner."""

from inventory_kernel.services.base import BaseService
from inventory_kernel.services.sequence_service import (
    OrderNumberSequencer,
    SequenceCounter,
)
from inventory_kernel.services.stock_ledger import StockLedger
from inventory_kernel.services.transaction import TransactionRunner

__all__ = [
    "BaseService",
    "OrderNumberSequencer",
    "SequenceCounter",
    "StockLedger",
    "TransactionRunner",
]
