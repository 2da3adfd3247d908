"""
Inventory Kernel

The append-only core of order fulfillment and stock reconciliation:
- Stock ledger as the single writer of on-hand quantity
- Atomic per-business order numbering
- Typed errors and structured logging
- Row-locked, version-checked transactions
"""

__version__ = "0.1.0"
