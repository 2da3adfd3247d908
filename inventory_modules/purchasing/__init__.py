"""
Purchasing Module (``inventory_modules.purchasing``).

Responsibility
--------------
Lifecycle of supplier purchase orders: draft, submission, supplier
confirmation, receiving progress, completion, cancellation and explicit
short-ship closure of lines.

Invariants enforced
-------------------
* Order number assigned once, at creation, never reassigned.
* Status changes only through ``PURCHASE_ORDER_WORKFLOW`` transitions.
* ``quantity_received`` on a line never decreases; only the receipt
  cascade in ``inventory_services.reconciliation_coordinator`` raises it.
* Cancellation is forward-only bookkeeping; applied stock stays applied.
"""
