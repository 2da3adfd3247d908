"""
Sales Module (``inventory_modules.sales``).

Responsibility
--------------
Outbound customer orders: draft, submission, confirmation with stock
allocation, warehouse release, picking, packing, shipment, delivery, holds
and cancellation.

Invariants enforced
-------------------
* Confirmation allocates every open line or none of them.
* Shipment decrements stock by the picked quantity exactly once, through
  ``ReconciliationCoordinator.apply_shipment``.
* A held order returns to the status it was held from.
"""
