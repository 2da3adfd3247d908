"""
Receiving Module (``inventory_modules.receiving``).

Responsibility
--------------
Inbound deliveries against a purchase order: line capture, quantity/price
variance detection, validation review (approve/reject) and completion.
Completion is the only path that turns ordered quantities into on-hand
stock, through ``ReconciliationCoordinator.apply_receipt``.

Invariants enforced
-------------------
* A receipt with variances cannot complete without an approval carrying
  variance notes.
* Completing twice fails with InvalidStateTransitionError; stock is applied
  at most once per receipt.
* Completed receipts cannot be deleted.
"""
