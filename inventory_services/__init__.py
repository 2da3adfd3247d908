"""
Inventory services: cross-document coordination.

- ``workflow_executor``: transition lookup, guard evaluation, trace logging.
- ``reconciliation_coordinator``: receipt completion and shipment cascades.
"""
