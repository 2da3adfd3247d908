"""
Inventory Modules.

Document lifecycles over the Inventory Kernel.  Each module contains:
- Domain models (frozen DTOs and status enums)
- ORM persistence models
- Workflows (state machines with explicit transition tables)
- A service facade that owns the transaction boundary

Modules:
- purchasing: supplier purchase orders and their lines
- receiving: inbound receipts against purchase orders, variance review
- sales: customer orders from allocation through pick, pack and ship
"""
