"""
Module ORM Registry (``inventory_modules._orm_registry``).

Ensures every ORM model is imported so ``Base.metadata`` holds all table
definitions before ``create_tables()`` runs.  Idempotent.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``inventory_modules.*.orm`` module."""
    # Kernel tables first; module tables reference products and parties.
    import inventory_kernel.models  # noqa: F401
    import inventory_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import inventory_modules.purchasing.orm  # noqa: F401
    import inventory_modules.receiving.orm  # noqa: F401
    import inventory_modules.sales.orm  # noqa: F401
    # fmt: on
