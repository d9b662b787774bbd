"""
Module ORM Registry (``budget_modules._orm_registry``).

Ensures every module-level ORM model is imported so that ``Base.metadata``
contains its table before ``create_tables()`` runs.  Idempotent.
"""


def import_all_orm_models() -> None:
    """Import every ``budget_modules.*.orm`` module to register its models."""
    import budget_modules.approvals.orm  # noqa: F401
    import budget_modules.invoices.orm  # noqa: F401
    import budget_modules.ledger.orm  # noqa: F401
    import budget_modules.procurement.orm  # noqa: F401
    import budget_modules.suppliers.orm  # noqa: F401
