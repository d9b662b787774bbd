"""
Budget ledger modules.

Each package is thin domain glue over ``budget_kernel``: frozen DTOs in
``models.py``, persistence in ``orm.py``, a service facade in
``service.py`` that owns the transaction boundary, and (for document
lifecycles) declarative state machines in ``workflows.py``.
"""
