"""
Procurement Module (``budget_modules.procurement``).

Responsibility
--------------
Purchase orders charged to a budget sub-account, routed through
template-resolved approval steps.  Full approval commits the PO amount
on the sub-account.

Architecture position
---------------------
**Modules layer** -- ``ProcurementService`` is the sole public entry
point; ledger figures change only through
``LedgerService.adjust_committed``.
"""

from budget_modules.procurement.config import ProcurementConfig
from budget_modules.procurement.models import POInvoicing, POStatus, PurchaseOrder
from budget_modules.procurement.workflows import PO_WORKFLOW

__all__ = [
    "POInvoicing",
    "POStatus",
    "PurchaseOrder",
    "PO_WORKFLOW",
    "ProcurementConfig",
]
